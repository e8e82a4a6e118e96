from __future__ import annotations

import asyncio
import json
import signal
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import typer

from .api_client import NPMClient, NPMError
from .configmanager import ConfigError, ConfigManager, Settings
from .credentials import CredentialManager
from .docker import ApplicationResolver, DockerProvider, DockerProviderError
from .proxy_hosts import ProxyHostClient
from .reconciler import Reconciler

logger = ConfigManager.get_logger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
    pretty_exceptions_short=True,
)


def load_config_callback(value: str | None) -> str | None:
    """Eager callback to load env file before other options are processed."""
    ConfigManager.load_dotenv(value)
    return value


def _settings() -> Settings:
    try:
        settings = ConfigManager.settings()
        settings.require_credential()
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from None
    return settings


@asynccontextmanager
async def service_context(settings: Settings) -> AsyncGenerator[Reconciler, None]:
    """Yield a reconciler wired to the NPM API and the docker provider."""
    async with NPMClient(
        base_url=settings.base_url,
        verify_tls=settings.verify_tls,
        timeout_s=settings.timeout_s,
    ) as api:
        credentials = CredentialManager(
            api,
            settings.require_credential(),
            refresh_interval_min=settings.refresh_interval_min,
        )
        provider = DockerProvider()
        try:
            yield Reconciler(
                provider=provider,
                proxy_hosts=ProxyHostClient(api, credentials),
                credentials=credentials,
                settings=settings,
            )
        finally:
            credentials.stop_refresh_timer()
            provider.close()


async def _run_forever(settings: Settings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    async with service_context(settings) as reconciler:
        await reconciler.run(stop)


@app.callback()
def _main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        envvar="LOG_LEVEL",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
        show_default=True,
    ),
    log_file: str | None = typer.Option(None, "--log-file", envvar="LOG_FILE", help="Also log to this file"),
    log_file_level: str | None = typer.Option(None, "--log-file-level", envvar="LOG_FILE_LEVEL"),
    env_file: str | None = typer.Option(
        None,
        "--env-file",
        envvar="IX_NPM_ENV_FILE",
        is_eager=True,
        callback=load_config_callback,
        help="dotenv file to load before reading configuration (default: .env)",
    ),
) -> None:
    _ = env_file
    try:
        ConfigManager.configure_logging(log_level, log_file=log_file, file_level=log_file_level)
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from None


@app.command("run")
def run() -> None:
    """Configure proxy hosts for running apps, then follow container start events."""
    settings = _settings()
    logger.info("Using Nginx Proxy Manager at %s, domain %s", settings.base_url, settings.domain_name)
    try:
        asyncio.run(_run_forever(settings))
    except DockerProviderError as e:
        typer.echo(f"Docker error: {e}", err=True)
        raise typer.Exit(code=1) from None


@app.command("sync")
def sync() -> None:
    """Run a single startup sweep and exit."""
    settings = _settings()

    async def _sync():  # type: ignore[no-untyped-def]
        async with service_context(settings) as reconciler:
            return await reconciler.sweep()

    try:
        result = asyncio.run(_sync())
    except DockerProviderError as e:
        typer.echo(f"Docker error: {e}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(
        f"Sync complete: configured={len(result.configured)} skipped={len(result.skipped)} failed={len(result.failed)}"
    )
    if result.failed:
        raise typer.Exit(code=1)


@app.command("apps")
def apps(json_out: bool = typer.Option(False, "--json", help="Print JSON")) -> None:
    """List running apps that are eligible for a proxy host."""
    resolver = ApplicationResolver(namespace_prefix=ConfigManager.namespace_prefix())

    async def _list() -> list[str]:
        provider = DockerProvider()
        try:
            return resolver.list_app_names(await provider.list_containers())
        finally:
            provider.close()

    try:
        names = asyncio.run(_list())
    except DockerProviderError as e:
        typer.echo(f"Docker error: {e}", err=True)
        raise typer.Exit(code=1) from None
    if json_out:
        print(json.dumps(names, indent=2))
        return
    for name in names:
        print(name)


@app.command("token")
def token() -> None:
    """Acquire a token with the configured credential and show its expiry."""
    settings = _settings()

    async def _token():  # type: ignore[no-untyped-def]
        async with NPMClient(
            base_url=settings.base_url, verify_tls=settings.verify_tls, timeout_s=settings.timeout_s
        ) as api:
            return await CredentialManager(api, settings.require_credential()).refresh_token()

    try:
        tok = asyncio.run(_token())
    except NPMError as e:
        typer.echo(f"Authentication failed: {e}", err=True)
        raise typer.Exit(code=2) from None
    typer.echo(f"Token valid until {tok.expires.isoformat()}")


def main() -> None:
    app()
