from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from .api_client import NPMError
from .configmanager import ConfigError, ConfigManager, Settings
from .credentials import CredentialManager
from .docker import ApplicationResolver, ContainerProvider, DockerProviderError, choose_target
from .models import ContainerEvent, ContainerRecord, ProxyHostRequest, ProxyTarget
from .proxy_hosts import ProxyHostClient

logger = ConfigManager.get_logger(__name__)


@dataclass
class SweepResult:
    configured: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Reconciler:
    """Drives resolver -> selector -> proxy-host client.

    Startup sweep first, one application at a time; then one task per container start
    event. Events for the same application are not coalesced: each waits the settle delay
    and reconciles on its own, relying on NPM answering 400 for an existing host.
    """

    def __init__(
        self,
        *,
        provider: ContainerProvider,
        proxy_hosts: ProxyHostClient,
        credentials: CredentialManager,
        settings: Settings,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._proxy_hosts = proxy_hosts
        self._credentials = credentials
        self._settings = settings
        self._resolver = ApplicationResolver(namespace_prefix=settings.namespace_prefix)
        self._sleep = sleep
        self._tasks: set[asyncio.Task[None]] = set()

    def build_request(self, app_name: str, target: ProxyTarget) -> ProxyHostRequest:
        return ProxyHostRequest(
            domain_name=f"{app_name}.{self._settings.domain_name}",
            forward_scheme=target.scheme,
            forward_host=self._resolver.dns_name(target.container),
            forward_port=target.port,
            certificate_id=self._settings.certificate_id,
        )

    async def reconcile_app(self, app_name: str, containers: Sequence[ContainerRecord]) -> ProxyTarget | None:
        """Ensure a proxy host for one application.

        Raises ConfigError for a bad override and NPMError when NPM refuses or is unreachable.
        """
        target = choose_target(
            app_name,
            containers,
            self._settings.override_for(app_name),
            namespace_prefix=self._settings.namespace_prefix,
        )
        if target is None:
            return None
        request = self.build_request(app_name, target)
        await self._proxy_hosts.ensure_proxy_host(request)
        logger.info(
            "Container %s (aka %s) proxy %s -> %s",
            target.container.id[:12],
            ", ".join(target.container.names),
            request.domain_name,
            f"{request.forward_host}:{request.forward_port}",
        )
        return target

    async def sweep(self) -> SweepResult:
        logger.debug("Configuring proxy hosts for running app containers")
        records = await self._provider.list_containers()
        result = SweepResult()
        for app_name, containers in self._resolver.group_by_app(records).items():
            if self._settings.is_blacklisted(app_name):
                logger.debug("Application %s is blacklisted, skipping", app_name)
                result.skipped.append(app_name)
                continue
            try:
                target = await self.reconcile_app(app_name, containers)
            except ConfigError as e:
                logger.error("Configuration error for %s: %s", app_name, str(e))
                result.failed.append(app_name)
                continue
            except NPMError as e:
                logger.error("Failed to configure proxy host for %s: %s", app_name, str(e))
                result.failed.append(app_name)
                continue
            if target is None:
                result.skipped.append(app_name)
            else:
                result.configured.append(app_name)
        logger.info(
            "Startup sweep done: configured=%s skipped=%s failed=%s",
            len(result.configured),
            len(result.skipped),
            len(result.failed),
        )
        return result

    async def handle_event(self, event: ContainerEvent) -> ProxyTarget | None:
        record = await self._provider.get_container(event.actor_id)
        if record is None:
            logger.warning("Container %s not found", event.actor_id)
            return None
        logger.debug("New container started: %s", record.display_name)
        if not self._resolver.is_eligible(record):
            return None
        app_name = self._resolver.app_name(record)
        if self._settings.is_blacklisted(app_name):
            logger.debug("Application %s is blacklisted, skipping", app_name)
            return None

        # Let sibling containers of the app come up before choosing among them.
        if self._settings.settle_delay_s > 0:
            logger.debug("Waiting %ss before configuring %s", self._settings.settle_delay_s, app_name)
            await self._sleep(self._settings.settle_delay_s)

        records = await self._provider.list_containers(project=self._resolver.project_for(app_name))
        containers = self._resolver.group_by_app(records).get(app_name, [])
        if not containers:
            logger.warning("No running containers left for %s", app_name)
            return None
        return await self.reconcile_app(app_name, containers)

    async def _handle_event_logged(self, event: ContainerEvent) -> None:
        try:
            await self.handle_event(event)
        except ConfigError as e:
            logger.error("Configuration error for container %s: %s", event.actor_id[:12], str(e))
        except (NPMError, DockerProviderError) as e:
            logger.error("Failed to handle start of container %s: %s", event.actor_id[:12], str(e))
        except Exception:
            logger.exception("Unexpected error handling start of container %s", event.actor_id[:12])

    def dispatch(self, event: ContainerEvent) -> asyncio.Task[None] | None:
        """Schedule reconciliation for a start event; foreign events are dropped right away."""
        if not event.is_container_start:
            return None
        if not self._resolver.in_namespace(event.project):
            logger.debug("Ignoring start of container %s (project=%s)", event.actor_id[:12], event.project)
            return None
        task = asyncio.get_running_loop().create_task(self._handle_event_logged(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def watch(self) -> None:
        async for event in self._provider.events():
            self.dispatch(event)
        logger.info("Container event stream ended")

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Sweep, then watch events until the stream ends or `stop` is set."""
        self._credentials.start_refresh_timer()
        try:
            await self.sweep()
            watcher = asyncio.get_running_loop().create_task(self.watch())
            if stop is None:
                await watcher
                return
            stopper = asyncio.get_running_loop().create_task(stop.wait())
            done, _ = await asyncio.wait({watcher, stopper}, return_when=asyncio.FIRST_COMPLETED)
            for task in (watcher, stopper):
                if task not in done:
                    task.cancel()
            if watcher in done:
                watcher.result()
            else:
                logger.info("Shutting down")
        finally:
            self._credentials.stop_refresh_timer()
