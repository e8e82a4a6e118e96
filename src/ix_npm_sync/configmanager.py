from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .models import IdentityCredential, Override, TokenCredential
from .models.credential import Credential

DEFAULT_ENV_FILE = ".env"
DEFAULT_VERIFY_TLS = True
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE_NAME = "ix-npm-sync.log"
DEFAULT_NPM_APP_NAME = "nginx-proxy-manager"
DEFAULT_NPM_APP_PORT = 30020
DEFAULT_DOMAIN_NAME = "example.com"
DEFAULT_NAMESPACE_PREFIX = "ix-"
DEFAULT_REFRESH_INTERVAL_MIN = 60
DEFAULT_SETTLE_DELAY_S = 10.0
DEFAULT_TIMEOUT_S = 30.0

OVERRIDE_ENV_PREFIX = "APP_OVERRIDE_"


class ConfigError(ValueError):
    """Invalid or missing configuration.

    Raised at startup (fatal) or for a single application (that application is skipped).
    """


@dataclass(frozen=True)
class Settings:
    base_url: str
    domain_name: str
    credential: Credential | None
    refresh_interval_min: int = DEFAULT_REFRESH_INTERVAL_MIN
    certificate_id: int = 0
    blacklist: frozenset[str] = frozenset()
    overrides: Mapping[str, Override] = field(default_factory=dict)
    override_errors: Mapping[str, str] = field(default_factory=dict)
    settle_delay_s: float = DEFAULT_SETTLE_DELAY_S
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX
    verify_tls: bool = DEFAULT_VERIFY_TLS
    timeout_s: float = DEFAULT_TIMEOUT_S

    def require_credential(self) -> Credential:
        if self.credential is None:
            raise ConfigError("Provide NPM_IDENTITY and NPM_SECRET, or NPM_API_KEY (set in environment or .env)")
        return self.credential

    def override_for(self, app_name: str) -> Override | None:
        """Raises ConfigError when this app's override could not be parsed."""
        key = ConfigManager.override_key(app_name)
        error = self.override_errors.get(key)
        if error is not None:
            raise ConfigError(error)
        return self.overrides.get(key)

    def is_blacklisted(self, app_name: str) -> bool:
        return app_name.lower() in self.blacklist


def _env_str(name: str) -> str | None:
    v = os.getenv(name)
    return v.strip() if v and v.strip() else None


class ConfigManager:
    """Centralized configuration.

    - Loads `.env` (or `IX_NPM_ENV_FILE`) best-effort via python-dotenv.
    - Reads runtime config from environment variables.
    - Assigns project defaults consistently.
    """

    @staticmethod
    def _env_bool(value: str | None, *, default: bool) -> bool:
        if value is None:
            return default
        s = value.strip().lower()
        return s not in {"0", "false", "no", "off"}

    @staticmethod
    def _env_int(name: str, *, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw.strip())
        except ValueError as e:
            raise ConfigError(f"{name} must be an integer") from e

    @staticmethod
    def _env_float(name: str, *, default: float) -> float:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            v = float(raw.strip())
        except ValueError as e:
            raise ConfigError(f"{name} must be a number") from e
        if v < 0:
            raise ConfigError(f"{name} must be >= 0")
        return v

    @staticmethod
    def load_dotenv(path: str | None = None) -> None:
        """Load env file into process env.

        Missing file is not an error; already set variables win.
        """
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=path or os.getenv("IX_NPM_ENV_FILE") or DEFAULT_ENV_FILE)

    @staticmethod
    def base_url() -> str:
        explicit = _env_str("NPM_BASE_URL")
        if explicit:
            return explicit
        app_name = _env_str("NPM_APP_NAME") or DEFAULT_NPM_APP_NAME
        port = ConfigManager._env_int("NPM_APP_PORT", default=DEFAULT_NPM_APP_PORT)
        if port <= 0 or port > 65535:
            raise ConfigError("NPM_APP_PORT must be a valid port")
        return f"http://npm.ix-{app_name}.svc.cluster.local:{port}"

    @staticmethod
    def domain_name() -> str:
        return (_env_str("DOMAIN_NAME") or DEFAULT_DOMAIN_NAME).lstrip(".")

    @staticmethod
    def credential() -> Credential | None:
        """Identity + secret wins over a bootstrap token when both are configured."""
        identity = _env_str("NPM_IDENTITY")
        secret = os.getenv("NPM_SECRET")
        if identity and secret:
            return IdentityCredential(identity=identity, secret=secret)
        token = _env_str("NPM_API_KEY")
        if token:
            return TokenCredential(token=token)
        return None

    @staticmethod
    def refresh_interval_min() -> int:
        return ConfigManager._env_int("TOKEN_REFRESH_INTERVAL", default=DEFAULT_REFRESH_INTERVAL_MIN)

    @staticmethod
    def certificate_id() -> int:
        v = ConfigManager._env_int("CERT_ID", default=0)
        if v < 0:
            raise ConfigError("CERT_ID must be >= 0")
        return v

    @staticmethod
    def blacklist() -> frozenset[str]:
        # Comma-separated, e.g. "adguard,radarr"
        raw = os.getenv("APP_BLACKLIST") or ""
        return frozenset(s.lower() for part in raw.split(",") if (s := part.strip()))

    @staticmethod
    def override_key(app_name: str) -> str:
        return re.sub(r"[^A-Za-z0-9]", "_", app_name).upper()

    @staticmethod
    def _collect_overrides(environ: Mapping[str, str] | None) -> tuple[dict[str, Override], dict[str, str]]:
        env = os.environ if environ is None else environ
        found: dict[str, Override] = {}
        errors: dict[str, str] = {}
        for key, value in env.items():
            if not key.upper().startswith(OVERRIDE_ENV_PREFIX) or not value.strip():
                continue
            app_key = ConfigManager.override_key(key[len(OVERRIDE_ENV_PREFIX) :])
            if not app_key:
                continue
            try:
                found[app_key] = Override.parse(value)
            except ValueError as e:
                errors[app_key] = f"{key}: {e}"
        return found, errors

    @staticmethod
    def overrides(environ: Mapping[str, str] | None = None) -> dict[str, Override]:
        """Valid `APP_OVERRIDE_<APP>` entries keyed by upper-case app key."""
        return ConfigManager._collect_overrides(environ)[0]

    @staticmethod
    def override_errors(environ: Mapping[str, str] | None = None) -> dict[str, str]:
        """Malformed `APP_OVERRIDE_<APP>` entries; they fail only their own app."""
        return ConfigManager._collect_overrides(environ)[1]

    @staticmethod
    def settle_delay_s() -> float:
        return ConfigManager._env_float("SETTLE_DELAY", default=DEFAULT_SETTLE_DELAY_S)

    @staticmethod
    def namespace_prefix() -> str:
        return _env_str("NAMESPACE_PREFIX") or DEFAULT_NAMESPACE_PREFIX

    @staticmethod
    def verify_tls() -> bool:
        return ConfigManager._env_bool(os.getenv("NPM_VERIFY_TLS"), default=DEFAULT_VERIFY_TLS)

    @staticmethod
    def timeout_s() -> float:
        return ConfigManager._env_float("NPM_TIMEOUT", default=DEFAULT_TIMEOUT_S)

    @staticmethod
    def log_level() -> str:
        v = os.getenv("LOG_LEVEL")
        return (v or DEFAULT_LOG_LEVEL).strip().upper() or DEFAULT_LOG_LEVEL

    @staticmethod
    def settings() -> Settings:
        return Settings(
            base_url=ConfigManager.base_url(),
            domain_name=ConfigManager.domain_name(),
            credential=ConfigManager.credential(),
            refresh_interval_min=ConfigManager.refresh_interval_min(),
            certificate_id=ConfigManager.certificate_id(),
            blacklist=ConfigManager.blacklist(),
            overrides=ConfigManager.overrides(),
            override_errors=ConfigManager.override_errors(),
            settle_delay_s=ConfigManager.settle_delay_s(),
            namespace_prefix=ConfigManager.namespace_prefix(),
            verify_tls=ConfigManager.verify_tls(),
            timeout_s=ConfigManager.timeout_s(),
        )

    @staticmethod
    def _parse_log_level(level: str) -> int:
        normalized = (level or DEFAULT_LOG_LEVEL).strip().upper()
        logging_level = getattr(logging, normalized, None)
        if not isinstance(logging_level, int):
            raise ConfigError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return logging_level

    @staticmethod
    def _resolve_log_file_path(value: str | os.PathLike[str] | None) -> Path | None:
        if value is None:
            return None
        raw = str(value).strip()
        if not raw:
            return None

        p = Path(os.path.expanduser(raw))
        # If a directory is provided, create a file within it.
        if p.exists() and p.is_dir():
            return p / DEFAULT_LOG_FILE_NAME
        if raw.endswith(("/", os.sep)):
            return p / DEFAULT_LOG_FILE_NAME
        return p

    @staticmethod
    def configure_logging(
        console_level: str,
        *,
        log_file: str | os.PathLike[str] | None = None,
        file_level: str | None = None,
    ) -> None:
        """Configure logging.

        Always logs to stderr. If log_file is set, also logs to that file.
        The console and file handlers can have different levels.
        """
        console_logging_level = ConfigManager._parse_log_level(console_level)
        file_logging_level = (
            ConfigManager._parse_log_level(file_level) if (file_level is not None and str(file_level).strip()) else None
        )
        file_path = ConfigManager._resolve_log_file_path(log_file)

        console_formatter = logging.Formatter(
            "%(asctime)s %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        file_formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

        root = logging.getLogger()
        for h in list(root.handlers):
            root.removeHandler(h)

        min_level = console_logging_level
        if file_logging_level is not None:
            min_level = min(min_level, file_logging_level)
        root.setLevel(min_level)

        console_handler = logging.StreamHandler(stream=sys.stderr)
        console_handler.setLevel(console_logging_level)
        console_handler.setFormatter(console_formatter)
        root.addHandler(console_handler)

        if file_path is not None:
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                fh = logging.FileHandler(file_path, encoding="utf-8")
            except OSError as e:
                root.warning("Failed to enable file logging to %s (%s)", file_path, str(e))
            else:
                fh.setLevel(file_logging_level if file_logging_level is not None else console_logging_level)
                fh.setFormatter(file_formatter)
                root.addHandler(fh)

        # Keep noisy HTTP and docker libs at WARNING or higher.
        for noisy in ("httpx", "httpcore", "docker", "urllib3"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        return logging.getLogger(name)
