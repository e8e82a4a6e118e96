from __future__ import annotations

import re
from collections.abc import Sequence

from ..configmanager import DEFAULT_NAMESPACE_PREFIX, ConfigError, ConfigManager
from ..models import ContainerRecord, Override, ProxyTarget, Scheme

logger = ConfigManager.get_logger(__name__)

_REPLICA_SUFFIX = re.compile(r"[-_]\d+$")

# Checked in order; the first port any container exposes wins.
PREFERRED_PORTS: tuple[tuple[int, Scheme], ...] = (
    (443, Scheme.HTTPS),
    (80, Scheme.HTTP),
)


def normalize_container_name(name: str) -> str:
    """`/ix-radarr_radarr_1` and `ix-radarr-radarr-1` both become `ix-radarr-radarr`."""
    s = (name or "").strip().lstrip("/")
    s = _REPLICA_SUFFIX.sub("", s)
    return s.replace("_", "-").lower()


def select_target(containers: Sequence[ContainerRecord]) -> ProxyTarget | None:
    """Pick the container/port/scheme to proxy to.

    "First" is whatever order the provider reported; ties are not re-ordered.
    """
    candidates = [c for c in containers if c.ports]
    if not candidates:
        return None
    for port, scheme in PREFERRED_PORTS:
        for c in candidates:
            if c.has_port(port):
                return ProxyTarget(container=c, scheme=scheme, port=port)
    first = candidates[0]
    return ProxyTarget(container=first, scheme=Scheme.HTTP, port=first.ports[0])


def select_override_target(
    app_name: str,
    containers: Sequence[ContainerRecord],
    override: Override,
    *,
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> ProxyTarget:
    """Resolve an operator override; exactly one container must match."""
    wanted = normalize_container_name(f"{namespace_prefix}{app_name}-{override.suffix}")
    matches = [c for c in containers if any(normalize_container_name(n) == wanted for n in c.names)]
    if not matches:
        raise ConfigError(f"Override for {app_name} matched no container named {wanted}")
    if len(matches) > 1:
        names = ", ".join(c.display_name for c in matches)
        raise ConfigError(f"Override for {app_name} is ambiguous (matched {len(matches)}: {names})")
    return ProxyTarget(container=matches[0], scheme=Scheme.for_port(override.port), port=override.port)


def choose_target(
    app_name: str,
    containers: Sequence[ContainerRecord],
    override: Override | None = None,
    *,
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> ProxyTarget | None:
    if override is not None:
        target = select_override_target(app_name, containers, override, namespace_prefix=namespace_prefix)
        logger.info(
            "Using override for %s: %s port %s",
            app_name,
            target.container.display_name,
            target.port,
        )
        return target
    target = select_target(containers)
    if target is None:
        logger.info("No container of %s exposes a port; nothing to proxy", app_name)
    return target
