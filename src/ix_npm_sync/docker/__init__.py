"""Docker integration: resolve ix apps and pick proxy targets."""

from .provider import ContainerProvider, DockerProvider, DockerProviderError
from .resolver import ApplicationResolver, prohibited_network_mode
from .selector import choose_target, normalize_container_name, select_override_target, select_target

__all__ = [
    "ApplicationResolver",
    "ContainerProvider",
    "DockerProvider",
    "DockerProviderError",
    "choose_target",
    "normalize_container_name",
    "prohibited_network_mode",
    "select_override_target",
    "select_target",
]
