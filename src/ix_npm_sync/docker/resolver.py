from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..configmanager import DEFAULT_NAMESPACE_PREFIX, ConfigManager
from ..models import ContainerRecord

logger = ConfigManager.get_logger(__name__)

CLUSTER_DNS_SUFFIX = "svc.cluster.local"


def prohibited_network_mode(network_mode: str) -> bool:
    """No networking, host networking, or another container's namespace: nothing to route to."""
    mode = (network_mode or "").strip()
    return mode in {"none", "host"} or mode.startswith(("container:", "service:"))


@dataclass(frozen=True)
class ApplicationResolver:
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX

    def in_namespace(self, project: str | None) -> bool:
        return bool(project) and str(project).startswith(self.namespace_prefix)

    def is_eligible(self, record: ContainerRecord) -> bool:
        if not self.in_namespace(record.project):
            logger.debug("Container %s is not from an %s app, skipping", record.display_name, self.namespace_prefix)
            return False
        if prohibited_network_mode(record.network_mode):
            logger.debug(
                "Container %s is using network mode %s, skipping",
                record.display_name,
                record.network_mode,
            )
            return False
        return True

    def app_name(self, record: ContainerRecord) -> str:
        project = record.project or ""
        if project.startswith(self.namespace_prefix):
            return project[len(self.namespace_prefix) :]
        return project

    def project_for(self, app_name: str) -> str:
        return f"{self.namespace_prefix}{app_name}"

    def dns_name(self, record: ContainerRecord) -> str:
        return f"{record.service}.{record.project}.{CLUSTER_DNS_SUFFIX}"

    def group_by_app(self, records: Iterable[ContainerRecord]) -> dict[str, list[ContainerRecord]]:
        """Eligible containers grouped by application, in provider order."""
        out: dict[str, list[ContainerRecord]] = {}
        for record in records:
            if not self.is_eligible(record):
                continue
            out.setdefault(self.app_name(record), []).append(record)
        return out

    def list_app_names(self, records: Iterable[ContainerRecord]) -> list[str]:
        return sorted(self.group_by_app(records))
