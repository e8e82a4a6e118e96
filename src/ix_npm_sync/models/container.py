from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .. import utils

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"


@dataclass(frozen=True)
class ContainerRecord:
    """Snapshot of one container as reported by `GET /containers/json`."""

    id: str
    names: tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)
    network_mode: str = ""
    ports: tuple[int, ...] = ()

    @property
    def project(self) -> str | None:
        return self.labels.get(COMPOSE_PROJECT_LABEL)

    @property
    def service(self) -> str | None:
        return self.labels.get(COMPOSE_SERVICE_LABEL)

    @property
    def display_name(self) -> str:
        return self.names[0] if self.names else self.id[:12]

    def has_port(self, port: int) -> bool:
        return port in self.ports

    @classmethod
    def from_docker(cls, data: Mapping[str, Any]) -> ContainerRecord:
        names = data.get("Names")
        labels = data.get("Labels")
        host_config = data.get("HostConfig")
        ports = data.get("Ports")
        private_ports: list[int] = []
        if isinstance(ports, list):
            for p in ports:
                if not isinstance(p, Mapping):
                    continue
                port = utils.normalize_int(p.get("PrivatePort"))
                if port > 0:
                    private_ports.append(port)
        return cls(
            id=str(data.get("Id") or "").strip(),
            names=tuple(str(n).lstrip("/") for n in names) if isinstance(names, list) else (),
            labels={str(k): str(v) for k, v in labels.items() if k is not None and v is not None}
            if isinstance(labels, Mapping)
            else {},
            network_mode=str((host_config or {}).get("NetworkMode") or "") if isinstance(host_config, Mapping) else "",
            ports=utils.unique_in_order(private_ports),
        )


@dataclass(frozen=True)
class ContainerEvent:
    """One entry of the Docker event stream (`/events`)."""

    type: str
    action: str
    actor_id: str
    attributes: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_container_start(self) -> bool:
        return self.type == "container" and self.action == "start"

    @property
    def project(self) -> str | None:
        return self.attributes.get(COMPOSE_PROJECT_LABEL)

    @classmethod
    def from_docker(cls, data: Mapping[str, Any]) -> ContainerEvent:
        actor = data.get("Actor")
        actor = actor if isinstance(actor, Mapping) else {}
        attributes = actor.get("Attributes")
        return cls(
            type=str(data.get("Type") or "").strip(),
            action=str(data.get("Action") or data.get("status") or "").strip(),
            actor_id=str(actor.get("ID") or data.get("id") or "").strip(),
            attributes={str(k): str(v) for k, v in attributes.items() if v is not None}
            if isinstance(attributes, Mapping)
            else {},
        )
