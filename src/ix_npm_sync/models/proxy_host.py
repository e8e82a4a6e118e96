from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .. import utils
from .container import ContainerRecord


class Scheme(str, Enum):
    HTTP = "http"
    HTTPS = "https"

    @staticmethod
    def for_port(port: int) -> Scheme:
        return Scheme.HTTPS if port == 443 else Scheme.HTTP


@dataclass(frozen=True)
class ProxyTarget:
    container: ContainerRecord
    scheme: Scheme
    port: int


@dataclass(frozen=True)
class Override:
    suffix: str
    port: int

    @classmethod
    def parse(cls, value: str) -> Override:
        raw = (value or "").strip()
        if ":" not in raw:
            raise ValueError("override must be in format <container-name-suffix>:<port>")
        suffix, port_s = raw.rsplit(":", 1)
        suffix = suffix.strip()
        if not suffix:
            raise ValueError("override must be in format <container-name-suffix>:<port>")
        return cls(suffix=suffix, port=utils.parse_port(port_s, field="override port"))


@dataclass(frozen=True)
class ProxyHostRequest:
    domain_name: str
    forward_scheme: Scheme
    forward_host: str
    forward_port: int
    certificate_id: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "domain_names": [self.domain_name],
            "forward_scheme": self.forward_scheme.value,
            "forward_host": self.forward_host,
            "forward_port": self.forward_port,
            "certificate_id": self.certificate_id,
            "block_exploits": "true",
            "caching_enabled": "true",
            "http2_support": "true",
            "enabled": "true",
        }
