from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from .. import utils

# Sentinel expiry for tokens whose lifetime is unknown (forces a refresh on first use).
EXPIRED = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass(frozen=True)
class IdentityCredential:
    identity: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class TokenCredential:
    """Pre-obtained bearer token; cannot be re-created once refresh stops working."""

    token: str = field(repr=False)


Credential = Union[IdentityCredential, TokenCredential]


@dataclass(frozen=True)
class Token:
    value: str = field(repr=False)
    expires: datetime = EXPIRED

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> Token:
        value = str(payload.get("token") or "").strip()
        if not value:
            raise ValueError("response has no token")
        return cls(value=value, expires=utils.parse_expires(payload.get("expires")))
