from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone


def normalize_int(value: object, *, default: int = -1) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_port(value: object, *, field: str) -> int:
    if value is None:
        raise ValueError(f"Missing {field}")
    try:
        port = int(str(value).strip())
    except ValueError as e:
        raise ValueError(f"Invalid {field}") from e
    if port <= 0 or port > 65535:
        raise ValueError(f"Invalid {field}")
    return port


def unique_in_order(values: Iterable[int]) -> tuple[int, ...]:
    seen: set[int] = set()
    out: list[int] = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return tuple(out)


def _from_timestamp(seconds: int | float) -> datetime:
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"expires out of range: {seconds!r}") from e


def parse_expires(value: object) -> datetime:
    """Parse an NPM `expires` value.

    NPM returns an ISO-8601 string (`2025-01-01T00:00:00.000Z`); some builds return a unix timestamp.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_timestamp(value)
    s = str(value or "").strip()
    if not s:
        raise ValueError("expires is required")
    if s.isdigit():
        return _from_timestamp(int(s))
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
