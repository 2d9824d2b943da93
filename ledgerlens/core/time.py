"""Time helpers shared by models and services."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def epoch_seconds() -> int:
    """Return the current time as whole seconds since the epoch."""
    return int(time.time())


def isoformat(value: datetime | None) -> str | None:
    """Serialise a datetime as ISO-8601 with a trailing ``Z`` for naive UTC values."""

    if value is None:
        return None
    out = value.isoformat()
    if value.tzinfo is None:
        out += "Z"
    return out


__all__ = ["epoch_seconds", "isoformat", "utcnow"]
