"""
Time helpers shared by the cache, the rate limit coordinator and the queue.

All timestamps persisted by the tracker are ISO-8601 UTC strings
(``2024-09-10T15:00:00Z``); provider payloads mix ISO strings and epoch
milliseconds, which ``from_epoch_ms`` normalizes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def to_iso(value: datetime) -> str:
    """Format an aware datetime as the canonical persisted UTC string."""
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime.

    Naive inputs are assumed to be UTC. Returns ``None`` for empty input.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def from_epoch_ms(value: Any) -> Optional[datetime]:
    """Convert epoch milliseconds to an aware UTC datetime, or ``None``."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def from_epoch_seconds(value: Any) -> Optional[datetime]:
    """Convert epoch seconds (int, float or numeric string) to UTC, or ``None``."""
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def seconds_until(target: datetime, now: datetime) -> float:
    """Non-negative seconds from ``now`` until ``target``."""
    return max((target - now) / timedelta(seconds=1), 0.0)
