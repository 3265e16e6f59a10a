"""
Shared datetime helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp and normalize it to UTC.

    Anything that is not a parseable string yields None.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed from ``moment`` to ``now``, never negative."""
    delta = ensure_utc(now) - ensure_utc(moment)
    return max(0, delta.days)
