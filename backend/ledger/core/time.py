"""
Time helpers.

Usage timestamps are stored as epoch milliseconds (UTC). Use these helpers
instead of `datetime.utcnow()` to avoid mixing naive and aware datetimes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MS_PER_HOUR = 3_600_000
MS_PER_DAY = 24 * MS_PER_HOUR


def now_utc() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Coerce a datetime to timezone-aware UTC. Naive values are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Exact integer milliseconds since the Unix epoch."""
    delta = ensure_utc(dt) - EPOCH
    return (delta.days * MS_PER_DAY) + (delta.seconds * 1000) + (delta.microseconds // 1000)


def from_epoch_ms(timestamp_ms: int) -> datetime:
    """UTC datetime for an epoch-millisecond value (integer arithmetic, no float rounding)."""
    return EPOCH + timedelta(milliseconds=timestamp_ms)


def now_ms() -> int:
    return to_epoch_ms(now_utc())
