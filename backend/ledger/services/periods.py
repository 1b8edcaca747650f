"""
Period-key derivation for usage buckets.

Pure, deterministic functions — no I/O, no clock reads unless a caller asks
for the *current* key. Every instant maps to exactly one key per period:

  • daily   → "YYYY-MM-DD"  (UTC calendar date)
  • weekly  → "YYYY-Wnn"    (ISO-8601 week-year and week number)
  • monthly → "YYYY-MM"     (UTC calendar month)

ISO weeks start on Monday and week 1 is the week holding the year's first
Thursday, so 2024-12-30 (Mon) and 2025-01-01 (Wed) are both "2025-W01".
"""

from __future__ import annotations

import datetime
import re
from typing import Literal, NamedTuple

from ledger.core.errors import ValidationError
from ledger.core.time import MS_PER_DAY, from_epoch_ms, now_utc, to_epoch_ms

Period = Literal["daily", "weekly", "monthly"]

DAILY: Period = "daily"
WEEKLY: Period = "weekly"
MONTHLY: Period = "monthly"
PERIODS: tuple[Period, ...] = (DAILY, WEEKLY, MONTHLY)

_WEEKLY_KEY = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTHLY_KEY = re.compile(r"^(\d{4})-(\d{2})$")


class PeriodKeys(NamedTuple):
    daily: str
    weekly: str
    monthly: str

    def for_period(self, period: Period) -> str:
        return getattr(self, period)


def validate_period(period: str) -> Period:
    """Return `period` unchanged if it names a known bucket size."""
    if period not in PERIODS:
        raise ValidationError(
            f"Unknown period '{period}'. Expected one of: {', '.join(PERIODS)}"
        )
    return period  # type: ignore[return-value]


def daily_key(day: datetime.date) -> str:
    return day.isoformat()


def weekly_key(day: datetime.date) -> str:
    # isocalendar() shifts to the Thursday of the week, so the year it
    # returns is the ISO week-year, not necessarily day.year.
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def monthly_key(day: datetime.date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def keys_for_date(day: datetime.date) -> PeriodKeys:
    return PeriodKeys(
        daily=daily_key(day),
        weekly=weekly_key(day),
        monthly=monthly_key(day),
    )


def period_keys(timestamp_ms: int) -> PeriodKeys:
    """Derive the daily, weekly and monthly keys of an epoch-ms instant (UTC)."""
    return keys_for_date(from_epoch_ms(timestamp_ms).date())


def period_key(period: str, timestamp_ms: int) -> str:
    return period_keys(timestamp_ms).for_period(validate_period(period))


def current_period_key(period: str, now: datetime.datetime | None = None) -> str:
    """Key of the bucket `now` (default: the current UTC instant) falls into."""
    moment = now if now is not None else now_utc()
    return period_key(period, to_epoch_ms(moment))


def period_bounds(period: str, key: str) -> tuple[int, int]:
    """
    Epoch-ms range [start, end) covered by one bucket.

    Inverse of period_key: every timestamp t with start <= t < end maps
    back to `key`. Raises ValidationError for malformed keys.
    """
    validate_period(period)
    try:
        if period == DAILY:
            start = datetime.date.fromisoformat(key)
            if daily_key(start) != key:
                raise ValueError(key)
            end = start + datetime.timedelta(days=1)
        elif period == WEEKLY:
            match = _WEEKLY_KEY.match(key)
            if match is None:
                raise ValueError(key)
            start = datetime.date.fromisocalendar(int(match[1]), int(match[2]), 1)
            end = start + datetime.timedelta(weeks=1)
        else:
            match = _MONTHLY_KEY.match(key)
            if match is None:
                raise ValueError(key)
            start = datetime.date(int(match[1]), int(match[2]), 1)
            end = (
                datetime.date(start.year + 1, 1, 1)
                if start.month == 12
                else datetime.date(start.year, start.month + 1, 1)
            )
    except ValueError as exc:
        raise ValidationError(f"Malformed {period} period key '{key}'") from exc

    return _date_ms(start), _date_ms(end)


def _date_ms(day: datetime.date) -> int:
    return to_epoch_ms(datetime.datetime(day.year, day.month, day.day, tzinfo=datetime.timezone.utc))


# Trailing windows (not calendar buckets) used by the model and alert stats
_WINDOW_DAYS = {DAILY: 1, WEEKLY: 7, MONTHLY: 30}


def trailing_window_start(period: str, now: datetime.datetime | None = None) -> int:
    """Epoch ms `period` worth of days (1 / 7 / 30) before `now`."""
    moment = now if now is not None else now_utc()
    return to_epoch_ms(moment) - _WINDOW_DAYS[validate_period(period)] * MS_PER_DAY
