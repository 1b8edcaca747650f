import datetime

import pytest

from ledger.core.errors import ValidationError
from ledger.core.time import from_epoch_ms, to_epoch_ms
from ledger.services.periods import (
    PeriodKeys,
    current_period_key,
    period_bounds,
    period_key,
    period_keys,
    trailing_window_start,
    validate_period,
)


def _ms(*args) -> int:
    return to_epoch_ms(datetime.datetime(*args, tzinfo=datetime.timezone.utc))


def test_last_millisecond_of_year_stays_in_old_day():
    keys = period_keys(_ms(2024, 12, 31, 23, 59, 59, 999_000))
    assert keys.daily == "2024-12-31"
    assert keys.monthly == "2024-12"


def test_first_millisecond_of_year_starts_new_buckets():
    keys = period_keys(_ms(2025, 1, 1))
    assert keys == PeriodKeys(daily="2025-01-01", weekly="2025-W01", monthly="2025-01")


def test_iso_week_spans_the_year_boundary():
    assert period_keys(_ms(2024, 12, 30)).weekly == "2025-W01"
    assert period_keys(_ms(2025, 1, 1)).weekly == "2025-W01"
    # Sunday before belongs to the last week of 2024
    assert period_keys(_ms(2024, 12, 29)).weekly == "2024-W52"


def test_week_53_and_early_january():
    # 2021-01-03 (Sunday) is still in ISO week 53 of 2020
    assert period_keys(_ms(2021, 1, 3)).weekly == "2020-W53"
    assert period_keys(_ms(2021, 1, 4)).weekly == "2021-W01"


def test_week_numbers_are_zero_padded():
    assert period_keys(_ms(2025, 1, 15)).weekly == "2025-W03"


def test_epoch_ms_round_trip_is_exact():
    ms = _ms(2025, 3, 9, 7, 30, 15, 123_000)
    assert to_epoch_ms(from_epoch_ms(ms)) == ms
    assert ms % 1000 == 123


def test_period_key_selects_one_period():
    ms = _ms(2025, 6, 30, 23, 0)
    assert period_key("daily", ms) == "2025-06-30"
    assert period_key("weekly", ms) == "2025-W27"
    assert period_key("monthly", ms) == "2025-06"


def test_current_period_key_uses_given_instant():
    now = datetime.datetime(2025, 2, 1, 0, 0, tzinfo=datetime.timezone.utc)
    assert current_period_key("monthly", now) == "2025-02"


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime.datetime(2025, 2, 1, 0, 0)
    assert current_period_key("daily", naive) == "2025-02-01"


def test_unknown_period_is_rejected():
    with pytest.raises(ValidationError):
        validate_period("yearly")
    with pytest.raises(ValidationError):
        period_key("hourly", 0)


@pytest.mark.parametrize(
    "period,key,start,end",
    [
        ("daily", "2024-12-31", (2024, 12, 31), (2025, 1, 1)),
        ("weekly", "2025-W01", (2024, 12, 30), (2025, 1, 6)),
        ("monthly", "2024-12", (2024, 12, 1), (2025, 1, 1)),
        ("monthly", "2024-02", (2024, 2, 1), (2024, 3, 1)),
    ],
)
def test_period_bounds(period, key, start, end):
    assert period_bounds(period, key) == (_ms(*start), _ms(*end))


def test_period_bounds_invert_period_keys():
    ms = _ms(2025, 5, 17, 13, 45)
    for period in ("daily", "weekly", "monthly"):
        start, end = period_bounds(period, period_key(period, ms))
        assert start <= ms < end
        assert period_key(period, start) == period_key(period, end - 1)


@pytest.mark.parametrize(
    "period,key",
    [("daily", "2025-13-01"), ("daily", "20250101"), ("weekly", "2025-W54"), ("monthly", "2025-1")],
)
def test_malformed_keys_are_rejected(period, key):
    with pytest.raises(ValidationError):
        period_bounds(period, key)


def test_trailing_window_start():
    now = datetime.datetime(2025, 1, 15, 12, 0, tzinfo=datetime.timezone.utc)
    assert trailing_window_start("weekly", now) == _ms(2025, 1, 8, 12, 0)
    assert trailing_window_start("monthly", now) == _ms(2024, 12, 16, 12, 0)
