"""
Unit tests for timestamp parsing, the inclusive range check and presets.
"""

from datetime import date, datetime

import pytest

import fieldops.dates as dates
from fieldops.dates import (
    current_month,
    current_week,
    in_range,
    parse_range,
    parse_timestamp,
    quarter_range,
    to_date,
    year_range,
)
from fieldops.models import DateRange

MARCH_15_UTC_MS = 1710460800000  # 2024-03-15T00:00:00Z


@pytest.fixture
def utc(monkeypatch):
    monkeypatch.setattr(dates, "LOCAL_TIMEZONE", "UTC")


# ── Tests: parse_timestamp ───────────────────────────────────────────

@pytest.mark.parametrize("val", [None, "", "   ", "not a date", True, {"nanos": 5}, [1, 2]])
def test_unparsable_values_are_none(val):
    assert parse_timestamp(val) is None


def test_epoch_millis_number(utc):
    assert parse_timestamp(MARCH_15_UTC_MS) == datetime(2024, 3, 15)


def test_epoch_millis_string(utc):
    assert parse_timestamp(str(MARCH_15_UTC_MS)) == datetime(2024, 3, 15)


@pytest.mark.parametrize("val, expected", [
    ("2024", datetime(2024, 1, 1)),
    ("20240315", datetime(2024, 3, 15)),
])
def test_short_numeric_strings_are_dates(utc, val, expected):
    assert parse_timestamp(val) == expected
    assert in_range(val, date(2024, 1, 1), date(2024, 12, 31))


def test_seconds_map(utc):
    assert parse_timestamp({"seconds": MARCH_15_UTC_MS // 1000, "nanoseconds": 0}) == datetime(2024, 3, 15)


def test_epoch_converted_to_programme_timezone(monkeypatch):
    monkeypatch.setattr(dates, "LOCAL_TIMEZONE", "Africa/Nairobi")
    assert parse_timestamp(MARCH_15_UTC_MS) == datetime(2024, 3, 15, 3, 0)


def test_aware_string_shifts_across_midnight(monkeypatch):
    monkeypatch.setattr(dates, "LOCAL_TIMEZONE", "Africa/Nairobi")
    assert parse_timestamp("2024-03-15T22:30:00Z") == datetime(2024, 3, 16, 1, 30)


@pytest.mark.parametrize("val,expected", [
    ("2024-03-15", datetime(2024, 3, 15)),
    ("2024-03-15T10:20:00", datetime(2024, 3, 15, 10, 20)),
    ("26 Jan 2026", datetime(2026, 1, 26)),
    (date(2024, 3, 15), datetime(2024, 3, 15)),
    (datetime(2024, 3, 15, 8, 0), datetime(2024, 3, 15, 8, 0)),
])
def test_naive_values_kept_as_is(val, expected):
    assert parse_timestamp(val) == expected


def test_to_date():
    assert to_date("2024-03-15") == date(2024, 3, 15)
    assert to_date(date(2024, 3, 15)) == date(2024, 3, 15)
    assert to_date("nope") is None


# ── Tests: in_range ──────────────────────────────────────────────────

def test_end_bound_is_inclusive_for_whole_day():
    assert in_range("2024-03-15", start="2024-03-01", end="2024-03-15")
    assert in_range(datetime(2024, 3, 15, 23, 59, 59), start=date(2024, 3, 1), end=date(2024, 3, 15))
    assert not in_range("2024-03-16", start="2024-03-01", end="2024-03-15")


def test_start_bound_is_inclusive():
    assert in_range("2024-03-01", start="2024-03-01")
    assert not in_range("2024-02-29", start="2024-03-01")


def test_unbounded_accepts_everything():
    assert in_range("2024-03-15")
    assert in_range(None)
    assert in_range("garbage")


def test_unparsable_timestamp_with_bound_is_excluded():
    assert not in_range("garbage", end="2024-03-15")
    assert not in_range(None, start="2024-03-01")


# ── Tests: ranges and presets ────────────────────────────────────────

def test_parse_range_blank_is_unbounded():
    assert parse_range("2024-01-01", "") == DateRange(start=date(2024, 1, 1), end=None)
    assert parse_range(None, None) == DateRange()


def test_current_week_runs_sunday_to_saturday():
    assert current_week(date(2024, 3, 13)) == DateRange(date(2024, 3, 10), date(2024, 3, 16))
    assert current_week(date(2024, 3, 10)) == DateRange(date(2024, 3, 10), date(2024, 3, 16))


def test_current_month_handles_leap_february():
    assert current_month(date(2024, 2, 10)) == DateRange(date(2024, 2, 1), date(2024, 2, 29))


def test_quarter_range():
    assert quarter_range(2024, 3) == DateRange(date(2024, 7, 1), date(2024, 9, 30))
    assert quarter_range(2024, 4).end == date(2024, 12, 31)
    with pytest.raises(ValueError):
        quarter_range(2024, 5)


def test_year_range():
    assert year_range(2025) == DateRange(date(2025, 1, 1), date(2025, 12, 31))
