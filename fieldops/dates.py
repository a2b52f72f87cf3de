"""
Timestamp parsing, the inclusive date-range filter, and range presets.

Stored dates come in several shapes: epoch milliseconds (numbers or long numeric
strings), ISO strings, human strings such as "26 Jan 2026", and
``{"seconds": ...}`` maps. Everything is parsed to a naive datetime in the
programme's local timezone so that date-only comparisons do not drift across
midnight.
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd

from fieldops.config import LOCAL_TIMEZONE
from fieldops.models import DateRange

logger = logging.getLogger(__name__)

EPOCH_MS_MIN_DIGITS = 10


def _to_local(ts: pd.Timestamp) -> Optional[datetime]:
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(LOCAL_TIMEZONE).tz_localize(None)
    return ts.to_pydatetime()


def _from_epoch_ms(val: float) -> Optional[datetime]:
    try:
        return _to_local(pd.Timestamp(val, unit="ms", tz="UTC"))
    except (ValueError, OverflowError):
        logger.debug("Epoch value out of range: %s", val)
        return None


def _looks_like_epoch_ms(s: str) -> bool:
    """Numeric strings long enough to be epoch millis; "2024" and "20240315" are dates."""
    whole, _, frac = s.lstrip("-").partition(".")
    return whole.isdigit() and (not frac or frac.isdigit()) and len(whole) >= EPOCH_MS_MIN_DIGITS


def parse_timestamp(val: Any) -> Optional[datetime]:
    """Convert a stored date value to a naive local datetime.

    Returns None for missing or unparseable values; never raises.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, datetime):
        return _to_local(pd.Timestamp(val))
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day)
    if isinstance(val, (int, float)):
        return _from_epoch_ms(val)
    if isinstance(val, dict):
        seconds = val.get("seconds")
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            return _from_epoch_ms(seconds * 1000)
        return None
    if isinstance(val, str):
        s = val.strip()
        if not s:
            return None
        if _looks_like_epoch_ms(s):
            return _from_epoch_ms(float(s))
        try:
            return _to_local(pd.Timestamp(s))
        except (ValueError, TypeError, OverflowError):
            logger.debug("Could not parse date value: %s", val)
            return None
    return None


def now_local() -> datetime:
    return pd.Timestamp.now(tz=LOCAL_TIMEZONE).tz_localize(None).to_pydatetime()


def to_date(val: Any) -> Optional[date]:
    """Calendar date of a bound value (date, datetime or string)."""
    if isinstance(val, date) and not isinstance(val, datetime):
        return val
    parsed = parse_timestamp(val)
    return parsed.date() if parsed else None


def in_range(timestamp: Any, start: Any = None, end: Any = None) -> bool:
    """Inclusive, date-only range check.

    The timestamp is truncated to its calendar date, so anything on the end
    date's day is included. With no bounds every record passes; with a bound,
    an unparseable timestamp is excluded rather than raising.
    """
    start_day = to_date(start) if start is not None else None
    end_day = to_date(end) if end is not None else None
    if start_day is None and end_day is None:
        return True

    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return False

    day = parsed.date()
    if start_day is not None and day < start_day:
        return False
    if end_day is not None and day > end_day:
        return False
    return True


def parse_range(start: Optional[str], end: Optional[str]) -> DateRange:
    """Build a DateRange from query-string values; blanks mean unbounded."""
    return DateRange(
        start=to_date(start) if start else None,
        end=to_date(end) if end else None,
    )


# ── Presets ──────────────────────────────────────────────────────────

def current_week(today: Optional[date] = None) -> DateRange:
    """Sunday-to-Saturday week containing ``today``."""
    today = today or now_local().date()
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    return DateRange(start=start, end=start + timedelta(days=6))


def current_month(today: Optional[date] = None) -> DateRange:
    today = today or now_local().date()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return DateRange(start=today.replace(day=1), end=today.replace(day=last_day))


def quarter_range(year: int, quarter: int) -> DateRange:
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"quarter must be 1-4, got {quarter}")
    first_month = (quarter - 1) * 3 + 1
    last_month = quarter * 3
    last_day = calendar.monthrange(year, last_month)[1]
    return DateRange(start=date(year, first_month, 1), end=date(year, last_month, last_day))


def year_range(year: int) -> DateRange:
    return DateRange(start=date(year, 1, 1), end=date(year, 12, 31))
