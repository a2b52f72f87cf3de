"""
Aggregation engine – filtering, time-bucketed series, breakdowns and rankings.

``compute_statistics`` is a pure function of (records, date range, filters,
pricing): filter, then one pass over the working set feeding the entity's
accumulator and the series buckets together.
"""

import calendar
import json
import math
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd

from fieldops.config import DEFAULT_TOP_N, YEAR_SERIES_SPAN
from fieldops.dates import in_range, now_local
from fieldops.metrics import METRICS, RecordMetrics, Tally, entity_of, top_by
from fieldops.models import (
    CanonicalRecord,
    DateRange,
    Filters,
    PricingConfig,
    RankedItem,
    SeriesPoint,
    StatisticsResult,
    record_to_dict,
)

SERIES_BUCKETS = ("week", "month", "quarter", "year")


# ── Filtering ────────────────────────────────────────────────────────

def _text_values(record: CanonicalRecord) -> Iterable[str]:
    for value in vars(record).values():
        if isinstance(value, str):
            yield value
        elif isinstance(value, list):
            yield from (v for v in value if isinstance(v, str))


def matches_search(record: CanonicalRecord, search: str) -> bool:
    """Case-insensitive substring match over the record's text fields."""
    needle = search.strip().lower()
    if not needle:
        return True
    return any(needle in value.lower() for value in _text_values(record))


def matches_equals(record: CanonicalRecord, equals: Dict[str, str]) -> bool:
    for field_name, expected in equals.items():
        if not hasattr(record, field_name):
            return False
        if str(getattr(record, field_name)) != str(expected):
            return False
    return True


def apply_filters(
    records: Iterable[CanonicalRecord],
    date_range: Optional[DateRange] = None,
    filters: Optional[Filters] = None,
) -> List[CanonicalRecord]:
    """Category equality, then free-text search, then the inclusive date range."""
    date_range = date_range or DateRange()
    filters = filters or Filters()
    out = []
    for r in records:
        if filters.equals and not matches_equals(r, filters.equals):
            continue
        if filters.search and not matches_search(r, filters.search):
            continue
        if not in_range(r.recorded_at, date_range.start, date_range.end):
            continue
        out.append(r)
    return out


# ── Time series ──────────────────────────────────────────────────────

def series_labels(bucket: str, anchor_year: int) -> List[str]:
    """Fixed, chronological bucket labels for a series."""
    if bucket == "week":
        return [f"Week {i}" for i in range(1, 6)]
    if bucket == "month":
        return list(calendar.month_abbr)[1:]
    if bucket == "quarter":
        return ["Q1", "Q2", "Q3", "Q4"]
    if bucket == "year":
        return [str(y) for y in range(anchor_year - YEAR_SERIES_SPAN + 1, anchor_year + 1)]
    raise ValueError(f"Unknown series bucket '{bucket}' (expected one of {', '.join(SERIES_BUCKETS)}).")


def bucket_index(bucket: str, when, anchor_year: int) -> Optional[int]:
    """Position of a datetime in the series, or None when it falls outside."""
    if when is None:
        return None
    if bucket == "week":
        return math.ceil(when.day / 7) - 1
    if bucket == "month":
        return when.month - 1
    if bucket == "quarter":
        return (when.month - 1) // 3
    offset = when.year - (anchor_year - YEAR_SERIES_SPAN + 1)
    return offset if 0 <= offset < YEAR_SERIES_SPAN else None


def breakdown(
    records: Iterable[CanonicalRecord],
    key: Callable[[CanonicalRecord], str],
    amount: Callable[[CanonicalRecord], float] = lambda r: 1,
) -> List[RankedItem]:
    """Ad hoc categorical breakdown, descending, blanks counted as Unknown."""
    tally = Tally()
    for r in records:
        tally.add(key(r), amount(r))
    return tally.ranked()


# ── Statistics ───────────────────────────────────────────────────────

def compute_statistics(
    records: Iterable[CanonicalRecord],
    date_range: Optional[DateRange] = None,
    filters: Optional[Filters] = None,
    pricing: Optional[PricingConfig] = None,
    *,
    entity: Optional[str] = None,
    bucket: str = "month",
    top_n: int = DEFAULT_TOP_N,
    anchor_year: Optional[int] = None,
    rank_by: Optional[Callable[[CanonicalRecord], float]] = None,
) -> StatisticsResult:
    """Derive statistics for the filtered working set.

    ``entity`` picks the accumulator; when omitted it is inferred from the
    record type. The year series ends at ``anchor_year``, defaulting to the
    year of the range end (or the current year). ``rank_by`` adds a
    ``custom`` ranking of individual records by that projection.

    Data problems never raise. A ``bucket`` outside SERIES_BUCKETS is a
    caller error and raises ValueError before any record is touched.
    """
    date_range = date_range or DateRange()
    pricing = pricing or PricingConfig()
    records = list(records)

    if anchor_year is None:
        anchor_year = date_range.end.year if date_range.end else now_local().year
    labels = series_labels(bucket, anchor_year)

    working_set = apply_filters(records, date_range, filters)
    entity = entity or entity_of(working_set or records)
    metrics = METRICS.get(entity, RecordMetrics)(pricing, top_n)

    volumes = [0.0] * len(labels)
    values = [0.0] * len(labels)
    for r in working_set:
        volume, value = metrics.add(r)
        idx = bucket_index(bucket, r.recorded_at, anchor_year)
        if idx is not None:
            volumes[idx] += volume
            values[idx] += value

    result = StatisticsResult(
        entity=entity,
        record_count=len(working_set),
        bucket=bucket,
        series=[SeriesPoint(label=lbl, volume=vol, value=val) for lbl, vol, val in zip(labels, volumes, values)],
        working_set=working_set,
    )
    metrics.finish(result)
    if rank_by is not None:
        result.rankings["custom"] = top_by(working_set, rank_by, top_n)
    return result


# ── Tabular export ───────────────────────────────────────────────────

def _flatten(value):
    if isinstance(value, list):
        if all(isinstance(v, str) for v in value):
            return "; ".join(value)
        return json.dumps(value)
    return value


def records_frame(records: Iterable[CanonicalRecord]) -> pd.DataFrame:
    """One row per canonical record; list fields flattened for CSV."""
    rows = [{k: _flatten(v) for k, v in record_to_dict(r).items()} for r in records]
    return pd.DataFrame(rows)
