"""
Domain dataclasses used across the application.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Optional

import pandas as pd


# ── Access ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ActorProfile:
    """The signed-in actor's stored profile."""
    user_id: str
    role: Optional[str]
    programme_flags: Dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class AccessScope:
    """Which programmes an actor may read: everything, or an explicit set."""
    unrestricted: bool = False
    programmes: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.unrestricted and not self.programmes

    def allows(self, programme: Optional[str]) -> bool:
        return self.unrestricted or programme in self.programmes

    def key(self) -> str:
        """Stable serialisation used in cache keys."""
        if self.unrestricted:
            return "*"
        return ",".join(sorted(self.programmes))


UNRESTRICTED = AccessScope(unrestricted=True)
NO_ACCESS = AccessScope()


# ── Canonical records ────────────────────────────────────────────────

@dataclass
class CanonicalRecord:
    """Fields shared by every normalised entity."""
    id: str
    programme: str
    timestamp: datetime                 # never None; "now" when the stored date is unusable
    recorded_at: Optional[datetime]     # parsed stored date, None when unparsable


@dataclass
class AnimalEntry:
    live_weight: float = 0.0
    carcass_weight: float = 0.0
    price: float = 0.0


@dataclass
class Farmer(CanonicalRecord):
    farmer_id: str = ""
    name: str = ""
    gender: str = "Male"
    id_number: str = ""
    phone: str = ""
    county: str = ""
    subcounty: str = ""
    location: str = ""
    goats: int = 0
    male_goats: int = 0
    female_goats: int = 0
    sheep: int = 0
    cattle: int = 0
    acres: float = 0.0
    vaccinated: bool = False
    dewormed: bool = False
    traceability: bool = False
    vaccines: List[str] = field(default_factory=list)
    aggregation_group: str = ""
    bucks_served: int = 0
    male_breeds: int = 0
    female_breeds: int = 0
    username: str = ""

    @property
    def herd_size(self) -> int:
        return self.goats + self.sheep + self.cattle


@dataclass
class TrainingSession(CanonicalRecord):
    topic: str = ""
    county: str = ""
    subcounty: str = ""
    location: str = ""
    total_farmers: int = 0
    male_farmers: int = 0
    female_farmers: int = 0
    field_officer: str = ""
    start_date: str = ""
    end_date: str = ""
    username: str = ""


@dataclass
class OfftakeTransaction(CanonicalRecord):
    farmer_name: str = ""
    gender: str = "Male"
    id_number: str = ""
    phone: str = ""
    county: str = ""
    location: str = ""
    goats: List[AnimalEntry] = field(default_factory=list)
    sheep: List[AnimalEntry] = field(default_factory=list)
    cattle: List[AnimalEntry] = field(default_factory=list)
    total_goats: int = 0
    total_price: float = 0.0
    username: str = ""

    @property
    def animals(self) -> List[AnimalEntry]:
        return self.goats + self.sheep + self.cattle

    @property
    def animal_count(self) -> int:
        return self.total_goats + len(self.sheep) + len(self.cattle)

    @property
    def carcass_weight(self) -> float:
        return sum(a.carcass_weight for a in self.animals)


@dataclass
class PerdiemItem:
    name: str = ""
    price: float = 0.0


@dataclass
class RequisitionEntry(CanonicalRecord):
    type: str = ""
    status: str = "pending"
    officer: str = "Unknown"
    county: str = ""
    subcounty: str = ""
    location: str = ""
    amount: float = 0.0
    fuel_amount: float = 0.0
    items: List[PerdiemItem] = field(default_factory=list)
    distance_traveled: float = 0.0
    number_of_days: int = 0
    purpose: str = ""
    approved_by: str = ""


@dataclass
class Vaccine:
    type: str = "Unknown"
    doses: int = 0


@dataclass
class AnimalHealthActivity(CanonicalRecord):
    county: str = ""
    subcounty: str = ""
    location: str = ""
    male_beneficiaries: int = 0
    female_beneficiaries: int = 0
    vaccines: List[Vaccine] = field(default_factory=list)
    field_officers: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    comment: str = ""
    created_by: str = "unknown"
    status: str = "completed"

    @property
    def total_doses(self) -> int:
        return sum(v.doses for v in self.vaccines)


def record_to_dict(record: CanonicalRecord) -> Dict[str, Any]:
    """JSON-friendly dict for a canonical record (datetimes as ISO strings)."""
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, (datetime, date)):
            data[key] = value.isoformat()
    return data


# ── Query inputs ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date bounds; a missing bound is unbounded."""
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class Filters:
    """Extra filters applied before the date range."""
    search: str = ""
    equals: Dict[str, str] = field(default_factory=dict)   # canonical field -> exact value


@dataclass(frozen=True)
class PricingConfig:
    """Externally configured sales inputs, never stored per record."""
    unit_price: float = 0.0     # price per kg of carcass weight
    expenses: float = 0.0       # operating expenses for the period


# ── Results ──────────────────────────────────────────────────────────

@dataclass
class FetchResult:
    """Outcome of a scoped read; failures are carried, never raised."""
    records: List[CanonicalRecord] = field(default_factory=list)
    incomplete: bool = False
    error: Optional[str] = None
    failed_programmes: List[str] = field(default_factory=list)


@dataclass
class CollectionState:
    """What a subscriber sees for one collection."""
    records: List[CanonicalRecord] = field(default_factory=list)
    is_stale: bool = True
    error: Optional[str] = None
    incomplete: bool = False


@dataclass
class SeriesPoint:
    label: str
    volume: float = 0
    value: float = 0.0


@dataclass
class RankedItem:
    label: str
    value: float
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatisticsResult:
    """Derived statistics for one filtered working set."""
    entity: str
    record_count: int = 0
    totals: Dict[str, float] = field(default_factory=dict)
    rates: Dict[str, float] = field(default_factory=dict)
    unique_counts: Dict[str, int] = field(default_factory=dict)
    breakdowns: Dict[str, List[RankedItem]] = field(default_factory=dict)
    bucket: str = "month"
    series: List[SeriesPoint] = field(default_factory=list)
    rankings: Dict[str, List[RankedItem]] = field(default_factory=dict)
    working_set: List[CanonicalRecord] = field(default_factory=list)

    def series_frame(self):
        """Chart-ready DataFrame with one row per time bucket."""
        return pd.DataFrame(
            [{"label": p.label, "volume": p.volume, "value": p.value} for p in self.series],
            columns=["label", "volume", "value"],
        )

    def to_dict(self, include_records: bool = False) -> Dict[str, Any]:
        data = {
            "entity": self.entity,
            "record_count": self.record_count,
            "totals": self.totals,
            "rates": self.rates,
            "unique_counts": self.unique_counts,
            "breakdowns": {k: [asdict(i) for i in v] for k, v in self.breakdowns.items()},
            "bucket": self.bucket,
            "series": [asdict(p) for p in self.series],
            "rankings": {k: [asdict(i) for i in v] for k, v in self.rankings.items()},
        }
        if include_records:
            data["records"] = [record_to_dict(r) for r in self.working_set]
        return data
