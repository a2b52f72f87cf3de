"""
Per-entity accumulators for the aggregation engine.

Each accumulator sees every working-set record exactly once via ``add`` and
writes its scalars, breakdowns and rankings into a StatisticsResult in
``finish``. ``add`` returns the record's (volume, value) contribution to the
time series.
"""

from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from fieldops.config import DEFAULT_TOP_N, UNKNOWN_LABEL
from fieldops.models import (
    AnimalHealthActivity,
    CanonicalRecord,
    Farmer,
    OfftakeTransaction,
    PricingConfig,
    RankedItem,
    RequisitionEntry,
    StatisticsResult,
    TrainingSession,
)

TOP_LOCATIONS = 10
TOP_MONTHS = 3


def safe_div(numerator: float, denominator: float) -> float:
    """Division that yields 0 instead of raising or producing NaN."""
    if not denominator:
        return 0.0
    return numerator / denominator


def pct(part: float, whole: float) -> float:
    return safe_div(part * 100.0, whole)


def label_or_unknown(val: Any) -> str:
    text = str(val).strip() if val is not None else ""
    return text or UNKNOWN_LABEL


def rank_top(items: Iterable[RankedItem], n: Optional[int] = None) -> List[RankedItem]:
    """Sort descending by value; ties keep their first-seen order."""
    ranked = sorted(items, key=lambda item: item.value, reverse=True)
    return ranked if n is None else ranked[:n]


def top_by(
    records: Iterable[CanonicalRecord],
    projection: Callable[[CanonicalRecord], float],
    n: int = DEFAULT_TOP_N,
    label: Callable[[CanonicalRecord], str] = lambda r: r.id,
) -> List[RankedItem]:
    """Top ``n`` records by a caller-supplied numeric projection."""
    return rank_top((RankedItem(label=label(r), value=float(projection(r))) for r in records), n)


class Tally:
    """Insertion-ordered label -> amount counter with an explicit Unknown bucket."""

    def __init__(self):
        self.values: Dict[str, float] = {}

    def add(self, label: Any, amount: float = 1) -> None:
        key = label_or_unknown(label)
        self.values[key] = self.values.get(key, 0) + amount

    def __len__(self):
        return len(self.values)

    def ranked(self, n: Optional[int] = None) -> List[RankedItem]:
        return rank_top((RankedItem(label=k, value=v) for k, v in self.values.items()), n)


class Groups:
    """Label -> dict of running sums, for rankings that carry details."""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}

    def row(self, label: Any) -> Dict[str, Any]:
        key = label_or_unknown(label)
        if key not in self.rows:
            self.rows[key] = defaultdict(float)
        return self.rows[key]

    def ranked(self, by: str, n: Optional[int]) -> List[RankedItem]:
        items = (
            RankedItem(label=k, value=row[by], details={d: v for d, v in row.items() if d != by})
            for k, row in self.rows.items()
        )
        return rank_top(items, n)


def _distinct(values: Iterable[Any]) -> int:
    return len({str(v).strip().lower() for v in values if v is not None and str(v).strip()})


# ── Accumulators ─────────────────────────────────────────────────────

class RecordMetrics:
    """Base accumulator: counts records and nothing else."""
    entity = "record"

    def __init__(self, pricing: PricingConfig = PricingConfig(), top_n: int = DEFAULT_TOP_N):
        self.pricing = pricing
        self.top_n = top_n
        self.count = 0

    def add(self, record: CanonicalRecord) -> Tuple[float, float]:
        self.count += 1
        return 1, 0.0

    def finish(self, result: StatisticsResult) -> None:
        result.totals["records"] = self.count


class OfftakeMetrics(RecordMetrics):
    """Sales figures: acquisition cost, weight-based revenue and net result."""
    entity = "offtake"

    def __init__(self, pricing=PricingConfig(), top_n=DEFAULT_TOP_N):
        super().__init__(pricing, top_n)
        self.sums = defaultdict(float)
        self.gender = Tally()
        self.county = Tally()
        self.location = Tally()
        self.farmers = Groups()
        self.months = Groups()
        self.farmer_ids = []

    def add(self, r: OfftakeTransaction) -> Tuple[float, float]:
        self.count += 1
        s = self.sums
        animals = r.animal_count
        carcass = r.carcass_weight
        revenue = carcass * self.pricing.unit_price

        s["purchase_cost"] += r.total_price
        s["revenue"] += revenue
        s["goats"] += r.total_goats
        s["sheep"] += len(r.sheep)
        s["cattle"] += len(r.cattle)
        s["animals"] += animals
        s["live_weight"] += sum(a.live_weight for a in r.animals)
        s["carcass_weight"] += carcass

        self.gender.add(r.gender)
        self.county.add(r.county, r.total_goats)
        self.location.add(r.location, animals)
        self.farmer_ids.append(r.id_number or r.farmer_name)

        farmer = self.farmers.row(r.farmer_name)
        farmer["revenue"] += revenue
        farmer["animals"] += animals
        if r.county:
            farmer["county"] = r.county

        if r.recorded_at is not None:
            month = self.months.row(r.recorded_at.strftime("%b %Y"))
            month["revenue"] += revenue
            month["volume"] += animals
        return animals, revenue

    def finish(self, result: StatisticsResult) -> None:
        s = self.sums
        net = s["revenue"] - s["purchase_cost"] - self.pricing.expenses
        result.totals.update({
            "transactions": self.count,
            "purchase_cost": s["purchase_cost"],
            "revenue": s["revenue"],
            "expenses": self.pricing.expenses,
            "net_result": net,
            "animals": s["animals"],
            "goats": s["goats"],
            "sheep": s["sheep"],
            "cattle": s["cattle"],
            "live_weight": s["live_weight"],
            "carcass_weight": s["carcass_weight"],
        })
        result.rates.update({
            "unit_price": self.pricing.unit_price,
            "cost_per_goat": safe_div(s["purchase_cost"], s["goats"]),
            "avg_live_weight": safe_div(s["live_weight"], s["animals"]),
            "avg_carcass_weight": safe_div(s["carcass_weight"], s["animals"]),
            "avg_cost_per_kg_carcass": safe_div(s["purchase_cost"], s["carcass_weight"]),
            "goats_pct": pct(s["goats"], s["animals"]),
            "sheep_pct": pct(s["sheep"], s["animals"]),
            "cattle_pct": pct(s["cattle"], s["animals"]),
        })
        result.unique_counts.update({
            "farmers": _distinct(self.farmer_ids),
            "counties": len([k for k in self.county.values if k != UNKNOWN_LABEL]),
            "locations": len([k for k in self.location.values if k != UNKNOWN_LABEL]),
        })
        result.breakdowns.update({
            "gender": self.gender.ranked(),
            "county": self.county.ranked(),
            "location": self.location.ranked(),
        })
        result.rankings.update({
            "top_farmers": self.farmers.ranked("revenue", self.top_n),
            "top_locations": self.location.ranked(TOP_LOCATIONS),
            "top_months": self.months.ranked("revenue", TOP_MONTHS),
        })


class FarmerMetrics(RecordMetrics):
    entity = "farmer"

    def __init__(self, pricing=PricingConfig(), top_n=DEFAULT_TOP_N):
        super().__init__(pricing, top_n)
        self.sums = defaultdict(float)
        self.gender = Tally()
        self.county = Tally()
        self.subcounty = Tally()
        self.officers = Tally()
        self.farmers = Groups()
        self.locations = []
        self.groups = []

    def add(self, r: Farmer) -> Tuple[float, float]:
        self.count += 1
        s = self.sums
        s["female"] += r.gender == "Female"
        s["male"] += r.gender == "Male"
        s["goats"] += r.goats
        s["male_goats"] += r.male_goats
        s["female_goats"] += r.female_goats
        s["sheep"] += r.sheep
        s["cattle"] += r.cattle
        s["herd"] += r.herd_size
        s["acres"] += r.acres
        s["vaccinated"] += r.vaccinated
        s["dewormed"] += r.dewormed
        s["traceability"] += r.traceability
        s["bucks_served"] += r.bucks_served
        s["male_breeds"] += r.male_breeds
        s["female_breeds"] += r.female_breeds

        self.gender.add(r.gender)
        self.county.add(r.county)
        self.subcounty.add(r.subcounty)
        self.officers.add(r.username)
        self.locations.append(r.location)
        self.groups.append(r.aggregation_group)

        row = self.farmers.row(r.name)
        row["herd"] += r.herd_size
        row["goats"] += r.goats
        row["sheep"] += r.sheep
        row["cattle"] += r.cattle
        return 1, r.goats

    def finish(self, result: StatisticsResult) -> None:
        s = self.sums
        n = self.count
        result.totals.update({"farmers": n, **{k: s[k] for k in (
            "male", "female", "goats", "male_goats", "female_goats", "sheep", "cattle",
            "herd", "acres", "vaccinated", "dewormed", "traceability",
            "bucks_served", "male_breeds", "female_breeds",
        )}})
        result.rates.update({
            "female_pct": pct(s["female"], n),
            "vaccinated_pct": pct(s["vaccinated"], n),
            "dewormed_pct": pct(s["dewormed"], n),
            "traceability_pct": pct(s["traceability"], n),
            "avg_herd_size": safe_div(s["herd"], n),
            "avg_goats": safe_div(s["goats"], n),
            "avg_acres": safe_div(s["acres"], n),
        })
        result.unique_counts.update({
            "counties": len([k for k in self.county.values if k != UNKNOWN_LABEL]),
            "subcounties": len([k for k in self.subcounty.values if k != UNKNOWN_LABEL]),
            "locations": _distinct(self.locations),
            "aggregation_groups": _distinct(self.groups),
        })
        result.breakdowns.update({
            "gender": self.gender.ranked(),
            "county": self.county.ranked(),
            "subcounty": self.subcounty.ranked(),
        })
        result.rankings.update({
            "top_farmers": self.farmers.ranked("herd", self.top_n),
            "top_officers": self.officers.ranked(self.top_n),
        })


class TrainingMetrics(RecordMetrics):
    entity = "training"

    def __init__(self, pricing=PricingConfig(), top_n=DEFAULT_TOP_N):
        super().__init__(pricing, top_n)
        self.sums = defaultdict(float)
        self.topic = Tally()
        self.county = Tally()
        self.officers = Tally()

    def add(self, r: TrainingSession) -> Tuple[float, float]:
        self.count += 1
        self.sums["participants"] += r.total_farmers
        self.sums["male"] += r.male_farmers
        self.sums["female"] += r.female_farmers
        self.topic.add(r.topic)
        self.county.add(r.county, r.total_farmers)
        self.officers.add(r.field_officer or r.username)
        return 1, r.total_farmers

    def finish(self, result: StatisticsResult) -> None:
        s = self.sums
        result.totals.update({
            "sessions": self.count,
            "participants": s["participants"],
            "male": s["male"],
            "female": s["female"],
        })
        result.rates.update({
            "avg_participants": safe_div(s["participants"], self.count),
            "female_pct": pct(s["female"], s["male"] + s["female"]),
        })
        result.unique_counts.update({
            "topics": len([k for k in self.topic.values if k != UNKNOWN_LABEL]),
            "counties": len([k for k in self.county.values if k != UNKNOWN_LABEL]),
            "officers": len([k for k in self.officers.values if k != UNKNOWN_LABEL]),
        })
        result.breakdowns.update({
            "topic": self.topic.ranked(),
            "county": self.county.ranked(),
        })
        result.rankings["top_officers"] = self.officers.ranked(self.top_n)


class RequisitionMetrics(RecordMetrics):
    entity = "requisition"

    def __init__(self, pricing=PricingConfig(), top_n=DEFAULT_TOP_N):
        super().__init__(pricing, top_n)
        self.sums = defaultdict(float)
        self.type = Tally()
        self.status = Tally()
        self.county = Tally()
        self.officers = Groups()

    def add(self, r: RequisitionEntry) -> Tuple[float, float]:
        self.count += 1
        status = r.status.lower()
        self.sums["amount"] += r.amount
        self.sums["fuel_amount"] += r.fuel_amount
        self.sums["distance"] += r.distance_traveled
        self.sums[status] += 1
        self.type.add(r.type)
        self.status.add(status)
        self.county.add(r.county, r.amount)
        officer = self.officers.row(r.officer)
        officer["amount"] += r.amount
        officer["requests"] += 1
        return 1, r.amount

    def finish(self, result: StatisticsResult) -> None:
        s = self.sums
        result.totals.update({
            "requests": self.count,
            "amount": s["amount"],
            "fuel_amount": s["fuel_amount"],
            "distance": s["distance"],
            "approved": s["approved"],
            "pending": s["pending"],
            "rejected": s["rejected"],
        })
        result.rates.update({
            "approval_pct": pct(s["approved"], self.count),
            "avg_amount": safe_div(s["amount"], self.count),
        })
        result.unique_counts.update({
            "officers": len([k for k in self.officers.rows if k != UNKNOWN_LABEL]),
            "counties": len([k for k in self.county.values if k != UNKNOWN_LABEL]),
        })
        result.breakdowns.update({
            "type": self.type.ranked(),
            "status": self.status.ranked(),
            "county": self.county.ranked(),
        })
        result.rankings["top_officers"] = self.officers.ranked("amount", self.top_n)


class AnimalHealthMetrics(RecordMetrics):
    entity = "animal_health"

    def __init__(self, pricing=PricingConfig(), top_n=DEFAULT_TOP_N):
        super().__init__(pricing, top_n)
        self.sums = defaultdict(float)
        self.vaccine = Tally()
        self.county = Tally()
        self.officers = Tally()

    def add(self, r: AnimalHealthActivity) -> Tuple[float, float]:
        self.count += 1
        doses = r.total_doses
        self.sums["male"] += r.male_beneficiaries
        self.sums["female"] += r.female_beneficiaries
        self.sums["doses"] += doses
        self.sums["issues"] += len(r.issues)
        for v in r.vaccines:
            self.vaccine.add(v.type, v.doses)
        self.county.add(r.county)
        for officer in r.field_officers or [r.created_by]:
            self.officers.add(officer)
        return 1, doses

    def finish(self, result: StatisticsResult) -> None:
        s = self.sums
        beneficiaries = s["male"] + s["female"]
        result.totals.update({
            "activities": self.count,
            "male_beneficiaries": s["male"],
            "female_beneficiaries": s["female"],
            "beneficiaries": beneficiaries,
            "doses": s["doses"],
            "issues": s["issues"],
        })
        result.rates.update({
            "female_pct": pct(s["female"], beneficiaries),
            "avg_doses": safe_div(s["doses"], self.count),
        })
        result.unique_counts.update({
            "vaccine_types": len([k for k in self.vaccine.values if k != UNKNOWN_LABEL]),
            "counties": len([k for k in self.county.values if k != UNKNOWN_LABEL]),
            "officers": len([k for k in self.officers.values if k != UNKNOWN_LABEL]),
        })
        result.breakdowns.update({
            "vaccine": self.vaccine.ranked(),
            "county": self.county.ranked(),
        })
        result.rankings["top_officers"] = self.officers.ranked(self.top_n)


METRICS: Dict[str, Type[RecordMetrics]] = {
    m.entity: m
    for m in (OfftakeMetrics, FarmerMetrics, TrainingMetrics, RequisitionMetrics, AnimalHealthMetrics)
}

RECORD_ENTITIES = {
    Farmer: "farmer",
    TrainingSession: "training",
    OfftakeTransaction: "offtake",
    RequisitionEntry: "requisition",
    AnimalHealthActivity: "animal_health",
}


def entity_of(records: List[CanonicalRecord]) -> str:
    if not records:
        return RecordMetrics.entity
    return RECORD_ENTITIES.get(type(records[0]), RecordMetrics.entity)
