"""
Record normalisation: map raw, shape-varying store records onto the
canonical dataclasses.

Each entity declares, per canonical field, an ordered tuple of accepted
source keys. Years of form revisions left the same value under several
spellings (``county`` / ``Region`` / ``region``); the first alias holding a
non-empty value wins. Malformed values degrade to defaults, never errors.
"""

import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from fieldops.config import COLLECTION_ENTITIES
from fieldops.dates import now_local, parse_timestamp
from fieldops.models import (
    AnimalEntry,
    AnimalHealthActivity,
    CanonicalRecord,
    Farmer,
    OfftakeTransaction,
    PerdiemItem,
    RequisitionEntry,
    TrainingSession,
    Vaccine,
)

# ── Field aliases ────────────────────────────────────────────────────

PROGRAMME_ALIASES = ("programme", "Programme", "program")
COUNTY_ALIASES = ("county", "County", "Region", "region")
SUBCOUNTY_ALIASES = ("subcounty", "subCounty", "Subcounty", "SubCounty")
GENDER_ALIASES = ("gender", "Gender")
PHONE_ALIASES = ("phone", "Phone", "phoneNumber", "mobile", "telephone")

FARMER_ALIASES: Dict[str, Sequence[str]] = {
    "timestamp": ("createdAt", "registrationDate", "rawTimestamp", "date"),
    "farmer_id": ("farmerId", "farmerID"),
    "name": ("name", "Name", "farmerName"),
    "id_number": ("idNumber", "IdNumber", "nationalId"),
    "location": ("location", "Location", "subcounty"),
    "goats": ("goats", "Goats"),
    "sheep": ("sheep", "Sheep"),
    "cattle": ("cattle", "Cattle"),
    "acres": (
        "acres", "totalAcres", "totalAcresPasture", "landSize",
        "land_under_pasture", "landUnderPasture",
    ),
    "aggregation_group": ("aggregationGroup",),
    "bucks_served": ("bucksServed",),
    "male_breeds": ("maleBreeds",),
    "female_breeds": ("femaleBreeds",),
    "username": ("username", "createdBy"),
}

TRAINING_ALIASES: Dict[str, Sequence[str]] = {
    "timestamp": ("startDate", "createdAt", "rawTimestamp", "date"),
    "topic": ("topicTrained", "Modules", "topic", "module"),
    "location": ("location", "Location", "subcounty"),
    "total_farmers": ("totalFarmers", "numberOfFarmers", "participants"),
    "male_farmers": ("maleFarmers", "malefarmers"),
    "female_farmers": ("femaleFarmers", "femalefarmers"),
    "field_officer": ("fieldOfficer", "username"),
    "username": ("username",),
}

OFFTAKE_ALIASES: Dict[str, Sequence[str]] = {
    "timestamp": ("date", "createdAt", "offtakeDate"),
    "farmer_name": ("name", "farmerName", "Name"),
    "id_number": ("idNumber", "IdNumber"),
    "location": ("location", "Location"),
    "total_goats": ("totalGoats",),
    "total_price": ("totalPrice", "total"),
    "username": ("username",),
}

ANIMAL_ALIASES: Dict[str, Sequence[str]] = {
    "live_weight": ("live", "liveWeight"),
    "carcass_weight": ("carcass", "carcassWeight"),
    "price": ("price",),
}

REQUISITION_ALIASES: Dict[str, Sequence[str]] = {
    "timestamp": ("submittedAt", "createdAt", "date"),
    "type": ("type", "requisitionType"),
    "status": ("status",),
    "officer": ("name", "userName", "username", "email"),
    "location": ("location", "tripTo"),
    "amount": ("total", "totalAmount", "fuelAmount", "amount"),
    "fuel_amount": ("fuelAmount",),
    "distance_traveled": ("distanceTraveled",),
    "number_of_days": ("numberOfDays",),
    "purpose": ("tripPurpose", "fuelPurpose", "purpose"),
    "approved_by": ("approvedBy", "authorizedBy"),
}

HEALTH_ALIASES: Dict[str, Sequence[str]] = {
    "timestamp": ("date", "createdAt"),
    "location": ("location",),
    "male_beneficiaries": ("malebeneficiaries", "maleneneficiaries", "maleBeneficiaries"),
    "female_beneficiaries": ("femalebeneficiaries", "femaleBeneficiaries"),
    "comment": ("comment",),
    "created_by": ("createdBy",),
    "status": ("status",),
}


# ── Coercion helpers ─────────────────────────────────────────────────

def _is_blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def first_present(raw: Dict[str, Any], aliases: Iterable[str]) -> Any:
    """Value of the first alias present with a non-empty value, else None."""
    for key in aliases:
        val = raw.get(key)
        if not _is_blank(val):
            return val
    return None


def to_number(val: Any) -> float:
    """Coerce to a finite float; anything non-numeric becomes 0."""
    if val is None or isinstance(val, bool):
        return 0.0
    if isinstance(val, str):
        val = val.replace(",", "").strip()
        if not val:
            return 0.0
    try:
        num = float(val)
    except (ValueError, TypeError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def to_count(val: Any) -> int:
    return int(to_number(val))


def to_flag(val: Any) -> bool:
    if isinstance(val, str):
        return val.strip().lower() in {"yes", "true", "1"}
    return bool(val)


def to_list(val: Any) -> List[Any]:
    """Lists pass through; index-keyed maps (sparse store arrays) become lists."""
    if isinstance(val, list):
        return [v for v in val if v is not None]
    if isinstance(val, dict):
        return [v for v in val.values() if v is not None]
    return []


def normalize_gender(val: Any) -> str:
    """Anything starting with "f" is Female; everything else is Male."""
    if isinstance(val, str) and val.strip().lower().startswith("f"):
        return "Female"
    return "Male"


def _text(raw: Dict[str, Any], aliases: Iterable[str], default: str = "") -> str:
    val = first_present(raw, aliases)
    return default if val is None else str(val).strip()


def _number(raw: Dict[str, Any], aliases: Iterable[str]) -> float:
    return to_number(first_present(raw, aliases))


def _count(raw: Dict[str, Any], aliases: Iterable[str]) -> int:
    return to_count(first_present(raw, aliases))


def _string_list(val: Any) -> List[str]:
    out = []
    for item in to_list(val):
        if isinstance(item, dict):
            item = first_present(item, ("name", "issue", "description"))
        if not _is_blank(item) and not isinstance(item, (dict, list)):
            out.append(str(item).strip())
    return out


def _base_fields(
    raw: Dict[str, Any],
    record_id: str,
    timestamp_aliases: Sequence[str],
    default_programme: Optional[str],
) -> Dict[str, Any]:
    recorded_at = None
    for key in timestamp_aliases:
        recorded_at = parse_timestamp(raw.get(key))
        if recorded_at is not None:
            break
    return {
        "id": str(record_id),
        "programme": _text(raw, PROGRAMME_ALIASES, default_programme or ""),
        "timestamp": recorded_at or now_local(),
        "recorded_at": recorded_at,
    }


# ── Entity normalisers ───────────────────────────────────────────────

def normalize_farmer(raw, record_id, default_programme=None) -> Farmer:
    a = FARMER_ALIASES
    goats_raw = first_present(raw, a["goats"])
    male_goats = female_goats = 0
    if isinstance(goats_raw, dict):
        male_goats = to_count(goats_raw.get("male"))
        female_goats = to_count(goats_raw.get("female"))
        total = goats_raw.get("total")
        goats = to_count(total) if not _is_blank(total) else male_goats + female_goats
    else:
        goats = to_count(goats_raw)

    return Farmer(
        **_base_fields(raw, record_id, a["timestamp"], default_programme),
        farmer_id=_text(raw, a["farmer_id"], "N/A"),
        name=_text(raw, a["name"]),
        gender=normalize_gender(first_present(raw, GENDER_ALIASES)),
        id_number=_text(raw, a["id_number"]),
        phone=_text(raw, PHONE_ALIASES),
        county=_text(raw, COUNTY_ALIASES),
        subcounty=_text(raw, SUBCOUNTY_ALIASES),
        location=_text(raw, a["location"]),
        goats=goats,
        male_goats=male_goats,
        female_goats=female_goats,
        sheep=_count(raw, a["sheep"]),
        cattle=_count(raw, a["cattle"]),
        acres=_number(raw, a["acres"]),
        vaccinated=to_flag(raw.get("vaccinated")),
        dewormed=to_flag(raw.get("dewormed")),
        traceability=to_flag(raw.get("traceability")),
        vaccines=_string_list(raw.get("vaccines")),
        aggregation_group=_text(raw, a["aggregation_group"]),
        bucks_served=_count(raw, a["bucks_served"]),
        male_breeds=_count(raw, a["male_breeds"]),
        female_breeds=_count(raw, a["female_breeds"]),
        username=_text(raw, a["username"], "Unknown"),
    )


def normalize_training(raw, record_id, default_programme=None) -> TrainingSession:
    a = TRAINING_ALIASES
    return TrainingSession(
        **_base_fields(raw, record_id, a["timestamp"], default_programme),
        topic=_text(raw, a["topic"]),
        county=_text(raw, COUNTY_ALIASES),
        subcounty=_text(raw, SUBCOUNTY_ALIASES),
        location=_text(raw, a["location"]),
        total_farmers=_count(raw, a["total_farmers"]),
        male_farmers=_count(raw, a["male_farmers"]),
        female_farmers=_count(raw, a["female_farmers"]),
        field_officer=_text(raw, a["field_officer"]),
        start_date=_text(raw, ("startDate",)),
        end_date=_text(raw, ("endDate",)),
        username=_text(raw, a["username"], "Unknown"),
    )


def _animal_entries(val: Any) -> List[AnimalEntry]:
    entries = []
    for item in to_list(val):
        if not isinstance(item, dict):
            continue
        entries.append(AnimalEntry(
            live_weight=_number(item, ANIMAL_ALIASES["live_weight"]),
            carcass_weight=_number(item, ANIMAL_ALIASES["carcass_weight"]),
            price=_number(item, ANIMAL_ALIASES["price"]),
        ))
    return entries


def normalize_offtake(raw, record_id, default_programme=None) -> OfftakeTransaction:
    a = OFFTAKE_ALIASES
    goats = _animal_entries(raw.get("goats"))
    return OfftakeTransaction(
        **_base_fields(raw, record_id, a["timestamp"], default_programme),
        farmer_name=_text(raw, a["farmer_name"]),
        gender=normalize_gender(first_present(raw, GENDER_ALIASES)),
        id_number=_text(raw, a["id_number"]),
        phone=_text(raw, PHONE_ALIASES),
        county=_text(raw, COUNTY_ALIASES),
        location=_text(raw, a["location"]),
        goats=goats,
        sheep=_animal_entries(raw.get("sheep")),
        cattle=_animal_entries(raw.get("cattle")),
        total_goats=_count(raw, a["total_goats"]) or len(goats),
        total_price=_number(raw, a["total_price"]),
        username=_text(raw, a["username"]),
    )


def normalize_requisition(raw, record_id, default_programme=None) -> RequisitionEntry:
    a = REQUISITION_ALIASES
    items = [
        PerdiemItem(name=_text(item, ("name",)), price=_number(item, ("price", "amount")))
        for item in to_list(raw.get("items"))
        if isinstance(item, dict)
    ]
    amount = _number(raw, a["amount"]) or sum(i.price for i in items)
    return RequisitionEntry(
        **_base_fields(raw, record_id, a["timestamp"], default_programme),
        type=_text(raw, a["type"]),
        status=_text(raw, a["status"], "pending").lower(),
        officer=_text(raw, a["officer"], "Unknown"),
        county=_text(raw, COUNTY_ALIASES),
        subcounty=_text(raw, SUBCOUNTY_ALIASES),
        location=_text(raw, a["location"]),
        amount=amount,
        fuel_amount=_number(raw, a["fuel_amount"]),
        items=items,
        distance_traveled=_number(raw, a["distance_traveled"]),
        number_of_days=_count(raw, a["number_of_days"]),
        purpose=_text(raw, a["purpose"]),
        approved_by=_text(raw, a["approved_by"]),
    )


def _vaccines(raw: Dict[str, Any]) -> List[Vaccine]:
    listed = to_list(raw.get("vaccines"))
    if listed:
        vaccines = []
        for item in listed:
            if not isinstance(item, dict):
                continue
            v = Vaccine(type=_text(item, ("type",), "Unknown"), doses=_count(item, ("doses",)))
            if v.doses > 0:
                vaccines.append(v)
        return vaccines
    legacy_type = first_present(raw, ("vaccinetype", "vaccineType"))
    if legacy_type is not None:
        return [Vaccine(type=str(legacy_type).strip(), doses=_count(raw, ("number_doses", "numberDoses")))]
    return []


def normalize_animal_health(raw, record_id, default_programme=None) -> AnimalHealthActivity:
    a = HEALTH_ALIASES
    return AnimalHealthActivity(
        **_base_fields(raw, record_id, a["timestamp"], default_programme),
        county=_text(raw, COUNTY_ALIASES),
        subcounty=_text(raw, SUBCOUNTY_ALIASES),
        location=_text(raw, a["location"]),
        male_beneficiaries=_count(raw, a["male_beneficiaries"]),
        female_beneficiaries=_count(raw, a["female_beneficiaries"]),
        vaccines=_vaccines(raw),
        field_officers=_string_list(raw.get("fieldofficers") or raw.get("fieldOfficers")),
        issues=_string_list(raw.get("issues")),
        comment=_text(raw, a["comment"]),
        created_by=_text(raw, a["created_by"], "unknown"),
        status=_text(raw, a["status"], "completed"),
    )


NORMALIZERS: Dict[str, Callable[..., CanonicalRecord]] = {
    "farmer": normalize_farmer,
    "training": normalize_training,
    "offtake": normalize_offtake,
    "requisition": normalize_requisition,
    "animal_health": normalize_animal_health,
}


def entity_for_collection(collection: str) -> str:
    """Entity type stored under a collection path."""
    try:
        return COLLECTION_ENTITIES[collection]
    except KeyError:
        raise ValueError(f"Unknown collection '{collection}'.") from None


def normalize(
    entity_type: str,
    raw: Any,
    record_id: str,
    default_programme: Optional[str] = None,
) -> CanonicalRecord:
    """Normalise one raw record. Pure; malformed fields fall back to defaults."""
    try:
        normalizer = NORMALIZERS[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type '{entity_type}'.") from None
    if not isinstance(raw, dict):
        raw = {}
    return normalizer(raw, record_id, default_programme)
