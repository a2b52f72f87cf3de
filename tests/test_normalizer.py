"""
Unit tests for record normalisation.
"""

from datetime import datetime

import pytest

from fieldops.models import (
    AnimalHealthActivity,
    Farmer,
    OfftakeTransaction,
    RequisitionEntry,
    TrainingSession,
    Vaccine,
)
from fieldops.normalizer import (
    entity_for_collection,
    first_present,
    normalize,
    normalize_gender,
    to_list,
    to_number,
)


# ── Tests: helpers ───────────────────────────────────────────────────

@pytest.mark.parametrize("val,expected", [
    (5, 5.0),
    ("12", 12.0),
    ("1,200.5", 1200.5),
    (" 7 ", 7.0),
    ("abc", 0.0),
    ("", 0.0),
    (None, 0.0),
    (True, 0.0),
    (float("nan"), 0.0),
    ({"x": 1}, 0.0),
])
def test_to_number(val, expected):
    assert to_number(val) == expected


@pytest.mark.parametrize("val,expected", [
    ("F", "Female"),
    ("female", "Female"),
    (" Female ", "Female"),
    ("m", "Male"),
    ("Male", "Male"),
    ("", "Male"),
    (None, "Male"),
    ("other", "Male"),
])
def test_normalize_gender(val, expected):
    assert normalize_gender(val) == expected


def test_first_present_skips_blank_values():
    raw = {"county": "  ", "Region": "Turkana", "region": "Marsabit"}
    assert first_present(raw, ("county", "County", "Region", "region")) == "Turkana"
    assert first_present(raw, ("nope",)) is None


def test_to_list_accepts_sparse_maps():
    assert to_list({"0": "a", "2": "b"}) == ["a", "b"]
    assert to_list(["a", None, "b"]) == ["a", "b"]
    assert to_list("not a list") == []


def test_entity_for_collection():
    assert entity_for_collection("farmers") == "farmer"
    assert entity_for_collection("AnimalHealthActivities") == "animal_health"
    with pytest.raises(ValueError):
        entity_for_collection("patients")


# ── Tests: common fields ─────────────────────────────────────────────

def test_unknown_entity_type_raises():
    with pytest.raises(ValueError):
        normalize("patient", {}, "x")


def test_non_dict_raw_yields_defaults():
    f = normalize("farmer", None, "f1")
    assert isinstance(f, Farmer)
    assert f.id == "f1"
    assert f.goats == 0
    assert f.vaccines == []
    assert f.gender == "Male"


def test_unparsable_date_falls_back_to_now():
    before = datetime.now().replace(microsecond=0)
    f = normalize("farmer", {"createdAt": "not a date"}, "f1")
    assert f.recorded_at is None
    assert isinstance(f.timestamp, datetime)
    # "now" in the programme timezone, which is never more than a day away
    assert abs((f.timestamp - before).total_seconds()) < 86400


def test_second_date_alias_used_when_first_unparsable():
    f = normalize("farmer", {"createdAt": "garbage", "registrationDate": "2024-03-15"}, "f1")
    assert f.recorded_at == datetime(2024, 3, 15)
    assert f.timestamp == f.recorded_at


def test_default_programme_used_when_missing():
    f = normalize("farmer", {"name": "A"}, "f1", default_programme="KPMD")
    assert f.programme == "KPMD"
    g = normalize("farmer", {"programme": "RANGE"}, "f2", default_programme="KPMD")
    assert g.programme == "RANGE"


# ── Tests: farmers ───────────────────────────────────────────────────

def test_region_alias_maps_to_county():
    f = normalize("farmer", {"Region": "Turkana"}, "f1")
    assert f.county == "Turkana"


def test_county_wins_over_region():
    f = normalize("farmer", {"county": "Isiolo", "Region": "Turkana"}, "f1")
    assert f.county == "Isiolo"


def test_empty_county_falls_through_to_region():
    f = normalize("farmer", {"county": "", "region": "Samburu"}, "f1")
    assert f.county == "Samburu"


def test_goats_as_breakdown_map():
    f = normalize("farmer", {"goats": {"total": 10, "male": 4, "female": 6}}, "f1")
    assert (f.goats, f.male_goats, f.female_goats) == (10, 4, 6)


def test_goats_map_without_total_sums_sexes():
    f = normalize("farmer", {"goats": {"male": "3", "female": 2}}, "f1")
    assert f.goats == 5


def test_goats_plain_count_and_garbage():
    assert normalize("farmer", {"goats": "12"}, "f1").goats == 12
    assert normalize("farmer", {"goats": "lots"}, "f1").goats == 0


@pytest.mark.parametrize("key", [
    "acres", "totalAcres", "totalAcresPasture", "landSize", "land_under_pasture", "landUnderPasture",
])
def test_acre_aliases(key):
    assert normalize("farmer", {key: "2.5"}, "f1").acres == 2.5


def test_location_falls_back_to_subcounty():
    f = normalize("farmer", {"subcounty": "Loima"}, "f1")
    assert f.location == "Loima"
    assert f.subcounty == "Loima"


def test_farmer_flags_and_epoch_date():
    f = normalize("farmer", {
        "vaccinated": "yes", "dewormed": True, "traceability": "no",
        "createdAt": 1710460800000, "sheep": 3, "cattle": "2",
    }, "f1")
    assert f.vaccinated and f.dewormed and not f.traceability
    assert f.recorded_at is not None
    assert f.recorded_at.date().isoformat() == "2024-03-15"
    assert f.herd_size == 5


# ── Tests: training ──────────────────────────────────────────────────

def test_training_aliases():
    t = normalize("training", {
        "Modules": "Pasture management", "region": "Marsabit",
        "totalFarmers": "25", "startDate": "2024-05-02",
    }, "t1")
    assert isinstance(t, TrainingSession)
    assert t.topic == "Pasture management"
    assert t.county == "Marsabit"
    assert t.total_farmers == 25
    assert t.recorded_at == datetime(2024, 5, 2)


def test_training_topic_prefers_topic_trained():
    t = normalize("training", {"topicTrained": "Goat husbandry", "Modules": "Old"}, "t1")
    assert t.topic == "Goat husbandry"


# ── Tests: offtakes ──────────────────────────────────────────────────

def test_offtake_animals_and_bad_entries():
    o = normalize("offtake", {
        "farmerName": "Achieng",
        "goats": [{"live": "30", "carcass": 14, "price": 6000}, {"live": "abc", "carcass": 12}, "junk"],
        "totalPrice": "15,000",
    }, "o1")
    assert isinstance(o, OfftakeTransaction)
    assert len(o.goats) == 2
    assert o.goats[1].live_weight == 0
    assert o.carcass_weight == 26
    assert o.total_goats == 2
    assert o.total_price == 15000
    assert o.sheep == [] and o.cattle == []


def test_offtake_total_goats_prefers_stored_count():
    o = normalize("offtake", {"goats": [{"carcass": 10}], "totalGoats": 4, "sheep": [{"carcass": 9}]}, "o1")
    assert o.total_goats == 4
    assert o.animal_count == 5


# ── Tests: requisitions ──────────────────────────────────────────────

def test_requisition_officer_and_amount_aliases():
    r = normalize("requisition", {"userName": "Otieno", "fuelAmount": "4500", "status": "Approved"}, "r1")
    assert isinstance(r, RequisitionEntry)
    assert r.officer == "Otieno"
    assert r.amount == 4500
    assert r.fuel_amount == 4500
    assert r.status == "approved"


def test_requisition_amount_from_items():
    r = normalize("requisition", {
        "type": "perdiem",
        "items": [{"name": "Lunch", "price": 500}, {"name": "Bed", "price": "1,500"}, "junk"],
    }, "r1")
    assert r.amount == 2000
    assert [i.name for i in r.items] == ["Lunch", "Bed"]
    assert r.status == "pending"
    assert r.officer == "Unknown"


# ── Tests: animal health ─────────────────────────────────────────────

def test_animal_health_vaccine_list():
    a = normalize("animal_health", {
        "vaccines": [{"type": "PPR", "doses": 40}, {"type": "CCPP", "doses": 0}, {"doses": "5"}],
        "fieldofficers": ["Wanjiru", {"name": "Kiptoo"}],
        "issues": ["Ticks", ""],
    }, "a1")
    assert isinstance(a, AnimalHealthActivity)
    assert a.vaccines == [Vaccine("PPR", 40), Vaccine("Unknown", 5)]
    assert a.total_doses == 45
    assert a.field_officers == ["Wanjiru", "Kiptoo"]
    assert a.issues == ["Ticks"]


def test_animal_health_legacy_single_vaccine_and_typo_alias():
    a = normalize("animal_health", {
        "vaccinetype": "PPR", "number_doses": "50",
        "maleneneficiaries": 12, "femalebeneficiaries": 8,
    }, "a1")
    assert a.vaccines == [Vaccine("PPR", 50)]
    assert a.male_beneficiaries == 12
    assert a.female_beneficiaries == 8
    assert a.created_by == "unknown"
    assert a.status == "completed"
