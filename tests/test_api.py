"""
Integration tests for the Flask API over an in-memory SQL store.
"""

import asyncio

import pytest

from fieldops.api.app import create_app
from fieldops.api.auth import generate_token
from fieldops.cache import ResultCache
from fieldops.database import SqlStore, make_engine


# ── Helpers / Fakes ──────────────────────────────────────────────────

USERS = {
    "admin-1": {"role": " Chief-Admin "},
    "kpmd-officer": {"role": "field-officer", "allowedProgrammes": {"KPMD": True}},
    "no-access": {"role": "field-officer", "allowedProgrammes": {"KPMD": False}},
}

OFFTAKES = {
    "o1": {"programme": "KPMD", "date": "2024-01-15", "name": "Amina", "county": "Isiolo",
           "goats": [{"live": 20, "carcass": 10, "price": 200}], "totalPrice": 200},
    "o2": {"programme": "KPMD", "date": "2024-03-05", "name": "Baraka", "county": "Marsabit",
           "goats": [{"live": 40, "carcass": 20, "price": 300}], "totalPrice": 300},
    "o3": {"programme": "RANGE", "date": "2024-02-10", "name": "Chebet", "county": "Samburu",
           "goats": [{"live": 60, "carcass": 30, "price": 500}], "totalPrice": 500},
}


@pytest.fixture
def store():
    s = SqlStore(make_engine("sqlite://"))
    asyncio.run(s.write("users", USERS))
    asyncio.run(s.write("offtakes", OFFTAKES))
    return s


@pytest.fixture
def client(store, tmp_path):
    app = create_app(store=store, cache=ResultCache(), state_file=tmp_path / "state.json")
    app.config["TESTING"] = True
    return app.test_client()


def auth(uid):
    return {"Authorization": f"Bearer {generate_token(uid)}"}


# ── Tests: info and auth ─────────────────────────────────────────────

def test_index_and_health(client):
    assert client.get("/").get_json()["status"] == "running"
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["store"] is True


def test_missing_token_is_401(client):
    assert client.get("/api/me").status_code == 401


def test_invalid_token_is_401(client):
    resp = client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_expired_token_is_401(client):
    token = generate_token("admin-1", expiry_hours=-1)
    resp = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_me_reports_scope(client):
    data = client.get("/api/me", headers=auth("kpmd-officer")).get_json()
    assert data["user"]["id"] == "kpmd-officer"
    assert data["scope"] == {"unrestricted": False, "programmes": ["KPMD"]}

    data = client.get("/api/me", headers=auth("admin-1")).get_json()
    assert data["scope"]["unrestricted"] is True


# ── Tests: scoped reads ──────────────────────────────────────────────

def test_programme_user_sees_only_own_programme(client):
    data = client.get("/api/collections/offtakes", headers=auth("kpmd-officer")).get_json()
    assert data["row_count"] == 2
    assert [r["id"] for r in data["records"]] == ["o2", "o1"]
    assert {r["programme"] for r in data["records"]} == {"KPMD"}


def test_unrestricted_user_sees_everything(client):
    data = client.get("/api/collections/offtakes", headers=auth("admin-1")).get_json()
    assert data["row_count"] == 3
    assert not data["is_stale"]


def test_empty_scope_is_403(client):
    resp = client.get("/api/collections/offtakes", headers=auth("no-access"))
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "no programme access"


def test_unknown_profile_is_403(client):
    assert client.get("/api/collections/offtakes", headers=auth("stranger")).status_code == 403


def test_unknown_collection_is_404(client):
    assert client.get("/api/collections/patients", headers=auth("admin-1")).status_code == 404


def test_query_filters(client):
    data = client.get(
        "/api/collections/offtakes?start=2024-02-01&end=2024-12-31&county=Samburu",
        headers=auth("admin-1"),
    ).get_json()
    assert [r["id"] for r in data["records"]] == ["o3"]


@pytest.mark.parametrize("query", ["page=2", "_=1712345678", "farmer=Amina"])
def test_unknown_filter_field_is_400(client, query):
    resp = client.get(f"/api/collections/offtakes?{query}", headers=auth("admin-1"))
    assert resp.status_code == 400
    assert "Unknown filter field" in resp.get_json()["error"]


def test_bad_date_is_400(client):
    resp = client.get("/api/collections/offtakes?start=soon", headers=auth("admin-1"))
    assert resp.status_code == 400


# ── Tests: statistics and export ─────────────────────────────────────

def test_statistics_use_stored_pricing(client):
    client.put("/api/pricing", json={"pricePerKg": 100, "expenses": 500}, headers=auth("admin-1"))
    resp = client.get("/api/collections/offtakes/statistics?anchor_year=2024", headers=auth("kpmd-officer"))
    assert resp.status_code == 200
    stats = resp.get_json()["statistics"]
    assert stats["record_count"] == 2
    assert stats["totals"]["revenue"] == 3000
    assert stats["totals"]["net_result"] == 3000 - 500 - 500
    assert len(stats["series"]) == 12


def test_statistics_bad_bucket_is_400(client):
    resp = client.get("/api/collections/offtakes/statistics?bucket=decade", headers=auth("admin-1"))
    assert resp.status_code == 400


def test_export_csv(client):
    resp = client.get("/api/collections/offtakes/export", headers=auth("kpmd-officer"))
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "offtakes.csv" in resp.headers["Content-Disposition"]
    lines = resp.get_data(as_text=True).strip().splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("id,programme,timestamp")


def test_export_accepts_query_token(client):
    token = generate_token("admin-1")
    assert client.get(f"/api/collections/offtakes/export?token={token}").status_code == 200


# ── Tests: writes ────────────────────────────────────────────────────

def test_create_infers_single_programme_and_invalidates(client, store):
    headers = auth("kpmd-officer")
    assert client.get("/api/collections/offtakes", headers=headers).get_json()["row_count"] == 2

    resp = client.post("/api/collections/offtakes", json={"name": "Dida", "date": "2024-04-01"}, headers=headers)
    assert resp.status_code == 201
    key = resp.get_json()["id"]
    assert asyncio.run(store.read(f"offtakes/{key}"))["programme"] == "KPMD"

    assert client.get("/api/collections/offtakes", headers=headers).get_json()["row_count"] == 3


def test_create_in_other_programme_is_403(client):
    resp = client.post("/api/collections/offtakes", json={"programme": "RANGE"}, headers=auth("kpmd-officer"))
    assert resp.status_code == 403


def test_unrestricted_create_needs_programme(client):
    resp = client.post("/api/collections/offtakes", json={"name": "X"}, headers=auth("admin-1"))
    assert resp.status_code == 400


def test_update_record(client, store):
    resp = client.patch("/api/collections/offtakes/o1", json={"county": "Garissa"}, headers=auth("kpmd-officer"))
    assert resp.status_code == 200
    assert asyncio.run(store.read("offtakes/o1"))["county"] == "Garissa"


def test_update_other_programme_is_403(client):
    resp = client.patch("/api/collections/offtakes/o3", json={"county": "X"}, headers=auth("kpmd-officer"))
    assert resp.status_code == 403


def test_update_missing_record_is_404(client):
    resp = client.patch("/api/collections/offtakes/nope", json={"county": "X"}, headers=auth("admin-1"))
    assert resp.status_code == 404


def test_delete_record(client, store):
    assert client.delete("/api/collections/offtakes/o3", headers=auth("kpmd-officer")).status_code == 403
    assert client.delete("/api/collections/offtakes/o3", headers=auth("admin-1")).status_code == 200
    assert asyncio.run(store.read("offtakes/o3")) is None


# ── Tests: pricing ───────────────────────────────────────────────────

def test_pricing_defaults_to_zero(client):
    data = client.get("/api/pricing", headers=auth("admin-1")).get_json()
    assert data["pricing"] == {"pricePerKg": 0.0, "expenses": 0.0}


def test_pricing_update_clamps_and_persists(client):
    resp = client.put("/api/pricing", json={"pricePerKg": -10, "expenses": 250}, headers=auth("admin-1"))
    assert resp.get_json()["pricing"] == {"pricePerKg": 0.0, "expenses": 250.0}
    assert client.get("/api/pricing", headers=auth("admin-1")).get_json()["pricing"]["expenses"] == 250.0


def test_pricing_rejects_non_numbers(client):
    resp = client.put("/api/pricing", json={"pricePerKg": "lots"}, headers=auth("admin-1"))
    assert resp.status_code == 400
