"""
Unit tests for scoped collection reads.
"""

import asyncio

from fieldops.fetcher import fetch_scoped_collection
from fieldops.models import NO_ACCESS, UNRESTRICTED, AccessScope, Farmer
from fieldops.rbac import resolve_scope
from fieldops.store import StoreError


# ── Helpers / Fakes ──────────────────────────────────────────────────

FARMERS = {
    "f1": {"programme": "KPMD", "name": "Amina", "Region": "Turkana", "createdAt": "2024-01-10"},
    "f2": {"programme": "KPMD", "name": "Baraka", "county": "Isiolo", "createdAt": "2024-03-02"},
    "f3": {"programme": "RANGE", "name": "Chebet", "county": "Samburu", "createdAt": "2024-02-20"},
}


class FakeStore:
    """In-memory collections; counts calls and can fail per programme."""
    def __init__(self, collections=None, failing=(), fail_all=False):
        self.collections = collections if collections is not None else {"farmers": dict(FARMERS)}
        self.failing = set(failing)
        self.fail_all = fail_all
        self.calls = []

    async def read(self, path):
        self.calls.append(("read", path))
        if self.fail_all:
            raise StoreError("offline")
        return self.collections.get(path)

    async def read_where(self, path, field, value):
        self.calls.append(("read_where", path, field, value))
        await asyncio.sleep(0)
        if self.fail_all or value in self.failing:
            raise StoreError(f"read of {value} failed")
        return {k: v for k, v in self.collections.get(path, {}).items() if v.get(field) == value}


class OverlappingStore(FakeStore):
    """Every programme query returns the same records, as when tags overlap."""
    async def read_where(self, path, field, value):
        self.calls.append(("read_where", path, field, value))
        return dict(self.collections.get(path, {}))


def scope(*programmes):
    return AccessScope(programmes=frozenset(programmes))


# ── Tests: call patterns ─────────────────────────────────────────────

def test_unrestricted_issues_one_unfiltered_read():
    store = FakeStore()
    result = asyncio.run(fetch_scoped_collection(store, "farmers", UNRESTRICTED))
    assert store.calls == [("read", "farmers")]
    assert {r.id for r in result.records} == {"f1", "f2", "f3"}
    assert not result.incomplete and result.error is None


def test_each_programme_gets_one_equality_read():
    store = FakeStore()
    asyncio.run(fetch_scoped_collection(store, "farmers", scope("KPMD", "RANGE")))
    assert sorted(store.calls) == [
        ("read_where", "farmers", "programme", "KPMD"),
        ("read_where", "farmers", "programme", "RANGE"),
    ]


def test_empty_scope_makes_no_calls():
    store = FakeStore()
    result = asyncio.run(fetch_scoped_collection(store, "farmers", NO_ACCESS))
    assert result.records == []
    assert store.calls == []
    assert result.error is None


def test_two_programmes_two_reads_and_no_duplicate_ids():
    store = OverlappingStore()
    result = asyncio.run(fetch_scoped_collection(store, "farmers", scope("A", "C")))
    assert len(store.calls) == 2
    ids = [r.id for r in result.records]
    assert len(ids) == len(set(ids)) == 3


def test_unknown_collection_reports_error_without_calls():
    store = FakeStore()
    result = asyncio.run(fetch_scoped_collection(store, "patients", UNRESTRICTED))
    assert result.error
    assert store.calls == []


# ── Tests: normalisation and order ───────────────────────────────────

def test_kpmd_actor_sees_only_kpmd_farmers():
    actor = {"role": "field", "partitionFlags": {"KPMD": True}}
    store = FakeStore()

    result = asyncio.run(fetch_scoped_collection(store, "farmers", resolve_scope(actor)))

    assert {r.id for r in result.records} == {"f1", "f2"}
    assert all(isinstance(r, Farmer) and r.programme == "KPMD" for r in result.records)
    by_id = {r.id: r for r in result.records}
    assert by_id["f1"].county == "Turkana"


def test_records_sorted_newest_first():
    result = asyncio.run(fetch_scoped_collection(FakeStore(), "farmers", UNRESTRICTED))
    assert [r.id for r in result.records] == ["f2", "f3", "f1"]


def test_sparse_array_collection_is_read():
    store = FakeStore({"farmers": [None, {"programme": "KPMD", "name": "Dida"}]})
    result = asyncio.run(fetch_scoped_collection(store, "farmers", UNRESTRICTED))
    assert [(r.id, r.name) for r in result.records] == [("1", "Dida")]


# ── Tests: failures ──────────────────────────────────────────────────

def test_one_failing_programme_keeps_the_rest():
    store = FakeStore(failing={"RANGE"})
    result = asyncio.run(fetch_scoped_collection(store, "farmers", scope("KPMD", "RANGE")))
    assert {r.id for r in result.records} == {"f1", "f2"}
    assert result.incomplete
    assert result.failed_programmes == ["RANGE"]
    assert result.error is None
    assert len(store.calls) == 2


def test_all_programmes_failing_is_an_error():
    store = FakeStore(fail_all=True)
    result = asyncio.run(fetch_scoped_collection(store, "farmers", scope("KPMD", "RANGE")))
    assert result.records == []
    assert result.error
    assert sorted(result.failed_programmes) == ["KPMD", "RANGE"]
    assert len(store.calls) == 2


def test_unrestricted_failure_is_an_error_without_retry():
    store = FakeStore(fail_all=True)
    result = asyncio.run(fetch_scoped_collection(store, "farmers", UNRESTRICTED))
    assert result.records == []
    assert "offline" in result.error
    assert store.calls == [("read", "farmers")]
