"""
Tests for InMemoryRecordStore and the transaction() contract of RecordStore.
"""

import threading
from datetime import datetime, timezone

import pytest

from fieldsync.models import PolygonRecord
from fieldsync.sync.reconcile import reconcile
from fieldsync.sync.registry import ensure_project

T1 = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _project(store, name="P"):
    return store.create_project(name, {}, {}, None, T1)


def test_commit_keeps_writes(store):
    with store.transaction():
        project = _project(store)
        store.insert_record(project.id, PolygonRecord(record_id="a", area_ha=1.0))
    assert store.find_record(project.id, "a").area_ha == 1.0
    assert not store.in_transaction()


def test_rollback_discards_every_write(store):
    existing = _project(store, "keep")
    store.insert_record(existing.id, PolygonRecord(record_id="a", area_ha=1.0))

    with pytest.raises(RuntimeError):
        with store.transaction():
            _project(store, "discard")
            store.update_record_fields(existing.id, "a", {"area_ha": 9.0})
            store.insert_record(existing.id, PolygonRecord(record_id="b"))
            raise RuntimeError("boom")

    assert store.find_project_by_name("discard") is None
    assert store.find_record(existing.id, "a").area_ha == 1.0
    assert store.find_record(existing.id, "b") is None
    assert not store.in_transaction()


def test_nested_transaction_joins_outer(store):
    with pytest.raises(ValueError):
        with store.transaction():
            project = _project(store)
            with store.transaction():
                assert store.in_transaction()
                store.insert_record(project.id, PolygonRecord(record_id="a"))
            # Inner exit must not commit on its own.
            raise ValueError("outer fails")

    assert store.list_projects() == []


def test_returned_objects_are_copies(store):
    project = _project(store)
    store.insert_record(project.id, PolygonRecord(record_id="a", geometry={"type": "Point"}))

    record = store.find_record(project.id, "a")
    record.contributor_name = "Mallory"
    record.geometry["type"] = "Polygon"
    store.list_records_for_project(project.id)[0].area_ha = 99.0

    fresh = store.find_record(project.id, "a")
    assert fresh.contributor_name == ""
    assert fresh.geometry == {"type": "Point"}
    assert fresh.area_ha == 0.0


def test_duplicate_insert_and_project_rejected(store):
    project = _project(store)
    store.insert_record(project.id, PolygonRecord(record_id="a"))
    with pytest.raises(KeyError):
        store.insert_record(project.id, PolygonRecord(record_id="a"))
    with pytest.raises(KeyError):
        _project(store)


def test_records_listed_in_insertion_order(store):
    project = _project(store)
    for record_id in ["c", "a", "b"]:
        store.insert_record(project.id, PolygonRecord(record_id=record_id))
    assert [r.record_id for r in store.list_records_for_project(project.id)] == ["c", "a", "b"]


def test_unknown_project_lists_nothing(store):
    assert store.list_records_for_project(12345) == []
    assert store.find_record(12345, "a") is None


def test_concurrent_batches_create_each_record_once(store):
    """Parallel syncs of overlapping batches never duplicate a record."""
    project_id = ensure_project(store, "P").id
    batch = [{"id": str(i), "area_ha": 1.0} for i in range(50)]
    results = []

    def worker():
        results.append(reconcile(store, project_id, batch))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(r.created_count for r in results) == 50
    assert len(store.list_records_for_project(project_id)) == 50
