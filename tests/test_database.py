"""Tests for the record store backends."""

import pytest

from homestead_sync.database import DatabaseService, InMemoryRecordStore, RecordStore
from homestead_sync.exceptions import RecordStoreError


@pytest.fixture
def db_service(tmp_path):
    """Create a temporary database service."""
    service = DatabaseService(tmp_path / "test.db")
    yield service
    service.close()


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    """Each record store backend."""
    if request.param == "memory":
        yield InMemoryRecordStore()
        return
    service = DatabaseService(tmp_path / "store.db")
    yield service
    service.close()


class TestRecordStoreContract:
    """Behaviour shared by every backend."""

    def test_satisfies_protocol(self, store):
        """Both backends are RecordStores."""
        assert isinstance(store, RecordStore)

    def test_put_then_get(self, store):
        """A stored record reads back unchanged."""
        record = {"id": "t1", "title": "Water beds", "tags": ["garden"], "updatedAt": 5}
        store.put("tasks", record)
        assert store.get("tasks", "t1") == record

    def test_get_missing_returns_none(self, store):
        """Unknown ids read as None."""
        assert store.get("tasks", "nope") is None

    def test_put_replaces_existing(self, store):
        """Putting the same id twice keeps the latest body."""
        store.put("tasks", {"id": "t1", "title": "old", "updatedAt": 1})
        store.put("tasks", {"id": "t1", "title": "new", "updatedAt": 2})
        assert store.get("tasks", "t1")["title"] == "new"
        assert len(store.get_all("tasks")) == 1

    def test_collections_are_isolated(self, store):
        """The same id can live in two collections."""
        store.put("tasks", {"id": "x", "kind": "task"})
        store.put("animals", {"id": "x", "kind": "goat"})
        assert store.get("tasks", "x")["kind"] == "task"
        assert store.get("animals", "x")["kind"] == "goat"

    def test_get_all_by_index(self, store):
        """Index lookups match top-level fields."""
        store.put("sync_queue", {"id": "q1", "status": "pending", "recordId": "a"})
        store.put("sync_queue", {"id": "q2", "status": "done", "recordId": "a"})
        store.put("sync_queue", {"id": "q3", "status": "pending", "recordId": "b"})

        pending = store.get_all_by_index("sync_queue", "status", "pending")
        assert sorted(r["id"] for r in pending) == ["q1", "q3"]

    def test_get_all_by_index_with_boolean(self, store):
        """Boolean fields can be used as an index."""
        store.put("conflict_log", {"id": "c1", "resolved": False})
        store.put("conflict_log", {"id": "c2", "resolved": True})

        open_conflicts = store.get_all_by_index("conflict_log", "resolved", False)
        assert [r["id"] for r in open_conflicts] == ["c1"]

    def test_invalid_index_name_rejected(self, store):
        """Index names must be plain field names."""
        with pytest.raises(ValueError):
            store.get_all_by_index("tasks", "a') OR 1=1 --", "x")

    def test_delete(self, store):
        """Deleted records disappear; deleting twice is harmless."""
        store.put("tasks", {"id": "t1"})
        store.delete("tasks", "t1")
        store.delete("tasks", "t1")
        assert store.get("tasks", "t1") is None

    def test_put_requires_id(self, store):
        """Records without an id are rejected."""
        with pytest.raises(RecordStoreError):
            store.put("tasks", {"title": "no id"})

    def test_returned_records_are_copies(self, store):
        """Mutating a returned record does not touch the store."""
        store.put("tasks", {"id": "t1", "title": "a"})
        record = store.get("tasks", "t1")
        record["title"] = "changed"
        assert store.get("tasks", "t1")["title"] == "a"

    def test_write_many_applies_puts_and_deletes(self, store):
        """A batch lands as a whole."""
        store.put("tasks", {"id": "old"})
        store.write_many(
            puts=[("tasks", {"id": "t1"}), ("sync_queue", {"id": "q1"})],
            deletes=[("tasks", "old")],
        )
        assert store.get("tasks", "t1") == {"id": "t1"}
        assert store.get("sync_queue", "q1") == {"id": "q1"}
        assert store.get("tasks", "old") is None

    def test_write_many_is_all_or_nothing(self, store):
        """One bad write keeps the whole batch out."""
        store.put("tasks", {"id": "t1", "title": "old"})
        with pytest.raises(RecordStoreError):
            store.write_many(
                puts=[("tasks", {"id": "t1", "title": "new"}), ("sync_queue", {})],
                deletes=[("tasks", "t1")],
            )
        assert store.get("tasks", "t1")["title"] == "old"
        assert store.get_all("sync_queue") == []


class TestDatabaseService:
    """SQLite-specific behaviour."""

    def test_init_creates_schema(self, db_service):
        """A fresh database has the records table."""
        assert db_service.db_path.exists()
        assert db_service.is_initialized()

    def test_statistics_count_per_collection(self, db_service):
        """Statistics group record counts by collection."""
        db_service.put("tasks", {"id": "1"})
        db_service.put("tasks", {"id": "2"})
        db_service.put("animals", {"id": "1"})

        stats = db_service.get_statistics()
        assert stats["collections"] == {"tasks": 2, "animals": 1}
        assert stats["database_path"] == str(db_service.db_path)
        assert db_service.count("tasks") == 2

    def test_records_survive_reopen(self, tmp_path):
        """Writes are durable across service instances."""
        path = tmp_path / "durable.db"
        first = DatabaseService(path)
        first.put("sync_queue", {"id": "q1", "status": "pending"})
        first.close()

        second = DatabaseService(path)
        try:
            assert second.get("sync_queue", "q1") == {"id": "q1", "status": "pending"}
        finally:
            second.close()

    def test_get_all_orders_by_updated_at(self, db_service):
        """Collections come back in change order."""
        db_service.put("tasks", {"id": "b", "updatedAt": 20})
        db_service.put("tasks", {"id": "a", "updatedAt": 10})
        assert [r["id"] for r in db_service.get_all("tasks")] == ["a", "b"]
