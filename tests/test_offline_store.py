"""
Tests for the SQLite-backed queue store.
"""

import pytest

from podlink.errors import PersistenceError
from podlink.offline.models import QueuedInput, ResizePayload
from podlink.offline.store import SCHEMA_VERSION, SQLiteQueueStore


def _item(item_id, timestamp, session="work", kind="input", payload="x"):
    return QueuedInput(
        id=item_id,
        timestamp=timestamp,
        session_name=session,
        kind=kind,
        payload=payload,
    )


class TestQueuedInput:
    def test_resize_payload_from_dict(self):
        item = _item("1", 1, kind="resize", payload={"cols": 80, "rows": 24})
        assert item.payload == ResizePayload(cols=80, rows=24)

    def test_kind_and_payload_must_agree(self):
        with pytest.raises(ValueError):
            _item("1", 1, kind="resize", payload="80x24")
        with pytest.raises(ValueError):
            _item("1", 1, kind="input", payload={"cols": 80, "rows": 24})

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            _item("1", 1, kind="paste")

    def test_records_are_immutable(self):
        item = _item("1", 1)
        with pytest.raises(ValueError):
            item.payload = "y"


class TestSQLiteQueueStore:
    def test_new_store_is_migrated(self, queue_store):
        assert queue_store.schema_version == SCHEMA_VERSION
        assert queue_store.count() == 0

    def test_put_assigns_insertion_sequence(self, queue_store):
        first = queue_store.put(_item("a", 10))
        second = queue_store.put(_item("b", 10))
        assert second.seq == first.seq + 1

    def test_query_orders_by_timestamp(self, queue_store):
        queue_store.put(_item("late", 300))
        queue_store.put(_item("early", 100))
        queue_store.put(_item("middle", 200))

        items = queue_store.query_by_index("session_name", "work")

        assert [i.id for i in items] == ["early", "middle", "late"]

    def test_equal_timestamps_keep_insertion_order(self, queue_store):
        for item_id in ("one", "two", "three"):
            queue_store.put(_item(item_id, 500))

        items = queue_store.query_by_index("session_name", "work")

        assert [i.id for i in items] == ["one", "two", "three"]

    def test_query_by_session_is_isolated(self, queue_store):
        queue_store.put(_item("a", 1, session="s1"))
        queue_store.put(_item("b", 2, session="s2"))

        assert [i.id for i in queue_store.query_by_index("session_name", "s1")] == ["a"]
        assert queue_store.count("session_name", "s2") == 1
        assert queue_store.count() == 2

    def test_query_by_timestamp(self, queue_store):
        queue_store.put(_item("a", 7, session="s1"))
        queue_store.put(_item("b", 7, session="s2"))
        queue_store.put(_item("c", 8))

        assert [i.id for i in queue_store.query_by_index("timestamp", 7)] == ["a", "b"]

    def test_unknown_index(self, queue_store):
        with pytest.raises(ValueError, match="Unknown index"):
            queue_store.query_by_index("kind", "input")

    def test_resize_payload_round_trip(self, queue_store):
        queue_store.put(_item("r", 1, kind="resize", payload={"cols": 120, "rows": 40}))

        (item,) = queue_store.query_by_index("session_name", "work")

        assert item.kind == "resize"
        assert item.payload == ResizePayload(cols=120, rows=40)

    def test_delete(self, queue_store):
        queue_store.put(_item("a", 1))
        queue_store.put(_item("b", 2))

        queue_store.delete("a")
        queue_store.delete("missing")

        assert [i.id for i in queue_store.query_by_index("session_name", "work")] == ["b"]

    def test_duplicate_id_is_a_persistence_error(self, queue_store):
        queue_store.put(_item("a", 1))
        with pytest.raises(PersistenceError):
            queue_store.put(_item("a", 2))

    def test_clear(self, queue_store):
        queue_store.put(_item("a", 1, session="s1"))
        queue_store.put(_item("b", 1, session="s2"))

        queue_store.clear()

        assert queue_store.count() == 0

    def test_records_survive_reopen(self, tmp_path):
        path = tmp_path / "queue.db"
        store = SQLiteQueueStore(path)
        store.put(_item("a", 1, payload="echo hi\r"))
        store.close()

        reopened = SQLiteQueueStore(path)
        try:
            (item,) = reopened.query_by_index("session_name", "work")
            assert item.payload == "echo hi\r"
            assert reopened.schema_version == SCHEMA_VERSION
        finally:
            reopened.close()

    def test_newer_schema_is_refused(self, tmp_path):
        path = tmp_path / "queue.db"
        store = SQLiteQueueStore(path)
        with store.engine.begin() as conn:
            conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        store.close()

        with pytest.raises(PersistenceError, match="newer"):
            SQLiteQueueStore(path)

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        with pytest.raises(PersistenceError):
            SQLiteQueueStore(blocker / "queue.db")
