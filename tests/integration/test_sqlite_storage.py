"""Integration tests for the storage facade on the SQLite backend."""

import json
import sqlite3
import threading

import pytest

from schedtrack.core.errors import CorruptRecord, InvalidObjID, StoreUnavailable
from schedtrack.core.types import Sequence
from schedtrack.storage.documents import SqliteDocumentStore
from schedtrack.storage.facade import Storage


class TestPersistence:
    """Data written through one handle is visible through the next."""

    def test_full_round_trip(self, sqlite_storage, temp_db_path):
        a = sqlite_storage.create_obj("a", "task")
        b = sqlite_storage.create_obj("b", "task")
        sqlite_storage.obj_set_desc(a, "first")
        sqlite_storage.obj_add_dep(a, b)
        sqlite_storage.obj_add_ref(a, b)
        sqlite_storage.obj_set_attr(a, "status", "open")
        note = sqlite_storage.create_log("note", {"k": "v"})
        sqlite_storage.log_set_attr(note, "extra", "1")

        reopened = Storage(SqliteDocumentStore(temp_db_path))
        obj = reopened.get_obj(a)

        assert obj.desc == "first"
        assert obj.deps == {b}
        assert obj.refs == {b}
        assert obj.subs == set()
        assert obj.attrs == {"status": "open"}
        assert reopened.get_log(note).attrs == {"k": "v", "extra": "1"}

    def test_ids_continue_after_reopen(self, sqlite_storage, temp_db_path):
        sqlite_storage.create_obj("a", "task")
        last_log = sqlite_storage.last_id(Sequence.LOGS)

        reopened = Storage(SqliteDocumentStore(temp_db_path))

        assert reopened.create_obj("b", "task") == 2
        assert reopened.last_id(Sequence.LOGS) == last_log + 1

    def test_stored_log_shape(self, sqlite_storage, temp_db_path):
        bare = sqlite_storage.create_log("note")
        with_attrs = sqlite_storage.create_log("note", {"k": "v"})

        conn = sqlite3.connect(temp_db_path)
        rows = dict(conn.execute("SELECT key, body FROM logs").fetchall())
        conn.close()

        assert "attrs" not in json.loads(rows[json.dumps(bare)])
        assert json.loads(rows[json.dumps(with_attrs)])["attrs"] == {"k": "v"}

    def test_audit_trail(self, sqlite_storage, recorder):
        sqlite_storage.register("^obj", recorder)
        a = sqlite_storage.create_obj("a", "task")

        sqlite_storage.obj_del_attr(a, "missing")
        sqlite_storage.obj_set_attr(a, "k", "v")
        sqlite_storage.obj_set_attr(a, "k", "w")
        sqlite_storage.obj_del_attr(a, "k")

        assert recorder.types == ["obj.create", "obj.set_attr", "obj.set_attr", "obj.del_attr"]
        assert recorder.logs[2].attrs["old"] == "v"


class TestFailures:
    """Store failures surface as typed errors."""

    def test_corrupt_object(self, sqlite_storage, temp_db_path):
        conn = sqlite3.connect(temp_db_path)
        conn.execute(
            "INSERT INTO objs (key, body) VALUES (?, ?)",
            ("1", json.dumps({"_id": 1, "name": "no type"})),
        )
        conn.commit()
        conn.close()

        with pytest.raises(CorruptRecord) as exc_info:
            sqlite_storage.get_obj(1)

        assert exc_info.value.collection == "objs"

    def test_missing_object(self, sqlite_storage):
        with pytest.raises(InvalidObjID):
            sqlite_storage.obj_add_sub(1, 2)

        assert sqlite_storage.last_id(Sequence.LOGS) == 0

    def test_unreachable_database(self, tmp_path):
        """A directory where the database file should be cannot be opened."""
        with pytest.raises(StoreUnavailable):
            Storage(SqliteDocumentStore(tmp_path))

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StoreUnavailable):
            SqliteDocumentStore(blocker / "db" / "sched.sqlite")


class TestSharedDatabase:
    """Separate handles on one database never reuse IDs."""

    def test_concurrent_handles(self, temp_db_path):
        SqliteDocumentStore(temp_db_path)
        results = []
        results_lock = threading.Lock()

        def worker():
            storage = Storage(SqliteDocumentStore(temp_db_path))
            ids = [storage.create_obj("o", "t") for _ in range(10)]
            with results_lock:
                results.extend(ids)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == list(range(1, 31))
