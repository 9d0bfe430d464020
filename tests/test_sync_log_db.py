"""
Unit tests for SyncLogDatabase: one entry per (id, object type), upsert
semantics, persistence and the status summary query.
"""

import sqlite3

import pytest

from apptbook.db import SyncLogDatabase
from apptbook.db import query_log_summary
from apptbook.models import ChangeAction
from apptbook.models import ObjectType
from apptbook.models import SyncEntry

APPT = ObjectType.APPOINTMENT


def _entry(id, action=ChangeAction.ADD, uid=None, object_type=APPT):
    return SyncEntry(id, object_type, uid or f"{id}@apptbook", action)


class TestReadPaths:
    def test_get_returns_inserted_entry(self, sync_db):
        sync_db.insert(_entry(10))
        sync_db.commit()
        assert sync_db.get(10, APPT) == _entry(10)

    def test_get_missing_is_none(self, sync_db):
        assert sync_db.get(10, APPT) is None

    def test_get_all_ordered_by_type_then_id(self, sync_db):
        sync_db.insert(_entry(30))
        sync_db.insert(_entry(10))
        sync_db.insert(_entry(20, object_type=ObjectType.TASK))
        sync_db.commit()
        assert [(e.object_type, e.id) for e in sync_db.get_all()] == [
            (APPT, 10),
            (APPT, 30),
            (ObjectType.TASK, 20),
        ]

    def test_same_id_different_types_coexist(self, sync_db):
        sync_db.insert(_entry(10))
        sync_db.insert(_entry(10, object_type=ObjectType.PROJECT))
        sync_db.commit()
        assert sync_db.count() == 2


class TestWriteSemantics:
    def test_insert_twice_violates_primary_key(self, sync_db):
        sync_db.insert(_entry(10))
        with pytest.raises(sqlite3.IntegrityError):
            sync_db.insert(_entry(10, ChangeAction.CHANGE))

    def test_replace_upserts(self, sync_db):
        sync_db.insert(_entry(10))
        sync_db.replace(_entry(10, ChangeAction.DELETE, uid="new-uid"))
        sync_db.replace(_entry(11, ChangeAction.CHANGE))
        sync_db.commit()

        assert sync_db.get(10, APPT) == _entry(10, ChangeAction.DELETE, uid="new-uid")
        assert sync_db.get(11, APPT).action is ChangeAction.CHANGE
        assert sync_db.count() == 2

    def test_update_uid_keeps_action(self, sync_db):
        sync_db.insert(_entry(10, ChangeAction.CHANGE))
        sync_db.update_uid(10, APPT, "https://cal.example/10")
        sync_db.commit()
        entry = sync_db.get(10, APPT)
        assert entry.uid == "https://cal.example/10"
        assert entry.action is ChangeAction.CHANGE

    def test_delete_and_clear_all(self, sync_db):
        for key in (1, 2, 3):
            sync_db.insert(_entry(key))
        sync_db.delete(2, APPT)
        sync_db.commit()
        assert [e.id for e in sync_db.get_all()] == [1, 3]

        sync_db.clear_all()
        sync_db.commit()
        assert sync_db.count() == 0

    def test_rollback_discards_uncommitted(self, sync_db):
        sync_db.insert(_entry(10))
        sync_db.rollback()
        assert sync_db.get(10, APPT) is None


class TestPersistence:
    def test_entries_survive_reopen(self, db_path):
        with SyncLogDatabase(db_path) as db:
            db.insert(_entry(10, ChangeAction.DELETE))
            db.commit()

        with SyncLogDatabase(db_path) as db:
            assert db.get(10, APPT).action is ChangeAction.DELETE


class TestSummary:
    def test_missing_file_is_empty(self, tmp_path):
        assert query_log_summary(tmp_path / "missing.db") == []

    def test_file_without_syncmap_is_empty(self, tmp_path):
        path = tmp_path / "other.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE unrelated (x INTEGER)")
        conn.commit()
        conn.close()
        assert query_log_summary(path) == []

    def test_counts_grouped_by_type_and_action(self, sync_db, db_path):
        sync_db.insert(_entry(1))
        sync_db.insert(_entry(2))
        sync_db.insert(_entry(3, ChangeAction.DELETE))
        sync_db.commit()

        rows = [(r["objtype"], r["action"], r["count"]) for r in query_log_summary(db_path)]
        assert rows == [("APPOINTMENT", "ADD", 2), ("APPOINTMENT", "DELETE", 1)]
