"""
SQLite persistence for the replication sync log.
"""

import sqlite3
from pathlib import Path

from apptbook.models import ChangeAction
from apptbook.models import ObjectType
from apptbook.models import SyncEntry


class SyncLogDatabase:
    """Manages the ``syncmap`` table: one pending action per (id, object type)."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the sync log database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # The reconciler may be fed from a worker thread; writes stay serialized.
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        """Create the syncmap table if it doesn't exist."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS syncmap (
                id INTEGER NOT NULL,
                uid TEXT,
                objtype TEXT NOT NULL,
                action TEXT NOT NULL,
                PRIMARY KEY (id, objtype)
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Query methods                                                        #
    # ------------------------------------------------------------------ #

    def get(self, entity_id: int, object_type: ObjectType) -> SyncEntry | None:
        """Get the pending entry for one entity, if any."""
        cursor = self.conn.execute(
            "SELECT id, uid, objtype, action FROM syncmap WHERE id = ? AND objtype = ? LIMIT 1",
            (entity_id, object_type.value),
        )
        row = cursor.fetchone()
        return _entry_from_row(row) if row else None

    def get_all(self) -> list[SyncEntry]:
        """Retrieve every pending entry in (objtype, id) order."""
        cursor = self.conn.execute(
            "SELECT id, uid, objtype, action FROM syncmap ORDER BY objtype, id"
        )
        return [_entry_from_row(row) for row in cursor.fetchall()]

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM syncmap").fetchone()[0]

    def insert(self, entry: SyncEntry):
        """Insert a new pending entry. Fails if the entity already has one."""
        self.conn.execute(
            "INSERT INTO syncmap (id, uid, objtype, action) VALUES (?, ?, ?, ?)",
            (entry.id, entry.uid, entry.object_type.value, entry.action.value),
        )

    def replace(self, entry: SyncEntry):
        """Overwrite the uid and action of an entity's entry (insert if missing)."""
        self.conn.execute(
            "INSERT INTO syncmap (id, uid, objtype, action) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id, objtype) DO UPDATE SET uid = excluded.uid, action = excluded.action",
            (entry.id, entry.uid, entry.object_type.value, entry.action.value),
        )

    def update_uid(self, entity_id: int, object_type: ObjectType, uid: str):
        self.conn.execute(
            "UPDATE syncmap SET uid = ? WHERE id = ? AND objtype = ?",
            (uid, entity_id, object_type.value),
        )

    def delete(self, entity_id: int, object_type: ObjectType):
        """Delete the pending entry for one entity."""
        self.conn.execute(
            "DELETE FROM syncmap WHERE id = ? AND objtype = ?",
            (entity_id, object_type.value),
        )

    def clear_all(self):
        """Remove every pending entry (after a wholesale rebuild of the target)."""
        self.conn.execute("DELETE FROM syncmap")

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def rollback(self):
        if self.conn:
            self.conn.rollback()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def _entry_from_row(row: sqlite3.Row) -> SyncEntry:
    return SyncEntry(
        id=row["id"],
        object_type=ObjectType(row["objtype"]),
        uid=row["uid"] or "",
        action=ChangeAction(row["action"]),
    )


def query_log_summary(db_path: Path) -> list:
    """
    Return pending-action counts grouped by object type and action.

    Each row exposes: objtype, action, count.
    Returns an empty list when the DB file does not exist or has no syncmap table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        if "syncmap" not in tables:
            return []
        cursor = conn.execute("""
            SELECT objtype, action, COUNT(*) AS count
            FROM syncmap
            GROUP BY objtype, action
            ORDER BY objtype, action
        """)
        return cursor.fetchall()
    finally:
        conn.close()
