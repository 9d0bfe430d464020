"""
SQLite record store for appointments.

This is the authoritative copy of the data. Everything else in the package
(day index, sync log) is derived from it or describes intents to change it.
"""

import logging
import sqlite3
from datetime import date
from datetime import datetime
from pathlib import Path

from apptbook.models import Appointment
from apptbook.models import DuplicateKeyError
from apptbook.models import Failed
from apptbook.models import Found
from apptbook.models import NotFound
from apptbook.models import NotFoundError
from apptbook.models import ReadResult
from apptbook.models import StoreError
from apptbook.recurrence import parse_skip_set

_COLUMNS = (
    "id, date, text, duration, frequency, times, skip_list, category, "
    "todo, next_todo, deleted, uid, url"
)


class AppointmentStore:
    """Keyed appointment table with create/read/update/delete and full scan."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Open the database file and make sure the schema exists."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path))
            self.conn.row_factory = sqlite3.Row
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Cannot open appointment store {self.db_path}: {e}") from e

    def _init_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS appointments (
                id INTEGER PRIMARY KEY,
                date TEXT NOT NULL,
                text TEXT NOT NULL DEFAULT '',
                duration INTEGER,
                frequency TEXT,
                times INTEGER,
                skip_list TEXT NOT NULL DEFAULT '',
                category TEXT,
                todo INTEGER NOT NULL DEFAULT 0,
                next_todo TEXT,
                deleted INTEGER NOT NULL DEFAULT 0,
                uid TEXT,
                url TEXT
            )
        """)
        self.conn.commit()

    # ------------------------------------------------------------------ #
    # Record operations                                                    #
    # ------------------------------------------------------------------ #

    def create(self, appt: Appointment) -> int:
        """Insert ``appt`` under its own id.

        Raises:
            DuplicateKeyError: a record with that id already exists.
            StoreError: any other database failure.
        """
        if appt.id < 0:
            raise StoreError("Cannot create an appointment without an id")
        try:
            self.conn.execute(
                f"INSERT INTO appointments ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _to_row(appt),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise DuplicateKeyError(f"Appointment {appt.id} already exists") from e
        except sqlite3.Error as e:
            raise StoreError(f"Failed to create appointment {appt.id}: {e}") from e
        return appt.id

    def read(self, key: int) -> ReadResult:
        """Return Found, NotFound or Failed for ``key``; never raises."""
        try:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM appointments WHERE id = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            return Failed(StoreError(f"Failed to read appointment {key}: {e}"))
        if row is None:
            return NotFound(key)
        return Found(_from_row(row))

    def update(self, appt: Appointment):
        """Overwrite the stored record with the same id.

        Raises:
            NotFoundError: no record has that id.
        """
        try:
            row = _to_row(appt)
            cursor = self.conn.execute(
                "UPDATE appointments SET date = ?, text = ?, duration = ?, frequency = ?, "
                "times = ?, skip_list = ?, category = ?, todo = ?, next_todo = ?, "
                "deleted = ?, uid = ?, url = ? WHERE id = ?",
                (*row[1:], row[0]),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to update appointment {appt.id}: {e}") from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"Appointment {appt.id} not found")

    def delete(self, key: int):
        """Physically remove a record.

        Raises:
            NotFoundError: no record has that id.
        """
        try:
            cursor = self.conn.execute("DELETE FROM appointments WHERE id = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete appointment {key}: {e}") from e
        if cursor.rowcount == 0:
            raise NotFoundError(f"Appointment {key} not found")

    def scan_all(self) -> list[Appointment]:
        """Return every record, soft-deleted ones included, in id order."""
        try:
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM appointments ORDER BY id"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to scan appointments: {e}") from e
        return [_from_row(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Auxiliary indexes                                                    #
    # ------------------------------------------------------------------ #

    def repeat_ids(self) -> set[int]:
        """Ids of records flagged as repeating (a frequency and more than one time)."""
        return self._ids(
            "SELECT id FROM appointments "
            "WHERE frequency IS NOT NULL AND frequency != '' AND times > 1"
        )

    def todo_ids(self) -> set[int]:
        return self._ids("SELECT id FROM appointments WHERE todo = 1")

    def _ids(self, query: str) -> set[int]:
        try:
            return {row[0] for row in self.conn.execute(query)}
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query appointment ids: {e}") from e

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def _to_row(appt: Appointment) -> tuple:
    return (
        appt.id,
        appt.date.isoformat(),
        appt.text,
        appt.duration,
        appt.frequency,
        appt.times,
        ",".join(str(k) for k in sorted(appt.skip_list)),
        appt.category,
        int(appt.todo),
        appt.next_todo.isoformat() if appt.next_todo else None,
        int(appt.deleted),
        appt.uid,
        appt.url,
    )


def _from_row(row: sqlite3.Row) -> Appointment:
    skip_text = row["skip_list"] or ""
    return Appointment(
        id=row["id"],
        date=datetime.fromisoformat(row["date"]),
        text=row["text"],
        duration=row["duration"],
        frequency=row["frequency"],
        times=row["times"],
        skip_list=parse_skip_set(s for s in skip_text.split(",") if s),
        category=row["category"],
        todo=bool(row["todo"]),
        next_todo=date.fromisoformat(row["next_todo"]) if row["next_todo"] else None,
        deleted=bool(row["deleted"]),
        uid=row["uid"],
        url=row["url"],
    )
