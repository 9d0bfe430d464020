"""
Pure data models: no sqlite or CLI imports.
"""

import enum
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from pathlib import Path

DEFAULT_DB = Path.home() / ".local/share/apptbook.db"
DEFAULT_CONFIG = Path.home() / ".config/apptbook.conf"

UNCATEGORIZED = ""


class AppointmentError(Exception):
    """Base exception for appointment book errors."""

    pass


class NotFoundError(AppointmentError):
    """A record or log entry does not exist. Callers treat this as an empty result."""

    pass


class DuplicateKeyError(AppointmentError):
    """An id is already taken (allocation or import collision)."""

    pass


class StoreError(AppointmentError):
    """I/O or integrity failure reported by the record store."""

    pass


class InvalidRecurrenceError(AppointmentError):
    """Unrecognized frequency token or malformed skip-list entry."""

    pass


class ReplicationError(AppointmentError):
    """The external replication target rejected an operation."""

    pass


class ChangeAction(enum.Enum):
    """Action tag carried by every mutation notification and sync-log entry."""

    ADD = "ADD"
    CHANGE = "CHANGE"
    DELETE = "DELETE"


class ObjectType(enum.Enum):
    """Entity kinds that can appear in the sync log.

    Only appointments are replicated today; the other kinds keep their
    place in the ``objtype`` column of the persisted log.
    """

    APPOINTMENT = "APPOINTMENT"
    TASK = "TASK"
    SUBTASK = "SUBTASK"
    PROJECT = "PROJECT"


@dataclass
class Appointment:
    """One appointment record as held by the record store."""

    date: datetime
    text: str = ""
    id: int = -1
    duration: int | None = None
    frequency: str | None = None
    times: int | None = None
    skip_list: set[int] = field(default_factory=set)
    category: str | None = None
    todo: bool = False
    next_todo: date | None = None
    deleted: bool = False
    uid: str | None = None
    url: str | None = None

    @property
    def repeats(self) -> bool:
        """True when the record carries repeat parameters worth expanding."""
        return bool(self.frequency) and self.times is not None and self.times > 1

    @property
    def category_label(self) -> str:
        return self.category or UNCATEGORIZED


@dataclass(frozen=True)
class ChangeEvent:
    """One committed mutation of one record."""

    record: Appointment
    action: ChangeAction
    object_type: ObjectType = ObjectType.APPOINTMENT


@dataclass(frozen=True)
class SyncEntry:
    """A pending replication intent for one entity."""

    id: int
    object_type: ObjectType
    uid: str
    action: ChangeAction


# ---------------------------------------------------------------------------
# Store read results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Found:
    record: Appointment


@dataclass(frozen=True)
class NotFound:
    id: int


@dataclass(frozen=True)
class Failed:
    cause: Exception


ReadResult = Found | NotFound | Failed


@dataclass
class AppConfig:
    """Configuration for one appointment book session."""

    db_path: Path
    sync_enabled: bool = False
    soft_delete: bool = False  # keep deleted rows flagged until replicated
    hidden_categories: set[str] = field(default_factory=set)
    sync_dir: Path | None = None  # directory mirrored by `apptbook sync`
    dry_run: bool = False
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting


@dataclass
class SyncStats:
    """Statistics for a replication pass."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    errors: int = 0
