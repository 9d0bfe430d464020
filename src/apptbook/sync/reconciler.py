"""
Sync-log reconciler.

Collapses the raw stream of ADD/CHANGE/DELETE notifications into the one
pending action per entity that replicates its net effect:

    existing  incoming  result
    --------  --------  -----------------------------------------
    (none)    any       insert incoming
    ADD       DELETE    remove entry (created and gone before replication)
    CHANGE    DELETE    replace with DELETE
    DELETE    ADD       replace with CHANGE (remote may hold the old version)
    anything else       keep the existing entry
"""

import enum
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass

from apptbook.db import SyncLogDatabase
from apptbook.models import Appointment
from apptbook.models import ChangeAction
from apptbook.models import ChangeEvent
from apptbook.models import ObjectType
from apptbook.models import StoreError
from apptbook.models import SyncEntry

# Entity kinds whose mutations are replicated.
TRACKED_TYPES = frozenset({ObjectType.APPOINTMENT})


class LogOp(enum.Enum):
    INSERT = "insert"
    REMOVE = "remove"
    REPLACE = "replace"
    KEEP = "keep"


@dataclass(frozen=True)
class Transition:
    op: LogOp
    action: ChangeAction | None = None


def transition(existing: ChangeAction | None, incoming: ChangeAction) -> Transition:
    """Return what to do with an entity's entry when ``incoming`` arrives."""
    if existing is None:
        return Transition(LogOp.INSERT, incoming)
    if existing is ChangeAction.ADD and incoming is ChangeAction.DELETE:
        return Transition(LogOp.REMOVE)
    if existing is ChangeAction.CHANGE and incoming is ChangeAction.DELETE:
        return Transition(LogOp.REPLACE, ChangeAction.DELETE)
    if existing is ChangeAction.DELETE and incoming is ChangeAction.ADD:
        return Transition(LogOp.REPLACE, ChangeAction.CHANGE)
    return Transition(LogOp.KEEP, existing)


def sync_uid(appt: Appointment) -> str:
    """The identifier the remote side knows an appointment by.

    The URL wins over the UID; with neither, a local one is synthesized.
    """
    if appt.url:
        return appt.url
    if appt.uid:
        return appt.uid
    return f"{appt.id}@apptbook"


class SyncLogReconciler:
    """ChangeBus subscriber maintaining the persisted sync log."""

    def __init__(self, sync_db: SyncLogDatabase, enabled: bool = False):
        self.sync_db = sync_db
        self.logger = logging.getLogger(__name__)
        self._enabled = threading.Event()
        self._lock = threading.Lock()
        if enabled:
            self._enabled.set()

    # ------------------------------------------------------------------ #
    # Enablement                                                           #
    # ------------------------------------------------------------------ #

    @property
    def enabled(self) -> bool:
        return self._enabled.is_set()

    def set_enabled(self, enabled: bool):
        if enabled:
            self._enabled.set()
        else:
            self._enabled.clear()

    @contextmanager
    def suspended(self):
        """Drop events for the duration of the block (used while draining)."""
        was_enabled = self.enabled
        self._enabled.clear()
        try:
            yield self
        finally:
            if was_enabled:
                self._enabled.set()

    # ------------------------------------------------------------------ #
    # Event handling                                                       #
    # ------------------------------------------------------------------ #

    def __call__(self, event: ChangeEvent):
        self.handle(event)

    def handle(self, event: ChangeEvent) -> Transition | None:
        """Fold one event into the log. Returns the applied transition.

        Returns None when the event was dropped (reconciler disabled or an
        untracked entity kind).

        Raises:
            StoreError: the log could not be read or written; the log is left
                as it was before this event.
        """
        if not self._enabled.is_set():
            return None
        if event.object_type not in TRACKED_TYPES:
            return None

        record = event.record
        uid = sync_uid(record)
        with self._lock:
            try:
                existing = self.sync_db.get(record.id, event.object_type)
                step = transition(existing.action if existing else None, event.action)
                self._apply(step, existing, record.id, event.object_type, uid, event.action)
                self.sync_db.commit()
            except sqlite3.Error as e:
                self.sync_db.rollback()
                raise StoreError(f"Sync log update failed for {record.id}: {e}") from e

        self.logger.debug(
            f"Sync log {event.object_type.value} {record.id}: "
            f"{existing.action.value if existing else '-'} + {event.action.value} "
            f"-> {step.op.value}"
        )
        return step

    def _apply(
        self,
        step: Transition,
        existing: SyncEntry | None,
        entity_id: int,
        object_type: ObjectType,
        uid: str,
        incoming: ChangeAction,
    ):
        if step.op is LogOp.INSERT:
            self.sync_db.insert(SyncEntry(entity_id, object_type, uid, step.action))
        elif step.op is LogOp.REMOVE:
            self.sync_db.delete(entity_id, object_type)
        elif step.op is LogOp.REPLACE:
            self.sync_db.replace(SyncEntry(entity_id, object_type, uid, step.action))
        elif incoming is not ChangeAction.DELETE and existing.uid != uid:
            self.sync_db.update_uid(entity_id, object_type, uid)

    def pending(self) -> list[SyncEntry]:
        with self._lock:
            return self.sync_db.get_all()
