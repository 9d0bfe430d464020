"""
Tests for the sync-log reconciler: the transition table, enablement,
uid selection and its wiring to the model's change bus.
"""

import sqlite3
from datetime import date

import pytest

from apptbook.model import AppointmentModel
from apptbook.models import ChangeAction
from apptbook.models import ChangeEvent
from apptbook.models import ObjectType
from apptbook.models import StoreError
from apptbook.sync.reconciler import LogOp
from apptbook.sync.reconciler import SyncLogReconciler
from apptbook.sync.reconciler import sync_uid
from apptbook.sync.reconciler import transition
from tests.conftest import TODAY
from tests.conftest import make_appt

ADD = ChangeAction.ADD
CHANGE = ChangeAction.CHANGE
DELETE = ChangeAction.DELETE


def _event(action, id=42, **fields):
    return ChangeEvent(make_appt(date(2025, 1, 15), id=id, **fields), action)


def _actions(sync_db):
    return {(e.id, e.action) for e in sync_db.get_all()}


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "existing, incoming, op, action",
    [
        (None, ADD, LogOp.INSERT, ADD),
        (None, CHANGE, LogOp.INSERT, CHANGE),
        (None, DELETE, LogOp.INSERT, DELETE),
        (ADD, DELETE, LogOp.REMOVE, None),
        (CHANGE, DELETE, LogOp.REPLACE, DELETE),
        (DELETE, ADD, LogOp.REPLACE, CHANGE),
        (ADD, ADD, LogOp.KEEP, ADD),
        (ADD, CHANGE, LogOp.KEEP, ADD),
        (CHANGE, ADD, LogOp.KEEP, CHANGE),
        (CHANGE, CHANGE, LogOp.KEEP, CHANGE),
        (DELETE, CHANGE, LogOp.KEEP, DELETE),
        (DELETE, DELETE, LogOp.KEEP, DELETE),
    ],
)
def test_transition_table(existing, incoming, op, action):
    step = transition(existing, incoming)
    assert step.op is op
    assert step.action is action


# ---------------------------------------------------------------------------
# Folding event sequences
# ---------------------------------------------------------------------------


class TestSequences:
    def test_add_then_delete_leaves_nothing(self, reconciler, sync_db):
        reconciler.handle(_event(ADD))
        reconciler.handle(_event(DELETE))
        assert sync_db.get_all() == []

    def test_change_then_delete_becomes_delete(self, reconciler, sync_db):
        reconciler.handle(_event(CHANGE))
        reconciler.handle(_event(DELETE))
        assert _actions(sync_db) == {(42, DELETE)}

    def test_delete_then_add_becomes_change(self, reconciler, sync_db):
        reconciler.handle(_event(DELETE))
        reconciler.handle(_event(ADD))
        assert _actions(sync_db) == {(42, CHANGE)}

    def test_add_then_changes_stays_add(self, reconciler, sync_db):
        reconciler.handle(_event(ADD))
        reconciler.handle(_event(CHANGE))
        reconciler.handle(_event(CHANGE))
        assert _actions(sync_db) == {(42, ADD)}

    def test_one_entry_per_entity(self, reconciler, sync_db):
        for key in (1, 2, 3):
            reconciler.handle(_event(ADD, id=key))
            reconciler.handle(_event(CHANGE, id=key))
        assert sync_db.count() == 3

    def test_keep_refreshes_uid(self, reconciler, sync_db):
        reconciler.handle(_event(ADD))
        reconciler.handle(_event(CHANGE, url="https://cal.example/42"))
        entry = sync_db.get(42, ObjectType.APPOINTMENT)
        assert entry.action is ADD
        assert entry.uid == "https://cal.example/42"


# ---------------------------------------------------------------------------
# Enablement and filtering
# ---------------------------------------------------------------------------


class TestEnablement:
    def test_disabled_drops_events(self, sync_db):
        reconciler = SyncLogReconciler(sync_db, enabled=False)
        assert reconciler.handle(_event(ADD)) is None
        assert sync_db.get_all() == []

        reconciler.set_enabled(True)
        reconciler.handle(_event(ADD))
        assert sync_db.count() == 1

    def test_suspended_restores_previous_state(self, reconciler, sync_db):
        with reconciler.suspended():
            assert not reconciler.enabled
            reconciler.handle(_event(ADD))
        assert reconciler.enabled
        assert sync_db.get_all() == []

    def test_suspended_leaves_disabled_reconciler_disabled(self, sync_db):
        reconciler = SyncLogReconciler(sync_db)
        with reconciler.suspended():
            pass
        assert not reconciler.enabled

    def test_untracked_object_type_is_dropped(self, reconciler, sync_db):
        event = ChangeEvent(make_appt(date(2025, 1, 15), id=7), ADD, ObjectType.TASK)
        assert reconciler.handle(event) is None
        assert sync_db.get_all() == []


class TestSyncUid:
    def test_url_wins(self):
        appt = make_appt(date(2025, 1, 15), id=5, uid="u-1", url="https://x/5")
        assert sync_uid(appt) == "https://x/5"

    def test_uid_when_no_url(self):
        assert sync_uid(make_appt(date(2025, 1, 15), id=5, uid="u-1")) == "u-1"

    def test_synthesized_when_neither(self):
        assert sync_uid(make_appt(date(2025, 1, 15), id=5)) == "5@apptbook"


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------


class _BrokenLog:
    def __init__(self):
        self.rollbacks = 0

    def get(self, entity_id, object_type):
        raise sqlite3.OperationalError("disk I/O error")

    def rollback(self):
        self.rollbacks += 1


def test_storage_failure_raises_store_error_and_rolls_back():
    log = _BrokenLog()
    reconciler = SyncLogReconciler(log, enabled=True)
    with pytest.raises(StoreError):
        reconciler.handle(_event(ADD))
    assert log.rollbacks == 1


# ---------------------------------------------------------------------------
# Bus wiring
# ---------------------------------------------------------------------------


class TestModelWiring:
    @pytest.fixture
    def wired(self, fake_store, reconciler):
        model = AppointmentModel(fake_store, clock=lambda: TODAY)
        model.bus.subscribe(reconciler)
        model.open()
        return model

    def test_model_mutations_reach_the_log(self, wired, sync_db):
        key = wired.add(make_appt(date(2025, 1, 15)))
        assert _actions(sync_db) == {(key, ADD)}

        wired.delete(key)
        assert sync_db.get_all() == []

    def test_index_keeps_working_when_log_fails(self, fake_store):
        model = AppointmentModel(fake_store, clock=lambda: TODAY)
        model.bus.subscribe(SyncLogReconciler(_BrokenLog(), enabled=True))
        model.open()
        key = model.add(make_appt(date(2025, 1, 15)))
        assert model.appointment_ids_on(date(2025, 1, 15)) == (key,)
