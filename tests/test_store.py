"""
Unit tests for the SQLite AppointmentStore.
"""

from datetime import date
from datetime import datetime

import pytest

from apptbook.models import Appointment
from apptbook.models import DuplicateKeyError
from apptbook.models import Found
from apptbook.models import NotFound
from apptbook.models import NotFoundError
from apptbook.models import StoreError
from apptbook.store import AppointmentStore
from tests.conftest import make_appt
from tests.conftest import make_repeat

DAY = date(2025, 1, 15)
BASE = 125011500


class TestCrud:
    def test_create_then_read_preserves_fields(self, store):
        appt = Appointment(
            date=datetime(2025, 1, 15, 14, 30),
            text="Piano lesson",
            id=BASE,
            duration=45,
            frequency="weekly",
            times=10,
            skip_list={125012200, 125012900},
            category="Family",
            todo=True,
            next_todo=date(2025, 1, 22),
            uid="abc-123",
            url="https://cal.example/abc",
        )
        store.create(appt)

        result = store.read(BASE)
        assert isinstance(result, Found)
        assert result.record == appt

    def test_create_duplicate_raises(self, store):
        store.create(make_appt(DAY, id=BASE))
        with pytest.raises(DuplicateKeyError):
            store.create(make_appt(DAY, "Other", id=BASE))

    def test_create_without_id_raises(self, store):
        with pytest.raises(StoreError):
            store.create(make_appt(DAY))

    def test_read_missing_is_not_found(self, store):
        assert store.read(BASE) == NotFound(BASE)

    def test_update_overwrites(self, store):
        store.create(make_appt(DAY, "Before", id=BASE))
        store.update(make_appt(DAY, "After", id=BASE))
        assert store.read(BASE).record.text == "After"

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update(make_appt(DAY, id=BASE))

    def test_delete_missing_raises(self, store):
        store.create(make_appt(DAY, id=BASE))
        store.delete(BASE)
        with pytest.raises(NotFoundError):
            store.delete(BASE)


class TestScans:
    def test_scan_all_includes_deleted_in_id_order(self, store):
        store.create(make_appt(DAY, id=BASE + 1, deleted=True))
        store.create(make_appt(DAY, id=BASE))
        assert [(a.id, a.deleted) for a in store.scan_all()] == [(BASE, False), (BASE + 1, True)]

    def test_repeat_ids_need_frequency_and_several_times(self, store):
        store.create(make_repeat(DAY, "weekly", 4, id=BASE))
        store.create(make_repeat(DAY, "weekly", 1, id=BASE + 1))
        store.create(make_repeat(DAY, "", 4, id=BASE + 2))
        store.create(make_appt(DAY, id=BASE + 3))
        assert store.repeat_ids() == {BASE}

    def test_todo_ids(self, store):
        store.create(make_appt(DAY, id=BASE, todo=True))
        store.create(make_appt(DAY, id=BASE + 1))
        assert store.todo_ids() == {BASE}


def test_unopenable_path_raises_store_error(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    with pytest.raises(StoreError):
        AppointmentStore(blocker / "apptbook.db").connect()
