"""
Shared pytest fixtures and appointment helpers.
"""

import logging
from datetime import date
from datetime import datetime
from datetime import time

import pytest

from apptbook.db import SyncLogDatabase
from apptbook.model import AppointmentModel
from apptbook.models import AppConfig
from apptbook.models import Appointment
from apptbook.models import SyncStats
from apptbook.store import AppointmentStore
from apptbook.sync.reconciler import SyncLogReconciler
from tests.fake_store import InMemoryStore

# Fixed "today" for every model built by the fixtures.
TODAY = date(2025, 3, 10)


def make_appt(day: date, text: str = "Test Appointment", at: time = time(9, 0), **fields):
    """Return an Appointment on ``day`` at ``at``; extra fields pass straight through."""
    return Appointment(date=datetime.combine(day, at), text=text, **fields)


def make_repeat(day: date, frequency: str, times: int, text: str = "Repeating", **fields):
    """Return a repeating Appointment anchored at ``day``."""
    return make_appt(day, text, frequency=frequency, times=times, **fields)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "apptbook.db"


@pytest.fixture
def store(db_path):
    with AppointmentStore(db_path) as s:
        yield s


@pytest.fixture
def sync_db(db_path):
    with SyncLogDatabase(db_path) as db:
        yield db


@pytest.fixture
def fake_store():
    return InMemoryStore()


@pytest.fixture
def model(fake_store):
    m = AppointmentModel(fake_store, clock=lambda: TODAY)
    m.open()
    yield m
    m.close()


@pytest.fixture
def reconciler(sync_db):
    return SyncLogReconciler(sync_db, enabled=True)


@pytest.fixture
def app_config(db_path):
    return AppConfig(db_path=db_path, sync_enabled=True)


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
