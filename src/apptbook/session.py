"""
Wiring of store, model, sync log and reconciler for one session.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from apptbook.db import SyncLogDatabase
from apptbook.model import AppointmentModel
from apptbook.models import AppConfig
from apptbook.store import AppointmentStore
from apptbook.sync.reconciler import SyncLogReconciler


@dataclass
class Session:
    config: AppConfig
    model: AppointmentModel
    sync_db: SyncLogDatabase
    reconciler: SyncLogReconciler


@contextmanager
def open_session(config: AppConfig) -> Iterator[Session]:
    """Open the database, build the day index and attach the reconciler."""
    with AppointmentStore(config.db_path) as store, SyncLogDatabase(config.db_path) as sync_db:
        model = AppointmentModel(store, config)
        reconciler = SyncLogReconciler(sync_db, enabled=config.sync_enabled)
        model.bus.subscribe(reconciler)
        model.open()
        try:
            yield Session(config, model, sync_db, reconciler)
        finally:
            model.bus.unsubscribe(reconciler)
            model.close()
