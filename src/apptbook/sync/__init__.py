"""
Replicator: thin orchestrator that delegates to the drain functions.
"""

import logging
from contextlib import nullcontext

from apptbook.db import SyncLogDatabase
from apptbook.model import AppointmentModel
from apptbook.models import AppConfig
from apptbook.models import AppointmentError
from apptbook.models import SyncStats
from apptbook.sync.drain import perform_overwrite
from apptbook.sync.drain import perform_rebuild_log
from apptbook.sync.drain import run_one_way
from apptbook.sync.reconciler import SyncLogReconciler
from apptbook.sync.targets import ReplicationTarget

MODES = ("one-way", "overwrite", "rebuild-log")


class Replicator:
    """Runs one replication pass toward a target."""

    def __init__(
        self,
        config: AppConfig,
        model: AppointmentModel,
        sync_db: SyncLogDatabase,
        target: ReplicationTarget | None,
        reconciler: SyncLogReconciler | None = None,
    ):
        self.config = config
        self.model = model
        self.sync_db = sync_db
        self.target = target
        self.reconciler = reconciler
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()

    def run(self, mode: str = "one-way") -> SyncStats:
        """Execute the replication pass."""
        if mode not in MODES:
            raise AppointmentError(f"Unknown sync mode: {mode!r}")
        if self.target is None and mode != "rebuild-log" and not self.config.dry_run:
            raise AppointmentError("No replication target configured")

        # Purges done while draining are the drain's own doing, not new intents.
        quiet = self.reconciler.suspended() if self.reconciler else nullcontext()
        with quiet:
            args = (self.config, self.stats, self.logger, self.model, self.sync_db)
            if mode == "overwrite":
                perform_overwrite(*args, self.target)
            elif mode == "rebuild-log":
                perform_rebuild_log(*args)
            else:
                run_one_way(*args, self.target)

        return self.stats
