"""
Drain the sync log into a replication target.
"""

from apptbook.db import SyncLogDatabase
from apptbook.model import AppointmentModel
from apptbook.models import AppConfig
from apptbook.models import AppointmentError
from apptbook.models import ChangeAction
from apptbook.models import Failed
from apptbook.models import Found
from apptbook.models import NotFound
from apptbook.models import ObjectType
from apptbook.models import ReplicationError
from apptbook.models import SyncEntry
from apptbook.models import SyncStats
from apptbook.sync.reconciler import sync_uid
from apptbook.sync.targets import ReplicationTarget


def _replicate_put(
    config: AppConfig,
    stats: SyncStats,
    logger,
    entry: SyncEntry,
    model: AppointmentModel,
    sync_db: SyncLogDatabase,
    target: ReplicationTarget,
):
    """Push the current version of an added or changed appointment."""
    result = model.find(entry.id)
    if isinstance(result, NotFound):
        # Gone locally without a DELETE reaching the log: nothing left to push.
        logger.warning(f"Appointment {entry.id} no longer exists; dropping {entry.action.value}")
        if not config.dry_run:
            sync_db.delete(entry.id, entry.object_type)
            sync_db.commit()
        return
    if isinstance(result, Failed):
        logger.error(f"Failed to read appointment {entry.id}: {result.cause}")
        stats.errors += 1
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] Would {entry.action.value}: {entry.id} ({entry.uid})")
    else:
        try:
            target.put(entry.uid, result.record)
        except (ReplicationError, OSError) as e:
            logger.error(f"Failed to replicate {entry.id} ({entry.uid}): {e}")
            stats.errors += 1
            return
        sync_db.delete(entry.id, entry.object_type)
        sync_db.commit()
        logger.debug(f"Replicated {entry.action.value} of {entry.id} as {entry.uid}")

    if entry.action is ChangeAction.ADD:
        stats.added += 1
    else:
        stats.modified += 1


def _replicate_delete(
    config: AppConfig,
    stats: SyncStats,
    logger,
    entry: SyncEntry,
    model: AppointmentModel,
    sync_db: SyncLogDatabase,
    target: ReplicationTarget,
):
    """Remove the remote copy, then purge a soft-deleted local row."""
    if config.dry_run:
        logger.info(f"[DRY RUN] Would DELETE: {entry.id} ({entry.uid})")
        stats.deleted += 1
        return

    try:
        target.remove(entry.uid)
    except (ReplicationError, OSError) as e:
        logger.error(f"Failed to remove {entry.id} ({entry.uid}): {e}")
        stats.errors += 1
        return

    result = model.find(entry.id)
    if isinstance(result, Found) and result.record.deleted:
        try:
            model.force_delete(entry.id)
        except AppointmentError as e:
            logger.warning(f"Replicated delete of {entry.id} but could not purge it: {e}")

    sync_db.delete(entry.id, entry.object_type)
    sync_db.commit()
    stats.deleted += 1
    logger.debug(f"Replicated DELETE of {entry.id} ({entry.uid})")


def run_one_way(
    config: AppConfig,
    stats: SyncStats,
    logger,
    model: AppointmentModel,
    sync_db: SyncLogDatabase,
    target: ReplicationTarget,
):
    """Apply every pending entry. Successful entries leave the log; failed ones stay."""
    entries = sync_db.get_all()
    if not entries:
        logger.info("Sync log is empty - nothing to replicate")
        return

    logger.info(f"Replicating {len(entries)} pending change(s)...")
    for entry in entries:
        if entry.object_type is not ObjectType.APPOINTMENT:
            logger.debug(f"Skipping untracked {entry.object_type.value} {entry.id}")
            continue
        if entry.action is ChangeAction.DELETE:
            _replicate_delete(config, stats, logger, entry, model, sync_db, target)
        else:
            _replicate_put(config, stats, logger, entry, model, sync_db, target)


def perform_overwrite(
    config: AppConfig,
    stats: SyncStats,
    logger,
    model: AppointmentModel,
    sync_db: SyncLogDatabase,
    target: ReplicationTarget,
):
    """Rebuild the target wholesale from the store.

    The pending log is reset to an ADD entry for each appointment that
    could not be pushed.
    """
    logger.warning("OVERWRITE MODE: replacing every remote appointment...")
    appts = model.all_appointments()
    purged = model.deleted_appointments()

    if config.dry_run:
        logger.info(f"[DRY RUN] Would clear the target and push {len(appts)} appointment(s)")
        logger.info(f"[DRY RUN] Would purge {len(purged)} soft-deleted appointment(s)")
        logger.info("[DRY RUN] Would clear the sync log")
        stats.added += len(appts)
        return

    target.clear()
    failed = []
    for appt in appts:
        try:
            target.put(sync_uid(appt), appt)
            stats.added += 1
        except (ReplicationError, OSError) as e:
            logger.error(f"Failed to replicate {appt.id}: {e}")
            stats.errors += 1
            failed.append(appt)

    with model.batch():
        for appt in purged:
            model.force_delete(appt.id)
            stats.deleted += 1

    # Failed puts stay pending as ADD; the cleared target no longer holds them.
    sync_db.clear_all()
    for appt in failed:
        sync_db.insert(SyncEntry(appt.id, ObjectType.APPOINTMENT, sync_uid(appt), ChangeAction.ADD))
    sync_db.commit()
    if failed:
        logger.warning(f"{len(failed)} appointment(s) left pending as ADD after failed overwrite")
    logger.info(f"Overwrite complete: pushed {stats.added} appointment(s)")


def perform_rebuild_log(
    config: AppConfig,
    stats: SyncStats,
    logger,
    model: AppointmentModel,
    sync_db: SyncLogDatabase,
):
    """Re-derive the log from scratch: one ADD per live appointment."""
    appts = model.all_appointments()
    if config.dry_run:
        logger.info(f"[DRY RUN] Would reset the sync log to {len(appts)} ADD entries")
        return

    sync_db.clear_all()
    for appt in appts:
        sync_db.insert(SyncEntry(appt.id, ObjectType.APPOINTMENT, sync_uid(appt), ChangeAction.ADD))
    sync_db.commit()
    stats.added += len(appts)
    logger.info(f"Sync log rebuilt with {len(appts)} pending ADD entries")
