"""
AppointmentModel: the context object every view and command works through.

It owns the record-store handle, the day index, the category filter, the
mutation bus and the view listeners. Every mutation commits to the store,
then publishes one ChangeEvent; the model's own bus subscriber rebuilds the
day index and notifies the listeners. Other subscribers (the sync-log
reconciler) hear the same event independently.
"""

import copy
import logging
from collections.abc import Callable
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import date

from apptbook.categories import CategoryFilter
from apptbook.categories import collect_categories
from apptbook.day_index import DayIndex
from apptbook.events import ChangeBus
from apptbook.keys import SLOTS_PER_DAY
from apptbook.keys import day_key_for
from apptbook.keys import sequence
from apptbook.models import AppConfig
from apptbook.models import Appointment
from apptbook.models import AppointmentError
from apptbook.models import ChangeAction
from apptbook.models import ChangeEvent
from apptbook.models import DuplicateKeyError
from apptbook.models import Failed
from apptbook.models import Found
from apptbook.models import NotFound
from apptbook.models import NotFoundError
from apptbook.models import ReadResult
from apptbook.models import StoreError
from apptbook.recurrence import next_todo_after

Listener = Callable[[], None]


class AppointmentModel:
    """Appointment operations over one record store."""

    def __init__(
        self,
        store,
        config: AppConfig | None = None,
        bus: ChangeBus | None = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.soft_delete = config.soft_delete if config else False
        self.categories = CategoryFilter(config.hidden_categories if config else ())
        self.index = DayIndex()
        self.bus = bus or ChangeBus()
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._listeners: list[Listener] = []
        self._batch_depth = 0
        self.bus.subscribe(self._on_change)

    def open(self):
        """Build the day index for the first time."""
        self.index.build(self.store, self.categories.shows, today=self.clock())

    def close(self):
        self.bus.unsubscribe(self._on_change)
        self._listeners.clear()

    # ------------------------------------------------------------------ #
    # Listeners and index refresh                                          #
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def refresh(self):
        """Rebuild the day index, then tell every listener.

        Listeners are told even when the rebuild fails, so views show
        whatever is currently knowable; the rebuild error is raised after.
        """
        try:
            self.index.build(self.store, self.categories.shows, today=self.clock())
        finally:
            self._broadcast()

    def _broadcast(self):
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                self.logger.error(f"View listener failed: {e}")

    def _on_change(self, event: ChangeEvent):
        if self._batch_depth:
            return
        self.refresh()

    def _refresh_best_effort(self):
        if self._batch_depth:
            return
        try:
            self.refresh()
        except AppointmentError as e:
            self.logger.error(f"Day index rebuild failed: {e}")

    @contextmanager
    def batch(self):
        """Suppress per-mutation rebuilds; rebuild and broadcast once on exit."""
        self._batch_depth += 1
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                if failed:
                    self._refresh_best_effort()
                else:
                    self.refresh()

    def _publish(self, record: Appointment, action: ChangeAction):
        event = ChangeEvent(copy.deepcopy(record), action)
        for failure in self.bus.publish(event):
            if failure.subscriber == self._on_change:
                raise failure.error

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def find(self, key: int) -> ReadResult:
        return self.store.read(key)

    def get(self, key: int) -> Appointment:
        """Read one record.

        Raises:
            NotFoundError: no record has that id.
            StoreError: the store could not answer.
        """
        result = self.store.read(key)
        if isinstance(result, Found):
            return result.record
        if isinstance(result, NotFound):
            raise NotFoundError(f"Appointment {key} not found")
        raise _as_store_error(result)

    def appointment_ids_on(self, day: date) -> tuple[int, ...]:
        return self.index.lookup(day_key_for(day))

    def appointments_on(self, day: date) -> list[Appointment]:
        """Records indexed on ``day``. Ids the store no longer knows are skipped."""
        appts = []
        for key in self.appointment_ids_on(day):
            result = self.store.read(key)
            if isinstance(result, Found):
                appts.append(result.record)
            elif isinstance(result, NotFound):
                self.logger.debug(f"Index entry {key} has no record; skipping")
            else:
                raise _as_store_error(result)
        return appts

    def all_appointments(self) -> list[Appointment]:
        return [a for a in self._scan() if not a.deleted]

    def deleted_appointments(self) -> list[Appointment]:
        return [a for a in self._scan() if a.deleted]

    def _scan(self) -> list[Appointment]:
        try:
            return self.store.scan_all()
        except NotFoundError:
            return []

    def search(self, text: str) -> list[Appointment]:
        """Shown, non-deleted appointments whose text contains ``text``."""
        return [
            a
            for a in self.all_appointments()
            if self.categories.shows(a) and a.text and text in a.text
        ]

    def todos(self) -> list[Appointment]:
        """Open todos in shown categories."""
        todos = []
        for key in sorted(self._todo_ids()):
            result = self.store.read(key)
            if isinstance(result, NotFound):
                continue
            if isinstance(result, Failed):
                raise _as_store_error(result)
            appt = result.record
            if appt.deleted or not self.categories.shows(appt):
                continue
            todos.append(appt)
        return todos

    def has_todos(self) -> bool:
        return bool(self._todo_ids())

    def _todo_ids(self) -> set[int]:
        try:
            return self.store.todo_ids()
        except NotFoundError:
            return set()

    def categories_in_use(self) -> list[str]:
        return collect_categories(self.all_appointments())

    def set_category_shown(self, category: str | None, shown: bool):
        if shown:
            self.categories.show(category)
        else:
            self.categories.hide(category)
        self.refresh()

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def allocate_next_id(self, when: date) -> int:
        """Return the first id at or after the day's base key the store does not hold.

        The store is asked about every candidate; the day index may lag
        behind a commit and is never consulted here.

        Raises:
            DuplicateKeyError: all slots of the day are taken.
            StoreError: the store could not answer.
        """
        base = day_key_for(when)
        for key in range(base, base + SLOTS_PER_DAY):
            result = self.store.read(key)
            if isinstance(result, NotFound):
                return key
            if isinstance(result, Failed):
                raise _as_store_error(result)
        raise DuplicateKeyError(f"No free appointment slot left on {when:%Y-%m-%d}")

    def save(self, appt: Appointment, add: bool = False) -> int:
        """Create (``add``) or update one record and publish the change.

        On a store failure the index is still rebuilt (outside a batch) and
        the error re-raised.
        """
        try:
            if add:
                appt.id = self.allocate_next_id(appt.date)
                self.store.create(appt)
                action = ChangeAction.ADD
            else:
                self.store.update(appt)
                action = ChangeAction.CHANGE
        except AppointmentError:
            self._refresh_best_effort()
            raise

        self._publish(appt, action)
        return appt.id

    def add(self, appt: Appointment) -> int:
        return self.save(appt, add=True)

    def update(self, appt: Appointment) -> int:
        return self.save(appt, add=False)

    def sync_save(self, appt: Appointment) -> int:
        """Write a record received from a foreign sync: new when its id is -1."""
        return self.save(appt, add=appt.id == -1)

    def delete(self, key: int) -> bool:
        """Delete one record (soft delete when configured).

        Returns False when the record was already gone. The index is
        refreshed either way, since the failure may come from a concurrent
        sync having removed the row.
        """
        try:
            appt = self.get(key)
            if self.soft_delete:
                appt.deleted = True
                self.store.update(appt)
            else:
                self.store.delete(key)
        except NotFoundError:
            self.logger.warning(f"Appointment {key} already deleted")
            self._refresh_best_effort()
            return False
        except AppointmentError:
            self._refresh_best_effort()
            raise

        self._publish(appt, ChangeAction.DELETE)
        return True

    def force_delete(self, key: int) -> bool:
        """Physically delete a record regardless of the soft-delete setting."""
        try:
            appt = self.get(key)
            self.store.delete(key)
        except NotFoundError:
            self._refresh_best_effort()
            return False
        except AppointmentError:
            self._refresh_best_effort()
            raise

        self._publish(appt, ChangeAction.DELETE)
        return True

    def delete_one_occurrence(self, key: int, occurrence: date):
        """Cancel a single occurrence of a repeating appointment."""
        appt = self.get(key)
        if not appt.repeats:
            raise AppointmentError(f"Appointment {key} does not repeat")
        appt.skip_list.add(day_key_for(occurrence))
        self.update(appt)

    def bulk_add(self, appts: Iterable[Appointment]) -> list[int]:
        """Add many records with a single rebuild and broadcast at the end."""
        with self.batch():
            return [self.save(appt, add=True) for appt in appts]

    def import_appointments(self, appts: Iterable[Appointment]) -> list[int]:
        """Store records that may carry their own ids.

        A record without an id starts at its day's base key. On a collision
        the candidate id is incremented until a free slot of the same day is
        found.
        """
        ids = []
        with self.batch():
            for appt in appts:
                if appt.id <= 0:
                    appt.id = day_key_for(appt.date)
                while True:
                    try:
                        self.store.create(appt)
                        break
                    except DuplicateKeyError:
                        appt.id += 1
                        if sequence(appt.id) == 0:
                            raise DuplicateKeyError(
                                f"No free appointment slot left on {appt.date:%Y-%m-%d}"
                            ) from None
                self._publish(appt, ChangeAction.ADD)
                ids.append(appt.id)
        return ids

    def mark_todo_done(self, key: int, delete: bool = False) -> date | None:
        """Complete the current todo occurrence.

        A repeating todo moves on to its next occurrence, which is returned.
        Past the last occurrence the todo is switched off, or deleted when
        ``delete`` is set, and None is returned.
        """
        appt = self.get(key)
        anchor = appt.date.date()
        current = appt.next_todo or anchor
        following = next_todo_after(anchor, appt.frequency, appt.times, current, appt.skip_list)

        if following is not None:
            appt.next_todo = following
            self.update(appt)
            return following

        if delete:
            self.delete(key)
        else:
            appt.todo = False
            appt.next_todo = None
            self.update(appt)
        return None


def _as_store_error(result: Failed) -> StoreError:
    if isinstance(result.cause, StoreError):
        return result.cause
    return StoreError(str(result.cause))
