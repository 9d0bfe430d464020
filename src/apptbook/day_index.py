"""
Day index: maps each day key to the ids of the appointments on that day.

The index is derived from the record store and never persisted. It is
rebuilt from a full scan after every mutation, so views can answer
"what is on this day" without reading the store. A rebuild fills a fresh
dict and publishes it with a single reference swap; readers see either the
old map or the new one, never a half-built map.
"""

import logging
from collections.abc import Callable
from collections.abc import Iterator
from datetime import date

from apptbook.keys import base_key
from apptbook.keys import date_from_key
from apptbook.models import Appointment
from apptbook.models import InvalidRecurrenceError
from apptbook.models import NotFoundError
from apptbook.recurrence import Repeat
from apptbook.recurrence import occurrence_keys

_logger = logging.getLogger(__name__)


class DayIndex:
    """Derived ``day_key -> [appointment id]`` cache."""

    def __init__(self):
        self._map: dict[int, list[int]] = {}

    def lookup(self, day: int) -> tuple[int, ...]:
        """Ids on ``day`` (a day key) in insertion order; empty if none."""
        return tuple(self._map.get(day, ()))

    def days(self) -> list[int]:
        """Sorted day keys that have at least one appointment."""
        return sorted(self._map)

    def __contains__(self, day: int) -> bool:
        return day in self._map

    def __len__(self) -> int:
        return len(self._map)

    def __iter__(self) -> Iterator[int]:
        return iter(self.days())

    def build(
        self,
        store,
        is_shown: Callable[[Appointment], bool],
        today: date | None = None,
    ):
        """Rebuild from a full scan of ``store`` and swap the result in.

        ``NotFoundError`` from either store query is an empty result for
        that query alone. Any other error propagates and leaves the current
        map as it was.
        """
        try:
            appts = store.scan_all()
        except NotFoundError:
            appts = []
        try:
            repeat_ids = store.repeat_ids()
        except NotFoundError:
            repeat_ids = set()

        fresh: dict[int, list[int]] = {}
        for appt in appts:
            if appt.deleted or not is_shown(appt):
                continue

            # if appt does not repeat, its key names its one day
            if appt.id not in repeat_ids:
                fresh.setdefault(base_key(appt.id), []).append(appt.id)
                continue

            for day in _series_days(appt, today):
                fresh.setdefault(day, []).append(appt.id)

        self._map = fresh
        _logger.debug(f"Day index rebuilt: {len(appts)} records over {len(fresh)} days")


def _series_days(appt: Appointment, today: date | None) -> Iterator[int]:
    """Day keys of a repeat-flagged record, anchored at the date its id encodes."""
    anchor = date_from_key(appt.id)
    try:
        repeating = Repeat(anchor, appt.frequency).is_repeating
    except InvalidRecurrenceError as e:
        _logger.warning(f"Appointment {appt.id} left out of the day index: {e}")
        return iter(())
    if not repeating:
        return iter((base_key(appt.id),))
    return occurrence_keys(anchor, appt.frequency, appt.times, appt.skip_list, today)
