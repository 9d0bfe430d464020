"""
Repeat expansion for recurring appointments.

Month and year steps are always computed from the anchor date with
``relativedelta`` (Jan 31 + 1 month = Feb 28, Jan 31 + 2 months = Mar 31),
so a series never drifts towards the start of the month.
"""

import logging
from collections.abc import Iterable
from collections.abc import Iterator
from datetime import date
from datetime import datetime
from datetime import timedelta

from dateutil.relativedelta import FR
from dateutil.relativedelta import MO
from dateutil.relativedelta import SA
from dateutil.relativedelta import SU
from dateutil.relativedelta import TH
from dateutil.relativedelta import TU
from dateutil.relativedelta import WE
from dateutil.relativedelta import relativedelta

from apptbook.keys import day_key_for
from apptbook.models import InvalidRecurrenceError

_logger = logging.getLogger(__name__)

ONCE = "once"
DAILY = "daily"
WEEKLY = "weekly"
BIWEEKLY = "2weeks"
MONTHLY = "monthly"
MONTHLY_DAY = "monthly_day"
YEARLY = "yearly"
WEEKDAYS = "weekdays"
WEEKENDS = "weekends"
MWF = "mwf"
TTH = "tth"
NDAYS = "ndays"

# Tokens meaning "this appointment does not repeat".
NON_REPEATING = frozenset({"", "none"})

# Occurrences are only materialized up to this many years past the current one.
YEARS_AHEAD = 2

_DAY_SETS = {
    WEEKDAYS: frozenset({0, 1, 2, 3, 4}),
    WEEKENDS: frozenset({5, 6}),
    MWF: frozenset({0, 2, 4}),
    TTH: frozenset({1, 3}),
}

_WEEKDAY_ORDINALS = (MO, TU, WE, TH, FR, SA, SU)

_FIXED_STEPS = {
    DAILY: relativedelta(days=1),
    WEEKLY: relativedelta(weeks=1),
    BIWEEKLY: relativedelta(weeks=2),
    MONTHLY: relativedelta(months=1),
    YEARLY: relativedelta(years=1),
}

FREQUENCIES = (
    ONCE,
    DAILY,
    WEEKLY,
    BIWEEKLY,
    MONTHLY,
    MONTHLY_DAY,
    YEARLY,
    WEEKDAYS,
    WEEKENDS,
    MWF,
    TTH,
    NDAYS,
)


def parse_frequency(token: str | None) -> tuple[str | None, int]:
    """Split a stored frequency token into ``(name, interval)``.

    ``ndays,3`` becomes ``("ndays", 3)``; every other token has interval 1.
    Non-repeating tokens return ``(None, 1)``.

    Raises:
        InvalidRecurrenceError: the token is not one of FREQUENCIES.
    """
    if token is None or token.strip().lower() in NON_REPEATING:
        return None, 1

    name, _, arg = token.strip().lower().partition(",")
    if name not in FREQUENCIES:
        raise InvalidRecurrenceError(f"Unknown repeat frequency: {token!r}")

    if name == NDAYS:
        try:
            interval = int(arg)
        except ValueError:
            raise InvalidRecurrenceError(f"Bad day count in frequency: {token!r}") from None
        if interval < 1:
            raise InvalidRecurrenceError(f"Bad day count in frequency: {token!r}")
        return name, interval

    return name, 1


class Repeat:
    """Calendar arithmetic for one series, anchored at its first date."""

    def __init__(self, anchor: date, frequency: str | None):
        if isinstance(anchor, datetime):
            anchor = anchor.date()
        self.anchor = anchor
        self.frequency, self.interval = parse_frequency(frequency)

    @property
    def is_repeating(self) -> bool:
        return self.frequency not in (None, ONCE)

    def steps(self, times: int) -> Iterator[date | None]:
        """Yield ``times`` raw steps of the series.

        A step is ``None`` when the calendar has no matching day for it
        (e.g. a fifth Tuesday in a month with four). Callers skip such
        steps and carry on with the next one.
        """
        if not self.is_repeating:
            if times > 0:
                yield self.anchor
            return

        if self.frequency in _DAY_SETS:
            yield from self._day_set_steps(times, _DAY_SETS[self.frequency])
            return

        for i in range(times):
            yield self._nth(i)

    def _nth(self, i: int) -> date | None:
        if self.frequency == NDAYS:
            return self.anchor + timedelta(days=self.interval * i)
        if self.frequency == MONTHLY_DAY:
            return self._nth_weekday_of_month(i)
        step = _FIXED_STEPS[self.frequency]
        return self.anchor + step * i

    def _nth_weekday_of_month(self, i: int) -> date | None:
        ordinal = (self.anchor.day - 1) // 7 + 1
        first = self.anchor + relativedelta(months=i, day=1)
        candidate = first + relativedelta(weekday=_WEEKDAY_ORDINALS[self.anchor.weekday()](ordinal))
        if candidate.month != first.month:
            return None
        return candidate

    def _day_set_steps(self, times: int, days: frozenset[int]) -> Iterator[date | None]:
        cursor = self.anchor
        for i in range(times):
            if i == 0:
                yield cursor if cursor.weekday() in days else None
                continue
            cursor += timedelta(days=1)
            while cursor.weekday() not in days:
                cursor += timedelta(days=1)
            yield cursor


def expand_occurrences(
    anchor: date,
    frequency: str | None,
    times: int | None,
    skip_set: Iterable[int] = (),
    today: date | None = None,
) -> Iterator[date]:
    """Yield the materialized occurrence dates of a series.

    At most ``times`` steps are taken; ``times`` absent or <= 1 yields just
    the anchor. Steps whose day key is in ``skip_set`` are dropped without
    shifting later occurrences. Expansion stops at the first occurrence past
    ``today.year + YEARS_AHEAD``. An unknown frequency yields nothing.
    """
    try:
        repeat = Repeat(anchor, frequency)
    except InvalidRecurrenceError as e:
        _logger.warning("Skipping series anchored at %s: %s", anchor, e)
        return

    skips = skip_set if isinstance(skip_set, (set, frozenset)) else set(skip_set)
    last_year = (today or date.today()).year + YEARS_AHEAD
    count = times if times is not None and times > 1 else 1

    for current in repeat.steps(count):
        if current is None:
            continue
        if current.year > last_year:
            break
        if day_key_for(current) in skips:
            continue
        yield current


def occurrence_keys(
    anchor: date,
    frequency: str | None,
    times: int | None,
    skip_set: Iterable[int] = (),
    today: date | None = None,
) -> Iterator[int]:
    """Day keys of :func:`expand_occurrences`."""
    for current in expand_occurrences(anchor, frequency, times, skip_set, today):
        yield day_key_for(current)


def next_todo_after(
    anchor: date,
    frequency: str | None,
    times: int | None,
    current: date,
    skip_set: Iterable[int] = (),
) -> date | None:
    """Return the occurrence after ``current``, or None if ``current`` is the last.

    No year cutoff applies: a todo series is walked to its real end.
    """
    try:
        repeat = Repeat(anchor, frequency)
    except InvalidRecurrenceError as e:
        _logger.warning("Cannot advance todo anchored at %s: %s", anchor, e)
        return None
    if not repeat.is_repeating or times is None or times <= 1:
        return None

    if isinstance(current, datetime):
        current = current.date()
    skips = set(skip_set)
    seen_current = False
    for step in repeat.steps(times):
        if step is None or day_key_for(step) in skips:
            continue
        if seen_current:
            return step
        if step >= current:
            seen_current = True
    return None


def parse_skip_entry(entry) -> int:
    """Convert one stored skip-list entry to a day key.

    Raises:
        InvalidRecurrenceError: the entry is not a non-negative integer key.
    """
    try:
        key = int(entry)
    except (TypeError, ValueError):
        raise InvalidRecurrenceError(f"Malformed skip entry: {entry!r}") from None
    if key < 0:
        raise InvalidRecurrenceError(f"Malformed skip entry: {entry!r}")
    return key


def parse_skip_set(entries: Iterable | None) -> set[int]:
    """Parse a stored skip list, dropping (and logging) malformed entries."""
    keys: set[int] = set()
    for entry in entries or ():
        try:
            keys.add(parse_skip_entry(entry))
        except InvalidRecurrenceError as e:
            _logger.warning("%s", e)
    return keys
