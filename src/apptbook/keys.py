"""
Integer day keys for appointments.

Consecutive days are 100 apart, so every day owns the sequence band
``...00`` to ``...99``. The base key of a day ends in ``00`` and the
appointments of that day take the first free slots at or above it.
"""

from datetime import date

SLOTS_PER_DAY = 100


def day_key(year: int, month: int, day: int) -> int:
    """Return the base key for a day. ``month`` is zero-based (January == 0)."""
    return (year - 1900) * 1_000_000 + (month + 1) * 10_000 + day * 100


def day_key_for(when: date) -> int:
    """Return the base key for a ``date`` or ``datetime``."""
    return day_key(when.year, when.month - 1, when.day)


def base_key(key: int) -> int:
    """Strip the sequence number from an appointment id."""
    return (key // SLOTS_PER_DAY) * SLOTS_PER_DAY


def sequence(key: int) -> int:
    return key % SLOTS_PER_DAY


def date_from_key(key: int) -> date:
    year = (key // 1_000_000) % 1000 + 1900
    month = (key // 10_000) % 100
    day = (key // 100) % 100
    return date(year, month, day)


def birthday_key(key: int) -> int:
    """Return the month/day part of a key, for matching anniversaries across years."""
    return base_key(key % 1_000_000)
