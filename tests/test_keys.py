"""
Unit tests for the integer day-key codec.
"""

from datetime import date
from datetime import datetime

from apptbook.keys import base_key
from apptbook.keys import birthday_key
from apptbook.keys import date_from_key
from apptbook.keys import day_key
from apptbook.keys import day_key_for
from apptbook.keys import sequence


class TestDayKey:
    def test_month_is_zero_based(self):
        assert day_key(2025, 0, 15) == 125011500
        assert day_key(1999, 11, 31) == 99123100

    def test_day_key_for_date_and_datetime_agree(self):
        assert day_key_for(date(2025, 1, 15)) == 125011500
        assert day_key_for(datetime(2025, 1, 15, 23, 59)) == 125011500

    def test_keys_sort_like_dates(self):
        days = [date(2024, 12, 31), date(2025, 1, 1), date(2025, 1, 31), date(2025, 2, 1)]
        keys = [day_key_for(d) for d in days]
        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)

    def test_base_key_ends_in_two_zeros(self):
        assert day_key_for(date(2030, 7, 4)) % 100 == 0


class TestDecoding:
    def test_base_key_and_sequence(self):
        assert base_key(125011503) == 125011500
        assert sequence(125011503) == 3
        assert sequence(125011500) == 0

    def test_date_from_key_ignores_sequence(self):
        assert date_from_key(125011503) == date(2025, 1, 15)
        assert date_from_key(99123100) == date(1999, 12, 31)

    def test_date_from_key_inverts_day_key_for(self):
        for d in (date(1970, 1, 1), date(2000, 2, 29), date(2025, 12, 31)):
            assert date_from_key(day_key_for(d)) == d


class TestBirthdayKey:
    def test_same_month_and_day_in_different_years_match(self):
        assert birthday_key(day_key_for(date(2025, 1, 15)) + 3) == birthday_key(
            day_key_for(date(1990, 1, 15)) + 7
        )

    def test_different_days_do_not_match(self):
        assert birthday_key(day_key_for(date(2025, 1, 15))) != birthday_key(
            day_key_for(date(2025, 1, 16))
        )

    def test_keeps_month_and_day_only(self):
        assert birthday_key(125011503) == 11500
