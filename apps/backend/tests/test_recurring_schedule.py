"""
정기 거래 일정 계산 테스트
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from ledger.models import RecurringFrequency
from ledger.utils.dates import (
    UnknownFrequencyError,
    add_month,
    advance_due_date,
    next_schedule,
    parse_iso_date,
)


class TestAdvanceDueDate:
    def test_daily_and_weekly(self):
        assert advance_due_date(date(2024, 2, 28), RecurringFrequency.DAILY) == date(2024, 2, 29)
        assert advance_due_date(date(2024, 12, 31), "DAILY") == date(2025, 1, 1)
        assert advance_due_date(date(2024, 12, 28), RecurringFrequency.WEEKLY) == date(2025, 1, 4)

    @pytest.mark.parametrize(
        "current,expected",
        [
            (date(2024, 1, 31), date(2024, 2, 29)),  # leap year clamp
            (date(2023, 1, 31), date(2023, 2, 28)),
            (date(2024, 3, 31), date(2024, 4, 30)),
            (date(2024, 12, 15), date(2025, 1, 15)),
            (date(2024, 5, 10), date(2024, 6, 10)),
        ],
    )
    def test_monthly_clamps_to_month_end(self, current, expected):
        assert advance_due_date(current, RecurringFrequency.MONTHLY) == expected

    def test_yearly(self):
        assert advance_due_date(date(2024, 2, 29), RecurringFrequency.YEARLY) == date(2025, 2, 28)
        assert advance_due_date(date(2023, 7, 4), RecurringFrequency.YEARLY) == date(2024, 7, 4)

    def test_frequency_strings_are_case_insensitive(self):
        assert advance_due_date(date(2024, 1, 1), "monthly") == date(2024, 2, 1)

    def test_unknown_frequency(self):
        with pytest.raises(UnknownFrequencyError):
            advance_due_date(date(2024, 1, 1), "FORTNIGHTLY")


def test_add_month_wraps_year():
    assert add_month(2024, 12, 1) == (2025, 1)
    assert add_month(2024, 1, -1) == (2023, 12)


class TestNextSchedule:
    def test_without_end_date(self):
        assert next_schedule(date(2024, 1, 31), "MONTHLY", end_date=None, today=date(2024, 2, 1)) == date(2024, 2, 29)

    def test_end_date_today_retires(self):
        assert next_schedule(date(2024, 3, 10), "DAILY", end_date=date(2024, 3, 10), today=date(2024, 3, 10)) is None

    def test_candidate_past_end_date_retires(self):
        assert next_schedule(date(2024, 3, 1), "MONTHLY", end_date=date(2024, 3, 20), today=date(2024, 3, 1)) is None

    def test_candidate_equal_to_end_date_is_kept(self):
        assert next_schedule(date(2024, 3, 3), "WEEKLY", end_date=date(2024, 3, 10), today=date(2024, 3, 3)) == date(2024, 3, 10)


class TestParseIsoDate:
    def test_valid(self):
        assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
        assert parse_iso_date("2024-02-29T13:45:00Z") == date(2024, 2, 29)
        assert parse_iso_date(datetime(2024, 5, 1, 8, 0)) == date(2024, 5, 1)

    def test_invalid(self):
        assert parse_iso_date("2023-02-29") is None
        assert parse_iso_date("not a date") is None
        assert parse_iso_date("") is None
        assert parse_iso_date(None) is None
        assert parse_iso_date(20240101) is None
