"""
정기 거래 일정 계산 유틸리티

Due-date arithmetic for recurring rules. Everything here is pure: callers pass
the reference date explicitly.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Any

from ledger.models import BudgetPeriod, RecurringFrequency


class UnknownFrequencyError(ValueError):
    pass


def add_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    return new_year, new_month


def clamp_day(year: int, month: int, day: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def _coerce_frequency(frequency: RecurringFrequency | str) -> RecurringFrequency:
    if isinstance(frequency, RecurringFrequency):
        return frequency
    try:
        return RecurringFrequency(str(frequency).strip().upper())
    except ValueError:
        raise UnknownFrequencyError(f"Unknown recurring frequency: {frequency!r}") from None


def advance_due_date(current: date, frequency: RecurringFrequency | str) -> date:
    """Advance ``current`` by exactly one period.

    Monthly and yearly steps keep the day of month and clamp to the last day of
    the receiving month (Jan 31 -> Feb 28/29, Feb 29 -> Feb 28 next year).
    """
    freq = _coerce_frequency(frequency)
    if freq == RecurringFrequency.DAILY:
        return current + timedelta(days=1)
    if freq == RecurringFrequency.WEEKLY:
        return current + timedelta(days=7)
    if freq == RecurringFrequency.MONTHLY:
        year, month = add_month(current.year, current.month, 1)
        return clamp_day(year, month, current.day)
    # YEARLY
    return clamp_day(current.year + 1, current.month, current.day)


def next_schedule(
    next_due_date: date,
    frequency: RecurringFrequency | str,
    *,
    end_date: date | None,
    today: date,
) -> date | None:
    """Return the new ``next_due_date`` after posting, or ``None`` to retire.

    The rule retires when it has an end date and either the advanced date runs
    past it or the end date is the run date itself.
    """
    candidate = advance_due_date(next_due_date, frequency)
    if end_date is not None and (candidate > end_date or end_date == today):
        return None
    return candidate


def period_bounds(period: BudgetPeriod | str, on: date) -> tuple[date, date]:
    """Inclusive calendar period containing ``on``: Monday..Sunday or 1st..last day."""
    key = BudgetPeriod(str(getattr(period, "value", period)).strip().upper())
    if key == BudgetPeriod.WEEKLY:
        start = on - timedelta(days=on.weekday())
        return start, start + timedelta(days=6)
    return on.replace(day=1), clamp_day(on.year, on.month, 31)


def parse_iso_date(value: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (optionally followed by a time part) into a date.

    Returns ``None`` for anything that is not a real calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None
