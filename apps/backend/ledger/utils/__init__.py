"""
Utils 패키지
"""

from .dates import (
    add_month,
    advance_due_date,
    clamp_day,
    next_schedule,
    parse_iso_date,
    period_bounds,
    UnknownFrequencyError,
)

__all__ = [
    "add_month",
    "advance_due_date",
    "clamp_day",
    "next_schedule",
    "parse_iso_date",
    "period_bounds",
    "UnknownFrequencyError",
]
