"""
Temporal Utility Functions.

This module provides calendar arithmetic shared by the recurring series
engine: month stepping with day clamping, month-end detection and the
``YYYY-MM`` month labels used for grouping.
"""

from calendar import monthrange
from datetime import date, datetime
from typing import Union


def days_in_month(year: int, month: int) -> int:
    """Return the number of days in the given month."""
    return monthrange(year, month)[1]


def last_day_of_month(d: date) -> date:
    """Return the last calendar day of the month containing ``d``."""
    return date(d.year, d.month, days_in_month(d.year, d.month))


def add_months(d: date, months: int, anchor_day: int = 0) -> date:
    """
    Step a date forward (or backward) by whole calendar months.

    The day of month is clamped to the length of the target month, so
    January 31st plus one month is the last day of February.

    Args:
        d: Starting date
        months: Number of months to add (may be negative)
        anchor_day: Day of month to aim for instead of ``d.day``. Used when
            stepping repeatedly so that a clamped day (Feb 28) does not
            drag every later month down with it.

    Returns:
        The stepped date
    """
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = anchor_day or d.day
    return date(year, month, min(day, days_in_month(year, month)))


def first_of_next_month(d: date) -> date:
    """Return the first day of the month after ``d``."""
    return add_months(date(d.year, d.month, 1), 1)


def is_within_month_end(d: date, window_days: int) -> bool:
    """
    Check if a date falls within the last ``window_days`` days of its month.

    Args:
        d: Date to check
        window_days: Size of the month-end window (3 means the last three days)

    Returns:
        True if the date is inside the window
    """
    return d.day > days_in_month(d.year, d.month) - window_days


def month_label(d: date) -> str:
    """Return the ``YYYY-MM`` label for a date. Labels sort chronologically."""
    return f"{d.year:04d}-{d.month:02d}"


def to_date(value: Union[date, datetime, str]) -> date:
    """
    Coerce an ISO date string, datetime or date into a date.

    Raises:
        ValueError: If a string is not a valid ISO calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # Accept full timestamps from the feed and keep only the calendar date
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Cannot interpret {value!r} as a calendar date")
