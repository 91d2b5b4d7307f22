"""
Recurrence arithmetic for scheduled fund operations.
"""

import calendar
from datetime import date, timedelta
from typing import Optional, Tuple

from backend.app.models.banking_enums import Recurrence


def recurrence_descriptor(recurrence: Recurrence, issue_date: date) -> Tuple[int, Optional[int]]:
    """
    Interval and anchor for a recurrence starting on issue_date.

    Weekly kinds anchor on the weekday (0=Monday) and count weeks; monthly
    anchors on the day of month and counts months.

    Returns:
        (recurrence_interval, anchor_day)
    """
    if recurrence == Recurrence.WEEKLY:
        return 1, issue_date.weekday()
    if recurrence == Recurrence.BIWEEKLY:
        return 2, issue_date.weekday()
    if recurrence == Recurrence.MONTHLY:
        return 1, issue_date.day
    return 0, None


def add_months(value: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Same anchor day `months` later, clamped to the end of shorter months.

    >>> add_months(date(2025, 1, 31), 1)
    datetime.date(2025, 2, 28)
    >>> add_months(date(2025, 2, 28), 1, anchor_day=31)
    datetime.date(2025, 3, 31)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = anchor_day or value.day
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def next_occurrence(
    current: date,
    recurrence: Recurrence,
    interval: int = 1,
    anchor_day: Optional[int] = None
) -> Optional[date]:
    """
    Date of the occurrence after `current`, or None for one-time operations.
    """
    if recurrence == Recurrence.ONCE:
        return None

    if recurrence in (Recurrence.WEEKLY, Recurrence.BIWEEKLY):
        weeks = interval or (2 if recurrence == Recurrence.BIWEEKLY else 1)
        return current + timedelta(weeks=weeks)

    return add_months(current, interval or 1, anchor_day)
