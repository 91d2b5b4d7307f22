"""
Recurrence arithmetic tests.
"""

from datetime import date

from backend.app.domain.banking.recurrence import add_months, next_occurrence, recurrence_descriptor
from backend.app.models.banking_enums import Recurrence


def test_descriptor_per_recurrence():
    monday = date(2025, 6, 2)
    assert recurrence_descriptor(Recurrence.ONCE, monday) == (0, None)
    assert recurrence_descriptor(Recurrence.WEEKLY, monday) == (1, 0)
    assert recurrence_descriptor(Recurrence.BIWEEKLY, monday) == (2, 0)
    assert recurrence_descriptor(Recurrence.MONTHLY, date(2025, 1, 31)) == (1, 31)


def test_one_time_has_no_next_occurrence():
    assert next_occurrence(date(2025, 6, 1), Recurrence.ONCE) is None


def test_weekly_and_biweekly_steps():
    assert next_occurrence(date(2025, 6, 1), Recurrence.WEEKLY, 1, 6) == date(2025, 6, 8)
    assert next_occurrence(date(2025, 6, 1), Recurrence.BIWEEKLY, 2, 6) == date(2025, 6, 15)


def test_monthly_keeps_anchor_across_short_months():
    first = next_occurrence(date(2025, 1, 31), Recurrence.MONTHLY, 1, 31)
    assert first == date(2025, 2, 28)

    second = next_occurrence(first, Recurrence.MONTHLY, 1, 31)
    assert second == date(2025, 3, 31)


def test_add_months_rolls_over_year():
    assert add_months(date(2025, 12, 15), 1) == date(2026, 1, 15)
    assert add_months(date(2024, 1, 29), 1) == date(2024, 2, 29)
