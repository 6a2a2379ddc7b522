from datetime import date

import pytest

from periods import add_months, resolve_period


def test_add_months_snaps_to_month_end() -> None:
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2025, 2, 28), 1, desired_day=31) == date(2025, 3, 31)
    assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)


def test_named_periods() -> None:
    today = date(2025, 5, 14)

    month = resolve_period(None, None, None, today=today)
    assert (month.start, month.end) == (date(2025, 5, 1), date(2025, 5, 31))

    quarter = resolve_period("quarter", None, None, today=today)
    assert (quarter.start, quarter.end) == (date(2025, 4, 1), date(2025, 6, 30))

    last_month = resolve_period("last_month", None, None, today=date(2025, 3, 15))
    assert (last_month.start, last_month.end) == (date(2025, 2, 1), date(2025, 2, 28))

    week = resolve_period("week", None, None, today=today)
    assert week.start == date(2025, 5, 12)
    assert week.days == 7

    day = resolve_period("day", None, None, today=today)
    assert (day.start, day.end, day.days) == (today, today, 1)


def test_custom_period_validation() -> None:
    period = resolve_period("custom", "2025-01-01", "2025-01-31")
    assert period.days == 31

    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-01", "2025-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", None, "2025-01-01")
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None)
