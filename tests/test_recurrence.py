from datetime import date

from models import FixedAccount, Periodicity
from recurrence import calculate_next_date, monthly_equivalent_cents


def fixed(periodicity: Periodicity, start: date, amount: int = 1_200) -> FixedAccount:
    return FixedAccount(periodicity=periodicity, start_date=start, amount_cents=amount)


def test_monthly_keeps_day_of_start_date() -> None:
    rent = fixed(Periodicity.monthly, date(2025, 1, 31))

    february = calculate_next_date(rent, date(2025, 1, 31))
    march = calculate_next_date(rent, february)

    assert february == date(2025, 2, 28)
    assert march == date(2025, 3, 31)


def test_other_periodicities() -> None:
    start = date(2025, 11, 30)
    assert calculate_next_date(fixed(Periodicity.daily, start), start) == date(2025, 12, 1)
    assert calculate_next_date(fixed(Periodicity.weekly, start), start) == date(2025, 12, 7)
    assert calculate_next_date(fixed(Periodicity.quarterly, start), start) == date(2026, 2, 28)
    assert calculate_next_date(fixed(Periodicity.yearly, start), start) == date(2026, 11, 30)


def test_monthly_equivalent() -> None:
    start = date(2025, 1, 1)
    assert monthly_equivalent_cents(fixed(Periodicity.daily, start, 100)) == 3_000
    assert monthly_equivalent_cents(fixed(Periodicity.weekly, start, 1_200)) == 5_200
    assert monthly_equivalent_cents(fixed(Periodicity.monthly, start, 1_200)) == 1_200
    assert monthly_equivalent_cents(fixed(Periodicity.quarterly, start, 3_000)) == 1_000
    assert monthly_equivalent_cents(fixed(Periodicity.yearly, start, 1_200)) == 100
