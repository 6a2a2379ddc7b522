from datetime import date
from decimal import Decimal

import pytest

from amortization import build_table, simulate_early_payment, term_for_installment
from models import AmortizationMethod


def test_sac_table_has_constant_amortization_and_decreasing_interest() -> None:
    table = build_table(
        120_000, Decimal("0.12"), 12, AmortizationMethod.sac, date(2025, 1, 10)
    )

    assert len(table.rows) == 12
    assert {row.amortization_cents for row in table.rows} == {10_000}
    assert table.rows[0].interest_cents == 1_200
    assert table.rows[0].payment_cents == 11_200
    assert table.rows[-1].interest_cents == 100
    assert table.rows[-1].payment_cents == 10_100
    assert table.rows[-1].balance_cents == 0
    assert table.total_interest_cents == 7_800
    assert table.total_amortization_cents == 120_000


def test_price_table_keeps_installment_and_closes_at_zero() -> None:
    table = build_table(
        100_000, Decimal("0.12"), 12, AmortizationMethod.price, date(2025, 1, 10)
    )

    assert table.first_payment_cents == 8_885
    assert {row.payment_cents for row in table.rows[:-1]} == {8_885}
    assert abs(table.rows[-1].payment_cents - 8_885) <= 12
    assert table.rows[-1].balance_cents == 0
    assert table.total_amortization_cents == 100_000
    interests = [row.interest_cents for row in table.rows]
    assert interests == sorted(interests, reverse=True)


def test_zero_rate_splits_principal_evenly() -> None:
    table = build_table(100_000, 0, 4, AmortizationMethod.price, date(2025, 1, 1))

    assert [row.payment_cents for row in table.rows] == [25_000] * 4
    assert table.total_interest_cents == 0


def test_due_dates_keep_the_start_day_when_months_are_short() -> None:
    table = build_table(
        30_000, Decimal("0.12"), 3, AmortizationMethod.sac, date(2025, 1, 31)
    )

    assert [row.due_date for row in table.rows] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
    ]


def test_build_table_rejects_invalid_input() -> None:
    with pytest.raises(ValueError):
        build_table(0, Decimal("0.1"), 12, AmortizationMethod.sac, date(2025, 1, 1))
    with pytest.raises(ValueError):
        build_table(1_000, Decimal("0.1"), 0, AmortizationMethod.sac, date(2025, 1, 1))
    with pytest.raises(ValueError):
        build_table(1_000, Decimal("-0.1"), 3, AmortizationMethod.sac, date(2025, 1, 1))


def test_early_payment_reducing_term_on_sac() -> None:
    sim = simulate_early_payment(
        120_000,
        Decimal("0.12"),
        12,
        AmortizationMethod.sac,
        60_000,
        "reduce_term",
        date(2025, 2, 10),
    )

    assert sim.balance_after_cents == 60_000
    assert sim.term_before == 12
    assert sim.term_after == 6
    assert sim.installment_before_cents == 11_200
    assert sim.installment_after_cents == 10_600
    assert sim.interest_before_cents == 7_800
    assert sim.interest_after_cents == 2_100
    assert sim.interest_saved_cents == 5_700


def test_early_payment_reducing_installment_on_sac() -> None:
    sim = simulate_early_payment(
        120_000,
        Decimal("0.12"),
        12,
        AmortizationMethod.sac,
        60_000,
        "reduce_installment",
        date(2025, 2, 10),
    )

    assert sim.term_after == 12
    assert sim.installment_after_cents == 5_600
    assert sim.interest_saved_cents == 3_900


def test_early_payment_on_price_reduces_term() -> None:
    sim = simulate_early_payment(
        100_000,
        Decimal("0.12"),
        12,
        AmortizationMethod.price,
        50_000,
        "reduce_term",
        date(2025, 2, 10),
    )

    assert sim.term_after < 12
    assert sim.interest_after_cents < sim.interest_before_cents


def test_early_payment_rejects_bad_requests() -> None:
    args = (100_000, Decimal("0.12"), 12, AmortizationMethod.price)
    with pytest.raises(ValueError):
        simulate_early_payment(*args, 100_000, "reduce_term", date(2025, 1, 1))
    with pytest.raises(ValueError):
        simulate_early_payment(*args, 10_000, "skip_months", date(2025, 1, 1))


def test_term_for_installment_requires_covering_interest() -> None:
    with pytest.raises(ValueError):
        term_for_installment(100_000, Decimal("0.12"), 1_000, AmortizationMethod.price)
    assert term_for_installment(0, Decimal("0.12"), 1_000, AmortizationMethod.price) == 0
