"""Installment tables for SAC and Price (French) amortization.

All monetary values are integer cents. Rates are annual fractions
(``Decimal("0.12")`` for 12% a year) and are applied monthly as
``annual / 12``. Every row is rounded half-up to the cent and the final
installment absorbs the rounding residue, so the balance always closes at
exactly zero.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from models import AmortizationMethod
from periods import add_months


class EarlyPaymentPreference:
    reduce_term = "reduce_term"
    reduce_installment = "reduce_installment"

    choices = (reduce_term, reduce_installment)


@dataclass(frozen=True)
class Installment:
    number: int
    due_date: date
    payment_cents: int
    amortization_cents: int
    interest_cents: int
    balance_cents: int


@dataclass
class AmortizationTable:
    principal_cents: int
    method: AmortizationMethod
    rows: list[Installment] = field(default_factory=list)

    @property
    def total_payment_cents(self) -> int:
        return sum(r.payment_cents for r in self.rows)

    @property
    def total_interest_cents(self) -> int:
        return sum(r.interest_cents for r in self.rows)

    @property
    def total_amortization_cents(self) -> int:
        return sum(r.amortization_cents for r in self.rows)

    @property
    def first_payment_cents(self) -> int:
        return self.rows[0].payment_cents if self.rows else 0

    def row(self, number: int) -> Optional[Installment]:
        if 1 <= number <= len(self.rows):
            return self.rows[number - 1]
        return None


@dataclass(frozen=True)
class EarlyPaymentSimulation:
    preference: str
    amount_cents: int
    balance_before_cents: int
    balance_after_cents: int
    term_before: int
    term_after: int
    installment_before_cents: int
    installment_after_cents: int
    interest_before_cents: int
    interest_after_cents: int

    @property
    def interest_saved_cents(self) -> int:
        return self.interest_before_cents - self.interest_after_cents


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def monthly_rate(annual_rate) -> Decimal:
    return Decimal(str(annual_rate)) / Decimal(12)


def price_payment(principal_cents: int, rate: Decimal, term: int) -> Decimal:
    if term <= 0:
        raise ValueError("Term must be positive")
    principal = Decimal(principal_cents)
    if rate == 0:
        return principal / term
    factor = (1 + rate) ** term
    return principal * rate * factor / (factor - 1)


def build_table(
    principal_cents: int,
    annual_rate,
    term_months: int,
    method: AmortizationMethod,
    start_date: date,
    *,
    first_number: int = 1,
) -> AmortizationTable:
    if principal_cents <= 0:
        raise ValueError("Principal must be positive")
    if term_months <= 0:
        raise ValueError("Term must be positive")
    rate = monthly_rate(annual_rate)
    if rate < 0:
        raise ValueError("Interest rate cannot be negative")

    table = AmortizationTable(principal_cents=principal_cents, method=method)
    balance = principal_cents
    fixed_payment = _round_cents(price_payment(principal_cents, rate, term_months))
    constant_amortization = _round_cents(Decimal(principal_cents) / term_months)

    for k in range(1, term_months + 1):
        interest = _round_cents(Decimal(balance) * rate)
        if method == AmortizationMethod.sac:
            amortization = constant_amortization
        else:
            amortization = fixed_payment - interest
        if k == term_months:
            amortization = balance
        amortization = max(0, min(amortization, balance))
        balance -= amortization
        table.rows.append(
            Installment(
                number=first_number + k - 1,
                due_date=add_months(start_date, k - 1, desired_day=start_date.day),
                payment_cents=amortization + interest,
                amortization_cents=amortization,
                interest_cents=interest,
                balance_cents=balance,
            )
        )
    return table


def term_for_installment(
    balance_cents: int,
    annual_rate,
    installment_cents: int,
    method: AmortizationMethod,
    *,
    constant_amortization_cents: Optional[int] = None,
) -> int:
    """Number of months needed to clear ``balance_cents`` keeping the installment.

    For SAC the constant amortization is kept instead of the full payment.
    """
    if balance_cents <= 0:
        return 0
    if method == AmortizationMethod.sac:
        per_month = constant_amortization_cents or installment_cents
        return math.ceil(balance_cents / per_month)
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return math.ceil(balance_cents / installment_cents)
    interest_only = Decimal(balance_cents) * rate
    if Decimal(installment_cents) <= interest_only:
        raise ValueError("Installment does not cover the monthly interest")
    ratio = Decimal(installment_cents) / (Decimal(installment_cents) - interest_only)
    return math.ceil(math.log(float(ratio)) / math.log(float(1 + rate)))


def simulate_early_payment(
    balance_cents: int,
    annual_rate,
    remaining_term: int,
    method: AmortizationMethod,
    amount_cents: int,
    preference: str,
    start_date: date,
) -> EarlyPaymentSimulation:
    if preference not in EarlyPaymentPreference.choices:
        raise ValueError(f"Unknown early payment preference '{preference}'")
    if amount_cents <= 0:
        raise ValueError("Early payment amount must be positive")
    if amount_cents >= balance_cents:
        raise ValueError("Early payment must be lower than the outstanding balance")
    if remaining_term <= 0:
        raise ValueError("No installments left to simulate")

    current = build_table(balance_cents, annual_rate, remaining_term, method, start_date)
    new_balance = balance_cents - amount_cents

    if preference == EarlyPaymentPreference.reduce_installment:
        new_term = remaining_term
    else:
        new_term = term_for_installment(
            new_balance,
            annual_rate,
            current.first_payment_cents,
            method,
            constant_amortization_cents=current.rows[0].amortization_cents,
        )
        new_term = max(1, min(new_term, remaining_term))
    after = build_table(new_balance, annual_rate, new_term, method, start_date)

    return EarlyPaymentSimulation(
        preference=preference,
        amount_cents=amount_cents,
        balance_before_cents=balance_cents,
        balance_after_cents=new_balance,
        term_before=remaining_term,
        term_after=new_term,
        installment_before_cents=current.first_payment_cents,
        installment_after_cents=after.first_payment_cents,
        interest_before_cents=current.total_interest_cents,
        interest_after_cents=after.total_interest_cents,
    )
