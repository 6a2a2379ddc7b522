"""Settlement state of an amount owed, derived from the payments against it.

Receivables and payables never store their status or remaining amount; both
are recomputed from the principal and the active payments every time they
are read, so inserting or deleting a payment cannot leave them stale.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class SettlementStatus(str, Enum):
    pending = "pending"
    partially_paid = "partially_paid"
    paid = "paid"


@dataclass(frozen=True)
class Settlement:
    amount_cents: int
    paid_cents: int
    remaining_cents: int
    status: SettlementStatus

    @property
    def is_open(self) -> bool:
        return self.status != SettlementStatus.paid


def settle(amount_cents: int, payments_cents: Iterable[int]) -> Settlement:
    paid = sum(int(p) for p in payments_cents)
    remaining = max(amount_cents - paid, 0)
    if paid <= 0:
        status = SettlementStatus.pending
    elif remaining == 0:
        status = SettlementStatus.paid
    else:
        status = SettlementStatus.partially_paid
    return Settlement(
        amount_cents=amount_cents,
        paid_cents=paid,
        remaining_cents=remaining,
        status=status,
    )
