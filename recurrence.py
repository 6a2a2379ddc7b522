import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import (
    FixedAccount,
    FixedAccountTransaction,
    OccurrenceStatus,
    Periodicity,
)
from periods import add_months

logger = logging.getLogger(__name__)

MONTHS_PER_PERIOD = {
    Periodicity.monthly: 1,
    Periodicity.quarterly: 3,
    Periodicity.yearly: 12,
}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def calculate_next_date(fixed_account: FixedAccount, from_date: date) -> date:
    if fixed_account.periodicity == Periodicity.daily:
        return from_date + timedelta(days=1)
    if fixed_account.periodicity == Periodicity.weekly:
        return from_date + timedelta(weeks=1)
    return add_months(
        from_date,
        MONTHS_PER_PERIOD[fixed_account.periodicity],
        desired_day=fixed_account.start_date.day,
    )


def monthly_equivalent_cents(fixed_account: FixedAccount) -> int:
    if fixed_account.periodicity == Periodicity.daily:
        return round(fixed_account.amount_cents * 30)
    if fixed_account.periodicity == Periodicity.weekly:
        return round(fixed_account.amount_cents * 52 / 12)
    return round(
        fixed_account.amount_cents / MONTHS_PER_PERIOD[fixed_account.periodicity]
    )


class FixedAccountEngine:
    def __init__(self, session: Session) -> None:
        self.session = session

    def catch_up_account(
        self, fixed_account: FixedAccount, today: Optional[date] = None
    ) -> int:
        today = today or local_today()
        created = 0
        iterations = 0
        max_iterations = 400
        while fixed_account.next_due_date <= today and iterations < max_iterations:
            due_date = fixed_account.next_due_date
            if self.create_occurrence(fixed_account, due_date):
                created += 1
            fixed_account.next_due_date = calculate_next_date(fixed_account, due_date)
            iterations += 1
        if iterations >= max_iterations:
            logger.warning(
                f"fixed_account_catch_up: id={fixed_account.id} iteration limit reached"
            )
        return created

    def catch_up_all(
        self, today: Optional[date] = None, user_id: Optional[int] = None
    ) -> int:
        today = today or local_today()
        stmt = (
            select(FixedAccount)
            .where(
                FixedAccount.is_active.is_(True),
                FixedAccount.next_due_date <= today,
            )
            .order_by(FixedAccount.next_due_date, FixedAccount.id)
        )
        if user_id is not None:
            stmt = stmt.where(FixedAccount.user_id == user_id)
        total = 0
        for fixed_account in self.session.scalars(stmt).all():
            total += self.catch_up_account(fixed_account, today)
        self.session.flush()
        return total

    def create_occurrence(self, fixed_account: FixedAccount, due_date: date) -> bool:
        exists_stmt = (
            select(FixedAccountTransaction.id)
            .where(
                FixedAccountTransaction.fixed_account_id == fixed_account.id,
                FixedAccountTransaction.due_date == due_date,
            )
            .limit(1)
        )
        if self.session.execute(exists_stmt).scalar_one_or_none():
            return False
        occurrence = FixedAccountTransaction(
            user_id=fixed_account.user_id,
            fixed_account_id=fixed_account.id,
            due_date=due_date,
            amount_cents=fixed_account.amount_cents,
            status=OccurrenceStatus.pending,
            account_id=fixed_account.account_id,
            payment_method=fixed_account.payment_method,
        )
        self.session.add(occurrence)
        self.session.flush()
        return True
