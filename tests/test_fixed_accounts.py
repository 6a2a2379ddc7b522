from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, OccurrenceStatus, Periodicity, Transaction, TransactionType
from schemas import AccountIn, FixedAccountIn, FixedAccountPayIn, FixedAccountUpdateIn, RegisterIn
from services import (
    AccountService,
    AuthService,
    CategoryService,
    ConflictError,
    FixedAccountService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def setup_rent(session, **overrides):
    user = AuthService(session).register(
        RegisterIn(name="Ana Souza", email="ana@example.com", password="s3cret-pass")
    )
    account = AccountService(session, user.id).create(
        AccountIn(
            bank_name="Banco Teste",
            account_type=AccountType.checking,
            opening_balance_cents=100_000,
        )
    )
    housing = CategoryService(session, user.id).resolve("Housing", TransactionType.expense)
    data = {
        "description": "Rent",
        "amount_cents": 10_000,
        "periodicity": Periodicity.monthly,
        "start_date": date(2025, 1, 31),
        "category_id": housing.id,
        "account_id": account.id,
    }
    data.update(overrides)
    fixed = FixedAccountService(session, user.id).create(FixedAccountIn(**data))
    return user, account, fixed


def test_create_generates_first_occurrence() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)

    occurrences = service.occurrences(fixed.id)

    assert [o.due_date for o in occurrences] == [date(2025, 1, 31)]
    assert occurrences[0].status == OccurrenceStatus.pending
    assert fixed.type == TransactionType.expense
    assert fixed.next_due_date == date(2025, 2, 28)


def test_catch_up_is_idempotent() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)

    assert service.catch_up(date(2025, 4, 15)) == 2
    assert service.catch_up(date(2025, 4, 15)) == 0

    due_dates = [o.due_date for o in service.occurrences(fixed.id)]
    assert due_dates == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]
    assert service.get(fixed.id).next_due_date == date(2025, 4, 30)
    assert len(service.occurrences(overdue_only=True, today=date(2025, 4, 15))) == 3


def test_inactive_fixed_accounts_are_skipped() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)

    assert service.toggle(fixed.id).is_active is False
    assert service.catch_up(date(2025, 4, 15)) == 0
    assert service.toggle(fixed.id).is_active is True
    assert service.catch_up(date(2025, 4, 15)) == 2


def test_pay_reopen_and_cancel_occurrence() -> None:
    session = make_session()
    user, account, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)
    occurrence = service.occurrences(fixed.id)[0]

    paid = service.pay_occurrences(
        FixedAccountPayIn(occurrence_ids=[occurrence.id], payment_date=date(2025, 2, 1))
    )

    assert paid[0].status == OccurrenceStatus.paid
    assert paid[0].account_id == account.id
    txn = session.get(Transaction, paid[0].transaction_id)
    assert txn.amount_cents == 10_000
    assert txn.fixed_account_id == fixed.id
    assert AccountService(session, user.id).balance(account.id) == 90_000

    with pytest.raises(ValueError):
        service.pay_occurrences(
            FixedAccountPayIn(occurrence_ids=[occurrence.id], payment_date=date(2025, 2, 1))
        )
    with pytest.raises(ValueError):
        service.cancel_occurrence(occurrence.id)

    reopened = service.reopen_occurrence(occurrence.id)
    assert reopened.status == OccurrenceStatus.pending
    assert reopened.transaction_id is None
    assert txn.deleted_at is not None
    assert AccountService(session, user.id).balance(account.id) == 100_000

    assert service.cancel_occurrence(occurrence.id).status == OccurrenceStatus.cancelled


def test_payment_needs_an_account() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session, account_id=None)
    service = FixedAccountService(session, user.id)
    occurrence = service.occurrences(fixed.id)[0]

    with pytest.raises(ValueError):
        service.pay_occurrences(
            FixedAccountPayIn(occurrence_ids=[occurrence.id], payment_date=date(2025, 2, 1))
        )


def test_amount_change_updates_future_pending_occurrences() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)
    service.catch_up(date(2025, 4, 15))

    service.update(
        fixed.id, FixedAccountUpdateIn(amount_cents=12_000), today=date(2025, 3, 1)
    )

    amounts = [o.amount_cents for o in service.occurrences(fixed.id)]
    assert amounts == [10_000, 10_000, 12_000]
    assert service.get(fixed.id).amount_cents == 12_000


def test_update_rejects_null_required_fields_and_clears_optional_ones() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session, notes="Landlord")
    service = FixedAccountService(session, user.id)

    for field in ("description", "amount_cents", "reminder_days"):
        with pytest.raises(ValidationError):
            FixedAccountUpdateIn.model_validate({field: None})

    updated = service.update(
        fixed.id, FixedAccountUpdateIn.model_validate({"notes": None})
    )

    assert updated.notes is None
    assert updated.description == "Rent"
    assert [o.amount_cents for o in service.occurrences(fixed.id)] == [10_000]


def test_delete_refuses_paid_history() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)
    occurrence = service.occurrences(fixed.id)[0]
    service.pay_occurrences(
        FixedAccountPayIn(occurrence_ids=[occurrence.id], payment_date=date(2025, 2, 1))
    )

    with pytest.raises(ConflictError):
        service.delete(fixed.id)

    service.reopen_occurrence(occurrence.id)
    service.delete(fixed.id)
    assert service.list_all() == []
    assert service.occurrences() == []


def test_statistics() -> None:
    session = make_session()
    user, _, fixed = setup_rent(session)
    service = FixedAccountService(session, user.id)
    service.catch_up(date(2025, 4, 15))
    first = service.occurrences(fixed.id)[0]
    service.pay_occurrences(
        FixedAccountPayIn(occurrence_ids=[first.id], payment_date=date(2025, 2, 1))
    )

    stats = service.statistics(date(2025, 4, 15))

    assert stats["count"] == 1
    assert stats["active"] == 1
    assert stats["monthly_expense_cents"] == 10_000
    assert stats["monthly_income_cents"] == 0
    assert stats["occurrences"] == {"pending": 0, "overdue": 2, "paid": 1, "cancelled": 0}
    assert stats["pending_cents"] == 20_000
