import typing
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, TransactionSource, TransactionType
from periods import Period
from schemas import AccountIn, CategoryIn, PayableIn, PaymentIn, RegisterIn, TransactionIn
from services import (
    AccountService,
    AuthService,
    CategoryAmbiguous,
    CategoryService,
    ConflictError,
    FixedAccountService,
    InvestmentService,
    NotFoundError,
    PayableService,
    TransactionFilters,
    TransactionService,
)

JANUARY = Period("custom", date(2025, 1, 1), date(2025, 1, 31))


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_user(session, email: str = "ana@example.com"):
    return AuthService(session).register(
        RegisterIn(name="Ana Souza", email=email, password="s3cret-pass")
    )


def make_account(session, user_id: int, opening: int = 0):
    return AccountService(session, user_id).create(
        AccountIn(
            bank_name="Banco Teste",
            account_type=AccountType.checking,
            opening_balance_cents=opening,
        )
    )


def txn_in(account_id: int, type_: TransactionType, amount: int, **extra) -> TransactionIn:
    return TransactionIn(
        account_id=account_id,
        type=type_,
        amount_cents=amount,
        date=extra.pop("date", date(2025, 1, 10)),
        **extra,
    )


def test_balance_is_derived_from_active_transactions() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id, opening=10_000)
    txns = TransactionService(session, user.id)
    accounts = AccountService(session, user.id)

    txns.create(txn_in(account.id, TransactionType.income, 5_000))
    expense = txns.create(txn_in(account.id, TransactionType.expense, 2_000))
    assert accounts.balance(account.id) == 13_000

    txns.soft_delete(expense.id)
    assert accounts.balance(account.id) == 15_000
    assert [t.id for t in txns.deleted()] == [expense.id]

    txns.restore(expense.id)
    assert accounts.balance(account.id) == 13_000
    assert accounts.total_balance() == 13_000


def test_balance_as_of_date() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    txns = TransactionService(session, user.id)

    txns.create(txn_in(account.id, TransactionType.income, 5_000, date=date(2025, 1, 5)))
    txns.create(txn_in(account.id, TransactionType.income, 7_000, date=date(2025, 2, 5)))

    accounts = AccountService(session, user.id)
    assert accounts.balance(account.id, as_of=date(2025, 1, 31)) == 5_000
    assert accounts.balance(account.id) == 12_000


def test_missing_category_falls_back_to_default() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)

    txn = TransactionService(session, user.id).create(
        txn_in(account.id, TransactionType.expense, 1_000)
    )

    assert txn.category.name == "Other Expenses"
    assert txn.source == TransactionSource.manual


def test_category_name_tolerates_one_typo() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    txns = TransactionService(session, user.id)

    txn = txns.create(txn_in(account.id, TransactionType.expense, 1_000, category_name="Fod"))
    assert txn.category.name == "Food"

    with pytest.raises(NotFoundError):
        txns.create(txn_in(account.id, TransactionType.expense, 1_000, category_name="Xyzzy"))


def test_ambiguous_category_name_is_rejected() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    categories = CategoryService(session, user.id)
    categories.create(CategoryIn(name="Cat", type=TransactionType.expense))
    categories.create(CategoryIn(name="Car", type=TransactionType.expense))

    with pytest.raises(CategoryAmbiguous):
        TransactionService(session, user.id).create(
            txn_in(account.id, TransactionType.expense, 1_000, category_name="Cax")
        )


def test_category_type_must_match_transaction_type() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    food = CategoryService(session, user.id).resolve("Food", TransactionType.expense)

    with pytest.raises(ValueError):
        TransactionService(session, user.id).create(
            txn_in(account.id, TransactionType.income, 1_000, category_id=food.id)
        )


def test_category_lifecycle() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    categories = CategoryService(session, user.id)

    assert len(categories.list_all()) == 12
    gym = categories.create(CategoryIn(name="Gym", type=TransactionType.expense))
    with pytest.raises(ConflictError):
        categories.create(CategoryIn(name="gym", type=TransactionType.expense))

    TransactionService(session, user.id).create(
        txn_in(account.id, TransactionType.expense, 1_000, category_id=gym.id)
    )
    with pytest.raises(ConflictError):
        categories.delete(gym.id)

    categories.archive(gym.id)
    assert gym.id not in [c.id for c in categories.list_all()]
    categories.restore(gym.id)
    assert gym.id in [c.id for c in categories.list_all()]

    default = categories.default_for(TransactionType.expense)
    with pytest.raises(ValueError):
        categories.archive(default.id)


def test_system_transactions_cannot_be_edited_directly() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id, opening=50_000)
    payable = PayableService(session, user.id).create(
        PayableIn(description="Rent", amount_cents=10_000, due_date=date(2025, 1, 5))
    )
    payment = PayableService(session, user.id).add_payment(
        payable.id,
        PaymentIn(
            amount_cents=10_000,
            payment_date=date(2025, 1, 5),
            account_id=account.id,
            payment_method="pix",
        ),
    )

    txns = TransactionService(session, user.id)
    with pytest.raises(ConflictError):
        txns.soft_delete(payment.transaction_id)
    with pytest.raises(ConflictError):
        txns.update(
            payment.transaction_id, txn_in(account.id, TransactionType.expense, 1)
        )


def test_accounts_with_history_cannot_be_deleted() -> None:
    session = make_session()
    user = make_user(session)
    used = make_account(session, user.id)
    unused = make_account(session, user.id)
    txns = TransactionService(session, user.id)
    txn = txns.create(txn_in(used.id, TransactionType.income, 1_000))

    accounts = AccountService(session, user.id)
    with pytest.raises(ConflictError):
        accounts.delete(used.id)
    # soft-deleted rows still count
    txns.soft_delete(txn.id)
    with pytest.raises(ConflictError):
        accounts.delete(used.id)
    accounts.delete(unused.id)
    assert [a.id for a in accounts.list_all()] == [used.id]


def test_records_are_isolated_per_user() -> None:
    session = make_session()
    ana = make_user(session)
    bruno = make_user(session, "bruno@example.com")
    account = make_account(session, ana.id)

    with pytest.raises(NotFoundError):
        AccountService(session, bruno.id).get(account.id)
    with pytest.raises(NotFoundError):
        TransactionService(session, bruno.id).create(
            txn_in(account.id, TransactionType.income, 1_000)
        )


def test_list_filters_and_stats() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    txns = TransactionService(session, user.id)
    txns.create(txn_in(account.id, TransactionType.income, 10_000, description="Salary"))
    txns.create(
        txn_in(account.id, TransactionType.expense, 3_000, description="Groceries",
               category_name="Food")
    )
    txns.create(
        txn_in(account.id, TransactionType.expense, 1_000, description="Bus",
               category_name="Transport")
    )
    txns.create(
        txn_in(account.id, TransactionType.expense, 9_999, date=date(2025, 2, 1))
    )

    expenses = txns.list_all(JANUARY, TransactionFilters(type=TransactionType.expense))
    assert [t.amount_cents for t in expenses] == [1_000, 3_000]
    assert len(txns.list_all(JANUARY, TransactionFilters(query="groc"))) == 1

    stats = txns.stats(JANUARY)
    assert stats["income_cents"] == 10_000
    assert stats["expense_cents"] == 4_000
    assert stats["net_cents"] == 6_000
    assert stats["transaction_count"] == 3
    food = next(row for row in stats["by_category"] if row["name"] == "Food")
    assert food["share"] == 75.0
    assert len(stats["timeline"]) == 31


def test_csv_export_neutralizes_formulas() -> None:
    session = make_session()
    user = make_user(session)
    account = make_account(session, user.id)
    txns = TransactionService(session, user.id)
    txns.create(txn_in(account.id, TransactionType.expense, 1_234, description="=SUM(A1)"))

    csv_text = txns.export_csv(JANUARY)

    assert csv_text.splitlines()[0] == (
        "Date,Type,Amount,Account,Category,Description,PaymentMethod,Source"
    )
    assert "12.34" in csv_text
    assert "\t=SUM(A1)" in csv_text


def test_collection_methods_return_builtin_lists() -> None:
    methods = (
        TransactionService.all_for_period,
        TransactionService.deleted,
        FixedAccountService.occurrences,
        FixedAccountService.pay_occurrences,
        InvestmentService.positions,
    )
    for method in methods:
        assert typing.get_origin(typing.get_type_hints(method)["return"]) is list
    for service_cls in (TransactionService, FixedAccountService, InvestmentService):
        assert "list" not in vars(service_cls)
