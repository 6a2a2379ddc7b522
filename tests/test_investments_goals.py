from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, GoalStatus, InvestmentType, TransactionType
from schemas import (
    AccountIn,
    ContributionIn,
    GoalIn,
    InvestmentIn,
    RegisterIn,
    SellIn,
)
from services import (
    AccountService,
    AuthService,
    CategoryService,
    ConflictError,
    InsufficientBalance,
    InvestmentContributionService,
    InvestmentGoalService,
    InvestmentService,
    NotFoundError,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def setup_user(session, opening: int = 100_000):
    user = AuthService(session).register(
        RegisterIn(name="Ana Souza", email="ana@example.com", password="s3cret-pass")
    )
    account = AccountService(session, user.id).create(
        AccountIn(
            bank_name="Corretora",
            account_type=AccountType.investment,
            opening_balance_cents=opening,
        )
    )
    category = CategoryService(session, user.id).resolve(
        "Investments", TransactionType.income
    )
    return user, account, category


def buy(account_id: int, quantity: str, price: int, **extra) -> InvestmentIn:
    return InvestmentIn(
        investment_type=InvestmentType.stocks,
        asset_name="Petrobras",
        ticker=extra.pop("ticker", "petr4"),
        quantity=Decimal(quantity),
        unit_price_cents=price,
        operation_date=extra.pop("operation_date", date(2025, 2, 3)),
        broker="XP",
        source_account_id=account_id,
        **extra,
    )


def sell(account_id: int, quantity: str, price: int) -> SellIn:
    return SellIn(
        asset_name="Petrobras",
        ticker="PETR4",
        quantity=Decimal(quantity),
        unit_price_cents=price,
        account_id=account_id,
        operation_date=date(2025, 3, 3),
    )


def test_buys_build_an_average_price_position() -> None:
    session = make_session()
    user, account, _ = setup_user(session)
    investments = InvestmentService(session, user.id)

    first = investments.create(buy(account.id, "10", 2_550))
    investments.create(buy(account.id, "10", 3_050))

    assert first.ticker == "PETR4"
    assert first.amount_cents == 25_500
    position = investments.position("Petrobras", "PETR4")
    assert position.quantity == Decimal("20")
    assert position.average_price_cents == 2_800
    assert position.invested_cents == 56_000
    assert AccountService(session, user.id).balance(account.id) == 44_000


def test_sell_reduces_position_and_credits_account() -> None:
    session = make_session()
    user, account, _ = setup_user(session)
    investments = InvestmentService(session, user.id)
    investments.create(buy(account.id, "10", 2_550))
    investments.create(buy(account.id, "10", 3_050))

    sale = investments.sell(sell(account.id, "5", 4_000))

    assert sale.amount_cents == 20_000
    assert sale.operation_type.value == "sell"
    assert investments.position("Petrobras", "PETR4").quantity == Decimal("15")
    assert AccountService(session, user.id).balance(account.id) == 64_000

    with pytest.raises(ValueError):
        investments.sell(sell(account.id, "16", 4_000))
    with pytest.raises(NotFoundError):
        investments.position("Vale", "VALE3")


def test_purchase_requires_balance() -> None:
    session = make_session()
    user, account, _ = setup_user(session, opening=1_000)

    with pytest.raises(InsufficientBalance):
        InvestmentService(session, user.id).create(buy(account.id, "1", 1_001))
    assert InvestmentService(session, user.id).list_all() == []


def test_delete_refuses_negative_position() -> None:
    session = make_session()
    user, account, _ = setup_user(session)
    investments = InvestmentService(session, user.id)
    first = investments.create(buy(account.id, "10", 2_000))
    second = investments.create(buy(account.id, "10", 2_000))
    investments.sell(sell(account.id, "15", 2_000))

    with pytest.raises(ConflictError):
        investments.delete(first.id)

    investments.create(buy(account.id, "10", 2_000))
    investments.delete(second.id)
    assert investments.position("Petrobras", "PETR4").quantity == Decimal("5")
    assert AccountService(session, user.id).balance(account.id) == 100_000 - 40_000 + 30_000


def test_contributions_add_to_purchases_only() -> None:
    session = make_session()
    user, account, _ = setup_user(session)
    investments = InvestmentService(session, user.id)
    contributions = InvestmentContributionService(session, user.id)
    purchase = investments.create(buy(account.id, "10", 2_000))
    sale = investments.sell(sell(account.id, "2", 2_000))

    contribution = contributions.create(
        ContributionIn(
            investment_id=purchase.id,
            amount_cents=5_000,
            quantity=Decimal("2"),
            contribution_date=date(2025, 4, 1),
            source_account_id=account.id,
        )
    )
    assert contribution.broker == "XP"
    assert investments.position("Petrobras", "PETR4").quantity == Decimal("10")
    assert AccountService(session, user.id).balance(account.id) == 100_000 - 20_000 + 4_000 - 5_000

    with pytest.raises(ValueError):
        contributions.create(
            ContributionIn(
                investment_id=sale.id,
                amount_cents=1_000,
                contribution_date=date(2025, 4, 1),
                source_account_id=account.id,
            )
        )

    stats = contributions.statistics(purchase.id)
    assert stats["count"] == 1
    assert stats["by_month"] == {"2025-04": 5_000}

    contributions.delete(contribution.id)
    assert investments.position("Petrobras", "PETR4").quantity == Decimal("8")
    assert AccountService(session, user.id).balance(account.id) == 84_000


def test_goal_status_follows_amount() -> None:
    session = make_session()
    user, _, category = setup_user(session)
    goals = InvestmentGoalService(session, user.id)
    data = GoalIn(
        name="Emergency fund",
        target_amount_cents=100_000,
        target_date=date(2025, 12, 31),
        category_id=category.id,
    )
    goal = goals.create(data)
    assert goal.status == GoalStatus.active

    assert goals.update_amount(goal.id, 100_000).status == GoalStatus.completed
    assert goals.update_amount(goal.id, 50_000).status == GoalStatus.active
    assert goals.get(goal.id).progress == 50.0

    goals.update(goal.id, data.model_copy(update={"status": GoalStatus.cancelled}))
    assert goals.update_amount(goal.id, 200_000).status == GoalStatus.cancelled


def test_goal_calculated_from_category_operations() -> None:
    session = make_session()
    user, account, category = setup_user(session)
    investments = InvestmentService(session, user.id)
    investments.create(buy(account.id, "10", 2_550, category_id=category.id))
    investments.create(buy(account.id, "10", 3_050, category_id=category.id))
    investments.sell(sell(account.id, "5", 4_000))
    goals = InvestmentGoalService(session, user.id)
    goal = goals.create(
        GoalIn(
            name="Stocks",
            target_amount_cents=50_000,
            target_date=date(2025, 12, 31),
            category_id=category.id,
        )
    )

    goal, counted = goals.calculate(goal.id)

    assert counted == 3
    assert goal.current_amount_cents == 56_000 - 20_000
    assert goal.status == GoalStatus.active

    orphan = goals.create(
        GoalIn(name="Trip", target_amount_cents=1_000, target_date=date(2025, 6, 30))
    )
    with pytest.raises(ValueError):
        goals.calculate(orphan.id)

    stats = goals.statistics(today=date(2025, 7, 1))
    assert stats["count"] == 2
    assert stats["overdue"] == 1
    assert stats["by_status"]["active"] == 2
