from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import (
    AccountType,
    AmortizationMethod,
    FinancingType,
    Notification,
    NotificationPriority,
    NotificationType,
    PaymentMethod,
    SettingCategory,
)
from schemas import (
    AccountIn,
    FinancingIn,
    InstallmentPaymentIn,
    NotificationIn,
    PayableIn,
    PaymentIn,
    ReceivableIn,
    RegisterIn,
)
from services import (
    AccountService,
    AuthService,
    FinancingPaymentService,
    FinancingService,
    NotificationJobService,
    NotificationService,
    PayableService,
    ReceivableService,
    UserSettingService,
    classify_due,
)

TODAY = date(2025, 3, 10)


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


def seed_due_items(session, user_id: int) -> None:
    receivables = ReceivableService(session, user_id)
    payables = PayableService(session, user_id)
    receivables.create(ReceivableIn(description="Due today", amount_cents=1_000, due_date=TODAY))
    receivables.create(
        ReceivableIn(description="In four days", amount_cents=1_000, due_date=date(2025, 3, 14))
    )
    payables.create(
        PayableIn(description="Late bill", amount_cents=2_000, due_date=date(2025, 3, 7))
    )
    payables.create(
        PayableIn(description="In five days", amount_cents=3_000, due_date=date(2025, 3, 15))
    )
    settled = receivables.create(
        ReceivableIn(description="Settled", amount_cents=500, due_date=TODAY)
    )
    account = AccountService(session, user_id).create(
        AccountIn(bank_name="Banco", account_type=AccountType.checking)
    )
    receivables.add_payment(
        settled.id,
        PaymentIn(
            amount_cents=500,
            payment_date=TODAY,
            account_id=account.id,
            payment_method=PaymentMethod.cash,
        ),
    )


def test_classify_due() -> None:
    assert classify_due(-1) == (NotificationType.payment_overdue, NotificationPriority.urgent)
    assert classify_due(0) == (NotificationType.payment_due, NotificationPriority.high)
    assert classify_due(1) == (NotificationType.payment_due, NotificationPriority.medium)
    assert classify_due(3) == (NotificationType.payment_due, NotificationPriority.medium)
    assert classify_due(4) is None
    assert classify_due(5) == (NotificationType.payment_reminder, NotificationPriority.low)
    assert classify_due(6) is None


def test_due_notifications_are_generated_once() -> None:
    session = make_session()
    user = make_user(session)
    seed_due_items(session, user.id)
    jobs = NotificationJobService(session)

    assert jobs.generate_due_notifications(TODAY) == 3
    session.commit()
    assert jobs.generate_due_notifications(TODAY) == 0

    notifications = NotificationService(session, user.id).list_all()
    by_type = {n.type: n for n in notifications}
    assert by_type[NotificationType.payment_overdue].priority == NotificationPriority.urgent
    assert by_type[NotificationType.payment_overdue].related_type == "payable"
    assert by_type[NotificationType.payment_due].priority == NotificationPriority.high
    assert by_type[NotificationType.payment_reminder].due_date == date(2025, 3, 15)


def test_due_notifications_respect_user_settings() -> None:
    session = make_session()
    user = make_user(session)
    seed_due_items(session, user.id)
    UserSettingService(session, user.id).update(
        SettingCategory.notifications, {"payment_overdue": False}
    )

    created = NotificationJobService(session).generate_due_notifications(TODAY)

    assert created == 2
    types = {n.type for n in NotificationService(session, user.id).list_all()}
    assert NotificationType.payment_overdue not in types


def test_next_installment_is_notified_after_paying_the_previous_one() -> None:
    session = make_session()
    user = make_user(session)
    account = AccountService(session, user.id).create(
        AccountIn(
            bank_name="Banco",
            account_type=AccountType.checking,
            opening_balance_cents=100_000,
        )
    )
    financing = FinancingService(session, user.id).create(
        FinancingIn(
            financing_type=FinancingType.personal_loan,
            description="Loan",
            total_amount_cents=120_000,
            interest_rate=Decimal("0"),
            term_months=12,
            start_date=TODAY,
            amortization_method=AmortizationMethod.sac,
        )
    )
    jobs = NotificationJobService(session)

    assert jobs.generate_due_notifications(TODAY) == 1
    session.commit()
    FinancingPaymentService(session, user.id).pay_installment(
        financing.id,
        InstallmentPaymentIn(
            installment_number=1,
            account_id=account.id,
            payment_date=TODAY,
            payment_method=PaymentMethod.pix,
        ),
    )

    assert jobs.generate_due_notifications(date(2025, 4, 9)) == 1
    session.commit()

    notifications = NotificationService(session, user.id).list_all()
    assert sorted(n.due_date for n in notifications) == [TODAY, date(2025, 4, 10)]
    assert {n.related_id for n in notifications} == {financing.id}


def test_general_reminders_need_active_financing() -> None:
    session = make_session()
    borrower = make_user(session)
    make_user(session, "bruno@example.com")
    FinancingService(session, borrower.id).create(
        FinancingIn(
            financing_type=FinancingType.mortgage,
            description="House",
            total_amount_cents=1_000_000,
            interest_rate=Decimal("0.10"),
            term_months=120,
            start_date=date(2025, 1, 5),
            amortization_method=AmortizationMethod.price,
        )
    )
    jobs = NotificationJobService(session)

    assert jobs.general_reminders(TODAY) == 1
    session.commit()
    assert jobs.general_reminders(TODAY) == 0

    reminder = NotificationService(session, borrower.id).list_all()[0]
    assert reminder.type == NotificationType.general_reminder
    assert "1 active financing" in reminder.message


def test_cleanup_deactivates_old_notifications() -> None:
    session = make_session()
    user = make_user(session)
    service = NotificationService(session, user.id)
    old = service.create(NotificationIn(title="Old", message="old one"))
    service.create(NotificationIn(title="New", message="new one"))
    old.created_at = datetime.utcnow() - timedelta(days=40)
    session.commit()

    assert NotificationJobService(session).cleanup(retention_days=30) == 1
    session.commit()

    assert [n.title for n in service.list_all()] == ["New"]
    assert session.scalar(select(Notification).where(Notification.title == "Old")).is_active is False


def test_read_state_and_stats() -> None:
    session = make_session()
    user = make_user(session)
    service = NotificationService(session, user.id)
    first = service.create(NotificationIn(title="One", message="first"))
    service.create(
        NotificationIn(title="Two", message="second", priority=NotificationPriority.high)
    )
    assert service.unread_count() == 2

    assert service.mark_read(first.id).is_read is True
    assert [n.title for n in service.list_all(unread_only=True)] == ["Two"]
    assert service.mark_all_read() == 1
    assert service.unread_count() == 0

    stats = service.stats()
    assert stats["total"] == 2
    assert stats["by_priority"]["high"] == 1
    assert stats["by_type"]["system"] == 2
