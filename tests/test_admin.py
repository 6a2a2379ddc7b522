from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, Category, PaymentMethod, Transaction, User, UserRole
from schemas import AccountIn, LoginIn, PayableIn, PaymentIn, RegisterIn
from services import (
    AccountService,
    AdminService,
    AuthenticationError,
    AuthService,
    JobExecutionService,
    NotFoundError,
    PayableService,
    PermissionDeniedError,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_users(session):
    auth = AuthService(session)
    admin = auth.register(
        RegisterIn(name="Admin", email="admin@example.com", password="s3cret-pass")
    )
    member = auth.register(
        RegisterIn(name="Member", email="member@example.com", password="s3cret-pass")
    )
    return admin, member


def test_only_admins_get_an_admin_service() -> None:
    session = make_session()
    _, member = make_users(session)

    with pytest.raises(PermissionDeniedError):
        AdminService(session, member)


def test_admin_cannot_lock_themselves_out() -> None:
    session = make_session()
    admin, _ = make_users(session)
    service = AdminService(session, admin)

    with pytest.raises(ValueError):
        service.set_status(admin.id, False)
    with pytest.raises(ValueError):
        service.set_role(admin.id, UserRole.user)
    with pytest.raises(ValueError):
        service.delete_user(admin.id)


def test_deactivation_revokes_sessions() -> None:
    session = make_session()
    admin, member = make_users(session)
    auth = AuthService(session)
    token, _ = auth.login(LoginIn(email="member@example.com", password="s3cret-pass"))
    service = AdminService(session, admin, ip_address="10.0.0.1")

    service.set_status(member.id, False)

    with pytest.raises(AuthenticationError):
        auth.authenticate(token)
    assert service.user_stats()["inactive"] == 1

    service.set_status(member.id, True)
    assert service.set_role(member.id, UserRole.admin).role == UserRole.admin
    assert service.user_stats()["admins"] == 2

    actions = [entry.action for entry in service.audit_logs(user_id=admin.id)]
    assert actions.count("set_status") == 2
    assert "set_role" in actions
    assert service.audit_stats()["by_action"]["set_status"] == 2


def test_delete_user_removes_owned_records() -> None:
    session = make_session()
    admin, member = make_users(session)
    account = AccountService(session, member.id).create(
        AccountIn(
            bank_name="Banco",
            account_type=AccountType.checking,
            opening_balance_cents=10_000,
        )
    )
    payable = PayableService(session, member.id).create(
        PayableIn(description="Bill", amount_cents=1_000, due_date=date(2025, 1, 5))
    )
    PayableService(session, member.id).add_payment(
        payable.id,
        PaymentIn(
            amount_cents=1_000,
            payment_date=date(2025, 1, 5),
            account_id=account.id,
            payment_method=PaymentMethod.pix,
        ),
    )
    service = AdminService(session, admin)

    service.delete_user(member.id)

    with pytest.raises(NotFoundError):
        service.get_user(member.id)
    assert session.scalars(select(User.id)).all() == [admin.id]
    assert session.scalars(select(Transaction).where(Transaction.user_id == member.id)).all() == []
    assert session.scalars(select(Category).where(Category.user_id == member.id)).all() == []
    assert [u.id for u in service.list_users(search="admin")] == [admin.id]


def test_integrity_check_reports_broken_links() -> None:
    session = make_session()
    admin, member = make_users(session)
    account = AccountService(session, member.id).create(
        AccountIn(
            bank_name="Banco",
            account_type=AccountType.checking,
            opening_balance_cents=10_000,
        )
    )
    payables = PayableService(session, member.id)
    payable = payables.create(
        PayableIn(description="Bill", amount_cents=1_000, due_date=date(2025, 1, 5))
    )
    payment = payables.add_payment(
        payable.id,
        PaymentIn(
            amount_cents=1_000,
            payment_date=date(2025, 1, 5),
            account_id=account.id,
            payment_method=PaymentMethod.pix,
        ),
    )
    service = AdminService(session, admin)
    assert service.integrity_check()["ok"] is True

    session.get(Transaction, payment.transaction_id).deleted_at = payment.created_at
    session.commit()

    report = service.integrity_check()
    assert report["ok"] is False
    assert report["issue_count"] == 1
    assert report["issues"]["payments_with_deleted_transaction"] == [payment.id]


def test_job_executions_are_listed() -> None:
    session = make_session()
    admin, _ = make_users(session)
    jobs = JobExecutionService(session)
    done = jobs.start("due_notifications", "manual")
    jobs.finish(done.id, {"created": 2})
    failed = jobs.start("general_reminders", "manual")
    jobs.fail(failed.id, "boom")

    executions = AdminService(session, admin).job_executions()

    by_name = {e.job_name: e for e in executions}
    assert by_name["due_notifications"].status.value == "success"
    assert by_name["general_reminders"].status.value == "failed"
    assert by_name["general_reminders"].error_message == "boom"
