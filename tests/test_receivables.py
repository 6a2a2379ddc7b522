from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import AccountType, DocumentType, PaymentMethod, Transaction, TransactionSource
from schemas import (
    AccountIn,
    CounterpartyIn,
    CreditorIn,
    PayableIn,
    PaymentIn,
    ReceivableIn,
    RegisterIn,
)
from services import (
    AccountService,
    AuthService,
    ConflictError,
    CreditorService,
    CustomerService,
    PayableService,
    PaymentService,
    ReceivableService,
    SupplierService,
)
from settlement import SettlementStatus


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def setup_user(session):
    user = AuthService(session).register(
        RegisterIn(name="Ana Souza", email="ana@example.com", password="s3cret-pass")
    )
    account = AccountService(session, user.id).create(
        AccountIn(bank_name="Banco Teste", account_type=AccountType.checking)
    )
    return user, account


def pay(amount: int, account_id: int, when: date = date(2025, 3, 10)) -> PaymentIn:
    return PaymentIn(
        amount_cents=amount,
        payment_date=when,
        account_id=account_id,
        payment_method=PaymentMethod.pix,
    )


def test_partial_then_full_payment_settles_receivable() -> None:
    session = make_session()
    user, account = setup_user(session)
    service = ReceivableService(session, user.id)
    item = service.create(
        ReceivableIn(description="Invoice 42", amount_cents=10_000, due_date=date(2025, 3, 15))
    )
    assert item.settlement.status == SettlementStatus.pending
    assert item.category.name == "Other Income"

    service.add_payment(item.id, pay(4_000, account.id))
    item = service.get(item.id)
    assert item.settlement.status == SettlementStatus.partially_paid
    assert item.settlement.remaining_cents == 6_000

    with pytest.raises(ValueError):
        service.add_payment(item.id, pay(6_001, account.id))

    payment = service.add_payment(item.id, pay(6_000, account.id))
    assert service.get(item.id).settlement.status == SettlementStatus.paid
    assert AccountService(session, user.id).balance(account.id) == 10_000

    txn = session.get(Transaction, payment.transaction_id)
    assert txn.source == TransactionSource.receivable_payment
    assert txn.type.value == "income"

    with pytest.raises(ValueError):
        service.add_payment(item.id, pay(1, account.id))


def test_deleting_payment_reopens_item_and_voids_transaction() -> None:
    session = make_session()
    user, account = setup_user(session)
    AccountService(session, user.id).update(
        account.id,
        AccountIn(
            bank_name="Banco Teste",
            account_type=AccountType.checking,
            opening_balance_cents=20_000,
        ),
    )
    service = PayableService(session, user.id)
    item = service.create(
        PayableIn(description="Supplier bill", amount_cents=5_000, due_date=date(2025, 3, 1))
    )
    payment = service.add_payment(item.id, pay(5_000, account.id))
    assert AccountService(session, user.id).balance(account.id) == 15_000

    with pytest.raises(ConflictError):
        service.delete(item.id)

    PaymentService(session, user.id).delete(payment.id)

    assert service.get(item.id).settlement.status == SettlementStatus.pending
    assert session.get(Transaction, payment.transaction_id).deleted_at is not None
    assert AccountService(session, user.id).balance(account.id) == 20_000
    assert PaymentService(session, user.id).list_all(payable_id=item.id) == []

    service.delete(item.id)
    assert service.list_all() == []


def test_amount_cannot_drop_below_paid() -> None:
    session = make_session()
    user, account = setup_user(session)
    service = ReceivableService(session, user.id)
    data = ReceivableIn(description="Consulting", amount_cents=10_000, due_date=date(2025, 3, 1))
    item = service.create(data)
    service.add_payment(item.id, pay(7_000, account.id))

    with pytest.raises(ValueError):
        service.update(item.id, data.model_copy(update={"amount_cents": 6_000}))

    updated = service.update(item.id, data.model_copy(update={"amount_cents": 7_000}))
    assert updated.settlement.status == SettlementStatus.paid


def test_overdue_upcoming_and_summary() -> None:
    session = make_session()
    user, account = setup_user(session)
    service = ReceivableService(session, user.id)
    today = date(2025, 3, 10)
    late = service.create(
        ReceivableIn(description="Late", amount_cents=3_000, due_date=date(2025, 3, 1))
    )
    soon = service.create(
        ReceivableIn(description="Soon", amount_cents=2_000, due_date=date(2025, 3, 20))
    )
    done = service.create(
        ReceivableIn(description="Done", amount_cents=1_000, due_date=date(2025, 3, 5))
    )
    service.add_payment(done.id, pay(1_000, account.id))

    assert [i.id for i in service.overdue(today)] == [late.id]
    assert [i.id for i in service.upcoming(30, today)] == [soon.id]
    assert [i.id for i in service.list_all(status=SettlementStatus.paid, today=today)] == [done.id]

    summary = service.summary(today)
    assert summary["count"] == 3
    assert summary["total_cents"] == 6_000
    assert summary["paid_cents"] == 1_000
    assert summary["remaining_cents"] == 5_000
    assert summary["overdue_count"] == 1
    assert summary["overdue_cents"] == 3_000
    assert summary["by_status"]["paid"] == 1


def test_counterparty_documents_are_normalized_and_unique() -> None:
    session = make_session()
    user, _ = setup_user(session)
    customers = CustomerService(session, user.id)

    customer = customers.create(
        CounterpartyIn(
            name="Maria", document_type=DocumentType.cpf, document_number="529.982.247-25"
        )
    )
    assert customer.document_number == "52998224725"

    with pytest.raises(ConflictError):
        customers.create(
            CounterpartyIn(
                name="Other", document_type=DocumentType.cpf, document_number="52998224725"
            )
        )
    with pytest.raises(ValueError):
        customers.create(
            CounterpartyIn(
                name="Bad", document_type=DocumentType.cpf, document_number="111.111.111-11"
            )
        )

    assert [c.id for c in customers.list_all(search="529.982")] == [customer.id]
    assert [c.id for c in customers.list_all(search="mar")] == [customer.id]


def test_counterparty_in_use_cannot_be_deleted() -> None:
    session = make_session()
    user, _ = setup_user(session)
    suppliers = SupplierService(session, user.id)
    supplier = suppliers.create(CounterpartyIn(name="ACME"))
    PayableService(session, user.id).create(
        PayableIn(
            supplier_id=supplier.id,
            description="Parts",
            amount_cents=1_000,
            due_date=date(2025, 3, 1),
        )
    )

    with pytest.raises(ConflictError):
        suppliers.delete(supplier.id)

    spare = suppliers.create(CounterpartyIn(name="Spare"))
    suppliers.delete(spare.id)


def test_creditor_requires_document() -> None:
    session = make_session()
    user, _ = setup_user(session)
    creditors = CreditorService(session, user.id)

    with pytest.raises(ValueError):
        creditors.create(CreditorIn(name="Bank"))

    creditor = creditors.create(
        CreditorIn(
            name="Bank",
            document_type=DocumentType.cnpj,
            document_number="11.222.333/0001-81",
            contact_person="Carla",
        )
    )
    assert creditor.document_number == "11222333000181"
    assert creditor.is_active
