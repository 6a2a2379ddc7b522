from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from settlement import Settlement, settle


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TransactionSource(str, Enum):
    manual = "manual"
    receivable_payment = "receivable_payment"
    payable_payment = "payable_payment"
    financing_payment = "financing_payment"
    fixed_account = "fixed_account"
    investment = "investment"
    investment_contribution = "investment_contribution"


class PaymentMethod(str, Enum):
    cash = "cash"
    credit_card = "credit_card"
    debit_card = "debit_card"
    pix = "pix"
    bank_transfer = "bank_transfer"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    investment = "investment"


class UserRole(str, Enum):
    admin = "admin"
    user = "user"


class DocumentType(str, Enum):
    cpf = "CPF"
    cnpj = "CNPJ"


DOCUMENT_TYPE_ENUM = SAEnum(
    DocumentType,
    name="documenttype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class AmortizationMethod(str, Enum):
    sac = "SAC"
    price = "PRICE"


AMORTIZATION_METHOD_ENUM = SAEnum(
    AmortizationMethod,
    name="amortizationmethod",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class FinancingType(str, Enum):
    mortgage = "mortgage"
    personal_loan = "personal_loan"
    vehicle_financing = "vehicle_financing"
    other = "other"


class FinancingStatus(str, Enum):
    active = "active"
    paid_off = "paid_off"
    cancelled = "cancelled"


class FinancingPaymentType(str, Enum):
    installment = "installment"
    early = "early"


class Periodicity(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class OccurrenceStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    cancelled = "cancelled"


class InvestmentType(str, Enum):
    stocks = "stocks"
    fixed_income = "fixed_income"
    funds = "funds"
    crypto = "crypto"
    real_estate = "real_estate"
    other = "other"


class OperationType(str, Enum):
    buy = "buy"
    sell = "sell"


class GoalStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class NotificationType(str, Enum):
    payment_due = "payment_due"
    payment_overdue = "payment_overdue"
    payment_reminder = "payment_reminder"
    general_reminder = "general_reminder"
    system = "system"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class SettingCategory(str, Enum):
    notifications = "notifications"
    appearance = "appearance"
    privacy = "privacy"
    security = "security"
    preferences = "preferences"
    dashboard = "dashboard"
    reports = "reports"


class AuditStatus(str, Enum):
    success = "success"
    failure = "failure"


class JobStatus(str, Enum):
    running = "running"
    success = "success"
    failed = "failed"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole), default=UserRole.user, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime)
    timezone: Mapped[str] = mapped_column(
        String(64), default="America/Sao_Paulo", nullable=False
    )
    language: Mapped[str] = mapped_column(String(10), default="pt-BR", nullable=False)

    sessions: Mapped[list["UserSession"]] = relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan"
    )


class UserSession(Base, TimestampMixin):
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    session_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255))
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    device_type: Mapped[Optional[str]] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="sessions")

    __table_args__ = (Index("ix_user_sessions_user_active", "user_id", "is_active"),)


class UserSetting(Base, TimestampMixin):
    __tablename__ = "user_settings"
    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_user_setting_category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    category: Mapped[SettingCategory] = mapped_column(
        SAEnum(SettingCategory), nullable=False
    )
    settings_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    bank_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False
    )
    opening_balance_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )


class CounterpartyMixin:
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    document_type: Mapped[Optional[DocumentType]] = mapped_column(DOCUMENT_TYPE_ENUM)
    document_number: Mapped[Optional[str]] = mapped_column(String(14))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(30))
    address: Mapped[Optional[str]] = mapped_column(Text)


class Customer(Base, CounterpartyMixin, TimestampMixin):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("user_id", "document_number", name="uq_customer_document"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)


class Supplier(Base, CounterpartyMixin, TimestampMixin):
    __tablename__ = "suppliers"
    __table_args__ = (
        UniqueConstraint("user_id", "document_number", name="uq_supplier_document"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)


class Creditor(Base, CounterpartyMixin, TimestampMixin):
    __tablename__ = "creditors"
    __table_args__ = (
        UniqueConstraint("user_id", "document_number", name="uq_creditor_document"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    contact_person: Mapped[Optional[str]] = mapped_column(String(150))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    supplier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suppliers.id"))
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"))
    source: Mapped[TransactionSource] = mapped_column(
        SAEnum(TransactionSource), default=TransactionSource.manual, nullable=False
    )
    fixed_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("fixed_accounts.id")
    )
    investment_id: Mapped[Optional[int]] = mapped_column(ForeignKey("investments.id"))
    investment_contribution_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("investment_contributions.id")
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier")
    customer: Mapped[Optional["Customer"]] = relationship("Customer")

    @property
    def signed_amount_cents(self) -> int:
        if self.type == TransactionType.expense:
            return -self.amount_cents
        return self.amount_cents

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category_id", "date"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )


class Receivable(Base, TimestampMixin):
    __tablename__ = "receivables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"))
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50))
    payment_terms: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    customer: Mapped[Optional["Customer"]] = relationship("Customer")
    category: Mapped["Category"] = relationship("Category")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="receivable", order_by="Payment.payment_date"
    )

    @property
    def settlement(self) -> Settlement:
        return settle(
            self.amount_cents,
            [p.amount_cents for p in self.payments if p.deleted_at is None],
        )

    __table_args__ = (
        Index("ix_receivables_user_due", "user_id", "due_date"),
        CheckConstraint("amount_cents > 0", name="ck_receivables_amount_positive"),
    )


class Payable(Base, TimestampMixin):
    __tablename__ = "payables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    supplier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suppliers.id"))
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50))
    payment_terms: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier")
    category: Mapped["Category"] = relationship("Category")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment", back_populates="payable", order_by="Payment.payment_date"
    )

    @property
    def settlement(self) -> Settlement:
        return settle(
            self.amount_cents,
            [p.amount_cents for p in self.payments if p.deleted_at is None],
        )

    __table_args__ = (
        Index("ix_payables_user_due", "user_id", "due_date"),
        CheckConstraint("amount_cents > 0", name="ck_payables_amount_positive"),
    )


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    receivable_id: Mapped[Optional[int]] = mapped_column(ForeignKey("receivables.id"))
    payable_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payables.id"))
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    receivable: Mapped[Optional["Receivable"]] = relationship(
        "Receivable", back_populates="payments"
    )
    payable: Mapped[Optional["Payable"]] = relationship(
        "Payable", back_populates="payments"
    )
    account: Mapped["Account"] = relationship("Account")
    transaction: Mapped[Optional["Transaction"]] = relationship("Transaction")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        CheckConstraint(
            "(receivable_id IS NOT NULL AND payable_id IS NULL)"
            " OR (receivable_id IS NULL AND payable_id IS NOT NULL)",
            name="ck_payments_single_target",
        ),
    )


class Financing(Base, TimestampMixin):
    __tablename__ = "financings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    creditor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("creditors.id"))
    financing_type: Mapped[FinancingType] = mapped_column(
        SAEnum(FinancingType), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    contract_number: Mapped[Optional[str]] = mapped_column(String(50))
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(9, 6), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    amortization_method: Mapped[AmortizationMethod] = mapped_column(
        AMORTIZATION_METHOD_ENUM, nullable=False
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    creditor: Mapped[Optional["Creditor"]] = relationship("Creditor")
    payments: Mapped[list["FinancingPayment"]] = relationship(
        "FinancingPayment",
        back_populates="financing",
        order_by="FinancingPayment.payment_date",
    )

    @property
    def active_payments(self) -> list["FinancingPayment"]:
        return [p for p in self.payments if p.deleted_at is None]

    __table_args__ = (
        CheckConstraint("total_amount_cents > 0", name="ck_financing_amount_positive"),
        CheckConstraint("term_months > 0", name="ck_financing_term_positive"),
        CheckConstraint("interest_rate >= 0", name="ck_financing_rate_non_negative"),
    )


class FinancingPayment(Base, TimestampMixin):
    __tablename__ = "financing_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    financing_id: Mapped[int] = mapped_column(
        ForeignKey("financings.id"), nullable=False
    )
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )
    installment_number: Mapped[Optional[int]] = mapped_column(Integer)
    payment_type: Mapped[FinancingPaymentType] = mapped_column(
        SAEnum(FinancingPaymentType), nullable=False
    )
    early_preference: Mapped[Optional[str]] = mapped_column(String(20))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    principal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    financing: Mapped["Financing"] = relationship(
        "Financing", back_populates="payments"
    )
    transaction: Mapped[Optional["Transaction"]] = relationship("Transaction")

    __table_args__ = (
        Index("ix_financing_payments_financing", "financing_id", "installment_number"),
        CheckConstraint("amount_cents > 0", name="ck_financing_payment_positive"),
    )


class FixedAccount(Base, TimestampMixin):
    __tablename__ = "fixed_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    periodicity: Mapped[Periodicity] = mapped_column(
        SAEnum(Periodicity), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    supplier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("suppliers.id"))
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    reminder_days: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped["Category"] = relationship("Category")
    supplier: Mapped[Optional["Supplier"]] = relationship("Supplier")
    occurrences: Mapped[list["FixedAccountTransaction"]] = relationship(
        "FixedAccountTransaction",
        back_populates="fixed_account",
        order_by="FixedAccountTransaction.due_date",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_fixed_account_amount_positive"),
        CheckConstraint("reminder_days >= 0", name="ck_fixed_account_reminder"),
    )


class FixedAccountTransaction(Base, TimestampMixin):
    __tablename__ = "fixed_account_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    fixed_account_id: Mapped[int] = mapped_column(
        ForeignKey("fixed_accounts.id"), nullable=False
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OccurrenceStatus] = mapped_column(
        SAEnum(OccurrenceStatus), default=OccurrenceStatus.pending, nullable=False
    )
    paid_at: Mapped[Optional[date]] = mapped_column(Date)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SAEnum(PaymentMethod)
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    fixed_account: Mapped["FixedAccount"] = relationship(
        "FixedAccount", back_populates="occurrences"
    )
    transaction: Mapped[Optional["Transaction"]] = relationship("Transaction")

    def is_overdue(self, today: date) -> bool:
        return self.status == OccurrenceStatus.pending and self.due_date < today

    __table_args__ = (
        UniqueConstraint(
            "fixed_account_id", "due_date", name="uq_fixed_account_occurrence"
        ),
        Index("ix_fixed_account_txn_user_due", "user_id", "due_date"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    investment_type: Mapped[InvestmentType] = mapped_column(
        SAEnum(InvestmentType), nullable=False
    )
    asset_name: Mapped[str] = mapped_column(String(150), nullable=False)
    ticker: Mapped[Optional[str]] = mapped_column(String(20))
    operation_type: Mapped[OperationType] = mapped_column(
        SAEnum(OperationType), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8), nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    operation_date: Mapped[date] = mapped_column(Date, nullable=False)
    broker: Mapped[Optional[str]] = mapped_column(String(100))
    source_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    destination_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    category: Mapped[Optional["Category"]] = relationship("Category")
    contributions: Mapped[list["InvestmentContribution"]] = relationship(
        "InvestmentContribution", back_populates="investment"
    )

    __table_args__ = (
        Index("ix_investments_user_asset", "user_id", "asset_name", "ticker"),
        CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
        CheckConstraint("quantity > 0", name="ck_investments_quantity_positive"),
    )


class InvestmentContribution(Base, TimestampMixin):
    __tablename__ = "investment_contributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    investment_id: Mapped[int] = mapped_column(
        ForeignKey("investments.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 8))
    unit_price_cents: Mapped[Optional[int]] = mapped_column(Integer)
    contribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    destination_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    broker: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    investment: Mapped["Investment"] = relationship(
        "Investment", back_populates="contributions"
    )

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_contribution_amount_positive"),
    )


class InvestmentGoal(Base, TimestampMixin):
    __tablename__ = "investment_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_amount_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    color: Mapped[str] = mapped_column(String(7), default="#3B82F6", nullable=False)
    status: Mapped[GoalStatus] = mapped_column(
        SAEnum(GoalStatus), default=GoalStatus.active, nullable=False
    )

    category: Mapped[Optional["Category"]] = relationship("Category")

    @property
    def progress(self) -> float:
        if self.target_amount_cents <= 0:
            return 0.0
        pct = self.current_amount_cents / self.target_amount_cents * 100
        return round(min(pct, 100.0), 2)

    @property
    def is_completed(self) -> bool:
        return (
            self.status == GoalStatus.completed
            or self.current_amount_cents >= self.target_amount_cents
        )

    def is_overdue(self, today: date) -> bool:
        return (
            self.target_date < today
            and not self.is_completed
            and self.status != GoalStatus.cancelled
        )

    __table_args__ = (
        CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
        CheckConstraint("current_amount_cents >= 0", name="ck_goal_current_positive"),
    )


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SAEnum(NotificationType), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[NotificationPriority] = mapped_column(
        SAEnum(NotificationPriority), default=NotificationPriority.medium, nullable=False
    )
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    related_type: Mapped[Optional[str]] = mapped_column(String(40))
    related_id: Mapped[Optional[int]] = mapped_column(Integer)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
        Index(
            "ix_notifications_related", "user_id", "type", "related_type", "related_id"
        ),
    )


class AuditLog(Base, TimestampMixin):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    resource: Mapped[str] = mapped_column(String(60), nullable=False)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer)
    details_json: Mapped[Optional[str]] = mapped_column(Text)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    user_agent: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[AuditStatus] = mapped_column(
        SAEnum(AuditStatus), default=AuditStatus.success, nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_audit_logs_user_created", "user_id", "created_at"),
        Index("ix_audit_logs_action", "action"),
    )


class JobExecution(Base, TimestampMixin):
    __tablename__ = "job_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(60), nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus), default=JobStatus.running, nullable=False
    )
    source: Mapped[Optional[str]] = mapped_column(String(40))
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    result_json: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (Index("ix_job_executions_name_started", "job_name", "started_at"),)
