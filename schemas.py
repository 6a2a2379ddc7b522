from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    AccountType,
    AmortizationMethod,
    DocumentType,
    FinancingType,
    GoalStatus,
    InvestmentType,
    NotificationPriority,
    NotificationType,
    PaymentMethod,
    Periodicity,
    TransactionType,
    UserRole,
)

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


def _reject_nulls(model: BaseModel, *fields: str) -> None:
    """Partial updates may omit these fields but never set them to null."""
    for name in fields:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


class RegisterIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class ProfileIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[str] = Field(
        default=None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$"
    )
    timezone: Optional[str] = Field(default=None, max_length=64)
    language: Optional[str] = Field(default=None, max_length=10)


class PasswordChangeIn(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR)


class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class AccountIn(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_type: AccountType
    opening_balance_cents: int = 0
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionIn(BaseModel):
    account_id: int
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    date: date
    description: Optional[str] = Field(default=None, max_length=255)
    category_id: Optional[int] = None
    category_name: Optional[str] = Field(default=None, max_length=100)
    payment_method: Optional[PaymentMethod] = None
    supplier_id: Optional[int] = None
    customer_id: Optional[int] = None

    @model_validator(mode="after")
    def _single_category_reference(self):
        if self.category_id is not None and self.category_name:
            raise ValueError("Use either category_id or category_name, not both")
        return self


class CounterpartyIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    document_type: Optional[DocumentType] = None
    document_number: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=30)
    address: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _document_pair(self):
        if bool(self.document_type) != bool(self.document_number):
            raise ValueError("document_type and document_number go together")
        return self


class CreditorIn(CounterpartyIn):
    contact_person: Optional[str] = Field(default=None, max_length=150)
    is_active: bool = True


class ReceivableIn(BaseModel):
    customer_id: Optional[int] = None
    category_id: Optional[int] = None
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int = Field(..., gt=0)
    due_date: date
    invoice_number: Optional[str] = Field(default=None, max_length=50)
    payment_terms: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class PayableIn(BaseModel):
    supplier_id: Optional[int] = None
    category_id: Optional[int] = None
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int = Field(..., gt=0)
    due_date: date
    invoice_number: Optional[str] = Field(default=None, max_length=50)
    payment_terms: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class PaymentIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    payment_date: date
    account_id: int
    payment_method: PaymentMethod
    notes: Optional[str] = None


class FinancingIn(BaseModel):
    creditor_id: Optional[int] = None
    financing_type: FinancingType
    description: str = Field(..., min_length=1, max_length=255)
    contract_number: Optional[str] = Field(default=None, max_length=50)
    total_amount_cents: int = Field(..., gt=0)
    interest_rate: Decimal = Field(..., ge=0, le=5, max_digits=9, decimal_places=6)
    term_months: int = Field(..., gt=0, le=600)
    start_date: date
    amortization_method: AmortizationMethod
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


class FinancingUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    creditor_id: Optional[int] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    contract_number: Optional[str] = Field(default=None, max_length=50)
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _required_fields(self):
        _reject_nulls(self, "description")
        return self


class InstallmentPaymentIn(BaseModel):
    installment_number: int = Field(..., ge=1)
    account_id: int
    payment_date: date
    payment_method: PaymentMethod
    notes: Optional[str] = None


class EarlyPaymentIn(BaseModel):
    principal_cents: int = Field(..., gt=0)
    account_id: int
    payment_date: date
    payment_method: PaymentMethod
    preference: Literal["reduce_term", "reduce_installment"] = "reduce_installment"
    notes: Optional[str] = None


class EarlyPaymentSimulationIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    preference: Literal["reduce_term", "reduce_installment"] = "reduce_term"


class FixedAccountIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int = Field(..., gt=0)
    periodicity: Periodicity
    start_date: date
    category_id: int
    supplier_id: Optional[int] = None
    account_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    reminder_days: int = Field(default=3, ge=0, le=60)
    notes: Optional[str] = None


class FixedAccountUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    supplier_id: Optional[int] = None
    account_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    reminder_days: Optional[int] = Field(default=None, ge=0, le=60)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _required_fields(self):
        _reject_nulls(self, "description", "amount_cents", "reminder_days")
        return self


class FixedAccountPayIn(BaseModel):
    occurrence_ids: list[int] = Field(..., min_length=1)
    account_id: Optional[int] = None
    payment_date: date
    payment_method: Optional[PaymentMethod] = None


class InvestmentIn(BaseModel):
    investment_type: InvestmentType
    asset_name: str = Field(..., min_length=1, max_length=150)
    ticker: Optional[str] = Field(default=None, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    unit_price_cents: int = Field(..., gt=0)
    operation_date: date
    broker: Optional[str] = Field(default=None, max_length=100)
    source_account_id: int
    destination_account_id: Optional[int] = None
    category_id: Optional[int] = None
    notes: Optional[str] = None


class SellIn(BaseModel):
    asset_name: str = Field(..., min_length=1, max_length=150)
    ticker: Optional[str] = Field(default=None, max_length=20)
    quantity: Decimal = Field(..., gt=0)
    unit_price_cents: int = Field(..., gt=0)
    account_id: int
    operation_date: date
    broker: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class ContributionIn(BaseModel):
    investment_id: int
    amount_cents: int = Field(..., gt=0)
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    unit_price_cents: Optional[int] = Field(default=None, gt=0)
    contribution_date: date
    source_account_id: int
    destination_account_id: Optional[int] = None
    broker: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class ContributionUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    broker: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None


class GoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    target_amount_cents: int = Field(..., gt=0)
    current_amount_cents: int = Field(default=0, ge=0)
    target_date: date
    category_id: Optional[int] = None
    color: str = Field(default="#3B82F6", pattern=HEX_COLOR)
    status: GoalStatus = GoalStatus.active


class GoalAmountIn(BaseModel):
    current_amount_cents: int = Field(..., ge=0)


class NotificationIn(BaseModel):
    type: NotificationType = NotificationType.system
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    priority: NotificationPriority = NotificationPriority.medium
    related_type: Optional[str] = Field(default=None, max_length=40)
    related_id: Optional[int] = None
    due_date: Optional[date] = None


class UserStatusIn(BaseModel):
    is_active: bool


class UserRoleIn(BaseModel):
    role: UserRole
