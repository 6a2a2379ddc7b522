import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from rapidfuzz.distance import Levenshtein
from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.orm import Session, joinedload, selectinload

from amortization import (
    AmortizationTable,
    EarlyPaymentPreference,
    EarlyPaymentSimulation,
    Installment,
    build_table,
    simulate_early_payment,
    term_for_installment,
)
from config import get_settings
from csv_utils import export_transactions
from documents import normalize_document
from models import (
    Account,
    AuditLog,
    AuditStatus,
    Category,
    Creditor,
    Customer,
    FinancingPayment,
    FinancingPaymentType,
    FinancingStatus,
    Financing,
    FixedAccount,
    FixedAccountTransaction,
    GoalStatus,
    Investment,
    InvestmentContribution,
    InvestmentGoal,
    InvestmentType,
    JobExecution,
    JobStatus,
    Notification,
    NotificationPriority,
    NotificationType,
    OccurrenceStatus,
    OperationType,
    Payable,
    Payment,
    PaymentMethod,
    Receivable,
    SettingCategory,
    Supplier,
    Transaction,
    TransactionSource,
    TransactionType,
    User,
    UserRole,
    UserSession,
    UserSetting,
)
from periods import Period
from recurrence import (
    FixedAccountEngine,
    calculate_next_date,
    local_today,
    monthly_equivalent_cents,
)
from schemas import (
    AccountIn,
    CategoryIn,
    CategoryUpdateIn,
    ContributionIn,
    ContributionUpdateIn,
    CounterpartyIn,
    CreditorIn,
    EarlyPaymentIn,
    FinancingIn,
    FinancingUpdateIn,
    FixedAccountIn,
    FixedAccountPayIn,
    FixedAccountUpdateIn,
    GoalIn,
    InstallmentPaymentIn,
    InvestmentIn,
    LoginIn,
    NotificationIn,
    PasswordChangeIn,
    PaymentIn,
    ProfileIn,
    RegisterIn,
    SellIn,
    TransactionIn,
)
from security import (
    detect_device_type,
    hash_password,
    issue_token,
    new_session_key,
    read_token,
    verify_password,
)
from settlement import SettlementStatus

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


class AuthenticationError(ValueError):
    pass


class PermissionDeniedError(ValueError):
    pass


class CategoryAmbiguous(ValueError):
    pass


class InsufficientBalance(ValueError):
    pass


def _owned(session: Session, model, obj_id: Optional[int], user_id: int, label: str):
    obj = session.get(model, obj_id) if obj_id is not None else None
    if not obj or obj.user_id != user_id or getattr(obj, "deleted_at", None):
        raise NotFoundError(f"{label} not found")
    return obj


def _signed_amount():
    return case(
        (Transaction.type == TransactionType.income, Transaction.amount_cents),
        else_=-Transaction.amount_cents,
    )


def account_balance(
    session: Session, user_id: int, account_id: int, as_of: Optional[date] = None
) -> int:
    account = _owned(session, Account, account_id, user_id, "Account")
    stmt = select(func.coalesce(func.sum(_signed_amount()), 0)).where(
        Transaction.user_id == user_id,
        Transaction.account_id == account_id,
        Transaction.deleted_at.is_(None),
    )
    if as_of is not None:
        stmt = stmt.where(Transaction.date <= as_of)
    movement = int(session.execute(stmt).scalar_one() or 0)
    return account.opening_balance_cents + movement


def require_balance(
    session: Session, user_id: int, account_id: int, amount_cents: int
) -> None:
    available = account_balance(session, user_id, account_id)
    if available < amount_cents:
        raise InsufficientBalance(
            f"Insufficient balance: available {available / 100:.2f},"
            f" required {amount_cents / 100:.2f}"
        )


def post_transaction(
    session: Session,
    user_id: int,
    *,
    account_id: int,
    type: TransactionType,
    amount_cents: int,
    txn_date: date,
    description: Optional[str],
    source: TransactionSource,
    category_id: Optional[int] = None,
    payment_method: Optional[PaymentMethod] = None,
    supplier_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    fixed_account_id: Optional[int] = None,
    investment_id: Optional[int] = None,
    investment_contribution_id: Optional[int] = None,
) -> Transaction:
    txn = Transaction(
        user_id=user_id,
        account_id=account_id,
        type=type,
        amount_cents=amount_cents,
        date=txn_date,
        description=description,
        source=source,
        category_id=category_id,
        payment_method=payment_method,
        supplier_id=supplier_id,
        customer_id=customer_id,
        fixed_account_id=fixed_account_id,
        investment_id=investment_id,
        investment_contribution_id=investment_contribution_id,
    )
    session.add(txn)
    session.flush()
    return txn


def void_transaction(session: Session, transaction_id: Optional[int]) -> None:
    if transaction_id is None:
        return
    txn = session.get(Transaction, transaction_id)
    if txn and txn.deleted_at is None:
        txn.deleted_at = datetime.utcnow()


def _dump_json(value: Optional[dict]) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, sort_keys=True)


def _load_json(value: Optional[str]) -> dict:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError:
        logger.warning("json_decode_failed: value ignored")
        return {}
    return data if isinstance(data, dict) else {}


class AuditService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def record(
        self,
        action: str,
        resource: str,
        *,
        user_id: Optional[int] = None,
        resource_id: Optional[int] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        status: AuditStatus = AuditStatus.success,
        error_message: Optional[str] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details_json=_dump_json(details),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            status=status,
            error_message=error_message,
        )
        self.session.add(entry)
        return entry

    def list_all(
        self,
        *,
        user_id: Optional[int] = None,
        action: Optional[str] = None,
        status: Optional[AuditStatus] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLog]:
        stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if status:
            stmt = stmt.where(AuditLog.status == status)
        if start:
            stmt = stmt.where(AuditLog.created_at >= datetime.combine(start, datetime.min.time()))
        if end:
            stmt = stmt.where(
                AuditLog.created_at < datetime.combine(end + timedelta(days=1), datetime.min.time())
            )
        return self.session.scalars(stmt.offset(offset).limit(limit)).all()

    def get(self, log_id: int) -> AuditLog:
        entry = self.session.get(AuditLog, log_id)
        if not entry:
            raise NotFoundError("Audit log not found")
        return entry

    def stats(self, days: int = 30, user_id: Optional[int] = None) -> dict[str, object]:
        since = datetime.utcnow() - timedelta(days=days)
        base = [AuditLog.created_at >= since]
        if user_id is not None:
            base.append(AuditLog.user_id == user_id)
        by_action = self.session.execute(
            select(AuditLog.action, func.count(AuditLog.id))
            .where(*base)
            .group_by(AuditLog.action)
        ).all()
        by_status = self.session.execute(
            select(AuditLog.status, func.count(AuditLog.id))
            .where(*base)
            .group_by(AuditLog.status)
        ).all()
        status_counts = {s.value: int(c) for s, c in by_status}
        return {
            "days": days,
            "total": sum(status_counts.values()),
            "failures": status_counts.get(AuditStatus.failure.value, 0),
            "by_action": {a: int(c) for a, c in by_action},
            "by_status": status_counts,
        }


@dataclass
class AuthContext:
    user: User
    session: UserSession


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.settings = get_settings()

    def _by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )

    def register(
        self,
        data: RegisterIn,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> User:
        email = data.email.strip().lower()
        if self._by_email(email):
            raise ConflictError("Email already registered")
        is_first = (self.session.scalar(select(func.count(User.id))) or 0) == 0
        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=hash_password(data.password),
            role=UserRole.admin if is_first else UserRole.user,
        )
        self.session.add(user)
        self.session.flush()
        CategoryService(self.session, user.id).seed_defaults(commit=False)
        AuditService(self.session).record(
            "register",
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id} role={user.role.value}")
        return user

    def login(
        self,
        data: LoginIn,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[str, AuthContext]:
        audit = AuditService(self.session)
        now = datetime.utcnow()
        user = self._by_email(data.email)
        if not user:
            audit.record(
                "login",
                "user",
                details={"email": data.email.strip().lower()},
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.failure,
                error_message="unknown email",
            )
            self.session.commit()
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise PermissionDeniedError("Account is inactive")
        if user.locked_until and user.locked_until > now:
            raise PermissionDeniedError("Account temporarily locked, try again later")

        if not verify_password(user.password_hash, data.password):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= self.settings.max_login_attempts:
                user.locked_until = now + timedelta(
                    minutes=self.settings.lockout_minutes
                )
                user.failed_login_attempts = 0
                logger.warning(f"login_locked: user_id={user.id}")
            audit.record(
                "login",
                "user",
                user_id=user.id,
                resource_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                status=AuditStatus.failure,
                error_message="wrong password",
            )
            self.session.commit()
            raise AuthenticationError("Invalid credentials")

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        user_session = UserSession(
            user_id=user.id,
            session_key=new_session_key(),
            user_agent=(user_agent or "")[:255] or None,
            ip_address=ip_address,
            device_type=detect_device_type(user_agent),
            is_active=True,
            last_activity_at=now,
            expires_at=now + timedelta(hours=self.settings.session_hours),
        )
        self.session.add(user_session)
        audit.record(
            "login",
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.commit()
        self.session.refresh(user_session)
        logger.info(f"login: user_id={user.id} session_id={user_session.id}")
        token = issue_token(user.id, user_session.session_key)
        return token, AuthContext(user=user, session=user_session)

    def authenticate(self, token: str) -> AuthContext:
        payload = read_token(token)
        if not payload:
            raise AuthenticationError("Invalid or expired token")
        now = datetime.utcnow()
        user_session = self.session.scalar(
            select(UserSession).where(UserSession.session_key == payload["s"])
        )
        if (
            not user_session
            or user_session.user_id != payload["u"]
            or not user_session.is_active
            or user_session.expires_at <= now
        ):
            raise AuthenticationError("Session expired or revoked")
        user = self.session.get(User, user_session.user_id)
        if not user or not user.is_active:
            raise AuthenticationError("Session expired or revoked")
        user_session.last_activity_at = now
        self.session.commit()
        return AuthContext(user=user, session=user_session)

    def logout(self, ctx: AuthContext) -> None:
        ctx.session.is_active = False
        AuditService(self.session).record(
            "logout", "user", user_id=ctx.user.id, resource_id=ctx.user.id
        )
        self.session.commit()

    def logout_all(self, user_id: int, *, keep_session_id: Optional[int] = None) -> int:
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
        if keep_session_id is not None:
            stmt = stmt.where(UserSession.id != keep_session_id)
        result = self.session.execute(stmt)
        self.session.commit()
        return int(result.rowcount or 0)

    def list_sessions(self, user_id: int) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.is_active.is_(True),
                UserSession.expires_at > datetime.utcnow(),
            )
            .order_by(UserSession.last_activity_at.desc())
        )
        return self.session.scalars(stmt).all()

    def revoke_session(self, user_id: int, session_id: int) -> None:
        user_session = self.session.get(UserSession, session_id)
        if not user_session or user_session.user_id != user_id:
            raise NotFoundError("Session not found")
        user_session.is_active = False
        self.session.commit()

    def update_profile(self, user: User, data: ProfileIn) -> User:
        if data.email is not None:
            email = data.email.strip().lower()
            other = self._by_email(email)
            if other and other.id != user.id:
                raise ConflictError("Email already registered")
            user.email = email
        if data.name is not None:
            user.name = data.name.strip()
        if data.timezone is not None:
            user.timezone = data.timezone
        if data.language is not None:
            user.language = data.language
        self.session.commit()
        self.session.refresh(user)
        return user

    def change_password(self, ctx: AuthContext, data: PasswordChangeIn) -> int:
        user = ctx.user
        if not verify_password(user.password_hash, data.current_password):
            raise ValueError("Current password is incorrect")
        if data.current_password == data.new_password:
            raise ValueError("New password must differ from the current one")
        user.password_hash = hash_password(data.new_password)
        AuditService(self.session).record(
            "password_change", "user", user_id=user.id, resource_id=user.id
        )
        self.session.flush()
        revoked = self.logout_all(user.id, keep_session_id=ctx.session.id)
        logger.info(f"password_changed: user_id={user.id} sessions_revoked={revoked}")
        return revoked


DEFAULT_SETTINGS: dict[SettingCategory, dict[str, object]] = {
    SettingCategory.notifications: {
        "email": False,
        "push": True,
        "payment_due": True,
        "payment_overdue": True,
        "general_reminders": True,
        "reminder_days": 3,
    },
    SettingCategory.appearance: {
        "theme": "light",
        "compact_mode": False,
        "primary_color": "#3B82F6",
    },
    SettingCategory.privacy: {"hide_balances": False, "share_usage_data": False},
    SettingCategory.security: {"session_timeout_hours": 24, "login_alerts": True},
    SettingCategory.preferences: {
        "currency": "BRL",
        "date_format": "DD/MM/YYYY",
        "first_day_of_week": 0,
    },
    SettingCategory.dashboard: {
        "default_period": "month",
        "show_investments": True,
        "show_financings": True,
    },
    SettingCategory.reports: {"default_period": "month", "include_cents": True},
}


class UserSettingService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _row(self, category: SettingCategory) -> Optional[UserSetting]:
        return self.session.scalar(
            select(UserSetting).where(
                UserSetting.user_id == self.user_id,
                UserSetting.category == category,
            )
        )

    def get(self, category: SettingCategory) -> dict[str, object]:
        merged = dict(DEFAULT_SETTINGS[category])
        row = self._row(category)
        if row:
            merged.update(_load_json(row.settings_json))
        return merged

    def get_all(self) -> dict[str, dict[str, object]]:
        return {category.value: self.get(category) for category in SettingCategory}

    def update(
        self, category: SettingCategory, values: dict[str, object]
    ) -> dict[str, object]:
        defaults = DEFAULT_SETTINGS[category]
        unknown = sorted(set(values) - set(defaults))
        if unknown:
            raise ValueError(
                f"Unknown {category.value} setting(s): {', '.join(unknown)}"
            )
        row = self._row(category)
        if not row:
            row = UserSetting(user_id=self.user_id, category=category)
            self.session.add(row)
            stored: dict[str, object] = {}
        else:
            stored = _load_json(row.settings_json)
        stored.update(values)
        row.settings_json = _dump_json(stored)
        self.session.commit()
        return self.get(category)

    def reset(self, category: SettingCategory) -> dict[str, object]:
        row = self._row(category)
        if row:
            self.session.delete(row)
            self.session.commit()
        return dict(DEFAULT_SETTINGS[category])


DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, bool]] = [
    ("Food", TransactionType.expense, "#EF4444", False),
    ("Transport", TransactionType.expense, "#F97316", False),
    ("Housing", TransactionType.expense, "#8B5CF6", False),
    ("Health", TransactionType.expense, "#EC4899", False),
    ("Education", TransactionType.expense, "#06B6D4", False),
    ("Leisure", TransactionType.expense, "#F59E0B", False),
    ("Bills", TransactionType.expense, "#64748B", False),
    ("Other Expenses", TransactionType.expense, "#6B7280", True),
    ("Salary", TransactionType.income, "#10B981", False),
    ("Freelance", TransactionType.income, "#22C55E", False),
    ("Investments", TransactionType.income, "#14B8A6", False),
    ("Other Income", TransactionType.income, "#3B82F6", True),
]


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        type: Optional[TransactionType] = None,
        include_archived: bool = False,
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        return _owned(self.session, Category, category_id, self.user_id, "Category")

    def _find_by_name(
        self, name: str, type: TransactionType
    ) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == type,
                func.lower(Category.name) == name.strip().lower(),
            )
        )

    def create(self, data: CategoryIn) -> Category:
        if self._find_by_name(data.name, data.type):
            raise ConflictError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        if data.name is not None:
            existing = self._find_by_name(data.name, category.type)
            if existing and existing.id != category.id:
                raise ConflictError("Category with this name already exists")
            category.name = data.name.strip()
        if data.color is not None:
            category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        return category

    def archive(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ValueError("Default categories cannot be archived")
        category.archived_at = datetime.utcnow()
        self.session.commit()

    def restore(self, category_id: int) -> None:
        category = self.get(category_id)
        category.archived_at = None
        self.session.commit()

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        if category.is_default:
            raise ValueError("Default categories cannot be deleted")
        for model in (
            Transaction,
            Receivable,
            Payable,
            FixedAccount,
            Investment,
            InvestmentGoal,
        ):
            in_use = self.session.scalar(
                select(func.count(model.id)).where(model.category_id == category.id)
            )
            if in_use:
                raise ConflictError("Category is in use, archive it instead")
        self.session.delete(category)
        self.session.commit()

    def seed_defaults(self, commit: bool = True) -> int:
        created = 0
        for name, type_, color, is_default in DEFAULT_CATEGORIES:
            if self._find_by_name(name, type_):
                continue
            self.session.add(
                Category(
                    user_id=self.user_id,
                    name=name,
                    type=type_,
                    color=color,
                    is_default=is_default,
                )
            )
            self.session.flush()
            created += 1
        if commit:
            self.session.commit()
        return created

    def default_for(self, type: TransactionType) -> Category:
        stmt = (
            select(Category)
            .where(
                Category.user_id == self.user_id,
                Category.type == type,
                Category.is_default.is_(True),
            )
            .order_by(Category.id)
            .limit(1)
        )
        category = self.session.scalar(stmt)
        if category is None:
            self.seed_defaults(commit=False)
            category = self.session.scalar(stmt)
        return category

    def resolve(self, name: str, type: TransactionType) -> Category:
        """Find a category by name, tolerating a one-character typo."""
        exact = self._find_by_name(name, type)
        if exact:
            return exact
        input_lower = name.strip().lower()
        candidates = self.list_all(type=type)
        best_distance: Optional[int] = None
        best: list[Category] = []
        for category in candidates:
            dist = int(Levenshtein.distance(input_lower, category.name.lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)
        if best_distance is None or best_distance > 1:
            raise NotFoundError(f"Category '{name}' not found")
        if len(best) > 1:
            options = ", ".join(sorted(c.name for c in best))
            raise CategoryAmbiguous(
                f"Category '{name}' is ambiguous; matches: {options}"
            )
        return best[0]

    def check(
        self, category_id: Optional[int], type: TransactionType
    ) -> Category:
        """Validate an explicit category or fall back to the default of ``type``."""
        if category_id is None:
            return self.default_for(type)
        category = self.get(category_id)
        if category.type != type:
            raise ValueError("Category type mismatch")
        return category


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.bank_name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        return _owned(self.session, Account, account_id, self.user_id, "Account")

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            bank_name=data.bank_name.strip(),
            account_type=data.account_type,
            opening_balance_cents=data.opening_balance_cents,
            description=data.description,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.bank_name = data.bank_name.strip()
        account.account_type = data.account_type
        account.opening_balance_cents = data.opening_balance_cents
        account.description = data.description
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        for model, column in (
            (Transaction, Transaction.account_id),
            (FixedAccount, FixedAccount.account_id),
            (Investment, Investment.source_account_id),
            (Investment, Investment.destination_account_id),
        ):
            in_use = self.session.scalar(
                select(func.count(model.id)).where(column == account.id)
            )
            if in_use:
                raise ConflictError(
                    "Account has transaction history and cannot be deleted"
                )
        self.session.delete(account)
        self.session.commit()

    def balance(self, account_id: int, as_of: Optional[date] = None) -> int:
        return account_balance(self.session, self.user_id, account_id, as_of)

    def balances(self, as_of: Optional[date] = None) -> dict[int, int]:
        stmt = (
            select(Transaction.account_id, func.coalesce(func.sum(_signed_amount()), 0))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
            )
            .group_by(Transaction.account_id)
        )
        if as_of is not None:
            stmt = stmt.where(Transaction.date <= as_of)
        movements = {
            account_id: int(total) for account_id, total in self.session.execute(stmt)
        }
        return {
            account.id: account.opening_balance_cents + movements.get(account.id, 0)
            for account in self.list_all()
        }

    def total_balance(self, as_of: Optional[date] = None) -> int:
        return sum(self.balances(as_of).values())


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    customer_id: Optional[int] = None
    source: Optional[TransactionSource] = None
    query: Optional[str] = None


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _resolve_category(self, data: TransactionIn) -> Category:
        categories = CategoryService(self.session, self.user_id)
        if data.category_name:
            return categories.resolve(data.category_name, data.type)
        return categories.check(data.category_id, data.type)

    def _check_refs(self, data: TransactionIn) -> Category:
        _owned(self.session, Account, data.account_id, self.user_id, "Account")
        if data.supplier_id is not None:
            _owned(self.session, Supplier, data.supplier_id, self.user_id, "Supplier")
        if data.customer_id is not None:
            _owned(self.session, Customer, data.customer_id, self.user_id, "Customer")
        return self._resolve_category(data)

    @staticmethod
    def _ensure_manual(txn: Transaction) -> None:
        if txn.source != TransactionSource.manual:
            raise ConflictError(
                f"Transaction is managed by its {txn.source.value.replace('_', ' ')}"
            )

    def create(self, data: TransactionIn) -> Transaction:
        category = self._check_refs(data)
        txn = post_transaction(
            self.session,
            self.user_id,
            account_id=data.account_id,
            type=data.type,
            amount_cents=data.amount_cents,
            txn_date=data.date,
            description=data.description,
            source=TransactionSource.manual,
            category_id=category.id,
            payment_method=data.payment_method,
            supplier_id=data.supplier_id,
            customer_id=data.customer_id,
        )
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int, *, include_deleted: bool = False) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not include_deleted:
            stmt = stmt.where(Transaction.deleted_at.is_(None))
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._ensure_manual(txn)
        category = self._check_refs(data)
        txn.account_id = data.account_id
        txn.type = data.type
        txn.amount_cents = data.amount_cents
        txn.date = data.date
        txn.description = data.description
        txn.category_id = category.id
        txn.payment_method = data.payment_method
        txn.supplier_id = data.supplier_id
        txn.customer_id = data.customer_id
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def _filtered(self, period: Period, filters: TransactionFilters):
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.account))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.date.between(period.start, period.end),
            )
        )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.supplier_id:
            stmt = stmt.where(Transaction.supplier_id == filters.supplier_id)
        if filters.customer_id:
            stmt = stmt.where(Transaction.customer_id == filters.customer_id)
        if filters.source:
            stmt = stmt.where(Transaction.source == filters.source)
        if filters.query:
            like = f"%{filters.query.lower()}%"
            stmt = stmt.where(
                func.lower(func.coalesce(Transaction.description, "")).like(like)
            )
        return stmt

    def list_all(
        self,
        period: Period,
        filters: TransactionFilters,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = (
            self._filtered(period, filters)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(stmt).unique().all()

    def all_for_period(
        self, period: Period, filters: Optional[TransactionFilters] = None
    ) -> list[Transaction]:
        stmt = self._filtered(period, filters or TransactionFilters()).order_by(
            Transaction.date.asc(), Transaction.id.asc()
        )
        return self.session.scalars(stmt).unique().all()

    def soft_delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self._ensure_manual(txn)
        txn.deleted_at = datetime.utcnow()
        self.session.commit()

    def restore(self, transaction_id: int) -> None:
        txn = self.get(transaction_id, include_deleted=True)
        if txn.deleted_at is None:
            return
        self._ensure_manual(txn)
        txn.deleted_at = None
        self.session.commit()

    def deleted(self, limit: int = 200) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.isnot(None),
                Transaction.source == TransactionSource.manual,
            )
            .order_by(Transaction.deleted_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def stats(
        self, period: Period, account_id: Optional[int] = None
    ) -> dict[str, object]:
        where = [
            Transaction.user_id == self.user_id,
            Transaction.deleted_at.is_(None),
            Transaction.date.between(period.start, period.end),
        ]
        if account_id is not None:
            where.append(Transaction.account_id == account_id)

        totals = {TransactionType.income: 0, TransactionType.expense: 0}
        count = 0
        for txn_type, total, n in self.session.execute(
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0),
                func.count(Transaction.id),
            )
            .where(*where)
            .group_by(Transaction.type)
        ):
            totals[txn_type] = int(total)
            count += int(n)

        categories = {
            c.id: c
            for c in CategoryService(self.session, self.user_id).list_all(
                include_archived=True
            )
        }
        by_category = []
        for category_id, txn_type, total in self.session.execute(
            select(
                Transaction.category_id,
                Transaction.type,
                func.sum(Transaction.amount_cents),
            )
            .where(*where)
            .group_by(Transaction.category_id, Transaction.type)
        ):
            category = categories.get(category_id)
            type_total = totals[txn_type] or 1
            by_category.append(
                {
                    "category_id": category_id,
                    "name": category.name if category else "Uncategorized",
                    "color": category.color if category else "#9CA3AF",
                    "type": txn_type.value,
                    "total_cents": int(total),
                    "share": round(int(total) / type_total * 100, 2),
                }
            )
        by_category.sort(key=lambda row: (row["type"], -row["total_cents"]))

        daily = period.days <= 31
        buckets: dict[str, dict[str, int]] = {}
        cursor = period.start
        while cursor <= period.end and period.days <= 731:
            key = cursor.isoformat() if daily else cursor.strftime("%Y-%m")
            buckets.setdefault(key, {"income_cents": 0, "expense_cents": 0})
            cursor += timedelta(days=1)
        for txn_date, txn_type, total in self.session.execute(
            select(
                Transaction.date,
                Transaction.type,
                func.sum(Transaction.amount_cents),
            )
            .where(*where)
            .group_by(Transaction.date, Transaction.type)
        ):
            key = txn_date.isoformat() if daily else txn_date.strftime("%Y-%m")
            bucket = buckets.setdefault(key, {"income_cents": 0, "expense_cents": 0})
            bucket[f"{txn_type.value}_cents"] += int(total)

        return {
            "period": {
                "slug": period.slug,
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
            },
            "income_cents": totals[TransactionType.income],
            "expense_cents": totals[TransactionType.expense],
            "net_cents": totals[TransactionType.income]
            - totals[TransactionType.expense],
            "transaction_count": count,
            "by_category": by_category,
            "timeline": [
                {"bucket": key, **values} for key, values in sorted(buckets.items())
            ],
        }

    def export_csv(
        self, period: Period, filters: Optional[TransactionFilters] = None
    ) -> str:
        return export_transactions(self.all_for_period(period, filters))


class CounterpartyService:
    model = Customer
    label = "Customer"
    document_required = False

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _references(self) -> list:
        return []

    def list_all(self, search: Optional[str] = None) -> list:
        stmt = (
            select(self.model)
            .where(self.model.user_id == self.user_id)
            .order_by(self.model.name, self.model.id)
        )
        if search:
            like = f"%{search.strip().lower()}%"
            conditions = [func.lower(self.model.name).like(like)]
            digits = "".join(ch for ch in search if ch.isdigit())
            if digits:
                conditions.append(self.model.document_number.like(f"%{digits}%"))
            stmt = stmt.where(or_(*conditions))
        return self.session.scalars(stmt).all()

    def get(self, obj_id: int):
        return _owned(self.session, self.model, obj_id, self.user_id, self.label)

    def _apply(self, obj, data: CounterpartyIn) -> None:
        if data.document_type and data.document_number:
            digits = normalize_document(data.document_type, data.document_number)
            clash = self.session.scalar(
                select(self.model).where(
                    self.model.user_id == self.user_id,
                    self.model.document_number == digits,
                )
            )
            if clash and clash.id != obj.id:
                raise ConflictError(
                    f"{self.label} with this {data.document_type.value} already exists"
                )
            obj.document_type = data.document_type
            obj.document_number = digits
        elif self.document_required:
            raise ValueError(f"{self.label} requires a CPF or CNPJ")
        else:
            obj.document_type = None
            obj.document_number = None
        obj.name = data.name.strip()
        obj.email = data.email
        obj.phone = data.phone
        obj.address = data.address

    def create(self, data: CounterpartyIn):
        obj = self.model(user_id=self.user_id)
        self._apply(obj, data)
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def update(self, obj_id: int, data: CounterpartyIn):
        obj = self.get(obj_id)
        self._apply(obj, data)
        self.session.commit()
        self.session.refresh(obj)
        return obj

    def delete(self, obj_id: int) -> None:
        obj = self.get(obj_id)
        for column in self._references():
            in_use = self.session.scalar(
                select(func.count()).select_from(column.class_).where(column == obj.id)
            )
            if in_use:
                raise ConflictError(
                    f"{self.label} is referenced by existing records and cannot be deleted"
                )
        self.session.delete(obj)
        self.session.commit()


class CustomerService(CounterpartyService):
    model = Customer
    label = "Customer"

    def _references(self) -> list:
        return [Receivable.customer_id, Transaction.customer_id]


class SupplierService(CounterpartyService):
    model = Supplier
    label = "Supplier"

    def _references(self) -> list:
        return [
            Payable.supplier_id,
            Transaction.supplier_id,
            FixedAccount.supplier_id,
        ]


class CreditorService(CounterpartyService):
    model = Creditor
    label = "Creditor"
    document_required = True

    def _references(self) -> list:
        return [Financing.creditor_id]

    def _apply(self, obj, data: CreditorIn) -> None:
        super()._apply(obj, data)
        obj.contact_person = data.contact_person
        obj.is_active = data.is_active


class OpenItemService:
    """Shared behaviour of receivables and payables.

    Status, paid and remaining amounts are never stored: they come from
    ``settlement.settle`` over the active payments every time an item is read.
    """

    model = Receivable
    label = "Receivable"
    counterparty_model = Customer
    counterparty_field = "customer_id"
    counterparty_label = "Customer"
    payment_relation = "receivable"
    txn_type = TransactionType.income
    txn_source = TransactionSource.receivable_payment

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def is_overdue(item, today: date) -> bool:
        return item.settlement.is_open and item.due_date < today

    def _base_query(self):
        return (
            select(self.model)
            .options(
                selectinload(self.model.payments),
                joinedload(self.model.category),
            )
            .where(self.model.user_id == self.user_id)
            .order_by(self.model.due_date, self.model.id)
        )

    def list_all(
        self,
        *,
        status: Optional[SettlementStatus] = None,
        counterparty_id: Optional[int] = None,
        category_id: Optional[int] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        overdue_only: bool = False,
        today: Optional[date] = None,
    ) -> list:
        today = today or local_today()
        stmt = self._base_query()
        if counterparty_id is not None:
            stmt = stmt.where(
                getattr(self.model, self.counterparty_field) == counterparty_id
            )
        if category_id is not None:
            stmt = stmt.where(self.model.category_id == category_id)
        if due_from is not None:
            stmt = stmt.where(self.model.due_date >= due_from)
        if due_to is not None:
            stmt = stmt.where(self.model.due_date <= due_to)
        items = self.session.scalars(stmt).unique().all()
        if status is not None:
            items = [i for i in items if i.settlement.status == status]
        if overdue_only:
            items = [i for i in items if self.is_overdue(i, today)]
        return items

    def get(self, item_id: int):
        return _owned(self.session, self.model, item_id, self.user_id, self.label)

    def _check_refs(self, data) -> Category:
        counterparty_id = getattr(data, self.counterparty_field)
        if counterparty_id is not None:
            _owned(
                self.session,
                self.counterparty_model,
                counterparty_id,
                self.user_id,
                self.counterparty_label,
            )
        return CategoryService(self.session, self.user_id).check(
            data.category_id, self.txn_type
        )

    def create(self, data):
        category = self._check_refs(data)
        item = self.model(
            user_id=self.user_id,
            category_id=category.id,
            description=data.description.strip(),
            amount_cents=data.amount_cents,
            due_date=data.due_date,
            invoice_number=data.invoice_number,
            payment_terms=data.payment_terms,
            notes=data.notes,
        )
        setattr(item, self.counterparty_field, getattr(data, self.counterparty_field))
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update(self, item_id: int, data):
        item = self.get(item_id)
        category = self._check_refs(data)
        paid = item.settlement.paid_cents
        if data.amount_cents < paid:
            raise ValueError(
                f"Amount cannot be lower than the {paid / 100:.2f} already paid"
            )
        setattr(item, self.counterparty_field, getattr(data, self.counterparty_field))
        item.category_id = category.id
        item.description = data.description.strip()
        item.amount_cents = data.amount_cents
        item.due_date = data.due_date
        item.invoice_number = data.invoice_number
        item.payment_terms = data.payment_terms
        item.notes = data.notes
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        if any(p.deleted_at is None for p in item.payments):
            raise ConflictError(
                f"{self.label} has payments; delete them before deleting it"
            )
        for payment in item.payments:
            self.session.delete(payment)
        self.session.delete(item)
        self.session.commit()

    def upcoming(self, days: int = 30, today: Optional[date] = None) -> list:
        today = today or local_today()
        items = self.list_all(due_from=today, due_to=today + timedelta(days=days))
        return [i for i in items if i.settlement.is_open]

    def overdue(self, today: Optional[date] = None) -> list:
        today = today or local_today()
        return self.list_all(overdue_only=True, today=today)

    def add_payment(self, item_id: int, data: PaymentIn) -> Payment:
        item = self.get(item_id)
        settlement = item.settlement
        if not settlement.is_open:
            raise ValueError(f"{self.label} is already paid")
        if data.amount_cents > settlement.remaining_cents:
            raise ValueError(
                "Payment exceeds the remaining amount of"
                f" {settlement.remaining_cents / 100:.2f}"
            )
        _owned(self.session, Account, data.account_id, self.user_id, "Account")
        counterparty_id = getattr(item, self.counterparty_field)
        txn = post_transaction(
            self.session,
            self.user_id,
            account_id=data.account_id,
            type=self.txn_type,
            amount_cents=data.amount_cents,
            txn_date=data.payment_date,
            description=f"Payment: {item.description}",
            source=self.txn_source,
            category_id=item.category_id,
            payment_method=data.payment_method,
            customer_id=counterparty_id if self.model is Receivable else None,
            supplier_id=counterparty_id if self.model is Payable else None,
        )
        payment = Payment(
            user_id=self.user_id,
            account_id=data.account_id,
            transaction_id=txn.id,
            amount_cents=data.amount_cents,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            notes=data.notes,
        )
        setattr(payment, self.payment_relation, item)
        self.session.add(payment)
        self.session.commit()
        self.session.refresh(payment)
        logger.info(
            f"payment_added: {self.payment_relation}_id={item.id}"
            f" amount_cents={data.amount_cents} status={item.settlement.status.value}"
        )
        return payment

    def summary(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        items = self.list_all(today=today)
        counts = {status.value: 0 for status in SettlementStatus}
        total = paid = remaining = overdue_cents = overdue_count = 0
        for item in items:
            settlement = item.settlement
            counts[settlement.status.value] += 1
            total += settlement.amount_cents
            paid += settlement.paid_cents
            remaining += settlement.remaining_cents
            if self.is_overdue(item, today):
                overdue_count += 1
                overdue_cents += settlement.remaining_cents
        return {
            "count": len(items),
            "total_cents": total,
            "paid_cents": paid,
            "remaining_cents": remaining,
            "overdue_cents": overdue_cents,
            "overdue_count": overdue_count,
            "by_status": counts,
        }


class ReceivableService(OpenItemService):
    model = Receivable
    label = "Receivable"
    counterparty_model = Customer
    counterparty_field = "customer_id"
    counterparty_label = "Customer"
    payment_relation = "receivable"
    txn_type = TransactionType.income
    txn_source = TransactionSource.receivable_payment


class PayableService(OpenItemService):
    model = Payable
    label = "Payable"
    counterparty_model = Supplier
    counterparty_field = "supplier_id"
    counterparty_label = "Supplier"
    payment_relation = "payable"
    txn_type = TransactionType.expense
    txn_source = TransactionSource.payable_payment


class PaymentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        *,
        receivable_id: Optional[int] = None,
        payable_id: Optional[int] = None,
        account_id: Optional[int] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.user_id == self.user_id, Payment.deleted_at.is_(None))
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        )
        if receivable_id is not None:
            stmt = stmt.where(Payment.receivable_id == receivable_id)
        if payable_id is not None:
            stmt = stmt.where(Payment.payable_id == payable_id)
        if account_id is not None:
            stmt = stmt.where(Payment.account_id == account_id)
        if start is not None:
            stmt = stmt.where(Payment.payment_date >= start)
        if end is not None:
            stmt = stmt.where(Payment.payment_date <= end)
        return self.session.scalars(stmt).all()

    def get(self, payment_id: int) -> Payment:
        return _owned(self.session, Payment, payment_id, self.user_id, "Payment")

    def delete(self, payment_id: int) -> None:
        payment = self.get(payment_id)
        payment.deleted_at = datetime.utcnow()
        void_transaction(self.session, payment.transaction_id)
        self.session.commit()
        logger.info(f"payment_deleted: payment_id={payment.id}")


@dataclass
class FinancingState:
    table: AmortizationTable
    status: FinancingStatus
    outstanding_cents: int
    principal_paid_cents: int
    interest_paid_cents: int
    total_paid_cents: int
    paid_installments: list[int]
    schedule: dict[int, Installment] = field(default_factory=dict)

    @property
    def monthly_payment_cents(self) -> int:
        return self.table.first_payment_cents

    @property
    def next_installment(self) -> Optional[Installment]:
        if not self.schedule:
            return None
        return self.schedule[min(self.schedule)]

    @property
    def remaining_installments(self) -> int:
        return len(self.schedule)


def financing_state(financing: Financing) -> FinancingState:
    """Derive balances and the pending schedule from the payments on record.

    Installments follow the original table until an early payment is made.
    After that the outstanding principal is re-amortized according to the
    preference of the latest early payment: ``reduce_installment`` spreads it
    over every unpaid installment, ``reduce_term`` keeps the installment and
    drops the last ones.
    """
    table = build_table(
        financing.total_amount_cents,
        financing.interest_rate,
        financing.term_months,
        financing.amortization_method,
        financing.start_date,
    )
    payments = financing.active_payments
    principal_paid = sum(p.principal_cents for p in payments)
    interest_paid = sum(p.interest_cents for p in payments)
    total_paid = sum(p.amount_cents for p in payments)
    paid_numbers = sorted(
        {
            p.installment_number
            for p in payments
            if p.payment_type == FinancingPaymentType.installment
            and p.installment_number is not None
        }
    )
    outstanding = max(financing.total_amount_cents - principal_paid, 0)
    unpaid = [
        n for n in range(1, financing.term_months + 1) if n not in set(paid_numbers)
    ]

    schedule: dict[int, Installment] = {}
    if outstanding > 0 and unpaid:
        early = [p for p in payments if p.payment_type == FinancingPaymentType.early]
        if not early:
            schedule = {n: table.row(n) for n in unpaid}
        else:
            latest = max(early, key=lambda p: (p.payment_date, p.id or 0))
            first = table.row(unpaid[0])
            if latest.early_preference == EarlyPaymentPreference.reduce_term:
                term = term_for_installment(
                    outstanding,
                    financing.interest_rate,
                    first.payment_cents,
                    financing.amortization_method,
                    constant_amortization_cents=first.amortization_cents,
                )
                unpaid = unpaid[: max(1, min(term, len(unpaid)))]
            rebuilt = build_table(
                outstanding,
                financing.interest_rate,
                len(unpaid),
                financing.amortization_method,
                first.due_date,
            )
            for number, row in zip(unpaid, rebuilt.rows):
                schedule[number] = Installment(
                    number=number,
                    due_date=table.row(number).due_date,
                    payment_cents=row.payment_cents,
                    amortization_cents=row.amortization_cents,
                    interest_cents=row.interest_cents,
                    balance_cents=row.balance_cents,
                )

    if financing.cancelled_at is not None:
        status = FinancingStatus.cancelled
    elif outstanding == 0:
        status = FinancingStatus.paid_off
    else:
        status = FinancingStatus.active

    return FinancingState(
        table=table,
        status=status,
        outstanding_cents=outstanding,
        principal_paid_cents=principal_paid,
        interest_paid_cents=interest_paid,
        total_paid_cents=total_paid,
        paid_installments=paid_numbers,
        schedule=schedule,
    )


class FinancingService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        *,
        status: Optional[FinancingStatus] = None,
        financing_type=None,
        creditor_id: Optional[int] = None,
    ) -> list[Financing]:
        stmt = (
            select(Financing)
            .options(selectinload(Financing.payments), joinedload(Financing.creditor))
            .where(Financing.user_id == self.user_id)
            .order_by(Financing.start_date.desc(), Financing.id.desc())
        )
        if financing_type:
            stmt = stmt.where(Financing.financing_type == financing_type)
        if creditor_id is not None:
            stmt = stmt.where(Financing.creditor_id == creditor_id)
        items = self.session.scalars(stmt).unique().all()
        if status:
            items = [f for f in items if financing_state(f).status == status]
        return items

    def get(self, financing_id: int) -> Financing:
        return _owned(self.session, Financing, financing_id, self.user_id, "Financing")

    def state(self, financing_id: int) -> FinancingState:
        return financing_state(self.get(financing_id))

    def create(self, data: FinancingIn) -> Financing:
        if data.creditor_id is not None:
            _owned(self.session, Creditor, data.creditor_id, self.user_id, "Creditor")
        financing = Financing(
            user_id=self.user_id,
            creditor_id=data.creditor_id,
            financing_type=data.financing_type,
            description=data.description.strip(),
            contract_number=data.contract_number,
            total_amount_cents=data.total_amount_cents,
            interest_rate=data.interest_rate,
            term_months=data.term_months,
            start_date=data.start_date,
            amortization_method=data.amortization_method,
            payment_method=data.payment_method,
            notes=data.notes,
        )
        self.session.add(financing)
        self.session.commit()
        self.session.refresh(financing)
        logger.info(
            f"financing_created: financing_id={financing.id}"
            f" method={financing.amortization_method.value}"
        )
        return financing

    def update(self, financing_id: int, data: FinancingUpdateIn) -> Financing:
        financing = self.get(financing_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("creditor_id") is not None:
            _owned(
                self.session, Creditor, changes["creditor_id"], self.user_id, "Creditor"
            )
        for key, value in changes.items():
            setattr(financing, key, value)
        self.session.commit()
        self.session.refresh(financing)
        return financing

    def cancel(self, financing_id: int) -> Financing:
        financing = self.get(financing_id)
        if financing_state(financing).status == FinancingStatus.paid_off:
            raise ValueError("A paid off financing cannot be cancelled")
        if financing.cancelled_at is None:
            financing.cancelled_at = datetime.utcnow()
            self.session.commit()
        return financing

    def delete(self, financing_id: int) -> None:
        financing = self.get(financing_id)
        if financing.active_payments:
            raise ConflictError("Financing has payments and cannot be deleted")
        for payment in financing.payments:
            self.session.delete(payment)
        self.session.delete(financing)
        self.session.commit()

    def table(self, financing_id: int) -> AmortizationTable:
        return financing_state(self.get(financing_id)).table

    def simulate_early_payment(
        self, financing_id: int, amount_cents: int, preference: str
    ) -> EarlyPaymentSimulation:
        financing = self.get(financing_id)
        state = financing_state(financing)
        if state.status != FinancingStatus.active:
            raise ValueError(f"Financing is {state.status.value.replace('_', ' ')}")
        return simulate_early_payment(
            state.outstanding_cents,
            financing.interest_rate,
            state.remaining_installments,
            financing.amortization_method,
            amount_cents,
            preference,
            state.next_installment.due_date,
        )

    def statistics(self) -> dict[str, object]:
        financings = self.list_all()
        by_status: dict[str, int] = {s.value: 0 for s in FinancingStatus}
        by_type: dict[str, dict[str, int]] = {}
        financed = outstanding = paid = interest_paid = monthly = 0
        for financing in financings:
            state = financing_state(financing)
            by_status[state.status.value] += 1
            bucket = by_type.setdefault(
                financing.financing_type.value, {"count": 0, "total_cents": 0}
            )
            bucket["count"] += 1
            bucket["total_cents"] += financing.total_amount_cents
            financed += financing.total_amount_cents
            outstanding += state.outstanding_cents
            paid += state.total_paid_cents
            interest_paid += state.interest_paid_cents
            if state.status == FinancingStatus.active and state.next_installment:
                monthly += state.next_installment.payment_cents
        return {
            "count": len(financings),
            "total_financed_cents": financed,
            "outstanding_cents": outstanding,
            "total_paid_cents": paid,
            "interest_paid_cents": interest_paid,
            "monthly_commitment_cents": monthly,
            "by_status": by_status,
            "by_type": by_type,
        }


class FinancingPaymentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _open_financing(self, financing_id: int) -> tuple[Financing, FinancingState]:
        financing = FinancingService(self.session, self.user_id).get(financing_id)
        state = financing_state(financing)
        if state.status == FinancingStatus.cancelled:
            raise ValueError("Financing is cancelled")
        if state.status == FinancingStatus.paid_off:
            raise ValueError("Financing is already paid off")
        return financing, state

    def _record(
        self,
        financing: Financing,
        *,
        account_id: int,
        payment_date: date,
        payment_method: PaymentMethod,
        payment_type: FinancingPaymentType,
        amount_cents: int,
        principal_cents: int,
        interest_cents: int,
        installment_number: Optional[int],
        description: str,
        notes: Optional[str],
        early_preference: Optional[str] = None,
    ) -> FinancingPayment:
        require_balance(self.session, self.user_id, account_id, amount_cents)
        category = CategoryService(self.session, self.user_id).default_for(
            TransactionType.expense
        )
        txn = post_transaction(
            self.session,
            self.user_id,
            account_id=account_id,
            type=TransactionType.expense,
            amount_cents=amount_cents,
            txn_date=payment_date,
            description=description,
            source=TransactionSource.financing_payment,
            category_id=category.id,
            payment_method=payment_method,
        )
        payment = FinancingPayment(
            user_id=self.user_id,
            account_id=account_id,
            transaction_id=txn.id,
            installment_number=installment_number,
            payment_type=payment_type,
            early_preference=early_preference,
            amount_cents=amount_cents,
            principal_cents=principal_cents,
            interest_cents=interest_cents,
            payment_date=payment_date,
            payment_method=payment_method,
            notes=notes,
        )
        payment.financing = financing
        self.session.add(payment)
        self.session.commit()
        self.session.refresh(payment)
        return payment

    def pay_installment(
        self, financing_id: int, data: InstallmentPaymentIn
    ) -> FinancingPayment:
        financing, state = self._open_financing(financing_id)
        number = data.installment_number
        if number > financing.term_months:
            raise ValueError(
                f"Installment {number} is out of range (1-{financing.term_months})"
            )
        if number in state.paid_installments:
            raise ConflictError(f"Installment {number} is already paid")
        _owned(self.session, Account, data.account_id, self.user_id, "Account")
        row = state.schedule.get(number)
        if row is None:
            raise ValueError(
                f"Installment {number} is no longer due after the early payments"
            )
        payment = self._record(
            financing,
            account_id=data.account_id,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            payment_type=FinancingPaymentType.installment,
            amount_cents=row.payment_cents,
            principal_cents=row.amortization_cents,
            interest_cents=row.interest_cents,
            installment_number=number,
            description=(
                f"{financing.description} - installment {number}/{financing.term_months}"
            ),
            notes=data.notes,
        )
        logger.info(
            f"financing_installment_paid: financing_id={financing.id}"
            f" installment={number} amount_cents={row.payment_cents}"
        )
        return payment

    def pay_early(self, financing_id: int, data: EarlyPaymentIn) -> FinancingPayment:
        financing, state = self._open_financing(financing_id)
        if data.principal_cents > state.outstanding_cents:
            raise ValueError(
                "Early payment exceeds the outstanding balance of"
                f" {state.outstanding_cents / 100:.2f}"
            )
        _owned(self.session, Account, data.account_id, self.user_id, "Account")
        payment = self._record(
            financing,
            account_id=data.account_id,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            payment_type=FinancingPaymentType.early,
            amount_cents=data.principal_cents,
            principal_cents=data.principal_cents,
            interest_cents=0,
            installment_number=None,
            description=f"{financing.description} - early payment",
            notes=data.notes,
            early_preference=data.preference,
        )
        logger.info(
            f"financing_early_payment: financing_id={financing.id}"
            f" principal_cents={data.principal_cents} preference={data.preference}"
        )
        return payment

    def list_all(self, financing_id: Optional[int] = None) -> list[FinancingPayment]:
        stmt = (
            select(FinancingPayment)
            .where(
                FinancingPayment.user_id == self.user_id,
                FinancingPayment.deleted_at.is_(None),
            )
            .order_by(FinancingPayment.payment_date.desc(), FinancingPayment.id.desc())
        )
        if financing_id is not None:
            stmt = stmt.where(FinancingPayment.financing_id == financing_id)
        return self.session.scalars(stmt).all()

    def get(self, payment_id: int) -> FinancingPayment:
        return _owned(
            self.session, FinancingPayment, payment_id, self.user_id, "Financing payment"
        )

    def delete(self, payment_id: int) -> None:
        payment = self.get(payment_id)
        payment.deleted_at = datetime.utcnow()
        void_transaction(self.session, payment.transaction_id)
        self.session.commit()
        logger.info(f"financing_payment_deleted: payment_id={payment.id}")


class FixedAccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        *,
        is_active: Optional[bool] = None,
        type: Optional[TransactionType] = None,
    ) -> list[FixedAccount]:
        stmt = (
            select(FixedAccount)
            .options(joinedload(FixedAccount.category))
            .where(FixedAccount.user_id == self.user_id)
            .order_by(FixedAccount.next_due_date, FixedAccount.id)
        )
        if is_active is not None:
            stmt = stmt.where(FixedAccount.is_active.is_(is_active))
        if type:
            stmt = stmt.where(FixedAccount.type == type)
        return self.session.scalars(stmt).unique().all()

    def get(self, fixed_account_id: int) -> FixedAccount:
        return _owned(
            self.session, FixedAccount, fixed_account_id, self.user_id, "Fixed account"
        )

    def _check_optional_refs(
        self, supplier_id: Optional[int], account_id: Optional[int]
    ) -> None:
        if supplier_id is not None:
            _owned(self.session, Supplier, supplier_id, self.user_id, "Supplier")
        if account_id is not None:
            _owned(self.session, Account, account_id, self.user_id, "Account")

    def create(self, data: FixedAccountIn) -> FixedAccount:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        self._check_optional_refs(data.supplier_id, data.account_id)
        fixed_account = FixedAccount(
            user_id=self.user_id,
            description=data.description.strip(),
            type=category.type,
            amount_cents=data.amount_cents,
            periodicity=data.periodicity,
            start_date=data.start_date,
            next_due_date=data.start_date,
            category_id=category.id,
            supplier_id=data.supplier_id,
            account_id=data.account_id,
            payment_method=data.payment_method,
            reminder_days=data.reminder_days,
            notes=data.notes,
        )
        self.session.add(fixed_account)
        self.session.flush()
        FixedAccountEngine(self.session).create_occurrence(
            fixed_account, data.start_date
        )
        fixed_account.next_due_date = calculate_next_date(
            fixed_account, data.start_date
        )
        self.session.commit()
        self.session.refresh(fixed_account)
        return fixed_account

    def update(
        self,
        fixed_account_id: int,
        data: FixedAccountUpdateIn,
        today: Optional[date] = None,
    ) -> FixedAccount:
        today = today or local_today()
        fixed_account = self.get(fixed_account_id)
        changes = data.model_dump(exclude_unset=True)
        self._check_optional_refs(changes.get("supplier_id"), changes.get("account_id"))
        for key, value in changes.items():
            setattr(fixed_account, key, value)
        if "amount_cents" in changes:
            self.session.execute(
                update(FixedAccountTransaction)
                .where(
                    FixedAccountTransaction.fixed_account_id == fixed_account.id,
                    FixedAccountTransaction.status == OccurrenceStatus.pending,
                    FixedAccountTransaction.due_date >= today,
                )
                .values(amount_cents=changes["amount_cents"])
                .execution_options(synchronize_session="fetch")
            )
        self.session.commit()
        self.session.refresh(fixed_account)
        return fixed_account

    def toggle(self, fixed_account_id: int) -> FixedAccount:
        fixed_account = self.get(fixed_account_id)
        fixed_account.is_active = not fixed_account.is_active
        self.session.commit()
        logger.info(
            f"fixed_account_toggled: id={fixed_account.id}"
            f" is_active={fixed_account.is_active}"
        )
        return fixed_account

    def delete(self, fixed_account_id: int) -> None:
        fixed_account = self.get(fixed_account_id)
        paid = self.session.scalar(
            select(func.count(FixedAccountTransaction.id)).where(
                FixedAccountTransaction.fixed_account_id == fixed_account.id,
                FixedAccountTransaction.status == OccurrenceStatus.paid,
            )
        )
        if paid:
            raise ConflictError(
                "Fixed account has paid occurrences, deactivate it instead"
            )
        self.session.execute(
            delete(FixedAccountTransaction).where(
                FixedAccountTransaction.fixed_account_id == fixed_account.id
            )
        )
        # voided payments outlive their fixed account
        self.session.execute(
            update(Transaction)
            .where(Transaction.fixed_account_id == fixed_account.id)
            .values(fixed_account_id=None)
            .execution_options(synchronize_session="fetch")
        )
        self.session.expunge(fixed_account)
        self.session.execute(
            delete(FixedAccount).where(FixedAccount.id == fixed_account.id)
        )
        self.session.commit()

    def occurrences(
        self,
        fixed_account_id: Optional[int] = None,
        *,
        status: Optional[OccurrenceStatus] = None,
        overdue_only: bool = False,
        today: Optional[date] = None,
    ) -> list[FixedAccountTransaction]:
        today = today or local_today()
        stmt = (
            select(FixedAccountTransaction)
            .options(joinedload(FixedAccountTransaction.fixed_account))
            .where(FixedAccountTransaction.user_id == self.user_id)
            .order_by(FixedAccountTransaction.due_date, FixedAccountTransaction.id)
        )
        if fixed_account_id is not None:
            self.get(fixed_account_id)
            stmt = stmt.where(
                FixedAccountTransaction.fixed_account_id == fixed_account_id
            )
        if status:
            stmt = stmt.where(FixedAccountTransaction.status == status)
        if overdue_only:
            stmt = stmt.where(
                FixedAccountTransaction.status == OccurrenceStatus.pending,
                FixedAccountTransaction.due_date < today,
            )
        return self.session.scalars(stmt).unique().all()

    def get_occurrence(self, occurrence_id: int) -> FixedAccountTransaction:
        return _owned(
            self.session,
            FixedAccountTransaction,
            occurrence_id,
            self.user_id,
            "Fixed account occurrence",
        )

    def pay_occurrences(self, data: FixedAccountPayIn) -> list[FixedAccountTransaction]:
        planned: list[tuple[FixedAccountTransaction, int]] = []
        for occurrence_id in dict.fromkeys(data.occurrence_ids):
            occurrence = self.get_occurrence(occurrence_id)
            if occurrence.status != OccurrenceStatus.pending:
                raise ValueError(
                    f"Occurrence {occurrence.id} is already {occurrence.status.value}"
                )
            account_id = data.account_id or occurrence.fixed_account.account_id
            if account_id is None:
                raise ValueError(
                    f"An account is required to pay occurrence {occurrence.id}"
                )
            _owned(self.session, Account, account_id, self.user_id, "Account")
            planned.append((occurrence, account_id))

        for occurrence, account_id in planned:
            fixed_account = occurrence.fixed_account
            method = data.payment_method or fixed_account.payment_method
            txn = post_transaction(
                self.session,
                self.user_id,
                account_id=account_id,
                type=fixed_account.type,
                amount_cents=occurrence.amount_cents,
                txn_date=data.payment_date,
                description=(
                    f"{fixed_account.description} ({occurrence.due_date.isoformat()})"
                ),
                source=TransactionSource.fixed_account,
                category_id=fixed_account.category_id,
                payment_method=method,
                supplier_id=fixed_account.supplier_id,
                fixed_account_id=fixed_account.id,
            )
            occurrence.status = OccurrenceStatus.paid
            occurrence.paid_at = data.payment_date
            occurrence.account_id = account_id
            occurrence.transaction_id = txn.id
            occurrence.payment_method = method
        self.session.commit()
        logger.info(f"fixed_account_paid: occurrences={len(planned)}")
        return [occurrence for occurrence, _ in planned]

    def reopen_occurrence(self, occurrence_id: int) -> FixedAccountTransaction:
        occurrence = self.get_occurrence(occurrence_id)
        if occurrence.status == OccurrenceStatus.pending:
            return occurrence
        if occurrence.status == OccurrenceStatus.paid:
            void_transaction(self.session, occurrence.transaction_id)
        occurrence.status = OccurrenceStatus.pending
        occurrence.paid_at = None
        occurrence.transaction_id = None
        self.session.commit()
        return occurrence

    def cancel_occurrence(self, occurrence_id: int) -> FixedAccountTransaction:
        occurrence = self.get_occurrence(occurrence_id)
        if occurrence.status == OccurrenceStatus.paid:
            raise ValueError("Paid occurrences must be reopened before cancelling")
        occurrence.status = OccurrenceStatus.cancelled
        self.session.commit()
        return occurrence

    def catch_up(self, today: Optional[date] = None) -> int:
        created = FixedAccountEngine(self.session).catch_up_all(
            today, user_id=self.user_id
        )
        self.session.commit()
        return created

    def statistics(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        fixed_accounts = self.list_all()
        monthly = {TransactionType.income.value: 0, TransactionType.expense.value: 0}
        active = 0
        for fixed_account in fixed_accounts:
            if not fixed_account.is_active:
                continue
            active += 1
            monthly[fixed_account.type.value] += monthly_equivalent_cents(fixed_account)
        counts = {"pending": 0, "overdue": 0, "paid": 0, "cancelled": 0}
        pending_cents = 0
        for occurrence in self.occurrences(today=today):
            if occurrence.is_overdue(today):
                counts["overdue"] += 1
            else:
                counts[occurrence.status.value] += 1
            if occurrence.status == OccurrenceStatus.pending:
                pending_cents += occurrence.amount_cents
        return {
            "count": len(fixed_accounts),
            "active": active,
            "monthly_income_cents": monthly[TransactionType.income.value],
            "monthly_expense_cents": monthly[TransactionType.expense.value],
            "pending_cents": pending_cents,
            "occurrences": counts,
        }


def _amount_for(quantity: Decimal, unit_price_cents: int) -> int:
    return int(
        (Decimal(quantity) * unit_price_cents).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )


def _position_key(asset_name: str, ticker: Optional[str]) -> tuple[str, str]:
    return asset_name.strip().lower(), (ticker or "").strip().upper()


@dataclass
class Position:
    asset_name: str
    ticker: Optional[str]
    investment_type: InvestmentType
    broker: Optional[str] = None
    category_id: Optional[int] = None
    bought_quantity: Decimal = Decimal("0")
    bought_cents: int = 0
    sold_quantity: Decimal = Decimal("0")
    sold_cents: int = 0
    operations: int = 0

    @property
    def quantity(self) -> Decimal:
        return self.bought_quantity - self.sold_quantity

    @property
    def average_price_cents(self) -> int:
        if self.bought_quantity <= 0:
            return 0
        return _amount_for(Decimal(self.bought_cents) / self.bought_quantity, 1)

    @property
    def invested_cents(self) -> int:
        return _amount_for(self.quantity, self.average_price_cents)


class InvestmentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _category_for(self, category_id: Optional[int], type: TransactionType) -> int:
        categories = CategoryService(self.session, self.user_id)
        if category_id is not None:
            category = categories.get(category_id)
            if category.type == type:
                return category.id
        return categories.default_for(type).id

    def _post_transfer(
        self,
        *,
        source_account_id: Optional[int],
        destination_account_id: Optional[int],
        amount_cents: int,
        txn_date: date,
        description: str,
        source: TransactionSource,
        category_id: Optional[int],
        investment_id: Optional[int] = None,
        contribution_id: Optional[int] = None,
    ) -> None:
        if source_account_id is not None:
            post_transaction(
                self.session,
                self.user_id,
                account_id=source_account_id,
                type=TransactionType.expense,
                amount_cents=amount_cents,
                txn_date=txn_date,
                description=description,
                source=source,
                category_id=self._category_for(category_id, TransactionType.expense),
                investment_id=investment_id,
                investment_contribution_id=contribution_id,
            )
        if destination_account_id is not None:
            post_transaction(
                self.session,
                self.user_id,
                account_id=destination_account_id,
                type=TransactionType.income,
                amount_cents=amount_cents,
                txn_date=txn_date,
                description=description,
                source=source,
                category_id=self._category_for(category_id, TransactionType.income),
                investment_id=investment_id,
                investment_contribution_id=contribution_id,
            )

    def _check_accounts(self, *account_ids: Optional[int]) -> None:
        for account_id in account_ids:
            if account_id is not None:
                _owned(self.session, Account, account_id, self.user_id, "Account")

    def list_all(
        self,
        *,
        investment_type: Optional[InvestmentType] = None,
        operation_type: Optional[OperationType] = None,
        broker: Optional[str] = None,
        search: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.user_id == self.user_id, Investment.deleted_at.is_(None))
            .order_by(Investment.operation_date.desc(), Investment.id.desc())
        )
        if investment_type:
            stmt = stmt.where(Investment.investment_type == investment_type)
        if operation_type:
            stmt = stmt.where(Investment.operation_type == operation_type)
        if broker:
            stmt = stmt.where(Investment.broker == broker)
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(Investment.asset_name.ilike(like), Investment.ticker.ilike(like))
            )
        if start:
            stmt = stmt.where(Investment.operation_date >= start)
        if end:
            stmt = stmt.where(Investment.operation_date <= end)
        return self.session.scalars(stmt).all()

    def get(self, investment_id: int) -> Investment:
        return _owned(self.session, Investment, investment_id, self.user_id, "Investment")

    def create(self, data: InvestmentIn) -> Investment:
        self._check_accounts(data.source_account_id, data.destination_account_id)
        if data.category_id is not None:
            CategoryService(self.session, self.user_id).get(data.category_id)
        amount_cents = _amount_for(data.quantity, data.unit_price_cents)
        if amount_cents <= 0:
            raise ValueError("Investment amount must be positive")
        require_balance(self.session, self.user_id, data.source_account_id, amount_cents)
        investment = Investment(
            user_id=self.user_id,
            investment_type=data.investment_type,
            asset_name=data.asset_name.strip(),
            ticker=(data.ticker or "").strip().upper() or None,
            operation_type=OperationType.buy,
            quantity=data.quantity,
            unit_price_cents=data.unit_price_cents,
            amount_cents=amount_cents,
            operation_date=data.operation_date,
            broker=data.broker,
            source_account_id=data.source_account_id,
            destination_account_id=data.destination_account_id,
            category_id=data.category_id,
            notes=data.notes,
        )
        self.session.add(investment)
        self.session.flush()
        self._post_transfer(
            source_account_id=data.source_account_id,
            destination_account_id=data.destination_account_id,
            amount_cents=amount_cents,
            txn_date=data.operation_date,
            description=f"Investment: {investment.asset_name}",
            source=TransactionSource.investment,
            category_id=data.category_id,
            investment_id=investment.id,
        )
        self.session.commit()
        self.session.refresh(investment)
        logger.info(
            f"investment_bought: id={investment.id} asset={investment.asset_name}"
            f" amount_cents={amount_cents}"
        )
        return investment

    def _positions(self) -> dict[tuple[str, str], Position]:
        positions: dict[tuple[str, str], Position] = {}
        operations = self.session.scalars(
            select(Investment)
            .where(Investment.user_id == self.user_id, Investment.deleted_at.is_(None))
            .order_by(Investment.operation_date, Investment.id)
        ).all()
        for op in operations:
            key = _position_key(op.asset_name, op.ticker)
            position = positions.get(key)
            if position is None:
                position = positions[key] = Position(
                    asset_name=op.asset_name,
                    ticker=op.ticker,
                    investment_type=op.investment_type,
                )
            position.operations += 1
            if op.operation_type == OperationType.buy:
                position.bought_quantity += Decimal(op.quantity)
                position.bought_cents += op.amount_cents
                position.broker = op.broker or position.broker
                position.category_id = op.category_id or position.category_id
            else:
                position.sold_quantity += Decimal(op.quantity)
                position.sold_cents += op.amount_cents

        contributions = self.session.execute(
            select(InvestmentContribution, Investment.asset_name, Investment.ticker)
            .join(Investment, InvestmentContribution.investment_id == Investment.id)
            .where(
                InvestmentContribution.user_id == self.user_id,
                InvestmentContribution.deleted_at.is_(None),
                Investment.deleted_at.is_(None),
            )
        ).all()
        for contribution, asset_name, ticker in contributions:
            position = positions.get(_position_key(asset_name, ticker))
            if position is None:
                continue
            position.operations += 1
            position.bought_cents += contribution.amount_cents
            if contribution.quantity:
                position.bought_quantity += Decimal(contribution.quantity)
        return positions

    def positions(
        self,
        *,
        investment_type: Optional[InvestmentType] = None,
        broker: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Position]:
        term = (search or "").strip().lower()
        result = []
        for position in self._positions().values():
            if position.quantity <= 0:
                continue
            if investment_type and position.investment_type != investment_type:
                continue
            if broker and position.broker != broker:
                continue
            if term and term not in position.asset_name.lower() and term not in (
                position.ticker or ""
            ).lower():
                continue
            result.append(position)
        result.sort(key=lambda p: p.invested_cents, reverse=True)
        return result

    def position(self, asset_name: str, ticker: Optional[str] = None) -> Position:
        position = self._positions().get(_position_key(asset_name, ticker))
        if position is None or position.quantity <= 0:
            raise NotFoundError(f"No open position for {asset_name}")
        return position

    def sell(self, data: SellIn) -> Investment:
        position = self.position(data.asset_name, data.ticker)
        if data.quantity > position.quantity:
            raise ValueError(
                f"Cannot sell {data.quantity}; position holds {position.quantity}"
            )
        self._check_accounts(data.account_id)
        amount_cents = _amount_for(data.quantity, data.unit_price_cents)
        sale = Investment(
            user_id=self.user_id,
            investment_type=position.investment_type,
            asset_name=position.asset_name,
            ticker=position.ticker,
            operation_type=OperationType.sell,
            quantity=data.quantity,
            unit_price_cents=data.unit_price_cents,
            amount_cents=amount_cents,
            operation_date=data.operation_date,
            broker=data.broker or position.broker,
            destination_account_id=data.account_id,
            category_id=position.category_id,
            notes=data.notes,
        )
        self.session.add(sale)
        self.session.flush()
        self._post_transfer(
            source_account_id=None,
            destination_account_id=data.account_id,
            amount_cents=amount_cents,
            txn_date=data.operation_date,
            description=f"Sale: {sale.asset_name}",
            source=TransactionSource.investment,
            category_id=position.category_id,
            investment_id=sale.id,
        )
        self.session.commit()
        self.session.refresh(sale)
        logger.info(
            f"investment_sold: id={sale.id} asset={sale.asset_name}"
            f" quantity={data.quantity} amount_cents={amount_cents}"
        )
        return sale

    def delete(self, investment_id: int) -> None:
        investment = self.get(investment_id)
        contributions = self.session.scalars(
            select(InvestmentContribution).where(
                InvestmentContribution.investment_id == investment.id,
                InvestmentContribution.deleted_at.is_(None),
            )
        ).all()
        if investment.operation_type == OperationType.buy:
            position = self._positions()[
                _position_key(investment.asset_name, investment.ticker)
            ]
            removed = Decimal(investment.quantity) + sum(
                (Decimal(c.quantity) for c in contributions if c.quantity),
                Decimal("0"),
            )
            if position.quantity - removed < 0:
                raise ConflictError(
                    "Deleting this purchase would leave a negative position;"
                    " delete the later sales first"
                )
        now = datetime.utcnow()
        investment.deleted_at = now
        contribution_ids = [c.id for c in contributions]
        for contribution in contributions:
            contribution.deleted_at = now
        linked = [Transaction.investment_id == investment.id]
        if contribution_ids:
            linked.append(Transaction.investment_contribution_id.in_(contribution_ids))
        self.session.execute(
            update(Transaction)
            .where(Transaction.deleted_at.is_(None), or_(*linked))
            .values(deleted_at=now)
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        logger.info(f"investment_deleted: id={investment.id}")

    def statistics(self) -> dict[str, object]:
        operations = self.list_all()
        contributions = InvestmentContributionService(
            self.session, self.user_id
        ).list_all()
        bought = sum(
            op.amount_cents for op in operations if op.operation_type == OperationType.buy
        )
        sold = sum(
            op.amount_cents for op in operations if op.operation_type == OperationType.sell
        )
        contributed = sum(c.amount_cents for c in contributions)
        by_type: dict[str, int] = defaultdict(int)
        by_broker: dict[str, int] = defaultdict(int)
        for op in operations:
            sign = 1 if op.operation_type == OperationType.buy else -1
            by_type[op.investment_type.value] += sign * op.amount_cents
            by_broker[op.broker or "unknown"] += sign * op.amount_cents
        for contribution in contributions:
            by_type[contribution.investment.investment_type.value] += (
                contribution.amount_cents
            )
            by_broker[contribution.broker or contribution.investment.broker or "unknown"] += (
                contribution.amount_cents
            )
        return {
            "total_bought_cents": bought,
            "total_contributed_cents": contributed,
            "total_sold_cents": sold,
            "net_invested_cents": bought + contributed - sold,
            "operations": len(operations),
            "open_positions": len(self.positions()),
            "by_type": dict(by_type),
            "by_broker": dict(by_broker),
            "recent": [
                {
                    "id": op.id,
                    "asset_name": op.asset_name,
                    "operation_type": op.operation_type.value,
                    "amount_cents": op.amount_cents,
                    "operation_date": op.operation_date.isoformat(),
                }
                for op in operations[:5]
            ],
        }


class InvestmentContributionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, investment_id: Optional[int] = None) -> list[InvestmentContribution]:
        stmt = (
            select(InvestmentContribution)
            .options(joinedload(InvestmentContribution.investment))
            .where(
                InvestmentContribution.user_id == self.user_id,
                InvestmentContribution.deleted_at.is_(None),
            )
            .order_by(
                InvestmentContribution.contribution_date.desc(),
                InvestmentContribution.id.desc(),
            )
        )
        if investment_id is not None:
            InvestmentService(self.session, self.user_id).get(investment_id)
            stmt = stmt.where(InvestmentContribution.investment_id == investment_id)
        return self.session.scalars(stmt).unique().all()

    def get(self, contribution_id: int) -> InvestmentContribution:
        return _owned(
            self.session,
            InvestmentContribution,
            contribution_id,
            self.user_id,
            "Contribution",
        )

    def create(self, data: ContributionIn) -> InvestmentContribution:
        investments = InvestmentService(self.session, self.user_id)
        investment = investments.get(data.investment_id)
        if investment.operation_type != OperationType.buy:
            raise ValueError("Contributions can only be added to purchases")
        investments._check_accounts(data.source_account_id, data.destination_account_id)
        require_balance(
            self.session, self.user_id, data.source_account_id, data.amount_cents
        )
        contribution = InvestmentContribution(
            user_id=self.user_id,
            amount_cents=data.amount_cents,
            quantity=data.quantity,
            unit_price_cents=data.unit_price_cents,
            contribution_date=data.contribution_date,
            source_account_id=data.source_account_id,
            destination_account_id=data.destination_account_id,
            broker=data.broker or investment.broker,
            notes=data.notes,
        )
        contribution.investment = investment
        self.session.add(contribution)
        self.session.flush()
        investments._post_transfer(
            source_account_id=data.source_account_id,
            destination_account_id=data.destination_account_id,
            amount_cents=data.amount_cents,
            txn_date=data.contribution_date,
            description=f"Contribution: {investment.asset_name}",
            source=TransactionSource.investment_contribution,
            category_id=investment.category_id,
            contribution_id=contribution.id,
        )
        self.session.commit()
        self.session.refresh(contribution)
        logger.info(
            f"contribution_created: id={contribution.id}"
            f" investment_id={investment.id} amount_cents={data.amount_cents}"
        )
        return contribution

    def update(
        self, contribution_id: int, data: ContributionUpdateIn
    ) -> InvestmentContribution:
        contribution = self.get(contribution_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(contribution, key, value)
        self.session.commit()
        self.session.refresh(contribution)
        return contribution

    def delete(self, contribution_id: int) -> None:
        contribution = self.get(contribution_id)
        if contribution.quantity:
            investment = contribution.investment
            position = InvestmentService(self.session, self.user_id)._positions()[
                _position_key(investment.asset_name, investment.ticker)
            ]
            if position.quantity - Decimal(contribution.quantity) < 0:
                raise ConflictError(
                    "Deleting this contribution would leave a negative position"
                )
        now = datetime.utcnow()
        contribution.deleted_at = now
        self.session.execute(
            update(Transaction)
            .where(
                Transaction.investment_contribution_id == contribution.id,
                Transaction.deleted_at.is_(None),
            )
            .values(deleted_at=now)
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()

    def statistics(self, investment_id: Optional[int] = None) -> dict[str, object]:
        contributions = self.list_all(investment_id)
        by_month: dict[str, int] = defaultdict(int)
        for contribution in contributions:
            by_month[contribution.contribution_date.strftime("%Y-%m")] += (
                contribution.amount_cents
            )
        total = sum(c.amount_cents for c in contributions)
        return {
            "count": len(contributions),
            "total_cents": total,
            "average_cents": round(total / len(contributions)) if contributions else 0,
            "by_month": dict(sorted(by_month.items())),
        }


class InvestmentGoalService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def _sync_status(goal: InvestmentGoal) -> None:
        if goal.status == GoalStatus.cancelled:
            return
        if goal.current_amount_cents >= goal.target_amount_cents:
            goal.status = GoalStatus.completed
        else:
            goal.status = GoalStatus.active

    def list_all(self, status: Optional[GoalStatus] = None) -> list[InvestmentGoal]:
        stmt = (
            select(InvestmentGoal)
            .options(joinedload(InvestmentGoal.category))
            .where(InvestmentGoal.user_id == self.user_id)
            .order_by(InvestmentGoal.target_date, InvestmentGoal.id)
        )
        if status:
            stmt = stmt.where(InvestmentGoal.status == status)
        return self.session.scalars(stmt).unique().all()

    def get(self, goal_id: int) -> InvestmentGoal:
        return _owned(self.session, InvestmentGoal, goal_id, self.user_id, "Goal")

    def _apply(self, goal: InvestmentGoal, data: GoalIn) -> None:
        if data.category_id is not None:
            CategoryService(self.session, self.user_id).get(data.category_id)
        goal.name = data.name.strip()
        goal.description = data.description
        goal.target_amount_cents = data.target_amount_cents
        goal.current_amount_cents = data.current_amount_cents
        goal.target_date = data.target_date
        goal.category_id = data.category_id
        goal.color = data.color
        goal.status = data.status
        self._sync_status(goal)

    def create(self, data: GoalIn) -> InvestmentGoal:
        goal = InvestmentGoal(user_id=self.user_id)
        self._apply(goal, data)
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def update(self, goal_id: int, data: GoalIn) -> InvestmentGoal:
        goal = self.get(goal_id)
        self._apply(goal, data)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()

    def update_amount(self, goal_id: int, current_amount_cents: int) -> InvestmentGoal:
        goal = self.get(goal_id)
        goal.current_amount_cents = current_amount_cents
        self._sync_status(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def calculate(self, goal_id: int) -> tuple[InvestmentGoal, int]:
        """Set the goal's current amount from the operations of its category.

        Returns the goal and the number of operations counted.
        """
        goal = self.get(goal_id)
        if goal.category_id is None:
            raise ValueError("Goal has no category to calculate from")
        operations = self.session.scalars(
            select(Investment).where(
                Investment.user_id == self.user_id,
                Investment.category_id == goal.category_id,
                Investment.deleted_at.is_(None),
            )
        ).all()
        contributions = self.session.scalars(
            select(InvestmentContribution)
            .join(Investment, InvestmentContribution.investment_id == Investment.id)
            .where(
                InvestmentContribution.user_id == self.user_id,
                InvestmentContribution.deleted_at.is_(None),
                Investment.category_id == goal.category_id,
                Investment.deleted_at.is_(None),
            )
        ).all()
        net = sum(
            op.amount_cents if op.operation_type == OperationType.buy else -op.amount_cents
            for op in operations
        ) + sum(c.amount_cents for c in contributions)
        goal.current_amount_cents = max(net, 0)
        self._sync_status(goal)
        self.session.commit()
        self.session.refresh(goal)
        return goal, len(operations) + len(contributions)

    def statistics(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        goals = self.list_all()
        by_status = {s.value: 0 for s in GoalStatus}
        by_category: dict[str, dict[str, object]] = {}
        overdue = 0
        for goal in goals:
            by_status[goal.status.value] += 1
            if goal.is_overdue(today):
                overdue += 1
            name = goal.category.name if goal.category else "Uncategorized"
            bucket = by_category.setdefault(
                name, {"count": 0, "target_cents": 0, "current_cents": 0}
            )
            bucket["count"] += 1
            bucket["target_cents"] += goal.target_amount_cents
            bucket["current_cents"] += goal.current_amount_cents
        for bucket in by_category.values():
            target = bucket["target_cents"]
            bucket["progress"] = (
                round(min(bucket["current_cents"] / target * 100, 100), 2)
                if target
                else 0.0
            )
        completed = sum(1 for goal in goals if goal.is_completed)
        return {
            "count": len(goals),
            "by_status": by_status,
            "overdue": overdue,
            "target_cents": sum(g.target_amount_cents for g in goals),
            "current_cents": sum(g.current_amount_cents for g in goals),
            "completion_rate": round(completed / len(goals) * 100, 2) if goals else 0.0,
            "by_category": by_category,
        }


class NotificationService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self,
        *,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        priority: Optional[NotificationPriority] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(
                Notification.user_id == self.user_id,
                Notification.is_active.is_(True),
            )
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        if type:
            stmt = stmt.where(Notification.type == type)
        if priority:
            stmt = stmt.where(Notification.priority == priority)
        return self.session.scalars(stmt.offset(offset).limit(limit)).all()

    def get(self, notification_id: int) -> Notification:
        notification = _owned(
            self.session, Notification, notification_id, self.user_id, "Notification"
        )
        if not notification.is_active:
            raise NotFoundError("Notification not found")
        return notification

    def create(self, data: NotificationIn) -> Notification:
        notification = Notification(user_id=self.user_id, **data.model_dump())
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.get(notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.session.commit()
        return notification

    def mark_all_read(self) -> int:
        result = self.session.execute(
            update(Notification)
            .where(
                Notification.user_id == self.user_id,
                Notification.is_read.is_(False),
                Notification.is_active.is_(True),
            )
            .values(is_read=True, read_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        self.session.commit()
        return result.rowcount or 0

    def delete(self, notification_id: int) -> None:
        notification = self.get(notification_id)
        self.session.delete(notification)
        self.session.commit()

    def unread_count(self) -> int:
        return int(
            self.session.scalar(
                select(func.count(Notification.id)).where(
                    Notification.user_id == self.user_id,
                    Notification.is_active.is_(True),
                    Notification.is_read.is_(False),
                )
            )
            or 0
        )

    def stats(self) -> dict[str, object]:
        rows = self.session.execute(
            select(Notification.type, Notification.priority, Notification.is_read)
            .where(
                Notification.user_id == self.user_id,
                Notification.is_active.is_(True),
            )
        ).all()
        by_type = {t.value: 0 for t in NotificationType}
        by_priority = {p.value: 0 for p in NotificationPriority}
        unread = 0
        for type_, priority, is_read in rows:
            by_type[type_.value] += 1
            by_priority[priority.value] += 1
            if not is_read:
                unread += 1
        return {
            "total": len(rows),
            "unread": unread,
            "by_type": by_type,
            "by_priority": by_priority,
        }


@dataclass
class DueItem:
    related_type: str
    related_id: int
    description: str
    amount_cents: int
    due_date: date


def classify_due(days_until_due: int) -> Optional[tuple[NotificationType, NotificationPriority]]:
    if days_until_due < 0:
        return NotificationType.payment_overdue, NotificationPriority.urgent
    if days_until_due == 0:
        return NotificationType.payment_due, NotificationPriority.high
    if days_until_due <= 3:
        return NotificationType.payment_due, NotificationPriority.medium
    if days_until_due == 5:
        return NotificationType.payment_reminder, NotificationPriority.low
    return None


class NotificationJobService:
    """Scheduled notification work across all active users."""

    dedup_window = timedelta(hours=24)
    reminder_window = timedelta(days=7)
    scan_days = 5

    def __init__(self, session: Session) -> None:
        self.session = session

    def _users(self, user_id: Optional[int] = None) -> list[User]:
        stmt = select(User).where(User.is_active.is_(True)).order_by(User.id)
        if user_id is not None:
            stmt = stmt.where(User.id == user_id)
        return self.session.scalars(stmt).all()

    def _exists_since(
        self,
        user_id: int,
        type: NotificationType,
        related_type: Optional[str],
        related_id: Optional[int],
        since: datetime,
        due_date: Optional[date] = None,
    ) -> bool:
        stmt = (
            select(Notification.id)
            .where(
                Notification.user_id == user_id,
                Notification.type == type,
                Notification.created_at >= since,
            )
            .limit(1)
        )
        if related_type is not None:
            stmt = stmt.where(
                Notification.related_type == related_type,
                Notification.related_id == related_id,
            )
        # a financing keeps its id across installments
        if due_date is not None:
            stmt = stmt.where(Notification.due_date == due_date)
        return self.session.execute(stmt).first() is not None

    def _due_items(self, user_id: int, today: date) -> list[DueItem]:
        horizon = today + timedelta(days=self.scan_days)
        items: list[DueItem] = []
        for service, related_type in (
            (ReceivableService(self.session, user_id), "receivable"),
            (PayableService(self.session, user_id), "payable"),
        ):
            for item in service.list_all(due_to=horizon, today=today):
                if item.settlement.is_open:
                    items.append(
                        DueItem(
                            related_type,
                            item.id,
                            item.description,
                            item.settlement.remaining_cents,
                            item.due_date,
                        )
                    )
        occurrences = self.session.scalars(
            select(FixedAccountTransaction)
            .options(joinedload(FixedAccountTransaction.fixed_account))
            .where(
                FixedAccountTransaction.user_id == user_id,
                FixedAccountTransaction.status == OccurrenceStatus.pending,
                FixedAccountTransaction.due_date <= horizon,
            )
        ).all()
        for occurrence in occurrences:
            items.append(
                DueItem(
                    "fixed_account_occurrence",
                    occurrence.id,
                    occurrence.fixed_account.description,
                    occurrence.amount_cents,
                    occurrence.due_date,
                )
            )
        for financing in FinancingService(self.session, user_id).list_all():
            state = financing_state(financing)
            row = state.next_installment
            if state.status != FinancingStatus.active or row is None:
                continue
            if row.due_date <= horizon:
                items.append(
                    DueItem(
                        "financing",
                        financing.id,
                        f"{financing.description} installment {row.number}",
                        row.payment_cents,
                        row.due_date,
                    )
                )
        return items

    def generate_due_notifications(
        self, today: Optional[date] = None, user_id: Optional[int] = None
    ) -> int:
        today = today or local_today()
        since = datetime.utcnow() - self.dedup_window
        created = 0
        for user in self._users(user_id):
            flags = UserSettingService(self.session, user.id).get(
                SettingCategory.notifications
            )
            for item in self._due_items(user.id, today):
                days = (item.due_date - today).days
                classified = classify_due(days)
                if classified is None:
                    continue
                type_, priority = classified
                if type_ == NotificationType.payment_overdue:
                    if not flags.get("payment_overdue", True):
                        continue
                elif not flags.get("payment_due", True):
                    continue
                if self._exists_since(
                    user.id,
                    type_,
                    item.related_type,
                    item.related_id,
                    since,
                    due_date=item.due_date,
                ):
                    continue
                self.session.add(
                    Notification(
                        user_id=user.id,
                        type=type_,
                        priority=priority,
                        title=_due_title(type_, days),
                        message=(
                            f"{item.description}: {item.amount_cents / 100:.2f}"
                            f" due {item.due_date.isoformat()}"
                        ),
                        related_type=item.related_type,
                        related_id=item.related_id,
                        due_date=item.due_date,
                    )
                )
                created += 1
        self.session.flush()
        logger.info(f"due_notifications_generated: created={created}")
        return created

    def general_reminders(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        since = datetime.utcnow() - self.reminder_window
        created = 0
        for user in self._users():
            flags = UserSettingService(self.session, user.id).get(
                SettingCategory.notifications
            )
            if not flags.get("general_reminders", True):
                continue
            active = [
                f
                for f in FinancingService(self.session, user.id).list_all()
                if financing_state(f).status == FinancingStatus.active
            ]
            if not active:
                continue
            if self._exists_since(
                user.id, NotificationType.general_reminder, None, None, since
            ):
                continue
            self.session.add(
                Notification(
                    user_id=user.id,
                    type=NotificationType.general_reminder,
                    priority=NotificationPriority.low,
                    title="Financing review",
                    message=(
                        f"You have {len(active)} active financing(s). "
                        "Review upcoming installments and early payment options."
                    ),
                    due_date=today,
                )
            )
            created += 1
        self.session.flush()
        logger.info(f"general_reminders_generated: created={created}")
        return created

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        if retention_days is None:
            retention_days = get_settings().notification_retention_days
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        result = self.session.execute(
            update(Notification)
            .where(
                Notification.is_active.is_(True),
                Notification.created_at < cutoff,
            )
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        self.session.flush()
        count = result.rowcount or 0
        logger.info(f"notifications_cleaned: deactivated={count}")
        return count


def _due_title(type_: NotificationType, days: int) -> str:
    if type_ == NotificationType.payment_overdue:
        return f"Payment overdue by {-days} day(s)"
    if days == 0:
        return "Payment due today"
    return f"Payment due in {days} day(s)"


class JobExecutionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def start(self, job_name: str, source: Optional[str] = None) -> JobExecution:
        execution = JobExecution(
            job_name=job_name,
            status=JobStatus.running,
            source=source,
            started_at=datetime.utcnow(),
        )
        self.session.add(execution)
        self.session.commit()
        return execution

    def _close(self, execution: JobExecution, status: JobStatus) -> None:
        execution.status = status
        execution.finished_at = datetime.utcnow()
        execution.duration_ms = int(
            (execution.finished_at - execution.started_at).total_seconds() * 1000
        )

    def finish(self, execution_id: int, result: Optional[dict] = None) -> JobExecution:
        execution = self.session.get(JobExecution, execution_id)
        self._close(execution, JobStatus.success)
        execution.result_json = _dump_json(result)
        self.session.commit()
        return execution

    def fail(self, execution_id: int, error: str) -> JobExecution:
        execution = self.session.get(JobExecution, execution_id)
        self._close(execution, JobStatus.failed)
        execution.error_message = error[:2000]
        self.session.commit()
        return execution

    def list_all(
        self,
        *,
        job_name: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[JobExecution]:
        stmt = select(JobExecution).order_by(
            JobExecution.started_at.desc(), JobExecution.id.desc()
        )
        if job_name:
            stmt = stmt.where(JobExecution.job_name == job_name)
        if status:
            stmt = stmt.where(JobExecution.status == status)
        return self.session.scalars(stmt.offset(offset).limit(limit)).all()


# Owned tables, children before parents.
USER_OWNED_MODELS = (
    Payment,
    FinancingPayment,
    FixedAccountTransaction,
    Transaction,
    InvestmentContribution,
    Investment,
    FixedAccount,
    Receivable,
    Payable,
    Financing,
    InvestmentGoal,
    Customer,
    Supplier,
    Creditor,
    Category,
    Account,
    Notification,
    UserSetting,
    UserSession,
)


class AdminService:
    def __init__(
        self,
        session: Session,
        actor: User,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        if actor.role != UserRole.admin:
            raise PermissionDeniedError("Administrator access required")
        self.session = session
        self.actor = actor
        self.ip_address = ip_address
        self.user_agent = user_agent

    def _audit(self, action: str, target: User, details: Optional[dict] = None) -> None:
        AuditService(self.session).record(
            action,
            "user",
            user_id=self.actor.id,
            resource_id=target.id,
            details=details,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )

    def list_users(
        self,
        *,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[User]:
        stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(or_(User.name.ilike(like), User.email.ilike(like)))
        if role:
            stmt = stmt.where(User.role == role)
        if is_active is not None:
            stmt = stmt.where(User.is_active.is_(is_active))
        return self.session.scalars(stmt.offset(offset).limit(limit)).all()

    def user_stats(self) -> dict[str, int]:
        users = self.session.scalars(select(User)).all()
        now = datetime.utcnow()
        recent = now - timedelta(days=30)
        return {
            "total": len(users),
            "active": sum(1 for u in users if u.is_active),
            "inactive": sum(1 for u in users if not u.is_active),
            "admins": sum(1 for u in users if u.role == UserRole.admin),
            "locked": sum(1 for u in users if u.locked_until and u.locked_until > now),
            "new_last_30_days": sum(1 for u in users if u.created_at >= recent),
        }

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def set_status(self, user_id: int, is_active: bool) -> User:
        user = self.get_user(user_id)
        if user.id == self.actor.id and not is_active:
            raise ValueError("You cannot deactivate your own account")
        user.is_active = is_active
        if not is_active:
            AuthService(self.session).logout_all(user.id)
        else:
            user.failed_login_attempts = 0
            user.locked_until = None
        self._audit("set_status", user, {"is_active": is_active})
        self.session.commit()
        logger.info(
            f"admin_set_status: actor={self.actor.id} user_id={user.id}"
            f" is_active={is_active}"
        )
        return user

    def set_role(self, user_id: int, role: UserRole) -> User:
        user = self.get_user(user_id)
        if user.id == self.actor.id and role != UserRole.admin:
            raise ValueError("You cannot remove your own administrator role")
        user.role = role
        self._audit("set_role", user, {"role": role.value})
        self.session.commit()
        logger.info(
            f"admin_set_role: actor={self.actor.id} user_id={user.id} role={role.value}"
        )
        return user

    def delete_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        if user.id == self.actor.id:
            raise ValueError("You cannot delete your own account")
        for model in USER_OWNED_MODELS:
            self.session.execute(delete(model).where(model.user_id == user.id))
        self._audit("delete_user", user, {"email": user.email})
        self.session.expunge(user)
        self.session.execute(delete(User).where(User.id == user_id))
        self.session.commit()
        logger.info(f"admin_deleted_user: actor={self.actor.id} user_id={user_id}")

    def audit_logs(self, **filters) -> list[AuditLog]:
        return AuditService(self.session).list_all(**filters)

    def audit_stats(self, days: int = 30) -> dict[str, object]:
        return AuditService(self.session).stats(days)

    def job_executions(self, **filters) -> list[JobExecution]:
        return JobExecutionService(self.session).list_all(**filters)

    def integrity_check(self) -> dict[str, object]:
        """Cross-check links between owner records and their transactions."""
        active_payment_deleted_txn = self.session.scalars(
            select(Payment.id)
            .join(Transaction, Payment.transaction_id == Transaction.id)
            .where(Payment.deleted_at.is_(None), Transaction.deleted_at.is_not(None))
        ).all()
        active_financing_payment_deleted_txn = self.session.scalars(
            select(FinancingPayment.id)
            .join(Transaction, FinancingPayment.transaction_id == Transaction.id)
            .where(
                FinancingPayment.deleted_at.is_(None),
                Transaction.deleted_at.is_not(None),
            )
        ).all()
        deleted_payment_active_txn = self.session.scalars(
            select(Payment.id)
            .join(Transaction, Payment.transaction_id == Transaction.id)
            .where(Payment.deleted_at.is_not(None), Transaction.deleted_at.is_(None))
        ).all()
        deleted_financing_payment_active_txn = self.session.scalars(
            select(FinancingPayment.id)
            .join(Transaction, FinancingPayment.transaction_id == Transaction.id)
            .where(
                FinancingPayment.deleted_at.is_not(None),
                Transaction.deleted_at.is_(None),
            )
        ).all()
        paid_occurrences_without_txn = self.session.scalars(
            select(FixedAccountTransaction.id)
            .outerjoin(
                Transaction, FixedAccountTransaction.transaction_id == Transaction.id
            )
            .where(
                FixedAccountTransaction.status == OccurrenceStatus.paid,
                or_(Transaction.id.is_(None), Transaction.deleted_at.is_not(None)),
            )
        ).all()
        category_mismatch = self.session.scalars(
            select(Transaction.id)
            .join(Category, Transaction.category_id == Category.id)
            .where(Transaction.deleted_at.is_(None), Category.type != Transaction.type)
        ).all()
        issues = {
            "payments_with_deleted_transaction": list(active_payment_deleted_txn),
            "financing_payments_with_deleted_transaction": list(
                active_financing_payment_deleted_txn
            ),
            "deleted_payments_with_active_transaction": list(deleted_payment_active_txn),
            "deleted_financing_payments_with_active_transaction": list(
                deleted_financing_payment_active_txn
            ),
            "paid_occurrences_without_transaction": list(paid_occurrences_without_txn),
            "category_type_mismatches": list(category_mismatch),
        }
        total = sum(len(ids) for ids in issues.values())
        if total:
            logger.warning(f"integrity_check: issues={total}")
        return {"ok": total == 0, "issue_count": total, "issues": issues}


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def overview(self, period: Period, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        accounts = AccountService(self.session, self.user_id)
        balances = accounts.balances()
        stats = TransactionService(self.session, self.user_id).stats(period)
        receivables = ReceivableService(self.session, self.user_id)
        payables = PayableService(self.session, self.user_id)

        alerts: list[dict[str, object]] = []
        for label, service in (("receivable", receivables), ("payable", payables)):
            overdue = service.overdue(today)
            upcoming = service.upcoming(days=7, today=today)
            for item, is_overdue in [(i, True) for i in overdue] + [
                (i, False) for i in upcoming
            ]:
                alerts.append(
                    _alert(
                        label,
                        item.id,
                        item.description,
                        item.due_date,
                        item.settlement.remaining_cents,
                        is_overdue,
                    )
                )
        fixed = FixedAccountService(self.session, self.user_id)
        for occurrence in fixed.occurrences(status=OccurrenceStatus.pending, today=today):
            if occurrence.due_date > today + timedelta(days=7):
                continue
            alerts.append(
                _alert(
                    "fixed_account_occurrence",
                    occurrence.id,
                    occurrence.fixed_account.description,
                    occurrence.due_date,
                    occurrence.amount_cents,
                    occurrence.is_overdue(today),
                )
            )
        alerts.sort(key=lambda a: (not a["overdue"], a["due_date"]))

        return {
            "period": {
                "slug": period.slug,
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
            },
            "total_balance_cents": sum(balances.values()),
            "accounts": [
                {
                    "id": account.id,
                    "bank_name": account.bank_name,
                    "account_type": account.account_type.value,
                    "balance_cents": balances.get(account.id, 0),
                }
                for account in accounts.list_all()
            ],
            "income_cents": stats["income_cents"],
            "expense_cents": stats["expense_cents"],
            "net_cents": stats["net_cents"],
            "receivables": receivables.summary(today),
            "payables": payables.summary(today),
            "alerts": alerts,
            "unread_notifications": NotificationService(
                self.session, self.user_id
            ).unread_count(),
        }


def _alert(
    kind: str,
    item_id: int,
    description: str,
    due_date: date,
    amount_cents: int,
    overdue: bool,
) -> dict[str, object]:
    return {
        "kind": kind,
        "id": item_id,
        "description": description,
        "due_date": due_date.isoformat(),
        "amount_cents": amount_cents,
        "overdue": overdue,
    }
