import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from database import SessionLocal
from models import (
    Account,
    AuditLog,
    AuditStatus,
    Category,
    FinancingStatus,
    FinancingType,
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
    Payment,
    SettingCategory,
    Transaction,
    TransactionSource,
    TransactionType,
    User,
    UserRole,
    UserSession,
)
from periods import Period, resolve_period
from recurrence import local_today
from scheduler import SchedulerManager, run_job
from schemas import (
    AccountIn,
    CategoryIn,
    CategoryUpdateIn,
    ContributionIn,
    ContributionUpdateIn,
    CounterpartyIn,
    CreditorIn,
    EarlyPaymentIn,
    EarlyPaymentSimulationIn,
    FinancingIn,
    FinancingUpdateIn,
    FixedAccountIn,
    FixedAccountPayIn,
    FixedAccountUpdateIn,
    GoalAmountIn,
    GoalIn,
    InstallmentPaymentIn,
    InvestmentIn,
    LoginIn,
    NotificationIn,
    PasswordChangeIn,
    PayableIn,
    PaymentIn,
    ProfileIn,
    ReceivableIn,
    RegisterIn,
    SellIn,
    TransactionIn,
    UserRoleIn,
    UserStatusIn,
)
from services import (
    AccountService,
    AdminService,
    AuthContext,
    AuthenticationError,
    AuthService,
    CategoryService,
    ConflictError,
    CreditorService,
    CustomerService,
    DashboardService,
    FinancingPaymentService,
    FinancingService,
    FixedAccountService,
    InvestmentContributionService,
    InvestmentGoalService,
    InvestmentService,
    NotFoundError,
    NotificationJobService,
    NotificationService,
    PayableService,
    PaymentService,
    PermissionDeniedError,
    Position,
    ReceivableService,
    SupplierService,
    TransactionFilters,
    TransactionService,
    UserSettingService,
    financing_state,
)
from settlement import SettlementStatus

logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Manager")
bearer = HTTPBearer(auto_error=False)

ERROR_STATUS = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
)


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    status_code = 400
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code, content={"detail": str(exc)}, headers=headers
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _client(request: Request) -> dict[str, Optional[str]]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def current_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Not authenticated")
    return AuthService(db).authenticate(credentials.credentials)


def current_user(ctx: AuthContext = Depends(current_auth)) -> User:
    return ctx.user


def admin_service(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
) -> AdminService:
    return AdminService(db, user, **_client(request))


def period_from_request(request: Request) -> Period:
    return resolve_period(
        request.query_params.get("period"),
        request.query_params.get("start"),
        request.query_params.get("end"),
        today=local_today(),
    )


def paging(request: Request) -> tuple[int, int]:
    page = max(int(request.query_params.get("page", "1")), 1)
    limit = min(max(int(request.query_params.get("limit", "50")), 1), 100)
    return page, limit


def paged(items: list, page: int, limit: int, serialize) -> dict[str, Any]:
    has_more = len(items) > limit
    return {
        "items": [serialize(item) for item in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _enum(value) -> Optional[str]:
    return value.value if value is not None else None


# Serializers


def user_out(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "is_active": user.is_active,
        "timezone": user.timezone,
        "language": user.language,
        "last_login_at": _iso(user.last_login_at),
        "locked_until": _iso(user.locked_until),
        "created_at": _iso(user.created_at),
    }


def session_out(user_session: UserSession, current_id: Optional[int] = None) -> dict[str, Any]:
    return {
        "id": user_session.id,
        "device_type": user_session.device_type,
        "user_agent": user_session.user_agent,
        "ip_address": user_session.ip_address,
        "last_activity_at": _iso(user_session.last_activity_at),
        "expires_at": _iso(user_session.expires_at),
        "current": user_session.id == current_id,
    }


def category_out(category: Category) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "is_default": category.is_default,
        "archived": category.archived_at is not None,
    }


def account_out(account: Account, balance_cents: Optional[int] = None) -> dict[str, Any]:
    return {
        "id": account.id,
        "bank_name": account.bank_name,
        "account_type": account.account_type.value,
        "opening_balance_cents": account.opening_balance_cents,
        "balance_cents": balance_cents,
        "description": account.description,
    }


def transaction_out(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "account_id": txn.account_id,
        "category_id": txn.category_id,
        "category": txn.category.name if txn.category else None,
        "description": txn.description,
        "payment_method": _enum(txn.payment_method),
        "supplier_id": txn.supplier_id,
        "customer_id": txn.customer_id,
        "source": txn.source.value,
        "deleted_at": _iso(txn.deleted_at),
    }


def counterparty_out(obj) -> dict[str, Any]:
    data = {
        "id": obj.id,
        "name": obj.name,
        "document_type": _enum(obj.document_type),
        "document_number": obj.document_number,
        "email": obj.email,
        "phone": obj.phone,
        "address": obj.address,
    }
    if hasattr(obj, "contact_person"):
        data["contact_person"] = obj.contact_person
        data["is_active"] = obj.is_active
    return data


def open_item_out(item, today: date) -> dict[str, Any]:
    settlement = item.settlement
    return {
        "id": item.id,
        "customer_id": getattr(item, "customer_id", None),
        "supplier_id": getattr(item, "supplier_id", None),
        "category_id": item.category_id,
        "description": item.description,
        "amount_cents": item.amount_cents,
        "paid_cents": settlement.paid_cents,
        "remaining_cents": settlement.remaining_cents,
        "status": settlement.status.value,
        "overdue": settlement.is_open and item.due_date < today,
        "due_date": item.due_date.isoformat(),
        "invoice_number": item.invoice_number,
        "payment_terms": item.payment_terms,
        "notes": item.notes,
    }


def payment_out(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "receivable_id": payment.receivable_id,
        "payable_id": payment.payable_id,
        "account_id": payment.account_id,
        "transaction_id": payment.transaction_id,
        "amount_cents": payment.amount_cents,
        "payment_date": payment.payment_date.isoformat(),
        "payment_method": payment.payment_method.value,
        "notes": payment.notes,
    }


def installment_out(row) -> dict[str, Any]:
    return {
        "number": row.number,
        "due_date": row.due_date.isoformat(),
        "payment_cents": row.payment_cents,
        "amortization_cents": row.amortization_cents,
        "interest_cents": row.interest_cents,
        "balance_cents": row.balance_cents,
    }


def financing_out(financing) -> dict[str, Any]:
    state = financing_state(financing)
    next_row = state.next_installment
    return {
        "id": financing.id,
        "creditor_id": financing.creditor_id,
        "financing_type": financing.financing_type.value,
        "description": financing.description,
        "contract_number": financing.contract_number,
        "total_amount_cents": financing.total_amount_cents,
        "interest_rate": str(financing.interest_rate),
        "term_months": financing.term_months,
        "start_date": financing.start_date.isoformat(),
        "amortization_method": financing.amortization_method.value,
        "payment_method": _enum(financing.payment_method),
        "notes": financing.notes,
        "status": state.status.value,
        "outstanding_cents": state.outstanding_cents,
        "principal_paid_cents": state.principal_paid_cents,
        "interest_paid_cents": state.interest_paid_cents,
        "total_paid_cents": state.total_paid_cents,
        "paid_installments": state.paid_installments,
        "remaining_installments": state.remaining_installments,
        "next_installment": installment_out(next_row) if next_row else None,
    }


def financing_payment_out(payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "financing_id": payment.financing_id,
        "account_id": payment.account_id,
        "transaction_id": payment.transaction_id,
        "installment_number": payment.installment_number,
        "payment_type": payment.payment_type.value,
        "early_preference": payment.early_preference,
        "amount_cents": payment.amount_cents,
        "principal_cents": payment.principal_cents,
        "interest_cents": payment.interest_cents,
        "payment_date": payment.payment_date.isoformat(),
        "payment_method": payment.payment_method.value,
        "notes": payment.notes,
    }


def fixed_account_out(fixed_account: FixedAccount) -> dict[str, Any]:
    return {
        "id": fixed_account.id,
        "description": fixed_account.description,
        "type": fixed_account.type.value,
        "amount_cents": fixed_account.amount_cents,
        "periodicity": fixed_account.periodicity.value,
        "start_date": fixed_account.start_date.isoformat(),
        "next_due_date": fixed_account.next_due_date.isoformat(),
        "category_id": fixed_account.category_id,
        "supplier_id": fixed_account.supplier_id,
        "account_id": fixed_account.account_id,
        "payment_method": _enum(fixed_account.payment_method),
        "reminder_days": fixed_account.reminder_days,
        "is_active": fixed_account.is_active,
        "notes": fixed_account.notes,
    }


def occurrence_out(occurrence: FixedAccountTransaction, today: date) -> dict[str, Any]:
    return {
        "id": occurrence.id,
        "fixed_account_id": occurrence.fixed_account_id,
        "due_date": occurrence.due_date.isoformat(),
        "amount_cents": occurrence.amount_cents,
        "status": occurrence.status.value,
        "overdue": occurrence.is_overdue(today),
        "paid_at": _iso(occurrence.paid_at),
        "account_id": occurrence.account_id,
        "transaction_id": occurrence.transaction_id,
        "payment_method": _enum(occurrence.payment_method),
    }


def investment_out(investment: Investment) -> dict[str, Any]:
    return {
        "id": investment.id,
        "investment_type": investment.investment_type.value,
        "asset_name": investment.asset_name,
        "ticker": investment.ticker,
        "operation_type": investment.operation_type.value,
        "quantity": str(investment.quantity),
        "unit_price_cents": investment.unit_price_cents,
        "amount_cents": investment.amount_cents,
        "operation_date": investment.operation_date.isoformat(),
        "broker": investment.broker,
        "source_account_id": investment.source_account_id,
        "destination_account_id": investment.destination_account_id,
        "category_id": investment.category_id,
        "notes": investment.notes,
    }


def position_out(position: Position) -> dict[str, Any]:
    return {
        "asset_name": position.asset_name,
        "ticker": position.ticker,
        "investment_type": position.investment_type.value,
        "broker": position.broker,
        "quantity": str(position.quantity),
        "average_price_cents": position.average_price_cents,
        "invested_cents": position.invested_cents,
        "operations": position.operations,
    }


def contribution_out(contribution: InvestmentContribution) -> dict[str, Any]:
    return {
        "id": contribution.id,
        "investment_id": contribution.investment_id,
        "amount_cents": contribution.amount_cents,
        "quantity": str(contribution.quantity) if contribution.quantity else None,
        "unit_price_cents": contribution.unit_price_cents,
        "contribution_date": contribution.contribution_date.isoformat(),
        "source_account_id": contribution.source_account_id,
        "destination_account_id": contribution.destination_account_id,
        "broker": contribution.broker,
        "notes": contribution.notes,
    }


def goal_out(goal: InvestmentGoal, today: date) -> dict[str, Any]:
    return {
        "id": goal.id,
        "name": goal.name,
        "description": goal.description,
        "target_amount_cents": goal.target_amount_cents,
        "current_amount_cents": goal.current_amount_cents,
        "target_date": goal.target_date.isoformat(),
        "category_id": goal.category_id,
        "color": goal.color,
        "status": goal.status.value,
        "progress": goal.progress,
        "is_completed": goal.is_completed,
        "is_overdue": goal.is_overdue(today),
    }


def notification_out(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority.value,
        "is_read": notification.is_read,
        "read_at": _iso(notification.read_at),
        "related_type": notification.related_type,
        "related_id": notification.related_id,
        "due_date": _iso(notification.due_date),
        "created_at": _iso(notification.created_at),
    }


def audit_out(entry: AuditLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "action": entry.action,
        "resource": entry.resource,
        "resource_id": entry.resource_id,
        "details_json": entry.details_json,
        "ip_address": entry.ip_address,
        "status": entry.status.value,
        "error_message": entry.error_message,
        "created_at": _iso(entry.created_at),
    }


def job_out(execution: JobExecution) -> dict[str, Any]:
    return {
        "id": execution.id,
        "job_name": execution.job_name,
        "status": execution.status.value,
        "source": execution.source,
        "started_at": _iso(execution.started_at),
        "finished_at": _iso(execution.finished_at),
        "duration_ms": execution.duration_ms,
        "error_message": execution.error_message,
        "result_json": execution.result_json,
    }


@app.get("/api/health")
def health():
    return {"status": "ok"}


# Auth and profile


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    user = AuthService(db).register(payload, **_client(request))
    return user_out(user)


@app.post("/api/auth/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    token, ctx = AuthService(db).login(payload, **_client(request))
    return {
        "token": token,
        "token_type": "bearer",
        "user": user_out(ctx.user),
        "session": session_out(ctx.session, ctx.session.id),
    }


@app.post("/api/auth/logout")
def logout(ctx: AuthContext = Depends(current_auth), db: Session = Depends(get_db)):
    AuthService(db).logout(ctx)
    return {"ok": True}


@app.post("/api/auth/logout-all")
def logout_all(ctx: AuthContext = Depends(current_auth), db: Session = Depends(get_db)):
    revoked = AuthService(db).logout_all(ctx.user.id)
    return {"revoked": revoked}


@app.get("/api/auth/me")
def me(user: User = Depends(current_user)):
    return user_out(user)


@app.put("/api/auth/profile")
def update_profile(
    payload: ProfileIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return user_out(AuthService(db).update_profile(user, payload))


@app.post("/api/auth/change-password")
def change_password(
    payload: PasswordChangeIn,
    ctx: AuthContext = Depends(current_auth),
    db: Session = Depends(get_db),
):
    revoked = AuthService(db).change_password(ctx, payload)
    return {"ok": True, "sessions_revoked": revoked}


@app.get("/api/auth/sessions")
def list_sessions(ctx: AuthContext = Depends(current_auth), db: Session = Depends(get_db)):
    sessions = AuthService(db).list_sessions(ctx.user.id)
    return [session_out(s, ctx.session.id) for s in sessions]


@app.delete("/api/auth/sessions/{session_id}")
def revoke_session(
    session_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    AuthService(db).revoke_session(user.id, session_id)
    return {"ok": True}


# Settings


@app.get("/api/settings")
def get_all_settings(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return UserSettingService(db, user.id).get_all()


@app.get("/api/settings/{category}")
def get_settings_category(
    category: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return UserSettingService(db, user.id).get(SettingCategory(category))


@app.put("/api/settings/{category}")
def update_settings_category(
    category: str,
    values: dict[str, Any] = Body(...),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return UserSettingService(db, user.id).update(SettingCategory(category), values)


@app.post("/api/settings/{category}/reset")
def reset_settings_category(
    category: str,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return UserSettingService(db, user.id).reset(SettingCategory(category))


# Categories


@app.get("/api/categories")
def list_categories(
    type: Optional[TransactionType] = None,
    include_archived: bool = False,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, user.id).list_all(
        type=type, include_archived=include_archived
    )
    return [category_out(c) for c in categories]


@app.post("/api/categories", status_code=201)
def create_category(
    payload: CategoryIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return category_out(CategoryService(db, user.id).create(payload))


@app.put("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return category_out(CategoryService(db, user.id).update(category_id, payload))


@app.post("/api/categories/{category_id}/archive")
def archive_category(
    category_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    CategoryService(db, user.id).archive(category_id)
    return {"ok": True}


@app.post("/api/categories/{category_id}/restore")
def restore_category(
    category_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    CategoryService(db, user.id).restore(category_id)
    return {"ok": True}


@app.delete("/api/categories/{category_id}")
def delete_category(
    category_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    CategoryService(db, user.id).delete(category_id)
    return {"ok": True}


# Accounts


@app.get("/api/accounts")
def list_accounts(user: User = Depends(current_user), db: Session = Depends(get_db)):
    service = AccountService(db, user.id)
    balances = service.balances()
    accounts = [account_out(a, balances.get(a.id, 0)) for a in service.list_all()]
    return {"items": accounts, "total_balance_cents": sum(balances.values())}


@app.post("/api/accounts", status_code=201)
def create_account(
    payload: AccountIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    service = AccountService(db, user.id)
    account = service.create(payload)
    return account_out(account, service.balance(account.id))


@app.get("/api/accounts/{account_id}")
def get_account(
    account_id: int,
    as_of: Optional[date] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = AccountService(db, user.id)
    return account_out(service.get(account_id), service.balance(account_id, as_of))


@app.put("/api/accounts/{account_id}")
def update_account(
    account_id: int,
    payload: AccountIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = AccountService(db, user.id)
    account = service.update(account_id, payload)
    return account_out(account, service.balance(account.id))


@app.delete("/api/accounts/{account_id}")
def delete_account(
    account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    AccountService(db, user.id).delete(account_id)
    return {"ok": True}


# Transactions


def filters_from_request(request: Request) -> TransactionFilters:
    params = request.query_params

    def _int(name: str) -> Optional[int]:
        value = params.get(name)
        return int(value) if value else None

    type_param = params.get("type")
    source_param = params.get("source")
    return TransactionFilters(
        type=TransactionType(type_param) if type_param else None,
        account_id=_int("account_id"),
        category_id=_int("category_id"),
        supplier_id=_int("supplier_id"),
        customer_id=_int("customer_id"),
        source=TransactionSource(source_param) if source_param else None,
        query=params.get("q"),
    )


@app.get("/api/transactions")
def list_transactions(
    request: Request, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    period = period_from_request(request)
    filters = filters_from_request(request)
    page, limit = paging(request)
    items = TransactionService(db, user.id).list_all(
        period, filters, limit=limit + 1, offset=(page - 1) * limit
    )
    return paged(items, page, limit, transaction_out)


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db, user.id)
    txn = service.create(payload)
    return transaction_out(service.get(txn.id))


@app.get("/api/transactions/deleted")
def deleted_transactions(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return [transaction_out(t) for t in TransactionService(db, user.id).deleted()]


@app.get("/api/transactions/stats")
def transaction_stats(
    request: Request,
    account_id: Optional[int] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    return TransactionService(db, user.id).stats(period, account_id)


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(
    request: Request, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    period = period_from_request(request)
    filters = filters_from_request(request)
    csv_text = TransactionService(db, user.id).export_csv(period, filters)
    filename = f"transactions_{period.start}_{period.end}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return transaction_out(TransactionService(db, user.id).get(transaction_id))


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db, user.id)
    service.update(transaction_id, payload)
    return transaction_out(service.get(transaction_id))


@app.delete("/api/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    TransactionService(db, user.id).soft_delete(transaction_id)
    return {"ok": True}


@app.post("/api/transactions/{transaction_id}/restore")
def restore_transaction(
    transaction_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    service = TransactionService(db, user.id)
    service.restore(transaction_id)
    return transaction_out(service.get(transaction_id))


# Customers, suppliers and creditors


def register_counterparty_routes(prefix: str, service_cls, schema) -> None:
    @app.get(prefix, name=f"list_{service_cls.label.lower()}s")
    def list_items(
        search: Optional[str] = None,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        return [counterparty_out(o) for o in service_cls(db, user.id).list_all(search)]

    @app.post(prefix, status_code=201, name=f"create_{service_cls.label.lower()}")
    def create_item(
        payload: schema, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        return counterparty_out(service_cls(db, user.id).create(payload))

    @app.get(f"{prefix}/{{item_id}}", name=f"get_{service_cls.label.lower()}")
    def get_item(
        item_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        return counterparty_out(service_cls(db, user.id).get(item_id))

    @app.put(f"{prefix}/{{item_id}}", name=f"update_{service_cls.label.lower()}")
    def update_item(
        item_id: int,
        payload: schema,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        return counterparty_out(service_cls(db, user.id).update(item_id, payload))

    @app.delete(f"{prefix}/{{item_id}}", name=f"delete_{service_cls.label.lower()}")
    def delete_item(
        item_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        service_cls(db, user.id).delete(item_id)
        return {"ok": True}


register_counterparty_routes("/api/customers", CustomerService, CounterpartyIn)
register_counterparty_routes("/api/suppliers", SupplierService, CounterpartyIn)
register_counterparty_routes("/api/creditors", CreditorService, CreditorIn)


# Receivables and payables


def register_open_item_routes(prefix: str, service_cls, schema) -> None:
    label = service_cls.label.lower()

    @app.get(prefix, name=f"list_{label}s")
    def list_items(
        status: Optional[SettlementStatus] = None,
        counterparty_id: Optional[int] = None,
        category_id: Optional[int] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        overdue: bool = False,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        today = local_today()
        items = service_cls(db, user.id).list_all(
            status=status,
            counterparty_id=counterparty_id,
            category_id=category_id,
            due_from=due_from,
            due_to=due_to,
            overdue_only=overdue,
            today=today,
        )
        return [open_item_out(i, today) for i in items]

    @app.get(f"{prefix}/summary", name=f"{label}_summary")
    def summary(user: User = Depends(current_user), db: Session = Depends(get_db)):
        return service_cls(db, user.id).summary(local_today())

    @app.get(f"{prefix}/upcoming", name=f"{label}_upcoming")
    def upcoming(
        days: int = 30, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        today = local_today()
        items = service_cls(db, user.id).upcoming(days=days, today=today)
        return [open_item_out(i, today) for i in items]

    @app.get(f"{prefix}/overdue", name=f"{label}_overdue")
    def overdue_items(user: User = Depends(current_user), db: Session = Depends(get_db)):
        today = local_today()
        return [open_item_out(i, today) for i in service_cls(db, user.id).overdue(today)]

    @app.post(prefix, status_code=201, name=f"create_{label}")
    def create_item(
        payload: schema, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        return open_item_out(service_cls(db, user.id).create(payload), local_today())

    @app.get(f"{prefix}/{{item_id}}", name=f"get_{label}")
    def get_item(
        item_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        return open_item_out(service_cls(db, user.id).get(item_id), local_today())

    @app.put(f"{prefix}/{{item_id}}", name=f"update_{label}")
    def update_item(
        item_id: int,
        payload: schema,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        item = service_cls(db, user.id).update(item_id, payload)
        return open_item_out(item, local_today())

    @app.delete(f"{prefix}/{{item_id}}", name=f"delete_{label}")
    def delete_item(
        item_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        service_cls(db, user.id).delete(item_id)
        return {"ok": True}

    @app.get(f"{prefix}/{{item_id}}/payments", name=f"{label}_payments")
    def item_payments(
        item_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
    ):
        item = service_cls(db, user.id).get(item_id)
        payments = PaymentService(db, user.id).list_all(
            **{f"{service_cls.payment_relation}_id": item.id}
        )
        return [payment_out(p) for p in payments]

    @app.post(f"{prefix}/{{item_id}}/payments", status_code=201, name=f"pay_{label}")
    def add_payment(
        item_id: int,
        payload: PaymentIn,
        user: User = Depends(current_user),
        db: Session = Depends(get_db),
    ):
        return payment_out(service_cls(db, user.id).add_payment(item_id, payload))


register_open_item_routes("/api/receivables", ReceivableService, ReceivableIn)
register_open_item_routes("/api/payables", PayableService, PayableIn)


@app.get("/api/payments")
def list_payments(
    receivable_id: Optional[int] = None,
    payable_id: Optional[int] = None,
    account_id: Optional[int] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    payments = PaymentService(db, user.id).list_all(
        receivable_id=receivable_id,
        payable_id=payable_id,
        account_id=account_id,
        start=start,
        end=end,
    )
    return [payment_out(p) for p in payments]


@app.get("/api/payments/{payment_id}")
def get_payment(
    payment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return payment_out(PaymentService(db, user.id).get(payment_id))


@app.delete("/api/payments/{payment_id}")
def delete_payment(
    payment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    PaymentService(db, user.id).delete(payment_id)
    return {"ok": True}


# Financings


@app.get("/api/financings")
def list_financings(
    status: Optional[FinancingStatus] = None,
    financing_type: Optional[FinancingType] = None,
    creditor_id: Optional[int] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    financings = FinancingService(db, user.id).list_all(
        status=status, financing_type=financing_type, creditor_id=creditor_id
    )
    return [financing_out(f) for f in financings]


@app.post("/api/financings", status_code=201)
def create_financing(
    payload: FinancingIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return financing_out(FinancingService(db, user.id).create(payload))


@app.get("/api/financings/statistics")
def financing_statistics(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return FinancingService(db, user.id).statistics()


@app.get("/api/financings/{financing_id}")
def get_financing(
    financing_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return financing_out(FinancingService(db, user.id).get(financing_id))


@app.put("/api/financings/{financing_id}")
def update_financing(
    financing_id: int,
    payload: FinancingUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return financing_out(FinancingService(db, user.id).update(financing_id, payload))


@app.post("/api/financings/{financing_id}/cancel")
def cancel_financing(
    financing_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return financing_out(FinancingService(db, user.id).cancel(financing_id))


@app.delete("/api/financings/{financing_id}")
def delete_financing(
    financing_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    FinancingService(db, user.id).delete(financing_id)
    return {"ok": True}


@app.get("/api/financings/{financing_id}/table")
def financing_table(
    financing_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    table = FinancingService(db, user.id).table(financing_id)
    return {
        "principal_cents": table.principal_cents,
        "method": table.method.value,
        "total_payment_cents": table.total_payment_cents,
        "total_interest_cents": table.total_interest_cents,
        "rows": [installment_out(r) for r in table.rows],
    }


@app.post("/api/financings/{financing_id}/simulate-early-payment")
def simulate_early_payment(
    financing_id: int,
    payload: EarlyPaymentSimulationIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    simulation = FinancingService(db, user.id).simulate_early_payment(
        financing_id, payload.amount_cents, payload.preference
    )
    return {**asdict(simulation), "interest_saved_cents": simulation.interest_saved_cents}


@app.get("/api/financings/{financing_id}/payments")
def list_financing_payments(
    financing_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    payments = FinancingPaymentService(db, user.id).list_all(financing_id)
    return [financing_payment_out(p) for p in payments]


@app.post("/api/financings/{financing_id}/payments", status_code=201)
def pay_installment(
    financing_id: int,
    payload: InstallmentPaymentIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    payment = FinancingPaymentService(db, user.id).pay_installment(financing_id, payload)
    return financing_payment_out(payment)


@app.post("/api/financings/{financing_id}/early-payments", status_code=201)
def pay_early(
    financing_id: int,
    payload: EarlyPaymentIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    payment = FinancingPaymentService(db, user.id).pay_early(financing_id, payload)
    return financing_payment_out(payment)


@app.delete("/api/financing-payments/{payment_id}")
def delete_financing_payment(
    payment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    FinancingPaymentService(db, user.id).delete(payment_id)
    return {"ok": True}


# Fixed accounts


@app.get("/api/fixed-accounts")
def list_fixed_accounts(
    is_active: Optional[bool] = None,
    type: Optional[TransactionType] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    items = FixedAccountService(db, user.id).list_all(is_active=is_active, type=type)
    return [fixed_account_out(f) for f in items]


@app.post("/api/fixed-accounts", status_code=201)
def create_fixed_account(
    payload: FixedAccountIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return fixed_account_out(FixedAccountService(db, user.id).create(payload))


@app.get("/api/fixed-accounts/statistics")
def fixed_account_statistics(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return FixedAccountService(db, user.id).statistics(local_today())


@app.get("/api/fixed-accounts/occurrences")
def list_occurrences(
    status: Optional[OccurrenceStatus] = None,
    overdue: bool = False,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    today = local_today()
    items = FixedAccountService(db, user.id).occurrences(
        status=status, overdue_only=overdue, today=today
    )
    return [occurrence_out(o, today) for o in items]


@app.post("/api/fixed-accounts/occurrences/pay")
def pay_occurrences(
    payload: FixedAccountPayIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    today = local_today()
    paid = FixedAccountService(db, user.id).pay_occurrences(payload)
    return [occurrence_out(o, today) for o in paid]


@app.post("/api/fixed-accounts/occurrences/{occurrence_id}/reopen")
def reopen_occurrence(
    occurrence_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    occurrence = FixedAccountService(db, user.id).reopen_occurrence(occurrence_id)
    return occurrence_out(occurrence, local_today())


@app.post("/api/fixed-accounts/occurrences/{occurrence_id}/cancel")
def cancel_occurrence(
    occurrence_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    occurrence = FixedAccountService(db, user.id).cancel_occurrence(occurrence_id)
    return occurrence_out(occurrence, local_today())


@app.post("/api/fixed-accounts/catch-up")
def catch_up_fixed_accounts(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return {"created": FixedAccountService(db, user.id).catch_up(local_today())}


@app.get("/api/fixed-accounts/{fixed_account_id}")
def get_fixed_account(
    fixed_account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return fixed_account_out(FixedAccountService(db, user.id).get(fixed_account_id))


@app.put("/api/fixed-accounts/{fixed_account_id}")
def update_fixed_account(
    fixed_account_id: int,
    payload: FixedAccountUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    fixed_account = FixedAccountService(db, user.id).update(
        fixed_account_id, payload, local_today()
    )
    return fixed_account_out(fixed_account)


@app.post("/api/fixed-accounts/{fixed_account_id}/toggle")
def toggle_fixed_account(
    fixed_account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return fixed_account_out(FixedAccountService(db, user.id).toggle(fixed_account_id))


@app.delete("/api/fixed-accounts/{fixed_account_id}")
def delete_fixed_account(
    fixed_account_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    FixedAccountService(db, user.id).delete(fixed_account_id)
    return {"ok": True}


@app.get("/api/fixed-accounts/{fixed_account_id}/occurrences")
def fixed_account_occurrences(
    fixed_account_id: int,
    status: Optional[OccurrenceStatus] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    today = local_today()
    items = FixedAccountService(db, user.id).occurrences(
        fixed_account_id, status=status, today=today
    )
    return [occurrence_out(o, today) for o in items]


# Investments


@app.get("/api/investments")
def list_investments(
    investment_type: Optional[InvestmentType] = None,
    operation_type: Optional[OperationType] = None,
    broker: Optional[str] = None,
    search: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    items = InvestmentService(db, user.id).list_all(
        investment_type=investment_type,
        operation_type=operation_type,
        broker=broker,
        search=search,
        start=start,
        end=end,
    )
    return [investment_out(i) for i in items]


@app.post("/api/investments", status_code=201)
def create_investment(
    payload: InvestmentIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return investment_out(InvestmentService(db, user.id).create(payload))


@app.get("/api/investments/statistics")
def investment_statistics(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return InvestmentService(db, user.id).statistics()


@app.get("/api/investments/positions")
def list_positions(
    investment_type: Optional[InvestmentType] = None,
    broker: Optional[str] = None,
    search: Optional[str] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    positions = InvestmentService(db, user.id).positions(
        investment_type=investment_type, broker=broker, search=search
    )
    return [position_out(p) for p in positions]


@app.get("/api/investments/positions/{asset_name}")
def get_position(
    asset_name: str,
    ticker: Optional[str] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return position_out(InvestmentService(db, user.id).position(asset_name, ticker))


@app.post("/api/investments/sell", status_code=201)
def sell_investment(
    payload: SellIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return investment_out(InvestmentService(db, user.id).sell(payload))


@app.get("/api/investments/{investment_id}")
def get_investment(
    investment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return investment_out(InvestmentService(db, user.id).get(investment_id))


@app.delete("/api/investments/{investment_id}")
def delete_investment(
    investment_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    InvestmentService(db, user.id).delete(investment_id)
    return {"ok": True}


@app.get("/api/contributions")
def list_contributions(
    investment_id: Optional[int] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    items = InvestmentContributionService(db, user.id).list_all(investment_id)
    return [contribution_out(c) for c in items]


@app.post("/api/contributions", status_code=201)
def create_contribution(
    payload: ContributionIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return contribution_out(InvestmentContributionService(db, user.id).create(payload))


@app.get("/api/contributions/statistics")
def contribution_statistics(
    investment_id: Optional[int] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return InvestmentContributionService(db, user.id).statistics(investment_id)


@app.get("/api/contributions/{contribution_id}")
def get_contribution(
    contribution_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return contribution_out(InvestmentContributionService(db, user.id).get(contribution_id))


@app.put("/api/contributions/{contribution_id}")
def update_contribution(
    contribution_id: int,
    payload: ContributionUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    contribution = InvestmentContributionService(db, user.id).update(
        contribution_id, payload
    )
    return contribution_out(contribution)


@app.delete("/api/contributions/{contribution_id}")
def delete_contribution(
    contribution_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    InvestmentContributionService(db, user.id).delete(contribution_id)
    return {"ok": True}


@app.get("/api/goals")
def list_goals(
    status: Optional[GoalStatus] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    today = local_today()
    return [goal_out(g, today) for g in InvestmentGoalService(db, user.id).list_all(status)]


@app.post("/api/goals", status_code=201)
def create_goal(
    payload: GoalIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return goal_out(InvestmentGoalService(db, user.id).create(payload), local_today())


@app.get("/api/goals/statistics")
def goal_statistics(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return InvestmentGoalService(db, user.id).statistics(local_today())


@app.get("/api/goals/{goal_id}")
def get_goal(goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    return goal_out(InvestmentGoalService(db, user.id).get(goal_id), local_today())


@app.put("/api/goals/{goal_id}")
def update_goal(
    goal_id: int,
    payload: GoalIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    goal = InvestmentGoalService(db, user.id).update(goal_id, payload)
    return goal_out(goal, local_today())


@app.delete("/api/goals/{goal_id}")
def delete_goal(goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)):
    InvestmentGoalService(db, user.id).delete(goal_id)
    return {"ok": True}


@app.put("/api/goals/{goal_id}/amount")
def update_goal_amount(
    goal_id: int,
    payload: GoalAmountIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    goal = InvestmentGoalService(db, user.id).update_amount(
        goal_id, payload.current_amount_cents
    )
    return goal_out(goal, local_today())


@app.post("/api/goals/{goal_id}/calculate")
def calculate_goal(
    goal_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    goal, operations = InvestmentGoalService(db, user.id).calculate(goal_id)
    return {**goal_out(goal, local_today()), "operations_counted": operations}


# Notifications


@app.get("/api/notifications")
def list_notifications(
    request: Request,
    unread: bool = False,
    type: Optional[NotificationType] = None,
    priority: Optional[NotificationPriority] = None,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    page, limit = paging(request)
    items = NotificationService(db, user.id).list_all(
        unread_only=unread,
        type=type,
        priority=priority,
        limit=limit + 1,
        offset=(page - 1) * limit,
    )
    return paged(items, page, limit, notification_out)


@app.post("/api/notifications", status_code=201)
def create_notification(
    payload: NotificationIn, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return notification_out(NotificationService(db, user.id).create(payload))


@app.get("/api/notifications/stats")
def notification_stats(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return NotificationService(db, user.id).stats()


@app.post("/api/notifications/read-all")
def read_all_notifications(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return {"updated": NotificationService(db, user.id).mark_all_read()}


@app.post("/api/notifications/reprocess")
def reprocess_notifications(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    created = NotificationJobService(db).generate_due_notifications(
        local_today(), user_id=user.id
    )
    db.commit()
    return {"created": created}


@app.get("/api/notifications/{notification_id}")
def get_notification(
    notification_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return notification_out(NotificationService(db, user.id).get(notification_id))


@app.post("/api/notifications/{notification_id}/read")
def read_notification(
    notification_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    return notification_out(NotificationService(db, user.id).mark_read(notification_id))


@app.delete("/api/notifications/{notification_id}")
def delete_notification(
    notification_id: int, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    NotificationService(db, user.id).delete(notification_id)
    return {"ok": True}


# Dashboard


@app.get("/api/dashboard")
def dashboard(
    request: Request, user: User = Depends(current_user), db: Session = Depends(get_db)
):
    period = period_from_request(request)
    return DashboardService(db, user.id).overview(period, local_today())


# Admin


@app.get("/api/admin/users")
def admin_list_users(
    request: Request,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    admin: AdminService = Depends(admin_service),
):
    page, limit = paging(request)
    users = admin.list_users(
        search=search,
        role=role,
        is_active=is_active,
        limit=limit + 1,
        offset=(page - 1) * limit,
    )
    return paged(users, page, limit, user_out)


@app.get("/api/admin/users/stats")
def admin_user_stats(admin: AdminService = Depends(admin_service)):
    return admin.user_stats()


@app.get("/api/admin/users/{user_id}")
def admin_get_user(user_id: int, admin: AdminService = Depends(admin_service)):
    return user_out(admin.get_user(user_id))


@app.put("/api/admin/users/{user_id}/status")
def admin_set_status(
    user_id: int, payload: UserStatusIn, admin: AdminService = Depends(admin_service)
):
    return user_out(admin.set_status(user_id, payload.is_active))


@app.put("/api/admin/users/{user_id}/role")
def admin_set_role(
    user_id: int, payload: UserRoleIn, admin: AdminService = Depends(admin_service)
):
    return user_out(admin.set_role(user_id, payload.role))


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(user_id: int, admin: AdminService = Depends(admin_service)):
    admin.delete_user(user_id)
    return {"ok": True}


@app.get("/api/admin/audit-logs")
def admin_audit_logs(
    request: Request,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    status: Optional[AuditStatus] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    admin: AdminService = Depends(admin_service),
):
    page, limit = paging(request)
    entries = admin.audit_logs(
        user_id=user_id,
        action=action,
        status=status,
        start=start,
        end=end,
        limit=limit + 1,
        offset=(page - 1) * limit,
    )
    return paged(entries, page, limit, audit_out)


@app.get("/api/admin/audit-logs/stats")
def admin_audit_stats(days: int = 30, admin: AdminService = Depends(admin_service)):
    return admin.audit_stats(days)


@app.get("/api/admin/jobs")
def admin_jobs(
    request: Request,
    job_name: Optional[str] = None,
    status: Optional[JobStatus] = None,
    admin: AdminService = Depends(admin_service),
):
    page, limit = paging(request)
    executions = admin.job_executions(
        job_name=job_name, status=status, limit=limit + 1, offset=(page - 1) * limit
    )
    return paged(executions, page, limit, job_out)


@app.post("/api/admin/jobs/{job_name}/run")
def admin_run_job(job_name: str, admin: AdminService = Depends(admin_service)):
    logger.info(f"admin_run_job: actor={admin.actor.id} job={job_name}")
    return {"job_name": job_name, "result": run_job(job_name, "admin")}


@app.get("/api/admin/integrity")
def admin_integrity(admin: AdminService = Depends(admin_service)):
    return admin.integrity_check()


def main():
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
