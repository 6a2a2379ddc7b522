"""initial finance schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _enum(name, *values):
    return sa.Enum(*values, name=name)


TRANSACTION_TYPE = ("income", "expense")
PAYMENT_METHOD = ("cash", "credit_card", "debit_card", "pix", "bank_transfer")
DOCUMENT_TYPE = ("CPF", "CNPJ")


def _counterparty_columns():
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("document_type", _enum("documenttype", *DOCUMENT_TYPE)),
        sa.Column("document_number", sa.String(length=14)),
        sa.Column("email", sa.String(length=255)),
        sa.Column("phone", sa.String(length=30)),
        sa.Column("address", sa.Text()),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("userrole", "admin", "user"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime()),
        sa.Column(
            "failed_login_attempts", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("locked_until", sa.DateTime()),
        sa.Column(
            "timezone",
            sa.String(length=64),
            nullable=False,
            server_default="America/Sao_Paulo",
        ),
        sa.Column("language", sa.String(length=10), nullable=False, server_default="pt-BR"),
        *_timestamps(),
    )

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("session_key", sa.String(length=64), nullable=False, unique=True),
        sa.Column("user_agent", sa.String(length=255)),
        sa.Column("ip_address", sa.String(length=45)),
        sa.Column("device_type", sa.String(length=20)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_activity_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_user_sessions_user_active", "user_sessions", ["user_id", "is_active"]
    )

    op.create_table(
        "user_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "category",
            _enum(
                "settingcategory",
                "notifications",
                "appearance",
                "privacy",
                "security",
                "preferences",
                "dashboard",
                "reports",
            ),
            nullable=False,
        ),
        sa.Column("settings_json", sa.Text(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "category", name="uq_user_setting_category"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", _enum("transactiontype", *TRANSACTION_TYPE), nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False, server_default="#3B82F6"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column(
            "account_type",
            _enum("accounttype", "checking", "savings", "investment"),
            nullable=False,
        ),
        sa.Column(
            "opening_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("description", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "customers",
        *_counterparty_columns(),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "document_number", name="uq_customer_document"),
    )
    op.create_table(
        "suppliers",
        *_counterparty_columns(),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "document_number", name="uq_supplier_document"),
    )
    op.create_table(
        "creditors",
        *_counterparty_columns(),
        sa.Column("contact_person", sa.String(length=150)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "document_number", name="uq_creditor_document"),
    )

    op.create_table(
        "fixed_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("type", _enum("transactiontype", *TRANSACTION_TYPE), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "periodicity",
            _enum("periodicity", "daily", "weekly", "monthly", "quarterly", "yearly"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_due_date", sa.Date(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id")),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("payment_method", _enum("paymentmethod", *PAYMENT_METHOD)),
        sa.Column("reminder_days", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_fixed_account_amount_positive"),
        sa.CheckConstraint("reminder_days >= 0", name="ck_fixed_account_reminder"),
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "investment_type",
            _enum(
                "investmenttype",
                "stocks",
                "fixed_income",
                "funds",
                "crypto",
                "real_estate",
                "other",
            ),
            nullable=False,
        ),
        sa.Column("asset_name", sa.String(length=150), nullable=False),
        sa.Column("ticker", sa.String(length=20)),
        sa.Column("operation_type", _enum("operationtype", "buy", "sell"), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 8), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("operation_date", sa.Date(), nullable=False),
        sa.Column("broker", sa.String(length=100)),
        sa.Column("source_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("destination_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_investments_amount_positive"),
        sa.CheckConstraint("quantity > 0", name="ck_investments_quantity_positive"),
    )
    op.create_index(
        "ix_investments_user_asset", "investments", ["user_id", "asset_name", "ticker"]
    )

    op.create_table(
        "investment_contributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "investment_id", sa.Integer(), sa.ForeignKey("investments.id"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Numeric(18, 8)),
        sa.Column("unit_price_cents", sa.Integer()),
        sa.Column("contribution_date", sa.Date(), nullable=False),
        sa.Column(
            "source_account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("destination_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("broker", sa.String(length=100)),
        sa.Column("notes", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_contribution_amount_positive"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("type", _enum("transactiontype", *TRANSACTION_TYPE), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255)),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod", *PAYMENT_METHOD)),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id")),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id")),
        sa.Column(
            "source",
            _enum(
                "transactionsource",
                "manual",
                "receivable_payment",
                "payable_payment",
                "financing_payment",
                "fixed_account",
                "investment",
                "investment_contribution",
            ),
            nullable=False,
            server_default="manual",
        ),
        sa.Column("fixed_account_id", sa.Integer(), sa.ForeignKey("fixed_accounts.id")),
        sa.Column("investment_id", sa.Integer(), sa.ForeignKey("investments.id")),
        sa.Column(
            "investment_contribution_id",
            sa.Integer(),
            sa.ForeignKey("investment_contributions.id"),
        ),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category_id", "date"],
    )

    for table, party_column, party_table in (
        ("receivables", "customer_id", "customers"),
        ("payables", "supplier_id", "suppliers"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column(party_column, sa.Integer(), sa.ForeignKey(f"{party_table}.id")),
            sa.Column(
                "category_id",
                sa.Integer(),
                sa.ForeignKey("categories.id"),
                nullable=False,
            ),
            sa.Column("description", sa.String(length=255), nullable=False),
            sa.Column("amount_cents", sa.Integer(), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=False),
            sa.Column("invoice_number", sa.String(length=50)),
            sa.Column("payment_terms", sa.String(length=100)),
            sa.Column("notes", sa.Text()),
            *_timestamps(),
            sa.CheckConstraint("amount_cents > 0", name=f"ck_{table}_amount_positive"),
        )
        op.create_index(f"ix_{table}_user_due", table, ["user_id", "due_date"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("receivable_id", sa.Integer(), sa.ForeignKey("receivables.id")),
        sa.Column("payable_id", sa.Integer(), sa.ForeignKey("payables.id")),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column(
            "payment_method", _enum("paymentmethod", *PAYMENT_METHOD), nullable=False
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint(
            "(receivable_id IS NOT NULL AND payable_id IS NULL)"
            " OR (receivable_id IS NULL AND payable_id IS NOT NULL)",
            name="ck_payments_single_target",
        ),
    )

    op.create_table(
        "financings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("creditor_id", sa.Integer(), sa.ForeignKey("creditors.id")),
        sa.Column(
            "financing_type",
            _enum(
                "financingtype",
                "mortgage",
                "personal_loan",
                "vehicle_financing",
                "other",
            ),
            nullable=False,
        ),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("contract_number", sa.String(length=50)),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("interest_rate", sa.Numeric(9, 6), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column(
            "amortization_method",
            _enum("amortizationmethod", "SAC", "PRICE"),
            nullable=False,
        ),
        sa.Column("payment_method", _enum("paymentmethod", *PAYMENT_METHOD)),
        sa.Column("notes", sa.Text()),
        sa.Column("cancelled_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("total_amount_cents > 0", name="ck_financing_amount_positive"),
        sa.CheckConstraint("term_months > 0", name="ck_financing_term_positive"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_financing_rate_non_negative"),
    )

    op.create_table(
        "financing_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "financing_id", sa.Integer(), sa.ForeignKey("financings.id"), nullable=False
        ),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")),
        sa.Column("installment_number", sa.Integer()),
        sa.Column(
            "payment_type",
            _enum("financingpaymenttype", "installment", "early"),
            nullable=False,
        ),
        sa.Column("early_preference", sa.String(length=20)),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("principal_cents", sa.Integer(), nullable=False),
        sa.Column("interest_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column(
            "payment_method", _enum("paymentmethod", *PAYMENT_METHOD), nullable=False
        ),
        sa.Column("notes", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_financing_payment_positive"),
    )
    op.create_index(
        "ix_financing_payments_financing",
        "financing_payments",
        ["financing_id", "installment_number"],
    )

    op.create_table(
        "fixed_account_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "fixed_account_id",
            sa.Integer(),
            sa.ForeignKey("fixed_accounts.id"),
            nullable=False,
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            _enum("occurrencestatus", "pending", "paid", "cancelled"),
            nullable=False,
        ),
        sa.Column("paid_at", sa.Date()),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")),
        sa.Column("payment_method", _enum("paymentmethod", *PAYMENT_METHOD)),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint(
            "fixed_account_id", "due_date", name="uq_fixed_account_occurrence"
        ),
    )
    op.create_index(
        "ix_fixed_account_txn_user_due",
        "fixed_account_transactions",
        ["user_id", "due_date"],
    )

    op.create_table(
        "investment_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("color", sa.String(length=7), nullable=False, server_default="#3B82F6"),
        sa.Column(
            "status",
            _enum("goalstatus", "active", "completed", "cancelled"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
        sa.CheckConstraint(
            "current_amount_cents >= 0", name="ck_goal_current_positive"
        ),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "type",
            _enum(
                "notificationtype",
                "payment_due",
                "payment_overdue",
                "payment_reminder",
                "general_reminder",
                "system",
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "priority",
            _enum("notificationpriority", "low", "medium", "high", "urgent"),
            nullable=False,
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("related_type", sa.String(length=40)),
        sa.Column("related_id", sa.Integer()),
        sa.Column("due_date", sa.Date()),
        *_timestamps(),
    )
    op.create_index(
        "ix_notifications_user_read", "notifications", ["user_id", "is_read"]
    )
    op.create_index(
        "ix_notifications_related",
        "notifications",
        ["user_id", "type", "related_type", "related_id"],
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer()),
        sa.Column("action", sa.String(length=60), nullable=False),
        sa.Column("resource", sa.String(length=60), nullable=False),
        sa.Column("resource_id", sa.Integer()),
        sa.Column("details_json", sa.Text()),
        sa.Column("ip_address", sa.String(length=45)),
        sa.Column("user_agent", sa.String(length=255)),
        sa.Column(
            "status", _enum("auditstatus", "success", "failure"), nullable=False
        ),
        sa.Column("error_message", sa.Text()),
        *_timestamps(),
    )
    op.create_index(
        "ix_audit_logs_user_created", "audit_logs", ["user_id", "created_at"]
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "job_executions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=60), nullable=False),
        sa.Column(
            "status", _enum("jobstatus", "running", "success", "failed"), nullable=False
        ),
        sa.Column("source", sa.String(length=40)),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime()),
        sa.Column("duration_ms", sa.Integer()),
        sa.Column("error_message", sa.Text()),
        sa.Column("result_json", sa.Text()),
        *_timestamps(),
    )
    op.create_index(
        "ix_job_executions_name_started", "job_executions", ["job_name", "started_at"]
    )


def downgrade():
    for index, table in (
        ("ix_job_executions_name_started", "job_executions"),
        ("ix_audit_logs_action", "audit_logs"),
        ("ix_audit_logs_user_created", "audit_logs"),
        ("ix_notifications_related", "notifications"),
        ("ix_notifications_user_read", "notifications"),
        ("ix_fixed_account_txn_user_due", "fixed_account_transactions"),
        ("ix_financing_payments_financing", "financing_payments"),
        ("ix_payables_user_due", "payables"),
        ("ix_receivables_user_due", "receivables"),
        ("ix_transactions_user_category_date", "transactions"),
        ("ix_transactions_account_date", "transactions"),
        ("ix_transactions_user_date", "transactions"),
        ("ix_investments_user_asset", "investments"),
        ("ix_user_sessions_user_active", "user_sessions"),
    ):
        op.drop_index(index, table_name=table)
    for table in (
        "job_executions",
        "audit_logs",
        "notifications",
        "investment_goals",
        "fixed_account_transactions",
        "financing_payments",
        "financings",
        "payments",
        "payables",
        "receivables",
        "transactions",
        "investment_contributions",
        "investments",
        "fixed_accounts",
        "creditors",
        "suppliers",
        "customers",
        "accounts",
        "categories",
        "user_settings",
        "user_sessions",
        "users",
    ):
        op.drop_table(table)
