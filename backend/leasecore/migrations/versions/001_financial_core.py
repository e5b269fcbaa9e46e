"""Financial core: chart of accounts, journal, schedules, payments, commissions.

Revision ID: 001
Revises:
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(15, 2)
RATE = sa.Numeric(5, 2)


def upgrade() -> None:
    # -- Enums -----------------------------------------------------------------
    account_type = postgresql.ENUM(
        "asset", "liability", "equity", "income", "expense",
        name="account_type", create_type=False,
    )
    je_status = postgresql.ENUM(
        "draft", "posted", "reversed", name="journal_entry_status", create_type=False,
    )
    reference_kind = postgresql.ENUM(
        "payment", "payment_schedule", "commission", "lease_agreement", "manual",
        name="reference_kind", create_type=False,
    )
    lease_status = postgresql.ENUM(
        "draft", "active", "completed", "terminated", "breached",
        name="lease_status", create_type=False,
    )
    payment_type = postgresql.ENUM(
        "down_payment", "installment", "late_fee", "security_deposit",
        "early_termination", "other",
        name="payment_type", create_type=False,
    )
    payment_method = postgresql.ENUM(
        "cash", "bank_transfer", "mobile_money", "cheque", "card",
        name="payment_method", create_type=False,
    )
    payment_status = postgresql.ENUM(
        "pending", "processing", "completed", "failed", "cancelled", "refunded",
        name="payment_status", create_type=False,
    )
    schedule_status = postgresql.ENUM(
        "pending", "paid", "partial", "overdue", "waived",
        name="schedule_status", create_type=False,
    )
    commission_type = postgresql.ENUM(
        "lease_commission", "maintenance_commission", "bonus",
        name="commission_type", create_type=False,
    )
    commission_status = postgresql.ENUM(
        "pending", "approved", "paid", "cancelled",
        name="commission_status", create_type=False,
    )

    for e in [account_type, je_status, reference_kind, lease_status, payment_type,
              payment_method, payment_status, schedule_status, commission_type,
              commission_status]:
        e.create(op.get_bind(), checkfirst=True)

    # -- Leases ----------------------------------------------------------------

    op.create_table(
        "manufacturers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("commission_rate", RATE, nullable=False, server_default="0.00"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "lease_agreements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("agreement_number", sa.String(50), unique=True, nullable=False),
        sa.Column("client_id", sa.Integer, nullable=False, index=True),
        sa.Column("manufacturer_id", sa.Integer, sa.ForeignKey("manufacturers.id"), nullable=False, index=True),
        sa.Column("lease_start_date", sa.Date, nullable=False),
        sa.Column("lease_end_date", sa.Date, nullable=False),
        sa.Column("lease_duration_months", sa.Integer, nullable=False),
        sa.Column("monthly_payment", MONEY, nullable=False),
        sa.Column("total_lease_amount", MONEY, nullable=False),
        sa.Column("late_fee_percentage", RATE, nullable=False, server_default="5.00"),
        sa.Column("grace_period_days", sa.Integer, nullable=False, server_default="5"),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", lease_status, nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # -- General ledger --------------------------------------------------------

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("account_code", sa.String(20), unique=True, nullable=False),
        sa.Column("account_name", sa.String(255), nullable=False),
        sa.Column("account_type", account_type, nullable=False),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("balance", MONEY, nullable=False, server_default="0.00"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_accounts_not_self_parent"),
    )
    op.create_index("ix_accounts_type", "accounts", ["account_type"])
    op.create_index("ix_accounts_parent", "accounts", ["parent_id"])
    op.create_index("ix_accounts_active", "accounts", ["is_active"])

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("entry_number", sa.String(50), unique=True, nullable=False),
        sa.Column("transaction_date", sa.Date, nullable=False),
        sa.Column("reference_kind", reference_kind, nullable=True),
        sa.Column("reference_id", sa.Integer, nullable=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("total_debit", MONEY, nullable=False, server_default="0.00"),
        sa.Column("total_credit", MONEY, nullable=False, server_default="0.00"),
        sa.Column("status", je_status, nullable=False, server_default="draft"),
        sa.Column("created_by", sa.Integer, nullable=True),
        sa.Column("posted_by", sa.Integer, nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversal_of_id", sa.Integer, sa.ForeignKey("journal_entries.id"), nullable=True),
        sa.Column("reversed_by_id", sa.Integer, sa.ForeignKey("journal_entries.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(reference_kind IS NULL AND reference_id IS NULL) OR "
            "(reference_kind IS NOT NULL AND reference_id IS NOT NULL)",
            name="ck_je_reference_pair",
        ),
    )
    op.create_index("ix_je_transaction_date", "journal_entries", ["transaction_date"])
    op.create_index("ix_je_reference", "journal_entries", ["reference_kind", "reference_id"])
    op.create_index("ix_je_status", "journal_entries", ["status"])

    op.create_table(
        "journal_entry_lines",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("journal_entry_id", sa.Integer, sa.ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("line_number", sa.Integer, nullable=False),
        sa.Column("account_id", sa.Integer, sa.ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("debit_amount", MONEY, nullable=False, server_default="0.00"),
        sa.Column("credit_amount", MONEY, nullable=False, server_default="0.00"),
        sa.CheckConstraint(
            "(debit_amount = 0 AND credit_amount > 0) OR "
            "(debit_amount > 0 AND credit_amount = 0)",
            name="ck_jel_debit_xor_credit",
        ),
        sa.UniqueConstraint("journal_entry_id", "line_number", name="uq_jel_line_number"),
    )
    op.create_index("ix_jel_account", "journal_entry_lines", ["account_id"])
    op.create_index("ix_jel_entry", "journal_entry_lines", ["journal_entry_id"])

    # -- Payments --------------------------------------------------------------

    op.create_table(
        "payment_schedules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("lease_agreement_id", sa.Integer, sa.ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("installment_number", sa.Integer, nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("principal_amount", MONEY, nullable=False),
        sa.Column("interest_amount", MONEY, nullable=False, server_default="0.00"),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("status", schedule_status, nullable=False, server_default="pending"),
        sa.Column("paid_amount", MONEY, nullable=False, server_default="0.00"),
        sa.Column("paid_date", sa.Date, nullable=True),
        sa.Column("late_fee", MONEY, nullable=False, server_default="0.00"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("lease_agreement_id", "installment_number", name="uq_schedule_installment"),
        sa.CheckConstraint("paid_amount <= total_amount + late_fee", name="ck_schedule_not_overpaid"),
    )
    op.create_index("ix_schedules_due_date", "payment_schedules", ["due_date"])
    op.create_index("ix_schedules_status", "payment_schedules", ["status"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("payment_reference", sa.String(100), unique=True, nullable=False),
        sa.Column("lease_agreement_id", sa.Integer, sa.ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("payment_schedule_id", sa.Integer, sa.ForeignKey("payment_schedules.id", ondelete="SET NULL"), nullable=True),
        sa.Column("client_id", sa.Integer, nullable=False, index=True),
        sa.Column("payment_type", payment_type, nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("processing_fee", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("net_amount", MONEY, nullable=False),
        sa.Column("payment_date", sa.Date, nullable=False),
        sa.Column("status", payment_status, nullable=False, server_default="pending"),
        sa.Column("transaction_reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("processed_by", sa.Integer, nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_payment_date", "payments", ["payment_date"])

    # -- Commissions -----------------------------------------------------------

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("manufacturer_id", sa.Integer, sa.ForeignKey("manufacturers.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("lease_agreement_id", sa.Integer, sa.ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("payment_id", sa.Integer, sa.ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("commission_type", commission_type, nullable=False, server_default="lease_commission"),
        sa.Column("base_amount", MONEY, nullable=False),
        sa.Column("commission_rate", RATE, nullable=False),
        sa.Column("commission_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", commission_status, nullable=False, server_default="pending"),
        sa.Column("calculation_date", sa.Date, nullable=False),
        sa.Column("due_date", sa.Date, nullable=False),
        sa.Column("paid_date", sa.Date, nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_commissions_status", "commissions", ["status"])
    op.create_index("ix_commissions_due_date", "commissions", ["due_date"])
    op.create_index("ix_commissions_type", "commissions", ["commission_type"])


def downgrade() -> None:
    tables = [
        "commissions", "payments", "payment_schedules",
        "journal_entry_lines", "journal_entries", "accounts",
        "lease_agreements", "manufacturers",
    ]
    for t in tables:
        op.drop_table(t)

    enums = [
        "commission_status", "commission_type", "schedule_status", "payment_status",
        "payment_method", "payment_type", "lease_status", "reference_kind",
        "journal_entry_status", "account_type",
    ]
    for e in enums:
        op.execute(f"DROP TYPE IF EXISTS {e}")
