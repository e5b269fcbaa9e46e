"""General ledger models.

Double-entry bookkeeping for the leasing platform:
- Hierarchical Chart of Accounts with a running balance per account
- Journal entries composed of debit/credit lines
- Draft → Posted → Reversed lifecycle; posted entries are never edited,
  corrections are made with reversing entries

Balances are only ever changed by the ledger poster
(``leasecore.services.ledger.poster``).
"""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Numeric,
    Integer,
    Boolean,
    Enum,
    DateTime,
    Date,
    ForeignKey,
    Text,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasecore.database import Base
from leasecore.models.common import enum_values, utcnow


# ===================================================================
# Enumerations
# ===================================================================


class AccountType(str, enum.Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def is_debit_normal(self) -> bool:
        """Debits increase asset and expense accounts."""
        return self in (AccountType.ASSET, AccountType.EXPENSE)


class JournalEntryStatus(str, enum.Enum):
    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class ReferenceKind(str, enum.Enum):
    """Kinds of external records a journal entry may originate from."""

    PAYMENT = "payment"
    PAYMENT_SCHEDULE = "payment_schedule"
    COMMISSION = "commission"
    LEASE_AGREEMENT = "lease_agreement"
    MANUAL = "manual"


# ===================================================================
# Chart of Accounts
# ===================================================================


class Account(Base):
    """Ledger account.  ``parent_id`` forms a forest; there is no child ownership."""

    __tablename__ = "accounts"
    __table_args__ = (
        Index("ix_accounts_type", "account_type"),
        Index("ix_accounts_parent", "parent_id"),
        Index("ix_accounts_active", "is_active"),
        CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_accounts_not_self_parent"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, name="account_type", values_callable=enum_values), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=True
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Optimistic lock; bumped on every balance update
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


# ===================================================================
# Journal entries
# ===================================================================


class JournalEntry(Base):
    """Double-entry journal entry header."""

    __tablename__ = "journal_entries"
    __table_args__ = (
        Index("ix_je_transaction_date", "transaction_date"),
        Index("ix_je_reference", "reference_kind", "reference_id"),
        Index("ix_je_status", "status"),
        CheckConstraint(
            "(reference_kind IS NULL AND reference_id IS NULL) OR "
            "(reference_kind IS NOT NULL AND reference_id IS NOT NULL)",
            name="ck_je_reference_pair",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    entry_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    reference_kind: Mapped[ReferenceKind | None] = mapped_column(
        Enum(ReferenceKind, name="reference_kind", values_callable=enum_values), nullable=True
    )
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    status: Mapped[JournalEntryStatus] = mapped_column(
        Enum(JournalEntryStatus, name="journal_entry_status", values_callable=enum_values),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    # Actor identities are opaque to the ledger
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    posted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Reversal linkage
    reversal_of_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )
    reversed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    lines = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="JournalEntryLine.line_number",
    )

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def difference(self) -> Decimal:
        return (self.total_debit or Decimal("0")) - (self.total_credit or Decimal("0"))


class JournalEntryLine(Base):
    """Individual debit or credit line within a journal entry."""

    __tablename__ = "journal_entry_lines"
    __table_args__ = (
        CheckConstraint(
            "(debit_amount = 0 AND credit_amount > 0) OR "
            "(debit_amount > 0 AND credit_amount = 0)",
            name="ck_jel_debit_xor_credit",
        ),
        UniqueConstraint("journal_entry_id", "line_number", name="uq_jel_line_number"),
        Index("ix_jel_account", "account_id"),
        Index("ix_jel_entry", "journal_entry_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    journal_entry_id: Mapped[int] = mapped_column(
        ForeignKey("journal_entries.id", ondelete="CASCADE"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )

    # Relationships
    journal_entry = relationship("JournalEntry", back_populates="lines")

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > 0

    @property
    def amount(self) -> Decimal:
        return self.debit_amount if self.debit_amount > 0 else self.credit_amount
