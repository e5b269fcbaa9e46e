"""Manufacturer commission model."""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, Enum, DateTime, Date, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from leasecore.database import Base
from leasecore.models.common import enum_values, utcnow


class CommissionType(str, enum.Enum):
    LEASE_COMMISSION = "lease_commission"
    MAINTENANCE_COMMISSION = "maintenance_commission"
    BONUS = "bonus"


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# Statuses that still represent money owed to the manufacturer
OPEN_COMMISSION_STATUSES = (CommissionStatus.PENDING, CommissionStatus.APPROVED)


class Commission(Base):
    __tablename__ = "commissions"
    __table_args__ = (
        Index("ix_commissions_status", "status"),
        Index("ix_commissions_due_date", "due_date"),
        Index("ix_commissions_type", "commission_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    manufacturer_id: Mapped[int] = mapped_column(
        ForeignKey("manufacturers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    lease_agreement_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_id: Mapped[int | None] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True
    )
    commission_type: Mapped[CommissionType] = mapped_column(
        Enum(CommissionType, name="commission_type", values_callable=enum_values),
        default=CommissionType.LEASE_COMMISSION,
        nullable=False,
    )
    base_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[CommissionStatus] = mapped_column(
        Enum(CommissionStatus, name="commission_status", values_callable=enum_values),
        default=CommissionStatus.PENDING,
        nullable=False,
    )
    calculation_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
