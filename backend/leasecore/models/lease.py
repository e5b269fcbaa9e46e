"""Lease agreement and manufacturer models.

Only the columns the financial core reads are mapped here; signatures,
insurance and maintenance terms live with the agreement workflow.
"""

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, Integer, Boolean, Enum, DateTime, Date, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasecore.database import Base
from leasecore.models.common import enum_values, utcnow


class LeaseStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    BREACHED = "breached"


class Manufacturer(Base):
    __tablename__ = "manufacturers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("0.00"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class LeaseAgreement(Base):
    __tablename__ = "lease_agreements"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    agreement_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    manufacturer_id: Mapped[int] = mapped_column(
        ForeignKey("manufacturers.id"), nullable=False, index=True
    )
    lease_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    lease_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    lease_duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_payment: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    total_lease_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    late_fee_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), default=Decimal("5.00"), nullable=False
    )
    grace_period_days: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[LeaseStatus] = mapped_column(
        Enum(LeaseStatus, name="lease_status", values_callable=enum_values),
        default=LeaseStatus.DRAFT,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    manufacturer = relationship("Manufacturer", lazy="joined")
