"""Payment and PaymentSchedule models."""

import enum
from datetime import datetime, date
from decimal import Decimal

from sqlalchemy import (
    String, Numeric, Integer, Enum, DateTime, Date, ForeignKey, Text, Index,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leasecore.database import Base
from leasecore.models.common import enum_values, utcnow


class PaymentType(str, enum.Enum):
    DOWN_PAYMENT = "down_payment"
    INSTALLMENT = "installment"
    LATE_FEE = "late_fee"
    SECURITY_DEPOSIT = "security_deposit"
    EARLY_TERMINATION = "early_termination"
    OTHER = "other"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CHEQUE = "cheque"
    CARD = "card"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class ScheduleStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    WAIVED = "waived"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_status", "status"),
        Index("ix_payments_payment_date", "payment_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    payment_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    lease_agreement_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_schedule_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_schedules.id", ondelete="SET NULL"), nullable=True
    )
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    payment_type: Mapped[PaymentType] = mapped_column(
        Enum(PaymentType, name="payment_type", values_callable=enum_values), nullable=False
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method", values_callable=enum_values), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    processing_fee: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    transaction_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def recompute_net_amount(self) -> None:
        self.net_amount = self.amount - (self.processing_fee or Decimal("0.00"))


class PaymentSchedule(Base):
    """One installment of a lease agreement's payment plan."""

    __tablename__ = "payment_schedules"
    __table_args__ = (
        UniqueConstraint(
            "lease_agreement_id", "installment_number", name="uq_schedule_installment"
        ),
        CheckConstraint("paid_amount <= total_amount + late_fee", name="ck_schedule_not_overpaid"),
        Index("ix_schedules_due_date", "due_date"),
        Index("ix_schedules_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    lease_agreement_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(ScheduleStatus, name="schedule_status", values_callable=enum_values),
        default=ScheduleStatus.PENDING,
        nullable=False,
    )
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    late_fee: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0.00"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    lease_agreement = relationship("LeaseAgreement", lazy="joined")

    @property
    def remaining_amount(self) -> Decimal:
        return max(Decimal("0.00"), self.total_amount - self.paid_amount)

    @property
    def amount_with_late_fee(self) -> Decimal:
        return self.total_amount + self.late_fee
