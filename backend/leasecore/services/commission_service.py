"""Manufacturer commission calculator.

``commission_amount`` is always ``base_amount * commission_rate / 100``
rounded to cents, and is recomputed whenever either input changes.  No
caller can write it directly.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, system_clock
from leasecore.config import settings
from leasecore.models.commission import (
    OPEN_COMMISSION_STATUSES,
    Commission,
    CommissionStatus,
    CommissionType,
)
from leasecore.models.lease import Manufacturer
from leasecore.models.payment import Payment, PaymentStatus
from leasecore.services.errors import (
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from leasecore.services.money import HUNDRED, ZERO, non_negative, percent_of, to_money, to_rate
from leasecore.services.schedule_manager import require_agreement
from leasecore.services.state_machine import COMMISSION_FLOW

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManufacturerCommissionTotals:
    manufacturer_id: int
    earned: Decimal
    pending: Decimal


def _validate_rate(rate: Any) -> Decimal:
    value = to_rate(rate)
    if value < 0 or value > HUNDRED:
        raise ValidationError(f"Commission rate must be between 0 and 100 (got {value})")
    return value


def calculate_commission(base: Any, rate: Any) -> Decimal:
    """``base * rate / 100`` rounded half-up to cents."""
    return percent_of(non_negative(base, "Base amount"), _validate_rate(rate))


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def require_manufacturer(db: AsyncSession, manufacturer_id: int) -> Manufacturer:
    result = await db.execute(select(Manufacturer).where(Manufacturer.id == manufacturer_id))
    manufacturer = result.scalar_one_or_none()
    if manufacturer is None:
        raise NotFound(f"Manufacturer {manufacturer_id} not found")
    return manufacturer


async def require_commission(
    db: AsyncSession, commission_id: int, *, for_update: bool = False
) -> Commission:
    q = (
        select(Commission)
        .where(Commission.id == commission_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    commission = result.scalar_one_or_none()
    if commission is None:
        raise NotFound(f"Commission {commission_id} not found")
    return commission


async def list_commissions(
    db: AsyncSession,
    *,
    manufacturer_id: int | None = None,
    status: CommissionStatus | None = None,
    payment_id: int | None = None,
) -> list[Commission]:
    q = select(Commission).order_by(Commission.due_date, Commission.id)
    if manufacturer_id is not None:
        q = q.where(Commission.manufacturer_id == manufacturer_id)
    if status:
        q = q.where(Commission.status == status)
    if payment_id is not None:
        q = q.where(Commission.payment_id == payment_id)
    result = await db.execute(q)
    return list(result.scalars().all())


async def list_due(
    db: AsyncSession, *, manufacturer_id: int | None = None, clock: Clock = system_clock
) -> list[Commission]:
    """Open commissions whose due date is today or earlier."""
    q = (
        select(Commission)
        .where(
            Commission.status.in_(OPEN_COMMISSION_STATUSES),
            Commission.due_date <= clock.today(),
        )
        .order_by(Commission.due_date, Commission.id)
    )
    if manufacturer_id is not None:
        q = q.where(Commission.manufacturer_id == manufacturer_id)
    result = await db.execute(q)
    return list(result.scalars().all())


async def list_overdue(
    db: AsyncSession, *, manufacturer_id: int | None = None, clock: Clock = system_clock
) -> list[Commission]:
    """Open commissions whose due date has passed."""
    q = (
        select(Commission)
        .where(
            Commission.status.in_(OPEN_COMMISSION_STATUSES),
            Commission.due_date < clock.today(),
        )
        .order_by(Commission.due_date, Commission.id)
    )
    if manufacturer_id is not None:
        q = q.where(Commission.manufacturer_id == manufacturer_id)
    result = await db.execute(q)
    return list(result.scalars().all())


async def manufacturer_totals(
    db: AsyncSession, manufacturer_id: int
) -> ManufacturerCommissionTotals:
    """Paid commissions (earned) and open commissions (pending) for a manufacturer."""
    await require_manufacturer(db, manufacturer_id)
    result = await db.execute(
        select(Commission.status, sa_func.sum(Commission.commission_amount))
        .where(Commission.manufacturer_id == manufacturer_id)
        .group_by(Commission.status)
    )
    sums = {status: to_money(total) for status, total in result.all()}
    return ManufacturerCommissionTotals(
        manufacturer_id=manufacturer_id,
        earned=sums.get(CommissionStatus.PAID, ZERO),
        pending=sum((sums.get(s, ZERO) for s in OPEN_COMMISSION_STATUSES), ZERO),
    )


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------

async def create_commission(
    db: AsyncSession,
    *,
    manufacturer_id: int,
    lease_agreement_id: int,
    base_amount: Any,
    commission_rate: Any = None,
    commission_type: CommissionType = CommissionType.LEASE_COMMISSION,
    payment_id: int | None = None,
    currency: str | None = None,
    calculation_date: date | None = None,
    due_date: date | None = None,
    notes: str | None = None,
    clock: Clock = system_clock,
) -> Commission:
    """Create a pending commission.  The rate defaults to the manufacturer's."""
    manufacturer = await require_manufacturer(db, manufacturer_id)
    agreement = await require_agreement(db, lease_agreement_id)

    base = non_negative(base_amount, "Base amount")
    rate = _validate_rate(
        manufacturer.commission_rate if commission_rate is None else commission_rate
    )
    calculated_on = calculation_date or clock.today()

    commission = Commission(
        manufacturer_id=manufacturer.id,
        lease_agreement_id=agreement.id,
        payment_id=payment_id,
        commission_type=CommissionType(commission_type),
        base_amount=base,
        commission_rate=rate,
        commission_amount=calculate_commission(base, rate),
        currency=(currency or agreement.currency or settings.default_currency).upper(),
        status=CommissionStatus.PENDING,
        calculation_date=calculated_on,
        due_date=due_date or calculated_on + timedelta(days=settings.commission_due_days),
        notes=notes,
    )
    db.add(commission)
    await db.flush()
    logger.info(
        "Commission %d for manufacturer %d: %s x %s%% = %s",
        commission.id, manufacturer.id, base, rate, commission.commission_amount,
    )
    return commission


async def update_commission(
    db: AsyncSession,
    commission_id: int,
    *,
    base_amount: Any = None,
    commission_rate: Any = None,
    due_date: date | None = None,
    notes: str | None = None,
) -> Commission:
    """Edit a pending commission and re-derive its amount."""
    commission = await require_commission(db, commission_id, for_update=True)
    if commission.status != CommissionStatus.PENDING:
        raise InvalidStateTransition(
            f"Commission {commission.id} is {commission.status.value}; "
            f"only pending commissions can be edited"
        )

    if base_amount is not None:
        commission.base_amount = non_negative(base_amount, "Base amount")
    if commission_rate is not None:
        commission.commission_rate = _validate_rate(commission_rate)
    if due_date is not None:
        commission.due_date = due_date
    if notes is not None:
        commission.notes = notes
    commission.commission_amount = calculate_commission(
        commission.base_amount, commission.commission_rate
    )
    await db.flush()
    logger.info("Commission %d updated: amount %s", commission.id, commission.commission_amount)
    return commission


async def derive_commission_from_payment(
    db: AsyncSession,
    payment: Payment,
    *,
    rate: Any = None,
    clock: Clock = system_clock,
) -> Commission:
    """Commission owed to the agreement's manufacturer on a completed payment."""
    if payment.status != PaymentStatus.COMPLETED:
        raise InvalidStateTransition(
            f"Payment {payment.payment_reference} is {payment.status.value}; "
            f"commissions derive only from completed payments"
        )

    existing = await list_commissions(db, payment_id=payment.id)
    if any(c.status != CommissionStatus.CANCELLED for c in existing):
        raise ValidationError(
            f"Payment {payment.payment_reference} already has a commission"
        )

    agreement = await require_agreement(db, payment.lease_agreement_id)
    return await create_commission(
        db,
        manufacturer_id=agreement.manufacturer_id,
        lease_agreement_id=agreement.id,
        base_amount=payment.amount,
        commission_rate=rate,
        payment_id=payment.id,
        currency=payment.currency,
        calculation_date=clock.today(),
        due_date=payment.payment_date + timedelta(days=settings.commission_due_days),
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Status workflow
# ---------------------------------------------------------------------------

async def _transition(
    db: AsyncSession, commission_id: int, target: CommissionStatus
) -> Commission:
    commission = await require_commission(db, commission_id, for_update=True)
    COMMISSION_FLOW.assert_transition(commission.status, target, subject=str(commission.id))
    commission.status = target
    return commission


async def approve(db: AsyncSession, commission_id: int) -> Commission:
    commission = await _transition(db, commission_id, CommissionStatus.APPROVED)
    await db.flush()
    logger.info("Commission %d approved", commission.id)
    return commission


async def mark_paid(
    db: AsyncSession,
    commission_id: int,
    *,
    payment_reference: str | None = None,
    paid_on: date | None = None,
    clock: Clock = system_clock,
) -> Commission:
    commission = await _transition(db, commission_id, CommissionStatus.PAID)
    commission.paid_date = paid_on or clock.today()
    if payment_reference:
        commission.payment_reference = payment_reference
    await db.flush()
    logger.info("Commission %d paid (%s)", commission.id, commission.commission_amount)
    return commission


async def cancel(
    db: AsyncSession, commission_id: int, *, reason: str | None = None
) -> Commission:
    commission = await _transition(db, commission_id, CommissionStatus.CANCELLED)
    if reason:
        commission.notes = f"{commission.notes}\n{reason}" if commission.notes else reason
    await db.flush()
    logger.info("Commission %d cancelled", commission.id)
    return commission


async def cancel_for_payment(
    db: AsyncSession, payment_id: int, *, reason: str | None = None
) -> list[Commission]:
    """Cancel every open commission derived from a payment."""
    cancelled = []
    for commission in await list_commissions(db, payment_id=payment_id):
        if commission.status in OPEN_COMMISSION_STATUSES:
            cancelled.append(await cancel(db, commission.id, reason=reason))
    return cancelled
