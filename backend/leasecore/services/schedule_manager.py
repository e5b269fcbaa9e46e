"""Payment schedule manager.

Drives the installment lifecycle of a lease agreement:

- PENDING moves to PARTIAL, PAID or OVERDUE; PARTIAL and OVERDUE move to
  PARTIAL or PAID; anything not yet waived may be WAIVED
- Payments only ever increase ``paid_amount``; a paid installment is never
  reopened
- Overdue flagging and late-fee assessment are driven by an injected clock
  so batch jobs and tests can run "as of" any date
- Every mutation locks the installment row first
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func as sa_func
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, system_clock
from leasecore.models.lease import LeaseAgreement
from leasecore.models.payment import PaymentSchedule, ScheduleStatus
from leasecore.services.errors import InvalidStateTransition, NotFound, ValidationError
from leasecore.services.money import ZERO, non_negative, percent_of, positive, to_money
from leasecore.services.state_machine import SCHEDULE_FLOW

logger = logging.getLogger(__name__)

# Installments that can no longer take money
SETTLED_STATUSES = (ScheduleStatus.PAID, ScheduleStatus.WAIVED)


def add_months(start: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    return start + relativedelta(months=months)


def days_overdue(schedule: PaymentSchedule, today: date) -> int:
    return max(0, (today - schedule.due_date).days)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def require_agreement(db: AsyncSession, agreement_id: int) -> LeaseAgreement:
    result = await db.execute(select(LeaseAgreement).where(LeaseAgreement.id == agreement_id))
    agreement = result.unique().scalar_one_or_none()
    if agreement is None:
        raise NotFound(f"Lease agreement {agreement_id} not found")
    return agreement


async def get_installment(
    db: AsyncSession, schedule_id: int, *, for_update: bool = False
) -> PaymentSchedule | None:
    q = (
        select(PaymentSchedule)
        .where(PaymentSchedule.id == schedule_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        # Only the installment row; the eager-loaded agreement join cannot be locked
        q = q.with_for_update(of=PaymentSchedule)
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def require_installment(
    db: AsyncSession, schedule_id: int, *, for_update: bool = False
) -> PaymentSchedule:
    schedule = await get_installment(db, schedule_id, for_update=for_update)
    if schedule is None:
        raise NotFound(f"Payment schedule {schedule_id} not found")
    return schedule


async def list_schedule(db: AsyncSession, agreement_id: int) -> list[PaymentSchedule]:
    await require_agreement(db, agreement_id)
    result = await db.execute(
        select(PaymentSchedule)
        .where(PaymentSchedule.lease_agreement_id == agreement_id)
        .order_by(PaymentSchedule.installment_number)
    )
    return list(result.unique().scalars().all())


# ---------------------------------------------------------------------------
# Schedule generation
# ---------------------------------------------------------------------------

async def generate_schedule(db: AsyncSession, agreement_id: int) -> list[PaymentSchedule]:
    """Create one installment per lease month, due monthly after the start date."""
    agreement = await require_agreement(db, agreement_id)
    if agreement.lease_duration_months < 1:
        raise ValidationError("Lease duration must be at least one month")
    monthly = positive(agreement.monthly_payment, "Monthly payment")

    existing = await db.execute(
        select(sa_func.count(PaymentSchedule.id)).where(
            PaymentSchedule.lease_agreement_id == agreement_id
        )
    )
    if existing.scalar_one():
        raise ValidationError(
            f"Agreement {agreement.agreement_number} already has a payment schedule"
        )

    installments = [
        PaymentSchedule(
            lease_agreement_id=agreement.id,
            installment_number=n,
            due_date=add_months(agreement.lease_start_date, n),
            principal_amount=monthly,
            interest_amount=ZERO,
            total_amount=monthly,
            status=ScheduleStatus.PENDING,
            paid_amount=ZERO,
            late_fee=ZERO,
        )
        for n in range(1, agreement.lease_duration_months + 1)
    ]
    db.add_all(installments)
    await db.flush()
    logger.info(
        "Generated %d installments of %s for agreement %s",
        len(installments), monthly, agreement.agreement_number,
    )
    return installments


# ---------------------------------------------------------------------------
# Installment transitions
# ---------------------------------------------------------------------------

async def record_payment(
    db: AsyncSession,
    schedule_id: int,
    amount: Any,
    *,
    paid_on: date | None = None,
    clock: Clock = system_clock,
) -> PaymentSchedule:
    """Apply a received amount to an installment.

    Pending, partial and overdue installments take payments.  Paid and waived
    installments reject them, as does any amount that would take
    ``paid_amount`` above ``total_amount + late_fee``.  Reaching
    ``total_amount`` marks the installment paid, so a late fee is collected
    only by a payment that carries it.
    """
    value = positive(amount, "Payment amount")
    schedule = await require_installment(db, schedule_id, for_update=True)

    if schedule.status in SETTLED_STATUSES:
        raise InvalidStateTransition(
            f"Installment {schedule.installment_number} is {schedule.status.value} "
            f"and cannot take further payments"
        )

    new_paid = to_money(schedule.paid_amount) + value
    ceiling = to_money(schedule.total_amount) + to_money(schedule.late_fee)
    if new_paid > ceiling:
        raise ValidationError(
            f"Payment of {value} exceeds the outstanding amount "
            f"{ceiling - to_money(schedule.paid_amount)} on installment "
            f"{schedule.installment_number}"
        )

    target = ScheduleStatus.PAID if new_paid >= schedule.total_amount else ScheduleStatus.PARTIAL
    SCHEDULE_FLOW.assert_transition(
        schedule.status, target, subject=f"#{schedule.installment_number}"
    )

    previous = schedule.status
    schedule.paid_amount = new_paid
    schedule.paid_date = paid_on or clock.today()
    schedule.status = target
    await db.flush()
    logger.info(
        "Installment %d (agreement %d): %s -> %s, paid %s/%s",
        schedule.installment_number, schedule.lease_agreement_id,
        previous.value, target.value, new_paid, schedule.total_amount,
    )
    return schedule


def calculate_late_fee(
    schedule: PaymentSchedule, agreement: LeaseAgreement, today: date
) -> Decimal:
    """Late fee owed on an installment as of *today*.  Pure; writes nothing."""
    if schedule.status in SETTLED_STATUSES:
        return ZERO
    if days_overdue(schedule, today) <= agreement.grace_period_days:
        return ZERO
    return percent_of(schedule.total_amount, agreement.late_fee_percentage)


async def apply_late_fee(
    db: AsyncSession,
    schedule_id: int,
    amount: Any = None,
    *,
    clock: Clock = system_clock,
) -> PaymentSchedule:
    """Add a late fee to an installment.

    Without an explicit amount the fee is computed from the agreement terms.
    The fee is added to any fee already charged.
    """
    schedule = await require_installment(db, schedule_id, for_update=True)
    if schedule.status in SETTLED_STATUSES:
        raise InvalidStateTransition(
            f"Cannot charge a late fee on {schedule.status.value} "
            f"installment {schedule.installment_number}"
        )

    if amount is None:
        fee = calculate_late_fee(schedule, schedule.lease_agreement, clock.today())
    else:
        fee = non_negative(amount, "Late fee")
    if fee == ZERO:
        return schedule

    schedule.late_fee = to_money(schedule.late_fee) + fee
    await db.flush()
    logger.info(
        "Late fee %s applied to installment %d (agreement %d), total fee %s",
        fee, schedule.installment_number, schedule.lease_agreement_id, schedule.late_fee,
    )
    return schedule


async def update_overdue_status(
    db: AsyncSession, schedule_id: int, *, clock: Clock = system_clock
) -> PaymentSchedule:
    """Flag a pending installment whose due date has passed.  Idempotent."""
    schedule = await require_installment(db, schedule_id, for_update=True)
    if schedule.status == ScheduleStatus.PENDING and schedule.due_date < clock.today():
        schedule.status = ScheduleStatus.OVERDUE
        await db.flush()
        logger.info(
            "Installment %d (agreement %d) is overdue",
            schedule.installment_number, schedule.lease_agreement_id,
        )
    return schedule


async def waive(
    db: AsyncSession,
    schedule_id: int,
    *,
    notes: str | None = None,
    clock: Clock = system_clock,
) -> PaymentSchedule:
    """Write off an installment: it counts as fully paid from now on.

    Money already collected above ``total_amount`` (a paid late fee) stays on
    the record.
    """
    schedule = await require_installment(db, schedule_id, for_update=True)
    if schedule.status == ScheduleStatus.WAIVED:
        return schedule
    SCHEDULE_FLOW.assert_transition(
        schedule.status, ScheduleStatus.WAIVED, subject=f"#{schedule.installment_number}"
    )

    schedule.status = ScheduleStatus.WAIVED
    schedule.paid_amount = max(to_money(schedule.paid_amount), to_money(schedule.total_amount))
    schedule.paid_date = clock.today()
    if notes:
        schedule.notes = notes
    await db.flush()
    logger.info(
        "Installment %d (agreement %d) waived",
        schedule.installment_number, schedule.lease_agreement_id,
    )
    return schedule


# ---------------------------------------------------------------------------
# Batch helpers
# ---------------------------------------------------------------------------

async def sweep_overdue(db: AsyncSession, *, clock: Clock = system_clock) -> int:
    """Flag every past-due pending installment.  Returns the number flagged."""
    today = clock.today()
    result = await db.execute(
        select(PaymentSchedule)
        .where(
            PaymentSchedule.status == ScheduleStatus.PENDING,
            PaymentSchedule.due_date < today,
        )
        .order_by(PaymentSchedule.id)
        .with_for_update(of=PaymentSchedule)
    )
    flagged = 0
    for schedule in result.unique().scalars().all():
        schedule.status = ScheduleStatus.OVERDUE
        flagged += 1
    await db.flush()
    logger.info("Overdue sweep as of %s flagged %d installments", today, flagged)
    return flagged


async def assess_late_fees(
    db: AsyncSession, *, clock: Clock = system_clock
) -> list[PaymentSchedule]:
    """Charge the agreement's late fee once on unpaid installments past grace.

    Partly paid installments are never flagged overdue, so they are picked up
    by due date alongside the overdue ones.
    """
    today = clock.today()
    result = await db.execute(
        select(PaymentSchedule)
        .where(
            PaymentSchedule.status.in_((ScheduleStatus.OVERDUE, ScheduleStatus.PARTIAL)),
            PaymentSchedule.due_date < today,
            PaymentSchedule.late_fee == 0,
        )
        .order_by(PaymentSchedule.id)
        .with_for_update(of=PaymentSchedule)
    )
    charged = []
    for schedule in result.unique().scalars().all():
        fee = calculate_late_fee(schedule, schedule.lease_agreement, today)
        if fee > ZERO:
            schedule.late_fee = fee
            charged.append(schedule)
    await db.flush()
    logger.info("Late-fee assessment as of %s charged %d installments", today, len(charged))
    return charged
