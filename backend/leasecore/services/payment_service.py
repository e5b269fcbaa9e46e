"""Payment processing hooks.

The payment gateway flow lives elsewhere on the platform; it calls into this
module to register payments, move them through their lifecycle and, once a
payment is completed, settle it:

1. Apply the amount to the linked installment
2. Post a journal entry referencing the payment
   (Dr cash net, Dr processing-fee expense, Cr lease revenue gross, with
   any late fee the payment clears credited to late-fee income)
3. Derive the manufacturer commission

A refund reverses the settlement entry and cancels the commissions that are
still open.  The installment keeps its recorded payment.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, system_clock
from leasecore.config import settings
from leasecore.models.commission import Commission
from leasecore.models.ledger import JournalEntry, JournalEntryStatus, ReferenceKind
from leasecore.models.payment import (
    Payment,
    PaymentMethod,
    PaymentSchedule,
    PaymentStatus,
    PaymentType,
)
from leasecore.services import commission_service, schedule_manager
from leasecore.services.errors import (
    ConcurrencyConflict,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from leasecore.services.ledger.coa_service import require_account_by_code
from leasecore.services.ledger.journal_engine import EntryReference, add_line, create_entry
from leasecore.services.ledger.poster import post_entry, reverse_entry
from leasecore.services.money import ZERO, non_negative, positive, to_money
from leasecore.services.state_machine import PAYMENT_FLOW

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    payment: Payment
    entry: JournalEntry
    commission: Commission
    installment: PaymentSchedule | None = None


@dataclass
class RefundResult:
    payment: Payment
    reversal: JournalEntry | None
    cancelled_commissions: list[Commission] = field(default_factory=list)


# ---------------------------------------------------------------------------
# References and lookups
# ---------------------------------------------------------------------------

async def generate_payment_reference(db: AsyncSession) -> str:
    """``PAY`` followed by 7 random digits, re-drawn until unused."""
    for _ in range(settings.payment_reference_max_attempts):
        reference = f"PAY{random.randint(1, 9_999_999):07d}"
        result = await db.execute(
            select(Payment.id).where(Payment.payment_reference == reference)
        )
        if result.scalar_one_or_none() is None:
            return reference
    raise ConcurrencyConflict("Could not generate a unique payment reference")


async def require_payment(
    db: AsyncSession, payment_id: int, *, for_update: bool = False
) -> Payment:
    q = (
        select(Payment)
        .where(Payment.id == payment_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound(f"Payment {payment_id} not found")
    return payment


async def list_payments(
    db: AsyncSession,
    *,
    lease_agreement_id: int | None = None,
    status: PaymentStatus | None = None,
) -> list[Payment]:
    q = select(Payment).order_by(Payment.payment_date.desc(), Payment.id.desc())
    if lease_agreement_id is not None:
        q = q.where(Payment.lease_agreement_id == lease_agreement_id)
    if status:
        q = q.where(Payment.status == status)
    result = await db.execute(q)
    return list(result.scalars().all())


async def get_settlement_entry(db: AsyncSession, payment_id: int) -> JournalEntry | None:
    """The journal entry that settled a payment, excluding its reversal."""
    result = await db.execute(
        select(JournalEntry)
        .where(
            JournalEntry.reference_kind == ReferenceKind.PAYMENT,
            JournalEntry.reference_id == payment_id,
            JournalEntry.reversal_of_id.is_(None),
        )
        .order_by(JournalEntry.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def create_payment(
    db: AsyncSession,
    *,
    lease_agreement_id: int,
    amount: Any,
    payment_type: PaymentType,
    payment_method: PaymentMethod,
    processing_fee: Any = 0,
    payment_schedule_id: int | None = None,
    client_id: int | None = None,
    payment_date: date | None = None,
    currency: str | None = None,
    transaction_reference: str | None = None,
    notes: str | None = None,
    clock: Clock = system_clock,
) -> Payment:
    """Register a pending payment against a lease agreement."""
    agreement = await schedule_manager.require_agreement(db, lease_agreement_id)
    gross = positive(amount, "Payment amount")
    fee = non_negative(processing_fee, "Processing fee")
    if fee > gross:
        raise ValidationError(
            f"Processing fee {fee} cannot exceed the payment amount {gross}"
        )

    if payment_schedule_id is not None:
        installment = await schedule_manager.require_installment(db, payment_schedule_id)
        if installment.lease_agreement_id != agreement.id:
            raise ValidationError(
                f"Installment {payment_schedule_id} does not belong to "
                f"agreement {agreement.agreement_number}"
            )

    payment = Payment(
        payment_reference=await generate_payment_reference(db),
        lease_agreement_id=agreement.id,
        payment_schedule_id=payment_schedule_id,
        client_id=client_id if client_id is not None else agreement.client_id,
        payment_type=PaymentType(payment_type),
        payment_method=PaymentMethod(payment_method),
        amount=gross,
        currency=(currency or agreement.currency or settings.default_currency).upper(),
        processing_fee=fee,
        payment_date=payment_date or clock.today(),
        status=PaymentStatus.PENDING,
        transaction_reference=transaction_reference,
        notes=notes,
    )
    payment.recompute_net_amount()
    db.add(payment)
    await db.flush()
    logger.info(
        "Payment %s registered: %s %s (fee %s) on agreement %s",
        payment.payment_reference, gross, payment.currency, fee, agreement.agreement_number,
    )
    return payment


async def transition_payment(
    db: AsyncSession,
    payment_id: int,
    status: PaymentStatus,
    *,
    actor_id: int | None = None,
    clock: Clock = system_clock,
) -> Payment:
    """Move a payment along its lifecycle.  Refunds go through ``refund_payment``."""
    target = PaymentStatus(status)
    if target == PaymentStatus.REFUNDED:
        raise InvalidStateTransition("Use the refund operation to refund a payment")

    payment = await require_payment(db, payment_id, for_update=True)
    PAYMENT_FLOW.assert_transition(payment.status, target, subject=payment.payment_reference)
    previous = payment.status
    payment.status = target
    if target == PaymentStatus.COMPLETED:
        payment.processed_by = actor_id
        payment.processed_at = clock.now()
    await db.flush()
    logger.info(
        "Payment %s: %s -> %s", payment.payment_reference, previous.value, target.value
    )
    return payment


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------

async def settle_payment(
    db: AsyncSession,
    payment_id: int,
    *,
    actor_id: int | None = None,
    rate: Any = None,
    clock: Clock = system_clock,
) -> SettlementResult:
    """Apply a completed payment to its installment, the ledger and commissions."""
    async with db.begin_nested():
        payment = await require_payment(db, payment_id, for_update=True)
        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidStateTransition(
                f"Payment {payment.payment_reference} is {payment.status.value}; "
                f"only completed payments can be settled"
            )
        if await get_settlement_entry(db, payment.id) is not None:
            raise InvalidStateTransition(
                f"Payment {payment.payment_reference} has already been settled"
            )

        installment = None
        late_fee_portion = ZERO
        if payment.payment_schedule_id is not None:
            installment = await schedule_manager.record_payment(
                db,
                payment.payment_schedule_id,
                payment.amount,
                paid_on=payment.payment_date,
                clock=clock,
            )
            # Installments stop taking payments once paid, so anything above
            # total_amount came from this payment.
            late_fee_portion = max(
                ZERO, to_money(installment.paid_amount) - to_money(installment.total_amount)
            )

        cash = await require_account_by_code(db, settings.cash_account_code)
        revenue = await require_account_by_code(db, settings.lease_revenue_account_code)

        entry = await create_entry(
            db,
            description=f"Lease payment {payment.payment_reference}",
            transaction_date=payment.payment_date,
            reference=EntryReference(ReferenceKind.PAYMENT, payment.id),
            created_by=actor_id,
            currency=payment.currency,
            clock=clock,
        )
        if payment.net_amount > ZERO:
            await add_line(
                db, entry.id, account_id=cash.id, debit=payment.net_amount,
                description="Cash received",
            )
        if payment.processing_fee > ZERO:
            fee_account = await require_account_by_code(
                db, settings.processing_fee_account_code
            )
            await add_line(
                db, entry.id, account_id=fee_account.id, debit=payment.processing_fee,
                description="Payment processing fee",
            )
        lease_portion = to_money(payment.amount) - late_fee_portion
        if lease_portion > ZERO:
            await add_line(
                db, entry.id, account_id=revenue.id, credit=lease_portion,
                description="Lease revenue",
            )
        if late_fee_portion > ZERO:
            late_fee_account = await require_account_by_code(
                db, settings.late_fee_income_account_code
            )
            await add_line(
                db, entry.id, account_id=late_fee_account.id, credit=late_fee_portion,
                description="Late fee income",
            )
        entry = await post_entry(db, entry.id, actor_id=actor_id, clock=clock)

        commission = await commission_service.derive_commission_from_payment(
            db, payment, rate=rate, clock=clock
        )

    logger.info(
        "Settled payment %s: entry %s, commission %d",
        payment.payment_reference, entry.entry_number, commission.id,
    )
    return SettlementResult(
        payment=payment, entry=entry, commission=commission, installment=installment
    )


async def refund_payment(
    db: AsyncSession,
    payment_id: int,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
    clock: Clock = system_clock,
) -> RefundResult:
    """Refund a completed payment and unwind its ledger and commission effects."""
    async with db.begin_nested():
        payment = await require_payment(db, payment_id, for_update=True)
        PAYMENT_FLOW.assert_transition(
            payment.status, PaymentStatus.REFUNDED, subject=payment.payment_reference
        )

        reversal = None
        entry = await get_settlement_entry(db, payment.id)
        if entry is not None and entry.status == JournalEntryStatus.POSTED:
            reversal = await reverse_entry(
                db,
                entry.id,
                actor_id=actor_id,
                reason=reason or f"Refund of {payment.payment_reference}",
                clock=clock,
            )

        cancelled = await commission_service.cancel_for_payment(
            db, payment.id, reason=reason or "Payment refunded"
        )

        payment = await require_payment(db, payment_id)
        payment.status = PaymentStatus.REFUNDED
        if reason:
            payment.notes = f"{payment.notes}\n{reason}" if payment.notes else reason
        await db.flush()

    logger.info(
        "Refunded payment %s (%d commissions cancelled)",
        payment.payment_reference, len(cancelled),
    )
    return RefundResult(payment=payment, reversal=reversal, cancelled_commissions=cancelled)
