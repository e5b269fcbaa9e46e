"""Payment processing API endpoints.

Registration, status moves, settlement and refund of lease payments.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, get_clock
from leasecore.database import get_db
from leasecore.models.payment import PaymentMethod, PaymentStatus, PaymentType
from leasecore.services import payment_service

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

class PaymentCreateRequest(BaseModel):
    lease_agreement_id: int
    amount: Decimal
    payment_type: PaymentType = PaymentType.INSTALLMENT
    payment_method: PaymentMethod
    processing_fee: Decimal = Decimal("0")
    payment_schedule_id: Optional[int] = None
    client_id: Optional[int] = None
    payment_date: Optional[date] = None
    currency: Optional[str] = None
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentStatusRequest(BaseModel):
    status: PaymentStatus
    actor_id: Optional[int] = None


class SettleRequest(BaseModel):
    actor_id: Optional[int] = None
    commission_rate: Optional[Decimal] = None


class RefundRequest(BaseModel):
    actor_id: Optional[int] = None
    reason: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    payment_reference: str
    lease_agreement_id: int
    payment_schedule_id: Optional[int] = None
    client_id: int
    payment_type: PaymentType
    payment_method: PaymentMethod
    amount: Decimal
    currency: str
    processing_fee: Decimal
    net_amount: Decimal
    payment_date: date
    status: PaymentStatus
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    payment_id: int
    journal_entry_id: int
    entry_number: str
    commission_id: int
    commission_amount: Decimal
    installment_id: Optional[int] = None
    installment_status: Optional[str] = None


class RefundResponse(BaseModel):
    payment_id: int
    status: PaymentStatus
    reversal_entry_id: Optional[int] = None
    cancelled_commission_ids: list[int] = []


# ===================================================================
# Endpoints
# ===================================================================

@router.get("", response_model=list[PaymentResponse])
async def list_payments(
    lease_agreement_id: Optional[int] = None,
    status: Optional[PaymentStatus] = None,
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.list_payments(
        db, lease_agreement_id=lease_agreement_id, status=status
    )


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    data: PaymentCreateRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    payment = await payment_service.create_payment(
        db,
        lease_agreement_id=data.lease_agreement_id,
        amount=data.amount,
        payment_type=data.payment_type,
        payment_method=data.payment_method,
        processing_fee=data.processing_fee,
        payment_schedule_id=data.payment_schedule_id,
        client_id=data.client_id,
        payment_date=data.payment_date,
        currency=data.currency,
        transaction_reference=data.transaction_reference,
        notes=data.notes,
        clock=clock,
    )
    await db.commit()
    return payment


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: int, db: AsyncSession = Depends(get_db)):
    return await payment_service.require_payment(db, payment_id)


@router.post("/{payment_id}/status", response_model=PaymentResponse)
async def transition_payment(
    payment_id: int,
    data: PaymentStatusRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    payment = await payment_service.transition_payment(
        db, payment_id, data.status, actor_id=data.actor_id, clock=clock
    )
    await db.commit()
    return payment


@router.post("/{payment_id}/settle", response_model=SettlementResponse)
async def settle_payment(
    payment_id: int,
    data: SettleRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    result = await payment_service.settle_payment(
        db, payment_id, actor_id=data.actor_id, rate=data.commission_rate, clock=clock
    )
    await db.commit()
    return SettlementResponse(
        payment_id=result.payment.id,
        journal_entry_id=result.entry.id,
        entry_number=result.entry.entry_number,
        commission_id=result.commission.id,
        commission_amount=result.commission.commission_amount,
        installment_id=result.installment.id if result.installment else None,
        installment_status=result.installment.status.value if result.installment else None,
    )


@router.post("/{payment_id}/refund", response_model=RefundResponse)
async def refund_payment(
    payment_id: int,
    data: RefundRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    result = await payment_service.refund_payment(
        db, payment_id, actor_id=data.actor_id, reason=data.reason, clock=clock
    )
    await db.commit()
    return RefundResponse(
        payment_id=result.payment.id,
        status=result.payment.status,
        reversal_entry_id=result.reversal.id if result.reversal else None,
        cancelled_commission_ids=[c.id for c in result.cancelled_commissions],
    )
