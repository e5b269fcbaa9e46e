"""Manufacturer commission API endpoints."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, get_clock
from leasecore.database import get_db
from leasecore.models.commission import CommissionStatus, CommissionType
from leasecore.services import commission_service

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

class CommissionCreateRequest(BaseModel):
    manufacturer_id: int
    lease_agreement_id: int
    base_amount: Decimal
    commission_rate: Optional[Decimal] = None
    commission_type: CommissionType = CommissionType.LEASE_COMMISSION
    payment_id: Optional[int] = None
    currency: Optional[str] = None
    calculation_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class CommissionUpdateRequest(BaseModel):
    """Editable fields.  ``commission_amount`` is always derived."""

    base_amount: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class MarkPaidRequest(BaseModel):
    payment_reference: Optional[str] = None
    paid_on: Optional[date] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class CommissionResponse(BaseModel):
    id: int
    manufacturer_id: int
    lease_agreement_id: int
    payment_id: Optional[int] = None
    commission_type: CommissionType
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    currency: str
    status: CommissionStatus
    calculation_date: date
    due_date: date
    paid_date: Optional[date] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class CommissionQuote(BaseModel):
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal


class ManufacturerTotalsResponse(BaseModel):
    manufacturer_id: int
    earned: Decimal
    pending: Decimal

    model_config = {"from_attributes": True}


# ===================================================================
# Endpoints
# ===================================================================

@router.get("", response_model=list[CommissionResponse])
async def list_commissions(
    manufacturer_id: Optional[int] = None,
    status: Optional[CommissionStatus] = None,
    payment_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    return await commission_service.list_commissions(
        db, manufacturer_id=manufacturer_id, status=status, payment_id=payment_id
    )


@router.post("", response_model=CommissionResponse, status_code=201)
async def create_commission(
    data: CommissionCreateRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    commission = await commission_service.create_commission(
        db,
        manufacturer_id=data.manufacturer_id,
        lease_agreement_id=data.lease_agreement_id,
        base_amount=data.base_amount,
        commission_rate=data.commission_rate,
        commission_type=data.commission_type,
        payment_id=data.payment_id,
        currency=data.currency,
        calculation_date=data.calculation_date,
        due_date=data.due_date,
        notes=data.notes,
        clock=clock,
    )
    await db.commit()
    return commission


@router.get("/calculate", response_model=CommissionQuote)
async def calculate(base_amount: Decimal, commission_rate: Decimal):
    return CommissionQuote(
        base_amount=base_amount,
        commission_rate=commission_rate,
        commission_amount=commission_service.calculate_commission(base_amount, commission_rate),
    )


@router.get("/due", response_model=list[CommissionResponse])
async def list_due(
    manufacturer_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await commission_service.list_due(db, manufacturer_id=manufacturer_id, clock=clock)


@router.get("/overdue", response_model=list[CommissionResponse])
async def list_overdue(
    manufacturer_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return await commission_service.list_overdue(
        db, manufacturer_id=manufacturer_id, clock=clock
    )


@router.get("/manufacturers/{manufacturer_id}/totals", response_model=ManufacturerTotalsResponse)
async def manufacturer_totals(manufacturer_id: int, db: AsyncSession = Depends(get_db)):
    return await commission_service.manufacturer_totals(db, manufacturer_id)


@router.get("/{commission_id}", response_model=CommissionResponse)
async def get_commission(commission_id: int, db: AsyncSession = Depends(get_db)):
    return await commission_service.require_commission(db, commission_id)


@router.patch("/{commission_id}", response_model=CommissionResponse)
async def update_commission(
    commission_id: int, data: CommissionUpdateRequest, db: AsyncSession = Depends(get_db)
):
    commission = await commission_service.update_commission(
        db,
        commission_id,
        base_amount=data.base_amount,
        commission_rate=data.commission_rate,
        due_date=data.due_date,
        notes=data.notes,
    )
    await db.commit()
    return commission


@router.post("/{commission_id}/approve", response_model=CommissionResponse)
async def approve(commission_id: int, db: AsyncSession = Depends(get_db)):
    commission = await commission_service.approve(db, commission_id)
    await db.commit()
    return commission


@router.post("/{commission_id}/pay", response_model=CommissionResponse)
async def mark_paid(
    commission_id: int,
    data: MarkPaidRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    commission = await commission_service.mark_paid(
        db,
        commission_id,
        payment_reference=data.payment_reference,
        paid_on=data.paid_on,
        clock=clock,
    )
    await db.commit()
    return commission


@router.post("/{commission_id}/cancel", response_model=CommissionResponse)
async def cancel(commission_id: int, data: CancelRequest, db: AsyncSession = Depends(get_db)):
    commission = await commission_service.cancel(db, commission_id, reason=data.reason)
    await db.commit()
    return commission
