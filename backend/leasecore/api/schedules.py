"""Payment schedule API endpoints."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, get_clock
from leasecore.database import get_db
from leasecore.models.payment import ScheduleStatus
from leasecore.services import schedule_manager

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

class InstallmentResponse(BaseModel):
    id: int
    lease_agreement_id: int
    installment_number: int
    due_date: date
    principal_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    status: ScheduleStatus
    paid_amount: Decimal
    paid_date: Optional[date] = None
    late_fee: Decimal
    remaining_amount: Decimal
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class RecordPaymentRequest(BaseModel):
    amount: Decimal
    paid_on: Optional[date] = None


class LateFeeRequest(BaseModel):
    amount: Optional[Decimal] = None


class LateFeeQuote(BaseModel):
    schedule_id: int
    as_of: date
    days_overdue: int
    late_fee: Decimal


class WaiveRequest(BaseModel):
    notes: Optional[str] = None


class SweepResponse(BaseModel):
    as_of: date
    flagged: int


# ===================================================================
# Endpoints
# ===================================================================

@router.post(
    "/agreements/{agreement_id}/generate",
    response_model=list[InstallmentResponse],
    status_code=201,
)
async def generate_schedule(agreement_id: int, db: AsyncSession = Depends(get_db)):
    installments = await schedule_manager.generate_schedule(db, agreement_id)
    await db.commit()
    return installments


@router.get("/agreements/{agreement_id}", response_model=list[InstallmentResponse])
async def list_schedule(agreement_id: int, db: AsyncSession = Depends(get_db)):
    return await schedule_manager.list_schedule(db, agreement_id)


@router.post("/sweep-overdue", response_model=SweepResponse)
async def sweep_overdue(db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)):
    flagged = await schedule_manager.sweep_overdue(db, clock=clock)
    await db.commit()
    return SweepResponse(as_of=clock.today(), flagged=flagged)


@router.post("/assess-late-fees", response_model=list[InstallmentResponse])
async def assess_late_fees(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
):
    charged = await schedule_manager.assess_late_fees(db, clock=clock)
    await db.commit()
    return charged


@router.get("/{schedule_id}", response_model=InstallmentResponse)
async def get_installment(schedule_id: int, db: AsyncSession = Depends(get_db)):
    return await schedule_manager.require_installment(db, schedule_id)


@router.post("/{schedule_id}/payments", response_model=InstallmentResponse)
async def record_payment(
    schedule_id: int,
    data: RecordPaymentRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    schedule = await schedule_manager.record_payment(
        db, schedule_id, data.amount, paid_on=data.paid_on, clock=clock
    )
    await db.commit()
    return schedule


@router.get("/{schedule_id}/late-fee", response_model=LateFeeQuote)
async def quote_late_fee(
    schedule_id: int,
    as_of: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Late fee that would be charged as of a date; nothing is written."""
    schedule = await schedule_manager.require_installment(db, schedule_id)
    today = as_of or clock.today()
    return LateFeeQuote(
        schedule_id=schedule.id,
        as_of=today,
        days_overdue=schedule_manager.days_overdue(schedule, today),
        late_fee=schedule_manager.calculate_late_fee(schedule, schedule.lease_agreement, today),
    )


@router.post("/{schedule_id}/late-fee", response_model=InstallmentResponse)
async def apply_late_fee(
    schedule_id: int,
    data: LateFeeRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    schedule = await schedule_manager.apply_late_fee(db, schedule_id, data.amount, clock=clock)
    await db.commit()
    return schedule


@router.post("/{schedule_id}/overdue", response_model=InstallmentResponse)
async def update_overdue_status(
    schedule_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    schedule = await schedule_manager.update_overdue_status(db, schedule_id, clock=clock)
    await db.commit()
    return schedule


@router.post("/{schedule_id}/waive", response_model=InstallmentResponse)
async def waive(
    schedule_id: int,
    data: WaiveRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    schedule = await schedule_manager.waive(db, schedule_id, notes=data.notes, clock=clock)
    await db.commit()
    return schedule
