"""General ledger API endpoints.

Covers Chart of Accounts maintenance, the journal entry lifecycle
(draft lines, post, reverse, delete) and balance verification.
Domain errors are translated to HTTP responses by the handler in
``leasecore.main``.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.clock import Clock, get_clock
from leasecore.database import get_db
from leasecore.models.ledger import AccountType, JournalEntryStatus, ReferenceKind
from leasecore.services.errors import ValidationError
from leasecore.services.ledger import coa_service, journal_engine, poster

logger = logging.getLogger(__name__)
router = APIRouter()


# ===================================================================
# Pydantic Schemas
# ===================================================================

# -- Account --

class AccountCreateRequest(BaseModel):
    account_code: str = Field(..., min_length=1, max_length=20)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_type: AccountType
    parent_id: Optional[int] = None
    description: Optional[str] = None
    is_active: bool = True


class AccountParentRequest(BaseModel):
    parent_id: Optional[int] = None


class AccountResponse(BaseModel):
    id: int
    account_code: str
    account_name: str
    account_type: AccountType
    parent_id: Optional[int] = None
    balance: Decimal
    is_active: bool
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class BalanceDriftResponse(BaseModel):
    account_id: int
    account_code: str
    stored: Decimal
    computed: Decimal
    difference: Decimal

    model_config = {"from_attributes": True}


# -- Journal Entry --

class JournalEntryCreateRequest(BaseModel):
    description: str = Field(..., min_length=1)
    transaction_date: Optional[date] = None
    reference_kind: Optional[ReferenceKind] = None
    reference_id: Optional[int] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    created_by: Optional[int] = None


class JournalLineInput(BaseModel):
    account_id: int
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    description: Optional[str] = None


class JournalLineUpdate(BaseModel):
    account_id: Optional[int] = None
    debit_amount: Optional[Decimal] = None
    credit_amount: Optional[Decimal] = None
    description: Optional[str] = None


class PostRequest(BaseModel):
    actor_id: Optional[int] = None


class ReverseRequest(BaseModel):
    actor_id: Optional[int] = None
    reason: Optional[str] = None


class JournalLineResponse(BaseModel):
    id: int
    line_number: int
    account_id: int
    description: Optional[str] = None
    debit_amount: Decimal
    credit_amount: Decimal

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    id: int
    entry_number: str
    transaction_date: date
    reference_kind: Optional[ReferenceKind] = None
    reference_id: Optional[int] = None
    description: str
    currency: str
    total_debit: Decimal
    total_credit: Decimal
    status: JournalEntryStatus
    created_by: Optional[int] = None
    posted_by: Optional[int] = None
    posted_at: Optional[datetime] = None
    reversal_of_id: Optional[int] = None
    reversed_by_id: Optional[int] = None
    lines: list[JournalLineResponse] = []

    model_config = {"from_attributes": True}


# ===================================================================
# Chart of Accounts Endpoints
# ===================================================================

@router.get("/accounts", response_model=list[AccountResponse])
async def list_accounts(
    account_type: Optional[AccountType] = None,
    active: Optional[bool] = None,
    roots_only: bool = False,
    parent_id: Optional[int] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await coa_service.list_accounts(
        db,
        account_type=account_type,
        active=active,
        roots_only=roots_only,
        parent_id=parent_id,
        search=search,
    )


@router.post("/accounts", response_model=AccountResponse, status_code=201)
async def create_account(data: AccountCreateRequest, db: AsyncSession = Depends(get_db)):
    account = await coa_service.create_account(
        db,
        account_code=data.account_code,
        account_name=data.account_name,
        account_type=data.account_type,
        parent_id=data.parent_id,
        description=data.description,
        is_active=data.is_active,
    )
    await db.commit()
    return account


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, db: AsyncSession = Depends(get_db)):
    return await coa_service.require_account(db, account_id)


@router.get("/accounts/{account_id}/ancestors", response_model=list[AccountResponse])
async def get_ancestors(account_id: int, db: AsyncSession = Depends(get_db)):
    return await coa_service.get_ancestors(db, account_id)


@router.get("/accounts/{account_id}/descendants", response_model=list[AccountResponse])
async def get_descendants(account_id: int, db: AsyncSession = Depends(get_db)):
    return await coa_service.get_descendants(db, account_id)


@router.put("/accounts/{account_id}/parent", response_model=AccountResponse)
async def set_parent(
    account_id: int, data: AccountParentRequest, db: AsyncSession = Depends(get_db)
):
    account = await coa_service.set_parent(db, account_id, data.parent_id)
    await db.commit()
    return account


@router.post("/accounts/{account_id}/deactivate", response_model=AccountResponse)
async def deactivate_account(account_id: int, db: AsyncSession = Depends(get_db)):
    account = await coa_service.deactivate_account(db, account_id)
    await db.commit()
    return account


@router.post("/accounts/{account_id}/activate", response_model=AccountResponse)
async def activate_account(account_id: int, db: AsyncSession = Depends(get_db)):
    account = await coa_service.activate_account(db, account_id)
    await db.commit()
    return account


@router.get("/balances/verify", response_model=list[BalanceDriftResponse])
async def verify_balances(db: AsyncSession = Depends(get_db)):
    """Accounts whose stored balance differs from their posted history."""
    return await coa_service.verify_balances(db)


# ===================================================================
# Journal Entry Endpoints
# ===================================================================

@router.get("/entries", response_model=list[JournalEntryResponse])
async def list_entries(
    status: Optional[JournalEntryStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reference_kind: Optional[ReferenceKind] = None,
    reference_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    reference = None
    if reference_kind is not None and reference_id is not None:
        reference = journal_engine.EntryReference(reference_kind, reference_id)
    return await journal_engine.list_entries(
        db,
        status=status,
        start_date=start_date,
        end_date=end_date,
        reference=reference,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.post("/entries", response_model=JournalEntryResponse, status_code=201)
async def create_entry(
    data: JournalEntryCreateRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    reference = None
    if data.reference_kind is not None:
        if data.reference_id is None:
            raise ValidationError("reference_id is required when reference_kind is given")
        reference = journal_engine.EntryReference(data.reference_kind, data.reference_id)
    entry = await journal_engine.create_entry(
        db,
        description=data.description,
        transaction_date=data.transaction_date,
        reference=reference,
        created_by=data.created_by,
        currency=data.currency,
        clock=clock,
    )
    await db.commit()
    return entry


@router.get("/entries/{entry_id}", response_model=JournalEntryResponse)
async def get_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    return await journal_engine.require_entry(db, entry_id)


@router.delete("/entries/{entry_id}", status_code=204)
async def delete_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    await journal_engine.delete_entry(db, entry_id)
    await db.commit()


@router.post("/entries/{entry_id}/lines", response_model=JournalEntryResponse, status_code=201)
async def add_line(entry_id: int, data: JournalLineInput, db: AsyncSession = Depends(get_db)):
    entry = await journal_engine.add_line(
        db,
        entry_id,
        account_id=data.account_id,
        debit=data.debit_amount,
        credit=data.credit_amount,
        description=data.description,
    )
    await db.commit()
    return entry


@router.put("/lines/{line_id}", response_model=JournalEntryResponse)
async def update_line(line_id: int, data: JournalLineUpdate, db: AsyncSession = Depends(get_db)):
    entry = await journal_engine.update_line(
        db,
        line_id,
        account_id=data.account_id,
        debit=data.debit_amount,
        credit=data.credit_amount,
        description=data.description,
    )
    await db.commit()
    return entry


@router.delete("/lines/{line_id}", response_model=JournalEntryResponse)
async def remove_line(line_id: int, db: AsyncSession = Depends(get_db)):
    entry = await journal_engine.remove_line(db, line_id)
    await db.commit()
    return entry


@router.post("/entries/{entry_id}/post", response_model=JournalEntryResponse)
async def post_entry(
    entry_id: int,
    data: PostRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    entry = await poster.post_entry(db, entry_id, actor_id=data.actor_id, clock=clock)
    await db.commit()
    return await journal_engine.require_entry(db, entry.id)


@router.post("/entries/{entry_id}/reverse", response_model=JournalEntryResponse)
async def reverse_entry(
    entry_id: int,
    data: ReverseRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Returns the new reversing entry."""
    reversal = await poster.reverse_entry(
        db, entry_id, actor_id=data.actor_id, reason=data.reason, clock=clock
    )
    await db.commit()
    return await journal_engine.require_entry(db, reversal.id)
