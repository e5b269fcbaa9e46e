"""Journal entry store.

Entries are created in DRAFT with zero totals.  Lines may be added, changed or
removed only while the entry is a draft, and every such change is followed by
an explicit :func:`recompute_totals`.  Posting and reversal live in
:mod:`leasecore.services.ledger.poster`.

Entry numbers follow ``JE<YYYY><MM><NNN>`` and are allocated inside the
creating transaction; a unique-constraint collision with a concurrent writer
is retried under a savepoint.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select, func as sa_func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leasecore.clock import Clock, system_clock
from leasecore.config import settings
from leasecore.models.ledger import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    ReferenceKind,
)
from leasecore.services.errors import (
    ConcurrencyConflict,
    ImmutableEntryError,
    NotFound,
    ValidationError,
)
from leasecore.services.ledger.coa_service import require_account
from leasecore.services.money import ZERO, non_negative

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryReference:
    """Tagged pointer to the record an entry originates from.

    The ledger stores it but never dereferences it.
    """

    kind: ReferenceKind
    id: int


# ---------------------------------------------------------------------------
# Entry-number generation
# ---------------------------------------------------------------------------

def entry_number_prefix(on: date) -> str:
    return f"JE{on.year}{on.month:02d}"


async def next_entry_number(db: AsyncSession, *, clock: Clock = system_clock) -> str:
    """Highest existing sequence for the current year-month plus one."""
    prefix = entry_number_prefix(clock.today())
    result = await db.execute(
        select(JournalEntry.entry_number)
        .where(JournalEntry.entry_number.like(f"{prefix}%"))
        .order_by(
            sa_func.length(JournalEntry.entry_number).desc(),
            JournalEntry.entry_number.desc(),
        )
        .limit(1)
    )
    last = result.scalar_one_or_none()
    seq = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:03d}"


async def _entry_number_taken(db: AsyncSession, entry_number: str) -> bool:
    result = await db.execute(
        select(JournalEntry.id).where(JournalEntry.entry_number == entry_number)
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _validate_line_amounts(debit: Any, credit: Any) -> tuple[Decimal, Decimal]:
    """Exactly one side of a line carries a positive amount."""
    dr = non_negative(debit, "Debit amount")
    cr = non_negative(credit, "Credit amount")
    if dr > 0 and cr > 0:
        raise ValidationError("A journal line cannot carry both a debit and a credit")
    if dr == 0 and cr == 0:
        raise ValidationError("A journal line needs a non-zero debit or credit")
    return dr, cr


def _assert_draft(entry: JournalEntry, action: str) -> None:
    if entry.status != JournalEntryStatus.DRAFT:
        raise ImmutableEntryError(
            f"Cannot {action}: entry {entry.entry_number} is {entry.status.value}, expected draft"
        )


async def _check_account(db: AsyncSession, account_id: int, *, allow_inactive: bool) -> None:
    account = await require_account(db, account_id)
    if not account.is_active and not allow_inactive:
        raise ValidationError(f"Account {account.account_code} is inactive")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_entry(
    db: AsyncSession, entry_id: int, *, for_update: bool = False
) -> JournalEntry | None:
    """Load a journal entry with its lines, always from the database."""
    q = (
        select(JournalEntry)
        .where(JournalEntry.id == entry_id)
        .options(selectinload(JournalEntry.lines))
        .execution_options(populate_existing=True)
    )
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def require_entry(
    db: AsyncSession, entry_id: int, *, for_update: bool = False
) -> JournalEntry:
    entry = await get_entry(db, entry_id, for_update=for_update)
    if entry is None:
        raise NotFound(f"Journal entry {entry_id} not found")
    return entry


async def get_line(db: AsyncSession, line_id: int) -> JournalEntryLine:
    result = await db.execute(select(JournalEntryLine).where(JournalEntryLine.id == line_id))
    line = result.scalar_one_or_none()
    if line is None:
        raise NotFound(f"Journal line {line_id} not found")
    return line


async def list_entries(
    db: AsyncSession,
    *,
    status: JournalEntryStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    reference: EntryReference | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[JournalEntry]:
    q = (
        select(JournalEntry)
        .options(selectinload(JournalEntry.lines))
        .order_by(JournalEntry.transaction_date.desc(), JournalEntry.id.desc())
    )
    if status:
        q = q.where(JournalEntry.status == status)
    if start_date:
        q = q.where(JournalEntry.transaction_date >= start_date)
    if end_date:
        q = q.where(JournalEntry.transaction_date <= end_date)
    if reference:
        q = q.where(
            JournalEntry.reference_kind == reference.kind,
            JournalEntry.reference_id == reference.id,
        )
    if search:
        pattern = f"%{search}%"
        q = q.where(
            or_(
                JournalEntry.entry_number.ilike(pattern),
                JournalEntry.description.ilike(pattern),
            )
        )
    result = await db.execute(q.limit(limit).offset(offset))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def create_entry(
    db: AsyncSession,
    *,
    description: str,
    transaction_date: date | None = None,
    reference: EntryReference | None = None,
    created_by: int | None = None,
    currency: str | None = None,
    reversal_of_id: int | None = None,
    clock: Clock = system_clock,
) -> JournalEntry:
    """Create an empty DRAFT entry with a freshly allocated entry number."""
    if not (description or "").strip():
        raise ValidationError("Journal entry description is required")

    attempts = settings.ledger_max_retries
    for attempt in range(1, attempts + 1):
        entry_number = await next_entry_number(db, clock=clock)
        entry = JournalEntry(
            entry_number=entry_number,
            transaction_date=transaction_date or clock.today(),
            reference_kind=reference.kind if reference else None,
            reference_id=reference.id if reference else None,
            description=description.strip(),
            currency=(currency or settings.default_currency).upper(),
            total_debit=ZERO,
            total_credit=ZERO,
            status=JournalEntryStatus.DRAFT,
            created_by=created_by,
            reversal_of_id=reversal_of_id,
        )
        try:
            async with db.begin_nested():
                db.add(entry)
                await db.flush()
        except IntegrityError:
            if not await _entry_number_taken(db, entry_number):
                raise
            logger.warning(
                "Entry number %s taken by a concurrent writer (attempt %d/%d)",
                entry_number, attempt, attempts,
            )
            continue

        await db.refresh(entry, ["lines"])
        logger.info("Created journal entry %s (draft)", entry.entry_number)
        return entry

    raise ConcurrencyConflict(
        f"Could not allocate a unique entry number after {attempts} attempts"
    )


def recompute_totals(entry: JournalEntry) -> JournalEntry:
    """Set the entry totals to the sum of its lines."""
    entry.total_debit = sum((ln.debit_amount for ln in entry.lines), ZERO)
    entry.total_credit = sum((ln.credit_amount for ln in entry.lines), ZERO)
    return entry


async def add_line(
    db: AsyncSession,
    entry_id: int,
    *,
    account_id: int,
    debit: Any = 0,
    credit: Any = 0,
    description: str | None = None,
    allow_inactive: bool = False,
) -> JournalEntry:
    """Append a debit or credit line to a draft entry and recompute totals."""
    entry = await require_entry(db, entry_id, for_update=True)
    _assert_draft(entry, "add a line")
    dr, cr = _validate_line_amounts(debit, credit)
    await _check_account(db, account_id, allow_inactive=allow_inactive)

    next_number = max((ln.line_number for ln in entry.lines), default=0) + 1
    entry.lines.append(
        JournalEntryLine(
            line_number=next_number,
            account_id=account_id,
            debit_amount=dr,
            credit_amount=cr,
            description=description,
        )
    )
    recompute_totals(entry)
    await db.flush()
    logger.debug(
        "Added line %d to %s (dr=%s cr=%s)", next_number, entry.entry_number, dr, cr
    )
    return entry


async def update_line(
    db: AsyncSession,
    line_id: int,
    *,
    account_id: int | None = None,
    debit: Any = None,
    credit: Any = None,
    description: str | None = None,
) -> JournalEntry:
    """Change a line of a draft entry.  Omitted fields keep their value."""
    line = await get_line(db, line_id)
    entry = await require_entry(db, line.journal_entry_id, for_update=True)
    _assert_draft(entry, "change a line")

    target = next(ln for ln in entry.lines if ln.id == line_id)
    dr, cr = _validate_line_amounts(
        target.debit_amount if debit is None else debit,
        target.credit_amount if credit is None else credit,
    )
    if account_id is not None and account_id != target.account_id:
        await _check_account(db, account_id, allow_inactive=False)
        target.account_id = account_id
    target.debit_amount = dr
    target.credit_amount = cr
    if description is not None:
        target.description = description

    recompute_totals(entry)
    await db.flush()
    return entry


async def remove_line(db: AsyncSession, line_id: int) -> JournalEntry:
    """Delete a line of a draft entry and recompute totals."""
    line = await get_line(db, line_id)
    entry = await require_entry(db, line.journal_entry_id, for_update=True)
    _assert_draft(entry, "remove a line")

    target = next(ln for ln in entry.lines if ln.id == line_id)
    entry.lines.remove(target)
    recompute_totals(entry)
    await db.flush()
    logger.debug("Removed line %d from %s", target.line_number, entry.entry_number)
    return entry


async def delete_entry(db: AsyncSession, entry_id: int) -> None:
    """Delete a draft entry.  Posted and reversed entries are permanent."""
    entry = await require_entry(db, entry_id, for_update=True)
    _assert_draft(entry, "delete")
    await db.delete(entry)
    await db.flush()
    logger.info("Deleted draft journal entry %s", entry.entry_number)
