"""Ledger poster: the only code path that changes account balances.

Posting
-------
1. Lock the entry row and check it is a DRAFT
2. Reject empty entries, then entries whose debits and credits differ by
   more than ``settings.balance_tolerance``
3. Lock every referenced account (``SELECT ... FOR UPDATE`` ordered by id)
   and apply the signed delta of its lines
4. Stamp ``posted_by`` / ``posted_at`` and move the entry to POSTED

Steps 3-4 run inside a savepoint.  A stale account version, a deadlock or a
serialization failure rolls the savepoint back and the whole attempt is
repeated up to ``settings.ledger_max_retries`` times before
:class:`ConcurrencyConflict` reaches the caller.

Reversal
--------
A posted entry is never edited.  ``reverse_entry`` creates a mirror entry
with debits and credits swapped, posts it through the same path, and links
the two entries; the original becomes REVERSED.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leasecore.clock import Clock, system_clock
from leasecore.config import settings
from leasecore.models.ledger import Account, JournalEntry, JournalEntryLine, JournalEntryStatus
from leasecore.services.errors import (
    ConcurrencyConflict,
    EmptyEntryError,
    NotBalancedError,
    NotFound,
)
from leasecore.services.ledger.journal_engine import (
    EntryReference,
    add_line,
    create_entry,
    require_entry,
)
from leasecore.services.money import ZERO, is_balanced, signed_amount, to_money
from leasecore.services.state_machine import JOURNAL_ENTRY_FLOW

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def is_concurrency_error(exc: BaseException) -> bool:
    """True for database errors that a fresh attempt may not hit again."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if code in CONFLICT_SQLSTATES:
            return True
        # SQLite reports writer contention this way
        if isinstance(exc, OperationalError) and "database is locked" in str(orig):
            return True
    return False


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _line_totals(lines: list[JournalEntryLine]) -> tuple[Decimal, Decimal]:
    total_dr = sum((to_money(ln.debit_amount) for ln in lines), ZERO)
    total_cr = sum((to_money(ln.credit_amount) for ln in lines), ZERO)
    return total_dr, total_cr


def _account_deltas(lines: list[JournalEntryLine]) -> dict[int, tuple[Decimal, Decimal]]:
    """Debit and credit sums per distinct account."""
    sums: dict[int, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for ln in lines:
        sums[ln.account_id][0] += to_money(ln.debit_amount)
        sums[ln.account_id][1] += to_money(ln.credit_amount)
    return {account_id: (dr, cr) for account_id, (dr, cr) in sums.items()}


async def _lock_accounts(db: AsyncSession, account_ids: list[int]) -> list[Account]:
    ids = sorted(account_ids)
    result = await db.execute(
        select(Account)
        .where(Account.id.in_(ids))
        .order_by(Account.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    accounts = list(result.scalars().all())
    missing = set(ids) - {a.id for a in accounts}
    if missing:
        raise NotFound(f"Accounts not found: {sorted(missing)}")
    return accounts


async def _post_once(
    db: AsyncSession, entry_id: int, *, actor_id: int | None, clock: Clock
) -> JournalEntry:
    entry = await require_entry(db, entry_id, for_update=True)
    JOURNAL_ENTRY_FLOW.assert_transition(
        entry.status, JournalEntryStatus.POSTED, subject=entry.entry_number
    )

    lines = list(entry.lines)
    if not lines:
        raise EmptyEntryError(f"Journal entry {entry.entry_number} has no lines")

    total_dr, total_cr = _line_totals(lines)
    if not is_balanced(total_dr, total_cr):
        raise NotBalancedError(
            f"Journal entry {entry.entry_number} is not balanced: "
            f"debits={total_dr}, credits={total_cr}, difference={total_dr - total_cr}"
        )

    deltas = _account_deltas(lines)
    for account in await _lock_accounts(db, list(deltas)):
        dr, cr = deltas[account.id]
        account.balance = to_money(account.balance) + signed_amount(account.account_type, dr, cr)

    entry.total_debit = total_dr
    entry.total_credit = total_cr
    entry.status = JournalEntryStatus.POSTED
    entry.posted_by = actor_id
    entry.posted_at = clock.now()
    await db.flush()
    return entry


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def post_entry(
    db: AsyncSession,
    entry_id: int,
    *,
    actor_id: int | None = None,
    clock: Clock = system_clock,
) -> JournalEntry:
    """Post a draft entry and apply it to account balances atomically."""
    attempts = settings.ledger_max_retries
    for attempt in range(1, attempts + 1):
        try:
            async with db.begin_nested():
                entry = await _post_once(db, entry_id, actor_id=actor_id, clock=clock)
        except (StaleDataError, DBAPIError) as exc:
            if not is_concurrency_error(exc):
                raise
            logger.warning(
                "Concurrent update while posting entry %d (attempt %d/%d): %s",
                entry_id, attempt, attempts, exc,
            )
            continue

        logger.info(
            "Posted %s by %s (dr=%s cr=%s)",
            entry.entry_number, actor_id, entry.total_debit, entry.total_credit,
        )
        return entry

    raise ConcurrencyConflict(
        f"Could not post journal entry {entry_id} after {attempts} attempts"
    )


async def reverse_entry(
    db: AsyncSession,
    entry_id: int,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
    clock: Clock = system_clock,
) -> JournalEntry:
    """Reverse a posted entry with a posted mirror entry and return the mirror."""
    async with db.begin_nested():
        original = await require_entry(db, entry_id, for_update=True)
        JOURNAL_ENTRY_FLOW.assert_transition(
            original.status, JournalEntryStatus.REVERSED, subject=original.entry_number
        )

        description = f"REVERSAL: {original.description}"
        if reason:
            description = f"{description} - {reason}"
        reference = None
        if original.reference_kind is not None:
            reference = EntryReference(original.reference_kind, original.reference_id)
        original_number = original.entry_number
        mirrored = [
            (ln.account_id, ln.credit_amount, ln.debit_amount, ln.description)
            for ln in original.lines
        ]

        reversal = await create_entry(
            db,
            description=description,
            transaction_date=clock.today(),
            reference=reference,
            created_by=actor_id,
            currency=original.currency,
            reversal_of_id=original.id,
            clock=clock,
        )
        for account_id, debit, credit, line_description in mirrored:
            await add_line(
                db,
                reversal.id,
                account_id=account_id,
                debit=debit,
                credit=credit,
                description=f"REVERSAL: {line_description}" if line_description else "REVERSAL",
                allow_inactive=True,
            )
        reversal = await post_entry(db, reversal.id, actor_id=actor_id, clock=clock)

        original = await require_entry(db, entry_id)
        original.status = JournalEntryStatus.REVERSED
        original.reversed_by_id = reversal.id
        await db.flush()

    logger.info("Reversed %s with %s by %s", original_number, reversal.entry_number, actor_id)
    return reversal
