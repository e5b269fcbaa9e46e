"""Chart of Accounts service.

Handles account creation and hierarchy maintenance:
- Account codes are unique
- ``parent_id`` pointers form a forest; self-parenting and cycles are rejected
- Hierarchy traversal is done by repeated parent-id lookups

There is no operation that sets a balance.  Balances move only
when the ledger poster applies a journal entry; ``verify_balances`` rebuilds
them from history to prove that.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, func as sa_func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.models.ledger import (
    Account,
    AccountType,
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
)
from leasecore.services.errors import NotFound, ValidationError
from leasecore.services.money import ZERO, signed_amount, to_money

logger = logging.getLogger(__name__)

# Entries whose lines have been applied to balances.  A reversed entry stays
# in history; its mirror entry carries the offsetting effect.
APPLIED_STATUSES = (JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED)


@dataclass(frozen=True)
class BalanceDrift:
    account_id: int
    account_code: str
    stored: Decimal
    computed: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored - self.computed


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_account(db: AsyncSession, account_id: int) -> Account | None:
    result = await db.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def get_account_by_code(db: AsyncSession, code: str) -> Account | None:
    result = await db.execute(select(Account).where(Account.account_code == code))
    return result.scalar_one_or_none()


async def require_account(db: AsyncSession, account_id: int) -> Account:
    account = await get_account(db, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


async def require_account_by_code(db: AsyncSession, code: str) -> Account:
    account = await get_account_by_code(db, code)
    if account is None:
        raise NotFound(f"Account code '{code}' not found")
    return account


async def get_balance(db: AsyncSession, account_id: int) -> Decimal:
    account = await require_account(db, account_id)
    return account.balance


async def list_accounts(
    db: AsyncSession,
    *,
    account_type: AccountType | None = None,
    active: bool | None = None,
    roots_only: bool = False,
    parent_id: int | None = None,
    search: str | None = None,
) -> list[Account]:
    """List accounts with optional read-only filters."""
    q = select(Account).order_by(Account.account_code)

    if account_type:
        q = q.where(Account.account_type == account_type)
    if active is not None:
        q = q.where(Account.is_active == active)
    if roots_only:
        q = q.where(Account.parent_id.is_(None))
    if parent_id is not None:
        q = q.where(Account.parent_id == parent_id)
    if search:
        pattern = f"%{search}%"
        q = q.where(
            Account.account_name.ilike(pattern) | Account.account_code.ilike(pattern)
        )

    result = await db.execute(q)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------

async def get_ancestors(db: AsyncSession, account_id: int) -> list[Account]:
    """Parent chain of an account, nearest first."""
    account = await require_account(db, account_id)
    ancestors: list[Account] = []
    seen = {account.id}
    parent_id = account.parent_id
    while parent_id is not None:
        if parent_id in seen:
            raise ValidationError(f"Account hierarchy cycle detected at account {parent_id}")
        parent = await require_account(db, parent_id)
        ancestors.append(parent)
        seen.add(parent.id)
        parent_id = parent.parent_id
    return ancestors


async def get_descendants(db: AsyncSession, account_id: int) -> list[Account]:
    """All accounts below *account_id*, breadth first."""
    await require_account(db, account_id)
    descendants: list[Account] = []
    seen = {account_id}
    frontier = [account_id]
    while frontier:
        result = await db.execute(
            select(Account)
            .where(Account.parent_id.in_(frontier))
            .order_by(Account.account_code)
        )
        children = [a for a in result.scalars().all() if a.id not in seen]
        descendants.extend(children)
        seen.update(a.id for a in children)
        frontier = [a.id for a in children]
    return descendants


async def _assert_no_cycle(db: AsyncSession, account_id: int, parent_id: int) -> None:
    if parent_id == account_id:
        raise ValidationError("An account cannot be its own parent")
    cursor: int | None = parent_id
    seen: set[int] = set()
    while cursor is not None:
        if cursor == account_id:
            raise ValidationError(
                f"Setting parent {parent_id} on account {account_id} would create a cycle"
            )
        if cursor in seen:
            break
        seen.add(cursor)
        node = await require_account(db, cursor)
        cursor = node.parent_id


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_account(
    db: AsyncSession,
    *,
    account_code: str,
    account_name: str,
    account_type: AccountType,
    parent_id: int | None = None,
    description: str | None = None,
    is_active: bool = True,
) -> Account:
    """Create a ledger account with a zero balance."""
    code = (account_code or "").strip()
    if not code:
        raise ValidationError("Account code is required")
    if not (account_name or "").strip():
        raise ValidationError("Account name is required")

    if parent_id is not None:
        await require_account(db, parent_id)

    if await get_account_by_code(db, code):
        raise ValidationError(f"Account code '{code}' already exists")

    account = Account(
        account_code=code,
        account_name=account_name.strip(),
        account_type=AccountType(account_type),
        parent_id=parent_id,
        balance=ZERO,
        is_active=is_active,
        description=description,
    )
    try:
        async with db.begin_nested():
            db.add(account)
            await db.flush()
    except IntegrityError as exc:
        # A concurrent writer inserted the same code after the check above
        if await get_account_by_code(db, code) is None:
            raise
        raise ValidationError(f"Account code '{code}' already exists") from exc
    logger.info("Created account %s: %s", account.account_code, account.account_name)
    return account


async def set_parent(db: AsyncSession, account_id: int, parent_id: int | None) -> Account:
    """Attach an account to a parent (or detach it with ``None``)."""
    account = await require_account(db, account_id)
    if parent_id is not None:
        await _assert_no_cycle(db, account_id, parent_id)
    account.parent_id = parent_id
    await db.flush()
    logger.info("Account %s parent set to %s", account.account_code, parent_id)
    return account


async def deactivate_account(db: AsyncSession, account_id: int) -> Account:
    account = await require_account(db, account_id)
    account.is_active = False
    await db.flush()
    logger.info("Deactivated account %s", account.account_code)
    return account


async def activate_account(db: AsyncSession, account_id: int) -> Account:
    account = await require_account(db, account_id)
    account.is_active = True
    await db.flush()
    logger.info("Activated account %s", account.account_code)
    return account


# ---------------------------------------------------------------------------
# Balance reconstruction
# ---------------------------------------------------------------------------

async def compute_balance_from_history(db: AsyncSession, account_id: int) -> Decimal:
    """Signed sum of every applied journal line touching the account."""
    account = await require_account(db, account_id)
    result = await db.execute(
        select(
            sa_func.coalesce(sa_func.sum(JournalEntryLine.debit_amount), 0),
            sa_func.coalesce(sa_func.sum(JournalEntryLine.credit_amount), 0),
        )
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .where(
            JournalEntryLine.account_id == account_id,
            JournalEntry.status.in_(APPLIED_STATUSES),
        )
    )
    debit_total, credit_total = result.one()
    return signed_amount(account.account_type, debit_total, credit_total)


async def verify_balances(db: AsyncSession) -> list[BalanceDrift]:
    """Compare every stored balance with the one rebuilt from history."""
    totals_result = await db.execute(
        select(
            JournalEntryLine.account_id,
            sa_func.sum(JournalEntryLine.debit_amount),
            sa_func.sum(JournalEntryLine.credit_amount),
        )
        .join(JournalEntry, JournalEntry.id == JournalEntryLine.journal_entry_id)
        .where(JournalEntry.status.in_(APPLIED_STATUSES))
        .group_by(JournalEntryLine.account_id)
    )
    totals = {row[0]: (row[1], row[2]) for row in totals_result.all()}

    accounts_result = await db.execute(select(Account).order_by(Account.account_code))
    drifts: list[BalanceDrift] = []
    for account in accounts_result.scalars().all():
        dr, cr = totals.get(account.id, (ZERO, ZERO))
        computed = signed_amount(account.account_type, dr, cr)
        stored = to_money(account.balance)
        if stored != computed:
            logger.warning(
                "Balance drift on %s: stored=%s computed=%s",
                account.account_code, stored, computed,
            )
            drifts.append(BalanceDrift(account.id, account.account_code, stored, computed))
    return drifts
