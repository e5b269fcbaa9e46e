"""Seed data for the general ledger.

Creates the default Chart of Accounts (idempotent).  Settlement relies on the
cash, lease revenue, late-fee income and processing-fee accounts configured
in ``settings``; their default codes (1100, 4100, 4200, 5200) are part of this
chart.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from leasecore.models.ledger import Account, AccountType
from leasecore.services.ledger import coa_service

logger = logging.getLogger(__name__)


async def _get_or_create_account(
    db: AsyncSession,
    *,
    code: str,
    name: str,
    account_type: AccountType,
    parent: Account | None = None,
    description: str | None = None,
) -> Account:
    account = await coa_service.get_account_by_code(db, code)
    if account:
        return account
    return await coa_service.create_account(
        db,
        account_code=code,
        account_name=name,
        account_type=account_type,
        parent_id=parent.id if parent else None,
        description=description,
    )


async def _seed_coa(db: AsyncSession) -> None:
    A = AccountType.ASSET
    L = AccountType.LIABILITY
    E = AccountType.EQUITY
    I = AccountType.INCOME
    X = AccountType.EXPENSE

    # Top-level groups
    assets = await _get_or_create_account(db, code="1000", name="Assets",      account_type=A)
    liabs  = await _get_or_create_account(db, code="2000", name="Liabilities", account_type=L)
    equity = await _get_or_create_account(db, code="3000", name="Equity",      account_type=E)
    income = await _get_or_create_account(db, code="4000", name="Income",      account_type=I)
    exp    = await _get_or_create_account(db, code="5000", name="Expenses",    account_type=X)

    # Assets
    await _get_or_create_account(db, code="1100", name="Cash and Bank",            account_type=A, parent=assets,
                                 description="Net cash received from lease payments")
    await _get_or_create_account(db, code="1200", name="Lease Receivables",        account_type=A, parent=assets)
    await _get_or_create_account(db, code="1300", name="Leased Equipment",         account_type=A, parent=assets)

    # Liabilities
    await _get_or_create_account(db, code="2100", name="Commissions Payable",      account_type=L, parent=liabs)
    await _get_or_create_account(db, code="2200", name="Security Deposits Held",   account_type=L, parent=liabs)

    # Equity
    await _get_or_create_account(db, code="3100", name="Share Capital",            account_type=E, parent=equity)
    await _get_or_create_account(db, code="3200", name="Retained Earnings",        account_type=E, parent=equity)

    # Income
    await _get_or_create_account(db, code="4100", name="Lease Revenue",            account_type=I, parent=income,
                                 description="Gross amount of settled lease payments")
    await _get_or_create_account(db, code="4200", name="Late Fee Income",          account_type=I, parent=income)

    # Expenses
    await _get_or_create_account(db, code="5100", name="Commission Expense",       account_type=X, parent=exp)
    await _get_or_create_account(db, code="5200", name="Payment Processing Fees",  account_type=X, parent=exp,
                                 description="Gateway and mobile-money fees withheld from payments")


async def seed_ledger_data(db: AsyncSession) -> None:
    """Seed the default Chart of Accounts (idempotent)."""
    await _seed_coa(db)
    await db.commit()
    logger.info("Ledger seed data applied (chart of accounts)")
