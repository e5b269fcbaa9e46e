"""Shared fixtures: a throwaway SQLite database per test, a fixed clock and
a seeded chart of accounts.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leasecore.clock import FixedClock
from leasecore.database import Base
from leasecore.models import LeaseAgreement, LeaseStatus, Manufacturer
from leasecore.seed_ledger import seed_ledger_data
from leasecore.services.ledger import coa_service
import leasecore.models  # noqa: F401

TODAY = date(2025, 3, 15)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'leasecore.db'}")

    # pysqlite/aiosqlite manage BEGIN themselves, which breaks SAVEPOINT;
    # hand transaction control back to SQLAlchemy.
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
async def accounts(db):
    """Default chart of accounts keyed by account code."""
    await seed_ledger_data(db)
    return {a.account_code: a for a in await coa_service.list_accounts(db)}


@pytest.fixture
async def manufacturer(db):
    m = Manufacturer(name="Kampala Tractors Ltd", commission_rate=Decimal("10.00"), is_active=True)
    db.add(m)
    await db.flush()
    return m


@pytest.fixture
async def agreement(db, manufacturer):
    """Twelve months at 300.00, starting 2025-01-01, 5% late fee, 5-day grace."""
    a = LeaseAgreement(
        agreement_number="LA-2025-0001",
        client_id=7,
        manufacturer_id=manufacturer.id,
        lease_start_date=date(2025, 1, 1),
        lease_end_date=date(2026, 1, 1),
        lease_duration_months=12,
        monthly_payment=Decimal("300.00"),
        total_lease_amount=Decimal("3600.00"),
        late_fee_percentage=Decimal("5.00"),
        grace_period_days=5,
        currency="UGX",
        status=LeaseStatus.ACTIVE,
    )
    db.add(a)
    await db.flush()
    await db.commit()
    return a
