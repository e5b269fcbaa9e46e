"""Celery periodic tasks for installments, commissions and ledger checks.

Each task is a synchronous Celery task wrapping an async inner function that
runs against one session: commit on success, rollback and re-raise on error.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leasecore.clock import system_clock
from leasecore.config import settings
from leasecore.services import commission_service, schedule_manager
from leasecore.services.ledger import coa_service
from leasecore.tasks import celery_app

logger = logging.getLogger(__name__)

__all__ = [
    "sweep_overdue_installments",
    "assess_late_fees",
    "report_overdue_commissions",
    "verify_ledger_balances",
]


def _run(work: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
    """Run *work* in a fresh event loop with its own engine and session."""

    async def _inner():
        engine = create_async_engine(settings.database_url)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with session_factory() as db:
                try:
                    result = await work(db)
                    await db.commit()
                    return result
                except Exception:
                    await db.rollback()
                    raise
        finally:
            await engine.dispose()

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(_inner())
    finally:
        loop.close()


@celery_app.task(name="leasecore.tasks.ledger_tasks.sweep_overdue_installments")
def sweep_overdue_installments() -> dict:
    """Flag every past-due pending installment as overdue."""

    async def work(db: AsyncSession) -> dict:
        flagged = await schedule_manager.sweep_overdue(db, clock=system_clock)
        return {"as_of": system_clock.today().isoformat(), "flagged": flagged}

    return _run(work)


@celery_app.task(name="leasecore.tasks.ledger_tasks.assess_late_fees")
def assess_late_fees() -> dict:
    """Charge late fees on overdue installments whose grace period has lapsed."""

    async def work(db: AsyncSession) -> dict:
        charged = await schedule_manager.assess_late_fees(db, clock=system_clock)
        return {
            "as_of": system_clock.today().isoformat(),
            "charged": len(charged),
            "schedule_ids": [s.id for s in charged],
        }

    return _run(work)


@celery_app.task(name="leasecore.tasks.ledger_tasks.report_overdue_commissions")
def report_overdue_commissions() -> dict:
    """Log open commissions that are past their due date."""

    async def work(db: AsyncSession) -> dict:
        overdue = await commission_service.list_overdue(db, clock=system_clock)
        for commission in overdue:
            logger.warning(
                "Commission %d for manufacturer %d overdue since %s (%s %s)",
                commission.id, commission.manufacturer_id, commission.due_date,
                commission.commission_amount, commission.currency,
            )
        return {"overdue": len(overdue), "commission_ids": [c.id for c in overdue]}

    return _run(work)


@celery_app.task(name="leasecore.tasks.ledger_tasks.verify_ledger_balances")
def verify_ledger_balances() -> dict:
    """Rebuild every account balance from posted history and report drift."""

    async def work(db: AsyncSession) -> dict:
        drifts = await coa_service.verify_balances(db)
        if drifts:
            logger.error("Ledger balance verification found %d drifting accounts", len(drifts))
        else:
            logger.info("Ledger balance verification passed")
        return {
            "drifting_accounts": [
                {
                    "account_code": d.account_code,
                    "stored": str(d.stored),
                    "computed": str(d.computed),
                }
                for d in drifts
            ]
        }

    return _run(work)
