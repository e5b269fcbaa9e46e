"""Tests for the Celery periodic jobs.

The tasks are called synchronously, the way a worker runs them, against a
throwaway SQLite file.
"""

import pytest
from datetime import date
from decimal import Decimal

from leasecore.config import settings
from leasecore.database import Base
from leasecore.models import LeaseAgreement, LeaseStatus, Manufacturer
from leasecore.seed_ledger import seed_ledger_data
from leasecore.services import schedule_manager
from leasecore.tasks import celery_app, ledger_tasks


@pytest.fixture
def task_db(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}")

    async def setup(db):
        await db.run_sync(lambda session: Base.metadata.create_all(session.connection()))
        await seed_ledger_data(db)
        manufacturer = Manufacturer(name="Nile Equipment", commission_rate=Decimal("8.00"))
        db.add(manufacturer)
        await db.flush()
        agreement = LeaseAgreement(
            agreement_number="LA-2020-0001",
            client_id=1,
            manufacturer_id=manufacturer.id,
            lease_start_date=date(2020, 1, 1),
            lease_end_date=date(2020, 4, 1),
            lease_duration_months=3,
            monthly_payment=Decimal("250.00"),
            total_lease_amount=Decimal("750.00"),
            currency="UGX",
            status=LeaseStatus.ACTIVE,
        )
        db.add(agreement)
        await db.flush()
        await schedule_manager.generate_schedule(db, agreement.id)

    ledger_tasks._run(setup)


class TestBeatSchedule:
    def test_jobs_registered(self):
        for name in ledger_tasks.__all__:
            assert f"leasecore.tasks.ledger_tasks.{name}" in celery_app.tasks

    def test_late_fees_run_after_sweep(self):
        schedule = celery_app.conf.beat_schedule
        assert set(schedule) == {
            "sweep-overdue-installments",
            "assess-late-fees",
            "report-overdue-commissions",
            "verify-ledger-balances",
        }
        sweep = schedule["sweep-overdue-installments"]["schedule"]
        assess = schedule["assess-late-fees"]["schedule"]
        assert sweep.hour == assess.hour
        assert min(sweep.minute) < min(assess.minute)


class TestNightlyJobs:
    def test_sweep_then_assess(self, task_db):
        swept = ledger_tasks.sweep_overdue_installments()
        assert swept["flagged"] == 3

        assessed = ledger_tasks.assess_late_fees()
        assert assessed["charged"] == 3
        assert ledger_tasks.assess_late_fees()["charged"] == 0

    def test_verify_clean_ledger(self, task_db):
        assert ledger_tasks.verify_ledger_balances() == {"drifting_accounts": []}

    def test_no_overdue_commissions(self, task_db):
        assert ledger_tasks.report_overdue_commissions() == {"overdue": 0, "commission_ids": []}

    def test_failure_rolls_back(self, task_db):
        async def boom(db):
            await schedule_manager.sweep_overdue(db)
            raise RuntimeError("worker crashed")

        with pytest.raises(RuntimeError):
            ledger_tasks._run(boom)
        assert ledger_tasks.sweep_overdue_installments()["flagged"] == 3
