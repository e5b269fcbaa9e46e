"""Celery task definitions for the nightly financial jobs."""

from celery import Celery
from celery.schedules import crontab

from leasecore.config import settings

celery_app = Celery(
    "leasecore",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.celery_timezone,
    enable_utc=True,
)

# Periodic beat schedule; late fees run after the overdue sweep has flagged
celery_app.conf.beat_schedule = {
    "sweep-overdue-installments": {
        "task": "leasecore.tasks.ledger_tasks.sweep_overdue_installments",
        "schedule": crontab(hour=settings.overdue_sweep_hour, minute=0),
    },
    "assess-late-fees": {
        "task": "leasecore.tasks.ledger_tasks.assess_late_fees",
        "schedule": crontab(hour=settings.overdue_sweep_hour, minute=30),
    },
    "report-overdue-commissions": {
        "task": "leasecore.tasks.ledger_tasks.report_overdue_commissions",
        "schedule": crontab(hour=7, minute=0),
    },
    "verify-ledger-balances": {
        "task": "leasecore.tasks.ledger_tasks.verify_ledger_balances",
        "schedule": crontab(hour=2, minute=0),
    },
}

# Import tasks so they get registered
from leasecore.tasks.ledger_tasks import *  # noqa
