"""SQLAlchemy models for the leasing financial core."""

from leasecore.models.ledger import (
    Account,
    AccountType,
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    ReferenceKind,
)
from leasecore.models.lease import LeaseAgreement, LeaseStatus, Manufacturer
from leasecore.models.payment import (
    Payment,
    PaymentMethod,
    PaymentSchedule,
    PaymentStatus,
    PaymentType,
    ScheduleStatus,
)
from leasecore.models.commission import Commission, CommissionStatus, CommissionType

__all__ = [
    # General Ledger
    "Account",
    "AccountType",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "ReferenceKind",
    # Leases
    "LeaseAgreement",
    "LeaseStatus",
    "Manufacturer",
    # Payments
    "Payment",
    "PaymentMethod",
    "PaymentSchedule",
    "PaymentStatus",
    "PaymentType",
    "ScheduleStatus",
    # Commissions
    "Commission",
    "CommissionStatus",
    "CommissionType",
]
