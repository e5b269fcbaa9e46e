"""Transition tables for every lifecycle the financial core enforces.

A :class:`StateMachine` is a whitelist: any move not listed is rejected with
:class:`InvalidStateTransition` before anything is written.
"""

import enum
from typing import Generic, TypeVar

from leasecore.models.commission import CommissionStatus
from leasecore.models.ledger import JournalEntryStatus
from leasecore.models.payment import PaymentStatus, ScheduleStatus
from leasecore.services.errors import InvalidStateTransition

S = TypeVar("S", bound=enum.Enum)


class StateMachine(Generic[S]):
    def __init__(self, name: str, transitions: dict[S, frozenset[S]]):
        self.name = name
        self._transitions = transitions

    def allowed(self, current: S) -> frozenset[S]:
        return self._transitions.get(current, frozenset())

    def can_transition(self, current: S, target: S) -> bool:
        return target in self.allowed(current)

    def is_terminal(self, state: S) -> bool:
        return not self.allowed(state)

    def assert_transition(self, current: S, target: S, *, subject: str = "") -> None:
        if self.can_transition(current, target):
            return
        label = f"{self.name} {subject}".strip()
        allowed = ", ".join(sorted(s.value for s in self.allowed(current))) or "none"
        raise InvalidStateTransition(
            f"Cannot move {label} from {current.value} to {target.value} "
            f"(allowed: {allowed})"
        )


JOURNAL_ENTRY_FLOW: StateMachine[JournalEntryStatus] = StateMachine(
    "journal entry",
    {
        JournalEntryStatus.DRAFT: frozenset({JournalEntryStatus.POSTED}),
        JournalEntryStatus.POSTED: frozenset({JournalEntryStatus.REVERSED}),
        JournalEntryStatus.REVERSED: frozenset(),
    },
)

# A payment against an overdue or partial installment either settles it or
# leaves it partial; nothing ever returns to PENDING.
SCHEDULE_FLOW: StateMachine[ScheduleStatus] = StateMachine(
    "installment",
    {
        ScheduleStatus.PENDING: frozenset({
            ScheduleStatus.PARTIAL,
            ScheduleStatus.PAID,
            ScheduleStatus.OVERDUE,
            ScheduleStatus.WAIVED,
        }),
        ScheduleStatus.PARTIAL: frozenset({
            ScheduleStatus.PARTIAL,
            ScheduleStatus.PAID,
            ScheduleStatus.WAIVED,
        }),
        ScheduleStatus.OVERDUE: frozenset({
            ScheduleStatus.PARTIAL,
            ScheduleStatus.PAID,
            ScheduleStatus.WAIVED,
        }),
        ScheduleStatus.PAID: frozenset({ScheduleStatus.WAIVED}),
        ScheduleStatus.WAIVED: frozenset(),
    },
)

PAYMENT_FLOW: StateMachine[PaymentStatus] = StateMachine(
    "payment",
    {
        PaymentStatus.PENDING: frozenset({
            PaymentStatus.PROCESSING,
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }),
        PaymentStatus.PROCESSING: frozenset({
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }),
        PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
        PaymentStatus.FAILED: frozenset(),
        PaymentStatus.CANCELLED: frozenset(),
        PaymentStatus.REFUNDED: frozenset(),
    },
)

COMMISSION_FLOW: StateMachine[CommissionStatus] = StateMachine(
    "commission",
    {
        CommissionStatus.PENDING: frozenset({
            CommissionStatus.APPROVED,
            CommissionStatus.CANCELLED,
        }),
        CommissionStatus.APPROVED: frozenset({
            CommissionStatus.PAID,
            CommissionStatus.CANCELLED,
        }),
        CommissionStatus.PAID: frozenset(),
        CommissionStatus.CANCELLED: frozenset(),
    },
)
