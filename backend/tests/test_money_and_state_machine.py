"""Tests for the pure building blocks of the financial core.

Tests cover:
- Money coercion and rounding (ROUND_HALF_UP to cents)
- Signed balance effects per account type
- Balance tolerance
- Lifecycle transition tables
- Injectable clock
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from leasecore.clock import FixedClock
from leasecore.models.commission import CommissionStatus
from leasecore.models.ledger import AccountType, JournalEntryStatus
from leasecore.models.payment import PaymentStatus, ScheduleStatus
from leasecore.services.errors import InvalidStateTransition, ValidationError
from leasecore.services.money import (
    is_balanced,
    non_negative,
    percent_of,
    positive,
    signed_amount,
    to_money,
)
from leasecore.services.state_machine import (
    COMMISSION_FLOW,
    JOURNAL_ENTRY_FLOW,
    PAYMENT_FLOW,
    SCHEDULE_FLOW,
)


# ===================================================================
# Money
# ===================================================================


class TestToMoney:
    def test_rounds_half_up(self):
        assert to_money("2.345") == Decimal("2.35")
        assert to_money("2.344") == Decimal("2.34")

    def test_float_goes_through_str(self):
        assert to_money(0.1) == Decimal("0.10")

    def test_none_is_zero(self):
        assert to_money(None) == Decimal("0.00")

    def test_garbage_rejected(self):
        with pytest.raises(ValidationError):
            to_money("twelve")

    def test_infinity_rejected(self):
        with pytest.raises(ValidationError):
            to_money(Decimal("Infinity"))

    def test_non_negative_and_positive(self):
        assert non_negative(0, "Fee") == Decimal("0.00")
        with pytest.raises(ValidationError, match="Fee cannot be negative"):
            non_negative("-1", "Fee")
        with pytest.raises(ValidationError, match="greater than zero"):
            positive(0, "Amount")


class TestPercentOf:
    def test_commission_example(self):
        assert percent_of(Decimal("300.00"), Decimal("10.00")) == Decimal("30.00")

    def test_rounding_half_up(self):
        # 333.33 * 7.5% = 24.99975
        assert percent_of("333.33", "7.5") == Decimal("25.00")


class TestSignedAmount:
    @pytest.mark.parametrize("account_type", [AccountType.ASSET, AccountType.EXPENSE])
    def test_debit_normal(self, account_type):
        assert signed_amount(account_type, 100, 0) == Decimal("100.00")
        assert signed_amount(account_type, 0, 40) == Decimal("-40.00")

    @pytest.mark.parametrize(
        "account_type", [AccountType.LIABILITY, AccountType.EQUITY, AccountType.INCOME]
    )
    def test_credit_normal(self, account_type):
        assert signed_amount(account_type, 0, 100) == Decimal("100.00")
        assert signed_amount(account_type, 40, 0) == Decimal("-40.00")


class TestIsBalanced:
    def test_within_default_tolerance(self):
        assert is_balanced(Decimal("100.00"), Decimal("100.01"))

    def test_outside_tolerance(self):
        assert not is_balanced(Decimal("100.00"), Decimal("100.02"))

    def test_explicit_tolerance(self):
        assert not is_balanced("1.00", "1.01", tolerance=Decimal("0"))


# ===================================================================
# State machines
# ===================================================================


class TestJournalEntryFlow:
    def test_draft_to_posted(self):
        JOURNAL_ENTRY_FLOW.assert_transition(JournalEntryStatus.DRAFT, JournalEntryStatus.POSTED)

    def test_draft_cannot_be_reversed(self):
        with pytest.raises(InvalidStateTransition, match="from draft to reversed"):
            JOURNAL_ENTRY_FLOW.assert_transition(
                JournalEntryStatus.DRAFT, JournalEntryStatus.REVERSED
            )

    def test_reversed_is_terminal(self):
        assert JOURNAL_ENTRY_FLOW.is_terminal(JournalEntryStatus.REVERSED)


class TestScheduleFlow:
    def test_nothing_returns_to_pending(self):
        for state in ScheduleStatus:
            assert not SCHEDULE_FLOW.can_transition(state, ScheduleStatus.PENDING)

    def test_paid_only_to_waived(self):
        assert SCHEDULE_FLOW.allowed(ScheduleStatus.PAID) == frozenset({ScheduleStatus.WAIVED})

    def test_overdue_can_be_paid(self):
        assert SCHEDULE_FLOW.can_transition(ScheduleStatus.OVERDUE, ScheduleStatus.PAID)
        assert SCHEDULE_FLOW.can_transition(ScheduleStatus.OVERDUE, ScheduleStatus.PARTIAL)


class TestPaymentFlow:
    def test_completed_only_to_refunded(self):
        assert PAYMENT_FLOW.allowed(PaymentStatus.COMPLETED) == frozenset({PaymentStatus.REFUNDED})

    @pytest.mark.parametrize(
        "state", [PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.REFUNDED]
    )
    def test_terminal_states(self, state):
        assert PAYMENT_FLOW.is_terminal(state)


class TestCommissionFlow:
    def test_pending_cannot_be_paid_directly(self):
        with pytest.raises(InvalidStateTransition):
            COMMISSION_FLOW.assert_transition(CommissionStatus.PENDING, CommissionStatus.PAID)

    def test_approved_can_be_cancelled(self):
        assert COMMISSION_FLOW.can_transition(CommissionStatus.APPROVED, CommissionStatus.CANCELLED)


# ===================================================================
# Clock
# ===================================================================


class TestFixedClock:
    def test_date_is_noon_utc(self):
        clock = FixedClock(date(2025, 3, 15))
        assert clock.now() == datetime(2025, 3, 15, 12, tzinfo=timezone.utc)
        assert clock.today() == date(2025, 3, 15)

    def test_naive_datetime_assumed_utc(self):
        clock = FixedClock(datetime(2025, 3, 15, 8, 30))
        assert clock.now().tzinfo is timezone.utc

    def test_advance(self):
        clock = FixedClock(date(2025, 3, 15))
        clock.advance(days=20)
        assert clock.today() == date(2025, 4, 4)
