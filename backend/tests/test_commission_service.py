"""Tests for the manufacturer commission calculator.

Tests cover:
- Amount always derived from base and rate
- Rate and base validation
- Pending-only edits
- Approval, payment and cancellation workflow
- Due / overdue listings and per-manufacturer totals
"""

import pytest
from datetime import date
from decimal import Decimal

from leasecore.models.commission import CommissionStatus
from leasecore.services import commission_service
from leasecore.services.errors import InvalidStateTransition, NotFound, ValidationError


async def _commission(db, clock, agreement, base="1000.00", **kwargs):
    return await commission_service.create_commission(
        db,
        manufacturer_id=agreement.manufacturer_id,
        lease_agreement_id=agreement.id,
        base_amount=base,
        clock=clock,
        **kwargs,
    )


# ===================================================================
# Calculation
# ===================================================================


class TestCalculateCommission:
    def test_ten_percent(self):
        assert commission_service.calculate_commission("1000.00", "10.00") == Decimal("100.00")

    def test_rounds_half_up(self):
        assert commission_service.calculate_commission("0.25", "10") == Decimal("0.03")

    def test_zero_rate(self):
        assert commission_service.calculate_commission("1000", 0) == Decimal("0.00")

    @pytest.mark.parametrize("rate", ["-1", "100.01"])
    def test_rate_out_of_range(self, rate):
        with pytest.raises(ValidationError, match="between 0 and 100"):
            commission_service.calculate_commission("1000", rate)

    def test_negative_base(self):
        with pytest.raises(ValidationError):
            commission_service.calculate_commission("-1", "10")


# ===================================================================
# Create / update
# ===================================================================


class TestCreateCommission:
    @pytest.mark.asyncio
    async def test_defaults_from_manufacturer_and_clock(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        assert commission.commission_rate == Decimal("10.00")
        assert commission.commission_amount == Decimal("100.00")
        assert commission.status == CommissionStatus.PENDING
        assert commission.currency == "UGX"
        assert commission.calculation_date == date(2025, 3, 15)
        assert commission.due_date == date(2025, 4, 14)

    @pytest.mark.asyncio
    async def test_explicit_rate(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement, commission_rate="2.5")
        assert commission.commission_amount == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_unknown_manufacturer(self, db, clock, agreement):
        with pytest.raises(NotFound):
            await commission_service.create_commission(
                db, manufacturer_id=999, lease_agreement_id=agreement.id,
                base_amount="10", clock=clock,
            )


class TestUpdateCommission:
    @pytest.mark.asyncio
    async def test_base_change_recomputes_amount(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        updated = await commission_service.update_commission(
            db, commission.id, base_amount="2000.00"
        )
        assert updated.commission_amount == Decimal("200.00")

    @pytest.mark.asyncio
    async def test_rate_change_recomputes_amount(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        updated = await commission_service.update_commission(
            db, commission.id, commission_rate="12.5", notes="Promo rate"
        )
        assert updated.commission_amount == Decimal("125.00")
        assert updated.notes == "Promo rate"

    @pytest.mark.asyncio
    async def test_approved_commission_is_frozen(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        await commission_service.approve(db, commission.id)
        with pytest.raises(InvalidStateTransition, match="only pending"):
            await commission_service.update_commission(db, commission.id, base_amount="5")


# ===================================================================
# Workflow
# ===================================================================


class TestWorkflow:
    @pytest.mark.asyncio
    async def test_approve_then_pay(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        await commission_service.approve(db, commission.id)
        paid = await commission_service.mark_paid(
            db, commission.id, payment_reference="EFT-2025-0311", clock=clock
        )
        assert paid.status == CommissionStatus.PAID
        assert paid.paid_date == date(2025, 3, 15)
        assert paid.payment_reference == "EFT-2025-0311"

    @pytest.mark.asyncio
    async def test_pending_cannot_be_paid(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        with pytest.raises(InvalidStateTransition):
            await commission_service.mark_paid(db, commission.id, clock=clock)

    @pytest.mark.asyncio
    async def test_paid_cannot_be_cancelled(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement)
        await commission_service.approve(db, commission.id)
        await commission_service.mark_paid(db, commission.id, clock=clock)
        with pytest.raises(InvalidStateTransition):
            await commission_service.cancel(db, commission.id)

    @pytest.mark.asyncio
    async def test_cancel_appends_reason(self, db, clock, agreement):
        commission = await _commission(db, clock, agreement, notes="Q1 deal")
        cancelled = await commission_service.cancel(db, commission.id, reason="Lease voided")
        assert cancelled.status == CommissionStatus.CANCELLED
        assert cancelled.notes == "Q1 deal\nLease voided"

    @pytest.mark.asyncio
    async def test_missing_commission(self, db):
        with pytest.raises(NotFound):
            await commission_service.approve(db, 999)


# ===================================================================
# Reporting
# ===================================================================


class TestReporting:
    @pytest.mark.asyncio
    async def test_due_and_overdue(self, db, clock, agreement):
        overdue = await _commission(db, clock, agreement, due_date=date(2025, 3, 1))
        due_today = await _commission(db, clock, agreement, due_date=date(2025, 3, 15))
        await _commission(db, clock, agreement, due_date=date(2025, 4, 1))
        settled = await _commission(db, clock, agreement, due_date=date(2025, 2, 1))
        await commission_service.cancel(db, settled.id)

        due = await commission_service.list_due(db, clock=clock)
        assert [c.id for c in due] == [overdue.id, due_today.id]

        late = await commission_service.list_overdue(db, clock=clock)
        assert [c.id for c in late] == [overdue.id]

    @pytest.mark.asyncio
    async def test_manufacturer_totals(self, db, clock, agreement):
        paid = await _commission(db, clock, agreement, base="1000")
        await commission_service.approve(db, paid.id)
        await commission_service.mark_paid(db, paid.id, clock=clock)
        await _commission(db, clock, agreement, base="500")
        approved = await _commission(db, clock, agreement, base="200")
        await commission_service.approve(db, approved.id)
        cancelled = await _commission(db, clock, agreement, base="9000")
        await commission_service.cancel(db, cancelled.id)

        totals = await commission_service.manufacturer_totals(db, agreement.manufacturer_id)
        assert totals.earned == Decimal("100.00")
        assert totals.pending == Decimal("70.00")

    @pytest.mark.asyncio
    async def test_totals_for_unknown_manufacturer(self, db):
        with pytest.raises(NotFound):
            await commission_service.manufacturer_totals(db, 999)
