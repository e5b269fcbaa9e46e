"""Tests for the journal entry store.

Tests cover:
- Entry number format and per-month sequencing
- Line validation (one side positive, active accounts)
- Totals recomputed on every line change
- Drafts are editable; posted entries are immutable
- Entry-number collisions retried under a savepoint
"""

import pytest
from datetime import date
from decimal import Decimal

from leasecore.models.ledger import JournalEntryStatus, ReferenceKind
from leasecore.services.errors import (
    ConcurrencyConflict,
    ImmutableEntryError,
    NotFound,
    ValidationError,
)
from leasecore.services.ledger import coa_service, journal_engine, poster
from leasecore.services.ledger.journal_engine import EntryReference


async def _draft(db, clock, description="Office supplies"):
    return await journal_engine.create_entry(db, description=description, clock=clock)


# ===================================================================
# Entry numbers
# ===================================================================


class TestEntryNumbers:
    def test_prefix(self):
        assert journal_engine.entry_number_prefix(date(2025, 3, 1)) == "JE202503"

    @pytest.mark.asyncio
    async def test_sequence_within_month(self, db, clock):
        first = await _draft(db, clock)
        second = await _draft(db, clock)
        assert first.entry_number == "JE202503001"
        assert second.entry_number == "JE202503002"

    @pytest.mark.asyncio
    async def test_sequence_restarts_each_month(self, db, clock):
        await _draft(db, clock)
        clock.advance(days=20)
        entry = await _draft(db, clock)
        assert entry.entry_number == "JE202504001"

    @pytest.mark.asyncio
    async def test_sequence_past_999(self, db, clock):
        entry = await _draft(db, clock)
        entry.entry_number = "JE202503999"
        await db.flush()
        assert await journal_engine.next_entry_number(db, clock=clock) == "JE2025031000"

    @pytest.mark.asyncio
    async def test_collision_is_retried(self, db, clock, monkeypatch):
        await _draft(db, clock)
        numbers = iter(["JE202503001", "JE202503002"])

        async def racing_number(session, *, clock):
            return next(numbers)

        monkeypatch.setattr(journal_engine, "next_entry_number", racing_number)
        entry = await _draft(db, clock, "Second")
        assert entry.entry_number == "JE202503002"

    @pytest.mark.asyncio
    async def test_collision_exhausts_retries(self, db, clock, monkeypatch):
        await _draft(db, clock)

        async def always_taken(session, *, clock):
            return "JE202503001"

        monkeypatch.setattr(journal_engine, "next_entry_number", always_taken)
        with pytest.raises(ConcurrencyConflict):
            await _draft(db, clock, "Doomed")


# ===================================================================
# Creation
# ===================================================================


class TestCreateEntry:
    @pytest.mark.asyncio
    async def test_new_entry_is_empty_draft(self, db, clock):
        entry = await journal_engine.create_entry(
            db,
            description="  Equipment delivery  ",
            reference=EntryReference(ReferenceKind.LEASE_AGREEMENT, 42),
            created_by=3,
            currency="ugx",
            clock=clock,
        )
        assert entry.status == JournalEntryStatus.DRAFT
        assert entry.description == "Equipment delivery"
        assert entry.transaction_date == date(2025, 3, 15)
        assert entry.currency == "UGX"
        assert entry.reference_kind == ReferenceKind.LEASE_AGREEMENT
        assert entry.reference_id == 42
        assert entry.total_debit == Decimal("0.00")
        assert entry.lines == []

    @pytest.mark.asyncio
    async def test_description_required(self, db, clock):
        with pytest.raises(ValidationError, match="description is required"):
            await journal_engine.create_entry(db, description=" ", clock=clock)

    @pytest.mark.asyncio
    async def test_require_missing_entry(self, db):
        with pytest.raises(NotFound):
            await journal_engine.require_entry(db, 999)


# ===================================================================
# Lines
# ===================================================================


class TestLines:
    @pytest.mark.asyncio
    async def test_add_lines_updates_totals(self, db, clock, accounts):
        entry = await _draft(db, clock)
        await journal_engine.add_line(db, entry.id, account_id=accounts["5100"].id, debit="120")
        entry = await journal_engine.add_line(
            db, entry.id, account_id=accounts["1100"].id, credit="100"
        )
        assert [ln.line_number for ln in entry.lines] == [1, 2]
        assert entry.total_debit == Decimal("120.00")
        assert entry.total_credit == Decimal("100.00")
        assert entry.difference == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_both_sides_rejected(self, db, clock, accounts):
        entry = await _draft(db, clock)
        with pytest.raises(ValidationError, match="both a debit and a credit"):
            await journal_engine.add_line(
                db, entry.id, account_id=accounts["1100"].id, debit=10, credit=10
            )

    @pytest.mark.asyncio
    async def test_zero_line_rejected(self, db, clock, accounts):
        entry = await _draft(db, clock)
        with pytest.raises(ValidationError, match="non-zero"):
            await journal_engine.add_line(db, entry.id, account_id=accounts["1100"].id)

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, db, clock, accounts):
        entry = await _draft(db, clock)
        with pytest.raises(ValidationError, match="negative"):
            await journal_engine.add_line(
                db, entry.id, account_id=accounts["1100"].id, debit="-5"
            )

    @pytest.mark.asyncio
    async def test_inactive_account_rejected(self, db, clock, accounts):
        await coa_service.deactivate_account(db, accounts["1300"].id)
        entry = await _draft(db, clock)
        with pytest.raises(ValidationError, match="inactive"):
            await journal_engine.add_line(db, entry.id, account_id=accounts["1300"].id, debit=5)

    @pytest.mark.asyncio
    async def test_unknown_account_rejected(self, db, clock, accounts):
        entry = await _draft(db, clock)
        with pytest.raises(NotFound):
            await journal_engine.add_line(db, entry.id, account_id=999, debit=5)

    @pytest.mark.asyncio
    async def test_update_line(self, db, clock, accounts):
        entry = await _draft(db, clock)
        entry = await journal_engine.add_line(
            db, entry.id, account_id=accounts["5100"].id, debit="120"
        )
        line_id = entry.lines[0].id

        entry = await journal_engine.update_line(
            db, line_id, account_id=accounts["5200"].id, debit="80", description="Fees"
        )
        line = entry.lines[0]
        assert line.account_id == accounts["5200"].id
        assert line.debit_amount == Decimal("80.00")
        assert line.description == "Fees"
        assert entry.total_debit == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_update_line_cannot_carry_both_sides(self, db, clock, accounts):
        entry = await _draft(db, clock)
        entry = await journal_engine.add_line(
            db, entry.id, account_id=accounts["5100"].id, debit="120"
        )
        with pytest.raises(ValidationError):
            await journal_engine.update_line(db, entry.lines[0].id, credit="50")

    @pytest.mark.asyncio
    async def test_remove_line(self, db, clock, accounts):
        entry = await _draft(db, clock)
        await journal_engine.add_line(db, entry.id, account_id=accounts["5100"].id, debit="120")
        entry = await journal_engine.add_line(
            db, entry.id, account_id=accounts["1100"].id, credit="120"
        )
        entry = await journal_engine.remove_line(db, entry.lines[0].id)
        assert len(entry.lines) == 1
        assert entry.total_debit == Decimal("0.00")
        assert entry.total_credit == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_missing_line(self, db):
        with pytest.raises(NotFound):
            await journal_engine.get_line(db, 999)


# ===================================================================
# Immutability
# ===================================================================


class TestImmutability:
    @pytest.fixture
    async def posted(self, db, clock, accounts):
        entry = await _draft(db, clock)
        await journal_engine.add_line(db, entry.id, account_id=accounts["5100"].id, debit=50)
        await journal_engine.add_line(db, entry.id, account_id=accounts["1100"].id, credit=50)
        return await poster.post_entry(db, entry.id, clock=clock)

    @pytest.mark.asyncio
    async def test_cannot_add_line(self, db, posted, accounts):
        with pytest.raises(ImmutableEntryError):
            await journal_engine.add_line(db, posted.id, account_id=accounts["1100"].id, debit=1)

    @pytest.mark.asyncio
    async def test_cannot_update_line(self, db, posted):
        with pytest.raises(ImmutableEntryError):
            await journal_engine.update_line(db, posted.lines[0].id, debit=60)

    @pytest.mark.asyncio
    async def test_cannot_remove_line(self, db, posted):
        with pytest.raises(ImmutableEntryError):
            await journal_engine.remove_line(db, posted.lines[0].id)

    @pytest.mark.asyncio
    async def test_cannot_delete(self, db, posted):
        with pytest.raises(ImmutableEntryError):
            await journal_engine.delete_entry(db, posted.id)

    @pytest.mark.asyncio
    async def test_draft_can_be_deleted(self, db, clock, accounts):
        entry = await _draft(db, clock)
        await journal_engine.add_line(db, entry.id, account_id=accounts["5100"].id, debit=50)
        await journal_engine.delete_entry(db, entry.id)
        assert await journal_engine.get_entry(db, entry.id) is None


# ===================================================================
# Listing
# ===================================================================


class TestListEntries:
    @pytest.mark.asyncio
    async def test_filters(self, db, clock, accounts):
        ref = EntryReference(ReferenceKind.PAYMENT, 11)
        await journal_engine.create_entry(db, description="Lease payment", reference=ref, clock=clock)
        await journal_engine.create_entry(
            db, description="Depreciation", transaction_date=date(2025, 2, 28), clock=clock
        )

        by_ref = await journal_engine.list_entries(db, reference=ref)
        assert [e.description for e in by_ref] == ["Lease payment"]

        march = await journal_engine.list_entries(db, start_date=date(2025, 3, 1))
        assert [e.description for e in march] == ["Lease payment"]

        found = await journal_engine.list_entries(db, search="deprec")
        assert [e.description for e in found] == ["Depreciation"]

        drafts = await journal_engine.list_entries(db, status=JournalEntryStatus.DRAFT)
        assert len(drafts) == 2
