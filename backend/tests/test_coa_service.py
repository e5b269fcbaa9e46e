"""Tests for the Chart of Accounts service.

Tests cover:
- Account creation, code uniqueness and required fields
- Hierarchy traversal (ancestors, descendants)
- Self-parenting and cycle rejection
- Activation flags
- Seeding is idempotent
"""

import pytest
from decimal import Decimal

from leasecore.models.ledger import AccountType
from leasecore.seed_ledger import seed_ledger_data
from leasecore.services.errors import NotFound, ValidationError
from leasecore.services.ledger import coa_service


# ===================================================================
# Creation
# ===================================================================


class TestCreateAccount:
    @pytest.mark.asyncio
    async def test_new_account_has_zero_balance(self, db):
        account = await coa_service.create_account(
            db, account_code="1500", account_name="Prepaid Insurance",
            account_type=AccountType.ASSET,
        )
        assert account.id is not None
        assert account.balance == Decimal("0.00")
        assert account.is_active
        assert account.is_root

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, db, accounts):
        with pytest.raises(ValidationError, match="already exists"):
            await coa_service.create_account(
                db, account_code="1100", account_name="Another Cash",
                account_type=AccountType.ASSET,
            )

    @pytest.mark.asyncio
    async def test_duplicate_code_inserted_concurrently(self, db, accounts, monkeypatch):
        real_lookup = coa_service.get_account_by_code
        calls = []

        async def lookup_before_race(session, code):
            # The first check runs before the other writer commits
            calls.append(code)
            if len(calls) == 1:
                return None
            return await real_lookup(session, code)

        monkeypatch.setattr(coa_service, "get_account_by_code", lookup_before_race)
        with pytest.raises(ValidationError, match="already exists"):
            await coa_service.create_account(
                db, account_code="1100", account_name="Another Cash",
                account_type=AccountType.ASSET,
            )
        assert calls == ["1100", "1100"]
        assert len(await coa_service.list_accounts(db)) == len(accounts)

    @pytest.mark.asyncio
    async def test_blank_code_rejected(self, db):
        with pytest.raises(ValidationError, match="code is required"):
            await coa_service.create_account(
                db, account_code="  ", account_name="Nameless", account_type=AccountType.ASSET,
            )

    @pytest.mark.asyncio
    async def test_unknown_parent_rejected(self, db):
        with pytest.raises(NotFound):
            await coa_service.create_account(
                db, account_code="9100", account_name="Orphan",
                account_type=AccountType.EXPENSE, parent_id=999,
            )


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_returns_none_when_missing(self, db):
        assert await coa_service.get_account(db, 999) is None
        assert await coa_service.get_account_by_code(db, "0000") is None

    @pytest.mark.asyncio
    async def test_require_raises_when_missing(self, db):
        with pytest.raises(NotFound):
            await coa_service.require_account(db, 999)
        with pytest.raises(NotFound):
            await coa_service.require_account_by_code(db, "0000")

    @pytest.mark.asyncio
    async def test_list_filters(self, db, accounts):
        income = await coa_service.list_accounts(db, account_type=AccountType.INCOME)
        assert [a.account_code for a in income] == ["4000", "4100", "4200"]

        roots = await coa_service.list_accounts(db, roots_only=True)
        assert [a.account_code for a in roots] == ["1000", "2000", "3000", "4000", "5000"]

        found = await coa_service.list_accounts(db, search="revenue")
        assert [a.account_code for a in found] == ["4100"]


# ===================================================================
# Hierarchy
# ===================================================================


class TestHierarchy:
    @pytest.mark.asyncio
    async def test_ancestors_nearest_first(self, db, accounts):
        sub = await coa_service.create_account(
            db, account_code="1110", account_name="Mobile Money Float",
            account_type=AccountType.ASSET, parent_id=accounts["1100"].id,
        )
        ancestors = await coa_service.get_ancestors(db, sub.id)
        assert [a.account_code for a in ancestors] == ["1100", "1000"]

    @pytest.mark.asyncio
    async def test_descendants_breadth_first(self, db, accounts):
        await coa_service.create_account(
            db, account_code="1110", account_name="Mobile Money Float",
            account_type=AccountType.ASSET, parent_id=accounts["1100"].id,
        )
        descendants = await coa_service.get_descendants(db, accounts["1000"].id)
        assert [a.account_code for a in descendants] == ["1100", "1200", "1300", "1110"]

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, db, accounts):
        with pytest.raises(ValidationError, match="own parent"):
            await coa_service.set_parent(db, accounts["1100"].id, accounts["1100"].id)

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, db, accounts):
        with pytest.raises(ValidationError, match="cycle"):
            await coa_service.set_parent(db, accounts["1000"].id, accounts["1100"].id)

    @pytest.mark.asyncio
    async def test_reparent_and_detach(self, db, accounts):
        moved = await coa_service.set_parent(db, accounts["1300"].id, accounts["1200"].id)
        assert moved.parent_id == accounts["1200"].id

        detached = await coa_service.set_parent(db, accounts["1300"].id, None)
        assert detached.is_root


# ===================================================================
# Activation and seeding
# ===================================================================


class TestActivation:
    @pytest.mark.asyncio
    async def test_deactivate_then_activate(self, db, accounts):
        account = await coa_service.deactivate_account(db, accounts["1300"].id)
        assert not account.is_active
        inactive = await coa_service.list_accounts(db, active=False)
        assert [a.account_code for a in inactive] == ["1300"]

        account = await coa_service.activate_account(db, accounts["1300"].id)
        assert account.is_active


class TestSeed:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self, db, accounts):
        await seed_ledger_data(db)
        assert len(await coa_service.list_accounts(db)) == len(accounts) == 16

    @pytest.mark.asyncio
    async def test_fresh_ledger_verifies_clean(self, db, accounts):
        assert await coa_service.verify_balances(db) == []
