"""Tests for the ownership verifier and existence check."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_core.policy.ownership import OWNED_TABLES, is_owner, record_exists
from ledger_core.state.database import bind_identity, get_session
from ledger_core.state.repository import FinancialRecordRepository

ALICE_ID = 5
BOB_ID = 6


async def _insert(engine: AsyncEngine, owner_id: int) -> int:
    async with get_session(engine) as session:
        await bind_identity(session, owner_id)
        return await FinancialRecordRepository(session).insert(
            owner_id=owner_id,
            description="seed",
            amount=Decimal("10.00"),
            category="income",
        )


class TestIsOwner:
    @pytest.mark.asyncio
    async def test_owner_true(self, seeded_engine: AsyncEngine) -> None:
        record_id = await _insert(seeded_engine, ALICE_ID)
        async with get_session(seeded_engine) as session:
            assert await is_owner(session, "financial_records", record_id, ALICE_ID)

    @pytest.mark.asyncio
    async def test_other_user_false(self, seeded_engine: AsyncEngine) -> None:
        record_id = await _insert(seeded_engine, ALICE_ID)
        async with get_session(seeded_engine) as session:
            assert not await is_owner(session, "financial_records", record_id, BOB_ID)

    @pytest.mark.asyncio
    async def test_missing_record_false(self, seeded_engine: AsyncEngine) -> None:
        async with get_session(seeded_engine) as session:
            assert not await is_owner(session, "financial_records", 999, ALICE_ID)

    @pytest.mark.asyncio
    async def test_unknown_table_rejected(self, seeded_engine: AsyncEngine) -> None:
        async with get_session(seeded_engine) as session:
            with pytest.raises(ValueError, match="not an owned table"):
                await is_owner(session, "users; DROP TABLE users", 1, ALICE_ID)


class TestRecordExists:
    @pytest.mark.asyncio
    async def test_exists_regardless_of_owner(self, seeded_engine: AsyncEngine) -> None:
        record_id = await _insert(seeded_engine, BOB_ID)
        async with get_session(seeded_engine) as session:
            assert await record_exists(session, "financial_records", record_id)

    @pytest.mark.asyncio
    async def test_missing(self, seeded_engine: AsyncEngine) -> None:
        async with get_session(seeded_engine) as session:
            assert not await record_exists(session, "financial_records", 12345)

    @pytest.mark.asyncio
    async def test_lock_hint_accepted(self, seeded_engine: AsyncEngine) -> None:
        record_id = await _insert(seeded_engine, ALICE_ID)
        async with get_session(seeded_engine) as session:
            assert await record_exists(session, "financial_records", record_id, lock=True)

    def test_allow_list(self) -> None:
        assert set(OWNED_TABLES) == {"financial_records"}
