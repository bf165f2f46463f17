"""Shared fixtures for ledger core tests.

Every database fixture runs against an in-memory SQLite database created
through the real schema path (ORM tables, secure view, identity functions
and audit triggers), so view filtering and trigger-written audit rows are
exercised for real.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ledger_core.principal import Principal, Role
from ledger_core.services.records import RecordService
from ledger_core.state.database import create_schema, get_session, get_session_factory
from ledger_core.state.sqlite_adapter import get_local_engine
from ledger_core.state.tables import UserTable

ALICE_ID = 5
BOB_ID = 6
ADMIN_ID = 1


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = get_local_engine(":memory:")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def seeded_engine(engine: AsyncEngine) -> AsyncEngine:
    """Engine with an admin (id 1) and two users (ids 5 and 6)."""
    async with get_session(engine) as session:
        session.add_all(
            [
                UserTable(id=ADMIN_ID, username="root", email="root@example.com", password_hash="x", role="admin"),
                UserTable(id=ALICE_ID, username="alice", email="alice@example.com", password_hash="x"),
                UserTable(id=BOB_ID, username="bob", email="bob@example.com", password_hash="x"),
            ]
        )
    return engine


@pytest.fixture
def session_factory(seeded_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory(seeded_engine)


@pytest.fixture
def service(session_factory: async_sessionmaker[AsyncSession]) -> RecordService:
    return RecordService(session_factory)


@pytest.fixture
def alice() -> Principal:
    return Principal(id=ALICE_ID)


@pytest.fixture
def bob() -> Principal:
    return Principal(id=BOB_ID)


@pytest.fixture
def admin() -> Principal:
    return Principal(id=ADMIN_ID, role=Role.ADMIN)
