"""Shared fixtures for ledger CLI and MCP tool tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_api.security import TokenManager
from ledger_cli.mcp.server import ToolRuntime
from ledger_cli.mcp.tools import ToolContext
from ledger_core.principal import Principal, Role
from ledger_core.services.records import RecordService
from ledger_core.state.database import create_schema, get_session, get_session_factory
from ledger_core.state.sqlite_adapter import get_local_engine
from ledger_core.state.tables import UserTable

TOOL_SECRET = "tool-test-secret"


@pytest_asyncio.fixture
async def tool_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = get_local_engine(":memory:")
    await create_schema(engine)
    async with get_session(engine) as session:
        session.add_all(
            [
                UserTable(id=1, username="root", email="root@example.com", password_hash="x", role="admin"),
                UserTable(id=5, username="alice", email="alice@example.com", password_hash="x"),
                UserTable(id=6, username="bob", email="bob@example.com", password_hash="x"),
            ]
        )
    yield engine
    await engine.dispose()


@pytest.fixture
def runtime(tool_engine: AsyncEngine) -> ToolRuntime:
    return ToolRuntime(
        service=RecordService(get_session_factory(tool_engine)),
        tokens=TokenManager(TOOL_SECRET),
    )


@pytest.fixture
def context_for(runtime: ToolRuntime) -> Callable[[str], ToolContext]:
    """Return a factory of per-caller tool contexts sharing one runtime."""
    return runtime.context


@pytest.fixture
def mint() -> Callable[..., str]:
    """Return a token factory: ``mint(user_id, role="user")``."""
    manager = TokenManager(TOOL_SECRET)

    def _mint(user_id: int, role: str = "user") -> str:
        return manager.issue(Principal(id=user_id, role=Role(role)))

    return _mint
