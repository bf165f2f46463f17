"""Shared fixtures for ledger API tests.

The application runs against an in-memory SQLite database with the full
schema (secure view and audit triggers included).  Requests go through
``httpx.AsyncClient`` over ``ASGITransport``; because that transport does
not run the lifespan, the engine is initialised directly by the fixture.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_api.config import APISettings
from ledger_api.dependencies import dispose_engine, init_engine
from ledger_api.main import create_app
from ledger_core.state.database import create_schema, get_session
from ledger_core.state.sqlite_adapter import get_local_engine
from ledger_core.state.tables import UserTable

_TEST_SECRET = "test-secret-key-for-ledger-tests"

ADMIN_ID = 1
ALICE_ID = 5
BOB_ID = 6


def make_token(sub: Any = ALICE_ID, role: str = "user", *, exp_offset: float = 3600, secret: str = _TEST_SECRET) -> str:
    """Generate a development-mode HMAC token.

    Mirrors the signing logic in :class:`ledger_api.security.TokenManager`.
    """
    now = time.time()
    payload = {"sub": sub, "role": role, "iss": "ledger", "iat": now, "exp": now + exp_offset, "jti": "test"}
    payload_json = json.dumps(payload)
    signature = hmac.new(secret.encode("utf-8"), payload_json.encode("utf-8"), hashlib.sha256).hexdigest()
    body = base64.urlsafe_b64encode(payload_json.encode("utf-8")).decode("ascii")
    return f"ldev.{body}.{signature}"


def _auth_headers(sub: int = ALICE_ID, role: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, role)}"}


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Return a factory of ``Authorization`` headers for a user id and role."""
    return _auth_headers


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token


@pytest.fixture
def test_settings() -> APISettings:
    return APISettings(
        database_url="sqlite+aiosqlite:///:memory:",
        platform_env="dev",
        cors_origins=["http://localhost:3000"],
        jwt_secret=SecretStr(_TEST_SECRET),
    )


@pytest_asyncio.fixture
async def api_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = get_local_engine(":memory:")
    await create_schema(engine)
    async with get_session(engine) as session:
        session.add_all(
            [
                UserTable(id=ADMIN_ID, username="root", email="root@example.com", password_hash="x", role="admin"),
                UserTable(id=ALICE_ID, username="alice", email="alice@example.com", password_hash="x"),
                UserTable(id=BOB_ID, username="bob", email="bob@example.com", password_hash="x"),
            ]
        )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def client(test_settings: APISettings, api_engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(test_settings, engine=api_engine)
    init_engine(test_settings, api_engine)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await dispose_engine()
