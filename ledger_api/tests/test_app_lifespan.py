"""Tests for application startup and shutdown."""

from __future__ import annotations

import pytest
from pydantic import SecretStr
from sqlalchemy import text

from ledger_api import dependencies
from ledger_api.config import APISettings
from ledger_api.main import create_app, status_for
from ledger_core.errors import (
    ForbiddenError,
    NotAuthenticatedError,
    RecordNotFoundError,
    StorageFailure,
    ValidationFailure,
)


class TestLifespan:
    @pytest.mark.asyncio
    async def test_local_startup_creates_schema(self) -> None:
        app = create_app(APISettings(database_url="sqlite+aiosqlite:///:memory:"))
        async with app.router.lifespan_context(app):
            async with dependencies.get_session_factory()() as session:
                result = await session.execute(
                    text("SELECT name FROM sqlite_master WHERE name = 'financial_records_secure'")
                )
                assert result.scalar_one() == "financial_records_secure"
        with pytest.raises(RuntimeError):
            dependencies.get_record_service()

    @pytest.mark.asyncio
    async def test_prod_refuses_default_secret(self) -> None:
        app = create_app(APISettings(database_url="sqlite+aiosqlite:///:memory:", platform_env="prod"))
        with pytest.raises(RuntimeError, match="API_JWT_SECRET"):
            async with app.router.lifespan_context(app):
                pass

    @pytest.mark.asyncio
    async def test_prod_starts_with_explicit_secret(self) -> None:
        app = create_app(
            APISettings(
                database_url="sqlite+aiosqlite:///:memory:",
                platform_env="prod",
                jwt_secret=SecretStr("a-real-secret"),
            )
        )
        async with app.router.lifespan_context(app):
            assert dependencies.get_record_service() is not None


class TestErrorStatusMapping:
    @pytest.mark.parametrize(
        ("exc", "status"),
        [
            (NotAuthenticatedError(), 401),
            (RecordNotFoundError(3), 404),
            (ForbiddenError(), 403),
            (ValidationFailure("bad"), 400),
            (StorageFailure(), 500),
        ],
    )
    def test_status_for(self, exc: Exception, status: int) -> None:
        assert status_for(exc) == status  # type: ignore[arg-type]
