"""FastAPI dependency injection for settings, sessions and the record facade."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ledger_api.config import APISettings, load_api_settings
from ledger_api.security import TokenManager
from ledger_core.errors import NotAuthenticatedError
from ledger_core.principal import Principal
from ledger_core.services.records import RecordService
from ledger_core.state.database import get_engine
from ledger_core.state.database import get_session_factory as _build_session_factory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


def set_settings(settings: APISettings | None) -> None:
    """Replace the cached settings (application factory and tests)."""
    global _settings_cache  # noqa: PLW0603
    _settings_cache = settings


SettingsDep = Annotated[APISettings, Depends(get_settings)]


def build_token_manager(settings: APISettings) -> TokenManager:
    return TokenManager(settings.jwt_secret.get_secret_value(), ttl_seconds=settings.token_ttl_seconds)


# ---------------------------------------------------------------------------
# Database engine and record facade
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_record_service: RecordService | None = None


def init_engine(settings: APISettings, engine: AsyncEngine | None = None) -> AsyncEngine:
    """Create (or adopt) the global async engine and the record facade."""
    global _engine, _session_factory, _record_service  # noqa: PLW0603
    _engine = engine or get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    _session_factory = _build_session_factory(_engine)
    _record_service = RecordService(
        _session_factory,
        conceal_foreign_records=settings.conceal_foreign_records,
    )
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory, _record_service  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
    _record_service = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory.

    Sessions from this factory carry **no** bound identity.  Use them only
    for paths that never touch owned rows (health checks).
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


def get_record_service() -> RecordService:
    if _record_service is None:
        raise RuntimeError(
            "Record service has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _record_service


RecordServiceDep = Annotated[RecordService, Depends(get_record_service)]

# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


def get_principal(request: Request) -> Principal:
    """Return the principal placed on the request by the auth middleware.

    Raises :class:`NotAuthenticatedError` (401) when none is present, so a
    route mounted outside the middleware's protection still cannot run
    without an identity.
    """
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        raise NotAuthenticatedError()
    return principal


PrincipalDep = Annotated[Principal, Depends(get_principal)]
