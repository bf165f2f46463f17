"""Async SQLAlchemy engine, session factory and session identity binding.

Supports both PostgreSQL (production) and SQLite (local dev and tests).
Engine type is determined by the database URL scheme:
  - ``postgresql+asyncpg://`` -> connection-pooled PostgreSQL engine
  - ``sqlite+aiosqlite://``   -> SQLite engine with emulated identity binding
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ledger_core.state.secure_objects import IDENTITY_FUNCTION, IDENTITY_SETTER, IDENTITY_SETTING

logger = logging.getLogger(__name__)


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Automatically dispatches to the correct backend based on URL scheme:

    * ``postgresql+asyncpg://`` -> pooled PostgreSQL engine
    * ``sqlite+aiosqlite://`` -> SQLite engine (see :mod:`sqlite_adapter`)

    Parameters
    ----------
    database_url:
        Connection string (PostgreSQL or SQLite scheme).
    pool_size:
        Number of persistent connections for PostgreSQL (ignored for SQLite).
    max_overflow:
        Maximum overflow connections for PostgreSQL (ignored for SQLite).
    """
    if database_url.startswith("sqlite"):
        from ledger_core.state.sqlite_adapter import get_local_engine

        # Extract path from URL: sqlite+aiosqlite:///path/to/db
        db_path = database_url.split("///", 1)[-1] if "///" in database_url else ":memory:"
        return get_local_engine(db_path if db_path else ":memory:")

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        echo=False,
        connect_args={
            "server_settings": {
                "statement_timeout": "30000",  # 30 s
                "lock_timeout": "10000",  # 10 s
            }
        },
    )
    logger.info(
        "Created async engine pool_size=%d max_overflow=%d",
        pool_size,
        max_overflow,
    )
    return engine


def _dialect_name(session: AsyncSession) -> str:
    bind = session.get_bind()
    dialect = getattr(bind, "dialect", None)
    if dialect is not None:
        return str(getattr(dialect, "name", ""))
    return str(getattr(bind, "url", ""))


async def bind_identity(session: AsyncSession, principal_id: int) -> None:
    """Bind *principal_id* as the identity the secure view filters on.

    Must run at the start of every unit of work, inside the transaction
    that will read through ``financial_records_secure``, and on the same
    session.  A previous binding is never trusted: pooled connections are
    rebound on every operation.

    For PostgreSQL, uses ``set_config(..., true)`` so the value is scoped
    to the current transaction (equivalent to ``SET LOCAL``).  For SQLite,
    calls the connection-local setter registered by the SQLite adapter.
    The id is always passed as a bound parameter.
    """
    if isinstance(principal_id, bool) or not isinstance(principal_id, int) or principal_id <= 0:
        raise ValueError(f"Invalid principal id for identity binding: {principal_id!r}")

    if "sqlite" in _dialect_name(session):
        await session.execute(
            text(f"SELECT {IDENTITY_SETTER}(:uid)"),
            {"uid": principal_id},
        )
    else:
        await session.execute(
            text(f"SELECT set_config('{IDENTITY_SETTING}', :uid, true)"),
            {"uid": str(principal_id)},
        )
    logger.debug("Bound session identity user_id=%d", principal_id)


async def current_bound_identity(session: AsyncSession) -> int | None:
    """Return the identity the secure view would filter on right now."""
    result = await session.execute(text(f"SELECT {IDENTITY_FUNCTION}()"))
    value = result.scalar()
    return int(value) if value is not None else None


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory with the settings the facade expects."""
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with automatic commit/rollback semantics.

    On successful exit the session is committed.  If an exception propagates
    the session is rolled back before the error is re-raised.
    """
    session = get_session_factory(engine)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_schema(engine: AsyncEngine) -> None:
    """Create all ORM tables and install the secure view and audit triggers.

    Idempotent; intended for local mode and tests.  Production databases
    are managed through the Alembic migrations.
    """
    from ledger_core.state.secure_objects import install_secure_objects
    from ledger_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(install_secure_objects)

    logger.info("Ledger schema created/verified")
