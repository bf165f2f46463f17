"""SQLite adapter for local and test operation.

Provides an async SQLAlchemy engine backed by ``aiosqlite`` that uses the
same ORM table definitions, secure view and audit triggers as the
production PostgreSQL backend.

SQLite has no session variables, so the bound identity is emulated with
two connection-local SQL functions registered on every new DBAPI
connection:

* ``app_set_current_user_id(id)`` -- store *id* for this connection.
* ``app_current_user_id()``       -- read it back (NULL when unbound).

The value lives in the pool's connection record and is cleared on every
check-in, so a pooled connection never hands a previous principal's
identity to the next checkout.

An in-memory engine shares one connection between all sessions, so a
second session could rebind the identity between another session.s bind
and read.  Such engines carry a lock (see :func:`shared_connection_lock`)
that callers hold for the whole bind-to-commit span.

INVARIANT: The same ORM and view code paths are exercised in local and
production modes.  Only the engine URL and the binding mechanism differ.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ledger_core.state.secure_objects import IDENTITY_FUNCTION, IDENTITY_SETTER

logger = logging.getLogger(__name__)

_IDENTITY_KEY = "ledger_bound_identity"

# Engines whose pool hands one DBAPI connection to every session.
_SHARED_CONNECTION_LOCKS: weakref.WeakKeyDictionary[Engine, asyncio.Lock] = weakref.WeakKeyDictionary()


def _register_identity_functions(dbapi_conn: Any, connection_record: Any) -> None:
    """Register the identity getter/setter SQL functions on a new connection."""
    slot: dict[str, int | None] = connection_record.info.setdefault(_IDENTITY_KEY, {"user_id": None})

    def _set_identity(value: Any) -> int | None:
        slot["user_id"] = int(value) if value is not None else None
        return slot["user_id"]

    def _get_identity() -> int | None:
        return slot["user_id"]

    dbapi_conn.create_function(IDENTITY_SETTER, 1, _set_identity)
    dbapi_conn.create_function(IDENTITY_FUNCTION, 0, _get_identity)

    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _clear_identity(dbapi_conn: Any, connection_record: Any) -> None:
    """Forget the bound identity when a connection goes back to the pool."""
    if connection_record is None:
        return
    slot = connection_record.info.get(_IDENTITY_KEY)
    if slot is not None:
        slot["user_id"] = None


def attach_identity_functions(sync_engine: Engine) -> None:
    """Wire identity registration and check-in reset into *sync_engine*.

    Used for the async engine (via ``engine.sync_engine``) and directly for
    the synchronous engines Alembic creates.
    """
    event.listen(sync_engine, "connect", _register_identity_functions)
    event.listen(sync_engine, "checkin", _clear_identity)


def get_local_engine(db_path: Path | str = ".ledger/ledger.db") -> AsyncEngine:
    """Create an async SQLAlchemy engine backed by SQLite via aiosqlite.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created
        automatically.  Use ``:memory:`` for an ephemeral database; the
        engine then shares one connection through a :class:`StaticPool`
        so every session sees the same data.

    Returns
    -------
    AsyncEngine
        A configured async engine ready for session creation.
    """
    if db_path == ":memory:":
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        url = "sqlite+aiosqlite:///:memory:"
        _SHARED_CONNECTION_LOCKS[engine.sync_engine] = asyncio.Lock()
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite+aiosqlite:///{path}"
        engine = create_async_engine(url, echo=False, connect_args={"check_same_thread": False})

    attach_identity_functions(engine.sync_engine)
    logger.info("Created SQLite engine: %s", url)
    return engine


def shared_connection_lock(engine: AsyncEngine | None) -> asyncio.Lock | None:
    """Return the lock serialising units of work on a single-connection engine.

    ``None`` for engines that give each session its own connection.
    """
    if engine is None:
        return None
    return _SHARED_CONNECTION_LOCKS.get(engine.sync_engine)
