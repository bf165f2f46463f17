"""Liveness endpoint, registered at ``/api/v1/health`` without authentication."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ledger_api import __version__
from ledger_api.dependencies import get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, Any]:
    """Return service health.

    Always HTTP 200 so load-balancers see the process as alive; ``db``
    reports whether the database answered a trivial query.
    """
    result: dict[str, Any] = {"status": "healthy", "version": __version__, "db": "ok"}
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, RuntimeError, OSError):
        logger.warning("Health check: database unreachable", exc_info=True)
        result["db"] = "unavailable"
        result["status"] = "degraded"
    return result
