"""FastAPI application entry-point for the ledger REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_api import __version__
from ledger_api.config import APISettings, PlatformEnv, load_api_settings
from ledger_api.dependencies import build_token_manager, dispose_engine, init_engine, set_settings
from ledger_api.middleware.auth import AuthenticationMiddleware
from ledger_api.middleware.logging import RequestLoggingMiddleware
from ledger_api.routers import audit, health, records, users
from ledger_core.errors import (
    ForbiddenError,
    LedgerError,
    NotAuthenticatedError,
    RecordNotFoundError,
    StorageFailure,
    ValidationFailure,
)
from ledger_core.state.database import create_schema

logger = logging.getLogger(__name__)

_DEFAULT_SECRET = "ledger-dev-secret-change-in-production"

_STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (NotAuthenticatedError, 401),
    (RecordNotFoundError, 404),
    (ForbiddenError, 403),
    (ValidationFailure, 400),
    (StorageFailure, 500),
)


def status_for(exc: LedgerError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _build_lifespan(settings: APISettings, engine: AsyncEngine | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application startup / shutdown lifecycle.

        On startup the database engine and record facade are initialised.
        In dev or local SQLite mode the schema, secure view and audit
        triggers are created (idempotent); other environments rely on
        Alembic migrations.
        """
        if (
            settings.platform_env in (PlatformEnv.STAGING, PlatformEnv.PROD)
            and settings.jwt_secret.get_secret_value() == _DEFAULT_SECRET
        ):
            raise RuntimeError(
                f"API_JWT_SECRET must be set in {settings.platform_env.value} mode. Refusing to start."
            )

        active_engine = init_engine(settings, engine)
        logger.info(
            "Database engine initialised (%s)",
            "local" if settings.is_local else "postgres",
        )

        if settings.platform_env == PlatformEnv.DEV or settings.is_local:
            await create_schema(active_engine)
            logger.info("Database schema ensured")

        if settings.structured_logging:
            from ledger_api.middleware.json_formatter import configure_structured_logging

            configure_structured_logging()
            logger.info("Structured JSON logging enabled")

        yield

        await dispose_engine()
        logger.info("Application shutdown complete")

    return lifespan


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: APISettings | None = None, engine: AsyncEngine | None = None) -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = settings or load_api_settings()
    set_settings(settings)

    app = FastAPI(
        title="Ledger API",
        description="Per-user financial records with row-level security and audit trail.",
        version=__version__,
        lifespan=_build_lifespan(settings, engine),
    )

    # -- Middleware (last added runs first) ----------------------------------

    app.add_middleware(AuthenticationMiddleware, token_manager=build_token_manager(settings))
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID", "Accept"],
    )

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(records.router, prefix="/api/v1")
    app.include_router(audit.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        else:
            logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": exc.kind},
            headers=headers,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal database error"},
        )

    return app


def run() -> None:
    """Serve the application with uvicorn using ``API_HOST``/``API_PORT``."""
    import uvicorn

    settings = load_api_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


# Module-level application instance used by ``uvicorn ledger_api.main:app``.
app = create_app()
