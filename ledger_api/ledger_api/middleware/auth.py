"""Authentication middleware that turns bearer tokens into principals.

Extracts ``Authorization: Bearer <token>`` from every request, verifies it
with :class:`~ledger_api.security.TokenManager`, and stores the resulting
:class:`~ledger_core.principal.Principal` on ``request.state.principal``.

Endpoints explicitly listed in ``_PUBLIC_PATHS`` bypass authentication.
Every other request without a valid token is rejected with 401 before it
reaches a router; it is never treated as anonymous or admin.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ledger_api.security import TokenError, TokenManager

logger = logging.getLogger(__name__)

# Paths that do not require authentication.
_PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/api/v1/health",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/favicon.ico",
    }
)

# Prefixes that skip auth (e.g. static docs assets).
_PUBLIC_PREFIXES: tuple[str, ...] = (
    "/docs",
    "/redoc",
)


def _is_public(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES)


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Validate the bearer token and attach the principal to the request."""

    def __init__(self, app: ASGIApp, token_manager: TokenManager) -> None:
        super().__init__(app)
        self._tokens = token_manager

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS" or _is_public(request.url.path):
            return await call_next(request)

        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            logger.warning("Missing bearer token on %s %s", request.method, request.url.path)
            return _unauthorized("Authentication required")

        try:
            principal = self._tokens.verify(token.strip())
        except TokenError as exc:
            logger.warning("Rejected token on %s: %s", request.url.path, exc)
            return _unauthorized("Invalid token")

        request.state.principal = principal
        request.state.user_id = principal.id
        request.state.role = principal.role.value
        return await call_next(request)
