"""Bearer token issuing and verification.

Tokens carry the authenticated principal (``sub`` = user id, ``role``) and
are signed with HMAC-SHA256 over the JSON payload::

    ldev.<urlsafe-b64 payload>.<hex signature>

Credential checks (passwords, OTP) happen upstream of token issuance and
are not part of this service; this module only turns a token into a
:class:`~ledger_core.principal.Principal` that the record facade trusts.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import uuid
from typing import Any

from ledger_core.principal import Principal, parse_role

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "ldev"
ISSUER = "ledger"


class TokenError(Exception):
    """A token is malformed, badly signed, expired, or carries bad claims."""


class TokenManager:
    """Sign and verify development-mode HMAC tokens.

    Parameters
    ----------
    secret:
        Shared signing secret.
    ttl_seconds:
        Lifetime applied by :meth:`issue`.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._ttl = ttl_seconds

    def _sign(self, payload_json: str) -> str:
        return hmac.new(self._secret, payload_json.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, principal: Principal, *, ttl_seconds: int | None = None) -> str:
        """Return a signed token for *principal*."""
        now = time.time()
        payload: dict[str, Any] = {
            "sub": principal.id,
            "role": principal.role.value,
            "iss": ISSUER,
            "iat": now,
            "exp": now + (ttl_seconds if ttl_seconds is not None else self._ttl),
            "jti": uuid.uuid4().hex,
        }
        payload_json = json.dumps(payload)
        body = base64.urlsafe_b64encode(payload_json.encode("utf-8")).decode("ascii")
        return f"{TOKEN_PREFIX}.{body}.{self._sign(payload_json)}"

    def decode(self, token: str) -> dict[str, Any]:
        """Verify *token* and return its claims.  Raises :class:`TokenError`."""
        parts = token.split(".")
        if len(parts) != 3 or parts[0] != TOKEN_PREFIX:
            raise TokenError("Malformed token")
        try:
            payload_json = base64.urlsafe_b64decode(parts[1].encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise TokenError("Malformed token payload") from exc

        # Compared as bytes; the supplied signature may contain any characters.
        expected = self._sign(payload_json).encode("ascii")
        if not hmac.compare_digest(expected, parts[2].encode("utf-8", "replace")):
            raise TokenError("Invalid token signature")

        try:
            claims = json.loads(payload_json)
        except json.JSONDecodeError as exc:
            raise TokenError("Malformed token payload") from exc
        if not isinstance(claims, dict):
            raise TokenError("Malformed token payload")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or exp < time.time():
            raise TokenError("Token expired")
        return claims

    def verify(self, token: str) -> Principal:
        """Verify *token* and return the principal it names."""
        claims = self.decode(token)
        try:
            return Principal(id=claims["sub"], role=parse_role(str(claims["role"])))
        except (KeyError, ValueError) as exc:
            raise TokenError(f"Invalid token claims: {exc}") from exc
