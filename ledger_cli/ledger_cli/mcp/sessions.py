"""Per-caller authentication state for the tool transport.

Each connected caller (the stdio peer, or one SSE connection) gets its own
slot keyed by an opaque caller key.  Logging in on one connection never
replaces or reveals the principal bound on another.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

from ledger_core.principal import Principal

logger = logging.getLogger(__name__)

STDIO_CALLER = "stdio"

# Caller key for the connection currently being served.  Set once per
# connection before the MCP session starts; handler tasks inherit it.
current_caller: ContextVar[str] = ContextVar("ledger_tool_caller", default=STDIO_CALLER)


class ToolSessionRegistry:
    """Map caller keys to authenticated principals."""

    def __init__(self) -> None:
        self._principals: dict[str, Principal] = {}

    def __len__(self) -> int:
        return len(self._principals)

    def get(self, caller: str) -> Principal | None:
        return self._principals.get(caller)

    def bind(self, caller: str, principal: Principal) -> None:
        previous = self._principals.get(caller)
        self._principals[caller] = principal
        if previous is not None and previous != principal:
            logger.info(
                "Caller %s switched principal from user_id=%d to user_id=%d",
                caller,
                previous.id,
                principal.id,
            )

    def clear(self, caller: str) -> bool:
        """Forget the principal for *caller*.  Returns whether one was bound."""
        return self._principals.pop(caller, None) is not None
