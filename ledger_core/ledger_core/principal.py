"""Authenticated principal attached to every record operation.

A :class:`Principal` is produced by an authentication collaborator (token
verification for REST, the tool session registry for MCP) and is never
persisted by the core.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Principal roles.  ``admin`` bypasses ownership filtering."""

    USER = "user"
    ADMIN = "admin"


_ROLE_LOOKUP: dict[str, Role] = {r.value: r for r in Role}


def parse_role(raw: str) -> Role:
    """Convert a ``role`` claim string into a :class:`Role`.

    Raises :class:`ValueError` if the string does not map to a known role.
    Unknown roles must be rejected here, by the authentication layer, and
    never reach the policy engine.
    """
    try:
        return _ROLE_LOOKUP[raw.strip().lower()]
    except (KeyError, AttributeError):
        raise ValueError(f"Unknown role '{raw}'. Valid roles: {sorted(_ROLE_LOOKUP)}")


@dataclass(frozen=True)
class Principal:
    """The identity (user id + role) performing an operation."""

    id: int
    role: Role = Role.USER

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int) or self.id <= 0:
            raise ValueError(f"Principal id must be a positive integer, got {self.id!r}")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", parse_role(self.role))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN
