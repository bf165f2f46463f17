"""Policy engine and ownership verification."""

from ledger_core.policy.ownership import OWNED_TABLES, is_owner, record_exists
from ledger_core.policy.rls import RLSConstraint, build_filter

__all__ = [
    "OWNED_TABLES",
    "RLSConstraint",
    "build_filter",
    "is_owner",
    "record_exists",
]
