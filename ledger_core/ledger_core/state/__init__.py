"""State persistence layer (PostgreSQL in production, SQLite locally)."""

from ledger_core.state.database import (
    bind_identity,
    create_schema,
    current_bound_identity,
    get_engine,
    get_session,
    get_session_factory,
)
from ledger_core.state.repository import (
    AuditLogRepository,
    FinancialRecordRepository,
    UserRepository,
)

__all__ = [
    "AuditLogRepository",
    "FinancialRecordRepository",
    "UserRepository",
    "bind_identity",
    "create_schema",
    "current_bound_identity",
    "get_engine",
    "get_session",
    "get_session_factory",
]
