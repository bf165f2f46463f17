"""Value objects shared by the core and the transports."""

from ledger_core.models.record import (
    AuditEntry,
    AuditOperation,
    Balance,
    Category,
    FinancialRecord,
    RecordCreate,
    RecordUpdate,
    UserSummary,
)

__all__ = [
    "AuditEntry",
    "AuditOperation",
    "Balance",
    "Category",
    "FinancialRecord",
    "RecordCreate",
    "RecordUpdate",
    "UserSummary",
]
