"""Error taxonomy for record operations.

Every failure raised by the record facade derives from :class:`LedgerError`
so transports can map the whole family in one place.  None of these are
retried; each is terminal for the operation that raised it.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger core failures."""

    kind: str = "error"


class NotAuthenticatedError(LedgerError):
    """No principal is bound to the caller."""

    kind = "not_authenticated"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class RecordNotFoundError(LedgerError):
    """The record does not exist, or is concealed from the caller."""

    kind = "not_found"

    def __init__(self, record_id: int) -> None:
        self.record_id = record_id
        super().__init__(f"Record {record_id} not found")


class ForbiddenError(LedgerError, PermissionError):
    """The record exists but the caller is neither its owner nor an admin."""

    kind = "forbidden"

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class ValidationFailure(LedgerError, ValueError):
    """Malformed input, rejected before any storage call."""

    kind = "validation_failure"


class StorageFailure(LedgerError):
    """The storage engine failed.  The original error is logged, not exposed."""

    kind = "storage_failure"

    def __init__(self, message: str = "Internal database error") -> None:
        super().__init__(message)
