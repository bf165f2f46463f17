"""Response envelopes for the REST transport.

Request bodies reuse the core input models (:class:`RecordCreate`,
:class:`RecordUpdate`) so validation rules live in one place.
"""

from __future__ import annotations

from pydantic import BaseModel

from ledger_core.models.record import AuditEntry, Balance, FinancialRecord, UserSummary


class RecordListResponse(BaseModel):
    """Visible records plus the constraint that selected them."""

    user_id: int
    role: str
    rls_filter: str
    count: int
    records: list[FinancialRecord]


class RecordMutationResponse(BaseModel):
    id: int
    message: str


class BalanceResponse(Balance):
    user_id: int


class AuditListResponse(BaseModel):
    count: int
    entries: list[AuditEntry]


class UserListResponse(BaseModel):
    count: int
    users: list[UserSummary]
