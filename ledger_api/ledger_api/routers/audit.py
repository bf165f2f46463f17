"""Audit trail endpoint.

Entries are written by database triggers, never by this service; the
endpoint only reads them.  Visibility is global for any authenticated
caller.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from ledger_api.dependencies import PrincipalDep, RecordServiceDep
from ledger_api.schemas import AuditListResponse

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=AuditListResponse)
async def list_audit(
    principal: PrincipalDep,
    service: RecordServiceDep,
    limit: int = Query(default=10, ge=1, le=500),
) -> AuditListResponse:
    """Return the most recent audit entries, newest first."""
    entries = await service.list_audit(principal, limit=limit)
    return AuditListResponse(count=len(entries), entries=entries)
