"""Financial record endpoints.

Every route resolves the caller's :class:`Principal` from the request and
delegates to :class:`RecordService`; row-level filtering, ownership checks
and identity binding all happen there.  Errors raised by the facade are
mapped to HTTP statuses by the handlers registered in :mod:`ledger_api.main`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Path, Query, status

from ledger_api.dependencies import PrincipalDep, RecordServiceDep
from ledger_api.schemas import BalanceResponse, RecordListResponse, RecordMutationResponse
from ledger_core.models.record import RecordCreate, RecordUpdate
from ledger_core.policy.rls import build_filter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


@router.get("", response_model=RecordListResponse)
async def list_records(
    principal: PrincipalDep,
    service: RecordServiceDep,
    limit: int = Query(default=20, ge=1, le=500),
) -> RecordListResponse:
    """List the caller's records (every record, for admins), newest first."""
    records = await service.list_records(principal, limit=limit)
    return RecordListResponse(
        user_id=principal.id,
        role=principal.role.value,
        rls_filter=build_filter(principal).describe(),
        count=len(records),
        records=records,
    )


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(principal: PrincipalDep, service: RecordServiceDep) -> BalanceResponse:
    balance = await service.get_balance(principal)
    return BalanceResponse(user_id=principal.id, **balance.model_dump())


@router.post("", response_model=RecordMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_record(
    body: RecordCreate,
    principal: PrincipalDep,
    service: RecordServiceDep,
) -> RecordMutationResponse:
    """Create a record owned by the caller.  Any owner field in the body is ignored."""
    record_id = await service.create_record(principal, body)
    return RecordMutationResponse(id=record_id, message="Record created")


@router.put("/{record_id}", response_model=RecordMutationResponse)
async def update_record(
    body: RecordUpdate,
    principal: PrincipalDep,
    service: RecordServiceDep,
    record_id: int = Path(..., gt=0),
) -> RecordMutationResponse:
    updated_id = await service.update_record(principal, record_id, body)
    return RecordMutationResponse(id=updated_id, message="Record updated")


@router.delete("/{record_id}", response_model=RecordMutationResponse)
async def delete_record(
    principal: PrincipalDep,
    service: RecordServiceDep,
    record_id: int = Path(..., gt=0),
) -> RecordMutationResponse:
    await service.delete_record(principal, record_id)
    return RecordMutationResponse(id=record_id, message="Record deleted")
