"""Admin-only user listing."""

from __future__ import annotations

from fastapi import APIRouter

from ledger_api.dependencies import PrincipalDep, RecordServiceDep
from ledger_api.schemas import UserListResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
async def list_users(principal: PrincipalDep, service: RecordServiceDep) -> UserListResponse:
    users = await service.list_users(principal)
    return UserListResponse(count=len(users), users=users)
