"""Record operations facade.

Every operation follows the same shape:

1. Require an authenticated :class:`Principal`.
2. Validate input (before any storage call).
3. Open a dedicated session and transaction, and bind the principal's
   identity on it before any other statement.
4. Resolve the RLS constraint and, for mutations, run the existence and
   ownership checks.
5. Execute the storage statement with the constraint in its WHERE clause.
6. Commit and map the result.

Three independent layers keep tenants apart: the policy-engine constraint
on every statement, the ownership check before every mutation, and the
database-side secure view that non-admin reads go through.  Any single
layer failing open does not by itself leak another user's rows.

Existence check, ownership check and mutation share one transaction, and
the existence check locks the row where the dialect supports it, so the
record cannot change hands between check and write.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager, nullcontext
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_core.config import Settings
from ledger_core.errors import (
    ForbiddenError,
    NotAuthenticatedError,
    RecordNotFoundError,
    StorageFailure,
    ValidationFailure,
)
from ledger_core.models.record import (
    AuditEntry,
    Balance,
    FinancialRecord,
    RecordCreate,
    RecordUpdate,
    UserSummary,
)
from ledger_core.policy.ownership import is_owner, record_exists
from ledger_core.policy.rls import build_filter
from ledger_core.principal import Principal
from ledger_core.state.database import bind_identity
from ledger_core.state.repository import (
    AuditLogRepository,
    FinancialRecordRepository,
    UserRepository,
)
from ledger_core.state.sqlite_adapter import shared_connection_lock
from ledger_core.state.tables import FinancialRecordTable

logger = logging.getLogger(__name__)

_RECORDS_TABLE = FinancialRecordTable.__tablename__


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "payload"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class RecordService:
    """Owner-or-admin CRUD and aggregation over financial records.

    Parameters
    ----------
    session_factory:
        Factory for async sessions.  Each operation takes its own session,
        so no connection state carries over between operations.
    conceal_foreign_records:
        When true (default), update/delete of a record owned by someone
        else raises :class:`RecordNotFoundError`, so the caller cannot learn
        that the id exists.  When false, :class:`ForbiddenError` is raised.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        conceal_foreign_records: bool = True,
        default_list_limit: int = 20,
        default_audit_limit: int = 10,
        max_list_limit: int = 500,
    ) -> None:
        self._session_factory = session_factory
        self._conceal_foreign_records = conceal_foreign_records
        self._default_list_limit = default_list_limit
        self._default_audit_limit = default_audit_limit
        self._max_list_limit = max_list_limit

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ) -> RecordService:
        return cls(
            session_factory,
            conceal_foreign_records=settings.conceal_foreign_records,
            default_list_limit=settings.default_list_limit,
            default_audit_limit=settings.default_audit_limit,
            max_list_limit=settings.max_list_limit,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_principal(principal: Principal | None) -> Principal:
        if principal is None:
            logger.warning("Rejected record operation without an authenticated principal")
            raise NotAuthenticatedError()
        return principal

    def _limit(self, limit: int | None, default: int) -> int:
        if limit is None:
            return default
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self._max_list_limit:
            raise ValidationFailure(f"limit must be an integer between 1 and {self._max_list_limit}")
        return limit

    @staticmethod
    def _record_id(record_id: Any) -> int:
        if isinstance(record_id, bool) or not isinstance(record_id, int) or record_id <= 0:
            raise ValidationFailure("record_id must be a positive integer")
        return record_id

    def _denied(self, record_id: int) -> Exception:
        if self._conceal_foreign_records:
            return RecordNotFoundError(record_id)
        return ForbiddenError("Only the owner or an admin may modify this record")

    @asynccontextmanager
    async def _unit_of_work(self, principal: Principal) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session whose transaction is bound to *principal*.

        The identity is bound first, on the same connection and inside the
        same transaction as every query that follows.  On engines that share
        one connection between sessions the whole unit runs under the
        engine's lock, so no other unit can rebind that connection between
        bind and commit.  Storage errors are logged with detail and re-raised
        as an opaque :class:`StorageFailure`.
        """
        lock = shared_connection_lock(self._session_factory.kw.get("bind"))
        try:
            async with lock if lock is not None else nullcontext():
                async with self._session_factory() as session, session.begin():
                    await bind_identity(session, principal.id)
                    yield session
        except SQLAlchemyError as exc:
            logger.error("Storage failure for user_id=%d: %s", principal.id, exc, exc_info=True)
            raise StorageFailure() from exc

    async def _check_mutable(self, session: AsyncSession, principal: Principal, record_id: int) -> None:
        """Existence check, then ownership check for non-admins."""
        if not await record_exists(session, _RECORDS_TABLE, record_id, lock=True):
            raise RecordNotFoundError(record_id)
        if principal.is_admin:
            return
        if not await is_owner(session, _RECORDS_TABLE, record_id, principal.id):
            logger.warning(
                "Ownership check failed: user_id=%d record_id=%d",
                principal.id,
                record_id,
            )
            raise self._denied(record_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_records(
        self,
        principal: Principal | None,
        limit: int | None = None,
    ) -> list[FinancialRecord]:
        """Return the records visible to *principal*, newest first.

        Admins read the base table unfiltered.  Users read through the
        secure view with the policy constraint applied on top.
        """
        principal = self._require_principal(principal)
        limit = self._limit(limit, self._default_list_limit)
        constraint = build_filter(principal)

        async with self._unit_of_work(principal) as session:
            rows = await FinancialRecordRepository(session).list(
                constraint,
                secure=not principal.is_admin,
                limit=limit,
            )
        return [FinancialRecord.model_validate(row) for row in rows]

    async def get_balance(self, principal: Principal | None) -> Balance:
        """Return income, expense and net balance over the visible records."""
        principal = self._require_principal(principal)
        constraint = build_filter(principal)

        async with self._unit_of_work(principal) as session:
            income, expense = await FinancialRecordRepository(session).totals(
                constraint,
                secure=not principal.is_admin,
            )
        return Balance.from_totals(income, expense)

    async def list_audit(
        self,
        principal: Principal | None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Return the most recent audit entries across all owners.

        Audit visibility is global: any authenticated principal may read it.
        """
        principal = self._require_principal(principal)
        limit = self._limit(limit, self._default_audit_limit)

        async with self._unit_of_work(principal) as session:
            entries = await AuditLogRepository(session).list(limit=limit)
            return [AuditEntry.model_validate(entry) for entry in entries]

    async def list_users(self, principal: Principal | None) -> list[UserSummary]:
        """Return every user.  Admin only."""
        principal = self._require_principal(principal)
        if not principal.is_admin:
            logger.warning("Non-admin user_id=%d attempted to list users", principal.id)
            raise ForbiddenError("Admin access required")

        async with self._unit_of_work(principal) as session:
            users = await UserRepository(session).list()
            return [UserSummary.model_validate(user) for user in users]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_record(
        self,
        principal: Principal | None,
        payload: RecordCreate | Mapping[str, Any],
    ) -> int:
        """Create a record owned by *principal*.  Returns the new id.

        Any owner field in *payload* is ignored.
        """
        principal = self._require_principal(principal)
        if not isinstance(payload, RecordCreate):
            try:
                payload = RecordCreate.model_validate(dict(payload))
            except ValidationError as exc:
                raise ValidationFailure(_validation_message(exc)) from exc

        async with self._unit_of_work(principal) as session:
            record_id = await FinancialRecordRepository(session).insert(
                owner_id=principal.id,
                description=payload.description,
                amount=payload.amount,
                category=payload.category.value,
            )
        logger.info("Created record id=%d for user_id=%d", record_id, principal.id)
        return record_id

    async def update_record(
        self,
        principal: Principal | None,
        record_id: int,
        fields: RecordUpdate | Mapping[str, Any],
    ) -> int:
        """Apply a partial update.  Returns the updated record id.

        Raises :class:`ValidationFailure` when no fields are supplied.
        """
        principal = self._require_principal(principal)
        record_id = self._record_id(record_id)
        if not isinstance(fields, RecordUpdate):
            try:
                fields = RecordUpdate.model_validate(dict(fields))
            except ValidationError as exc:
                raise ValidationFailure(_validation_message(exc)) from exc
        changes = fields.changes()
        if not changes:
            raise ValidationFailure("No fields supplied for update")

        constraint = build_filter(principal)
        async with self._unit_of_work(principal) as session:
            await self._check_mutable(session, principal, record_id)
            affected = await FinancialRecordRepository(session).update(record_id, constraint, changes)
            if affected == 0:
                raise RecordNotFoundError(record_id)
        logger.info(
            "Updated record id=%d fields=%s by user_id=%d",
            record_id,
            sorted(changes),
            principal.id,
        )
        return record_id

    async def delete_record(self, principal: Principal | None, record_id: int) -> None:
        """Delete a record owned by *principal* (or any record, for admins)."""
        principal = self._require_principal(principal)
        record_id = self._record_id(record_id)

        constraint = build_filter(principal)
        async with self._unit_of_work(principal) as session:
            await self._check_mutable(session, principal, record_id)
            affected = await FinancialRecordRepository(session).delete(record_id, constraint)
            if affected == 0:
                raise RecordNotFoundError(record_id)
        logger.info("Deleted record id=%d by user_id=%d", record_id, principal.id)
