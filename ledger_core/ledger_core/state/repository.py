"""Repository classes providing access to the ledger store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  Writes call ``session.flush()``
so that generated keys are populated; the caller owns the commit.

Repositories never decide *who* may see a row.  Record queries take an
:class:`~ledger_core.policy.rls.RLSConstraint` from the policy engine and
apply it verbatim, and the choice between the base table and the secure
view is made by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import Row, case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.policy.rls import RLSConstraint
from ledger_core.state.secure_objects import financial_records_secure
from ledger_core.state.tables import AuditLogTable, FinancialRecordTable, UserTable

logger = logging.getLogger(__name__)

# Columns a partial update may touch.  Only these names are ever placed in
# a SET clause; values are always bound parameters.
UPDATABLE_COLUMNS: frozenset[str] = frozenset({"description", "amount", "category"})


def build_update_values(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial-update mapping against :data:`UPDATABLE_COLUMNS`.

    Raises :class:`ValueError` on an empty mapping or an unknown column.
    """
    if not changes:
        raise ValueError("No fields supplied for update")
    unknown = set(changes) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Columns not updatable: {sorted(unknown)}")
    return {name: changes[name] for name in sorted(changes)}


class FinancialRecordRepository:
    """Reads and writes ``financial_records`` under a caller-supplied constraint."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @staticmethod
    def _source(secure: bool) -> Any:
        return financial_records_secure if secure else FinancialRecordTable.__table__

    async def list(
        self,
        constraint: RLSConstraint,
        *,
        secure: bool,
        limit: int,
    ) -> Sequence[Row[Any]]:
        """Return rows visible under *constraint*, newest first.

        With ``secure=True`` rows are read through the secure view, which
        filters on the session's bound identity in addition to *constraint*.
        """
        src = self._source(secure)
        stmt = (
            select(
                src.c.id,
                src.c.user_id,
                src.c.description,
                src.c.amount,
                src.c.category,
                src.c.created_at,
                src.c.updated_at,
            )
            .where(constraint.where(src.c.user_id))
            .order_by(src.c.created_at.desc(), src.c.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.all()

    async def totals(self, constraint: RLSConstraint, *, secure: bool) -> tuple[Any, Any]:
        """Return ``(total_income, total_expense)``; either may be ``None`` on no rows."""
        src = self._source(secure)
        income = func.sum(case((src.c.category == "income", src.c.amount), else_=0))
        expense = func.sum(case((src.c.category == "expense", src.c.amount), else_=0))
        stmt = select(
            func.coalesce(income, 0).label("total_income"),
            func.coalesce(expense, 0).label("total_expense"),
        ).where(constraint.where(src.c.user_id))
        row = (await self._session.execute(stmt)).one()
        return row.total_income, row.total_expense

    async def insert(
        self,
        *,
        owner_id: int,
        description: str,
        amount: Decimal,
        category: str,
    ) -> int:
        """Insert a record owned by *owner_id*.  Returns the new id."""
        row = FinancialRecordTable(
            user_id=owner_id,
            description=description,
            amount=amount,
            category=category,
        )
        self._session.add(row)
        await self._session.flush()
        return row.id

    async def update(
        self,
        record_id: int,
        constraint: RLSConstraint,
        changes: Mapping[str, Any],
    ) -> int:
        """Apply *changes* to *record_id* within *constraint*.  Returns rows affected."""
        values = build_update_values(changes)
        tbl = FinancialRecordTable.__table__
        stmt = (
            update(tbl)
            .where(tbl.c.id == record_id)
            .where(constraint.where(tbl.c.user_id))
            .values(**values)
        )
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    async def delete(self, record_id: int, constraint: RLSConstraint) -> int:
        """Delete *record_id* within *constraint*.  Returns rows affected."""
        tbl = FinancialRecordTable.__table__
        stmt = delete(tbl).where(tbl.c.id == record_id).where(constraint.where(tbl.c.user_id))
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined, no-any-return]


class AuditLogRepository:
    """Read-only access to the trigger-maintained audit trail."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list(
        self,
        *,
        limit: int,
        record_id: int | None = None,
        operation: str | None = None,
    ) -> Sequence[AuditLogTable]:
        """Return audit entries newest first, optionally filtered."""
        stmt = select(AuditLogTable)
        if record_id is not None:
            stmt = stmt.where(AuditLogTable.record_id == record_id)
        if operation is not None:
            stmt = stmt.where(AuditLogTable.operation == operation)
        stmt = stmt.order_by(AuditLogTable.created_at.desc(), AuditLogTable.id.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def count(self, *, record_id: int | None = None) -> int:
        stmt = select(func.count()).select_from(AuditLogTable)
        if record_id is not None:
            stmt = stmt.where(AuditLogTable.record_id == record_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class UserRepository:
    """Lookup and provisioning of ``users`` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: int) -> UserTable | None:
        result = await self._session.execute(select(UserTable).where(UserTable.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> UserTable | None:
        result = await self._session.execute(select(UserTable).where(UserTable.username == username))
        return result.scalar_one_or_none()

    async def list(self) -> Sequence[UserTable]:
        result = await self._session.execute(select(UserTable).order_by(UserTable.id))
        return result.scalars().all()

    async def create(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        role: str = "user",
    ) -> int:
        """Insert a user row.  Returns the new id."""
        row = UserTable(username=username, email=email, password_hash=password_hash, role=role)
        self._session.add(row)
        await self._session.flush()
        logger.info("Created user id=%d username=%s role=%s", row.id, username, role)
        return row.id
