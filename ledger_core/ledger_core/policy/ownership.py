"""Application-side ownership verification.

Used as a gate before update and delete for non-admin principals.  The
table argument is resolved against a fixed allow-list of owned tables; it
is never interpolated from caller input.

A record that does not exist and a record owned by someone else both make
:func:`is_owner` return ``False``.  Callers that need to tell the two apart
use :func:`record_exists` first.
"""

from __future__ import annotations

import logging

from sqlalchemy import Table, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.state.tables import FinancialRecordTable

logger = logging.getLogger(__name__)

# Tables whose rows carry a ``user_id`` owner column.
OWNED_TABLES: dict[str, Table] = {
    FinancialRecordTable.__tablename__: FinancialRecordTable.__table__,  # type: ignore[dict-item]
}


def _resolve_table(table_name: str) -> Table:
    try:
        return OWNED_TABLES[table_name]
    except KeyError:
        raise ValueError(f"Table '{table_name}' is not an owned table. Allowed: {sorted(OWNED_TABLES)}")


async def record_exists(
    session: AsyncSession,
    table_name: str,
    record_id: int,
    *,
    lock: bool = False,
) -> bool:
    """Return ``True`` if a row with *record_id* exists, regardless of owner.

    With ``lock=True`` the row is locked (``SELECT ... FOR UPDATE``) until
    the surrounding transaction ends, so its ownership cannot change
    between this check and the mutation that follows.  Dialects without
    row locks (SQLite) ignore the hint; their writes are serialised anyway.
    """
    tbl = _resolve_table(table_name)
    stmt = select(tbl.c.id).where(tbl.c.id == record_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def is_owner(
    session: AsyncSession,
    table_name: str,
    record_id: int,
    principal_id: int,
) -> bool:
    """Return ``True`` iff the row *record_id* exists and is owned by *principal_id*."""
    tbl = _resolve_table(table_name)
    stmt = (
        select(func.count())
        .select_from(tbl)
        .where(tbl.c.id == record_id, tbl.c.user_id == principal_id)
    )
    result = await session.execute(stmt)
    count = result.scalar_one()
    return bool(count and count > 0)
