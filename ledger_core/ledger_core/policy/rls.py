"""Row-level security policy engine.

Turns a :class:`Principal` into an :class:`RLSConstraint`: a predicate over
a record's owner column plus the values it binds.  The function is pure;
the same principal always yields the same constraint.

Admins receive the unrestricted constraint (``1=1``, no parameters).
Everyone else receives ``user_id = :rls_owner_id`` bound to their own id.

The constraint only ever enters a statement in the WHERE position, either
as a SQLAlchemy expression via :meth:`RLSConstraint.where` or as a
parameterised ``text()`` clause via :meth:`RLSConstraint.as_text`.  Values
are always bound, never formatted into the SQL string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, bindparam, text, true
from sqlalchemy.sql.elements import TextClause

from ledger_core.principal import Principal

OWNER_COLUMN = "user_id"
OWNER_PARAM = "rls_owner_id"

_UNRESTRICTED_CLAUSE = "1=1"
_OWNER_CLAUSE = f"{OWNER_COLUMN} = :{OWNER_PARAM}"


@dataclass(frozen=True)
class RLSConstraint:
    """A row filter derived from a principal."""

    clause: str
    params: tuple[Any, ...] = ()

    @property
    def is_unrestricted(self) -> bool:
        return not self.params

    def where(self, owner_column: Any) -> ColumnElement[bool]:
        """Return the constraint as a boolean expression over *owner_column*.

        Combine with any other filter using ``and_()`` or by chaining
        ``.where()`` on a statement.
        """
        if self.is_unrestricted:
            return true()
        return owner_column == bindparam(OWNER_PARAM, self.params[0], unique=True)

    def as_text(self) -> TextClause:
        """Return the constraint as a parameterised ``text()`` clause."""
        clause = text(self.clause)
        if self.is_unrestricted:
            return clause
        return clause.bindparams(**{OWNER_PARAM: self.params[0]})

    def describe(self) -> str:
        """Human-readable summary for responses and logs."""
        if self.is_unrestricted:
            return "ADMIN"
        return f"{OWNER_COLUMN} = {self.params[0]}"


def build_filter(principal: Principal) -> RLSConstraint:
    """Build the row-level constraint for *principal*."""
    if principal.is_admin:
        return RLSConstraint(clause=_UNRESTRICTED_CLAUSE, params=())
    return RLSConstraint(clause=_OWNER_CLAUSE, params=(principal.id,))
