"""Install the secure view, identity function and audit triggers.

``financial_records_secure`` filters on ``app_current_user_id()``, which
reads the identity bound for the current session.  Unbound sessions see
zero rows.  Triggers on ``financial_records`` append one ``audit_logs`` row
per inserted, updated or deleted record with its before/after image, and
``audit_logs`` itself rejects UPDATE and DELETE.

The statements are shared with local schema creation through
:mod:`ledger_core.state.secure_objects` so both paths install identical
objects.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
from ledger_core.state.secure_objects import create_statements, drop_statements

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    dialect_name = op.get_bind().dialect.name
    for statement in create_statements(dialect_name):
        op.execute(statement)


def downgrade() -> None:
    dialect_name = op.get_bind().dialect.name
    for statement in drop_statements(dialect_name):
        op.execute(statement)
