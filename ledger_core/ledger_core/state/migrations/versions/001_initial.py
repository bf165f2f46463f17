"""Create users, financial_records and audit_logs.

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('admin','user')", name="ck_users_role"),
    )

    op.create_table(
        "financial_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("category", sa.String(16), nullable=False, server_default="expense"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_financial_records_user",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint("category IN ('income','expense')", name="ck_financial_records_category"),
    )
    op.create_index("ix_financial_records_user_id", "financial_records", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.Integer(), nullable=False),
        sa.Column("operation", sa.String(10), nullable=False),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("db_user", sa.String(100), nullable=True),
        sa.Column("app_user_id", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("operation IN ('INSERT','UPDATE','DELETE')", name="ck_audit_logs_operation"),
    )
    op.create_index("idx_table_name", "audit_logs", ["table_name"])
    op.create_index("idx_operation", "audit_logs", ["operation"])
    op.create_index("idx_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_created_at", table_name="audit_logs")
    op.drop_index("idx_operation", table_name="audit_logs")
    op.drop_index("idx_table_name", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_financial_records_user_id", table_name="financial_records")
    op.drop_table("financial_records")
    op.drop_table("users")
