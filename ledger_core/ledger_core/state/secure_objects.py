"""Database-side row-level security objects.

Three kinds of objects live here, one definition per dialect:

* ``app_current_user_id()`` -- returns the identity bound for the current
  session (see :func:`ledger_core.state.database.bind_identity`), or NULL
  when nothing is bound.
* ``financial_records_secure`` -- a view over ``financial_records`` that
  self-filters on ``user_id = app_current_user_id()``.  Any read through
  the view is row-filtered even if the caller forgot the application-side
  constraint.  An unbound session sees zero rows.
* Audit triggers -- ``AFTER INSERT/UPDATE/DELETE`` on ``financial_records``
  append one ``audit_logs`` row per mutated row with the before/after row
  image.  A second pair of triggers rejects UPDATE and DELETE on
  ``audit_logs`` so the trail is append-only.

On PostgreSQL the identity function reads the ``app.current_user_id``
setting.  On SQLite it is a connection-local Python function registered by
:mod:`ledger_core.state.sqlite_adapter`; opening the database without that
registration makes every audited mutation fail, which is the intended
outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import Connection, Integer, Numeric, String, column, table, text
from sqlalchemy.types import DateTime

logger = logging.getLogger(__name__)

SECURE_VIEW = "financial_records_secure"
IDENTITY_SETTING = "app.current_user_id"
IDENTITY_FUNCTION = "app_current_user_id"
IDENTITY_SETTER = "app_set_current_user_id"

# Lightweight selectable for the view; deliberately not part of Base.metadata
# so create_all() never tries to create it as a table.
financial_records_secure = table(
    SECURE_VIEW,
    column("id", Integer),
    column("user_id", Integer),
    column("description", String),
    column("amount", Numeric(10, 2)),
    column("category", String),
    column("created_at", DateTime(timezone=True)),
    column("updated_at", DateTime(timezone=True)),
)

_AUDITED_TABLE = "financial_records"
_TRIGGER_NAMES: tuple[str, ...] = (
    "trg_financial_after_insert",
    "trg_financial_after_update",
    "trg_financial_after_delete",
)
_IMMUTABILITY_TRIGGERS: tuple[str, ...] = (
    "trg_audit_logs_no_update",
    "trg_audit_logs_no_delete",
)


def _sqlite_row_image(ref: str) -> str:
    return (
        f"json_object('user_id', {ref}.user_id, 'description', {ref}.description, "
        f"'amount', {ref}.amount, 'category', {ref}.category)"
    )


def _pg_row_image(ref: str) -> str:
    return (
        f"json_build_object('user_id', {ref}.user_id, 'description', {ref}.description, "
        f"'amount', {ref}.amount, 'category', {ref}.category)"
    )


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_SQLITE_CREATE: tuple[str, ...] = (
    f"CREATE VIEW IF NOT EXISTS {SECURE_VIEW} AS "
    f"SELECT * FROM {_AUDITED_TABLE} WHERE user_id = {IDENTITY_FUNCTION}()",
    f"""CREATE TRIGGER IF NOT EXISTS trg_financial_after_insert
AFTER INSERT ON {_AUDITED_TABLE}
FOR EACH ROW
BEGIN
    INSERT INTO audit_logs (table_name, record_id, operation, new_data, db_user, app_user_id, created_at)
    VALUES ('{_AUDITED_TABLE}', NEW.id, 'INSERT', {_sqlite_row_image("NEW")},
            'sqlite', COALESCE({IDENTITY_FUNCTION}(), NEW.user_id), CURRENT_TIMESTAMP);
END""",
    f"""CREATE TRIGGER IF NOT EXISTS trg_financial_after_update
AFTER UPDATE ON {_AUDITED_TABLE}
FOR EACH ROW
BEGIN
    INSERT INTO audit_logs (table_name, record_id, operation, old_data, new_data, db_user, app_user_id, created_at)
    VALUES ('{_AUDITED_TABLE}', NEW.id, 'UPDATE', {_sqlite_row_image("OLD")}, {_sqlite_row_image("NEW")},
            'sqlite', COALESCE({IDENTITY_FUNCTION}(), NEW.user_id), CURRENT_TIMESTAMP);
END""",
    f"""CREATE TRIGGER IF NOT EXISTS trg_financial_after_delete
AFTER DELETE ON {_AUDITED_TABLE}
FOR EACH ROW
BEGIN
    INSERT INTO audit_logs (table_name, record_id, operation, old_data, db_user, app_user_id, created_at)
    VALUES ('{_AUDITED_TABLE}', OLD.id, 'DELETE', {_sqlite_row_image("OLD")},
            'sqlite', COALESCE({IDENTITY_FUNCTION}(), OLD.user_id), CURRENT_TIMESTAMP);
END""",
    """CREATE TRIGGER IF NOT EXISTS trg_audit_logs_no_update
BEFORE UPDATE ON audit_logs
BEGIN
    SELECT RAISE(ABORT, 'audit_logs is append-only');
END""",
    """CREATE TRIGGER IF NOT EXISTS trg_audit_logs_no_delete
BEFORE DELETE ON audit_logs
BEGIN
    SELECT RAISE(ABORT, 'audit_logs is append-only');
END""",
)

_SQLITE_DROP: tuple[str, ...] = (
    *(f"DROP TRIGGER IF EXISTS {name}" for name in _IMMUTABILITY_TRIGGERS),
    *(f"DROP TRIGGER IF EXISTS {name}" for name in _TRIGGER_NAMES),
    f"DROP VIEW IF EXISTS {SECURE_VIEW}",
)


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

_PG_CREATE: tuple[str, ...] = (
    f"""CREATE OR REPLACE FUNCTION {IDENTITY_FUNCTION}() RETURNS integer
LANGUAGE sql STABLE
AS $$ SELECT NULLIF(current_setting('{IDENTITY_SETTING}', true), '')::integer $$""",
    f"CREATE OR REPLACE VIEW {SECURE_VIEW} WITH (security_barrier) AS "
    f"SELECT * FROM {_AUDITED_TABLE} WHERE user_id = {IDENTITY_FUNCTION}()",
    f"""CREATE OR REPLACE FUNCTION fn_financial_records_audit() RETURNS trigger
LANGUAGE plpgsql
AS $$
BEGIN
    IF TG_OP = 'INSERT' THEN
        INSERT INTO audit_logs (table_name, record_id, operation, new_data, db_user, app_user_id, created_at)
        VALUES ('{_AUDITED_TABLE}', NEW.id, 'INSERT', {_pg_row_image("NEW")},
                current_user, COALESCE({IDENTITY_FUNCTION}(), NEW.user_id), now());
        RETURN NEW;
    ELSIF TG_OP = 'UPDATE' THEN
        INSERT INTO audit_logs (table_name, record_id, operation, old_data, new_data, db_user, app_user_id, created_at)
        VALUES ('{_AUDITED_TABLE}', NEW.id, 'UPDATE', {_pg_row_image("OLD")}, {_pg_row_image("NEW")},
                current_user, COALESCE({IDENTITY_FUNCTION}(), NEW.user_id), now());
        RETURN NEW;
    ELSE
        INSERT INTO audit_logs (table_name, record_id, operation, old_data, db_user, app_user_id, created_at)
        VALUES ('{_AUDITED_TABLE}', OLD.id, 'DELETE', {_pg_row_image("OLD")},
                current_user, COALESCE({IDENTITY_FUNCTION}(), OLD.user_id), now());
        RETURN OLD;
    END IF;
END
$$""",
    """CREATE OR REPLACE FUNCTION fn_audit_logs_immutable() RETURNS trigger
LANGUAGE plpgsql
AS $$
BEGIN
    RAISE EXCEPTION 'audit_logs is append-only';
END
$$""",
    *(f"DROP TRIGGER IF EXISTS {name} ON {_AUDITED_TABLE}" for name in _TRIGGER_NAMES),
    f"CREATE TRIGGER trg_financial_after_insert AFTER INSERT ON {_AUDITED_TABLE} "
    "FOR EACH ROW EXECUTE FUNCTION fn_financial_records_audit()",
    f"CREATE TRIGGER trg_financial_after_update AFTER UPDATE ON {_AUDITED_TABLE} "
    "FOR EACH ROW EXECUTE FUNCTION fn_financial_records_audit()",
    f"CREATE TRIGGER trg_financial_after_delete AFTER DELETE ON {_AUDITED_TABLE} "
    "FOR EACH ROW EXECUTE FUNCTION fn_financial_records_audit()",
    *(f"DROP TRIGGER IF EXISTS {name} ON audit_logs" for name in _IMMUTABILITY_TRIGGERS),
    "CREATE TRIGGER trg_audit_logs_no_update BEFORE UPDATE ON audit_logs "
    "FOR EACH ROW EXECUTE FUNCTION fn_audit_logs_immutable()",
    "CREATE TRIGGER trg_audit_logs_no_delete BEFORE DELETE ON audit_logs "
    "FOR EACH ROW EXECUTE FUNCTION fn_audit_logs_immutable()",
)

_PG_DROP: tuple[str, ...] = (
    *(f"DROP TRIGGER IF EXISTS {name} ON audit_logs" for name in _IMMUTABILITY_TRIGGERS),
    *(f"DROP TRIGGER IF EXISTS {name} ON {_AUDITED_TABLE}" for name in _TRIGGER_NAMES),
    "DROP FUNCTION IF EXISTS fn_audit_logs_immutable()",
    "DROP FUNCTION IF EXISTS fn_financial_records_audit()",
    f"DROP VIEW IF EXISTS {SECURE_VIEW}",
    f"DROP FUNCTION IF EXISTS {IDENTITY_FUNCTION}()",
)


def create_statements(dialect_name: str) -> Sequence[str]:
    """Return the DDL that installs the secure view and audit triggers."""
    if "sqlite" in dialect_name:
        return _SQLITE_CREATE
    if "postgresql" in dialect_name:
        return _PG_CREATE
    raise ValueError(f"Unsupported dialect for row-level security objects: {dialect_name!r}")


def drop_statements(dialect_name: str) -> Sequence[str]:
    """Return the DDL that removes everything :func:`create_statements` installs."""
    if "sqlite" in dialect_name:
        return _SQLITE_DROP
    if "postgresql" in dialect_name:
        return _PG_DROP
    raise ValueError(f"Unsupported dialect for row-level security objects: {dialect_name!r}")


def install_secure_objects(connection: Connection) -> None:
    """Install the identity function, secure view and audit triggers.

    Idempotent.  Works on a synchronous connection so it can run from
    Alembic migrations and from ``AsyncConnection.run_sync``.
    """
    dialect_name = connection.dialect.name
    for statement in create_statements(dialect_name):
        connection.execute(text(statement))
    logger.info("Row-level security objects installed (%s)", dialect_name)


def remove_secure_objects(connection: Connection) -> None:
    """Drop the secure view, identity function and audit triggers."""
    dialect_name = connection.dialect.name
    for statement in drop_statements(dialect_name):
        connection.execute(text(statement))
    logger.info("Row-level security objects removed (%s)", dialect_name)

