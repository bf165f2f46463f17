"""Ledger CLI application -- Typer-based operator interface.

Provides commands for schema bootstrap, user provisioning, development
token minting, audit trail inspection, and the MCP tool server.
Human-readable output goes to *stderr* via Rich; machine-readable output
(tokens, ``--json`` payloads) goes to *stdout* so that shells can compose
cleanly.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ledger_cli.display import display_audit_entries, display_user
from ledger_core.config import PlatformEnv, Settings, load_settings
from ledger_core.models.record import AuditEntry, AuditOperation, UserSummary
from ledger_core.principal import Principal, parse_role
from ledger_core.state.database import create_schema, get_engine, get_session
from ledger_core.state.repository import AuditLogRepository, UserRepository

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="ledger",
    help="Ledger - per-user financial records with row-level security",
    no_args_is_help=True,
)
console = Console(stderr=True)

mcp_app = typer.Typer(
    name="mcp",
    help="MCP (Model Context Protocol) server for AI assistant integration.",
    no_args_is_help=True,
)
app.add_typer(mcp_app, name="mcp")

# Stored in place of a password hash for users provisioned from the CLI.
# No password verifier accepts it, so such accounts cannot log in with a
# password until one is set through the authentication service.
UNUSABLE_PASSWORD_HASH = "!unusable"

# Mutable global options populated by the Typer callback.
_database_url: str | None = None
_json_output: bool = False


@app.callback()
def _global_options(
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL override (defaults to LEDGER_DATABASE_URL or the local SQLite file).",
    ),
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
) -> None:
    """Global options applied to every command."""
    global _database_url, _json_output  # noqa: PLW0603
    _database_url = database_url
    _json_output = json_mode


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    if _database_url:
        return load_settings(database_url=_database_url)
    return load_settings()


def _engine(settings: Settings) -> Any:
    return get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]{message}[/red]")
    return typer.Exit(code=1)


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


async def _init_db(settings: Settings) -> None:
    engine = _engine(settings)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


@app.command("init-db")
def init_db() -> None:
    """Create tables, the secure view, identity functions and audit triggers.

    Safe to run repeatedly.  Production databases should be managed with
    ``alembic upgrade head`` instead.
    """
    settings = _settings()
    try:
        asyncio.run(_init_db(settings))
    except SQLAlchemyError as exc:
        raise _fail(f"Schema creation failed: {exc}") from exc
    console.print(f"[green]Schema ready[/green] ({'sqlite' if settings.is_sqlite else 'postgres'})")


# ---------------------------------------------------------------------------
# add-user
# ---------------------------------------------------------------------------


async def _add_user(settings: Settings, username: str, email: str, role: str) -> UserSummary:
    engine = _engine(settings)
    try:
        async with get_session(engine) as session:
            repo = UserRepository(session)
            user_id = await repo.create(
                username=username,
                email=email,
                password_hash=UNUSABLE_PASSWORD_HASH,
                role=role,
            )
            user = await repo.get(user_id)
            return UserSummary.model_validate(user)
    finally:
        await engine.dispose()


@app.command("add-user")
def add_user(
    username: str = typer.Argument(..., help="Unique login name (max 50 characters)."),
    email: str = typer.Option(..., "--email", "-e", help="Unique email address."),
    role: str = typer.Option("user", "--role", "-r", help="Role: 'user' or 'admin'."),
) -> None:
    """Provision a user row (password is set through the authentication service)."""
    try:
        parsed_role = parse_role(role)
    except ValueError as exc:
        raise _fail(str(exc)) from exc
    if not username.strip() or len(username) > 50:
        raise _fail("Username must be 1-50 characters.")

    try:
        user = asyncio.run(_add_user(_settings(), username.strip(), email.strip(), parsed_role.value))
    except IntegrityError as exc:
        raise _fail(f"User '{username}' or email '{email}' already exists.") from exc
    except SQLAlchemyError as exc:
        raise _fail(f"Could not create user: {exc}") from exc

    if _json_output:
        typer.echo(user.model_dump_json())
    else:
        display_user(console, user)


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


async def _lookup_principal(settings: Settings, user_id: int) -> Principal | None:
    engine = _engine(settings)
    try:
        async with get_session(engine) as session:
            user = await UserRepository(session).get(user_id)
            if user is None:
                return None
            return Principal(id=user.id, role=parse_role(user.role))
    finally:
        await engine.dispose()


@app.command()
def token(
    user_id: int = typer.Option(..., "--user-id", "-u", min=1, help="Id of an existing user."),
    ttl: int = typer.Option(3600, "--ttl", min=60, help="Token lifetime in seconds."),
) -> None:
    """Mint a development bearer token for an existing user.

    The token is printed to stdout.  Refused when LEDGER_ENV=prod.
    """
    from ledger_api.config import load_api_settings
    from ledger_api.security import TokenManager

    settings = _settings()
    if settings.env == PlatformEnv.PROD:
        raise _fail("Refusing to mint development tokens in prod.")

    try:
        principal = asyncio.run(_lookup_principal(settings, user_id))
    except SQLAlchemyError as exc:
        raise _fail(f"Could not look up user: {exc}") from exc
    if principal is None:
        raise _fail(f"User {user_id} not found.")

    api_settings = load_api_settings()
    manager = TokenManager(api_settings.jwt_secret.get_secret_value())
    typer.echo(manager.issue(principal, ttl_seconds=ttl))
    console.print(f"[dim]Token for user_id={principal.id} role={principal.role.value}, valid {ttl}s[/dim]")


# ---------------------------------------------------------------------------
# audit
# ---------------------------------------------------------------------------


async def _list_audit(
    settings: Settings,
    limit: int,
    record_id: int | None,
    operation: str | None,
) -> list[AuditEntry]:
    engine = _engine(settings)
    try:
        async with get_session(engine) as session:
            rows = await AuditLogRepository(session).list(limit=limit, record_id=record_id, operation=operation)
            return [AuditEntry.model_validate(row) for row in rows]
    finally:
        await engine.dispose()


@app.command()
def audit(
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=500, help="Number of entries to show."),
    record_id: int | None = typer.Option(None, "--record-id", help="Only entries for this record."),
    operation: str | None = typer.Option(None, "--operation", help="INSERT, UPDATE or DELETE."),
) -> None:
    """Show the most recent audit trail entries, newest first."""
    if operation is not None:
        try:
            operation = AuditOperation(operation.upper()).value
        except ValueError as exc:
            raise _fail(f"Unknown operation '{operation}'. Use INSERT, UPDATE or DELETE.") from exc

    try:
        entries = asyncio.run(_list_audit(_settings(), limit, record_id, operation))
    except SQLAlchemyError as exc:
        raise _fail(f"Could not read audit trail: {exc}") from exc

    if _json_output:
        typer.echo(json.dumps([entry.model_dump(mode="json") for entry in entries], indent=2))
    else:
        display_audit_entries(console, entries)


# ---------------------------------------------------------------------------
# MCP server commands
# ---------------------------------------------------------------------------


@mcp_app.command("serve")
def mcp_serve(
    transport: str = typer.Option(
        "stdio",
        "--transport",
        "-t",
        help="Transport type: 'stdio' (default) or 'sse'.",
    ),
    port: int = typer.Option(
        3333,
        "--port",
        "-p",
        help="Port for SSE transport (ignored for stdio).",
    ),
    host: str = typer.Option(
        "127.0.0.1",
        "--host",
        help="Bind address for SSE transport. Use 0.0.0.0 for all interfaces.",
    ),
) -> None:
    """Start the ledger MCP server.

    Clients call ``auth_authenticate`` with a token from ``ledger token``
    before using the records and audit tools.

    \b
    Local client (stdio transport):
        ledger mcp serve

    \b
    Remote clients (SSE transport):
        ledger mcp serve --transport sse --port 3333
    """
    if transport not in ("stdio", "sse"):
        raise _fail(f"Unknown transport '{transport}'. Use 'stdio' or 'sse'.")

    try:
        from ledger_cli.mcp.server import run_sse, run_stdio
    except SystemExit as exc:
        raise _fail(str(exc)) from exc

    if transport == "stdio":
        # Only print to stderr; stdout is reserved for the MCP protocol.
        console.print("[dim]Starting ledger MCP server (stdio)...[/dim]")
        asyncio.run(run_stdio())
    else:
        console.print(f"[bold]Starting ledger MCP server (SSE) on {host}:{port}[/bold]")
        asyncio.run(run_sse(host=host, port=port))
