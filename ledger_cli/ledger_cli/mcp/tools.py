"""MCP tool implementations for the ledger.

Each tool is a plain async function that:
1. Receives a :class:`ToolContext` carrying the record facade, the
   per-caller session registry, and the caller key.
2. Accepts JSON-serializable arguments, validated by :func:`call_tool`
   against the tool's pydantic argument model.
3. Returns a ``dict[str, Any]`` result.

Failures never propagate into the MCP transport: :func:`call_tool` turns
every :class:`LedgerError` (and invalid arguments) into
``{"error": <kind>, "message": <text>}``.

The ``TOOL_DEFINITIONS`` list at the bottom provides JSON Schema
descriptions for tool registration with :mod:`ledger_cli.mcp.server`.

Tool list:
- ``auth_authenticate``   - Bind a principal to this caller from a token.
- ``auth_status``         - Report the principal bound to this caller.
- ``auth_logout``         - Forget the principal bound to this caller.
- ``records_list``        - List visible records, newest first.
- ``records_get_balance`` - Income, expense and balance.
- ``records_create``      - Create a record owned by the caller.
- ``records_update``      - Partially update a record.
- ``records_delete``      - Delete a record.
- ``audit_list``          - Most recent audit entries.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ledger_api.security import TokenError, TokenManager
from ledger_cli.mcp.sessions import ToolSessionRegistry
from ledger_core.errors import LedgerError, NotAuthenticatedError, ValidationFailure
from ledger_core.models.record import RecordCreate, RecordUpdate
from ledger_core.policy.rls import build_filter
from ledger_core.principal import Principal
from ledger_core.services.records import RecordService

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Everything a tool needs to serve one call from one caller."""

    service: RecordService
    sessions: ToolSessionRegistry
    tokens: TokenManager
    caller: str

    @property
    def principal(self) -> Principal | None:
        return self.sessions.get(self.caller)


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class _NoArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _AuthenticateArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token: str = Field(..., min_length=1)


class _ListArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: int = Field(default=20, ge=1, le=500)


class _AuditArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: int = Field(default=10, ge=1, le=500)


class _UpdateArgs(RecordUpdate):
    record_id: int = Field(..., gt=0)


class _DeleteArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    record_id: int = Field(..., gt=0)


# ---------------------------------------------------------------------------
# Tools: authentication
# ---------------------------------------------------------------------------


async def auth_authenticate(ctx: ToolContext, token: str) -> dict[str, Any]:
    """Verify *token* and bind its principal to this caller only."""
    try:
        principal = ctx.tokens.verify(token)
    except TokenError as exc:
        logger.warning("Tool authentication failed for caller %s: %s", ctx.caller, exc)
        return {"error": "not_authenticated", "message": "Invalid token"}
    ctx.sessions.bind(ctx.caller, principal)
    logger.info("Caller %s authenticated as user_id=%d", ctx.caller, principal.id)
    return {"authenticated": True, "user_id": principal.id, "role": principal.role.value}


async def auth_status(ctx: ToolContext) -> dict[str, Any]:
    principal = ctx.principal
    if principal is None:
        return {"authenticated": False}
    return {"authenticated": True, "user_id": principal.id, "role": principal.role.value}


async def auth_logout(ctx: ToolContext) -> dict[str, Any]:
    return {"logged_out": ctx.sessions.clear(ctx.caller)}


# ---------------------------------------------------------------------------
# Tools: records
# ---------------------------------------------------------------------------


async def records_list(ctx: ToolContext, limit: int = 20) -> dict[str, Any]:
    """List the caller's records (all records for admins), newest first."""
    principal = ctx.principal
    if principal is None:
        raise NotAuthenticatedError()
    records = await ctx.service.list_records(principal, limit=limit)
    return {
        "user_id": principal.id,
        "rls_filter": build_filter(principal).describe(),
        "count": len(records),
        "records": [record.model_dump(mode="json") for record in records],
    }


async def records_get_balance(ctx: ToolContext) -> dict[str, Any]:
    balance = await ctx.service.get_balance(ctx.principal)
    return balance.model_dump(mode="json")


async def records_create(ctx: ToolContext, **fields: Any) -> dict[str, Any]:
    record_id = await ctx.service.create_record(ctx.principal, fields)
    return {"id": record_id, "message": "Record created"}


async def records_update(ctx: ToolContext, record_id: int, **fields: Any) -> dict[str, Any]:
    updated_id = await ctx.service.update_record(ctx.principal, record_id, fields)
    return {"id": updated_id, "message": "Record updated"}


async def records_delete(ctx: ToolContext, record_id: int) -> dict[str, Any]:
    await ctx.service.delete_record(ctx.principal, record_id)
    return {"id": record_id, "deleted": True}


# ---------------------------------------------------------------------------
# Tools: audit
# ---------------------------------------------------------------------------


async def audit_list(ctx: ToolContext, limit: int = 10) -> dict[str, Any]:
    entries = await ctx.service.list_audit(ctx.principal, limit=limit)
    return {
        "count": len(entries),
        "entries": [entry.model_dump(mode="json") for entry in entries],
    }


# ---------------------------------------------------------------------------
# Tool definitions (JSON Schema for MCP registration)
# ---------------------------------------------------------------------------

_RECORD_ID_SCHEMA: dict[str, Any] = {
    "type": "integer",
    "minimum": 1,
    "description": "Id of the financial record.",
}

_CATEGORY_SCHEMA: dict[str, Any] = {
    "type": "string",
    "enum": ["income", "expense"],
    "description": "Whether the amount adds to or subtracts from the balance.",
}

_AMOUNT_SCHEMA: dict[str, Any] = {
    "type": "number",
    "exclusiveMinimum": 0,
    "description": "Positive amount with at most two decimal places.",
}

_DESCRIPTION_SCHEMA: dict[str, Any] = {
    "type": "string",
    "minLength": 1,
    "maxLength": 255,
    "description": "Free-text description of the record.",
}

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "auth_authenticate",
        "description": (
            "Authenticate this connection with a bearer token. Every other "
            "records and audit tool requires an authenticated connection."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "token": {"type": "string", "description": "Token issued by `ledger token`."},
            },
            "required": ["token"],
        },
    },
    {
        "name": "auth_status",
        "description": "Report whether this connection is authenticated, and as whom.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "auth_logout",
        "description": "Forget the identity bound to this connection.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "records_list",
        "description": (
            "List financial records visible to the authenticated user, newest "
            "first. Admins see every user's records."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 500,
                    "default": 20,
                    "description": "Maximum number of records to return. Default: 20.",
                },
            },
        },
    },
    {
        "name": "records_get_balance",
        "description": "Total income, total expense and balance over the visible records.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "records_create",
        "description": "Create a financial record owned by the authenticated user.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "description": _DESCRIPTION_SCHEMA,
                "amount": _AMOUNT_SCHEMA,
                "category": _CATEGORY_SCHEMA,
            },
            "required": ["description", "amount", "category"],
        },
    },
    {
        "name": "records_update",
        "description": (
            "Update one or more fields of a record. Only the owner or an admin may update a record."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "record_id": _RECORD_ID_SCHEMA,
                "description": _DESCRIPTION_SCHEMA,
                "amount": _AMOUNT_SCHEMA,
                "category": _CATEGORY_SCHEMA,
            },
            "required": ["record_id"],
        },
    },
    {
        "name": "records_delete",
        "description": "Delete a record. Only the owner or an admin may delete a record.",
        "inputSchema": {
            "type": "object",
            "properties": {"record_id": _RECORD_ID_SCHEMA},
            "required": ["record_id"],
        },
    },
    {
        "name": "audit_list",
        "description": "Most recent audit trail entries, newest first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 500,
                    "default": 10,
                    "description": "Maximum number of entries to return. Default: 10.",
                },
            },
        },
    },
]


# ---------------------------------------------------------------------------
# Tool dispatch map
# ---------------------------------------------------------------------------

ToolHandler = Callable[..., Awaitable[dict[str, Any]]]

TOOL_DISPATCH: dict[str, tuple[ToolHandler, type[BaseModel]]] = {
    "auth_authenticate": (auth_authenticate, _AuthenticateArgs),
    "auth_status": (auth_status, _NoArgs),
    "auth_logout": (auth_logout, _NoArgs),
    "records_list": (records_list, _ListArgs),
    "records_get_balance": (records_get_balance, _NoArgs),
    "records_create": (records_create, RecordCreate),
    "records_update": (records_update, _UpdateArgs),
    "records_delete": (records_delete, _DeleteArgs),
    "audit_list": (audit_list, _AuditArgs),
}


def _argument_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


async def call_tool(name: str, arguments: dict[str, Any] | None, ctx: ToolContext) -> dict[str, Any]:
    """Validate *arguments*, run tool *name* and return its JSON payload."""
    entry = TOOL_DISPATCH.get(name)
    if entry is None:
        return {"error": "unknown_tool", "message": f"Unknown tool: {name}"}
    handler, args_model = entry

    try:
        args = args_model.model_validate(arguments or {})
    except ValidationError as exc:
        return {"error": ValidationFailure.kind, "message": _argument_error(exc)}

    try:
        return await handler(ctx, **args.model_dump(exclude_none=True))
    except LedgerError as exc:
        if exc.kind != "storage_failure":
            logger.info("Tool '%s' rejected for caller %s: %s", name, ctx.caller, exc)
        return {"error": exc.kind, "message": str(exc)}
