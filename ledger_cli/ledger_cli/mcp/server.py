"""MCP server creation and transport handlers.

Provides two transport options:
- **stdio** - standard input/output for a single local client.
- **SSE** - Server-Sent Events over HTTP for remote clients.

Each connection authenticates separately with ``auth_authenticate``; the
identity is held per connection in :class:`ToolSessionRegistry`.

Usage::

    ledger mcp serve
    ledger mcp serve --transport sse --port 3333
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from ledger_api.config import APISettings, load_api_settings
from ledger_api.security import TokenManager
from ledger_cli.mcp.sessions import STDIO_CALLER, ToolSessionRegistry, current_caller
from ledger_cli.mcp.tools import TOOL_DEFINITIONS, ToolContext, call_tool
from ledger_core.config import PlatformEnv, Settings, load_settings
from ledger_core.services.records import RecordService
from ledger_core.state.database import create_schema, get_engine, get_session_factory

logger = logging.getLogger(__name__)


def _ensure_mcp_installed() -> None:
    """Raise a helpful error if the ``mcp`` extra is not installed."""
    try:
        import mcp  # noqa: F401
    except ImportError:
        raise SystemExit(
            "The 'mcp' extra is required for MCP server support.\nInstall it with: pip install ledger[mcp]"
        )


@dataclass
class ToolRuntime:
    """Shared, caller-independent state of a running tool server."""

    service: RecordService
    tokens: TokenManager
    engine: AsyncEngine | None = None
    sessions: ToolSessionRegistry = field(default_factory=ToolSessionRegistry)

    def context(self, caller: str) -> ToolContext:
        return ToolContext(service=self.service, sessions=self.sessions, tokens=self.tokens, caller=caller)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


async def build_runtime(
    settings: Settings | None = None,
    api_settings: APISettings | None = None,
) -> ToolRuntime:
    """Create the engine, record facade and token verifier from settings."""
    settings = settings or load_settings()
    api_settings = api_settings or load_api_settings()

    engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.is_sqlite or settings.env == PlatformEnv.DEV:
        await create_schema(engine)

    service = RecordService.from_settings(get_session_factory(engine), settings)
    tokens = TokenManager(
        api_settings.jwt_secret.get_secret_value(),
        ttl_seconds=api_settings.token_ttl_seconds,
    )
    return ToolRuntime(service=service, tokens=tokens, engine=engine)


def create_server(runtime: ToolRuntime) -> Any:
    """Create and configure the MCP server with all ledger tools.

    Returns
    -------
    mcp.server.Server
        A configured MCP server ready to run on any transport.
    """
    _ensure_mcp_installed()

    from mcp.server import Server
    from mcp.types import TextContent, Tool

    server = Server("ledger")

    @server.list_tools()  # type: ignore[untyped-decorator]
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name=defn["name"],
                description=defn["description"],
                inputSchema=defn["inputSchema"],
            )
            for defn in TOOL_DEFINITIONS
        ]

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Dispatch a tool call on behalf of the current connection."""
        result = await call_tool(name, arguments, runtime.context(current_caller.get()))
        return [
            TextContent(
                type="text",
                text=json.dumps(result, indent=2, default=str),
            )
        ]

    return server


async def run_stdio() -> None:
    """Run the MCP server on stdio transport (one caller per process)."""
    _ensure_mcp_installed()

    from mcp.server.stdio import stdio_server

    runtime = await build_runtime()
    server = create_server(runtime)
    token = current_caller.set(STDIO_CALLER)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        current_caller.reset(token)
        runtime.sessions.clear(STDIO_CALLER)
        await runtime.close()


async def run_sse(host: str = "127.0.0.1", port: int = 3333) -> None:
    """Run the MCP server on SSE (Server-Sent Events) transport.

    Every SSE connection gets its own caller key, so each connection
    authenticates independently and its identity is dropped on disconnect.

    Parameters
    ----------
    host:
        Bind address.  Default ``127.0.0.1`` (localhost only).
    port:
        HTTP port.  Default ``3333``.
    """
    _ensure_mcp_installed()

    import uvicorn
    from mcp.server.sse import SseServerTransport
    from starlette.applications import Starlette
    from starlette.routing import Mount, Route

    runtime = await build_runtime()
    server = create_server(runtime)
    sse_transport = SseServerTransport("/messages/")

    async def handle_sse(request: Any) -> Any:
        caller = f"sse-{uuid.uuid4().hex}"
        token = current_caller.set(caller)
        logger.info("SSE connection opened: %s", caller)
        try:
            async with sse_transport.connect_sse(request.scope, request.receive, request._send) as streams:
                await server.run(
                    streams[0],
                    streams[1],
                    server.create_initialization_options(),
                )
        finally:
            current_caller.reset(token)
            runtime.sessions.clear(caller)
            logger.info("SSE connection closed: %s", caller)

    app = Starlette(
        debug=False,
        routes=[
            Route("/sse", endpoint=handle_sse),
            Mount("/messages/", app=sse_transport.handle_post_message),
        ],
    )

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    uv_server = uvicorn.Server(config)
    try:
        await uv_server.serve()
    finally:
        await runtime.close()
