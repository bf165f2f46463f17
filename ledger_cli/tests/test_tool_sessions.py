"""Tests for the per-caller session registry and MCP server wiring."""

from __future__ import annotations

import pytest

from ledger_cli.mcp.server import ToolRuntime, create_server
from ledger_cli.mcp.sessions import STDIO_CALLER, ToolSessionRegistry, current_caller
from ledger_core.principal import Principal, Role


class TestToolSessionRegistry:
    def test_bind_and_get(self) -> None:
        registry = ToolSessionRegistry()
        registry.bind("a", Principal(id=5))
        assert registry.get("a") == Principal(id=5)
        assert registry.get("b") is None
        assert len(registry) == 1

    def test_rebind_replaces_only_that_caller(self) -> None:
        registry = ToolSessionRegistry()
        registry.bind("a", Principal(id=5))
        registry.bind("b", Principal(id=6))
        registry.bind("a", Principal(id=1, role=Role.ADMIN))
        assert registry.get("a") == Principal(id=1, role=Role.ADMIN)
        assert registry.get("b") == Principal(id=6)

    def test_clear(self) -> None:
        registry = ToolSessionRegistry()
        registry.bind("a", Principal(id=5))
        assert registry.clear("a") is True
        assert registry.clear("a") is False
        assert registry.get("a") is None

    def test_default_caller_is_stdio(self) -> None:
        assert current_caller.get() == STDIO_CALLER


class TestCreateServer:
    def test_server_registers_tools(self, runtime: ToolRuntime) -> None:
        pytest.importorskip("mcp")
        server = create_server(runtime)
        assert server.name == "ledger"

    def test_context_uses_shared_registry(self, runtime: ToolRuntime) -> None:
        runtime.sessions.bind("x", Principal(id=5))
        assert runtime.context("x").principal == Principal(id=5)
        assert runtime.context("y").principal is None
