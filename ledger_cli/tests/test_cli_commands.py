"""Tests for the ledger operator CLI.

Uses typer.testing.CliRunner against a throwaway SQLite file per test.
Tokens and ``--json`` payloads are read from stdout; Rich output on stderr
is only checked for exit codes and key phrases.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from ledger_api.security import TokenManager
from ledger_cli.app import app
from ledger_core.principal import Principal
from ledger_core.services.records import RecordService
from ledger_core.state.database import get_engine, get_session_factory

runner = CliRunner()

_SECRET = "cli-test-secret"


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.chdir(tmp_path)
    for var in ("LEDGER_ENV", "LEDGER_DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("API_JWT_SECRET", _SECRET)
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


def _invoke(db_url: str, *args: str):
    return runner.invoke(app, ["--database-url", db_url, *args])


def _token_from(output: str) -> str:
    [line] = [ln for ln in output.splitlines() if ln.startswith("ldev.")]
    return line.strip()


async def _create_record(db_url: str, user_id: int) -> int:
    engine = get_engine(db_url)
    try:
        service = RecordService(get_session_factory(engine))
        return await service.create_record(
            Principal(id=user_id),
            {"description": "coffee", "amount": Decimal("4.50"), "category": "expense"},
        )
    finally:
        await engine.dispose()


class TestInitDb:
    def test_creates_schema(self, db_url: str) -> None:
        result = _invoke(db_url, "init-db")
        assert result.exit_code == 0, result.output
        assert "Schema ready" in result.output

    def test_idempotent(self, db_url: str) -> None:
        assert _invoke(db_url, "init-db").exit_code == 0
        assert _invoke(db_url, "init-db").exit_code == 0


class TestAddUser:
    def test_json_output(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        result = _invoke(db_url, "--json", "add-user", "alice", "--email", "alice@example.com")
        assert result.exit_code == 0, result.output
        payload = json.loads(next(ln for ln in result.output.splitlines() if ln.startswith("{")))
        assert payload["username"] == "alice"
        assert payload["role"] == "user"

    def test_duplicate_rejected(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        assert _invoke(db_url, "add-user", "alice", "-e", "alice@example.com").exit_code == 0
        result = _invoke(db_url, "add-user", "alice", "-e", "other@example.com")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_invalid_role_rejected(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        result = _invoke(db_url, "add-user", "mallory", "-e", "m@example.com", "--role", "superuser")
        assert result.exit_code == 1


class TestToken:
    def test_mints_verifiable_token(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        _invoke(db_url, "add-user", "root", "-e", "root@example.com", "-r", "admin")

        result = _invoke(db_url, "token", "--user-id", "1")
        assert result.exit_code == 0, result.output

        principal = TokenManager(_SECRET).verify(_token_from(result.output))
        assert principal.id == 1
        assert principal.is_admin

    def test_unknown_user(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        result = _invoke(db_url, "token", "-u", "99")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_refused_in_prod(self, db_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
        _invoke(db_url, "init-db")
        _invoke(db_url, "add-user", "alice", "-e", "alice@example.com")
        monkeypatch.setenv("LEDGER_ENV", "prod")
        result = _invoke(db_url, "token", "-u", "1")
        assert result.exit_code == 1
        assert "ldev." not in result.output


class TestAudit:
    def test_empty_trail(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        result = _invoke(db_url, "--json", "audit")
        assert result.exit_code == 0, result.output
        assert json.loads(result.output[result.output.index("[") :]) == []

    def test_lists_trigger_entries(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        _invoke(db_url, "add-user", "alice", "-e", "alice@example.com")
        record_id = asyncio.run(_create_record(db_url, 1))

        result = _invoke(db_url, "--json", "audit", "--operation", "insert")
        assert result.exit_code == 0, result.output
        entries = json.loads(result.output[result.output.index("[") :])
        assert len(entries) == 1
        assert entries[0]["record_id"] == record_id
        assert entries[0]["app_user_id"] == 1

    def test_table_output(self, db_url: str) -> None:
        _invoke(db_url, "init-db")
        _invoke(db_url, "add-user", "alice", "-e", "alice@example.com")
        asyncio.run(_create_record(db_url, 1))
        assert _invoke(db_url, "audit", "-n", "5").exit_code == 0

    def test_unknown_operation(self, db_url: str) -> None:
        result = _invoke(db_url, "audit", "--operation", "TRUNCATE")
        assert result.exit_code == 1


class TestMcpServe:
    def test_unknown_transport(self, db_url: str) -> None:
        result = _invoke(db_url, "mcp", "serve", "--transport", "websocket")
        assert result.exit_code == 1
        assert "Unknown transport" in result.output

    def test_stdio_is_default(self, db_url: str) -> None:
        with patch("ledger_cli.mcp.server.run_stdio", new_callable=AsyncMock) as run_stdio:
            result = _invoke(db_url, "mcp", "serve")
        assert result.exit_code == 0, result.output
        run_stdio.assert_awaited_once_with()

    def test_sse_passes_bind_address(self, db_url: str) -> None:
        with patch("ledger_cli.mcp.server.run_sse", new_callable=AsyncMock) as run_sse:
            result = _invoke(db_url, "mcp", "serve", "-t", "sse", "-p", "4444", "--host", "0.0.0.0")
        assert result.exit_code == 0, result.output
        run_sse.assert_awaited_once_with(host="0.0.0.0", port=4444)
