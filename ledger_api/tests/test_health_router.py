"""Tests for the /api/v1/health endpoint."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError


class TestHealthRouter:
    @pytest.mark.asyncio
    async def test_healthy(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["db"] == "ok"

    @pytest.mark.asyncio
    async def test_degraded_when_database_unreachable(self, client: AsyncClient) -> None:
        factory = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")))
        with patch("ledger_api.routers.health.get_session_factory", return_value=factory):
            resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["db"] == "unavailable"

    @pytest.mark.asyncio
    async def test_degraded_before_engine_init(self, client: AsyncClient) -> None:
        with patch(
            "ledger_api.routers.health.get_session_factory",
            side_effect=RuntimeError("Database engine not initialised"),
        ):
            resp = await client.get("/api/v1/health")
        assert resp.json()["status"] == "degraded"
