"""Tests for ledger core settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ledger_core.config import PlatformEnv, Settings, load_settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LEDGER_DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.env is PlatformEnv.DEV
        assert settings.is_sqlite
        assert settings.conceal_foreign_records is True
        assert settings.default_list_limit == 20
        assert settings.default_audit_limit == 10

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LEDGER_DATABASE_URL", "postgresql+asyncpg://u:p@db/ledger")
        monkeypatch.setenv("LEDGER_CONCEAL_FOREIGN_RECORDS", "false")
        monkeypatch.setenv("LEDGER_ENV", "prod")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert not settings.is_sqlite
        assert settings.conceal_foreign_records is False
        assert settings.env is PlatformEnv.PROD

    def test_overrides(self) -> None:
        settings = load_settings(default_list_limit=50)
        assert settings.default_list_limit == 50

    def test_non_positive_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_settings(max_list_limit=0)
