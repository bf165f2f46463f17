"""Tests for API settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ledger_api.config import APISettings, PlatformEnv


class TestAPISettings:
    def test_defaults(self) -> None:
        settings = APISettings(_env_file=None)  # type: ignore[call-arg]
        assert settings.port == 8000
        assert settings.platform_env in tuple(PlatformEnv)
        assert settings.conceal_foreign_records is True

    def test_wildcard_origin_with_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError, match="wildcard"):
            APISettings(cors_origins=["*"], cors_allow_credentials=True)

    def test_wildcard_origin_without_credentials_allowed(self) -> None:
        settings = APISettings(cors_origins=["*"], cors_allow_credentials=False)
        assert settings.cors_origins == ["*"]

    def test_secret_not_in_repr(self) -> None:
        settings = APISettings(jwt_secret="very-secret-value")  # type: ignore[arg-type]
        assert "very-secret-value" not in repr(settings)

    def test_is_local(self) -> None:
        assert APISettings(database_url="sqlite+aiosqlite:///:memory:").is_local
        assert not APISettings(database_url="postgresql+asyncpg://u:p@h/db").is_local
