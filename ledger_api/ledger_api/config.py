"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from typing import Self

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger_core.config import PlatformEnv

__all__ = ["APISettings", "PlatformEnv", "load_api_settings"]


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_PORT=9000``) or through a ``.env`` file in the
    working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for local runs.
    database_url: str = "sqlite+aiosqlite:///.ledger/ledger.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    platform_env: PlatformEnv = PlatformEnv.DEV

    # Report "not found" rather than "forbidden" for other users' records.
    conceal_foreign_records: bool = True

    # Origins permitted by the CORS middleware.
    cors_origins: list[str] = ["http://localhost:3000"]

    # Whether CORS responses include credentials (cookies, auth headers).
    cors_allow_credentials: bool = True

    # Secret used to verify bearer tokens.  Must be overridden outside dev.
    jwt_secret: SecretStr = SecretStr("ledger-dev-secret-change-in-production")
    token_ttl_seconds: int = 3600

    # Structured JSON logging for SIEM integration.
    structured_logging: bool = False

    @model_validator(mode="after")
    def _validate_cors_credentials_not_wildcard(self) -> Self:
        """Reject wildcard origins when credentials are enabled.

        Browsers silently reject ``Access-Control-Allow-Origin: *`` when
        ``Access-Control-Allow-Credentials: true`` is present.  Fail fast at
        startup instead.
        """
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError(
                "Cannot use wildcard origins with credentials. "
                "Specify explicit origins instead of '*' when "
                "cors_allow_credentials=True."
            )
        return self

    @property
    def is_local(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
