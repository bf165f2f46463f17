"""Core configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Ledger core settings loaded from environment variables with LEDGER_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # Database.  PostgreSQL (asyncpg) in production, SQLite (aiosqlite) locally.
    database_url: str = "sqlite+aiosqlite:///.ledger/ledger.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # When true, update/delete against another user's record reports
    # "not found" instead of "forbidden" so record ids cannot be enumerated.
    conceal_foreign_records: bool = True

    # Listing defaults.
    default_list_limit: int = 20
    default_audit_limit: int = 10
    max_list_limit: int = 500

    # Logging
    structured_logging: bool = False

    @field_validator("default_list_limit", "default_audit_limit", "max_list_limit")
    @classmethod
    def _positive_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("limits must be >= 1")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
