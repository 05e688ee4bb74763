"""Lineage engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with LINEAGE_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="LINEAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # Graph store
    database_url: str = "sqlite+aiosqlite:///.lineage/graph.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Job execution
    job_timeout_seconds: float | None = None
    max_concurrent_jobs: int = Field(default=4, ge=1)

    # Metadata lookup collaborator
    lookup_batch_size: int = Field(default=5, ge=1)
    lookup_max_retries: int = Field(default=2, ge=0)
    lookup_backoff_seconds: float = Field(default=1.0, gt=0.0)
    lookup_jitter: bool = False

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @field_validator("job_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("job_timeout_seconds must be positive when set")
        return v

    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
