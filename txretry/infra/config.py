"""Application configuration loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    """Runtime configuration used across the project."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="TXRETRY_", extra="ignore")
    DB_URL: str = "sqlite:///./txretry.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int | None = Field(default=None, ge=1)
    DB_MAX_OVERFLOW: int | None = Field(default=None, ge=0)
    DB_POOL_TIMEOUT: int | None = Field(default=None, ge=1)
    DB_POOL_RECYCLE: int | None = Field(default=None, ge=1)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    LOG_DIR: str = "logs"
    LOG_FILENAME: str = "txretry.log"
    RETRY_ATTEMPTS: int = Field(default=10, ge=1)  # retries after the first attempt
    RETRY_MAX_BACKOFF_MILLIS: int = Field(default=30_000, ge=1)

settings = Settings()
