"""Centralized runtime configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

from txretry.infra.config import settings


@dataclass(frozen=True)
class LoggingConfig:
    """Expose logging related configuration."""

    directory: str
    filename: str
    level: str

    @cached_property
    def directory_path(self) -> Path:
        return Path(self.directory)

    @cached_property
    def file_path(self) -> Path:
        return self.directory_path / self.filename


@dataclass(frozen=True)
class RetryConfig:
    """Default retry budget applied to transaction boundaries."""

    attempts: int
    max_backoff_millis: int

    @cached_property
    def max_backoff_seconds(self) -> float:
        return self.max_backoff_millis / 1000.0


logging_config = LoggingConfig(
    directory=settings.LOG_DIR,
    filename=settings.LOG_FILENAME,
    level=settings.LOG_LEVEL,
)


LOGGING_CONFIG = logging_config
LOG_DIRECTORY: str = logging_config.directory
LOG_DIRECTORY_PATH: Path = logging_config.directory_path
LOG_FILE_NAME: str = logging_config.filename
LOG_FILE_PATH: Path = logging_config.file_path
LOG_LEVEL: str = logging_config.level


retry_config = RetryConfig(
    attempts=settings.RETRY_ATTEMPTS,
    max_backoff_millis=settings.RETRY_MAX_BACKOFF_MILLIS,
)


RETRY_CONFIG = retry_config
DEFAULT_RETRY_ATTEMPTS: int = retry_config.attempts
DEFAULT_MAX_BACKOFF_MILLIS: int = retry_config.max_backoff_millis
