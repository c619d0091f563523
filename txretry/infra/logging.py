from __future__ import annotations

import logging
import logging.handlers
import sys

from txretry.shared.config import LOG_DIRECTORY_PATH, LOG_FILE_PATH, LOG_LEVEL

CONSOLE_FORMAT = "%(asctime)s %(levelname).1s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d]: %(message)s"

# Loggers outside the package that follow the configured level
KNOWN_LOGGERS = ("txretry", "uvicorn", "uvicorn.error", "uvicorn.access")


def _console_handler(level: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    return handler


def _file_handler(level: str) -> logging.Handler:
    LOG_DIRECTORY_PATH.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        str(LOG_FILE_PATH), maxBytes=10_000_000, backupCount=5, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(level: str | None = None, *, log_to_file: bool = True) -> None:
    """Send retry, recovery and failure events to the console and a rotating file."""

    resolved_level = (level or LOG_LEVEL).upper()

    root = logging.getLogger()
    root.setLevel(resolved_level)

    # reconfiguring must not duplicate output
    root.handlers.clear()
    root.addHandler(_console_handler(resolved_level))
    if log_to_file:
        root.addHandler(_file_handler(resolved_level))

    for name in KNOWN_LOGGERS:
        logging.getLogger(name).setLevel(resolved_level)
