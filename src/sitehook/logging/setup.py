"""Logging setup helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAME = "sitehook"
LOG_FILENAME = f"{LOGGER_NAME}.log"
LOG_FORMAT = "%(asctime)s %(process)08x %(thread)08x %(levelname).1s %(module)s %(message)s"
MAX_BYTES = 2 * 1024 * 1024
BACKUP_COUNT = 5

# Loggers owned by the HTTP server; routed through the same handlers.
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def configure_logging(
    log_path: Path | None = None,
    level: str = "INFO",
    mirror_to_console: bool = True,
    attach: Iterable[str] = SERVER_LOGGERS,
) -> logging.Logger:
    """Configure the Sitehook logger and attach its handlers to ``attach`` loggers."""

    logger = logging.getLogger(LOGGER_NAME)
    _reset(logger)

    numeric_level = _normalize_level(level)
    logger.setLevel(numeric_level)

    file_path = _resolve_log_path(log_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = []

    file_handler = RotatingFileHandler(
        file_path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handlers.append(file_handler)

    if mirror_to_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for name in attach:
        attached = logging.getLogger(name)
        _reset(attached)
        attached.setLevel(numeric_level)
        for handler in handlers:
            attached.addHandler(handler)

    return logger


def _reset(logger: logging.Logger) -> None:
    logger.handlers.clear()
    logger.propagate = False


def _normalize_level(level: str) -> int:
    """Convert log level strings to logging constants."""

    candidate = level.strip().upper()
    if candidate == "WARN":
        candidate = "WARNING"
    numeric = getattr(logging, candidate, None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unsupported log level: {level!r}")
    return numeric


def _resolve_log_path(log_path: Path | None) -> Path:
    """Resolve the effective log file path."""

    if log_path is None:
        return Path.cwd() / LOG_FILENAME

    candidate = log_path if log_path.is_absolute() else Path.cwd() / log_path
    if candidate.is_dir() or candidate.suffix == "":
        return candidate / LOG_FILENAME
    return candidate
