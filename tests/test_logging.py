"""Tests for logging configuration."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from sitehook.logging import configure_logging


def _cleanup(*loggers: logging.Logger) -> None:
    for logger in loggers:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def test_configure_logging_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = configure_logging(attach=())

    try:
        handler = next(h for h in logger.handlers if hasattr(h, "baseFilename"))
        log_path = Path(handler.baseFilename)
        assert log_path == tmp_path / "sitehook.log"
        logger.info("test message")
        assert log_path.exists()
    finally:
        _cleanup(logger)


@pytest.mark.parametrize(
    "provided,expected",
    [
        (Path("custom.log"), "custom.log"),
        (Path("logs"), "logs/sitehook.log"),
    ],
)
def test_configure_logging_with_override(tmp_path, monkeypatch, provided, expected):
    monkeypatch.chdir(tmp_path)
    logger = configure_logging(log_path=provided, level="debug", attach=())

    try:
        handler = next(h for h in logger.handlers if hasattr(h, "baseFilename"))
        log_path = Path(handler.baseFilename)
        assert log_path == tmp_path / expected
        assert logger.level == logging.DEBUG
    finally:
        _cleanup(logger)


def test_server_loggers_share_handlers(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logger = configure_logging(level="warn", mirror_to_console=False, attach=("uvicorn.error",))
    server_logger = logging.getLogger("uvicorn.error")

    try:
        assert server_logger.handlers == logger.handlers
        assert server_logger.level == logging.WARNING
        assert server_logger.propagate is False
        server_logger.warning("listener warning")
        for handler in logger.handlers:
            handler.flush()
        assert "listener warning" in (tmp_path / "sitehook.log").read_text(encoding="utf-8")
    finally:
        _cleanup(server_logger, logger)
        server_logger.propagate = True


def test_unknown_level_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValueError, match="Unsupported log level"):
        configure_logging(level="loud", attach=())
