"""Tests for the server process supervisor."""

from __future__ import annotations

import logging
import sys

import pytest

from sitehook.core import (
    LaunchError,
    NoProcessError,
    ProcessAlreadyRunningError,
    ProcessSupervisor,
)

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]


def _logger() -> logging.Logger:
    logger = logging.getLogger("sitehook-test")
    logger.addHandler(logging.NullHandler())
    return logger


@pytest.fixture
def supervisor():
    instance = ProcessSupervisor(command=SLEEPER, logger=_logger(), stop_timeout_seconds=5.0)
    yield instance
    if instance.is_running:
        instance.stop()


def test_start_tracks_single_handle_and_stop_clears_it(supervisor, tmp_path):
    process = supervisor.start(tmp_path)

    assert supervisor.is_running
    assert supervisor.pid == process.pid
    assert supervisor.working_directory == tmp_path
    assert process.poll() is None

    returncode = supervisor.stop()

    assert returncode != 0
    assert process.poll() is not None
    assert not supervisor.is_running
    assert supervisor.pid is None


def test_stop_without_start_raises_and_keeps_state(supervisor):
    with pytest.raises(NoProcessError):
        supervisor.stop()

    assert not supervisor.is_running
    assert supervisor.pid is None


def test_second_start_is_rejected_without_touching_handle(supervisor, tmp_path):
    first = supervisor.start(tmp_path)

    with pytest.raises(ProcessAlreadyRunningError) as excinfo:
        supervisor.start(tmp_path)

    assert isinstance(excinfo.value, LaunchError)
    assert supervisor.pid == first.pid
    assert first.poll() is None


def test_start_missing_binary_raises_launch_error(tmp_path):
    supervisor = ProcessSupervisor(command=["sitehook-no-such-binary"], logger=_logger())

    with pytest.raises(LaunchError) as excinfo:
        supervisor.start(tmp_path)

    assert isinstance(excinfo.value.cause, FileNotFoundError)
    assert not supervisor.is_running


def test_start_bad_working_directory_raises_launch_error(supervisor, tmp_path):
    with pytest.raises(LaunchError):
        supervisor.start(tmp_path / "missing")

    assert not supervisor.is_running


def test_stop_reaps_process_that_already_exited(tmp_path):
    supervisor = ProcessSupervisor(
        command=[sys.executable, "-c", "raise SystemExit(3)"], logger=_logger()
    )
    process = supervisor.start(tmp_path)
    process.wait(timeout=10)

    assert supervisor.stop() == 3
    assert not supervisor.is_running


def test_server_output_goes_to_log_file(tmp_path):
    log_path = tmp_path / "logs" / "server.log"
    supervisor = ProcessSupervisor(
        command=[sys.executable, "-c", "print('serving on :1313', flush=True)"],
        logger=_logger(),
        log_path=log_path,
    )
    process = supervisor.start(tmp_path)
    process.wait(timeout=10)
    supervisor.stop()

    assert "serving on :1313" in log_path.read_text(encoding="utf-8")
