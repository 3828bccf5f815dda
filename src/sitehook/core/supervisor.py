"""Lifecycle management for the long-running site server process."""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from sitehook.core.errors import (
    LaunchError,
    NoProcessError,
    ProcessAlreadyRunningError,
    TerminationError,
)


@dataclass(slots=True)
class ProcessSupervisor:
    """Own exactly one background server process.

    ``start`` spawns the server without waiting for it; ``stop`` terminates it and
    reaps its exit status. The handle never leaves this object.
    """

    command: Sequence[str]
    logger: logging.Logger
    log_path: Path | None = None
    stop_timeout_seconds: float | None = 10.0
    _process: subprocess.Popen[bytes] | None = field(default=None, init=False, repr=False)
    _working_directory: Path | None = field(default=None, init=False, repr=False)
    _log_handle: IO[bytes] | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_running(self) -> bool:
        """Return True while a server process is tracked."""

        return self._process is not None

    @property
    def pid(self) -> int | None:
        process = self._process
        return process.pid if process is not None else None

    @property
    def working_directory(self) -> Path | None:
        return self._working_directory

    def start(self, working_directory: Path) -> subprocess.Popen[bytes]:
        """Launch the server rooted at ``working_directory`` and return its handle."""

        argv = [str(part) for part in self.command]
        with self._lock:
            if self._process is not None:
                raise ProcessAlreadyRunningError(
                    f"Server process {self._process.pid} is already running; stop it first"
                )
            if not argv:
                raise LaunchError("No server command configured")

            log_handle = self._open_log()
            output = log_handle if log_handle is not None else subprocess.DEVNULL
            try:
                process = subprocess.Popen(
                    argv,
                    cwd=str(working_directory),
                    stdin=subprocess.DEVNULL,
                    stdout=output,
                    stderr=subprocess.STDOUT if log_handle is not None else subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as exc:
                if log_handle is not None:
                    log_handle.close()
                raise LaunchError(
                    f"Unable to launch server {argv[0]!r} in {working_directory}", cause=exc
                ) from exc

            self._process = process
            self._working_directory = Path(working_directory)
            self._log_handle = log_handle
            self.logger.info(
                "Started server process %s (%s) in %s.",
                process.pid,
                " ".join(argv),
                working_directory,
            )
            return process

    def stop(self) -> int:
        """Terminate the tracked server, wait for it to exit and return its exit status."""

        with self._lock:
            process = self._process
            if process is None:
                raise NoProcessError("No server process is running")

            try:
                process.terminate()
                try:
                    returncode = process.wait(timeout=self.stop_timeout_seconds)
                except subprocess.TimeoutExpired:
                    self.logger.warning(
                        "Server process %s did not exit within %ss; killing it.",
                        process.pid,
                        self.stop_timeout_seconds,
                    )
                    process.kill()
                    returncode = process.wait()
            except OSError as exc:
                raise TerminationError(
                    f"Unable to stop server process {process.pid}", cause=exc
                ) from exc

            self._process = None
            self._working_directory = None
            if self._log_handle is not None:
                self._log_handle.close()
                self._log_handle = None
            self.logger.info("Server process %s exited with status %s.", process.pid, returncode)
            return returncode

    def _open_log(self) -> IO[bytes] | None:
        if self.log_path is None:
            return None
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            return self.log_path.open("ab")
        except OSError as exc:
            raise LaunchError(f"Unable to open server log {self.log_path}", cause=exc) from exc
