"""Synchronous execution of external commands."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe_failure(self) -> str:
        """Short human-readable failure description including stderr output."""

        detail = (self.stderr or self.stdout).strip()
        text = f"{' '.join(self.args)!r} exited with status {self.returncode}"
        if detail:
            last_line = detail.splitlines()[-1]
            text += f" ({last_line})"
        return text


@dataclass(slots=True)
class CommandRunner:
    """Run commands to completion, capturing their output.

    Spawn failures (missing binary, bad working directory) surface as ``OSError``.
    """

    logger: logging.Logger

    def run(self, args: Sequence[str], cwd: Path) -> CommandResult:
        argv = [str(part) for part in args]
        self.logger.debug("Running %s in %s", argv, cwd)
        completed = subprocess.run(
            argv,
            cwd=str(cwd),
            check=False,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
        if completed.stdout:
            self.logger.debug("%s stdout: %s", argv[0], completed.stdout.strip())
        if completed.stderr:
            self.logger.debug("%s stderr: %s", argv[0], completed.stderr.strip())
        return CommandResult(
            args=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
