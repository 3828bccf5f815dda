"""Errors raised by the rebuild workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from sitehook.core.orchestrator import RebuildRun


class RebuildError(Exception):
    """Base error for a failed rebuild step.

    ``step`` names the step that failed and ``cause`` holds the underlying OS or
    command error, if any. The orchestrator attaches the failed ``run`` before
    re-raising.
    """

    step: str = "rebuild"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.run: RebuildRun | None = None

    def __str__(self) -> str:
        message = super().__str__()
        if self.cause is not None:
            return f"{message}: {self.cause}"
        return message


class SupervisorError(RebuildError):
    """Raised by the process supervisor."""


class LaunchError(SupervisorError):
    """The server process could not be started."""

    step = "start"


class ProcessAlreadyRunningError(LaunchError):
    """A server process is already tracked; stop it before starting again."""


class TerminationError(SupervisorError):
    """Signalling or reaping the server process failed."""

    step = "stop"


class NoProcessError(SupervisorError):
    """Stop was requested while no server process is tracked."""

    step = "stop"


class SyncError(RebuildError):
    """Source synchronization (pull) failed."""

    step = "pull"


class CleanupError(RebuildError):
    """Removing the generated output directory failed."""

    step = "clean"


class GenerationError(RebuildError):
    """The site generator failed."""

    step = "generate"


class BusyError(RebuildError):
    """A rebuild is already in flight."""


__all__ = [
    "BusyError",
    "CleanupError",
    "GenerationError",
    "LaunchError",
    "NoProcessError",
    "ProcessAlreadyRunningError",
    "RebuildError",
    "SupervisorError",
    "SyncError",
    "TerminationError",
]
