"""Rebuild workflow: pull, stop server, clean output, regenerate, restart server."""

from __future__ import annotations

import logging
import shutil
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from sitehook.core.commands import CommandRunner
from sitehook.core.errors import (
    BusyError,
    CleanupError,
    GenerationError,
    LaunchError,
    RebuildError,
    SyncError,
    TerminationError,
)
from sitehook.core.supervisor import ProcessSupervisor


class RebuildStep(str, Enum):
    """Steps of a rebuild run, in execution order."""

    PULL = "pull"
    STOP = "stop"
    CLEAN = "clean"
    GENERATE = "generate"
    START = "start"

    @property
    def state(self) -> str:
        """Name of the workflow state while this step runs."""

        return _STEP_STATES[self]


_STEP_STATES = {
    RebuildStep.PULL: "PULLING",
    RebuildStep.STOP: "STOPPING_SERVER",
    RebuildStep.CLEAN: "CLEANING_OUTPUT",
    RebuildStep.GENERATE: "REGENERATING",
    RebuildStep.START: "STARTING_SERVER",
}

_STEP_ERRORS: dict[RebuildStep, type[RebuildError]] = {
    RebuildStep.PULL: SyncError,
    RebuildStep.STOP: TerminationError,
    RebuildStep.CLEAN: CleanupError,
    RebuildStep.GENERATE: GenerationError,
    RebuildStep.START: LaunchError,
}


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ConcurrencyPolicy(str, Enum):
    """What a trigger does while another rebuild is in flight."""

    REJECT = "reject"
    QUEUE = "queue"


@dataclass(slots=True)
class StepOutcome:
    """Result of a single step within a run."""

    step: RebuildStep
    succeeded: bool
    duration_seconds: float
    error: str | None = None


@dataclass(slots=True)
class RebuildRun:
    """One invocation of the rebuild workflow."""

    run_id: str
    repository: Path
    started_at: datetime
    outcomes: list[StepOutcome] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    failed_step: RebuildStep | None = None
    finished_at: datetime | None = None

    @property
    def steps(self) -> list[RebuildStep]:
        return [outcome.step for outcome in self.outcomes]

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable summary of the run."""

        return {
            "run_id": self.run_id,
            "repository": str(self.repository),
            "status": self.status.value,
            "failed_step": self.failed_step.value if self.failed_step else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "steps": [
                {
                    "step": outcome.step.value,
                    "succeeded": outcome.succeeded,
                    "duration_seconds": round(outcome.duration_seconds, 3),
                    "error": outcome.error,
                }
                for outcome in self.outcomes
            ],
        }


@dataclass(slots=True)
class RebuildOrchestrator:
    """Execute the rebuild sequence, aborting the run at the first failing step."""

    repository: Path
    supervisor: ProcessSupervisor
    runner: CommandRunner
    logger: logging.Logger
    pull_command: Sequence[str] = ("git", "pull")
    generate_command: Sequence[str] = ("hugo",)
    output_subdir: str = "public"
    concurrency: ConcurrencyPolicy = ConcurrencyPolicy.REJECT
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _last_run: RebuildRun | None = field(default=None, init=False, repr=False)

    @property
    def output_dir(self) -> Path:
        return self.repository / self.output_subdir

    @property
    def last_run(self) -> RebuildRun | None:
        """The most recent run, finished or in flight."""

        return self._last_run

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def rebuild(self) -> RebuildRun:
        """Run the full rebuild sequence.

        Returns the finished run on success. On failure the failing step's
        ``RebuildError`` is raised with the failed run attached as ``.run``.
        Raises ``BusyError`` when another run holds the lock under the reject policy.
        """

        blocking = self.concurrency is ConcurrencyPolicy.QUEUE
        if not self._lock.acquire(blocking=blocking):
            self.logger.warning("Rebuild requested while another run is in progress; rejecting.")
            raise BusyError("A rebuild is already in progress")
        try:
            return self._execute()
        finally:
            self._lock.release()

    def start_server(self) -> None:
        """Start the supervised server outside of a rebuild run (service startup)."""

        with self._lock:
            self.supervisor.start(self.repository)

    def stop_server(self) -> bool:
        """Stop the supervised server if one is tracked (service shutdown)."""

        with self._lock:
            if not self.supervisor.is_running:
                return False
            self.supervisor.stop()
            return True

    def _execute(self) -> RebuildRun:
        run = RebuildRun(
            run_id=uuid4().hex[:8],
            repository=self.repository,
            started_at=datetime.now(timezone.utc),
        )
        self._last_run = run
        self.logger.info("Run %s started for repository %s.", run.run_id, self.repository)

        steps: tuple[tuple[RebuildStep, Callable[[], None]], ...] = (
            (RebuildStep.PULL, self._pull),
            (RebuildStep.STOP, self._stop_server),
            (RebuildStep.CLEAN, self._clean_output),
            (RebuildStep.GENERATE, self._generate),
            (RebuildStep.START, self._start_server),
        )

        for step, action in steps:
            self.logger.info(
                "Run %s step %s started (%s).", run.run_id, step.value, step.state
            )
            started = time.monotonic()
            try:
                action()
            except RebuildError as exc:
                self._fail(run, step, time.monotonic() - started, exc)
                raise
            except Exception as exc:
                wrapped = _STEP_ERRORS[step](f"Unexpected error in step {step.value}", cause=exc)
                self._fail(run, step, time.monotonic() - started, wrapped)
                raise wrapped from exc

            elapsed = time.monotonic() - started
            run.outcomes.append(StepOutcome(step=step, succeeded=True, duration_seconds=elapsed))
            self.logger.info("Run %s step %s succeeded in %.2fs.", run.run_id, step.value, elapsed)

        run.status = RunStatus.SUCCEEDED
        run.finished_at = datetime.now(timezone.utc)
        self.logger.info("Run %s completed in %.2fs.", run.run_id, run.duration_seconds or 0.0)
        return run

    def _fail(
        self, run: RebuildRun, step: RebuildStep, elapsed: float, error: RebuildError
    ) -> None:
        run.outcomes.append(
            StepOutcome(step=step, succeeded=False, duration_seconds=elapsed, error=str(error))
        )
        run.status = RunStatus.FAILED
        run.failed_step = step
        run.finished_at = datetime.now(timezone.utc)
        error.run = run
        self.logger.error(
            "Run %s step %s failed after %.2fs: %s (%s)",
            run.run_id,
            step.value,
            elapsed,
            error,
            type(error).__name__,
        )
        self.logger.error(
            "Run %s aborted at step %s; server running=%s.",
            run.run_id,
            step.value,
            self.supervisor.is_running,
        )
        if not self.supervisor.is_running:
            # Nothing is tracked now, so the stop step of every later run fails.
            self.logger.warning(
                "Run %s left the site server stopped; further rebuilds will fail at the "
                "stop step until the listener is restarted.",
                run.run_id,
            )

    def _pull(self) -> None:
        self._run_command(self.pull_command, SyncError, "Pull")

    def _stop_server(self) -> None:
        self.supervisor.stop()

    def _clean_output(self) -> None:
        target = self.output_dir
        repository = self.repository.resolve()
        resolved = target.resolve()
        if resolved == repository or repository not in resolved.parents:
            raise CleanupError(
                f"Refusing to remove {target}: output directory must be inside {self.repository}"
            )
        if not target.exists() and not target.is_symlink():
            self.logger.debug("Output directory %s does not exist; nothing to clean.", target)
            return
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise CleanupError(f"Unable to remove output directory {target}", cause=exc) from exc

    def _generate(self) -> None:
        self._run_command(self.generate_command, GenerationError, "Generate")

    def _start_server(self) -> None:
        self.supervisor.start(self.repository)

    def _run_command(
        self,
        args: Sequence[str],
        error_type: type[RebuildError],
        label: str,
    ) -> None:
        try:
            result = self.runner.run(args, self.repository)
        except OSError as exc:
            raise error_type(f"Unable to run {label.lower()} command {args[0]!r}", cause=exc) from exc
        if not result.ok:
            raise error_type(f"{label} command {result.describe_failure()}")
