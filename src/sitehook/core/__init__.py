"""Core rebuild workflow components for Sitehook."""

from .commands import CommandResult, CommandRunner
from .errors import (
    BusyError,
    CleanupError,
    GenerationError,
    LaunchError,
    NoProcessError,
    ProcessAlreadyRunningError,
    RebuildError,
    SupervisorError,
    SyncError,
    TerminationError,
)
from .orchestrator import (
    ConcurrencyPolicy,
    RebuildOrchestrator,
    RebuildRun,
    RebuildStep,
    RunStatus,
    StepOutcome,
)
from .supervisor import ProcessSupervisor

__all__ = [
    "BusyError",
    "CleanupError",
    "CommandResult",
    "CommandRunner",
    "ConcurrencyPolicy",
    "GenerationError",
    "LaunchError",
    "NoProcessError",
    "ProcessAlreadyRunningError",
    "ProcessSupervisor",
    "RebuildError",
    "RebuildOrchestrator",
    "RebuildRun",
    "RebuildStep",
    "RunStatus",
    "StepOutcome",
    "SupervisorError",
    "SyncError",
    "TerminationError",
]
