"""Rich rendering of rebuild run summaries."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table, box
from rich.text import Text

_STATUS_STYLES = {
    "succeeded": "bold green",
    "failed": "bold red",
    "running": "bold yellow",
}
_STEP_ORDER = ("pull", "stop", "clean", "generate", "start")


def build_run_panel(health: Mapping[str, Any]) -> RenderableType:
    """Build a panel describing the listener health and its last run."""

    service_status = str(health.get("status", "unknown"))
    header = Text()
    header.append("Service: ", style="bold")
    header.append(service_status, style="green" if service_status == "ok" else "red")
    header.append("  Server: ", style="bold")
    header.append("running" if health.get("server_running") else "stopped")
    if health.get("busy"):
        header.append("  (rebuild in progress)", style="yellow")

    run = health.get("last_run")
    if not run:
        return Panel(Group(header, Text("No rebuild has run yet.", style="dim")), title="sitehook")

    status = str(run.get("status", "unknown"))
    summary = Text()
    summary.append(f"Run {run.get('run_id')} ", style="bold")
    summary.append(status, style=_STATUS_STYLES.get(status, ""))
    lines: list[RenderableType] = [header, summary, Text(f"Started {run.get('started_at')}")]
    if run.get("failed_step"):
        lines.append(Text(f"Failed at {run['failed_step']}", style="red"))
    lines.append(_steps_table(run))

    return Panel(Group(*lines), title="sitehook")


def render_run(health: Mapping[str, Any], console: Console | None = None) -> None:
    """Print the health/last-run panel to ``console``."""

    (console or Console()).print(build_run_panel(health))


def _steps_table(run: Mapping[str, Any]) -> Table:
    table = Table(box=box.SIMPLE, expand=False)
    table.add_column("Step")
    table.add_column("Result")
    table.add_column("Seconds", justify="right")
    table.add_column("Error", overflow="fold")

    outcomes = {entry.get("step"): entry for entry in run.get("steps", [])}
    missing = "pending" if run.get("status") == "running" else "skipped"
    for step in _STEP_ORDER:
        entry = outcomes.get(step)
        if entry is None:
            table.add_row(step, Text(missing, style="dim"), "", "")
            continue
        succeeded = bool(entry.get("succeeded"))
        table.add_row(
            step,
            Text("ok" if succeeded else "failed", style="green" if succeeded else "red"),
            f"{float(entry.get('duration_seconds') or 0.0):.2f}",
            entry.get("error") or "",
        )
    return table
