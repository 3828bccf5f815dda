"""UI components for Sitehook."""

from .report import build_run_panel, render_run

__all__ = ["build_run_panel", "render_run"]
