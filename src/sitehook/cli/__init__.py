"""Command line interface for Sitehook."""

from .app import app

__all__ = ["app"]
