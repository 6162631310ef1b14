"""
mcm-scaler CLI Package

This package exposes the top-level Typer `app` for the console entrypoint.
"""

from ..reporters.console_reporter import ConsoleReporter
from .main import app

__all__ = ["app", "ConsoleReporter"]
