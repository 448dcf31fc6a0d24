"""CLI module for Perf Sentinel."""

from .main import ExitCode, app

__all__ = [
    'ExitCode',
    'app',
]
