"""Command line interface for the Lark CLI."""

from .main import app, app_main, main


__all__ = [
    "app",
    "app_main",
    "main",
]
