"""Command-line interface for charforge."""

from .app import app

__all__ = ["app"]
