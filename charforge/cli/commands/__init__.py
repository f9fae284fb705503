"""CLI commands for charforge."""

from . import catalog_cmd, randomize, repair, validate

__all__ = [
    "catalog_cmd",
    "randomize",
    "repair",
    "validate",
]
