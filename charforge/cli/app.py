"""Core CLI app definition and global state."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

app = typer.Typer(
    name="charforge",
    help="Compile character catalogs, generate random builds and repair invalid ones.",
    no_args_is_help=True,
)

console = Console()

# Global state (set by callback)
_json_mode = False
_catalog_path: Path | None = None


def get_json_mode() -> bool:
    """Get current JSON mode state."""
    return _json_mode


def get_catalog_path() -> Path | None:
    """Get explicitly set catalog path, or None for the bundled catalog."""
    return _catalog_path


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Route charforge logging through rich."""
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if debug:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    logging.getLogger("charforge").setLevel(level)


def _version_callback(value: bool) -> None:
    if value:
        from .. import __version__

        print(f"charforge {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output machine-readable JSON instead of human-friendly text",
            is_eager=True,
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
    catalog: Annotated[
        Path | None,
        typer.Option(
            "--catalog",
            help="Catalog YAML file (defaults to the bundled sample catalog)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log compiler and repair progress"),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Log every compiled entity and draw"),
    ] = False,
):
    """charforge: rule compiler, randomizer and repair engine for character builds.

    Use --json for machine-readable output suitable for scripting.
    Use --catalog to compile a catalog other than the bundled sample.
    """
    global _json_mode, _catalog_path
    _json_mode = json_output
    _catalog_path = catalog
    setup_logging(verbose=verbose, debug=debug)


# Import commands to register them with the app
from .commands import (  # noqa: E402, F401
    catalog_cmd,
    randomize,
    repair,
    validate,
)
