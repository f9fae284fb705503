"""Validate command: evaluate a build and report its active signals."""

from pathlib import Path

import typer

from ..app import app, console, get_catalog_path, get_json_mode
from ..utils import (
    ExitCode,
    Output,
    format_validation_for_json,
    issue_rows,
    load_build,
    open_compiler,
)


@app.command("validate")
def validate_command(
    build_file: Path = typer.Argument(..., help="Build YAML file to validate"),
    strict: bool = typer.Option(
        False, "--strict", help="Treat sanity warnings as errors"
    ),
):
    """
    Validate a character build against the compiled catalog.

    EXIT CODES:
        0 = Success (no violations)
        1 = Violations found
        3 = File not found
        4 = Catalog error

    EXAMPLES:
        charforge validate fighter.yaml
        charforge --json validate fighter.yaml --strict
    """
    out = Output(console=console, json_mode=get_json_mode())
    build = load_build(out, build_file)
    compiler = open_compiler(out, get_catalog_path())

    result = compiler.validate(build)
    out.set_data("validation", format_validation_for_json(result))

    failing = result.issues if strict else result.errors
    if failing:
        out.error(
            f"Build has {len(result.errors)} error(s) and {len(result.warnings)} warning(s)",
            exit_code=ExitCode.VALIDATION_ERROR,
            suggestion=f"Run: charforge repair {build_file}",
        )
    elif result.warnings:
        out.warning(f"Build has {len(result.warnings)} warning(s)")
    else:
        out.success("Build is valid", build_file=str(build_file))

    if result.issues and not out.json_mode:
        out.table("Issues", ["Severity", "Signal", "Message"], issue_rows(result.issues))

    raise typer.Exit(out.finish())
