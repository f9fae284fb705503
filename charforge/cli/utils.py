"""CLI utilities for dual-mode output (human-friendly + machine-readable).

Example:
    from ..utils import Output, ExitCode

    @app.command()
    def my_command():
        out = Output(console=console, json_mode=get_json_mode())
        out.success("Loaded build", build_file="fighter.yaml")
        out.table("Issues", ["Signal", "Message"], [["validationNotes.feats.Toughness", "..."]])
        return out.finish()
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import BaseModel, ConfigDict, PrivateAttr
from rich.console import Console
from rich.table import Table

from ..compiler import CatalogError, RuleCompiler
from ..core.models import Catalog, ValidationIssue, ValidationResult


class ExitCode:
    """Standardized exit codes for CLI commands.

        0 = Success
        1 = Violations remain in the build
        3 = File not found
        4 = Catalog error
    """

    SUCCESS = 0
    VALIDATION_ERROR = 1
    FILE_NOT_FOUND = 3
    CATALOG_ERROR = 4


class Output(BaseModel):
    """Dual-mode output handler for CLI commands.

    In human mode: Uses Rich for pretty terminal output with colors and formatting.
    In JSON mode: Collects structured data and outputs JSON at the end.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    console: Console
    json_mode: bool = False

    _data: dict[str, Any] = PrivateAttr()
    _exit_code: int = PrivateAttr(default=ExitCode.SUCCESS)

    def model_post_init(self, __context: Any) -> None:
        # Ensure _data is a fresh dict for each instance
        self._data = {
            "status": "success",
            "warnings": [],
            "errors": [],
        }

    def success(self, message: str, **data: Any) -> None:
        """Output a success message with optional data."""
        if self.json_mode:
            self._data.update(data)
        else:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(
        self,
        message: str,
        *,
        location: str | None = None,
        category: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        """Output a warning message."""
        if self.json_mode:
            warning_obj: dict[str, Any] = {"message": message}
            if location:
                warning_obj["location"] = location
            if category:
                warning_obj["category"] = category
            if suggestion:
                warning_obj["suggestion"] = suggestion
            self._data["warnings"].append(warning_obj)
        else:
            self.console.print(f"[yellow]⚠[/yellow] {message}")
            if suggestion:
                self.console.print(f"  [dim]→ {suggestion}[/dim]")

    def error(
        self,
        message: str,
        *,
        location: str | None = None,
        category: str | None = None,
        suggestion: str | None = None,
        exit_code: int = ExitCode.VALIDATION_ERROR,
    ) -> None:
        """Output an error message and set exit code."""
        self._exit_code = exit_code
        self._data["status"] = "error"

        if self.json_mode:
            error_obj: dict[str, Any] = {"message": message}
            if location:
                error_obj["location"] = location
            if category:
                error_obj["category"] = category
            if suggestion:
                error_obj["suggestion"] = suggestion
            self._data["errors"].append(error_obj)
        else:
            self.console.print(f"[red]✗[/red] {message}")
            if suggestion:
                self.console.print(f"  [dim]→ {suggestion}[/dim]")

    def text(self, message: str) -> None:
        """Output plain text (human mode only)."""
        if not self.json_mode:
            self.console.print(message)

    def blank(self) -> None:
        """Output a blank line (human mode only)."""
        if not self.json_mode:
            self.console.print()

    def table(
        self,
        title: str,
        columns: list[str],
        rows: list[list[str]],
        *,
        data_key: str | None = None,
        styles: list[str] | None = None,
    ) -> None:
        """Output a formatted table.

        Args:
            title: Table title
            columns: Column headers
            rows: Table rows (list of lists)
            data_key: Key to use in JSON output (defaults to snake_case of title)
            styles: Optional Rich styles for each column
        """
        key = data_key or title.lower().replace(" ", "_")

        if self.json_mode:
            self._data[key] = [dict(zip(columns, row)) for row in rows]
        else:
            table = Table(title=title, show_header=True, header_style="bold")
            for i, col in enumerate(columns):
                style = styles[i] if styles and i < len(styles) else None
                table.add_column(col, style=style)
            for row in rows:
                table.add_row(*row)
            self.console.print(table)

    def set_data(self, key: str, value: Any) -> None:
        """Set arbitrary data in JSON output."""
        self._data[key] = value

    def finish(self) -> int:
        """Finalize output and return exit code.

        In JSON mode, prints the accumulated data as JSON to stdout.
        """
        if self.json_mode:
            self._data["exit_code"] = self._exit_code
            print(json.dumps(self._data, indent=2, default=str))

        return self._exit_code


def format_validation_for_json(result: ValidationResult) -> dict[str, Any]:
    """Convert ValidationResult to JSON-serializable dict."""
    return {
        "valid": result.valid,
        "error_count": len(result.errors),
        "warning_count": len(result.warnings),
        "errors": [_issue_dict(e) for e in result.errors],
        "warnings": [_issue_dict(w) for w in result.warnings],
    }


def _issue_dict(issue: ValidationIssue) -> dict[str, Any]:
    return {
        "location": issue.location,
        "category": issue.category,
        "message": issue.message,
        "suggestion": issue.suggestion,
        "value": issue.value,
    }


def issue_rows(issues: list[ValidationIssue], limit: int = 20) -> list[list[str]]:
    return [
        [issue.severity.value, issue.location, issue.message[:70]]
        for issue in issues[:limit]
    ]


def open_compiler(out: Output, catalog_path: Path | None) -> RuleCompiler:
    """Compile the selected catalog or exit with the matching code."""
    if catalog_path is not None and not catalog_path.exists():
        out.error(
            f"Catalog not found: {catalog_path}",
            exit_code=ExitCode.FILE_NOT_FOUND,
            suggestion=f"Check the file path: {catalog_path.absolute()}",
        )
        raise typer.Exit(out.finish())

    try:
        catalog = Catalog.from_yaml(catalog_path) if catalog_path else Catalog.default()
        compiler = RuleCompiler()
        compiler.compile_catalog(catalog)
    except (CatalogError, yaml.YAMLError, ValueError) as e:
        out.error(f"Catalog failed to compile: {e}", exit_code=ExitCode.CATALOG_ERROR)
        raise typer.Exit(out.finish())
    return compiler


def load_build(out: Output, path: Path) -> dict[str, Any]:
    """Read a build mapping from YAML or exit with the matching code."""
    if not path.exists():
        out.error(
            f"File not found: {path}",
            exit_code=ExitCode.FILE_NOT_FOUND,
            suggestion=f"Check the file path: {path.absolute()}",
        )
        raise typer.Exit(out.finish())

    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        out.error(f"Build file must hold a mapping of attributes: {path}")
        raise typer.Exit(out.finish())
    return data


def save_build(build: dict[str, Any], path: Path) -> None:
    """Write a build mapping to YAML."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(dict(sorted(build.items())), f, sort_keys=False, allow_unicode=True)


def report_build(
    out: Output,
    build: dict[str, Any],
    issues: list[ValidationIssue],
    destination: Path | None,
) -> None:
    """Emit a generated or repaired build and its residual issues."""
    result = ValidationResult(issues=issues)
    out.set_data("build", dict(sorted(build.items())))
    out.set_data("validation", format_validation_for_json(result))

    if destination is not None:
        save_build(build, destination)
        out.success(f"Wrote build to {destination}", output=str(destination))
    elif not out.json_mode:
        out.text(yaml.safe_dump(dict(sorted(build.items())), sort_keys=False).rstrip())

    if issues:
        out.table("Residual issues", ["Severity", "Signal", "Message"], issue_rows(issues))
