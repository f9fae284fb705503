"""Catalog command: compile a catalog and summarize it."""

import typer

from ...compiler import KIND_EMITTERS
from ..app import app, console, get_catalog_path, get_json_mode
from ..utils import Output, issue_rows, open_compiler


@app.command("catalog")
def catalog_command(
    kind: str | None = typer.Option(None, "--kind", "-k", help="List the entities of one kind"),
):
    """
    Compile the catalog and show what it defines.

    EXAMPLES:
        charforge catalog
        charforge catalog --kind Feat
        charforge --catalog homebrew.yaml catalog
    """
    out = Output(console=console, json_mode=get_json_mode())
    compiler = open_compiler(out, get_catalog_path())

    if kind is not None:
        if kind not in KIND_EMITTERS:
            out.error(
                f"Unknown kind: {kind}",
                suggestion=f"Choose from: {', '.join(sorted(KIND_EMITTERS))}",
            )
            raise typer.Exit(out.finish())
        rows = [[name, compiler.definition(kind, name) or ""] for name in compiler.entity_names(kind)]
        out.table(kind, ["Name", "Attributes"], rows, data_key="entities")
        raise typer.Exit(out.finish())

    rows = [
        [k, str(len(compiler.entity_names(k)))]
        for k in sorted(KIND_EMITTERS)
        if compiler.entity_names(k)
    ]
    out.success(
        f"Compiled {len(compiler.engine)} rules and {len(compiler.signals())} signals",
        rule_count=len(compiler.engine),
        signal_count=len(compiler.signals()),
    )
    out.table("Entities", ["Kind", "Count"], rows)

    diagnostics = compiler.diagnostics
    if diagnostics:
        out.warning(f"{len(diagnostics)} fragment(s) could not be parsed")
        out.table("Diagnostics", ["Severity", "Location", "Message"], issue_rows(diagnostics))

    raise typer.Exit(out.finish())
