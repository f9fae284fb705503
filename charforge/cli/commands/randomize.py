"""Randomize command: fill unset build choices with legal random picks."""

import random
from pathlib import Path

import typer

from ...config import get_config
from ...generator import CATEGORIES, Randomizer
from ..app import app, console, get_catalog_path, get_json_mode
from ..utils import Output, load_build, open_compiler, report_build


@app.command("randomize")
def randomize_command(
    build_file: Path | None = typer.Argument(
        None, help="Partial build YAML to complete (starts empty if omitted)"
    ),
    categories: list[str] = typer.Option(
        [], "--category", "-c", help=f"Category to fill (repeatable): {', '.join(CATEGORIES)}"
    ),
    seed: int | None = typer.Option(None, "--seed", help="Random seed"),
    output: Path | None = typer.Option(None, "--out", "-o", help="Write the build here"),
):
    """
    Generate a random legal build, or fill chosen categories of an existing one.

    EXAMPLES:
        charforge randomize --seed 7
        charforge randomize partial.yaml -c feats -c skills --out full.yaml
    """
    out = Output(console=console, json_mode=get_json_mode())
    unknown = [c for c in categories if c not in CATEGORIES]
    if unknown:
        out.error(
            f"Unknown category: {', '.join(unknown)}",
            suggestion=f"Choose from: {', '.join(CATEGORIES)}",
        )
        raise typer.Exit(out.finish())

    build = load_build(out, build_file) if build_file else {}
    compiler = open_compiler(out, get_catalog_path())

    config = get_config()
    rng = random.Random(seed if seed is not None else config.seed)
    randomizer = Randomizer(compiler, config.randomizer, rng=rng)

    if categories:
        for category in categories:
            randomizer.randomize_attribute(build, category)
    else:
        randomizer.randomize_build(build)

    report_build(out, build, compiler.issues(compiler.evaluate(build)), output)
    raise typer.Exit(out.finish())
