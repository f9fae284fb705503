"""Repair command: mutate a build until its signals clear."""

import random
from dataclasses import replace
from pathlib import Path

import typer

from ...config import get_config
from ...generator import Randomizer, RepairEngine
from ..app import app, console, get_catalog_path, get_json_mode
from ..utils import ExitCode, Output, load_build, open_compiler, report_build


@app.command("repair")
def repair_command(
    build_file: Path = typer.Argument(..., help="Build YAML file to repair"),
    seed: int | None = typer.Option(None, "--seed", help="Random seed"),
    output: Path | None = typer.Option(None, "--out", "-o", help="Write the repaired build here"),
    max_passes: int | None = typer.Option(None, "--max-passes", help="Override the repair pass budget"),
):
    """
    Repair a build in place of its violated prerequisites and allocations.

    EXIT CODES:
        0 = Repaired (no errors remain)
        1 = Errors remain after the pass budget
        3 = File not found
        4 = Catalog error

    EXAMPLES:
        charforge repair fighter.yaml --out fighter.fixed.yaml
        charforge --json repair fighter.yaml --seed 3
    """
    out = Output(console=console, json_mode=get_json_mode())
    build = load_build(out, build_file)
    compiler = open_compiler(out, get_catalog_path())

    config = get_config()
    repair_config = config.repair
    if max_passes is not None:
        repair_config = replace(repair_config, max_passes=max_passes)
    rng = random.Random(seed if seed is not None else config.seed)
    engine = RepairEngine(
        compiler,
        repair_config,
        randomizer=Randomizer(compiler, config.randomizer, rng=rng),
        rng=rng,
    )

    before = dict(build)
    issues = engine.repair_build(build)
    changed = sorted(k for k in set(before) | set(build) if before.get(k) != build.get(k))
    out.set_data("changed", changed)

    errors = [i for i in issues if i.severity.value == "error"]
    if errors:
        out.error(
            f"{len(errors)} error(s) remain after repair",
            exit_code=ExitCode.VALIDATION_ERROR,
        )
    else:
        out.success(f"Repaired build ({len(changed)} attribute(s) changed)")

    report_build(out, build, issues, output)
    raise typer.Exit(out.finish())
