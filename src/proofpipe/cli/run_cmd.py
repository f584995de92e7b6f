"""proofpipe run - push a program through trace_gen, prove and verify.

Usage:
    proofpipe run program.json
    proofpipe run --sample --export-dir out/
    proofpipe run --url https://example.org/fibonacci_1000.json --json
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..artifacts import EXPORT_NAMES
from ..config import PipelineConfig
from ..controller import PipelineController
from .utils import acquire_program, exit_code_for, finish, outcomes_to_json, render_outcomes


@click.command("run")
@click.argument("program", type=click.Path(exists=True, dir_okay=False), required=False)
@click.option("--sample", "use_sample", is_flag=True, help="Use the sample program (fibonacci_1000.json)")
@click.option("--url", help="Fetch the program over HTTP GET")
@click.option(
    "--export-dir",
    type=click.Path(file_okay=False),
    help="Write trace.json and proof.json to this directory",
)
@click.option("--json", "output_json", is_flag=True, help="Output JSON")
@click.pass_obj
def run_command(
    config: PipelineConfig,
    program: Optional[str],
    use_sample: bool,
    url: Optional[str],
    export_dir: Optional[str],
    output_json: bool,
) -> None:
    """Run every stage in order, stopping at the first failure.

    \b
    Exit codes:
        0   proof generated and verified
        10  a stage failed
        11  the verifier rejected the proof
        20  the program could not be read
    """
    artifact = acquire_program(config, program, use_sample, url)

    exported: dict[str, str] = {}
    with PipelineController(config) as controller:
        controller.load_artifact(artifact)
        outcomes = controller.run_all()
        snapshot = controller.snapshot()
        if export_dir:
            for kind in EXPORT_NAMES:
                if controller.store.has(kind):
                    exported[kind.value] = str(controller.export(kind, Path(export_dir)))
        verdict = controller.state.verdict

    if output_json:
        click.echo(outcomes_to_json(outcomes, snapshot, exported))
    else:
        render_outcomes(artifact, outcomes, snapshot)
        for path in exported.values():
            click.echo(f"wrote {path}")
    finish(exit_code_for(outcomes, verdict), quiet=output_json)
