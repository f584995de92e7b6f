"""Single-stage commands: trace, prove, verify.

Each command loads its input artifact from a file, runs one isolated session
and writes the produced artifact next to the others::

    proofpipe trace fibonacci_1000.json -o out/   # out/trace.json
    proofpipe prove out/trace.json -o out/        # out/proof.json
    proofpipe verify out/proof.json
"""
from __future__ import annotations

from pathlib import Path

import click

from ..artifacts import Artifact, ArtifactKind
from ..config import PipelineConfig
from ..controller import PipelineController
from ..stages import Stage
from .utils import exit_code_for, finish, outcomes_to_json, read_input, render_outcomes


def _run_single(config: PipelineConfig, stage: Stage, artifact: Artifact, out_dir: str, output_json: bool) -> None:
    exported: dict[str, str] = {}
    with PipelineController(config) as controller:
        controller.load_artifact(artifact)
        outcome = controller.run_stage(stage)
        snapshot = controller.snapshot()
        output_kind = stage.output_kind
        if outcome.ok and output_kind is not None:
            exported[output_kind.value] = str(controller.export(output_kind, Path(out_dir)))
        verdict = controller.state.verdict

    if output_json:
        click.echo(outcomes_to_json([outcome], snapshot, exported))
    else:
        render_outcomes(artifact if stage == Stage.TRACE_GEN else None, [outcome], snapshot)
        for path in exported.values():
            click.echo(f"wrote {path}")
    finish(exit_code_for([outcome], verdict), quiet=output_json)


_out_dir_option = click.option(
    "--out-dir", "-o",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Directory for the produced artifact",
)
_json_option = click.option("--json", "output_json", is_flag=True, help="Output JSON")


@click.command("trace")
@click.argument("program", type=click.Path(exists=True, dir_okay=False))
@_out_dir_option
@_json_option
@click.pass_obj
def trace_command(config: PipelineConfig, program: str, out_dir: str, output_json: bool) -> None:
    """Generate the execution trace of PROGRAM (writes trace.json)."""
    _run_single(config, Stage.TRACE_GEN, read_input(program, ArtifactKind.PROGRAM), out_dir, output_json)


@click.command("prove")
@click.argument("trace", type=click.Path(exists=True, dir_okay=False))
@_out_dir_option
@_json_option
@click.pass_obj
def prove_command(config: PipelineConfig, trace: str, out_dir: str, output_json: bool) -> None:
    """Prove TRACE (writes proof.json)."""
    _run_single(config, Stage.PROVE, read_input(trace, ArtifactKind.TRACE), out_dir, output_json)


@click.command("verify")
@click.argument("proof", type=click.Path(exists=True, dir_okay=False))
@_json_option
@click.pass_obj
def verify_command(config: PipelineConfig, proof: str, output_json: bool) -> None:
    """Verify PROOF. Exits 0 when correct, 11 when rejected."""
    _run_single(config, Stage.VERIFY, read_input(proof, ArtifactKind.PROOF), ".", output_json)
