"""proofpipe CLI - run, prove and verify programs in isolated worker sessions.

Commands:
    run     - trace_gen -> prove -> verify in one go
    trace   - generate a trace from a program
    prove   - prove a trace
    verify  - verify a proof
    sample  - write the sample program
    serve   - HTTP surface
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ..config import ConfigError, load_config
from .run_cmd import run_command
from .sample_cmd import sample_command
from .serve_cmd import serve_command
from .stage_cmd import prove_command, trace_command, verify_command
from .utils import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="proofpipe")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Global config file")
@click.option(
    "--workspace", "-w",
    type=click.Path(exists=True, file_okay=False),
    help="Directory containing .proofpipe/config.json (defaults to cwd)",
)
@click.option("--engine", help="Engine alias or module:attr path")
@click.option("--isolation", type=click.Choice(["process", "thread"]), help="Worker session isolation")
@click.option("--timeout", "stage_timeout", type=float, help="Per-stage timeout in seconds")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    workspace: Optional[str],
    engine: Optional[str],
    isolation: Optional[str],
    stage_timeout: Optional[float],
    verbose: bool,
) -> None:
    """proofpipe - Run, Prove, Verify

    \b
    Quick start:
      proofpipe run --sample                  Whole pipeline on fibonacci_1000
      proofpipe trace program.json -o out/    Just the trace
      proofpipe verify out/proof.json         Just verification
    """
    try:
        config = load_config(
            Path(config_path) if config_path else None,
            Path(workspace) if workspace else Path.cwd(),
        ).replace(engine=engine, isolation=isolation, stage_timeout=stage_timeout)
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc
    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = config


cli.add_command(run_command, name="run")
cli.add_command(trace_command, name="trace")
cli.add_command(prove_command, name="prove")
cli.add_command(verify_command, name="verify")
cli.add_command(sample_command, name="sample")
cli.add_command(serve_command, name="serve")


def main() -> None:
    cli()


__all__ = ["cli", "main"]
