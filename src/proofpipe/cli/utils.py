"""Shared CLI helpers: logging setup, input resolution, rendering."""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ..artifacts import Artifact, ArtifactKind, Verdict
from ..config import PipelineConfig
from ..controller import StageOutcome
from ..inputs import InputError, bundled_sample, fetch_sample, read_artifact
from .exit_codes import EXIT_BAD_INPUT, EXIT_OK, EXIT_PROOF_REJECTED, EXIT_STAGE_FAILED, exit_code_description

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def human_size(size: int, si: bool = False, dp: int = 1) -> str:
    """Format a byte count, e.g. ``1.5 KiB``."""
    thresh = 1000 if si else 1024
    if abs(size) < thresh:
        return f"{size} B"
    units = ["kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"] if si else [
        "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB"
    ]
    value = float(size)
    unit = -1
    scale = 10**dp
    while True:
        value /= thresh
        unit += 1
        if not (round(abs(value) * scale) / scale >= thresh and unit < len(units) - 1):
            break
    return f"{value:.{dp}f} {units[unit]}"


def acquire_program(config: PipelineConfig, path: Optional[str], use_sample: bool, url: Optional[str]) -> Artifact:
    """Resolve the program from a path, ``--url``, or the sample."""
    try:
        if path:
            return read_artifact(path, ArtifactKind.PROGRAM)
        if url:
            return fetch_sample(url)
        if use_sample:
            return fetch_sample(config.sample_url) if config.sample_url else bundled_sample()
    except InputError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_BAD_INPUT)
    click.echo("Error: pass a PROGRAM file, --url, or --sample", err=True)
    raise SystemExit(EXIT_BAD_INPUT)


def read_input(path: str, kind: ArtifactKind) -> Artifact:
    try:
        return read_artifact(path, kind)
    except InputError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_BAD_INPUT)


def exit_code_for(outcomes: Iterable[StageOutcome], verdict: Verdict) -> int:
    for outcome in outcomes:
        if not outcome.ok:
            return EXIT_STAGE_FAILED
    if verdict is Verdict.INVALID:
        return EXIT_PROOF_REJECTED
    return EXIT_OK


def _detail(outcome: StageOutcome, snapshot: dict[str, Any]) -> str:
    if not outcome.ok:
        return f"[red]{outcome.error}[/red]"
    artifacts = snapshot["artifacts"]
    if outcome.stage.output_kind is not None:
        described = artifacts.get(outcome.stage.output_kind.value)
        if described:
            return f"{described['name']} - {human_size(described['size'])}"
        return ""
    verdict = snapshot["verdict"]
    if verdict == Verdict.VALID.value:
        return "[green]proof correct[/green]"
    return "[red]proof wrong[/red]"


def render_outcomes(program: Optional[Artifact], outcomes: list[StageOutcome], snapshot: dict[str, Any]) -> None:
    if program is not None:
        console.print(f"[bold]{program.display_name}[/bold] - {human_size(program.size)}")
    table = Table(title="Run - Prove - Verify")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Detail")
    for outcome in outcomes:
        status = "[green]ok[/green]" if outcome.ok else "[red]failed[/red]"
        table.add_row(
            outcome.stage.value,
            status,
            f"{outcome.elapsed_ms / 1000:.3f} s",
            _detail(outcome, snapshot),
        )
    console.print(table)
    metadata = snapshot.get("resourceMetadata")
    if metadata is not None:
        console.print(f"[dim]execution resources:[/dim] {json.dumps(metadata)}")


def outcomes_to_json(outcomes: list[StageOutcome], snapshot: dict[str, Any], exported: dict[str, str]) -> str:
    payload = {
        "stages": [
            {
                "stage": outcome.stage.value,
                "ok": outcome.ok,
                "elapsedMs": outcome.elapsed_ms,
                "error": outcome.error.to_dict() if outcome.error else None,
            }
            for outcome in outcomes
        ],
        "state": snapshot,
        "exported": exported,
    }
    return json.dumps(payload, indent=2)


def finish(code: int, quiet: bool = False) -> None:
    """Exit with ``code``, naming the reason on stderr when it is not success."""
    if code != EXIT_OK and not quiet:
        click.echo(f"exit {code}: {exit_code_description(code)}", err=True)
    raise SystemExit(code)
