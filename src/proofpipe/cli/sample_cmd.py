"""proofpipe sample - write the sample program to disk."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ..config import PipelineConfig
from .utils import acquire_program, human_size


@click.command("sample")
@click.option("--url", help="Fetch the sample over HTTP GET instead of using the bundled copy")
@click.option(
    "--out-dir", "-o",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
)
@click.pass_obj
def sample_command(config: PipelineConfig, url: Optional[str], out_dir: str) -> None:
    """Save fibonacci_1000.json (or the program at --url) to OUT_DIR."""
    artifact = acquire_program(config, None, True, url)
    target_dir = Path(out_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / artifact.display_name
    target.write_bytes(artifact.payload)
    click.echo(f"wrote {target} ({human_size(artifact.size)})")
