"""proofpipe serve - HTTP surface over one pipeline controller."""
from __future__ import annotations

import click

from ..config import PipelineConfig


@click.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve_command(config: PipelineConfig, host: str, port: int) -> None:
    """Serve the pipeline over HTTP.

    \b
    Endpoints:
        POST /api/program                upload a program (or {"sample": true})
        POST /api/stages/<stage>         start trace_gen | prove | verify
        POST /api/stages/<stage>/cancel  abort an in-flight stage
        GET  /api/state                  artifacts, timings, verdict
        GET  /api/artifacts/trace.json   download an artifact
    """
    from ..server import create_app

    app = create_app(pipeline_config=config)
    app.run(host=host, port=port, threaded=True)
