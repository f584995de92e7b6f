"""Flask application factory for the proofpipe HTTP surface.

One application holds one :class:`~proofpipe.controller.PipelineController`;
its state lives only as long as the process.
"""
from __future__ import annotations

import os
from typing import Any

from flask import Flask, jsonify
from pydantic import ValidationError

from ..config import PipelineConfig, load_config
from ..controller import PipelineController
from .errors import APIError
from .routes import api_bp


def create_app(
    config: dict[str, Any] | None = None,
    *,
    pipeline_config: PipelineConfig | None = None,
    controller: PipelineController | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", 64 * 1024 * 1024)
    if config:
        app.config.update(config)

    if controller is None:
        pipeline_config = pipeline_config or load_config(workspace=os.getcwd())
        controller = PipelineController(pipeline_config)
    app.config.setdefault("PROOFPIPE_SAMPLE_URL", controller.config.sample_url)
    app.extensions["pipeline_controller"] = controller

    app.register_blueprint(api_bp, url_prefix="/api")

    @app.get("/health")
    def _health() -> tuple[dict[str, str], int]:
        return {"status": "ok"}, 200

    @app.errorhandler(APIError)
    def _handle_api_error(err: APIError):  # type: ignore[override]
        return err.to_response()

    @app.errorhandler(ValidationError)
    def _handle_validation(err: ValidationError):  # type: ignore[override]
        return jsonify({
            "status": "ERROR",
            "message": "validation error",
            "details": err.errors(include_url=False, include_context=False),
        }), 422

    return app


__all__ = ["create_app"]
