"""Blueprint exposing one pipeline controller over HTTP."""
from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request

from ..artifacts import EXPORT_CONTENT_TYPE, artifact_for_export_name
from ..controller import MissingArtifactError, PipelineController, StageBusyError
from ..inputs import InputError, bundled_sample, fetch_sample, program_from_bytes
from ..stages import Stage
from .errors import APIError
from .models import ProgramRequest

api_bp = Blueprint("proofpipe_api", __name__)


def _controller() -> PipelineController:
    return current_app.extensions["pipeline_controller"]


def _stage(name: str) -> Stage:
    try:
        return Stage.parse(name)
    except ValueError:
        raise APIError(404, f"unknown stage: {name}")


@api_bp.get("/state")
def api_state():
    return jsonify(_controller().snapshot()), 200


@api_bp.post("/program")
def api_program():
    try:
        if "file" in request.files:
            upload = request.files["file"]
            artifact = program_from_bytes(upload.read(), upload.filename or None)
        elif request.is_json:
            req = ProgramRequest.model_validate(request.get_json(silent=True) or {})
            if req.url is not None:
                artifact = fetch_sample(str(req.url))
            else:
                sample_url = current_app.config.get("PROOFPIPE_SAMPLE_URL")
                artifact = fetch_sample(sample_url) if sample_url else bundled_sample()
        else:
            body = request.get_data()
            if not body:
                raise APIError(400, "program body required", error_code="BAD_INPUT")
            artifact = program_from_bytes(body, request.args.get("name"))
    except InputError as exc:
        raise APIError(400, str(exc), error_code="BAD_INPUT")
    _controller().load_artifact(artifact)
    return jsonify({"program": artifact.describe()}), 201


@api_bp.post("/stages/<name>")
def api_start_stage(name: str):
    stage = _stage(name)
    controller = _controller()
    try:
        controller.start(stage)
    except StageBusyError as exc:
        raise APIError(409, str(exc), error_code="STAGE_BUSY", stage=stage)
    except MissingArtifactError as exc:
        raise APIError(409, str(exc), error_code="MISSING_ARTIFACT", stage=stage)
    record = controller.snapshot()["stages"][stage.value]
    return jsonify({
        "stage": stage.value,
        "runId": record["runId"],
        "status": "SUBMITTED",
        "location": "/api/state",
    }), 202


@api_bp.post("/stages/<name>/cancel")
def api_cancel_stage(name: str):
    stage = _stage(name)
    if not _controller().cancel(stage):
        raise APIError(404, f"{stage.value} is not in flight", error_code="NOT_IN_FLIGHT", stage=stage)
    return jsonify({"stage": stage.value, "status": "CANCELLING"}), 200


@api_bp.get("/artifacts/<filename>")
def api_artifact(filename: str):
    try:
        kind = artifact_for_export_name(filename)
    except LookupError:
        raise APIError(404, f"unknown artifact: {filename}")
    artifact = _controller().store.get(kind)
    if artifact is None:
        raise APIError(404, f"no {kind.value} artifact yet")
    return Response(
        artifact.payload,
        mimetype=EXPORT_CONTENT_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
