"""proofpipe - run, prove and verify programs through isolated worker sessions.

Usage:
    from proofpipe import PipelineController, bundled_sample

    with PipelineController() as controller:
        controller.load_artifact(bundled_sample())
        controller.run_all()
        print(controller.state.verdict)
"""
from __future__ import annotations

__version__ = "0.1.0"

from proofpipe.artifacts import Artifact, ArtifactKind, ArtifactStore, Verdict
from proofpipe.config import PipelineConfig, load_config
from proofpipe.controller import (
    MissingArtifactError,
    PipelineController,
    PipelineError,
    StageBusyError,
    StageOutcome,
    StageStatus,
)
from proofpipe.engine import ComputationEngine, EngineError, TraceGenOutput
from proofpipe.inputs import bundled_sample, fetch_sample, read_artifact
from proofpipe.protocol import ErrorKind, StageError, StageRequest, StageResponse
from proofpipe.session import WorkerSession
from proofpipe.stages import STAGE_ORDER, Stage


__all__ = [
    "__version__",
    # Artifacts
    "Artifact",
    "ArtifactKind",
    "ArtifactStore",
    "Verdict",
    # Orchestration
    "PipelineConfig",
    "PipelineController",
    "PipelineError",
    "MissingArtifactError",
    "StageBusyError",
    "StageOutcome",
    "StageStatus",
    "Stage",
    "STAGE_ORDER",
    "WorkerSession",
    "load_config",
    # Protocol
    "ErrorKind",
    "StageError",
    "StageRequest",
    "StageResponse",
    # Engines
    "ComputationEngine",
    "EngineError",
    "TraceGenOutput",
    # Inputs
    "bundled_sample",
    "fetch_sample",
    "read_artifact",
]
