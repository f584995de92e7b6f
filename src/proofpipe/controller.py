"""Pipeline controller: runs stages against the artifact store.

Each invocation gets a fresh :class:`~proofpipe.session.WorkerSession` and a
per-stage run id. A response only commits to the state if its run id is still
the stage's current one; starting a stage (or loading a new input) bumps the
run ids of everything downstream, so late answers computed from replaced
artifacts are discarded instead of being shown next to newer ones.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from .artifacts import Artifact, ArtifactKind, ArtifactStore, Verdict
from .config import PipelineConfig
from .engine import EngineSpec
from .events import EventKind, Listener, PipelineEvent
from .protocol import ErrorKind, StageError, StageRequest, StageResponse
from .session import SessionFailure, WorkerSession
from .stages import STAGE_ORDER, Stage, stages_consuming

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Stage], WorkerSession]


class PipelineError(Exception):
    """A stage cannot be invoked in the current state."""


class MissingArtifactError(PipelineError):
    def __init__(self, stage: Stage, kind: ArtifactKind) -> None:
        super().__init__(f"{stage.value} needs a {kind.value} artifact; none is loaded")
        self.stage = stage
        self.kind = kind


class StageBusyError(PipelineError):
    def __init__(self, stage: Stage) -> None:
        super().__init__(f"{stage.value} is already in flight")
        self.stage = stage


class StageStatus(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StageRecord:
    """Loading/timing state of one stage."""

    stage: Stage
    status: StageStatus = StageStatus.IDLE
    run_id: int = 0
    elapsed_ms: Optional[float] = None
    error: Optional[StageError] = None
    session_id: Optional[str] = None

    @property
    def in_flight(self) -> bool:
        return self.status == StageStatus.IN_FLIGHT

    def reset(self) -> None:
        self.status = StageStatus.IDLE
        self.elapsed_ms = None
        self.error = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "inFlight": self.in_flight,
            "runId": self.run_id,
            "elapsedMs": self.elapsed_ms,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class PipelineState:
    """Artifacts plus per-stage records for the current run."""

    store: ArtifactStore = field(default_factory=ArtifactStore)
    stages: dict[Stage, StageRecord] = field(
        default_factory=lambda: {stage: StageRecord(stage) for stage in STAGE_ORDER}
    )

    @property
    def verdict(self) -> Verdict:
        return self.store.verdict

    def snapshot(self) -> dict[str, Any]:
        snap = self.store.snapshot()
        snap["stages"] = {stage.value: record.to_dict() for stage, record in self.stages.items()}
        return snap


@dataclass
class StageOutcome:
    """What one stage invocation produced and whether it reached the state."""

    stage: Stage
    run_id: int
    response: StageResponse
    elapsed_ms: float
    committed: bool
    session_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.response.ok

    @property
    def error(self) -> Optional[StageError]:
        return self.response.error


class PipelineController:
    """Sequences trace_gen -> prove -> verify, one isolated session per call."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        engine: EngineSpec | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.engine = engine if engine is not None else self.config.engine
        self._session_factory = session_factory or self._default_session
        self.state = PipelineState()
        self._lock = threading.RLock()
        self._aborts: dict[Stage, threading.Event] = {}
        self._listeners: list[Listener] = []
        self._executor = ThreadPoolExecutor(max_workers=len(STAGE_ORDER), thread_name_prefix="proofpipe-stage")
        self._closed = False

    def __enter__(self) -> "PipelineController":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _default_session(self, stage: Stage) -> WorkerSession:
        return WorkerSession(
            stage,
            self.engine,
            isolation=self.config.isolation,
            start_method=self.config.start_method,
            poll_interval=self.config.poll_interval,
        )

    # ------------------------------------------------------------------
    # listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, events: list[PipelineEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("pipeline listener failed on %s", event.kind.value)

    # ------------------------------------------------------------------
    # inputs
    # ------------------------------------------------------------------

    def load_program(self, payload: bytes, name: str | None = None) -> Artifact:
        return self.load_artifact(Artifact(ArtifactKind.PROGRAM, payload, name=name))

    def load_artifact(self, artifact: Artifact) -> Artifact:
        """Install an externally acquired artifact, superseding everything derived from it."""
        with self._lock:
            self.state.store.put(artifact)
            superseded = [stage for stage in STAGE_ORDER if stage.output_kind == artifact.kind]
            superseded += stages_consuming(artifact.kind)
            self._supersede(superseded)
        logger.info("loaded %s (%d bytes)", artifact.display_name, artifact.size)
        self._emit([PipelineEvent(EventKind.ARTIFACT_LOADED, data=artifact.describe())])
        return artifact

    def _supersede(self, stages: list[Stage]) -> None:
        """Bump run ids so in-flight answers for ``stages`` are discarded."""
        for stage in stages:
            record = self.state.stages[stage]
            record.run_id += 1
            if not record.in_flight:
                record.reset()

    # ------------------------------------------------------------------
    # stage execution
    # ------------------------------------------------------------------

    def in_flight(self, stage: Stage | str) -> bool:
        with self._lock:
            return self.state.stages[Stage.parse(stage)].in_flight

    def start(self, stage: Stage | str) -> "Future[StageOutcome]":
        """Invoke ``stage`` without blocking; the returned future resolves to its outcome.

        Raises :class:`MissingArtifactError` when the input artifact is absent and
        :class:`StageBusyError` when the stage is already in flight.
        """
        stage = Stage.parse(stage)
        with self._lock:
            if self._closed:
                raise PipelineError("controller is closed")
            record = self.state.stages[stage]
            if record.in_flight:
                raise StageBusyError(stage)
            artifact = self.state.store.get(stage.input_kind)
            if artifact is None:
                raise MissingArtifactError(stage, stage.input_kind)

            record.run_id += 1
            run_id = record.run_id
            record.status = StageStatus.IN_FLIGHT
            record.elapsed_ms = None
            record.error = None

            # the stage's own previous artifact stays until a success replaces it
            cleared = []
            if stage.output_kind is not None:
                cleared = self.state.store.invalidate_after(stage.output_kind)
            self._supersede(stage.downstream())

            abort = threading.Event()
            self._aborts[stage] = abort
            future = self._executor.submit(self._execute, stage, run_id, artifact, abort)

        logger.info("%s run %d started", stage.value, run_id)
        events = [PipelineEvent(EventKind.STAGE_STARTED, stage, run_id)]
        if cleared:
            events.append(
                PipelineEvent(EventKind.INVALIDATED, stage, run_id, data={"cleared": [k.value for k in cleared]})
            )
        self._emit(events)
        return future

    def run_stage(self, stage: Stage | str, timeout: float | None = None) -> StageOutcome:
        """Invoke ``stage`` and block until its session has been torn down."""
        return self.start(stage).result(timeout)

    def trace_gen(self) -> StageOutcome:
        return self.run_stage(Stage.TRACE_GEN)

    def prove(self) -> StageOutcome:
        return self.run_stage(Stage.PROVE)

    def verify(self) -> StageOutcome:
        return self.run_stage(Stage.VERIFY)

    def run_all(self) -> list[StageOutcome]:
        """Run every stage in order, stopping at the first failure."""
        outcomes = []
        for stage in STAGE_ORDER:
            outcome = self.run_stage(stage)
            outcomes.append(outcome)
            if not outcome.ok:
                break
        return outcomes

    def cancel(self, stage: Stage | str) -> bool:
        """Abort the in-flight session of ``stage``; ``False`` if none is running."""
        stage = Stage.parse(stage)
        with self._lock:
            abort = self._aborts.get(stage)
            if abort is None:
                return False
            abort.set()
        logger.info("%s cancellation requested", stage.value)
        return True

    def _execute(self, stage: Stage, run_id: int, artifact: Artifact, abort: threading.Event) -> StageOutcome:
        session: WorkerSession | None = None
        started = time.perf_counter()
        try:
            session = self._session_factory(stage)
            with self._lock:
                self.state.stages[stage].session_id = session.session_id
            session.initialize(timeout=self.config.init_timeout, abort=abort)
            session.dispatch(StageRequest(input=artifact.payload))
            response = session.wait(timeout=self.config.stage_timeout, abort=abort)
        except SessionFailure as failure:
            response = StageResponse(error=failure.error)
        except Exception as exc:
            # unexpected session errors become channel failures
            logger.exception("%s run %d: session error", stage.value, run_id)
            response = StageResponse(error=StageError.from_exception(exc, ErrorKind.CHANNEL))
        finally:
            if session is not None:
                try:
                    session.terminate()
                except Exception:
                    logger.exception("%s run %d: session teardown failed", stage.value, run_id)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        return self._commit(stage, run_id, session.session_id if session else None, response, elapsed_ms, abort)

    def _commit(
        self,
        stage: Stage,
        run_id: int,
        session_id: Optional[str],
        response: StageResponse,
        elapsed_ms: float,
        abort: threading.Event,
    ) -> StageOutcome:
        outcome = StageOutcome(stage, run_id, response, elapsed_ms, committed=False, session_id=session_id)
        with self._lock:
            if self._aborts.get(stage) is abort:
                del self._aborts[stage]
            record = self.state.stages[stage]
            record.session_id = None

            if record.run_id != run_id:
                record.status = StageStatus.IDLE
                logger.warning(
                    "discarding %s response from run %d; current run is %d", stage.value, run_id, record.run_id
                )
                event = PipelineEvent(EventKind.STAGE_DISCARDED, stage, run_id, data={"currentRunId": record.run_id})
            elif response.ok:
                store = self.state.store
                if stage == Stage.TRACE_GEN:
                    store.put(Artifact(ArtifactKind.TRACE, response.value, produced_by=stage.value))
                    store.resource_metadata = response.metadata
                elif stage == Stage.PROVE:
                    store.put(Artifact(ArtifactKind.PROOF, response.value, produced_by=stage.value))
                else:
                    store.verdict = Verdict.from_bool(response.value)
                # anything computed from the replaced artifact is now stale
                self._supersede(stage.downstream())
                record.status = StageStatus.DONE
                record.elapsed_ms = elapsed_ms
                record.error = None
                outcome.committed = True
                logger.info("%s run %d succeeded in %.1f ms", stage.value, run_id, elapsed_ms)
                event = PipelineEvent(EventKind.STAGE_SUCCEEDED, stage, run_id, data={"elapsedMs": elapsed_ms})
            else:
                record.status = StageStatus.FAILED
                record.elapsed_ms = elapsed_ms
                record.error = response.error
                outcome.committed = True
                logger.error(
                    "%s run %d failed after %.1f ms: %s", stage.value, run_id, elapsed_ms, response.error
                )
                event = PipelineEvent(
                    EventKind.STAGE_FAILED,
                    stage,
                    run_id,
                    data={"elapsedMs": elapsed_ms, "error": response.error.to_dict()},
                )
        self._emit([event])
        return outcome

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------

    @property
    def store(self) -> ArtifactStore:
        return self.state.store

    def export(self, kind: ArtifactKind | str, directory: Path | str) -> Path:
        with self._lock:
            return self.state.store.export(ArtifactKind(kind), directory)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self.state.snapshot()

    def close(self) -> None:
        """Abort in-flight sessions and wait for their teardown."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for abort in self._aborts.values():
                abort.set()
        self._executor.shutdown(wait=True)


__all__ = [
    "MissingArtifactError",
    "PipelineController",
    "PipelineError",
    "PipelineState",
    "StageBusyError",
    "StageOutcome",
    "StageRecord",
    "StageStatus",
]
