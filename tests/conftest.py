"""Pytest configuration and fixtures for proofpipe tests."""
from __future__ import annotations

import os
import threading

import pytest

from proofpipe.config import PipelineConfig
from proofpipe.controller import PipelineController
from proofpipe.engine import ComputationEngine, TraceGenOutput
from proofpipe.reference import make_program
from proofpipe.session import WorkerSession
from proofpipe.stages import Stage


class ScriptedEngine(ComputationEngine):
    """In-process engine whose operations can be held open or made to fail."""

    name = "scripted"
    version = "test"

    def __init__(self) -> None:
        self.gates = {stage: threading.Event() for stage in Stage}
        self.entered = {stage: threading.Event() for stage in Stage}
        for gate in self.gates.values():
            gate.set()
        self.failures: dict[Stage, Exception] = {}
        self.init_error: Exception | None = None
        self.calls: list[Stage] = []
        self.verdict = True

    def hold(self, stage: Stage) -> None:
        self.gates[stage].clear()

    def release(self, stage: Stage) -> None:
        self.gates[stage].set()

    def _run(self, stage: Stage) -> None:
        self.calls.append(stage)
        self.entered[stage].set()
        self.gates[stage].wait(timeout=10)
        if stage in self.failures:
            raise self.failures[stage]

    def initialize(self) -> None:
        if self.init_error is not None:
            raise self.init_error

    def trace_gen(self, program: bytes) -> TraceGenOutput:
        self._run(Stage.TRACE_GEN)
        return TraceGenOutput(trace=b"trace:" + program, resource_metadata={"n_steps": len(program)})

    def prove(self, trace: bytes) -> bytes:
        self._run(Stage.PROVE)
        return b"proof:" + trace

    def verify(self, proof: bytes) -> bool:
        self._run(Stage.VERIFY)
        return self.verdict and proof.startswith(b"proof:")


class CrashingEngine(ComputationEngine):
    """Exits its worker process mid-call without answering."""

    name = "crashing"

    def trace_gen(self, program: bytes) -> TraceGenOutput:
        os._exit(3)

    def prove(self, trace: bytes) -> bytes:
        os._exit(3)

    def verify(self, proof: bytes) -> bool:
        os._exit(3)


class RecordingSessionFactory:
    """Builds thread-isolated sessions and keeps them for teardown checks."""

    def __init__(self, engine: ComputationEngine) -> None:
        self.engine = engine
        self.sessions: list[WorkerSession] = []
        self._lock = threading.Lock()

    def __call__(self, stage: Stage) -> WorkerSession:
        session = WorkerSession(stage, lambda: self.engine, isolation="thread", poll_interval=0.01)
        with self._lock:
            self.sessions.append(session)
        return session

    def for_stage(self, stage: Stage) -> list[WorkerSession]:
        return [s for s in self.sessions if s.stage == stage]


@pytest.fixture
def program_bytes() -> bytes:
    return make_program(64)


@pytest.fixture
def fibonacci_1000() -> bytes:
    return make_program(1000, name="fibonacci_1000")


@pytest.fixture
def scripted_engine() -> ScriptedEngine:
    engine = ScriptedEngine()
    yield engine
    for stage in Stage:
        engine.release(stage)


@pytest.fixture
def session_factory(scripted_engine) -> RecordingSessionFactory:
    return RecordingSessionFactory(scripted_engine)


@pytest.fixture
def make_controller(session_factory):
    """Controller wired to the scripted engine through thread-isolated sessions."""
    controllers: list[PipelineController] = []

    def _make(**overrides) -> PipelineController:
        config = PipelineConfig(isolation="thread", poll_interval=0.01, **overrides)
        controller = PipelineController(config, session_factory=session_factory)
        controllers.append(controller)
        return controller

    yield _make
    for controller in controllers:
        controller.close()


@pytest.fixture
def reference_controller():
    """Controller running the reference engine in thread-isolated sessions."""
    controller = PipelineController(PipelineConfig(isolation="thread", poll_interval=0.01))
    yield controller
    controller.close()


class FakeHTTPResponse:
    def __init__(self, body: bytes) -> None:
        self.body = body

    def read(self, amount: int = -1) -> bytes:
        return self.body if amount < 0 else self.body[:amount]

    def __enter__(self) -> "FakeHTTPResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        return None


@pytest.fixture
def fake_urlopen(monkeypatch):
    """Replace ``urlopen`` in the input module; returns ``install(body=..., error=...)``."""
    requests = []

    def install(body: bytes = b"", error: Exception | None = None) -> list:
        def _urlopen(req, timeout=None):
            requests.append((req.full_url, req.get_method(), timeout))
            if error is not None:
                raise error
            return FakeHTTPResponse(body)

        monkeypatch.setattr("proofpipe.inputs.urlopen", _urlopen)
        return requests

    return install
