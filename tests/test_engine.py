"""Tests for engine resolution and result normalisation."""
from __future__ import annotations

import pytest

from proofpipe.engine import ComputationEngine, EngineError, TraceGenOutput, execute, load_engine, resolve_engine
from proofpipe.protocol import StageRequest
from proofpipe.reference import FibonacciEngine
from proofpipe.stages import Stage


class LooseEngine(ComputationEngine):
    """Returns text and JSON-string metadata, as some provers do."""

    name = "loose"

    def trace_gen(self, program):
        return TraceGenOutput(trace="trace-text", resource_metadata='{"n_steps": 2}')

    def prove(self, trace):
        return bytearray(b"proof")

    def verify(self, proof):
        return 1


def test_alias_resolves_to_reference_engine():
    assert resolve_engine("fibonacci") is FibonacciEngine
    assert isinstance(load_engine("proofpipe.reference.fibonacci:FibonacciEngine"), FibonacciEngine)
    assert isinstance(load_engine("proofpipe.reference.FibonacciEngine"), FibonacciEngine)


def test_bad_engine_paths():
    with pytest.raises(EngineError):
        resolve_engine("nodots")
    with pytest.raises(EngineError):
        resolve_engine("proofpipe.reference:NoSuchEngine")
    with pytest.raises(EngineError):
        load_engine(lambda: object())


def test_execute_normalises_payloads():
    engine = LooseEngine()
    response = execute(engine, Stage.TRACE_GEN, StageRequest(input=b"p"))
    assert response.value == b"trace-text"
    assert response.metadata == {"n_steps": 2}
    assert execute(engine, Stage.PROVE, StageRequest(input=b"t")).value == b"proof"


def test_execute_rejects_non_boolean_verdict():
    with pytest.raises(EngineError):
        execute(LooseEngine(), Stage.VERIFY, StageRequest(input=b"proof"))
