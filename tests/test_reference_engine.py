"""Tests for the built-in Fibonacci engine."""
from __future__ import annotations

import json

import pytest

from proofpipe.engine import EngineError, TraceGenOutput
from proofpipe.reference import MODULUS, FibonacciEngine, make_program


@pytest.fixture
def engine():
    return FibonacciEngine()


def _prove(engine, steps=32):
    output = engine.trace_gen(make_program(steps))
    return output, engine.prove(output.trace)


class TestTraceGen:
    def test_trace_rows_follow_recurrence(self, engine):
        output = engine.trace_gen(make_program(10, a=1, b=1))
        assert isinstance(output, TraceGenOutput)
        trace = json.loads(output.trace)
        assert len(trace["rows"]) == 11
        assert trace["rows"][:4] == [[1, 1], [1, 2], [2, 3], [3, 5]]
        assert trace["public"]["output"] == 144
        assert output.resource_metadata["n_steps"] == 10

    def test_values_are_reduced_into_the_field(self, engine):
        output = engine.trace_gen(make_program(1, a=MODULUS + 1, b=MODULUS))
        trace = json.loads(output.trace)
        assert trace["rows"][0] == [1, 0]

    @pytest.mark.parametrize(
        "program",
        [
            b"not json",
            b"[1, 2]",
            json.dumps({"kind": "sha", "steps": 3}).encode(),
            json.dumps({"kind": "fibonacci", "steps": 0}).encode(),
            json.dumps({"kind": "fibonacci", "steps": 3, "a": -1}).encode(),
            json.dumps({"kind": "fibonacci", "steps": True}).encode(),
        ],
    )
    def test_malformed_programs_raise(self, engine, program):
        with pytest.raises(EngineError):
            engine.trace_gen(program)


class TestProveVerify:
    def test_honest_proof_verifies(self, engine):
        _, proof = _prove(engine)
        assert engine.verify(proof) is True

    def test_verification_is_deterministic(self, engine):
        _, proof = _prove(engine)
        assert {engine.verify(proof) for _ in range(5)} == {True}

    def test_single_step_program(self, engine):
        _, proof = _prove(engine, steps=1)
        assert engine.verify(proof) is True

    def test_prove_rejects_tampered_trace(self, engine):
        output = engine.trace_gen(make_program(16))
        trace = json.loads(output.trace)
        trace["rows"][5][1] += 1
        with pytest.raises(EngineError, match="transition constraint"):
            engine.prove(json.dumps(trace).encode())

    def test_prove_rejects_incompatible_version(self, engine):
        output = engine.trace_gen(make_program(4))
        trace = json.loads(output.trace)
        trace["version"] = "0"
        with pytest.raises(EngineError, match="expected 'fibonacci'"):
            engine.prove(json.dumps(trace).encode())

    def test_wrong_public_output_is_rejected(self, engine):
        _, proof = _prove(engine)
        doc = json.loads(proof)
        doc["public"]["output"] = (doc["public"]["output"] + 1) % MODULUS
        assert engine.verify(json.dumps(doc).encode()) is False

    def test_tampered_opening_is_rejected(self, engine):
        _, proof = _prove(engine)
        doc = json.loads(proof)
        doc["queries"][0]["next"]["row"][1] = (doc["queries"][0]["next"]["row"][1] + 1) % MODULUS
        assert engine.verify(json.dumps(doc).encode()) is False

    def test_tampered_root_is_rejected(self, engine):
        _, proof = _prove(engine)
        doc = json.loads(proof)
        doc["root"] = "00" * 32
        assert engine.verify(json.dumps(doc).encode()) is False

    def test_dropped_query_is_rejected(self, engine):
        _, proof = _prove(engine)
        doc = json.loads(proof)
        doc["queries"] = doc["queries"][1:]
        assert engine.verify(json.dumps(doc).encode()) is False

    def test_malformed_proof_raises(self, engine):
        with pytest.raises(EngineError):
            engine.verify(b"{")
        _, proof = _prove(engine)
        doc = json.loads(proof)
        del doc["boundary"]
        with pytest.raises(EngineError):
            engine.verify(json.dumps(doc).encode())
