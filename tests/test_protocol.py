"""Tests for the stage message protocol."""
from __future__ import annotations

import pytest

from proofpipe.protocol import (
    ErrorKind,
    ProtocolError,
    StageError,
    StageRequest,
    StageResponse,
)
from proofpipe.stages import Stage


class TestStageResponse:
    def test_success_and_failure_are_exclusive(self):
        with pytest.raises(ProtocolError):
            StageResponse()
        with pytest.raises(ProtocolError):
            StageResponse(value=b"x", error=StageError(ErrorKind.COMPUTATION, "boom"))

    def test_false_verdict_is_a_success(self):
        """A rejected proof is a value, not an error."""
        response = StageResponse.success(False)
        assert response.ok
        assert response.value is False

    def test_trace_gen_wire_shape(self):
        response = StageResponse.success(b"trace", {"n_steps": 3})
        assert response.to_wire(Stage.TRACE_GEN) == {"value": b"trace", "execution_resources": {"n_steps": 3}}
        assert response.to_wire(Stage.PROVE) == {"value": b"trace"}

    def test_failure_wire_shape(self):
        response = StageResponse.failure(ErrorKind.TIMEOUT, "too slow")
        assert response.to_wire(Stage.PROVE) == {"error": {"kind": "timeout", "message": "too slow"}}


class TestFromWire:
    def test_legacy_string_error(self):
        """Bare error strings become computation errors."""
        response = StageResponse.from_wire(Stage.PROVE, {"error": "Failed to generate proof"})
        assert not response.ok
        assert response.error == StageError(ErrorKind.COMPUTATION, "Failed to generate proof")

    def test_structured_error(self):
        response = StageResponse.from_wire(Stage.VERIFY, {"error": {"kind": "channel", "message": "gone"}})
        assert response.error.kind is ErrorKind.CHANNEL

    def test_unknown_error_kind_falls_back(self):
        response = StageResponse.from_wire(Stage.VERIFY, {"error": {"kind": "weird", "message": "?"}})
        assert response.error.kind is ErrorKind.COMPUTATION

    def test_prover_input_alias(self):
        response = StageResponse.from_wire(
            Stage.TRACE_GEN, {"prover_input": b"trace", "execution_resources": {"n_steps": 1}}
        )
        assert response.value == b"trace"
        assert response.metadata == {"n_steps": 1}

    def test_trace_gen_metadata_is_optional(self):
        response = StageResponse.from_wire(Stage.TRACE_GEN, {"value": b"trace"})
        assert response.ok
        assert response.metadata == {}

    def test_verify_requires_boolean(self):
        with pytest.raises(ProtocolError):
            StageResponse.from_wire(Stage.VERIFY, {"value": "yes"})

    def test_missing_value(self):
        with pytest.raises(ProtocolError):
            StageResponse.from_wire(Stage.PROVE, {})


class TestStageRequest:
    def test_round_trip(self):
        request = StageRequest(input=b"program")
        assert StageRequest.from_wire(request.to_wire()) == request

    def test_requires_input(self):
        with pytest.raises(ProtocolError):
            StageRequest.from_wire({"payload": b"x"})


def test_error_from_exception_uses_type_name_when_message_empty():
    error = StageError.from_exception(RuntimeError(), ErrorKind.INITIALIZATION)
    assert error.kind is ErrorKind.INITIALIZATION
    assert error.message == "RuntimeError"
    assert str(error) == "initialization: RuntimeError"
