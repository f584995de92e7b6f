"""Abstractions for plugging computation engines into the pipeline.

An engine performs the actual trace generation, proving and verification. The
pipeline never interprets its payloads; it only moves them between stages.
"""
from __future__ import annotations

import importlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Union

from .protocol import StageRequest, StageResponse
from .stages import Stage


class EngineError(Exception):
    """Raised by an engine for inputs it cannot process."""


@dataclass
class TraceGenOutput:
    """Normalized output of :meth:`ComputationEngine.trace_gen`."""

    trace: Union[bytes, str]
    resource_metadata: Any


class ComputationEngine(ABC):
    """Interface for pluggable trace/prove/verify backends."""

    name: str = "unknown"
    version: str = "0"

    def initialize(self) -> None:
        """Load or prepare the engine inside the isolated context."""

    @abstractmethod
    def trace_gen(self, program: bytes) -> TraceGenOutput:
        """Execute ``program`` and return its trace with resource metadata."""

    @abstractmethod
    def prove(self, trace: bytes) -> Union[bytes, str]:
        """Produce a proof for a trace created by a compatible ``trace_gen``."""

    @abstractmethod
    def verify(self, proof: bytes) -> bool:
        """Check a proof. Deterministic for identical proof bytes."""


EngineFactory = Callable[[], ComputationEngine]
EngineSpec = Union[str, EngineFactory, ComputationEngine]

ENGINE_ALIASES: dict[str, str] = {
    "fibonacci": "proofpipe.reference.fibonacci:FibonacciEngine",
}


def resolve_engine(spec: str) -> EngineFactory:
    """Resolve an alias or ``module:attr`` / ``module.attr`` path to a factory."""
    path = ENGINE_ALIASES.get(spec, spec)
    if ":" in path:
        module_name, _, attr = path.partition(":")
    else:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise EngineError(f"Invalid engine path: {spec}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if factory is None:
        raise EngineError(f"Engine not found: {spec}")
    return factory


def load_engine(spec: EngineSpec) -> ComputationEngine:
    """Instantiate an engine from a path, a factory, or pass an instance through."""
    if isinstance(spec, ComputationEngine):
        return spec
    factory = resolve_engine(spec) if isinstance(spec, str) else spec
    engine = factory()
    if not isinstance(engine, ComputationEngine):
        raise EngineError(f"{spec!r} did not produce a ComputationEngine")
    return engine


def _as_bytes(payload: Any, what: str) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    raise EngineError(f"engine returned {type(payload).__name__} for {what}, expected bytes or str")


def _as_metadata(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return {"value": raw if isinstance(raw, str) else raw.decode("utf-8", "replace")}
        return decoded if isinstance(decoded, dict) else {"value": decoded}
    if raw is None:
        return {}
    return {"value": raw}


def execute(engine: ComputationEngine, stage: Stage, request: StageRequest) -> StageResponse:
    """Run one stage operation and convert its result to the canonical encoding.

    Exceptions propagate; the session turns them into failure responses.
    """
    payload = _as_bytes(request.input, f"{stage.value} input")
    if stage == Stage.TRACE_GEN:
        output = engine.trace_gen(payload)
        if not isinstance(output, TraceGenOutput):
            raise EngineError(f"trace_gen returned {type(output).__name__}, expected TraceGenOutput")
        return StageResponse.success(_as_bytes(output.trace, "trace"), _as_metadata(output.resource_metadata))
    if stage == Stage.PROVE:
        return StageResponse.success(_as_bytes(engine.prove(payload), "proof"))
    verdict = engine.verify(payload)
    if not isinstance(verdict, bool):
        raise EngineError(f"verify returned {type(verdict).__name__}, expected bool")
    return StageResponse.success(verdict)


__all__ = [
    "ENGINE_ALIASES",
    "ComputationEngine",
    "EngineError",
    "EngineFactory",
    "EngineSpec",
    "TraceGenOutput",
    "execute",
    "load_engine",
    "resolve_engine",
]
