"""Artifact transfer protocol between the controller and a worker session.

One request and one response per session:

    trace_gen  {"input": program}  -> {"value": trace, "execution_resources": {...}} | {"error": ...}
    prove      {"input": trace}    -> {"value": proof}                               | {"error": ...}
    verify     {"input": proof}    -> {"value": bool}                                | {"error": ...}

Errors always travel as ``{"kind": ..., "message": ...}``. Older payloads that
carry a bare error string, or ``prover_input`` instead of ``value``, are still
accepted by :meth:`StageResponse.from_wire`.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from .stages import Stage


class ErrorKind(str, Enum):
    INITIALIZATION = "initialization"
    COMPUTATION = "computation"
    CHANNEL = "channel"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StageError:
    """Engine-agnostic error carried by a failure response."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}

    @classmethod
    def from_wire(cls, raw: Any) -> "StageError":
        if isinstance(raw, StageError):
            return raw
        if isinstance(raw, Mapping):
            try:
                kind = ErrorKind(raw.get("kind", ErrorKind.COMPUTATION.value))
            except ValueError:
                kind = ErrorKind.COMPUTATION
            return cls(kind=kind, message=str(raw.get("message", "")))
        if isinstance(raw, BaseException):
            return cls.from_exception(raw)
        return cls(kind=ErrorKind.COMPUTATION, message=str(raw))

    @classmethod
    def from_exception(cls, exc: BaseException, kind: ErrorKind = ErrorKind.COMPUTATION) -> "StageError":
        message = str(exc) or type(exc).__name__
        return cls(kind=kind, message=message)


class ProtocolError(ValueError):
    """A message does not follow the stage protocol."""


@dataclass(frozen=True)
class StageRequest:
    input: bytes

    def __post_init__(self) -> None:
        if self.input is None:
            raise ProtocolError("request input is required")

    def to_wire(self) -> dict[str, Any]:
        return {"input": self.input}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "StageRequest":
        if not isinstance(payload, Mapping) or "input" not in payload:
            raise ProtocolError("request must carry an 'input' field")
        return cls(input=payload["input"])


@dataclass(frozen=True)
class StageResponse:
    """Either a success value (plus metadata for trace_gen) or an error, never both."""

    value: Any = None
    metadata: Optional[dict[str, Any]] = None
    error: Optional[StageError] = None

    def __post_init__(self) -> None:
        if self.error is None and self.value is None:
            raise ProtocolError("response carries neither a value nor an error")
        if self.error is not None and (self.value is not None or self.metadata is not None):
            raise ProtocolError("response carries both a value and an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any, metadata: Optional[dict[str, Any]] = None) -> "StageResponse":
        return cls(value=value, metadata=metadata)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "StageResponse":
        return cls(error=StageError(kind=kind, message=message))

    def to_wire(self, stage: Stage) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error.to_dict()}
        payload: dict[str, Any] = {"value": self.value}
        if stage == Stage.TRACE_GEN:
            payload["execution_resources"] = self.metadata
        return payload

    @classmethod
    def from_wire(cls, stage: Stage, payload: Mapping[str, Any]) -> "StageResponse":
        if not isinstance(payload, Mapping):
            raise ProtocolError(f"{stage.value} response must be a mapping")
        if payload.get("error") is not None:
            return cls(error=StageError.from_wire(payload["error"]))

        value = payload.get("value")
        if value is None and stage == Stage.TRACE_GEN:
            value = payload.get("prover_input")
        if value is None:
            raise ProtocolError(f"{stage.value} response has no value")

        if stage == Stage.TRACE_GEN:
            metadata = payload.get("execution_resources")
            return cls(value=value, metadata={} if metadata is None else metadata)
        if stage == Stage.VERIFY and not isinstance(value, bool):
            raise ProtocolError("verify response value must be a boolean")
        return cls(value=value)


__all__ = [
    "ErrorKind",
    "ProtocolError",
    "StageError",
    "StageRequest",
    "StageResponse",
]
