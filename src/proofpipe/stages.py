"""Pipeline stages and the artifacts they consume and produce."""
from __future__ import annotations

from enum import Enum

from .artifacts import ArtifactKind


class Stage(str, Enum):
    """An ordered step of the trace -> prove -> verify pipeline."""

    TRACE_GEN = "trace_gen"
    PROVE = "prove"
    VERIFY = "verify"

    @property
    def input_kind(self) -> ArtifactKind:
        return _INPUTS[self]

    @property
    def output_kind(self) -> ArtifactKind | None:
        """Artifact written on success (``None`` for verify, which sets the verdict)."""
        return _OUTPUTS[self]

    @property
    def index(self) -> int:
        return STAGE_ORDER.index(self)

    def downstream(self) -> list["Stage"]:
        """Stages whose inputs derive from this stage's output."""
        return STAGE_ORDER[self.index + 1 :]

    @classmethod
    def parse(cls, value: "str | Stage") -> "Stage":
        if isinstance(value, Stage):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        for stage in cls:
            if stage.value == normalized:
                return stage
        raise ValueError(f"unknown stage: {value!r}")


STAGE_ORDER: list[Stage] = [Stage.TRACE_GEN, Stage.PROVE, Stage.VERIFY]

_INPUTS = {
    Stage.TRACE_GEN: ArtifactKind.PROGRAM,
    Stage.PROVE: ArtifactKind.TRACE,
    Stage.VERIFY: ArtifactKind.PROOF,
}

_OUTPUTS = {
    Stage.TRACE_GEN: ArtifactKind.TRACE,
    Stage.PROVE: ArtifactKind.PROOF,
    Stage.VERIFY: None,
}


def stages_consuming(kind: ArtifactKind) -> list[Stage]:
    """Stages invalidated when an artifact of ``kind`` is replaced."""
    for stage in STAGE_ORDER:
        if stage.input_kind == kind:
            return STAGE_ORDER[stage.index :]
    return []


__all__ = ["STAGE_ORDER", "Stage", "stages_consuming"]
