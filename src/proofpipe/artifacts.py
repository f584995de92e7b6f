"""In-memory artifacts of a single pipeline run.

Artifacts are write-once: a stage re-run replaces the artifact (and clears
everything derived from it) instead of mutating it.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class ArtifactKind(str, Enum):
    PROGRAM = "program"
    TRACE = "trace"
    PROOF = "proof"


# Order in which artifacts derive from one another.
ARTIFACT_CHAIN: list[ArtifactKind] = [ArtifactKind.PROGRAM, ArtifactKind.TRACE, ArtifactKind.PROOF]

EXPORT_NAMES: dict[ArtifactKind, str] = {
    ArtifactKind.TRACE: "trace.json",
    ArtifactKind.PROOF: "proof.json",
}
EXPORT_CONTENT_TYPE = "application/json"


class Verdict(str, Enum):
    """Tri-state verification outcome."""

    UNKNOWN = "unknown"
    VALID = "true"
    INVALID = "false"

    @classmethod
    def from_bool(cls, value: bool) -> "Verdict":
        return cls.VALID if value else cls.INVALID

    def as_bool(self) -> Optional[bool]:
        if self is Verdict.UNKNOWN:
            return None
        return self is Verdict.VALID


@dataclass(frozen=True)
class Artifact:
    """Immutable payload produced by one stage and consumed by the next."""

    kind: ArtifactKind
    payload: bytes
    produced_by: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.payload, (bytes, bytearray)):
            raise TypeError(f"{self.kind.value} payload must be bytes, got {type(self.payload).__name__}")
        if isinstance(self.payload, bytearray):
            object.__setattr__(self, "payload", bytes(self.payload))

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.payload).hexdigest()

    @property
    def display_name(self) -> str:
        return self.name or EXPORT_NAMES.get(self.kind, f"{self.kind.value}.bin")

    def describe(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.display_name,
            "size": self.size,
            "sha256": self.sha256,
            "producedBy": self.produced_by,
        }


@dataclass
class ArtifactStore:
    """Holds the current program, trace, proof, resource metadata and verdict."""

    artifacts: dict[ArtifactKind, Artifact] = field(default_factory=dict)
    resource_metadata: Optional[dict[str, Any]] = None
    verdict: Verdict = Verdict.UNKNOWN

    def get(self, kind: ArtifactKind) -> Optional[Artifact]:
        return self.artifacts.get(kind)

    def has(self, kind: ArtifactKind) -> bool:
        return kind in self.artifacts

    @property
    def program(self) -> Optional[Artifact]:
        return self.get(ArtifactKind.PROGRAM)

    @property
    def trace(self) -> Optional[Artifact]:
        return self.get(ArtifactKind.TRACE)

    @property
    def proof(self) -> Optional[Artifact]:
        return self.get(ArtifactKind.PROOF)

    def put(self, artifact: Artifact) -> None:
        """Replace the artifact of its kind and drop everything derived from it."""
        self.invalidate_after(artifact.kind)
        if artifact.kind == ArtifactKind.TRACE:
            # metadata describes the trace it arrived with
            self.resource_metadata = None
        self.artifacts[artifact.kind] = artifact

    def invalidate_after(self, kind: ArtifactKind) -> list[ArtifactKind]:
        """Clear every artifact derived from ``kind``; returns what was cleared."""
        position = ARTIFACT_CHAIN.index(kind)
        cleared = []
        for downstream in ARTIFACT_CHAIN[position + 1 :]:
            if self.artifacts.pop(downstream, None) is not None:
                cleared.append(downstream)
        if kind == ArtifactKind.PROGRAM:
            self.resource_metadata = None
        self.verdict = Verdict.UNKNOWN
        return cleared

    def clear(self) -> None:
        self.artifacts.clear()
        self.resource_metadata = None
        self.verdict = Verdict.UNKNOWN

    def export(self, kind: ArtifactKind, directory: Path | str) -> Path:
        """Write the trace or proof to ``directory`` byte-for-byte."""
        if kind not in EXPORT_NAMES:
            raise ValueError(f"{kind.value} artifacts are not exportable")
        artifact = self.get(kind)
        if artifact is None:
            raise LookupError(f"no {kind.value} artifact to export")
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / EXPORT_NAMES[kind]
        target.write_bytes(artifact.payload)
        return target

    def snapshot(self) -> dict[str, Any]:
        return {
            "artifacts": {kind.value: artifact.describe() for kind, artifact in self.artifacts.items()},
            "resourceMetadata": self.resource_metadata,
            "verdict": self.verdict.value,
        }


def artifact_for_export_name(filename: str) -> ArtifactKind:
    for kind, name in EXPORT_NAMES.items():
        if name == filename:
            return kind
    raise LookupError(f"unknown artifact file: {filename}")


__all__ = [
    "ARTIFACT_CHAIN",
    "Artifact",
    "ArtifactKind",
    "ArtifactStore",
    "EXPORT_CONTENT_TYPE",
    "EXPORT_NAMES",
    "Verdict",
    "artifact_for_export_name",
]
