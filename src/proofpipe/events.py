"""Pipeline events delivered to controller listeners."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .stages import Stage


class EventKind(str, Enum):
    ARTIFACT_LOADED = "artifact_loaded"
    STAGE_STARTED = "stage_started"
    STAGE_SUCCEEDED = "stage_succeeded"
    STAGE_FAILED = "stage_failed"
    STAGE_DISCARDED = "stage_discarded"
    INVALIDATED = "invalidated"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PipelineEvent:
    kind: EventKind
    stage: Optional[Stage] = None
    run_id: Optional[int] = None
    data: dict[str, Any] = field(default_factory=dict)
    ts_ms: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "stage": self.stage.value if self.stage else None,
            "runId": self.run_id,
            "data": self.data,
            "tsMs": self.ts_ms,
        }


Listener = Callable[[PipelineEvent], None]

__all__ = ["EventKind", "Listener", "PipelineEvent"]
