"""HTTP error type for the pipeline API."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import jsonify

from ..stages import Stage


@dataclass
class APIError(Exception):
    """Raised by routes; rendered as ``{"status": "ERROR", "message", "errorCode"?, "stage"?}``."""

    status: int
    message: str
    error_code: Optional[str] = None
    stage: Optional[Stage] = None

    def to_response(self):
        body = {"status": "ERROR", "message": self.message}
        if self.error_code:
            body["errorCode"] = self.error_code
        if self.stage is not None:
            body["stage"] = self.stage.value
        return jsonify(body), self.status


__all__ = ["APIError"]
