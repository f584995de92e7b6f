"""Pydantic models for JSON request bodies."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, HttpUrl, model_validator


class ProgramRequest(BaseModel):
    """Select the program by sample or by URL (raw uploads bypass this model)."""

    sample: bool = False
    url: Optional[HttpUrl] = Field(default=None, description="Fetch the program over HTTP GET")

    @model_validator(mode="after")
    def _require_source(self) -> "ProgramRequest":
        if not self.sample and self.url is None:
            raise ValueError("either sample=true or url must be provided")
        return self
