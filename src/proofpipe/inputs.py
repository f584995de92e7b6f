"""Input acquisition: program bytes from a file, the bundled sample, or HTTP."""
from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

from .artifacts import Artifact, ArtifactKind

logger = logging.getLogger(__name__)

SAMPLE_NAME = "fibonacci_1000.json"
MAX_PROGRAM_BYTES = 64 * 1024 * 1024


class InputError(Exception):
    """The program could not be acquired."""


def program_from_bytes(payload: bytes, name: str | None = None) -> Artifact:
    if len(payload) > MAX_PROGRAM_BYTES:
        raise InputError(f"program exceeds {MAX_PROGRAM_BYTES} bytes")
    return Artifact(ArtifactKind.PROGRAM, bytes(payload), name=name)


def read_artifact(path: Path | str, kind: ArtifactKind = ArtifactKind.PROGRAM) -> Artifact:
    """Read a file as-is; no format validation happens before trace_gen."""
    source = Path(path)
    try:
        payload = source.read_bytes()
    except OSError as exc:
        raise InputError(f"cannot read {source}: {exc}") from exc
    if kind == ArtifactKind.PROGRAM:
        return program_from_bytes(payload, source.name)
    return Artifact(kind, payload, name=source.name)


def bundled_sample(name: str = SAMPLE_NAME) -> Artifact:
    """Load a sample program shipped with the package."""
    try:
        payload = resources.files("proofpipe.samples").joinpath(name).read_bytes()
    except (FileNotFoundError, OSError) as exc:
        raise InputError(f"no bundled sample named {name}") from exc
    return program_from_bytes(payload, name)


def fetch_sample(url: str, timeout: float = 30.0) -> Artifact:
    """Fetch a program over HTTP GET."""
    req = Request(url, headers={"Accept": "application/json, application/octet-stream"})
    logger.info("fetching program from %s", url)
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = resp.read(MAX_PROGRAM_BYTES + 1)
    except (URLError, OSError) as exc:
        raise InputError(f"Failed to fetch file: {exc}") from exc
    name = url.rstrip("/").rsplit("/", 1)[-1] or SAMPLE_NAME
    return program_from_bytes(payload, name)


__all__ = [
    "InputError",
    "MAX_PROGRAM_BYTES",
    "SAMPLE_NAME",
    "bundled_sample",
    "fetch_sample",
    "program_from_bytes",
    "read_artifact",
]
