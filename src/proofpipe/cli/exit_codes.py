"""Stable exit codes for proofpipe commands."""
from __future__ import annotations

EXIT_OK = 0
EXIT_STAGE_FAILED = 10
EXIT_PROOF_REJECTED = 11
EXIT_BAD_INPUT = 20

_DESCRIPTIONS = {
    EXIT_OK: "success",
    EXIT_STAGE_FAILED: "a pipeline stage failed",
    EXIT_PROOF_REJECTED: "proof rejected by the verifier",
    EXIT_BAD_INPUT: "input could not be read",
}


def exit_code_description(code: int) -> str:
    return _DESCRIPTIONS.get(code, "unknown")
