"""Fibonacci-style reference engine over the Mersenne-31 field.

Program (JSON)::

    {"name": "fibonacci_1000", "kind": "fibonacci", "steps": 1000, "a": 1, "b": 1}

The trace has ``steps + 1`` rows ``(a_i, b_i)`` with
``(a_{i+1}, b_{i+1}) = (b_i, a_i + b_i mod p)``. The proof commits to the rows
with a Merkle tree and opens the boundary rows plus Fiat-Shamir sampled
transitions.
"""
from __future__ import annotations

import json
from typing import Any

from ..engine import ComputationEngine, EngineError, TraceGenOutput
from . import merkle
from .transcript import Transcript

MODULUS = 2**31 - 1
ENGINE_NAME = "fibonacci"
ENGINE_VERSION = "1"
MAX_STEPS = 1 << 20
NUM_QUERIES = 16
TRANSCRIPT_LABEL = "proofpipe-fibonacci-v1"


def make_program(steps: int, a: int = 1, b: int = 1, name: str | None = None) -> bytes:
    """Encode a program document accepted by :meth:`FibonacciEngine.trace_gen`."""
    doc = {"name": name or f"fibonacci_{steps}", "kind": ENGINE_NAME, "steps": steps, "a": a, "b": b}
    return json.dumps(doc, indent=2).encode("utf-8")


def _dumps(doc: dict[str, Any]) -> bytes:
    return json.dumps(doc, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _loads(payload: bytes, what: str) -> dict[str, Any]:
    try:
        doc = json.loads(payload)
    except (UnicodeDecodeError, ValueError) as exc:
        raise EngineError(f"Failed to deserialize {what}: {exc}") from exc
    if not isinstance(doc, dict):
        raise EngineError(f"Failed to deserialize {what}: expected a JSON object")
    return doc


def _field_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EngineError(f"{what} must be an integer")
    if not 0 <= value < MODULUS:
        raise EngineError(f"{what} is outside the field")
    return value


def _row(value: Any, what: str) -> tuple[int, int]:
    if not isinstance(value, list) or len(value) != 2:
        raise EngineError(f"{what} must be a pair")
    return _field_int(value[0], what), _field_int(value[1], what)


def _leaf(index: int, row: tuple[int, int]) -> bytes:
    a, b = row
    return merkle.hash_leaf(index.to_bytes(8, "big") + a.to_bytes(4, "big") + b.to_bytes(4, "big"))


def _step(row: tuple[int, int]) -> tuple[int, int]:
    a, b = row
    return b, (a + b) % MODULUS


def _query_indices(root: bytes, public: dict[str, int], n_rows: int) -> list[int]:
    transcript = Transcript(TRANSCRIPT_LABEL)
    transcript.absorb_bytes(root)
    transcript.absorb_many_ints([public["a0"], public["b0"], public["steps"], public["output"], n_rows])
    count = min(NUM_QUERIES, n_rows - 1)
    return [transcript.challenge_index(n_rows - 1) for _ in range(count)]


def _check_header(doc: dict[str, Any], what: str) -> None:
    engine = doc.get("engine")
    version = doc.get("version")
    if engine != ENGINE_NAME or version != ENGINE_VERSION:
        raise EngineError(
            f"{what} was produced by {engine!r} v{version}, expected {ENGINE_NAME!r} v{ENGINE_VERSION}"
        )


def _public_inputs(doc: dict[str, Any]) -> dict[str, int]:
    public = doc.get("public")
    if not isinstance(public, dict):
        raise EngineError("missing public inputs")
    parsed = {key: _field_int(public.get(key), f"public.{key}") for key in ("a0", "b0", "output")}
    steps = public.get("steps")
    if isinstance(steps, bool) or not isinstance(steps, int) or not 1 <= steps <= MAX_STEPS:
        raise EngineError(f"public.steps must be an integer in [1, {MAX_STEPS}]")
    parsed["steps"] = steps
    return parsed


class FibonacciEngine(ComputationEngine):
    """Pure-Python engine used for demos and tests."""

    name = ENGINE_NAME
    version = ENGINE_VERSION

    def trace_gen(self, program: bytes) -> TraceGenOutput:
        doc = _loads(program, "program")
        if doc.get("kind", ENGINE_NAME) != ENGINE_NAME:
            raise EngineError(f"unsupported program kind: {doc.get('kind')!r}")
        steps = doc.get("steps")
        if isinstance(steps, bool) or not isinstance(steps, int) or not 1 <= steps <= MAX_STEPS:
            raise EngineError(f"steps must be an integer in [1, {MAX_STEPS}]")
        for key in ("a", "b"):
            value = doc.get(key, 1)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise EngineError(f"{key} must be a non-negative integer")

        row = (doc.get("a", 1) % MODULUS, doc.get("b", 1) % MODULUS)
        rows = [row]
        for _ in range(steps):
            row = _step(row)
            rows.append(row)

        trace = {
            "engine": ENGINE_NAME,
            "version": ENGINE_VERSION,
            "program": str(doc.get("name", "program")),
            "modulus": MODULUS,
            "columns": ["a", "b"],
            "rows": [list(r) for r in rows],
            "public": {"a0": rows[0][0], "b0": rows[0][1], "steps": steps, "output": rows[-1][1]},
        }
        resources = {
            "n_steps": steps,
            "n_rows": len(rows),
            "n_memory_holes": 0,
            "builtin_instance_counter": {},
        }
        return TraceGenOutput(trace=_dumps(trace), resource_metadata=resources)

    def prove(self, trace: bytes) -> bytes:
        doc = _loads(trace, "prover input")
        _check_header(doc, "trace")
        if doc.get("modulus") != MODULUS:
            raise EngineError("trace modulus does not match the engine field")
        public = _public_inputs(doc)
        raw_rows = doc.get("rows")
        if not isinstance(raw_rows, list) or len(raw_rows) != public["steps"] + 1:
            raise EngineError("trace rows do not match public.steps")
        rows = [_row(r, f"rows[{i}]") for i, r in enumerate(raw_rows)]

        if rows[0] != (public["a0"], public["b0"]) or rows[-1][1] != public["output"]:
            raise EngineError("Failed to generate proof: boundary rows do not match public inputs")
        for i in range(len(rows) - 1):
            if _step(rows[i]) != rows[i + 1]:
                raise EngineError(f"Failed to generate proof: transition constraint violated at row {i}")

        tree = merkle.MerkleTree([_leaf(i, r) for i, r in enumerate(rows)])
        root = tree.root

        def opening(index: int) -> dict[str, Any]:
            return {
                "index": index,
                "row": list(rows[index]),
                "path": [node.hex() for node in tree.auth_path(index)],
            }

        proof = {
            "engine": ENGINE_NAME,
            "version": ENGINE_VERSION,
            "program": doc.get("program"),
            "public": public,
            "n_rows": len(rows),
            "root": root.hex(),
            "boundary": {"first": opening(0), "last": opening(len(rows) - 1)},
            "queries": [
                {"current": opening(i), "next": opening(i + 1)}
                for i in _query_indices(root, public, len(rows))
            ],
        }
        return _dumps(proof)

    def verify(self, proof: bytes) -> bool:
        doc = _loads(proof, "proof")
        _check_header(doc, "proof")
        public = _public_inputs(doc)
        try:
            n_rows = int(doc["n_rows"])
            root = bytes.fromhex(doc["root"])
            first = doc["boundary"]["first"]
            last = doc["boundary"]["last"]
            queries = list(doc["queries"])
        except (KeyError, TypeError, ValueError) as exc:
            raise EngineError(f"Failed to deserialize proof: {exc}") from exc

        if n_rows != public["steps"] + 1:
            return False

        def check(opening: Any, expected_index: int) -> tuple[int, int] | None:
            try:
                index = opening["index"]
                row = _row(opening["row"], "opening row")
                path = [bytes.fromhex(node) for node in opening["path"]]
            except (KeyError, TypeError, ValueError, EngineError):
                return None
            if index != expected_index:
                return None
            if not merkle.verify_path(root, _leaf(index, row), index, path):
                return None
            return row

        first_row = check(first, 0)
        last_row = check(last, n_rows - 1)
        if first_row != (public["a0"], public["b0"]):
            return False
        if last_row is None or last_row[1] != public["output"]:
            return False

        expected = _query_indices(root, public, n_rows)
        if len(queries) != len(expected):
            return False
        for query, index in zip(queries, expected):
            if not isinstance(query, dict):
                return False
            current = check(query.get("current"), index)
            following = check(query.get("next"), index + 1)
            if current is None or following is None:
                return False
            if _step(current) != following:
                return False
        return True
