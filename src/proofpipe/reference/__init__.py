"""Built-in reference engine.

Runs the whole pipeline in pure Python so that the orchestration layer can be
exercised without a native prover.
"""
from __future__ import annotations

from .fibonacci import FibonacciEngine, MODULUS, make_program

__all__ = ["FibonacciEngine", "MODULUS", "make_program"]
