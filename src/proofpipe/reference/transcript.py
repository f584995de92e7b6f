"""Fiat-Shamir transcript: public data in, query positions out."""
from __future__ import annotations

import hashlib
from typing import Iterable

_DOMAIN = b"proofpipe-fs/1|"


class Transcript:
    """Running sha256 state seeded with a domain label.

    Every absorbed item is length-prefixed, so ``absorb_bytes(b"ab")`` and
    ``absorb_bytes(b"a"); absorb_bytes(b"b")`` never collide. Each challenge
    ratchets the state.
    """

    def __init__(self, label: str) -> None:
        self._state = hashlib.sha256(_DOMAIN + label.encode("utf-8"))

    def absorb_bytes(self, data: bytes) -> None:
        self._state.update(len(data).to_bytes(8, "big"))
        self._state.update(data)

    def absorb_int(self, value: int) -> None:
        if value < 0:
            raise ValueError("only non-negative integers can be absorbed")
        self.absorb_bytes(value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big"))

    def absorb_many_ints(self, values: Iterable[int]) -> None:
        for value in values:
            self.absorb_int(value)

    def challenge_bytes(self) -> bytes:
        digest = self._state.digest()
        self._state = hashlib.sha256(_DOMAIN + b"ratchet|" + digest)
        return digest

    def challenge_index(self, bound: int) -> int:
        """Uniform-ish index in ``[0, bound)``."""
        if bound <= 0:
            raise ValueError("bound must be positive")
        return int.from_bytes(self.challenge_bytes(), "big") % bound


__all__ = ["Transcript"]
