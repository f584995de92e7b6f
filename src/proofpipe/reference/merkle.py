"""sha256 Merkle tree committing to trace rows.

Leaves and interior nodes are hashed under different one-byte prefixes so a
node can never be passed off as a leaf. Odd levels pair the last node with
itself.
"""
from __future__ import annotations

import hashlib

LEAF_PREFIX = b"\x00"
NODE_PREFIX = b"\x01"


def hash_leaf(data: bytes) -> bytes:
    return hashlib.sha256(LEAF_PREFIX + data).digest()


def hash_node(left: bytes, right: bytes) -> bytes:
    return hashlib.sha256(NODE_PREFIX + left + right).digest()


class MerkleTree:
    """All levels of a tree, leaves first."""

    def __init__(self, leaves: list[bytes]) -> None:
        if not leaves:
            raise ValueError("cannot build Merkle tree with zero leaves")
        self.levels: list[list[bytes]] = [list(leaves)]
        level = self.levels[0]
        while len(level) > 1:
            paired = level + [level[-1]] if len(level) % 2 else level
            level = [hash_node(paired[i], paired[i + 1]) for i in range(0, len(paired), 2)]
            self.levels.append(level)

    def __len__(self) -> int:
        return len(self.levels[0])

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    def auth_path(self, index: int) -> list[bytes]:
        """Sibling hashes from leaf ``index`` up to (not including) the root."""
        if not 0 <= index < len(self):
            raise ValueError(f"leaf index {index} out of range")
        path = []
        for level in self.levels[:-1]:
            sibling = index ^ 1
            path.append(level[sibling] if sibling < len(level) else level[index])
            index //= 2
        return path


def verify_path(root: bytes, leaf: bytes, index: int, path: list[bytes]) -> bool:
    if index < 0:
        return False
    node = leaf
    for sibling in path:
        node = hash_node(sibling, node) if index & 1 else hash_node(node, sibling)
        index >>= 1
    # a path that is too short leaves high bits behind
    return index == 0 and node == root


__all__ = ["MerkleTree", "hash_leaf", "hash_node", "verify_path"]
