"""Merkle commitments over participant and winner lists.

Trees are built the way the canonical off-engine tooling builds them: leaves
are already-hashed 32-byte values, parents are ``keccak256(min(a, b) ||
max(a, b))`` (sorted-pair hashing), and an unpaired node at the end of a level
is promoted unchanged. A single-leaf tree has that leaf as its root.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from web3 import Web3

from .encoding import hash_to_bytes, normalize_identity


def _hex(digest: bytes) -> str:
    return "0x" + bytes(digest).hex()


def participant_leaf(identity: str, weight: int) -> bytes:
    """Leaf for the participant snapshot: ``keccak256(address, uint128 weight)``."""

    if weight < 0 or weight >= 1 << 128:
        raise ValueError("weight must fit in an unsigned 128-bit integer")
    return bytes(
        Web3.solidity_keccak(["address", "uint128"], [normalize_identity(identity), weight])
    )


def winner_leaf(identity: str, prize_tier: int, prize_index: int) -> bytes:
    """Leaf for the winner list: ``keccak256(address, uint8 tier, uint8 index)``."""

    if not 0 <= prize_tier <= 255 or not 0 <= prize_index <= 255:
        raise ValueError("prize tier and prize index must fit in uint8")
    return bytes(
        Web3.solidity_keccak(
            ["address", "uint8", "uint8"],
            [normalize_identity(identity), prize_tier, prize_index],
        )
    )


def hash_pair(left: bytes, right: bytes) -> bytes:
    """Combine two nodes independently of their order."""

    low, high = (left, right) if left <= right else (right, left)
    return bytes(Web3.keccak(low + high))


def _levels(leaves: Sequence[bytes]) -> list[list[bytes]]:
    if not leaves:
        raise ValueError("Cannot build a Merkle tree without leaves")
    levels = [[bytes(leaf) for leaf in leaves]]
    while len(levels[-1]) > 1:
        current = levels[-1]
        parents: list[bytes] = []
        for i in range(0, len(current), 2):
            if i + 1 < len(current):
                parents.append(hash_pair(current[i], current[i + 1]))
            else:
                parents.append(current[i])
        levels.append(parents)
    return levels


def build_root(leaves: Sequence[bytes]) -> str:
    """Return the hex root of the tree over ``leaves`` (in the given order)."""

    return _hex(_levels(leaves)[-1][0])


def build_proof(leaves: Sequence[bytes], index: int) -> list[str]:
    """Return the sibling path proving membership of ``leaves[index]``."""

    if not 0 <= index < len(leaves):
        raise IndexError(f"leaf index {index} out of range for {len(leaves)} leaves")
    proof: list[str] = []
    position = index
    for level in _levels(leaves)[:-1]:
        sibling = position ^ 1
        if sibling < len(level):
            proof.append(_hex(level[sibling]))
        position //= 2
    return proof


def verify(proof: Sequence["str | bytes"], root: "str | bytes", leaf: bytes) -> bool:
    """Walk ``proof`` from ``leaf`` hashing sorted pairs and compare to ``root``."""

    computed = bytes(leaf)
    for sibling in proof:
        computed = hash_pair(computed, hash_to_bytes(sibling))
    return computed == hash_to_bytes(root)


@dataclass(frozen=True)
class MerkleCommitment:
    """A built tree together with its leaves, used to hand out proofs."""

    leaves: tuple[bytes, ...]
    root: str

    @classmethod
    def from_leaves(cls, leaves: Sequence[bytes]) -> "MerkleCommitment":
        return cls(leaves=tuple(bytes(leaf) for leaf in leaves), root=build_root(leaves))

    @classmethod
    def for_participants(
        cls, participants: Sequence[tuple[str, int]]
    ) -> "MerkleCommitment":
        """Commit to ``(identity, effective_weight)`` pairs in snapshot order."""

        return cls.from_leaves([participant_leaf(i, w) for i, w in participants])

    @classmethod
    def for_winners(
        cls, winners: Sequence[tuple[str, int, int]]
    ) -> "MerkleCommitment":
        """Commit to ``(identity, prize_tier, prize_index)`` triples in slot order."""

        return cls.from_leaves([winner_leaf(i, t, idx) for i, t, idx in winners])

    def proof(self, index: int) -> list[str]:
        return build_proof(self.leaves, index)

    def verify(self, proof: Sequence["str | bytes"], leaf: bytes) -> bool:
        return verify(proof, self.root, leaf)


__all__ = [
    "MerkleCommitment",
    "build_proof",
    "build_root",
    "hash_pair",
    "participant_leaf",
    "verify",
    "winner_leaf",
]
