"""Round settlement: wagers, proofs, randomness, winners, claims and refunds."""

from .claims import ClaimProcessor
from .guard import SecurityGuard
from .ledger import WagerLedger
from .manager import ClaimStatus, ParticipantStats, RoundManager
from .merkle import MerkleCommitment, participant_leaf, winner_leaf
from .proofs import ProofOutcome, ProofVerifier
from .randomness import RandomnessGateway
from .selection import WinnerAssignment, select_winners
from .treasury import Treasury

__all__ = [
    "ClaimProcessor",
    "ClaimStatus",
    "MerkleCommitment",
    "ParticipantStats",
    "ProofOutcome",
    "ProofVerifier",
    "RandomnessGateway",
    "RoundManager",
    "SecurityGuard",
    "Treasury",
    "WagerLedger",
    "WinnerAssignment",
    "participant_leaf",
    "select_winners",
    "winner_leaf",
]
