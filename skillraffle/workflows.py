from typing import TYPE_CHECKING, Any, Mapping, Optional
from datetime import datetime, timezone
import json
import logging
from pathlib import Path

from sqlalchemy.orm import Session
from web3 import Web3

from .config import RaffleConfig
from .errors import ValidationError
from .models import ParticipantEntry, Round, RoundStatus, WinnerSlot
from .settlement.encoding import normalize_hash
from .settlement.merkle import MerkleCommitment

if TYPE_CHECKING:
    from .settlement.manager import RoundManager

logger = logging.getLogger(__name__)

PARTICIPANT_LEAF_FORMAT = "keccak256(abi.encodePacked(address, uint128 weight))"
WINNER_LEAF_FORMAT = "keccak256(abi.encodePacked(address, uint8 prizeTier, uint8 prizeIndex))"


def _seed_hex(seed: Optional[int]) -> Optional[str]:
    if seed is None:
        return None
    return "0x" + int(seed).to_bytes(32, "big").hex()


def build_participants_document(
    session: Session,
    round_id: int,
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build the publishable participant snapshot of a round.

    The document lists every participant in registration order together with
    the Merkle root over ``(address, weight)`` leaves. It is what the operator
    uploads to content-addressed storage before committing the root.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    round_id : int
        Round whose weights are frozen (``snapshot`` or later).
    generated_at : Optional[datetime]
        Timestamp written into the document. Defaults to now (UTC).

    Returns
    -------
    dict[str, Any]
        JSON-serialisable document. Integers that may exceed 53 bits are
        rendered as decimal strings.
    """

    round_ = Round.require(session, round_id)
    if round_.status in (RoundStatus.CREATED, RoundStatus.OPEN, RoundStatus.CLOSED):
        raise ValidationError(
            f"round {round_.id} is {round_.status.value}; weights are not frozen yet"
        )
    entries = ParticipantEntry.for_round(session, round_.id)
    if not entries:
        raise ValidationError(f"round {round_.id} has no participants")

    commitment = MerkleCommitment.for_participants(
        [(e.identity, e.effective_weight) for e in entries]
    )
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "roundId": str(round_.id),
        "totalWeight": str(round_.total_weight),
        "totalTickets": str(round_.total_tickets),
        "participantCount": len(entries),
        "generatedAt": generated_at.isoformat(),
        "participants": [
            {
                "address": e.identity,
                "weight": str(e.effective_weight),
                "tickets": str(e.tickets),
                "wagered": str(Web3.from_wei(e.wagered, "ether")),
                "hasProof": e.proof_verified,
            }
            for e in entries
        ],
        "merkle": {"root": commitment.root, "leafFormat": PARTICIPANT_LEAF_FORMAT},
    }


def build_winners_document(
    session: Session,
    round_id: int,
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build the publishable winner list of a distributed round."""

    round_ = Round.require(session, round_id)
    round_.require_status(RoundStatus.DISTRIBUTED)
    slots = WinnerSlot.for_round(session, round_.id)
    commitment = MerkleCommitment.for_winners(
        [(s.identity, s.prize_tier, s.slot_index) for s in slots]
    )
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "roundId": str(round_.id),
        "vrfSeed": _seed_hex(round_.random_seed),
        "vrfRequestId": str(round_.randomness_request_id or 0),
        "totalWeight": str(round_.total_weight),
        "winnerCount": len(slots),
        "generatedAt": generated_at.isoformat(),
        "winners": [
            {
                "address": s.identity,
                "prizeTier": s.prize_tier,
                "prizeIndex": s.slot_index,
            }
            for s in slots
        ],
        "merkle": {"root": commitment.root, "leafFormat": WINNER_LEAF_FORMAT},
    }


def verify_participants_document(document: Mapping[str, Any], expected_root: str) -> bool:
    """Recompute the participants root from ``document`` and compare.

    Both the document's own ``merkle.root`` (when present) and the recomputed
    root must equal ``expected_root``.
    """

    participants = document.get("participants") or []
    if not participants:
        return False
    commitment = MerkleCommitment.for_participants(
        [(p["address"], int(p["weight"])) for p in participants]
    )
    expected = normalize_hash(expected_root)
    claimed = (document.get("merkle") or {}).get("root")
    if claimed is not None and normalize_hash(claimed) != expected:
        return False
    return commitment.root == expected


def verify_winners_document(
    document: Mapping[str, Any],
    expected_root: str,
    seed: Optional[int] = None,
    config: Optional[RaffleConfig] = None,
) -> bool:
    """Recompute the winners root from ``document`` and compare.

    Parameters
    ----------
    document : Mapping[str, Any]
        A document produced by :func:`build_winners_document`.
    expected_root : str
        The root committed by the engine.
    seed : Optional[int]
        When given, the document's ``vrfSeed`` must encode this value.
    config : Optional[RaffleConfig]
        Tier distribution the winner list must match. Defaults to
        ``RaffleConfig()``.

    Returns
    -------
    bool
        ``True`` when the document is consistent with the committed root.
    """

    config = config or RaffleConfig()
    winners = document.get("winners") or []
    if len(winners) != config.prize_slot_count:
        return False
    for position, winner in enumerate(winners):
        if int(winner["prizeIndex"]) != position:
            return False
        if int(winner["prizeTier"]) != config.tier_for_slot(position):
            return False
    if seed is not None and document.get("vrfSeed") != _seed_hex(seed):
        return False

    commitment = MerkleCommitment.for_winners(
        [(w["address"], int(w["prizeTier"]), int(w["prizeIndex"])) for w in winners]
    )
    expected = normalize_hash(expected_root)
    claimed = (document.get("merkle") or {}).get("root")
    if claimed is not None and normalize_hash(claimed) != expected:
        return False
    return commitment.root == expected


def write_document(document: Mapping[str, Any], path: "str | Path") -> Path:
    """Write ``document`` as indented JSON and return the path."""

    target = Path(path)
    target.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Wrote {target}")
    return target


def publish_participants_root(
    manager: "RoundManager",
    round_id: int,
    content_ref: str,
    caller: str,
) -> dict[str, Any]:
    """Build the participants document and commit its root.

    ``content_ref`` identifies where the document has been (or will be)
    published; the engine stores it next to the root.

    Returns
    -------
    dict[str, Any]
        The document whose root was committed.
    """

    document = build_participants_document(manager.session, round_id)
    manager.commit_participants_root(
        round_id, document["merkle"]["root"], content_ref, caller
    )
    return document


def publish_winners_root(
    manager: "RoundManager",
    round_id: int,
    content_ref: str,
    caller: str,
) -> dict[str, Any]:
    """Build the winners document and commit its root."""

    document = build_winners_document(manager.session, round_id)
    manager.commit_winners_root(round_id, document["merkle"]["root"], content_ref, caller)
    return document
