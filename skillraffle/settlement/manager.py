"""Round lifecycle orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ..chain.interfaces import PayoutSender, PrizeRegistry, RandomnessOracle
from ..config import RaffleConfig
from ..errors import ConsistencyError, ValidationError
from ..models import (
    FeeSettlement,
    ParticipantEntry,
    RaffleSettings,
    Round,
    RoundStatus,
    WinnerSlot,
)
from ..models.types import utcnow
from .claims import ClaimProcessor
from .encoding import is_zero_hash, normalize_hash, normalize_identity
from .events import record_event
from .guard import SecurityGuard
from .ledger import WagerLedger
from .merkle import MerkleCommitment
from .proofs import ProofOutcome, ProofVerifier
from .randomness import RandomnessGateway
from .treasury import Treasury

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipantStats:
    """Read model of one identity's position in a round."""

    wagered: int
    tickets: int
    weight: int
    has_proof: bool
    proof_verified: bool
    claims: int


@dataclass(frozen=True)
class ClaimStatus:
    """Read model of one prize slot."""

    slot_index: int
    identity: str
    prize_tier: int
    claimed: bool
    claimed_by: Optional[str]


class RoundManager:
    """Aggregate root of the settlement engine.

    The manager owns the session-bound components and is the only place that
    exposes operator lifecycle transitions::

        created -> open -> closed -> snapshot -> randomness_requested -> distributed
                            \\-> refunded (fewer than ``min_tickets`` at close)

    The single backward edge is :meth:`reset_randomness`, which returns a
    timed-out ``randomness_requested`` round to ``snapshot``. Each operation
    validates every precondition before its first write, so a failed call
    leaves no partial state in the session. Commit and rollback are left to
    the caller's transaction.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session holding all keyed stores.
    oracle : RandomnessOracle
        Collaborator issuing randomness requests.
    registry : PrizeRegistry
        Collaborator owning the prize tokens.
    payouts : PayoutSender
        Collaborator releasing withdrawn balances.
    config : Optional[RaffleConfig], default: None
        Economic parameters. ``RaffleConfig()`` when omitted.
    clock : Optional[Callable[[], datetime]], default: None
        Source of aware UTC timestamps; the wall clock when omitted.
    """

    def __init__(
        self,
        session: Session,
        *,
        oracle: RandomnessOracle,
        registry: PrizeRegistry,
        payouts: PayoutSender,
        config: Optional[RaffleConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._session = session
        self.config = config or RaffleConfig()
        self._clock = clock or utcnow
        self.guard = SecurityGuard(session, self._clock)
        self.ledger = WagerLedger(session, self.config, self.guard, self._clock)
        self.proofs = ProofVerifier(session, self.config, self.guard, self._clock)
        self.randomness = RandomnessGateway(
            session, self.config, self.guard, self._clock, oracle
        )
        self.claims = ClaimProcessor(session, self.guard, self._clock, registry)
        self.treasury = Treasury(session, self.config, self.guard, self._clock, payouts)

    @property
    def session(self) -> Session:
        return self._session

    # -------- setup --------
    def bootstrap(
        self,
        *,
        operator: str,
        engine_identity: str,
        oracle_address: str,
        fee_recipient: str,
        prize_registry: str,
        oracle_params: Optional[Mapping[str, Any]] = None,
    ) -> RaffleSettings:
        """Create the settings row. Every reference must be supplied explicitly."""

        if RaffleSettings.load(self._session) is not None:
            raise ConsistencyError("engine settings already exist")
        settings = RaffleSettings(
            operator=normalize_identity(operator),
            engine_identity=normalize_identity(engine_identity),
            oracle_address=normalize_identity(oracle_address),
            fee_recipient=normalize_identity(fee_recipient),
            prize_registry=normalize_identity(prize_registry),
            oracle_params=dict(oracle_params) if oracle_params else None,
        )
        self._session.add(settings)
        record_event(
            self._session,
            "EngineBootstrapped",
            occurred_at=self._clock(),
            actor=settings.operator,
        )
        self._session.flush()
        logger.info(f"Engine bootstrapped for operator {settings.operator}")
        return settings

    # -------- lifecycle --------
    def create_round(self, caller: str) -> Round:
        """Create a new round; the previous one must have reached a terminal state."""

        self.guard.require_lifecycle(caller)
        active = Round.active(self._session)
        if active is not None:
            raise ValidationError(
                f"round {active.id} is still {active.status.value}; finish it first"
            )
        now = self._clock()
        round_ = Round(created_at=now)
        self._session.add(round_)
        self._session.flush()
        record_event(self._session, "RoundCreated", occurred_at=now, round_id=round_.id)
        logger.info(f"Round {round_.id} created")
        self._session.flush()
        return round_

    def open_round(self, round_id: int, caller: str) -> Round:
        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.CREATED)
        now = self._clock()
        round_.start_time = now
        round_.end_time = now + self.config.round_duration
        round_.status = RoundStatus.OPEN
        record_event(
            self._session,
            "RoundOpened",
            occurred_at=now,
            round_id=round_.id,
            start_time=now.isoformat(),
            end_time=round_.end_time.isoformat(),
        )
        logger.info(f"Round {round_.id} opened until {round_.end_time.isoformat()}")
        self._session.flush()
        return round_

    def close_round(self, round_id: int, caller: str) -> Round:
        """Close wagering; below-threshold rounds move straight on to ``refunded``."""

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.OPEN)
        now = self._clock()
        round_.status = RoundStatus.CLOSED
        record_event(self._session, "RoundClosed", occurred_at=now, round_id=round_.id)
        logger.info(f"Round {round_.id} closed with {round_.total_tickets} tickets")

        if round_.total_tickets < self.config.min_tickets:
            round_.status = RoundStatus.REFUNDED
            record_event(
                self._session,
                "RoundRefunded",
                occurred_at=now,
                round_id=round_.id,
                total_tickets=round_.total_tickets,
                min_tickets=self.config.min_tickets,
            )
            self.treasury.accrue_refunds(round_)
        self._session.flush()
        return round_

    def snapshot_round(self, round_id: int, caller: str) -> Round:
        """Freeze the participant weights of a closed round."""

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.CLOSED)
        now = self._clock()
        round_.status = RoundStatus.SNAPSHOT
        round_.snapshot_at = now
        record_event(
            self._session,
            "RoundSnapshot",
            occurred_at=now,
            round_id=round_.id,
            total_tickets=round_.total_tickets,
            total_weight=round_.total_weight,
        )
        self._session.flush()
        return round_

    def commit_participants_root(
        self, round_id: int, root: str, content_ref: str, caller: str
    ) -> Round:
        """Commit the Merkle root of the published participants document.

        The root must be non-zero and equal the root recomputed from the
        frozen snapshot; it can be committed once, in ``snapshot`` only.
        """

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.SNAPSHOT)
        if round_.participants_root:
            raise ConsistencyError(f"round {round_.id} participants root is already committed")
        root = self._validate_root(root, content_ref)
        expected = self.participant_commitment(round_.id).root
        if root != expected:
            raise ConsistencyError("participants root does not match the frozen snapshot")

        round_.participants_root = root
        round_.participants_ref = content_ref
        record_event(
            self._session,
            "ParticipantsRootCommitted",
            occurred_at=self._clock(),
            round_id=round_.id,
            root=root,
            content_ref=content_ref,
        )
        self._session.flush()
        return round_

    def request_entropy(self, round_id: int, caller: str) -> int:
        return self.randomness.request(round_id, caller)

    def fulfill_randomness(
        self, request_id: int, random_value: int, caller: str
    ) -> list[WinnerSlot]:
        return self.randomness.fulfill(request_id, random_value, caller)

    def reset_randomness(self, round_id: int, caller: str) -> None:
        self.randomness.reset(round_id, caller)

    def commit_winners_root(
        self, round_id: int, root: str, content_ref: str, caller: str
    ) -> Round:
        """Commit the Merkle root of the published winners document.

        The stored slots must cover exactly the configured tier distribution
        and the root must equal their recomputed commitment.
        """

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.DISTRIBUTED)
        if round_.winners_root:
            raise ConsistencyError(f"round {round_.id} winners root is already committed")
        root = self._validate_root(root, content_ref)

        slots = WinnerSlot.for_round(self._session, round_.id)
        if len(slots) != self.config.prize_slot_count:
            raise ConsistencyError(
                f"expected {self.config.prize_slot_count} winners, found {len(slots)}"
            )
        tier_counts: dict[int, int] = {}
        for slot in slots:
            tier_counts[slot.prize_tier] = tier_counts.get(slot.prize_tier, 0) + 1
        if tier_counts != self.config.tier_counts():
            raise ConsistencyError("winner tiers do not match the configured distribution")
        if root != self.winner_commitment(round_.id).root:
            raise ConsistencyError("winners root does not match the assigned prize slots")

        round_.winners_root = root
        round_.winners_ref = content_ref
        record_event(
            self._session,
            "WinnersRootCommitted",
            occurred_at=self._clock(),
            round_id=round_.id,
            root=root,
            content_ref=content_ref,
        )
        self._session.flush()
        return round_

    def finalize_round(self, round_id: int, caller: str) -> FeeSettlement:
        """Settle fees of a distributed round; repeated calls are no-ops."""

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.DISTRIBUTED)
        if not round_.winners_root:
            raise ValidationError(f"round {round_.id} has no committed winners root")
        return self.treasury.settle_fees(round_)

    def set_valid_proof(self, round_id: int, proof_hash: str, caller: str) -> Round:
        """Record the accepted puzzle-proof hash of a round (write-once)."""

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.CREATED, RoundStatus.OPEN)
        if round_.valid_proof_hash is not None:
            raise ConsistencyError(f"round {round_.id} already has an accepted proof")
        proof_hash = normalize_hash(proof_hash)
        if is_zero_hash(proof_hash):
            raise ValidationError("accepted proof hash must be non-zero")
        round_.valid_proof_hash = proof_hash
        record_event(
            self._session,
            "ValidProofSet",
            occurred_at=self._clock(),
            round_id=round_.id,
        )
        self._session.flush()
        return round_

    def set_prizes_for_round(
        self, round_id: int, token_ids: Sequence[int], caller: str
    ) -> Round:
        """Assign one prize token per slot (slot ``i`` receives ``token_ids[i]``)."""

        self.guard.require_lifecycle(caller)
        round_ = Round.require(self._session, round_id)
        round_.require_status(
            RoundStatus.CREATED, RoundStatus.OPEN, RoundStatus.CLOSED, RoundStatus.SNAPSHOT
        )
        if round_.prize_token_ids:
            raise ConsistencyError(f"round {round_.id} prizes are already assigned")
        ids = [int(token_id) for token_id in token_ids]
        if len(ids) != self.config.prize_slot_count:
            raise ValidationError(
                f"expected {self.config.prize_slot_count} prize tokens, got {len(ids)}"
            )
        if len(set(ids)) != len(ids) or any(token_id < 0 for token_id in ids):
            raise ValidationError("prize token ids must be unique non-negative integers")
        round_.prize_token_ids = ids
        record_event(
            self._session,
            "PrizesAssigned",
            occurred_at=self._clock(),
            round_id=round_.id,
            token_ids=ids,
        )
        self._session.flush()
        return round_

    # -------- participant entry points --------
    def place_wager(
        self, round_id: int, identity: str, contribution: int, tickets: int
    ) -> ParticipantEntry:
        return self.ledger.commit(round_id, identity, contribution, tickets)

    def submit_proof(
        self, round_id: int, identity: str, proof_value: "str | bytes"
    ) -> ProofOutcome:
        return self.proofs.submit(round_id, identity, proof_value)

    def claim_prize(
        self,
        round_id: int,
        slot_index: int,
        prize_tier: int,
        proof: Sequence["str | bytes"],
        caller: str,
    ) -> WinnerSlot:
        return self.claims.claim(round_id, slot_index, prize_tier, proof, caller)

    def withdraw_refund(self, identity: str) -> int:
        return self.treasury.withdraw(identity)

    # -------- security and configuration --------
    def set_denylist(self, identity: str, listed: bool, caller: str) -> None:
        self.guard.set_denylisted(caller, identity, listed)

    def pause(self, caller: str) -> None:
        self.guard.pause(caller)

    def unpause(self, caller: str) -> None:
        self.guard.unpause(caller)

    def set_emergency_pause(self, paused: bool, caller: str) -> None:
        self.guard.set_emergency_pause(caller, paused)

    def update_randomness_config(
        self,
        oracle_address: str,
        caller: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> RaffleSettings:
        self.guard.require_operator(caller)
        settings = self.guard.settings
        settings.oracle_address = normalize_identity(oracle_address)
        settings.oracle_params = dict(params) if params else None
        record_event(
            self._session,
            "RandomnessConfigUpdated",
            occurred_at=self._clock(),
            actor=settings.operator,
            oracle=settings.oracle_address,
        )
        self._session.flush()
        return settings

    def update_fee_recipient(self, recipient: str, caller: str) -> RaffleSettings:
        self.guard.require_operator(caller)
        settings = self.guard.settings
        settings.fee_recipient = normalize_identity(recipient)
        record_event(
            self._session,
            "FeeRecipientUpdated",
            occurred_at=self._clock(),
            actor=settings.operator,
            recipient=settings.fee_recipient,
        )
        self._session.flush()
        return settings

    def update_prize_registry(self, registry: str, caller: str) -> RaffleSettings:
        self.guard.require_operator(caller)
        settings = self.guard.settings
        settings.prize_registry = normalize_identity(registry)
        record_event(
            self._session,
            "PrizeRegistryUpdated",
            occurred_at=self._clock(),
            actor=settings.operator,
            registry=settings.prize_registry,
        )
        self._session.flush()
        return settings

    # -------- reads --------
    def get_round(self, round_id: int) -> Round:
        return Round.require(self._session, round_id)

    def current_round(self) -> Optional[Round]:
        return Round.latest(self._session)

    def get_participant_stats(self, round_id: int, identity: str) -> ParticipantStats:
        entry = ParticipantEntry.get(self._session, round_id, normalize_identity(identity))
        if entry is None:
            return ParticipantStats(0, 0, 0, False, False, 0)
        return ParticipantStats(
            wagered=entry.wagered,
            tickets=entry.tickets,
            weight=entry.effective_weight,
            has_proof=entry.proof_submitted,
            proof_verified=entry.proof_verified,
            claims=entry.claims_count,
        )

    def get_round_participants(self, round_id: int) -> list[str]:
        return [e.identity for e in ParticipantEntry.for_round(self._session, round_id)]

    def get_round_winners(self, round_id: int) -> list[WinnerSlot]:
        return WinnerSlot.for_round(self._session, round_id)

    def get_refund_balance(self, identity: str) -> int:
        return self.treasury.balance_of(identity)

    def get_claim_status(self, round_id: int, slot_index: int) -> ClaimStatus:
        slot = WinnerSlot.get(self._session, round_id, slot_index)
        if slot is None:
            raise ValidationError(f"round {round_id} has no prize slot {slot_index}")
        return ClaimStatus(
            slot_index=slot.slot_index,
            identity=slot.identity,
            prize_tier=slot.prize_tier,
            claimed=slot.claimed,
            claimed_by=slot.claimed_by,
        )

    def get_participants_data(self, round_id: int) -> tuple[Optional[str], Optional[str]]:
        round_ = Round.require(self._session, round_id)
        return round_.participants_root, round_.participants_ref

    def get_winners_data(self, round_id: int) -> tuple[Optional[str], Optional[str]]:
        round_ = Round.require(self._session, round_id)
        return round_.winners_root, round_.winners_ref

    def participant_commitment(self, round_id: int) -> MerkleCommitment:
        """Merkle commitment over ``(identity, effective_weight)`` in snapshot order."""

        entries = ParticipantEntry.for_round(self._session, round_id)
        if not entries:
            raise ValidationError(f"round {round_id} has no participants")
        return MerkleCommitment.for_participants(
            [(e.identity, e.effective_weight) for e in entries]
        )

    def winner_commitment(self, round_id: int) -> MerkleCommitment:
        """Merkle commitment over ``(identity, tier, slot)`` in slot order."""

        slots = WinnerSlot.for_round(self._session, round_id)
        if not slots:
            raise ValidationError(f"round {round_id} has no winners yet")
        return MerkleCommitment.for_winners(
            [(s.identity, s.prize_tier, s.slot_index) for s in slots]
        )

    # -------- helpers --------
    @staticmethod
    def _validate_root(root: str, content_ref: str) -> str:
        root = normalize_hash(root)
        if is_zero_hash(root):
            raise ValidationError("Merkle root must be non-zero")
        if not isinstance(content_ref, str) or not content_ref.strip():
            raise ValidationError("a content reference is required")
        if len(content_ref) > 255:
            raise ValidationError("content reference must be at most 255 characters")
        return root


__all__ = ["ClaimStatus", "ParticipantStats", "RoundManager"]
