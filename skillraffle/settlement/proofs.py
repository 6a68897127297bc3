"""One-shot puzzle-proof verification and the weight bonus it grants."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ..config import RaffleConfig
from ..errors import ConsistencyError, ValidationError
from ..models import ParticipantEntry, ProofSubmission, Round
from .encoding import (
    ZERO_HASH,
    empty_input_hash,
    identity_hash,
    normalize_hash,
    normalize_identity,
)
from .events import record_event
from .guard import SecurityGuard
from .ledger import require_open_for_entries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofOutcome:
    """Observable result of a proof submission."""

    verified: bool
    effective_weight: int
    weight_delta: int


def validate_proof_value(identity: str, proof_value: "str | bytes") -> str:
    """Normalize ``proof_value`` and reject degenerate submissions.

    The zero value, the hash of empty input and the hash of the submitting
    identity are refused outright since they are trivially guessable.
    """

    proof_hash = normalize_hash(proof_value)
    if proof_hash == ZERO_HASH:
        raise ValidationError("proof value must not be zero")
    if proof_hash == empty_input_hash():
        raise ValidationError("proof value must not be the hash of empty input")
    if proof_hash == identity_hash(identity):
        raise ValidationError("proof value must not be the hash of the submitter")
    return proof_hash


class ProofVerifier:
    """Accepts at most one proof attempt per participant per round."""

    def __init__(
        self,
        session: Session,
        config: RaffleConfig,
        guard: SecurityGuard,
        clock: Callable[[], datetime],
    ) -> None:
        self._session = session
        self._config = config
        self._guard = guard
        self._clock = clock

    def submit(
        self, round_id: int, identity: str, proof_value: "str | bytes"
    ) -> ProofOutcome:
        """Consume ``identity``'s single proof attempt for ``round_id``.

        A matching proof inflates the participant's effective weight by the
        configured bonus and moves the round's aggregate weight by the same
        delta. A non-matching proof still consumes the attempt.

        Raises
        ------
        AuthorizationError
            Engine paused or ``identity`` denylisted.
        ValidationError
            Round not open, no wager yet, or a degenerate proof value.
        TimingError
            The round's end time has passed.
        ConsistencyError
            A proof was already submitted for this round.
        """

        identity = normalize_identity(identity)
        now = self._clock()
        self._guard.require_participant(identity)
        round_ = Round.require(self._session, round_id)
        require_open_for_entries(round_, now)

        entry = ParticipantEntry.get(self._session, round_.id, identity)
        if entry is None or entry.tickets == 0:
            raise ValidationError(f"{identity} has no wager in round {round_.id}")
        if entry.proof_submitted or ProofSubmission.get(self._session, round_.id, identity):
            raise ConsistencyError(f"{identity} already submitted a proof for round {round_.id}")
        proof_hash = validate_proof_value(identity, proof_value)

        verified = round_.valid_proof_hash is not None and proof_hash == round_.valid_proof_hash
        self._session.add(
            ProofSubmission(
                round_id=round_.id,
                identity=identity,
                proof_hash=proof_hash,
                verified=verified,
                submitted_at=now,
            )
        )
        entry.proof_submitted = True

        delta = 0
        if verified:
            previous_weight = entry.effective_weight
            entry.proof_verified = True
            entry.effective_weight = self._config.apply_bonus(entry.base_weight)
            entry.bonus_weight = entry.effective_weight - entry.base_weight
            delta = entry.effective_weight - previous_weight
            round_.total_weight += delta
            record_event(
                self._session,
                "ProofSubmitted",
                occurred_at=now,
                round_id=round_.id,
                actor=identity,
                new_weight=entry.effective_weight,
            )
            logger.info(f"Proof verified for {identity} in round {round_.id}")
        else:
            record_event(
                self._session,
                "ProofRejected",
                occurred_at=now,
                round_id=round_.id,
                actor=identity,
            )
            logger.info(f"Proof rejected for {identity} in round {round_.id}")

        self._session.flush()
        return ProofOutcome(
            verified=verified,
            effective_weight=entry.effective_weight,
            weight_delta=delta,
        )


__all__ = ["ProofOutcome", "ProofVerifier", "validate_proof_value"]
