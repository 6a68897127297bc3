"""Per-round wager accounting."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ..config import RaffleConfig
from ..errors import CircuitBreakerError, TimingError, ValidationError
from ..models import ParticipantEntry, Round, RoundStatus
from .encoding import normalize_identity
from .events import record_event
from .guard import SecurityGuard

logger = logging.getLogger(__name__)


def require_open_for_entries(round_: Round, now: datetime) -> None:
    """Raise unless ``round_`` is open and its end time has not passed."""

    round_.require_status(RoundStatus.OPEN)
    if round_.end_time is None or now >= round_.end_time:
        raise TimingError(f"round {round_.id} has ended")


class WagerLedger:
    """Records ticket purchases and keeps round aggregates in step."""

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

    def commit(
        self,
        round_id: int,
        identity: str,
        contribution: int,
        declared_tickets: int,
    ) -> ParticipantEntry:
        """Buy ``declared_tickets`` for ``identity`` in an open round.

        Parameters
        ----------
        round_id : int
            Target round; must be open and not past its end time.
        identity : str
            Participant address.
        contribution : int
            Value sent in wei. Must equal the configured price of the
            ``declared_tickets`` bundle exactly.
        declared_tickets : int
            Bundle size being bought.

        Returns
        -------
        ParticipantEntry
            The participant's updated entry.

        Raises
        ------
        AuthorizationError
            Engine paused or ``identity`` denylisted.
        ValidationError
            Wrong round state, unknown bundle, mismatched price, or wallet cap
            exceeded.
        TimingError
            The round's end time has passed.
        CircuitBreakerError
            Aggregate wager or participant caps would be exceeded.
        """

        identity = normalize_identity(identity)
        now = self._clock()
        self._guard.require_participant(identity)
        round_ = Round.require(self._session, round_id)
        require_open_for_entries(round_, now)

        price = self._config.bundle_price(declared_tickets)
        if price is None:
            raise ValidationError(f"{declared_tickets} tickets is not an offered bundle")
        if contribution != price:
            raise ValidationError(
                f"a {declared_tickets}-ticket bundle costs exactly {price} wei, got {contribution}"
            )

        entry = ParticipantEntry.get(self._session, round_.id, identity)
        previously_wagered = entry.wagered if entry is not None else 0
        if previously_wagered + contribution > self._config.wallet_cap:
            raise ValidationError(
                f"{identity} would exceed the per-wallet cap of {self._config.wallet_cap} wei"
            )
        if round_.total_wagered + contribution > self._config.max_total_wager:
            self._trip_breaker(round_, "max total wager reached")
        if entry is None and round_.participant_count >= self._config.max_participants:
            self._trip_breaker(round_, "max participants reached")

        if entry is None:
            entry = ParticipantEntry(
                round_id=round_.id,
                identity=identity,
                position=round_.participant_count,
            )
            self._session.add(entry)
            round_.participant_count += 1

        previous_weight = entry.effective_weight
        entry.wagered = previously_wagered + contribution
        entry.tickets += declared_tickets
        entry.base_weight += declared_tickets
        if entry.proof_verified:
            entry.effective_weight = self._config.apply_bonus(entry.base_weight)
        else:
            entry.effective_weight = entry.base_weight
        entry.bonus_weight = entry.effective_weight - entry.base_weight

        round_.total_tickets += declared_tickets
        round_.total_weight += entry.effective_weight - previous_weight
        round_.total_wagered += contribution

        record_event(
            self._session,
            "WagerPlaced",
            occurred_at=now,
            round_id=round_.id,
            actor=identity,
            amount=contribution,
            tickets=declared_tickets,
            weight=entry.effective_weight,
        )
        logger.debug(
            f"{identity} bought {declared_tickets} tickets in round {round_.id}"
        )
        self._session.flush()
        return entry

    def _trip_breaker(self, round_: Round, reason: str) -> None:
        logger.warning(f"Circuit breaker triggered for round {round_.id}: {reason}")
        raise CircuitBreakerError(reason)


__all__ = ["WagerLedger", "require_open_for_entries"]
