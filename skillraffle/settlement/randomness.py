"""Randomness requests, asynchronous fulfilment and timeout recovery."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ..chain.interfaces import RandomnessOracle
from ..config import RaffleConfig
from ..errors import ConfigurationError, ConsistencyError, TimingError, ValidationError
from ..models import ParticipantEntry, Round, RoundStatus, WinnerSlot
from .encoding import normalize_identity
from .events import record_event
from .guard import SecurityGuard
from .selection import select_winners

logger = logging.getLogger(__name__)


class RandomnessGateway:
    """Correlates oracle requests with rounds and turns fulfilments into winners.

    Request and fulfilment are separate calls linked only by the request id.
    The engine never retries on its own: a request that times out stays
    pending until the operator calls :meth:`reset`.
    """

    def __init__(
        self,
        session: Session,
        config: RaffleConfig,
        guard: SecurityGuard,
        clock: Callable[[], datetime],
        oracle: RandomnessOracle,
    ) -> None:
        self._session = session
        self._config = config
        self._guard = guard
        self._clock = clock
        self._oracle = oracle

    def request(self, round_id: int, caller: str) -> int:
        """Request entropy for a snapshotted round and return the request id.

        Raises
        ------
        AuthorizationError
            Caller is not the operator, or the engine is paused.
        ValidationError
            Round not in ``snapshot``, has no tickets, or has no committed
            participants root.
        TimingError
            The previous request was issued less than
            ``config.min_request_interval`` ago.
        ConfigurationError
            No oracle address is configured.
        """

        self._guard.require_lifecycle(caller)
        now = self._clock()
        settings = self._guard.settings
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.SNAPSHOT)
        if round_.total_tickets <= 0:
            raise ValidationError(f"round {round_.id} has no tickets")
        if not round_.participants_root:
            raise ValidationError(f"round {round_.id} has no committed participants root")
        last = settings.last_randomness_request_at
        if last is not None and now - last < self._config.min_request_interval:
            raise TimingError(
                "randomness was requested too recently; wait "
                f"{self._config.min_request_interval - (now - last)}"
            )
        if not settings.oracle_address:
            raise ConfigurationError("no randomness oracle is configured")

        request_id = int(
            self._oracle.request_randomness(
                settings.oracle_address, round_.id, settings.oracle_params
            )
        )
        if request_id <= 0:
            raise ConsistencyError(f"oracle returned an invalid request id {request_id}")

        round_.randomness_request_id = request_id
        round_.randomness_requested_at = now
        round_.status = RoundStatus.RANDOMNESS_REQUESTED
        settings.last_randomness_request_at = now
        record_event(
            self._session,
            "RandomnessRequested",
            occurred_at=now,
            round_id=round_.id,
            actor=settings.operator,
            request_id=request_id,
        )
        logger.info(f"Randomness request {request_id} issued for round {round_.id}")
        self._session.flush()
        return request_id

    def fulfill(self, request_id: int, random_value: int, caller: str) -> list[WinnerSlot]:
        """Accept the oracle's answer to ``request_id`` and assign prize slots.

        Raises
        ------
        AuthorizationError
            Caller is not the configured oracle, or the engine is paused.
        ConsistencyError
            Unknown request id, or its round is no longer awaiting it.
        ValidationError
            ``random_value`` is zero.
        TimingError
            The fulfilment arrived after ``config.randomness_timeout``.
        """

        self._guard.require_oracle(caller)
        now = self._clock()
        round_ = Round.get_by_request_id(self._session, int(request_id))
        if round_ is None:
            raise ConsistencyError(f"unknown randomness request id {request_id}")
        if (
            round_.status != RoundStatus.RANDOMNESS_REQUESTED
            or round_.randomness_request_id != int(request_id)
        ):
            raise ConsistencyError(
                f"round {round_.id} is not awaiting randomness request {request_id}"
            )
        if not 0 < int(random_value) < 1 << 256:
            raise ValidationError("random value must be a non-zero unsigned 256-bit integer")
        requested_at = round_.randomness_requested_at
        if requested_at is None or now - requested_at > self._config.randomness_timeout:
            logger.warning(
                f"Late randomness fulfilment for round {round_.id} (request {request_id})"
            )
            raise TimingError(f"randomness request {request_id} has timed out")

        entries = ParticipantEntry.for_round(self._session, round_.id)
        assignments = select_winners(
            int(random_value),
            [(entry.identity, entry.effective_weight) for entry in entries],
            self._config,
        )
        slots = [
            WinnerSlot(
                round_id=round_.id,
                slot_index=a.slot_index,
                identity=a.identity,
                prize_tier=a.prize_tier,
            )
            for a in assignments
        ]
        self._session.add_all(slots)

        round_.random_seed = int(random_value)
        round_.status = RoundStatus.DISTRIBUTED
        round_.distributed_at = now
        record_event(
            self._session,
            "RandomnessFulfilled",
            occurred_at=now,
            round_id=round_.id,
            actor=normalize_identity(caller),
            request_id=int(request_id),
            random_value=int(random_value),
        )
        record_event(
            self._session,
            "PrizesDistributed",
            occurred_at=now,
            round_id=round_.id,
            winner_count=len(slots),
        )
        logger.info(f"Round {round_.id} distributed {len(slots)} prize slots")
        self._session.flush()
        return slots

    def reset(self, round_id: int, caller: str) -> None:
        """Return a timed-out round to ``snapshot`` so a new request can be made."""

        self._guard.require_lifecycle(caller)
        now = self._clock()
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.RANDOMNESS_REQUESTED)
        requested_at = round_.randomness_requested_at
        if requested_at is not None and now - requested_at <= self._config.randomness_timeout:
            raise TimingError(
                f"randomness request for round {round_.id} has not timed out yet"
            )

        stale_request = round_.randomness_request_id
        round_.randomness_request_id = None
        round_.randomness_requested_at = None
        round_.status = RoundStatus.SNAPSHOT
        record_event(
            self._session,
            "RandomnessReset",
            occurred_at=now,
            round_id=round_.id,
            actor=self._guard.settings.operator,
            request_id=stale_request,
        )
        logger.warning(
            f"Randomness request {stale_request} for round {round_.id} timed out; reset"
        )
        self._session.flush()


__all__ = ["RandomnessGateway"]
