"""Proof-checked, exactly-once prize claims."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from ..chain.interfaces import PrizeRegistry
from ..errors import ConsistencyError, ValidationError
from ..models import ParticipantEntry, Round, RoundStatus, WinnerSlot
from . import merkle
from .encoding import normalize_identity
from .events import record_event
from .guard import SecurityGuard

logger = logging.getLogger(__name__)


class ClaimProcessor:
    """Verifies winner proofs against the committed root and hands out prizes."""

    def __init__(
        self,
        session: Session,
        guard: SecurityGuard,
        clock: Callable[[], datetime],
        registry: PrizeRegistry,
    ) -> None:
        self._session = session
        self._guard = guard
        self._clock = clock
        self._registry = registry

    def claim(
        self,
        round_id: int,
        slot_index: int,
        declared_tier: int,
        proof: Sequence["str | bytes"],
        caller: str,
    ) -> WinnerSlot:
        """Claim prize slot ``slot_index`` of ``round_id`` for ``caller``.

        Parameters
        ----------
        round_id : int
            A distributed round with a committed winners root.
        slot_index : int
            Slot being claimed.
        declared_tier : int
            Prize tier the caller asserts for the slot; part of the leaf.
        proof : Sequence[str | bytes]
            Sibling path for ``winner_leaf(caller, declared_tier, slot_index)``.
        caller : str
            Claimant address; receives the prize token.

        Returns
        -------
        WinnerSlot
            The slot, now marked claimed by ``caller``.

        Raises
        ------
        ValidationError
            Round not distributed, winners root not committed, unknown slot.
        ConsistencyError
            Slot already claimed, proof rejected, claim entitlement used up,
            or the engine does not hold the prize token.
        """

        caller = normalize_identity(caller)
        self._guard.require_not_paused()
        settings = self._guard.settings
        round_ = Round.require(self._session, round_id)
        round_.require_status(RoundStatus.DISTRIBUTED)
        if not round_.winners_root:
            raise ValidationError(f"round {round_.id} has no committed winners root")

        slot = WinnerSlot.get(self._session, round_.id, slot_index)
        if slot is None:
            raise ValidationError(f"round {round_.id} has no prize slot {slot_index}")
        if slot.claimed:
            raise ConsistencyError(f"prize slot {slot_index} of round {round_.id} is already claimed")

        if not 0 <= declared_tier <= 255:
            raise ValidationError("prize tier must fit in uint8")
        leaf = merkle.winner_leaf(caller, declared_tier, slot_index)
        if not merkle.verify(proof, round_.winners_root, leaf):
            logger.warning(f"Rejected winner proof from {caller} for slot {slot_index}")
            raise ConsistencyError("winner proof does not match the committed root")

        entry = ParticipantEntry.get(self._session, round_.id, caller)
        tickets = entry.tickets if entry is not None else 0
        claimed = entry.claims_count if entry is not None else 0
        if claimed >= tickets:
            raise ConsistencyError(
                f"{caller} has used all {tickets} claims allowed by their tickets"
            )

        token_ids = round_.prize_token_ids or []
        if slot_index >= len(token_ids):
            raise ConsistencyError(f"no prize token assigned to slot {slot_index}")
        token_id = int(token_ids[slot_index])
        owner = self._registry.owner_of(settings.prize_registry, token_id)
        if normalize_identity(owner) != settings.engine_identity:
            raise ConsistencyError(f"prize token {token_id} is not held by the engine")

        now = self._clock()
        slot.claimed = True
        slot.claimed_by = caller
        slot.claimed_at = now
        entry.claims_count = claimed + 1
        self._session.flush()
        try:
            self._registry.transfer(
                settings.prize_registry, settings.engine_identity, caller, token_id
            )
        except Exception:
            slot.claimed = False
            slot.claimed_by = None
            slot.claimed_at = None
            entry.claims_count = claimed
            self._session.flush()
            logger.error(f"Transfer of prize token {token_id} to {caller} failed")
            raise

        record_event(
            self._session,
            "PrizeClaimed",
            occurred_at=now,
            round_id=round_.id,
            actor=caller,
            slot_index=slot_index,
            prize_tier=declared_tier,
            token_id=token_id,
        )
        logger.info(f"{caller} claimed slot {slot_index} of round {round_.id}")
        self._session.flush()
        return slot


__all__ = ["ClaimProcessor"]
