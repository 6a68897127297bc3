"""Fee split, refund accrual and pull-based withdrawal."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ..chain.interfaces import PayoutSender
from ..config import RaffleConfig
from ..models import FeeSettlement, ParticipantEntry, RefundBalance, Round, RoundStatus
from .encoding import normalize_identity
from .events import record_event
from .guard import SecurityGuard

logger = logging.getLogger(__name__)


class Treasury:
    """Moves round funds without pushing value to arbitrary recipients in bulk.

    Refunds and the fee recipient's share are credited to withdrawable
    balances; value only leaves the engine through :meth:`withdraw`, one
    identity at a time, so one failing recipient cannot block the others.
    """

    def __init__(
        self,
        session: Session,
        config: RaffleConfig,
        guard: SecurityGuard,
        clock: Callable[[], datetime],
        payouts: PayoutSender,
    ) -> None:
        self._session = session
        self._config = config
        self._guard = guard
        self._clock = clock
        self._payouts = payouts

    def split(self, total: int) -> tuple[int, int]:
        """Return ``(recipient_amount, retained_amount)`` for ``total`` wei."""

        recipient_amount = total * self._config.fee_percent // 100
        return recipient_amount, total - recipient_amount

    def settle_fees(self, round_: Round) -> FeeSettlement:
        """Run the fee split for a distributed round exactly once.

        Later calls return the existing settlement without moving funds again.
        """

        existing = FeeSettlement.for_round(self._session, round_.id)
        if round_.fees_settled:
            return existing
        round_.require_status(RoundStatus.DISTRIBUTED)

        now = self._clock()
        settings = self._guard.settings
        recipient_amount, retained_amount = self.split(round_.total_wagered)
        settlement = FeeSettlement(
            round_id=round_.id,
            recipient=settings.fee_recipient,
            recipient_amount=recipient_amount,
            retained_amount=retained_amount,
            settled_at=now,
        )
        self._session.add(settlement)
        if recipient_amount:
            balance = RefundBalance.get_or_create(self._session, settings.fee_recipient)
            balance.amount = (balance.amount or 0) + recipient_amount
        settings.next_round_funds += retained_amount
        round_.fees_settled = True
        record_event(
            self._session,
            "FeesDistributed",
            occurred_at=now,
            round_id=round_.id,
            creators_amount=recipient_amount,
            next_round_amount=retained_amount,
        )
        logger.info(
            f"Round {round_.id} fees settled: {recipient_amount} to "
            f"{settings.fee_recipient}, {retained_amount} retained"
        )
        self._session.flush()
        return settlement

    def accrue_refunds(self, round_: Round) -> dict[str, int]:
        """Credit every participant's full contribution to their balance."""

        round_.require_status(RoundStatus.REFUNDED)
        now = self._clock()
        credited: dict[str, int] = {}
        for entry in ParticipantEntry.for_round(self._session, round_.id):
            if entry.wagered <= 0:
                continue
            balance = RefundBalance.get_or_create(self._session, entry.identity)
            balance.amount = (balance.amount or 0) + entry.wagered
            credited[entry.identity] = entry.wagered
            record_event(
                self._session,
                "RefundAccrued",
                occurred_at=now,
                round_id=round_.id,
                actor=entry.identity,
                amount=entry.wagered,
            )
        logger.info(f"Round {round_.id} refunded {len(credited)} participants")
        self._session.flush()
        return credited

    def balance_of(self, identity: str) -> int:
        balance = RefundBalance.get(self._session, normalize_identity(identity))
        return balance.amount if balance is not None else 0

    def withdraw(self, identity: str) -> int:
        """Release ``identity``'s whole withdrawable balance and return it.

        The balance is zeroed before the payout is sent. If the payout raises,
        the balance is restored and the error propagates. A zero balance
        returns ``0`` without contacting the payout service.
        """

        identity = normalize_identity(identity)
        self._guard.require_not_paused()
        balance = RefundBalance.get(self._session, identity)
        amount = balance.amount if balance is not None else 0
        if amount == 0:
            return 0

        balance.amount = 0
        self._session.flush()
        try:
            self._payouts.send(identity, amount)
        except Exception:
            balance.amount = amount
            self._session.flush()
            logger.error(f"Payout of {amount} wei to {identity} failed; balance restored")
            raise

        record_event(
            self._session,
            "RefundWithdrawn",
            occurred_at=self._clock(),
            actor=identity,
            amount=amount,
        )
        logger.info(f"{identity} withdrew {amount} wei")
        self._session.flush()
        return amount


__all__ = ["Treasury"]
