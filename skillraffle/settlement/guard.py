"""Authorization, denylist and pause checks shared by all entry points."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, ConfigurationError
from ..models.security import DenylistEntry, RaffleSettings
from .encoding import normalize_identity
from .events import record_event

logger = logging.getLogger(__name__)


class SecurityGuard:
    """Orthogonal checks invoked at the top of each state-changing operation.

    The general pause blocks every state-changing entry point for operators
    and participants alike. The emergency pause blocks operator lifecycle
    transitions and the participant calls that bring new value or weight into
    a round (wagers and proof submissions); claims, refund withdrawals and
    randomness fulfilment stay available so that value can still leave the
    engine. Guard administration itself (pause flags, denylist, references)
    is operator-only and never blocked by a pause.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime]) -> None:
        self._session = session
        self._clock = clock

    @property
    def settings(self) -> RaffleSettings:
        settings = RaffleSettings.load(self._session)
        if settings is None:
            raise ConfigurationError(
                "Engine settings are missing; call RoundManager.bootstrap first"
            )
        return settings

    # -------- checks --------
    def require_operator(self, caller: str) -> None:
        if normalize_identity(caller) != self.settings.operator:
            logger.warning(f"Rejected operator-only call from {caller}")
            raise AuthorizationError("caller is not the operator")

    def require_not_paused(self) -> None:
        if self.settings.paused:
            raise AuthorizationError("engine is paused")

    def require_lifecycle(self, caller: str) -> None:
        """Operator-only lifecycle call: operator, not paused, not emergency-paused."""
        self.require_operator(caller)
        self.require_not_paused()
        if self.settings.emergency_paused:
            raise AuthorizationError("engine is emergency-paused")

    def require_participant(self, identity: str) -> None:
        """Wager or proof submission by ``identity``."""
        self.require_not_paused()
        if self.settings.emergency_paused:
            raise AuthorizationError("engine is emergency-paused")
        if DenylistEntry.is_listed(self._session, identity):
            logger.warning(f"Rejected participant action from denylisted {identity}")
            raise AuthorizationError(f"{identity} is denylisted")

    def require_oracle(self, caller: str) -> None:
        self.require_not_paused()
        if normalize_identity(caller) != self.settings.oracle_address:
            logger.warning(f"Rejected randomness fulfilment from {caller}")
            raise AuthorizationError("caller is not the configured randomness oracle")

    def is_denylisted(self, identity: str) -> bool:
        return DenylistEntry.is_listed(self._session, normalize_identity(identity))

    # -------- administration --------
    def set_denylisted(self, caller: str, identity: str, listed: bool) -> None:
        self.require_operator(caller)
        identity = normalize_identity(identity)
        entry = DenylistEntry.get(self._session, identity)
        if entry is None:
            entry = DenylistEntry(identity=identity, listed=listed)
            self._session.add(entry)
        else:
            entry.listed = listed
        record_event(
            self._session,
            "AddressDenylisted",
            occurred_at=self._clock(),
            actor=self.settings.operator,
            identity=identity,
            status=listed,
        )
        logger.info(f"Denylist status of {identity} set to {listed}")

    def pause(self, caller: str) -> None:
        self.require_operator(caller)
        self.settings.paused = True
        record_event(self._session, "Paused", occurred_at=self._clock(), actor=self.settings.operator)
        logger.info("Engine paused")

    def unpause(self, caller: str) -> None:
        self.require_operator(caller)
        self.settings.paused = False
        record_event(self._session, "Unpaused", occurred_at=self._clock(), actor=self.settings.operator)
        logger.info("Engine unpaused")

    def set_emergency_pause(self, caller: str, paused: bool) -> None:
        self.require_operator(caller)
        self.settings.emergency_paused = paused
        record_event(
            self._session,
            "EmergencyPauseToggled",
            occurred_at=self._clock(),
            actor=self.settings.operator,
            paused=paused,
        )
        logger.info(f"Emergency pause set to {paused}")


__all__ = ["SecurityGuard"]
