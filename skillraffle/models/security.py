"""Owner-managed engine settings and the denylist."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .types import Uint256, UTCDateTime, utcnow

SETTINGS_ROW_ID = 1


class RaffleSettings(Base):
    """Singleton row holding the mutable references and guard flags."""

    __tablename__ = "raffle_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    """Always :data:`SETTINGS_ROW_ID`."""

    operator: Mapped[str] = mapped_column(String(42), nullable=False)
    """Only identity allowed to call lifecycle and configuration operations."""

    engine_identity: Mapped[str] = mapped_column(String(42), nullable=False)
    """Address under which the engine holds prize tokens and funds."""

    oracle_address: Mapped[str] = mapped_column(String(42), nullable=False)
    """Only identity allowed to deliver randomness fulfilments."""

    oracle_params: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    """Opaque oracle parameters (key hash, subscription id, ...)."""

    fee_recipient: Mapped[str] = mapped_column(String(42), nullable=False)
    """Receives the fee share of every settled round."""

    prize_registry: Mapped[str] = mapped_column(String(42), nullable=False)
    """Address of the prize-token registry."""

    paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """General pause: blocks every state-changing entry point."""

    emergency_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Emergency pause: blocks lifecycle calls and new wagers or proofs."""

    last_randomness_request_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    """Timestamp of the latest randomness request across all rounds."""

    next_round_funds: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    """Retained share of settled rounds earmarked as subsidy for later rounds."""

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __init__(
        self,
        *,
        operator: str,
        engine_identity: str,
        oracle_address: str,
        fee_recipient: str,
        prize_registry: str,
        oracle_params: Optional[dict] = None,
    ) -> None:
        self.id = SETTINGS_ROW_ID
        self.operator = operator
        self.engine_identity = engine_identity
        self.oracle_address = oracle_address
        self.oracle_params = oracle_params
        self.fee_recipient = fee_recipient
        self.prize_registry = prize_registry
        self.paused = False
        self.emergency_paused = False
        self.next_round_funds = 0

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<RaffleSettings(operator={self.operator}, paused={self.paused}, "
            f"emergency_paused={self.emergency_paused})>"
        )

    @classmethod
    def load(cls, session: Session) -> Optional["RaffleSettings"]:
        return session.get(cls, SETTINGS_ROW_ID)


class DenylistEntry(Base):
    """Denylist flag for one identity; toggled rather than deleted."""

    __tablename__ = "denylist_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(42), nullable=False, unique=True)
    listed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __init__(self, identity: str, listed: bool = True) -> None:
        self.identity = identity
        self.listed = listed

    @classmethod
    def is_listed(cls, session: Session, identity: str) -> bool:
        listed = session.scalar(select(cls.listed).where(cls.identity == identity))
        return bool(listed)

    @classmethod
    def get(cls, session: Session, identity: str) -> Optional["DenylistEntry"]:
        return session.scalar(select(cls).where(cls.identity == identity))


__all__ = ["RaffleSettings", "DenylistEntry", "SETTINGS_ROW_ID"]
