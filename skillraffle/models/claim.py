from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .types import UTCDateTime

if TYPE_CHECKING:
    from .round import Round


class WinnerSlot(Base):
    """One prize position of a round and its claim state.

    A slot is written when randomness is fulfilled and moves from unclaimed to
    claimed exactly once.
    """

    __tablename__ = "winner_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    identity: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    prize_tier: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claimed_by: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    round: Mapped["Round"] = relationship(back_populates="slots")

    __table_args__ = (
        UniqueConstraint("round_id", "slot_index", name="uq_winner_slot_index"),
    )

    def __init__(
        self,
        *,
        round_id: int,
        slot_index: int,
        identity: str,
        prize_tier: int,
    ) -> None:
        self.round_id = round_id
        self.slot_index = slot_index
        self.identity = identity
        self.prize_tier = prize_tier
        self.claimed = False

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<WinnerSlot(round_id={self.round_id}, slot_index={self.slot_index}, "
            f"identity={self.identity}, prize_tier={self.prize_tier}, claimed={self.claimed})>"
        )

    @classmethod
    def get(cls, session: Session, round_id: int, slot_index: int) -> Optional["WinnerSlot"]:
        return session.scalar(
            select(cls).where(cls.round_id == round_id, cls.slot_index == slot_index)
        )

    @classmethod
    def for_round(cls, session: Session, round_id: int) -> list["WinnerSlot"]:
        return list(
            session.scalars(
                select(cls).where(cls.round_id == round_id).order_by(cls.slot_index.asc())
            ).all()
        )


__all__ = ["WinnerSlot"]
