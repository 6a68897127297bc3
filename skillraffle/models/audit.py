from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .types import UTCDateTime

if TYPE_CHECKING:
    from .round import Round


class RoundEvent(Base):
    """Append-only audit trail entry, written once per state transition."""

    __tablename__ = "round_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("rounds.id", ondelete="RESTRICT"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    round: Mapped[Optional["Round"]] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_round_events_round_action", "round_id", "action"),
    )

    def __init__(
        self,
        *,
        action: str,
        occurred_at: datetime,
        round_id: Optional[int] = None,
        actor: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.action = action
        self.occurred_at = occurred_at
        self.round_id = round_id
        self.actor = actor
        self.details = details

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<RoundEvent(id={self.id}, round_id={self.round_id}, action={self.action})>"

    @classmethod
    def for_round(cls, session: Session, round_id: int) -> list["RoundEvent"]:
        return list(
            session.scalars(
                select(cls).where(cls.round_id == round_id).order_by(cls.id.asc())
            ).all()
        )

    @classmethod
    def actions(cls, session: Session, round_id: Optional[int] = None) -> list[str]:
        """Return event action names in insertion order, optionally per round."""

        stmt = select(cls.action).order_by(cls.id.asc())
        if round_id is not None:
            stmt = stmt.where(cls.round_id == round_id)
        return list(session.scalars(stmt).all())


__all__ = ["RoundEvent"]
