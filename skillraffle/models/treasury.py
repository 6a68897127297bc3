from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .types import Uint256, UTCDateTime, utcnow


class RefundBalance(Base):
    """Withdrawable balance of one identity, accumulated across rounds.

    Credited by refunds of failed rounds and by the fee recipient's share of
    settled rounds; drained by pull-based withdrawal.
    """

    __tablename__ = "refund_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(42), nullable=False, unique=True)
    amount: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __init__(self, identity: str, amount: int = 0) -> None:
        self.identity = identity
        self.amount = amount

    def __repr__(self) -> str:
        return f"<RefundBalance(identity={self.identity}, amount={self.amount})>"

    @classmethod
    def get(cls, session: Session, identity: str) -> Optional["RefundBalance"]:
        return session.scalar(select(cls).where(cls.identity == identity))

    @classmethod
    def get_or_create(cls, session: Session, identity: str) -> "RefundBalance":
        balance = cls.get(session, identity)
        if balance is None:
            balance = cls(identity=identity)
            session.add(balance)
        return balance


class FeeSettlement(Base):
    """Outcome of the fee split for a settled round (at most one per round)."""

    __tablename__ = "fee_settlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="RESTRICT"), nullable=False, unique=True
    )
    recipient: Mapped[str] = mapped_column(String(42), nullable=False)
    recipient_amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    retained_amount: Mapped[int] = mapped_column(Uint256, nullable=False)
    settled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def __init__(
        self,
        *,
        round_id: int,
        recipient: str,
        recipient_amount: int,
        retained_amount: int,
        settled_at: datetime,
    ) -> None:
        self.round_id = round_id
        self.recipient = recipient
        self.recipient_amount = recipient_amount
        self.retained_amount = retained_amount
        self.settled_at = settled_at

    @classmethod
    def for_round(cls, session: Session, round_id: int) -> Optional["FeeSettlement"]:
        return session.scalar(select(cls).where(cls.round_id == round_id))


__all__ = ["RefundBalance", "FeeSettlement"]
