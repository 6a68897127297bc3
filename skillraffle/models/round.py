"""Round records and their lifecycle states."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    Integer,
    String,
    Index,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..errors import ValidationError
from .base import Base
from .types import Uint256, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .audit import RoundEvent
    from .claim import WinnerSlot
    from .participant import ParticipantEntry, ProofSubmission


class RoundStatus(str, enum.Enum):
    """Lifecycle states of a round in strict forward order."""

    CREATED = "created"
    OPEN = "open"
    CLOSED = "closed"
    SNAPSHOT = "snapshot"
    RANDOMNESS_REQUESTED = "randomness_requested"
    DISTRIBUTED = "distributed"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (RoundStatus.DISTRIBUTED, RoundStatus.REFUNDED)


TERMINAL_STATUSES = (RoundStatus.DISTRIBUTED, RoundStatus.REFUNDED)


class Round(Base):
    """One complete raffle cycle, from opening for wagers to settlement."""

    __tablename__ = "rounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    """Primary key; doubles as the public round id."""

    status: Mapped[RoundStatus] = mapped_column(
        Enum(
            RoundStatus,
            name="round_status",
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=RoundStatus.CREATED,
    )
    """Current lifecycle state."""

    start_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    """Set once when the round opens; immutable afterwards."""

    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    """Wagers and proofs are rejected at or after this instant."""

    total_tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Aggregate ticket count across all participants."""

    total_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Aggregate effective weight; never below ``total_tickets``."""

    total_wagered: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    """Aggregate contribution in wei."""

    participant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Number of distinct identities registered in the round."""

    valid_proof_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    """Accepted puzzle-proof hash; ``None`` means no proof can match."""

    randomness_request_id: Mapped[Optional[int]] = mapped_column(
        Uint256, nullable=True, index=True
    )
    """Correlation id returned by the randomness oracle for the open request."""

    randomness_requested_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )
    """When the open randomness request was issued."""

    random_seed: Mapped[Optional[int]] = mapped_column(Uint256, nullable=True)
    """Fulfilled random value kept for off-engine audit of the draw."""

    participants_root: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    """Merkle root of the frozen participant snapshot."""

    participants_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Content identifier of the published participants document."""

    winners_root: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    """Merkle root of the winner list."""

    winners_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Content identifier of the published winners document."""

    prize_token_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    """Prize token id for each slot, indexed by slot."""

    fees_settled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Flips to ``True`` exactly once when the fee split runs."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )
    snapshot_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime, nullable=True
    )

    entries: Mapped[list["ParticipantEntry"]] = relationship(
        back_populates="round",
        order_by="ParticipantEntry.position",
    )
    """Participant records in registration order."""

    proofs: Mapped[list["ProofSubmission"]] = relationship(back_populates="round")

    slots: Mapped[list["WinnerSlot"]] = relationship(
        back_populates="round",
        order_by="WinnerSlot.slot_index",
    )
    """Winner assignments in slot order; empty until randomness is fulfilled."""

    events: Mapped[list["RoundEvent"]] = relationship(
        back_populates="round",
        order_by="RoundEvent.id",
    )

    __table_args__ = (Index("ix_rounds_status", "status"),)

    def __init__(
        self,
        *,
        status: RoundStatus = RoundStatus.CREATED,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.status = status
        self.total_tickets = 0
        self.total_weight = 0
        self.total_wagered = 0
        self.participant_count = 0
        self.fees_settled = False
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Round(id={self.id}, status={self.status.value}, "
            f"tickets={self.total_tickets}, weight={self.total_weight})>"
        )

    @classmethod
    def require(cls, session: Session, round_id: int) -> "Round":
        """Return round ``round_id`` or raise :class:`ValidationError`."""

        round_ = session.get(cls, round_id)
        if round_ is None:
            raise ValidationError(f"round {round_id} does not exist")
        return round_

    def require_status(self, *expected: RoundStatus) -> None:
        """Raise :class:`ValidationError` unless the round is in ``expected``."""

        if self.status not in expected:
            names = ", ".join(s.value for s in expected)
            raise ValidationError(
                f"round {self.id} is {self.status.value}; expected {names}"
            )

    @classmethod
    def active(cls, session: Session) -> Optional["Round"]:
        """Return the single round that has not reached a terminal state."""

        return session.scalar(
            select(cls)
            .where(cls.status.not_in(TERMINAL_STATUSES))
            .order_by(cls.id.desc())
        )

    @classmethod
    def latest(cls, session: Session) -> Optional["Round"]:
        """Return the most recently created round, whatever its state."""

        return session.scalar(select(cls).order_by(cls.id.desc()))

    @classmethod
    def get_by_request_id(cls, session: Session, request_id: int) -> Optional["Round"]:
        """Return the round currently awaiting ``request_id``, if any."""

        return session.scalar(
            select(cls).where(
                cls.randomness_request_id == request_id,
                cls.status == RoundStatus.RANDOMNESS_REQUESTED,
            )
        )


__all__ = ["Round", "RoundStatus", "TERMINAL_STATUSES"]
