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
from .types import Uint256, UTCDateTime, utcnow

if TYPE_CHECKING:
    from .round import Round


class ParticipantEntry(Base):
    """Per-round wager record of one identity.

    ``effective_weight`` equals ``base_weight`` until a matching proof is
    verified, after which it is ``base_weight`` inflated by the proof bonus.
    Frozen once the round leaves the ``open`` state.
    """

    def __init__(self, round_id: int, identity: str, position: int) -> None:
        """Create an empty entry.

        Parameters
        ----------
        round_id : int
            Round the identity is wagering in.
        identity : str
            Checksummed participant address.
        position : int
            Zero-based registration order inside the round. The weighted walk
            and both Merkle trees use this order.
        """

        self.round_id = round_id
        self.identity = identity
        self.position = position
        self.wagered = 0
        self.tickets = 0
        self.base_weight = 0
        self.bonus_weight = 0
        self.effective_weight = 0
        self.proof_submitted = False
        self.proof_verified = False
        self.claims_count = 0

    __tablename__ = "round_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    identity: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    wagered: Mapped[int] = mapped_column(Uint256, nullable=False, default=0)
    tickets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    base_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    effective_weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    proof_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proof_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    claims_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow
    )

    round: Mapped["Round"] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("round_id", "identity", name="uq_round_entry_identity"),
        UniqueConstraint("round_id", "position", name="uq_round_entry_position"),
    )

    def __repr__(self) -> str:
        return (
            f"<ParticipantEntry(round_id={self.round_id}, identity={self.identity}, "
            f"tickets={self.tickets}, effective_weight={self.effective_weight})>"
        )

    @classmethod
    def get(
        cls, session: Session, round_id: int, identity: str
    ) -> Optional["ParticipantEntry"]:
        """Retrieve the entry for ``identity`` in ``round_id`` if one exists."""

        return session.scalar(
            select(cls).where(cls.round_id == round_id, cls.identity == identity)
        )

    @classmethod
    def for_round(cls, session: Session, round_id: int) -> list["ParticipantEntry"]:
        """Return all entries of a round in registration order."""

        return list(
            session.scalars(
                select(cls).where(cls.round_id == round_id).order_by(cls.position.asc())
            ).all()
        )


class ProofSubmission(Base):
    """Write-once record of a participant's single puzzle-proof attempt."""

    def __init__(
        self,
        round_id: int,
        identity: str,
        proof_hash: str,
        verified: bool,
        submitted_at: datetime,
    ) -> None:
        self.round_id = round_id
        self.identity = identity
        self.proof_hash = proof_hash
        self.attempted = True
        self.verified = verified
        self.submitted_at = submitted_at

    __tablename__ = "proof_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ForeignKey("rounds.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    identity: Mapped[str] = mapped_column(String(42), nullable=False)
    proof_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    attempted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    round: Mapped["Round"] = relationship(back_populates="proofs")

    __table_args__ = (
        UniqueConstraint("round_id", "identity", name="uq_proof_submission_identity"),
    )

    @classmethod
    def get(
        cls, session: Session, round_id: int, identity: str
    ) -> Optional["ProofSubmission"]:
        return session.scalar(
            select(cls).where(cls.round_id == round_id, cls.identity == identity)
        )


__all__ = ["ParticipantEntry", "ProofSubmission"]
