from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .round import Round, RoundStatus, TERMINAL_STATUSES  # noqa: F401
from .participant import ParticipantEntry, ProofSubmission  # noqa: F401
from .claim import WinnerSlot  # noqa: F401
from .treasury import RefundBalance, FeeSettlement  # noqa: F401
from .security import RaffleSettings, DenylistEntry  # noqa: F401
from .audit import RoundEvent  # noqa: F401

__all__ = [
    "Base",
    "Round",
    "RoundStatus",
    "TERMINAL_STATUSES",
    "ParticipantEntry",
    "ProofSubmission",
    "WinnerSlot",
    "RefundBalance",
    "FeeSettlement",
    "RaffleSettings",
    "DenylistEntry",
    "RoundEvent",
]
