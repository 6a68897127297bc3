"""Column types shared by the settlement tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.types import TypeDecorator


class Uint256(TypeDecorator):
    """Exact unsigned 256-bit integer stored as its decimal string.

    Wei amounts, random values and oracle request ids overflow the 64-bit
    integer columns most backends offer, so they are kept as text and
    converted back to ``int`` on load.
    """

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value: Optional[int], dialect) -> Optional[str]:
        if value is None:
            return None
        value = int(value)
        if value < 0 or value >= 1 << 256:
            raise ValueError(f"value {value} does not fit in an unsigned 256-bit integer")
        return str(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[int]:
        if value is None:
            return None
        return int(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware ``DateTime`` that always round-trips as UTC.

    SQLite drops ``tzinfo`` on the way back; naive values are re-tagged as
    UTC so the engine can compare them against its aware clock.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["Uint256", "UTCDateTime", "utcnow"]
