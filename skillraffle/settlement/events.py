"""Append-only audit log helpers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models.audit import RoundEvent

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    # 256-bit integers overflow JSON number handling in most clients.
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int) and abs(value) >= 1 << 53:
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def record_event(
    session: Session,
    action: str,
    *,
    occurred_at: datetime,
    round_id: Optional[int] = None,
    actor: Optional[str] = None,
    **details: Any,
) -> RoundEvent:
    """Append a :class:`RoundEvent` for a completed state transition."""

    event = RoundEvent(
        action=action,
        occurred_at=occurred_at,
        round_id=round_id,
        actor=actor,
        details=_jsonable(details) or None,
    )
    session.add(event)
    logger.debug(f"Recorded {action} for round {round_id}")
    return event


__all__ = ["record_event"]
