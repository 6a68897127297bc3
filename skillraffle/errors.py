"""Exception taxonomy raised by the settlement engine.

Every failure aborts the triggering operation; callers roll back their
session transaction and retry with a corrected call.
"""

from __future__ import annotations


class RaffleError(Exception):
    """Base class for all settlement engine failures."""


class ValidationError(RaffleError, ValueError):
    """Malformed input or a call made in the wrong round state."""


class AuthorizationError(RaffleError, PermissionError):
    """Caller lacks the role, is denylisted, or the engine is paused."""


class ConsistencyError(RaffleError):
    """Duplicate claim, failed Merkle check, exhausted claim entitlement, or a
    mismatched randomness request."""


class TimingError(RaffleError):
    """Call arrived outside its permitted time window."""


class CircuitBreakerError(RaffleError):
    """A per-round participant or aggregate wager cap has been reached."""


class ConfigurationError(RaffleError, ValueError):
    """Static configuration or owner-managed settings are invalid or missing."""


__all__ = [
    "RaffleError",
    "ValidationError",
    "AuthorizationError",
    "ConsistencyError",
    "TimingError",
    "CircuitBreakerError",
    "ConfigurationError",
]
