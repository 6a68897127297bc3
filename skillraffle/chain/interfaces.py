"""Interfaces of the external collaborators the engine depends on."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class RandomnessOracle(Protocol):
    """Issues verifiable-randomness requests.

    Fulfilment arrives later, out of band, through
    :meth:`skillraffle.settlement.RoundManager.fulfill_randomness`.
    """

    def request_randomness(
        self,
        oracle_address: str,
        round_id: int,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Submit a request and return its correlation id."""
        ...


class PrizeRegistry(Protocol):
    """Opaque ownership registry of prize tokens."""

    def owner_of(self, registry: str, token_id: int) -> str:
        ...

    def transfer(self, registry: str, sender: str, recipient: str, token_id: int) -> None:
        ...


class PayoutSender(Protocol):
    """Releases value held by the engine to a recipient."""

    def send(self, recipient: str, amount: int) -> None:
        ...


__all__ = ["PayoutSender", "PrizeRegistry", "RandomnessOracle"]
