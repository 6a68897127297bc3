"""Static economic parameters of the raffle."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

WEI_PER_ETHER = 10**18

# Ticket bundle prices in wei, keyed by ticket count.
DEFAULT_TICKET_BUNDLES: Mapping[int, int] = {
    1: 5 * 10**15,  # 0.005 ETH
    5: 225 * 10**14,  # 0.0225 ETH
    10: 4 * 10**16,  # 0.04 ETH
}


@dataclass(frozen=True)
class PrizeTier:
    """A tier of prize slots.

    Attributes
    ----------
    tier : int
        Identifier committed in winner leaves (fits in ``uint8``).
    count : int
        Number of consecutive slots carrying this tier.
    label : Optional[str]
        Human readable name shown by clients.
    """

    tier: int
    count: int
    label: Optional[str] = None


DEFAULT_PRIZE_TIERS: tuple[PrizeTier, ...] = (
    PrizeTier(tier=1, count=1, label="Fake Pack"),
    PrizeTier(tier=2, count=1, label="Kek Pack"),
    PrizeTier(tier=3, count=8, label="Pepe Pack"),
)


@dataclass(frozen=True)
class RaffleConfig:
    """Immutable configuration read by every settlement component.

    Attributes
    ----------
    ticket_bundles : Mapping[int, int]
        Accepted (ticket count -> exact price in wei) pairs.
    wallet_cap : int
        Maximum cumulative contribution of one identity in one round (wei).
    min_tickets : int
        Rounds closing with fewer tickets are refunded. At least 1, so a round
        with no tickets never reaches the snapshot.
    max_participants : int
        Circuit breaker on distinct identities per round.
    max_total_wager : int
        Circuit breaker on aggregate contribution per round (wei).
    fee_percent : int
        Share of the wagered total credited to the fee recipient.
    retained_percent : int
        Share kept as subsidy for later rounds; ``fee_percent +
        retained_percent`` must equal 100.
    proof_bonus_percent : int
        Weight bonus applied once for a verified proof.
    prize_tiers : tuple[PrizeTier, ...]
        Tier distribution in slot order.
    round_duration : timedelta
        Time between opening and the end of wagering.
    randomness_timeout : timedelta
        Window in which a randomness fulfilment is accepted.
    min_request_interval : timedelta
        Minimum spacing between two randomness requests.
    """

    ticket_bundles: Mapping[int, int] = field(
        default_factory=lambda: dict(DEFAULT_TICKET_BUNDLES)
    )
    wallet_cap: int = WEI_PER_ETHER
    min_tickets: int = 10
    max_participants: int = 10_000
    max_total_wager: int = 1_000 * WEI_PER_ETHER
    fee_percent: int = 80
    retained_percent: int = 20
    proof_bonus_percent: int = 40
    prize_tiers: tuple[PrizeTier, ...] = DEFAULT_PRIZE_TIERS
    round_duration: timedelta = timedelta(weeks=2)
    randomness_timeout: timedelta = timedelta(hours=1)
    min_request_interval: timedelta = timedelta(seconds=60)

    def __post_init__(self) -> None:
        if not self.ticket_bundles:
            raise ConfigurationError("at least one ticket bundle must be configured")
        for tickets, price in self.ticket_bundles.items():
            if tickets <= 0 or price <= 0:
                raise ConfigurationError(
                    f"invalid ticket bundle {tickets} -> {price}; both must be positive"
                )
        if self.fee_percent < 0 or self.retained_percent < 0:
            raise ConfigurationError("fee percentages must be non-negative")
        if self.fee_percent + self.retained_percent != 100:
            raise ConfigurationError(
                "fee_percent and retained_percent must sum to 100, got "
                f"{self.fee_percent} + {self.retained_percent}"
            )
        if self.wallet_cap <= 0 or self.max_total_wager <= 0:
            raise ConfigurationError("wallet_cap and max_total_wager must be positive")
        if self.max_participants <= 0:
            raise ConfigurationError("max_participants must be positive")
        if self.min_tickets < 1:
            raise ConfigurationError("min_tickets must be at least 1")
        if self.proof_bonus_percent < 0:
            raise ConfigurationError("proof_bonus_percent must be non-negative")
        if not self.prize_tiers:
            raise ConfigurationError("at least one prize tier must be configured")
        seen: set[int] = set()
        for tier in self.prize_tiers:
            if tier.count <= 0:
                raise ConfigurationError(f"prize tier {tier.tier} must have a positive count")
            if not 0 <= tier.tier <= 255:
                raise ConfigurationError(f"prize tier id {tier.tier} does not fit in uint8")
            if tier.tier in seen:
                raise ConfigurationError(f"prize tier {tier.tier} is configured twice")
            seen.add(tier.tier)
        if self.prize_slot_count > 256:
            raise ConfigurationError("at most 256 prize slots fit the uint8 slot index")
        for name in ("round_duration", "randomness_timeout"):
            if getattr(self, name) <= timedelta(0):
                raise ConfigurationError(f"{name} must be positive")
        if self.min_request_interval < timedelta(0):
            raise ConfigurationError("min_request_interval must be non-negative")

    @property
    def prize_slot_count(self) -> int:
        """Total number of prize slots per round."""
        return sum(tier.count for tier in self.prize_tiers)

    def tier_for_slot(self, slot_index: int) -> int:
        """Return the prize tier assigned to ``slot_index`` by fixed position."""
        if slot_index < 0:
            raise ValueError("slot_index must be non-negative")
        remaining = slot_index
        for tier in self.prize_tiers:
            if remaining < tier.count:
                return tier.tier
            remaining -= tier.count
        raise ValueError(
            f"slot_index {slot_index} exceeds the {self.prize_slot_count} configured slots"
        )

    def tier_counts(self) -> dict[int, int]:
        return {tier.tier: tier.count for tier in self.prize_tiers}

    def bundle_price(self, tickets: int) -> Optional[int]:
        return self.ticket_bundles.get(tickets)

    def apply_bonus(self, base_weight: int) -> int:
        """Return ``base_weight`` inflated by the proof bonus (integer floor)."""
        return base_weight * (100 + self.proof_bonus_percent) // 100

    @classmethod
    def from_env(cls) -> "RaffleConfig":
        """Build a configuration from ``RAFFLE_*`` environment overrides.

        Unset variables keep the documented defaults. Malformed values raise
        :class:`ConfigurationError`.
        """

        load_dotenv()
        overrides: dict = {}
        int_fields = {
            "RAFFLE_WALLET_CAP_WEI": "wallet_cap",
            "RAFFLE_MIN_TICKETS": "min_tickets",
            "RAFFLE_MAX_PARTICIPANTS": "max_participants",
            "RAFFLE_MAX_TOTAL_WAGER_WEI": "max_total_wager",
            "RAFFLE_FEE_PERCENT": "fee_percent",
            "RAFFLE_RETAINED_PERCENT": "retained_percent",
            "RAFFLE_PROOF_BONUS_PERCENT": "proof_bonus_percent",
        }
        seconds_fields = {
            "RAFFLE_ROUND_DURATION_SECONDS": "round_duration",
            "RAFFLE_RANDOMNESS_TIMEOUT_SECONDS": "randomness_timeout",
            "RAFFLE_MIN_REQUEST_INTERVAL_SECONDS": "min_request_interval",
        }
        for env_name, attr in int_fields.items():
            raw = os.getenv(env_name)
            if raw is not None:
                overrides[attr] = _parse_int(env_name, raw)
        for env_name, attr in seconds_fields.items():
            raw = os.getenv(env_name)
            if raw is not None:
                overrides[attr] = timedelta(seconds=_parse_int(env_name, raw))

        raw_bundles = os.getenv("RAFFLE_TICKET_BUNDLES")
        if raw_bundles:
            # Format: "1:5000000000000000,5:22500000000000000"
            bundles: dict[int, int] = {}
            for part in raw_bundles.split(","):
                tickets, _, price = part.partition(":")
                bundles[_parse_int("RAFFLE_TICKET_BUNDLES", tickets)] = _parse_int(
                    "RAFFLE_TICKET_BUNDLES", price
                )
            overrides["ticket_bundles"] = bundles

        return cls(**overrides)


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


__all__ = [
    "DEFAULT_PRIZE_TIERS",
    "DEFAULT_TICKET_BUNDLES",
    "PrizeTier",
    "RaffleConfig",
    "WEI_PER_ETHER",
]
