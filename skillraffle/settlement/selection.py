"""Deterministic weighted winner selection from a single random seed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from web3 import Web3

from ..config import RaffleConfig


@dataclass(frozen=True)
class WinnerAssignment:
    """Winner of one prize slot.

    Attributes
    ----------
    slot_index : int
        Position of the slot, ``0 .. N-1``.
    identity : str
        Winning participant.
    prize_tier : int
        Tier assigned to the slot by position.
    draw_value : int
        ``hash(seed, slot_index) mod total_weight`` that picked the winner.
    """

    slot_index: int
    identity: str
    prize_tier: int
    draw_value: int


def slot_draw_value(random_value: int, slot_index: int, total_weight: int) -> int:
    """Return ``keccak256(uint256 seed, uint256 index) mod total_weight``."""

    if total_weight <= 0:
        raise ValueError("total_weight must be positive")
    digest = Web3.solidity_keccak(["uint256", "uint256"], [random_value, slot_index])
    return int.from_bytes(bytes(digest), "big") % total_weight


def pick_by_weight(weights: Sequence[tuple[str, int]], draw_value: int) -> str:
    """Return the first identity whose cumulative weight exceeds ``draw_value``."""

    cumulative = 0
    for identity, weight in weights:
        cumulative += weight
        if cumulative > draw_value:
            return identity
    raise ValueError(
        f"draw value {draw_value} is not below the total weight {cumulative}"
    )


def select_winners(
    random_value: int,
    weights: Sequence[tuple[str, int]],
    config: RaffleConfig,
) -> list[WinnerAssignment]:
    """Convert one random value and the frozen weight table into prize winners.

    Participants are walked in the given (snapshot) order for every slot. The
    draw is with replacement: one identity may win several slots.

    Parameters
    ----------
    random_value : int
        Fulfilled randomness, non-zero.
    weights : Sequence[tuple[str, int]]
        ``(identity, effective_weight)`` in snapshot order.
    config : RaffleConfig
        Supplies the slot count and positional tier distribution.

    Returns
    -------
    list[WinnerAssignment]
        Exactly ``config.prize_slot_count`` assignments in slot order.
    """

    if random_value <= 0:
        raise ValueError("random_value must be a positive integer")
    total_weight = sum(weight for _, weight in weights)
    if total_weight <= 0:
        raise ValueError("Cannot select winners from an empty weight table")

    assignments: list[WinnerAssignment] = []
    for slot_index in range(config.prize_slot_count):
        draw_value = slot_draw_value(random_value, slot_index, total_weight)
        assignments.append(
            WinnerAssignment(
                slot_index=slot_index,
                identity=pick_by_weight(weights, draw_value),
                prize_tier=config.tier_for_slot(slot_index),
                draw_value=draw_value,
            )
        )
    return assignments


__all__ = [
    "WinnerAssignment",
    "pick_by_weight",
    "select_winners",
    "slot_draw_value",
]
