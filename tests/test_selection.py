import unittest

from web3 import Web3

from skillraffle.config import PrizeTier, RaffleConfig
from skillraffle.models import RoundStatus
from skillraffle.settlement.selection import (
    pick_by_weight,
    select_winners,
    slot_draw_value,
)

from fakes import ALICE, BOB, CAROL, OPERATOR, ORACLE, VALID_PROOF, SettlementTestCase


def _expected_draw(seed: int, index: int, total: int) -> int:
    digest = Web3.solidity_keccak(["uint256", "uint256"], [seed, index])
    return int.from_bytes(bytes(digest), "big") % total


class TestPickByWeight(unittest.TestCase):
    def test_cumulative_walk_boundaries(self):
        weights = [(ALICE, 3), (BOB, 2)]
        self.assertEqual(pick_by_weight(weights, 0), ALICE)
        self.assertEqual(pick_by_weight(weights, 2), ALICE)
        self.assertEqual(pick_by_weight(weights, 3), BOB)
        self.assertEqual(pick_by_weight(weights, 4), BOB)
        with self.assertRaises(ValueError):
            pick_by_weight(weights, 5)

    def test_zero_weight_participant_is_never_picked(self):
        weights = [(ALICE, 0), (BOB, 1)]
        self.assertEqual(pick_by_weight(weights, 0), BOB)


class TestSelectWinners(unittest.TestCase):
    def setUp(self):
        self.config = RaffleConfig()

    def test_slot_draw_value_matches_packed_hash(self):
        seed = 0xDEADBEEF
        for index in range(3):
            self.assertEqual(
                slot_draw_value(seed, index, 24), _expected_draw(seed, index, 24)
            )

    def test_two_participants_use_weighted_walk(self):
        seed = 987654321
        weights = [(ALICE, 14), (BOB, 10)]
        winners = select_winners(seed, weights, self.config)
        for assignment in winners:
            draw = _expected_draw(seed, assignment.slot_index, 24)
            self.assertEqual(assignment.draw_value, draw)
            self.assertEqual(assignment.identity, ALICE if draw < 14 else BOB)

    def test_slot_count_and_tiers_follow_configuration(self):
        winners = select_winners(1, [(ALICE, 1), (BOB, 1)], self.config)
        self.assertEqual([w.slot_index for w in winners], list(range(10)))
        self.assertEqual([w.prize_tier for w in winners], [1, 2] + [3] * 8)

        custom = RaffleConfig(prize_tiers=(PrizeTier(7, 2), PrizeTier(9, 1)))
        winners = select_winners(1, [(ALICE, 1)], custom)
        self.assertEqual([w.prize_tier for w in winners], [7, 7, 9])

    def test_selection_is_with_replacement_and_deterministic(self):
        only = select_winners(42, [(CAROL, 5)], self.config)
        self.assertEqual({w.identity for w in only}, {CAROL})
        weights = [(ALICE, 14), (BOB, 10), (CAROL, 3)]
        self.assertEqual(
            select_winners(77, weights, self.config),
            select_winners(77, weights, self.config),
        )

    def test_degenerate_inputs_are_rejected(self):
        with self.assertRaises(ValueError):
            select_winners(0, [(ALICE, 1)], self.config)
        with self.assertRaises(ValueError):
            select_winners(5, [], self.config)
        with self.assertRaises(ValueError):
            select_winners(5, [(ALICE, 0)], self.config)


class TestEngineSelection(SettlementTestCase):
    def test_bonus_weight_feeds_the_draw(self):
        seed = 0x5EED
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self.open_round(session)
            self.wager(session, round_id, ALICE, 10)
            self.wager(session, round_id, BOB, 10)
            m.submit_proof(round_id, ALICE, VALID_PROOF)
            self.snapshot_and_commit(session, round_id)
            self.assertEqual(m.get_round(round_id).total_weight, 24)

            slots = m.fulfill_randomness(m.request_entropy(round_id, OPERATOR), seed, ORACLE)
            self.assertEqual(m.get_round(round_id).status, RoundStatus.DISTRIBUTED)
            for slot in slots:
                draw = _expected_draw(seed, slot.slot_index, 24)
                self.assertEqual(slot.identity, ALICE if draw < 14 else BOB)


if __name__ == "__main__":
    unittest.main()
