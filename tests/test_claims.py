from __future__ import annotations

import unittest

from skillraffle.config import RaffleConfig
from skillraffle.errors import AuthorizationError, ConsistencyError, ValidationError
from skillraffle.models import ParticipantEntry, RoundEvent
from skillraffle.settlement.merkle import MerkleCommitment

from fakes import (
    ALICE,
    BOB,
    CAROL,
    ENGINE,
    OPERATOR,
    PRIZE_TOKENS,
    SettlementTestCase,
)


class ClaimTests(SettlementTestCase):
    def _distributed_round(self, session) -> int:
        round_id = self.open_round(session)
        self.wager(session, round_id, ALICE, 10)
        self.wager(session, round_id, BOB, 10)
        self.distribute(session, round_id, random_value=2024)
        self.commit_winners(session, round_id)
        return round_id

    def test_claim_against_other_root_fails_then_succeeds_once(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            slots = m.get_round_winners(round_id)
            winner = slots[0]

            # A tree where another slot is reassigned has a different root,
            # so its sibling path for slot 0 does not verify.
            forged = [(s.identity, s.prize_tier, s.slot_index) for s in slots]
            forged[5] = (CAROL, forged[5][1], 5)
            forged_proof = MerkleCommitment.for_winners(forged).proof(0)
            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 0, winner.prize_tier, forged_proof, winner.identity)
            self.assertFalse(m.get_claim_status(round_id, 0).claimed)

            proof = m.winner_commitment(round_id).proof(0)
            claimed = m.claim_prize(round_id, 0, winner.prize_tier, proof, winner.identity)
            self.assertTrue(claimed.claimed)
            self.assertEqual(claimed.claimed_by, winner.identity)
            self.assertEqual(self.registry.owners[PRIZE_TOKENS[0]], winner.identity)

            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 0, winner.prize_tier, proof, winner.identity)
            self.assertEqual(len(self.registry.transfers), 1)
            self.assertEqual(RoundEvent.actions(session, round_id).count("PrizeClaimed"), 1)

            status = m.get_claim_status(round_id, 0)
            self.assertTrue(status.claimed)
            self.assertEqual(status.identity, winner.identity)
            self.assertEqual(status.prize_tier, 1)

    def test_every_slot_claimable_by_its_winner(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            commitment = m.winner_commitment(round_id)
            for slot in m.get_round_winners(round_id):
                m.claim_prize(
                    round_id,
                    slot.slot_index,
                    slot.prize_tier,
                    commitment.proof(slot.slot_index),
                    slot.identity,
                )
            total_claims = sum(
                e.claims_count for e in ParticipantEntry.for_round(session, round_id)
            )
            self.assertEqual(total_claims, 10)
            self.assertEqual(
                sorted(t for _, _, t in self.registry.transfers), PRIZE_TOKENS
            )

    def test_wrong_claimant_or_tier_is_rejected(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            slot = m.get_round_winners(round_id)[3]
            proof = m.winner_commitment(round_id).proof(3)
            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 3, slot.prize_tier, proof, CAROL)
            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 3, 1, proof, slot.identity)
            with self.assertRaises(ValidationError):
                m.claim_prize(round_id, 3, 300, proof, slot.identity)
            with self.assertRaises(ValidationError):
                m.claim_prize(round_id, 10, 3, proof, slot.identity)

    def test_claim_requires_committed_winners_root(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self.open_round(session)
            self.wager(session, round_id, ALICE, 10)
            self.distribute(session, round_id)
            with self.assertRaises(ValidationError):
                m.claim_prize(round_id, 0, 1, [], ALICE)

    def test_failed_transfer_leaves_slot_unclaimed(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            slot = m.get_round_winners(round_id)[1]
            proof = m.winner_commitment(round_id).proof(1)
            self.registry.fail_transfers = True
            with self.assertRaises(RuntimeError):
                m.claim_prize(round_id, 1, slot.prize_tier, proof, slot.identity)
            self.assertFalse(m.get_claim_status(round_id, 1).claimed)
            entry = ParticipantEntry.get(session, round_id, slot.identity)
            self.assertEqual(entry.claims_count, 0)

            self.registry.fail_transfers = False
            m.claim_prize(round_id, 1, slot.prize_tier, proof, slot.identity)
            self.assertEqual(entry.claims_count, 1)

    def test_prize_must_be_held_by_engine(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            slot = m.get_round_winners(round_id)[2]
            proof = m.winner_commitment(round_id).proof(2)
            self.registry.owners[PRIZE_TOKENS[2]] = CAROL
            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 2, slot.prize_tier, proof, slot.identity)
            self.registry.owners[PRIZE_TOKENS[2]] = ENGINE
            m.claim_prize(round_id, 2, slot.prize_tier, proof, slot.identity)

    def test_claims_blocked_by_general_pause_only(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self._distributed_round(session)
            slot = m.get_round_winners(round_id)[0]
            proof = m.winner_commitment(round_id).proof(0)
            m.pause(OPERATOR)
            with self.assertRaises(AuthorizationError):
                m.claim_prize(round_id, 0, slot.prize_tier, proof, slot.identity)
            m.unpause(OPERATOR)
            m.set_emergency_pause(True, OPERATOR)
            m.claim_prize(round_id, 0, slot.prize_tier, proof, slot.identity)


class ClaimLimitTests(SettlementTestCase):
    config = RaffleConfig(min_tickets=1)

    def test_claims_are_capped_by_tickets_held(self) -> None:
        with self.Session.begin() as session:
            m = self.manager(session)
            round_id = self.open_round(session)
            self.wager(session, round_id, ALICE, 1)
            self.distribute(session, round_id)
            self.commit_winners(session, round_id)

            slots = m.get_round_winners(round_id)
            self.assertEqual({s.identity for s in slots}, {ALICE})
            commitment = m.winner_commitment(round_id)
            m.claim_prize(round_id, 0, 1, commitment.proof(0), ALICE)
            with self.assertRaises(ConsistencyError):
                m.claim_prize(round_id, 1, 2, commitment.proof(1), ALICE)
            self.assertFalse(m.get_claim_status(round_id, 1).claimed)


if __name__ == "__main__":
    unittest.main()
