import copy
import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from skillraffle.errors import ValidationError
from skillraffle.workflows import (
    build_participants_document,
    build_winners_document,
    publish_participants_root,
    publish_winners_root,
    verify_participants_document,
    verify_winners_document,
    write_document,
)

from fakes import ALICE, BOB, CAROL, OPERATOR, ORACLE, VALID_PROOF, SettlementTestCase


class ParticipantsDocumentTests(SettlementTestCase):
    def _snapshotted_round(self, session) -> int:
        m = self.manager(session)
        round_id = self.open_round(session)
        self.wager(session, round_id, ALICE, 5)
        self.wager(session, round_id, BOB, 10)
        m.submit_proof(round_id, BOB, VALID_PROOF)
        m.close_round(round_id, OPERATOR)
        m.snapshot_round(round_id, OPERATOR)
        return round_id

    def test_document_lists_participants_in_order(self):
        stamp = datetime(2026, 2, 1, tzinfo=timezone.utc)
        with self.Session.begin() as session:
            round_id = self._snapshotted_round(session)
            doc = build_participants_document(session, round_id, generated_at=stamp)
            m = self.manager(session)

            self.assertEqual(doc["roundId"], str(round_id))
            self.assertEqual(doc["generatedAt"], stamp.isoformat())
            self.assertEqual(doc["participantCount"], 2)
            self.assertEqual(doc["totalTickets"], "15")
            self.assertEqual([p["address"] for p in doc["participants"]], [ALICE, BOB])
            alice, bob = doc["participants"]
            self.assertEqual(alice["weight"], "5")
            self.assertFalse(alice["hasProof"])
            self.assertEqual(bob["weight"], "14")
            self.assertTrue(bob["hasProof"])
            self.assertEqual(bob["wagered"], "0.04")
            self.assertEqual(doc["totalWeight"], "19")
            self.assertEqual(doc["merkle"]["root"], m.participant_commitment(round_id).root)
            self.assertTrue(verify_participants_document(doc, doc["merkle"]["root"]))

    def test_weights_must_be_frozen(self):
        with self.Session.begin() as session:
            round_id = self.open_round(session)
            self.wager(session, round_id, ALICE, 10)
            with self.assertRaises(ValidationError):
                build_participants_document(session, round_id)

    def test_tampered_document_fails_verification(self):
        with self.Session.begin() as session:
            round_id = self._snapshotted_round(session)
            doc = build_participants_document(session, round_id)
        root = doc["merkle"]["root"]

        inflated = copy.deepcopy(doc)
        inflated["participants"][0]["weight"] = "500"
        self.assertFalse(verify_participants_document(inflated, root))

        swapped = copy.deepcopy(doc)
        swapped["participants"][0]["address"] = CAROL
        self.assertFalse(verify_participants_document(swapped, root))

        self.assertFalse(verify_participants_document({"participants": []}, root))
        self.assertFalse(verify_participants_document(doc, "0x" + "11" * 32))

    def test_publish_commits_the_document_root(self):
        with self.Session.begin() as session:
            round_id = self._snapshotted_round(session)
            m = self.manager(session)
            doc = publish_participants_root(m, round_id, "bafy-participants", OPERATOR)
            round_ = m.get_round(round_id)
            self.assertEqual(round_.participants_root, doc["merkle"]["root"])
            self.assertEqual(round_.participants_ref, "bafy-participants")


class WinnersDocumentTests(SettlementTestCase):
    def _distributed_round(self, session) -> int:
        round_id = self.open_round(session)
        self.wager(session, round_id, ALICE, 10)
        self.wager(session, round_id, BOB, 5)
        self.distribute(session, round_id, random_value=0xBEEF)
        return round_id

    def test_document_matches_winner_slots(self):
        with self.Session.begin() as session:
            round_id = self._distributed_round(session)
            m = self.manager(session)
            doc = build_winners_document(session, round_id)
            slots = m.get_round_winners(round_id)

            self.assertEqual(doc["winnerCount"], 10)
            self.assertEqual(doc["vrfSeed"], "0x" + (0xBEEF).to_bytes(32, "big").hex())
            self.assertEqual(doc["vrfRequestId"], str(m.get_round(round_id).randomness_request_id))
            self.assertEqual(
                [(w["address"], w["prizeTier"], w["prizeIndex"]) for w in doc["winners"]],
                [(s.identity, s.prize_tier, s.slot_index) for s in slots],
            )
            self.assertEqual([w["prizeTier"] for w in doc["winners"]], [1, 2] + [3] * 8)
            self.assertEqual(doc["merkle"]["root"], m.winner_commitment(round_id).root)

    def test_winners_require_distribution(self):
        with self.Session.begin() as session:
            round_id = self.open_round(session)
            self.wager(session, round_id, ALICE, 10)
            self.snapshot_and_commit(session, round_id)
            with self.assertRaises(ValidationError):
                build_winners_document(session, round_id)

    def test_verification_checks_seed_tiers_and_root(self):
        with self.Session.begin() as session:
            round_id = self._distributed_round(session)
            doc = build_winners_document(session, round_id)
        root = doc["merkle"]["root"]

        self.assertTrue(verify_winners_document(doc, root, seed=0xBEEF))
        self.assertFalse(verify_winners_document(doc, root, seed=0xBEEE))

        wrong_tier = copy.deepcopy(doc)
        wrong_tier["winners"][1]["prizeTier"] = 3
        self.assertFalse(verify_winners_document(wrong_tier, root))

        short = copy.deepcopy(doc)
        short["winners"].pop()
        self.assertFalse(verify_winners_document(short, root))

        reassigned = copy.deepcopy(doc)
        reassigned["winners"][4]["address"] = CAROL
        reassigned["merkle"].pop("root")
        self.assertFalse(verify_winners_document(reassigned, root))

    def test_publish_commits_winners_root(self):
        with self.Session.begin() as session:
            round_id = self._distributed_round(session)
            m = self.manager(session)
            doc = publish_winners_root(m, round_id, "bafy-winners", OPERATOR)
            self.assertEqual(m.get_round(round_id).winners_root, doc["merkle"]["root"])
            self.assertEqual(m.get_round(round_id).winners_ref, "bafy-winners")

    def test_write_document(self):
        with self.Session.begin() as session:
            round_id = self._distributed_round(session)
            doc = build_winners_document(session, round_id)
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_document(doc, Path(tmpdir) / "winners.json")
            loaded = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(loaded, doc)


if __name__ == "__main__":
    unittest.main()
