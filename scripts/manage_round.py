"""Operator helper: inspect a round and run its off-engine publication steps.

Usage examples::

    python scripts/manage_round.py status
    python scripts/manage_round.py status 3
    python scripts/manage_round.py snapshot 3 --ref bafy...    # export + commit participants root
    python scripts/manage_round.py commit-winners 3 --ref bafy...
    python scripts/manage_round.py verify-participants participants-round-3.json 3

Commands that change state act as the identity in ``RAFFLE_OPERATOR`` and
talk to collaborators through :class:`~skillraffle.chain.api.ChainClient`.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from web3 import Web3

from skillraffle.config import RaffleConfig
from skillraffle.db.engine import get_sessionmaker, make_engine
from skillraffle.db.utils import dt_iso
from skillraffle.errors import RaffleError
from skillraffle.models import Round, RoundStatus
from skillraffle.workflows import (
    build_participants_document,
    build_winners_document,
    publish_participants_root,
    publish_winners_root,
    verify_participants_document,
    verify_winners_document,
    write_document,
)

logger = logging.getLogger("manage_round")


def _or_not_set(value: Optional[object]) -> str:
    return "Not set" if value in (None, "") else str(value)


def next_steps(round_: Round, min_tickets: int) -> list[str]:
    """Return the operator actions that move ``round_`` forward."""

    status = round_.status
    if status == RoundStatus.CREATED:
        return [f"Open the round for wagers: RoundManager.open_round({round_.id}, operator)"]
    if status == RoundStatus.OPEN:
        return [
            "Round is currently accepting wagers.",
            f"When ready to close: RoundManager.close_round({round_.id}, operator)",
            f"Note: a round with fewer than {min_tickets} tickets is refunded on close.",
        ]
    if status == RoundStatus.CLOSED:
        return [f"Take snapshot: RoundManager.snapshot_round({round_.id}, operator)"]
    if status == RoundStatus.SNAPSHOT:
        if not round_.participants_root:
            return [
                "Generate, publish and commit the participants file:",
                f"  manage_round.py snapshot {round_.id} --ref <content-id>",
            ]
        return [f"Request randomness: RoundManager.request_entropy({round_.id}, operator)"]
    if status == RoundStatus.RANDOMNESS_REQUESTED:
        return [
            "Waiting for randomness fulfilment.",
            "If the oracle does not answer within the timeout, reset with "
            f"RoundManager.reset_randomness({round_.id}, operator).",
        ]
    if status == RoundStatus.DISTRIBUTED:
        if not round_.winners_root:
            return [
                "Generate, publish and commit the winners file:",
                f"  manage_round.py commit-winners {round_.id} --ref <content-id>",
            ]
        if not round_.fees_settled:
            return [f"Settle fees: RoundManager.finalize_round({round_.id}, operator)"]
        return ["Round is complete. Winners can claim their prizes."]
    return [
        f"Round was refunded (fewer than {min_tickets} tickets).",
        "Participants can withdraw their refunds.",
    ]


def print_status(round_: Round, config: RaffleConfig) -> None:
    print("\n=== Round Status ===")
    print(f"\nRound ID: {round_.id}")
    print(f"Status: {round_.status.value}")
    print(f"Start Time: {_or_not_set(dt_iso(round_.start_time))}")
    print(f"End Time: {_or_not_set(dt_iso(round_.end_time))}")
    print("\nParticipation:")
    print(f"  Participants: {round_.participant_count}")
    print(f"  Total Tickets: {round_.total_tickets}")
    print(f"  Total Weight: {round_.total_weight}")
    print(f"  Total Wagered: {Web3.from_wei(round_.total_wagered, 'ether')} ETH")
    print("\nMerkle Data:")
    print(f"  Participants Root: {_or_not_set(round_.participants_root)}")
    if round_.participants_root:
        print(f"  Participants Ref: {_or_not_set(round_.participants_ref)}")
    print(f"  Winners Root: {_or_not_set(round_.winners_root)}")
    if round_.winners_root:
        print(f"  Winners Ref: {_or_not_set(round_.winners_ref)}")
    print("\nRandomness:")
    print(f"  Request ID: {_or_not_set(round_.randomness_request_id)}")
    print(f"  Seed: {_or_not_set(round_.random_seed)}")
    print("\nFinancial:")
    print(f"  Fees Settled: {'Yes' if round_.fees_settled else 'No'}")
    print("\n=== Next Steps ===")
    for line in next_steps(round_, config.min_tickets):
        print(line)


def _manager(session, config: RaffleConfig):
    from skillraffle.chain.api import ChainClient
    from skillraffle.settlement import RoundManager

    client = ChainClient()
    return RoundManager(
        session,
        oracle=client,
        registry=client,
        payouts=client,
        config=config,
    )


def _operator() -> str:
    operator = os.getenv("RAFFLE_OPERATOR")
    if not operator:
        raise RaffleError("Environment variable 'RAFFLE_OPERATOR' is not set")
    return operator


def _load_json(path: str) -> dict:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and drive raffle rounds.")
    parser.add_argument("--db-url", help="Database URL; defaults to DB_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="Display round state and next steps")
    status.add_argument("round_id", type=int, nargs="?")

    snapshot = sub.add_parser("snapshot", help="Export the participants file")
    snapshot.add_argument("round_id", type=int)
    snapshot.add_argument("--output", help="Output path")
    snapshot.add_argument("--ref", help="Content id; when given, also commit the root")

    winners = sub.add_parser("commit-winners", help="Export the winners file")
    winners.add_argument("round_id", type=int)
    winners.add_argument("--output", help="Output path")
    winners.add_argument("--ref", help="Content id; when given, also commit the root")

    verify_p = sub.add_parser("verify-participants", help="Check a participants file")
    verify_p.add_argument("path")
    verify_p.add_argument("round_id", type=int)

    verify_w = sub.add_parser("verify-winners", help="Check a winners file")
    verify_w.add_argument("path")
    verify_w.add_argument("round_id", type=int)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    config = RaffleConfig.from_env()
    Session = get_sessionmaker(make_engine(database_url=args.db_url))

    try:
        with Session.begin() as session:
            if args.command == "status":
                round_ = (
                    Round.require(session, args.round_id)
                    if args.round_id is not None
                    else Round.latest(session)
                )
                if round_ is None:
                    print("No rounds yet.")
                    return 0
                print_status(round_, config)
                return 0

            if args.command in ("snapshot", "commit-winners"):
                is_snapshot = args.command == "snapshot"
                default_name = "participants" if is_snapshot else "winners"
                output = args.output or f"{default_name}-round-{args.round_id}.json"
                if args.ref:
                    manager = _manager(session, config)
                    publish = publish_participants_root if is_snapshot else publish_winners_root
                    document = publish(manager, args.round_id, args.ref, _operator())
                else:
                    build = build_participants_document if is_snapshot else build_winners_document
                    document = build(session, args.round_id)
                write_document(document, output)
                print(f"Merkle Root: {document['merkle']['root']}")
                if not args.ref:
                    print(f"Publish {output}, then rerun with --ref <content-id> to commit.")
                return 0

            round_ = Round.require(session, args.round_id)
            document = _load_json(args.path)
            if args.command == "verify-participants":
                if not round_.participants_root:
                    print("Participants root not committed yet.")
                    return 1
                ok = verify_participants_document(document, round_.participants_root)
            else:
                if not round_.winners_root:
                    print("Winners root not committed yet.")
                    return 1
                ok = verify_winners_document(
                    document, round_.winners_root, round_.random_seed, config
                )
            print("Document matches the committed root." if ok else "Document does NOT match.")
            return 0 if ok else 1
    except RaffleError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
