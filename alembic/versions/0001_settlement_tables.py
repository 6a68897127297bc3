"""settlement tables

Revision ID: 0001_settlement_tables
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import skillraffle.models.types


# revision identifiers, used by Alembic.
revision: str = "0001_settlement_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROUND_STATUSES = (
    "created",
    "open",
    "closed",
    "snapshot",
    "randomness_requested",
    "distributed",
    "refunded",
)


def upgrade() -> None:
    op.create_table(
        "rounds",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*ROUND_STATUSES, name="round_status", native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column("start_time", skillraffle.models.types.UTCDateTime(), nullable=True),
        sa.Column("end_time", skillraffle.models.types.UTCDateTime(), nullable=True),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("total_weight", sa.Integer(), nullable=False),
        sa.Column("total_wagered", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("participant_count", sa.Integer(), nullable=False),
        sa.Column("valid_proof_hash", sa.String(length=66), nullable=True),
        sa.Column("randomness_request_id", skillraffle.models.types.Uint256(), nullable=True),
        sa.Column(
            "randomness_requested_at", skillraffle.models.types.UTCDateTime(), nullable=True
        ),
        sa.Column("random_seed", skillraffle.models.types.Uint256(), nullable=True),
        sa.Column("participants_root", sa.String(length=66), nullable=True),
        sa.Column("participants_ref", sa.String(length=255), nullable=True),
        sa.Column("winners_root", sa.String(length=66), nullable=True),
        sa.Column("winners_ref", sa.String(length=255), nullable=True),
        sa.Column("prize_token_ids", sa.JSON(), nullable=True),
        sa.Column("fees_settled", sa.Boolean(), nullable=False),
        sa.Column("created_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.Column("snapshot_at", skillraffle.models.types.UTCDateTime(), nullable=True),
        sa.Column("distributed_at", skillraffle.models.types.UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_rounds")),
    )
    with op.batch_alter_table("rounds", schema=None) as batch_op:
        batch_op.create_index("ix_rounds_status", ["status"], unique=False)
        batch_op.create_index(
            batch_op.f("ix_rounds_randomness_request_id"),
            ["randomness_request_id"],
            unique=False,
        )

    op.create_table(
        "raffle_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("operator", sa.String(length=42), nullable=False),
        sa.Column("engine_identity", sa.String(length=42), nullable=False),
        sa.Column("oracle_address", sa.String(length=42), nullable=False),
        sa.Column("oracle_params", sa.JSON(), nullable=True),
        sa.Column("fee_recipient", sa.String(length=42), nullable=False),
        sa.Column("prize_registry", sa.String(length=42), nullable=False),
        sa.Column("paused", sa.Boolean(), nullable=False),
        sa.Column("emergency_paused", sa.Boolean(), nullable=False),
        sa.Column(
            "last_randomness_request_at",
            skillraffle.models.types.UTCDateTime(),
            nullable=True,
        ),
        sa.Column("next_round_funds", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("updated_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffle_settings")),
    )

    op.create_table(
        "denylist_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("identity", sa.String(length=42), nullable=False),
        sa.Column("listed", sa.Boolean(), nullable=False),
        sa.Column("updated_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_denylist_entries")),
        sa.UniqueConstraint("identity", name=op.f("uq_denylist_entries_identity")),
    )

    op.create_table(
        "refund_balances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("identity", sa.String(length=42), nullable=False),
        sa.Column("amount", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("updated_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_refund_balances")),
        sa.UniqueConstraint("identity", name=op.f("uq_refund_balances_identity")),
    )

    op.create_table(
        "round_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("identity", sa.String(length=42), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("wagered", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("tickets", sa.Integer(), nullable=False),
        sa.Column("base_weight", sa.Integer(), nullable=False),
        sa.Column("bonus_weight", sa.Integer(), nullable=False),
        sa.Column("effective_weight", sa.Integer(), nullable=False),
        sa.Column("proof_submitted", sa.Boolean(), nullable=False),
        sa.Column("proof_verified", sa.Boolean(), nullable=False),
        sa.Column("claims_count", sa.Integer(), nullable=False),
        sa.Column("created_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["rounds.id"],
            name=op.f("fk_round_entries_round_id_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_round_entries")),
        sa.UniqueConstraint("round_id", "identity", name="uq_round_entry_identity"),
        sa.UniqueConstraint("round_id", "position", name="uq_round_entry_position"),
    )
    with op.batch_alter_table("round_entries", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_round_entries_identity"), ["identity"], unique=False
        )
        batch_op.create_index(
            batch_op.f("ix_round_entries_round_id"), ["round_id"], unique=False
        )

    op.create_table(
        "proof_submissions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("identity", sa.String(length=42), nullable=False),
        sa.Column("proof_hash", sa.String(length=66), nullable=False),
        sa.Column("attempted", sa.Boolean(), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["rounds.id"],
            name=op.f("fk_proof_submissions_round_id_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_proof_submissions")),
        sa.UniqueConstraint("round_id", "identity", name="uq_proof_submission_identity"),
    )
    with op.batch_alter_table("proof_submissions", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_proof_submissions_round_id"), ["round_id"], unique=False
        )

    op.create_table(
        "winner_slots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("identity", sa.String(length=42), nullable=False),
        sa.Column("prize_tier", sa.Integer(), nullable=False),
        sa.Column("claimed", sa.Boolean(), nullable=False),
        sa.Column("claimed_by", sa.String(length=42), nullable=True),
        sa.Column("claimed_at", skillraffle.models.types.UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["rounds.id"],
            name=op.f("fk_winner_slots_round_id_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_winner_slots")),
        sa.UniqueConstraint("round_id", "slot_index", name="uq_winner_slot_index"),
    )
    with op.batch_alter_table("winner_slots", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_winner_slots_identity"), ["identity"], unique=False
        )
        batch_op.create_index(
            batch_op.f("ix_winner_slots_round_id"), ["round_id"], unique=False
        )

    op.create_table(
        "fee_settlements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("recipient", sa.String(length=42), nullable=False),
        sa.Column("recipient_amount", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("retained_amount", skillraffle.models.types.Uint256(), nullable=False),
        sa.Column("settled_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["rounds.id"],
            name=op.f("fk_fee_settlements_round_id_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_fee_settlements")),
        sa.UniqueConstraint("round_id", name=op.f("uq_fee_settlements_round_id")),
    )

    op.create_table(
        "round_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor", sa.String(length=42), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("occurred_at", skillraffle.models.types.UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["round_id"],
            ["rounds.id"],
            name=op.f("fk_round_events_round_id_rounds"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_round_events")),
    )
    with op.batch_alter_table("round_events", schema=None) as batch_op:
        batch_op.create_index(
            "ix_round_events_round_action", ["round_id", "action"], unique=False
        )


def downgrade() -> None:
    with op.batch_alter_table("round_events", schema=None) as batch_op:
        batch_op.drop_index("ix_round_events_round_action")
    op.drop_table("round_events")
    op.drop_table("fee_settlements")
    with op.batch_alter_table("winner_slots", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_winner_slots_round_id"))
        batch_op.drop_index(batch_op.f("ix_winner_slots_identity"))
    op.drop_table("winner_slots")
    with op.batch_alter_table("proof_submissions", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_proof_submissions_round_id"))
    op.drop_table("proof_submissions")
    with op.batch_alter_table("round_entries", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_round_entries_round_id"))
        batch_op.drop_index(batch_op.f("ix_round_entries_identity"))
    op.drop_table("round_entries")
    op.drop_table("refund_balances")
    op.drop_table("denylist_entries")
    op.drop_table("raffle_settings")
    with op.batch_alter_table("rounds", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_rounds_randomness_request_id"))
        batch_op.drop_index("ix_rounds_status")
    op.drop_table("rounds")
