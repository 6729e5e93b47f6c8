"""Create programs, wallet passes, campaign logs and birthday claims.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PROTOCOLS = ("MEMBERSHIP", "COUPON", "EVENT_TICKET")
PASS_STATUSES = ("ISSUED", "INSTALLED", "UNINSTALLED", "EXPIRED")


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "programs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("protocol", sa.Enum(*PROTOCOLS, name="program_protocol_enum"), nullable=False),
        sa.Column("wallet_program_id", sa.String(), nullable=False),
        sa.Column("tier_bronze_max", sa.Integer(), nullable=True),
        sa.Column("tier_silver_max", sa.Integer(), nullable=True),
        sa.Column("tier_gold_max", sa.Integer(), nullable=True),
        sa.Column("birthday_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("birthday_reward_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "birthday_message",
            sa.Text(),
            nullable=False,
            server_default="Happy Birthday! We added points to your pass.",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("tenant_id", "wallet_program_id", name="uq_programs_tenant_wallet_program"),
    )
    op.create_index("ix_programs_tenant_id", "programs", ["tenant_id"])
    op.create_index("ix_programs_wallet_program_id", "programs", ["wallet_program_id"])

    op.create_table(
        "member_profiles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("postal_code", sa.String(), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "wallet_passes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("program_id", _uuid(), nullable=False),
        sa.Column("profile_id", _uuid(), nullable=True),
        sa.Column("protocol", sa.Enum(*PROTOCOLS, name="pass_protocol_enum"), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*PASS_STATUSES, name="pass_status_enum"),
            nullable=False,
            server_default="ISSUED",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("wallet_internal_id", sa.String(), nullable=True),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["profile_id"], ["member_profiles.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_wallet_passes_program_id", "wallet_passes", ["program_id"])

    op.create_table(
        "pass_membership_details",
        sa.Column("pass_id", _uuid(), primary_key=True),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tier_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_points", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["pass_id"], ["wallet_passes.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "pass_coupon_details",
        sa.Column("pass_id", _uuid(), primary_key=True),
        sa.Column("offer_details", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["pass_id"], ["wallet_passes.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "pass_event_ticket_details",
        sa.Column("pass_id", _uuid(), primary_key=True),
        sa.Column("event_name", sa.String(), nullable=True),
        sa.Column("venue", sa.String(), nullable=True),
        sa.Column("checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["pass_id"], ["wallet_passes.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "campaign_logs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("program_id", _uuid(), nullable=True),
        sa.Column("campaign_name", sa.String(), nullable=False),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message_body", sa.Text(), nullable=False),
        sa.Column("target_segment", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_campaign_logs_program_id", "campaign_logs", ["program_id"])
    op.create_index("ix_campaign_logs_created_at", "campaign_logs", ["created_at"])

    op.create_table(
        "birthday_claims",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("pass_id", _uuid(), nullable=False),
        sa.Column("program_id", _uuid(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["pass_id"], ["wallet_passes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("pass_id", "year", name="uq_birthday_claims_pass_year"),
    )
    op.create_index("ix_birthday_claims_year", "birthday_claims", ["year"])

    op.create_table(
        "points_ledger_entries",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("pass_id", _uuid(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["pass_id"], ["wallet_passes.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_points_ledger_entries_pass_id", "points_ledger_entries", ["pass_id"])


def downgrade() -> None:
    op.drop_index("ix_points_ledger_entries_pass_id", table_name="points_ledger_entries")
    op.drop_table("points_ledger_entries")
    op.drop_index("ix_birthday_claims_year", table_name="birthday_claims")
    op.drop_table("birthday_claims")
    op.drop_index("ix_campaign_logs_created_at", table_name="campaign_logs")
    op.drop_index("ix_campaign_logs_program_id", table_name="campaign_logs")
    op.drop_table("campaign_logs")
    op.drop_table("pass_event_ticket_details")
    op.drop_table("pass_coupon_details")
    op.drop_table("pass_membership_details")
    op.drop_index("ix_wallet_passes_program_id", table_name="wallet_passes")
    op.drop_table("wallet_passes")
    op.drop_table("member_profiles")
    op.drop_index("ix_programs_wallet_program_id", table_name="programs")
    op.drop_index("ix_programs_tenant_id", table_name="programs")
    op.drop_table("programs")
    sa.Enum(name="pass_status_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="pass_protocol_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="program_protocol_enum").drop(op.get_bind(), checkfirst=True)
