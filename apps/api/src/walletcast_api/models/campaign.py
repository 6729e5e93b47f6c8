"""Append-only audit records written by broadcasts and scheduled jobs."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from walletcast_api.db.base import Base


class CampaignLog(Base):
    """One row per live dispatch invocation."""

    __tablename__ = "campaign_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    program_id = Column(UUID(as_uuid=True), ForeignKey("programs.id", ondelete="SET NULL"), nullable=True, index=True)
    campaign_name = Column(String, nullable=False)
    recipient_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    message_body = Column(Text, nullable=False)
    target_segment = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class BirthdayClaim(Base):
    """Per-pass, per-year reward lock; the unique constraint is the idempotency boundary."""

    __tablename__ = "birthday_claims"
    __table_args__ = (
        UniqueConstraint("pass_id", "year", name="uq_birthday_claims_pass_year"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    pass_id = Column(UUID(as_uuid=True), ForeignKey("wallet_passes.id", ondelete="CASCADE"), nullable=False)
    program_id = Column(UUID(as_uuid=True), ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    year = Column(Integer, nullable=False, index=True)
    points_awarded = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PointsLedgerEntry(Base):
    """Balance mutation applied to a membership pass."""

    __tablename__ = "points_ledger_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    pass_id = Column(UUID(as_uuid=True), ForeignKey("wallet_passes.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    description = Column(String, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
