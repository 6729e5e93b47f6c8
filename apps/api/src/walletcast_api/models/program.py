"""Loyalty program configuration owned by tenants."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from walletcast_api.db.base import Base


DEFAULT_BIRTHDAY_MESSAGE = "Happy Birthday! We added points to your pass."


class ProtocolEnum(str, Enum):
    """Wallet pass protocol a program is provisioned with."""

    MEMBERSHIP = "MEMBERSHIP"
    COUPON = "COUPON"
    EVENT_TICKET = "EVENT_TICKET"


class Program(Base):
    """Program record resolved by tenant and wallet-provider program id."""

    __tablename__ = "programs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "wallet_program_id", name="uq_programs_tenant_wallet_program"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    protocol = Column(SqlEnum(ProtocolEnum, name="program_protocol_enum"), nullable=False)
    wallet_program_id = Column(String, nullable=False, index=True)
    tier_bronze_max = Column(Integer, nullable=True)
    tier_silver_max = Column(Integer, nullable=True)
    tier_gold_max = Column(Integer, nullable=True)
    birthday_enabled = Column(Boolean, nullable=False, default=False, server_default="false")
    birthday_reward_points = Column(Integer, nullable=False, default=0, server_default="0")
    birthday_message = Column(Text, nullable=False, default=DEFAULT_BIRTHDAY_MESSAGE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    passes = relationship("WalletPass", back_populates="program")
