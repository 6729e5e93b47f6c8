"""Wallet passes and their protocol-specific detail rows."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from walletcast_api.db.base import Base
from walletcast_api.models.program import ProtocolEnum


class PassStatusEnum(str, Enum):
    """Lifecycle status reported by the wallet provider."""

    ISSUED = "ISSUED"
    INSTALLED = "INSTALLED"
    UNINSTALLED = "UNINSTALLED"
    EXPIRED = "EXPIRED"


class MemberProfile(Base):
    """Person-level profile linked to one or more passes."""

    __tablename__ = "member_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    passes = relationship("WalletPass", back_populates="profile")


class WalletPass(Base):
    """A pass issued to a member under one program."""

    __tablename__ = "wallet_passes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    program_id = Column(UUID(as_uuid=True), ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
    profile_id = Column(UUID(as_uuid=True), ForeignKey("member_profiles.id", ondelete="SET NULL"), nullable=True)
    protocol = Column(SqlEnum(ProtocolEnum, name="pass_protocol_enum"), nullable=False)
    status = Column(
        SqlEnum(PassStatusEnum, name="pass_status_enum"),
        nullable=False,
        default=PassStatusEnum.ISSUED,
        server_default=PassStatusEnum.ISSUED.value,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    wallet_internal_id = Column(String, nullable=True)
    external_id = Column(String, nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    program = relationship("Program", back_populates="passes")
    profile = relationship("MemberProfile", back_populates="passes")
    membership = relationship(
        "MembershipDetail", back_populates="wallet_pass", uselist=False, cascade="all, delete-orphan"
    )
    coupon = relationship(
        "CouponDetail", back_populates="wallet_pass", uselist=False, cascade="all, delete-orphan"
    )
    event_ticket = relationship(
        "EventTicketDetail", back_populates="wallet_pass", uselist=False, cascade="all, delete-orphan"
    )


class MembershipDetail(Base):
    __tablename__ = "pass_membership_details"

    pass_id = Column(UUID(as_uuid=True), ForeignKey("wallet_passes.id", ondelete="CASCADE"), primary_key=True)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    tier_points = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_points = Column(Integer, nullable=False, default=0, server_default="0")

    wallet_pass = relationship("WalletPass", back_populates="membership")


class CouponDetail(Base):
    __tablename__ = "pass_coupon_details"

    pass_id = Column(UUID(as_uuid=True), ForeignKey("wallet_passes.id", ondelete="CASCADE"), primary_key=True)
    offer_details = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)

    wallet_pass = relationship("WalletPass", back_populates="coupon")


class EventTicketDetail(Base):
    __tablename__ = "pass_event_ticket_details"

    pass_id = Column(UUID(as_uuid=True), ForeignKey("wallet_passes.id", ondelete="CASCADE"), primary_key=True)
    event_name = Column(String, nullable=True)
    venue = Column(String, nullable=True)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)

    wallet_pass = relationship("WalletPass", back_populates="event_ticket")
