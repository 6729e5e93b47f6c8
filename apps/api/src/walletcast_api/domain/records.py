"""Detached, protocol-tagged views of programs and wallet passes.

Services never hand ORM rows across awaits; the directory converts rows into
these frozen dataclasses so that filters, dispatch and the birthday job work
on plain values regardless of session state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import ClassVar, Union
from uuid import UUID

from walletcast_api.models.program import DEFAULT_BIRTHDAY_MESSAGE, ProtocolEnum
from walletcast_api.models.wallet_pass import PassStatusEnum


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive timestamps (sqlite) as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class TierThresholds:
    """Upper bounds of the bronze, silver and gold bands (inclusive)."""

    bronze_max: int
    silver_max: int
    gold_max: int

    def as_dict(self) -> dict[str, int]:
        return {"bronze": self.bronze_max, "silver": self.silver_max, "gold": self.gold_max}


DEFAULT_TIER_THRESHOLDS = TierThresholds(bronze_max=999, silver_max=4999, gold_max=14999)


@dataclass(frozen=True, slots=True)
class BirthdaySettings:
    enabled: bool = False
    reward_points: int = 0
    message: str = DEFAULT_BIRTHDAY_MESSAGE


@dataclass(frozen=True, slots=True)
class ProgramInfo:
    """Validated program as seen by the broadcast engine."""

    id: UUID
    tenant_id: str
    name: str
    protocol: ProtocolEnum
    wallet_program_id: str
    tiers: TierThresholds = DEFAULT_TIER_THRESHOLDS
    birthday: BirthdaySettings = BirthdaySettings()

    @classmethod
    def from_model(cls, program) -> "ProgramInfo":
        tiers = TierThresholds(
            bronze_max=program.tier_bronze_max
            if program.tier_bronze_max is not None
            else DEFAULT_TIER_THRESHOLDS.bronze_max,
            silver_max=program.tier_silver_max
            if program.tier_silver_max is not None
            else DEFAULT_TIER_THRESHOLDS.silver_max,
            gold_max=program.tier_gold_max
            if program.tier_gold_max is not None
            else DEFAULT_TIER_THRESHOLDS.gold_max,
        )
        birthday = BirthdaySettings(
            enabled=bool(program.birthday_enabled),
            reward_points=int(program.birthday_reward_points or 0),
            message=program.birthday_message or DEFAULT_BIRTHDAY_MESSAGE,
        )
        return cls(
            id=program.id,
            tenant_id=program.tenant_id,
            name=program.name,
            protocol=ProtocolEnum(program.protocol),
            wallet_program_id=program.wallet_program_id,
            tiers=tiers,
            birthday=birthday,
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class ProfileInfo:
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    postal_code: str | None = None
    birth_date: date | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class PassRecord:
    """Fields shared by every protocol's pass record."""

    id: UUID
    program_id: UUID
    wallet_internal_id: str | None
    wallet_program_id: str
    external_id: str | None = None
    status: PassStatusEnum = PassStatusEnum.INSTALLED
    is_active: bool = True
    last_activity_at: datetime | None = None
    profile: ProfileInfo | None = None
    has_detail: bool = True

    @property
    def is_dispatch_eligible(self) -> bool:
        return self.status == PassStatusEnum.INSTALLED and self.is_active

    @property
    def postal_code(self) -> str:
        if self.profile is None:
            return ""
        return self.profile.postal_code or ""

    @property
    def birth_date(self) -> date | None:
        return self.profile.birth_date if self.profile else None


@dataclass(frozen=True, slots=True, kw_only=True)
class MembershipRecord(PassRecord):
    protocol: ClassVar[ProtocolEnum] = ProtocolEnum.MEMBERSHIP

    points_balance: int = 0
    tier_points: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class CouponRecord(PassRecord):
    protocol: ClassVar[ProtocolEnum] = ProtocolEnum.COUPON

    redeemed_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class EventTicketRecord(PassRecord):
    protocol: ClassVar[ProtocolEnum] = ProtocolEnum.EVENT_TICKET

    checked_in_at: datetime | None = None


MemberRecord = Union[MembershipRecord, CouponRecord, EventTicketRecord]


__all__ = [
    "BirthdaySettings",
    "CouponRecord",
    "DEFAULT_TIER_THRESHOLDS",
    "EventTicketRecord",
    "MemberRecord",
    "MembershipRecord",
    "PassRecord",
    "ProfileInfo",
    "ProgramInfo",
    "TierThresholds",
    "ensure_aware",
]
