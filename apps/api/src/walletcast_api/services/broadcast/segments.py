"""Segment catalog: per-protocol targeting rules and their descriptions."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from walletcast_api.domain.records import ProgramInfo
from walletcast_api.models.program import ProtocolEnum

from .errors import BroadcastValidationError, UnknownSegmentError

DEFAULT_VIP_THRESHOLD = 500
DEFAULT_DORMANT_DAYS = 30
EXPIRING_SOON_DAYS = 7


class SegmentEnum(str, Enum):
    ALL = "ALL"
    TIER_BRONZE = "TIER_BRONZE"
    TIER_SILVER = "TIER_SILVER"
    TIER_GOLD = "TIER_GOLD"
    TIER_PLATINUM = "TIER_PLATINUM"
    VIP = "VIP"
    DORMANT = "DORMANT"
    GEO = "GEO"
    CSV = "CSV"
    ALL_ACTIVE = "ALL_ACTIVE"
    UNREDEEMED = "UNREDEEMED"
    EXPIRING_SOON = "EXPIRING_SOON"
    ALL_TICKETED = "ALL_TICKETED"
    NOT_CHECKED_IN = "NOT_CHECKED_IN"
    CHECKED_IN = "CHECKED_IN"


class SegmentConfig(BaseModel):
    """Caller-supplied segment parameters."""

    model_config = ConfigDict(populate_by_name=True)

    vip_threshold: int = Field(default=DEFAULT_VIP_THRESHOLD, ge=0, alias="vipThreshold")
    dormant_days: int = Field(default=DEFAULT_DORMANT_DAYS, ge=1, le=365, alias="dormantDays")
    postal_codes: list[str] = Field(default_factory=list, alias="zipCodes")
    member_ids: list[str] = Field(default_factory=list, alias="memberIds")


@dataclass(slots=True)
class SegmentDefinition:
    type: SegmentEnum
    name: str
    description: str
    icon: str
    requires_config: bool = False
    config_type: str | None = None
    estimated_count: int | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "requiresConfig": self.requires_config,
        }
        if self.config_type:
            payload["configType"] = self.config_type
        if self.estimated_count is not None:
            payload["estimatedCount"] = self.estimated_count
        return payload


_SHARED_SEGMENTS: tuple[tuple, ...] = (
    (SegmentEnum.GEO, "Geographic", "Target by ZIP code", "MapPin", True, "zipCodes"),
    (SegmentEnum.CSV, "Upload List", "Target specific IDs from CSV", "FileSpreadsheet", True, "memberIds"),
)

_CATALOG: dict[ProtocolEnum, tuple[tuple, ...]] = {
    ProtocolEnum.MEMBERSHIP: (
        (SegmentEnum.ALL, "All Members", "All active members", "Users", False, None),
        (SegmentEnum.TIER_BRONZE, "Bronze Tier", "Bronze tier members", "Medal", False, None),
        (SegmentEnum.TIER_SILVER, "Silver Tier", "Silver tier members", "Award", False, None),
        (SegmentEnum.TIER_GOLD, "Gold Tier", "Gold tier members", "Star", False, None),
        (SegmentEnum.TIER_PLATINUM, "Platinum Tier", "Platinum tier members", "Crown", False, None),
        (SegmentEnum.VIP, "VIP (Points)", "High-value by points", "Gem", True, "vipThreshold"),
        (SegmentEnum.DORMANT, "Dormant", "Inactive members", "Clock", True, "dormantDays"),
    )
    + _SHARED_SEGMENTS,
    ProtocolEnum.COUPON: (
        (SegmentEnum.ALL_ACTIVE, "All Active", "All unredeemed coupons", "Ticket", False, None),
        (SegmentEnum.UNREDEEMED, "Unredeemed", "Not yet used", "TicketCheck", False, None),
        (SegmentEnum.EXPIRING_SOON, "Expiring Soon", "Expires within 7 days", "AlertTriangle", False, None),
    )
    + _SHARED_SEGMENTS,
    ProtocolEnum.EVENT_TICKET: (
        (SegmentEnum.ALL_TICKETED, "All Ticket Holders", "All event attendees", "Users", False, None),
        (SegmentEnum.NOT_CHECKED_IN, "Not Checked In", "Awaiting arrival", "UserX", False, None),
        (SegmentEnum.CHECKED_IN, "Checked In", "Already at venue", "UserCheck", False, None),
    )
    + _SHARED_SEGMENTS,
}


def catalog_for(protocol: ProtocolEnum) -> list[SegmentDefinition]:
    """Return fresh, ordered segment definitions for ``protocol``."""

    return [
        SegmentDefinition(
            type=segment,
            name=name,
            description=description,
            icon=icon,
            requires_config=requires_config,
            config_type=config_type,
        )
        for segment, name, description, icon, requires_config, config_type in _CATALOG[protocol]
    ]


def applicable_segments(protocol: ProtocolEnum) -> set[SegmentEnum]:
    return {entry[0] for entry in _CATALOG[protocol]}


def is_estimable(definition: SegmentDefinition) -> bool:
    return not definition.requires_config and definition.type not in (SegmentEnum.GEO, SegmentEnum.CSV)


def parse_segment(value: str | SegmentEnum, protocol: ProtocolEnum) -> SegmentEnum:
    """Coerce caller input into a segment applicable to ``protocol``."""

    try:
        segment = SegmentEnum(value)
    except ValueError as exc:
        raise BroadcastValidationError(
            f"Unknown segment '{value}'",
            details={"segment": str(value), "protocol": protocol.value},
        ) from exc
    if segment not in applicable_segments(protocol):
        raise BroadcastValidationError(
            f"Segment {segment.value} is not available for {protocol.value} programs",
            details={"segment": segment.value, "protocol": protocol.value},
        )
    return segment


def require_config(segment: str | SegmentEnum, config: SegmentConfig) -> None:
    """GEO and CSV cannot run without their lists."""

    if segment == SegmentEnum.GEO and not _clean(config.postal_codes):
        raise BroadcastValidationError("GEO segment requires at least one ZIP code")
    if segment == SegmentEnum.CSV and not _clean(config.member_ids):
        raise BroadcastValidationError("CSV segment requires at least one member id")


def describe_segment(
    segment: SegmentEnum,
    program: ProgramInfo,
    config: SegmentConfig | None = None,
) -> str:
    config = config or SegmentConfig()
    tiers = program.tiers
    if segment == SegmentEnum.ALL:
        return "All active members with installed passes"
    if segment == SegmentEnum.TIER_BRONZE:
        return f"Bronze tier (0-{tiers.bronze_max} points)"
    if segment == SegmentEnum.TIER_SILVER:
        return f"Silver tier ({tiers.bronze_max + 1}-{tiers.silver_max} points)"
    if segment == SegmentEnum.TIER_GOLD:
        return f"Gold tier ({tiers.silver_max + 1}-{tiers.gold_max} points)"
    if segment == SegmentEnum.TIER_PLATINUM:
        return f"Platinum tier ({tiers.gold_max + 1}+ points)"
    if segment == SegmentEnum.VIP:
        return f"High-value members ({config.vip_threshold}+ points)"
    if segment == SegmentEnum.DORMANT:
        return f"Inactive members (no activity for {config.dormant_days}+ days)"
    if segment == SegmentEnum.GEO:
        zips = ", ".join(_clean(config.postal_codes)) or "specified ZIP codes"
        return f"Members in ZIP codes: {zips}"
    if segment == SegmentEnum.CSV:
        return f"Targeted list ({len(_clean(config.member_ids))} member IDs)"
    if segment == SegmentEnum.ALL_ACTIVE:
        return "All active unredeemed coupons"
    if segment == SegmentEnum.UNREDEEMED:
        return "Coupons not yet redeemed"
    if segment == SegmentEnum.EXPIRING_SOON:
        return f"Coupons expiring within {EXPIRING_SOON_DAYS} days"
    if segment == SegmentEnum.ALL_TICKETED:
        return "All ticket holders"
    if segment == SegmentEnum.NOT_CHECKED_IN:
        return "Ticket holders not yet checked in"
    if segment == SegmentEnum.CHECKED_IN:
        return "Ticket holders already checked in"
    raise UnknownSegmentError(segment, program.protocol)


def _clean(values: Sequence[str]) -> list[str]:
    return [value.strip() for value in values if value and value.strip()]


class SegmentEstimateCache:
    """Per-program estimated counts with a time-to-live."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[UUID, tuple[float, dict[SegmentEnum, int]]] = {}

    def get(self, program_id: UUID) -> dict[SegmentEnum, int] | None:
        if self._ttl <= 0:
            return None
        with self._lock:
            entry = self._entries.get(program_id)
            if entry is None:
                return None
            stored_at, counts = entry
            if self._clock() - stored_at > self._ttl:
                self._entries.pop(program_id, None)
                return None
            return dict(counts)

    def put(self, program_id: UUID, counts: dict[SegmentEnum, int]) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[program_id] = (self._clock(), dict(counts))

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = [
    "DEFAULT_DORMANT_DAYS",
    "DEFAULT_VIP_THRESHOLD",
    "EXPIRING_SOON_DAYS",
    "SegmentConfig",
    "SegmentDefinition",
    "SegmentEnum",
    "SegmentEstimateCache",
    "applicable_segments",
    "catalog_for",
    "describe_segment",
    "is_estimable",
    "parse_segment",
    "require_config",
]
