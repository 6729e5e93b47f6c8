"""Predicate evaluator: fetch a program's eligible passes once, filter in memory."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from walletcast_api.domain.records import (
    CouponRecord,
    EventTicketRecord,
    MemberRecord,
    MembershipRecord,
    PassRecord,
    ProgramInfo,
)
from walletcast_api.models.program import ProtocolEnum
from walletcast_api.services.loyalty.directory import MemberDirectory

from .errors import BroadcastSystemError, UnknownSegmentError
from .segments import EXPIRING_SOON_DAYS, SegmentConfig, SegmentEnum

Predicate = Callable[[MemberRecord], bool]
PredicateFactory = Callable[[ProgramInfo, SegmentConfig, datetime], Predicate]


def _geo(program: ProgramInfo, config: SegmentConfig, now: datetime) -> Predicate:
    prefixes = tuple(code.strip() for code in config.postal_codes if code and code.strip())

    def matches(record: PassRecord) -> bool:
        # An empty prefix list selects nobody.
        return bool(prefixes) and record.postal_code.strip().startswith(prefixes)

    return matches


def _csv(program: ProgramInfo, config: SegmentConfig, now: datetime) -> Predicate:
    wanted = {value.strip().lower() for value in config.member_ids if value and value.strip()}

    def matches(record: PassRecord) -> bool:
        external_id = (record.external_id or "").strip().lower()
        return (bool(external_id) and external_id in wanted) or str(record.id).lower() in wanted

    return matches


def _membership(segment: SegmentEnum) -> PredicateFactory:
    def factory(program: ProgramInfo, config: SegmentConfig, now: datetime) -> Predicate:
        tiers = program.tiers
        if segment == SegmentEnum.ALL:
            return lambda record: True
        if segment == SegmentEnum.TIER_BRONZE:
            return lambda record: record.tier_points <= tiers.bronze_max
        if segment == SegmentEnum.TIER_SILVER:
            return lambda record: tiers.bronze_max < record.tier_points <= tiers.silver_max
        if segment == SegmentEnum.TIER_GOLD:
            return lambda record: tiers.silver_max < record.tier_points <= tiers.gold_max
        if segment == SegmentEnum.TIER_PLATINUM:
            return lambda record: record.tier_points > tiers.gold_max
        if segment == SegmentEnum.VIP:
            return lambda record: record.points_balance >= config.vip_threshold
        cutoff = now - timedelta(days=config.dormant_days)
        return lambda record: record.last_activity_at is None or record.last_activity_at < cutoff

    return factory


def _coupon(segment: SegmentEnum) -> PredicateFactory:
    def factory(program: ProgramInfo, config: SegmentConfig, now: datetime) -> Predicate:
        if segment in (SegmentEnum.ALL_ACTIVE, SegmentEnum.UNREDEEMED):
            return lambda record: record.has_detail and record.redeemed_at is None
        horizon = now + timedelta(days=EXPIRING_SOON_DAYS)
        return lambda record: (
            record.has_detail
            and record.redeemed_at is None
            and record.expires_at is not None
            and now <= record.expires_at <= horizon
        )

    return factory


def _event_ticket(segment: SegmentEnum) -> PredicateFactory:
    def factory(program: ProgramInfo, config: SegmentConfig, now: datetime) -> Predicate:
        if segment == SegmentEnum.ALL_TICKETED:
            return lambda record: record.has_detail
        if segment == SegmentEnum.NOT_CHECKED_IN:
            return lambda record: record.has_detail and record.checked_in_at is None
        return lambda record: record.has_detail and record.checked_in_at is not None

    return factory


_SHARED: dict[SegmentEnum, PredicateFactory] = {SegmentEnum.GEO: _geo, SegmentEnum.CSV: _csv}

_REGISTRY: dict[ProtocolEnum, dict[SegmentEnum, PredicateFactory]] = {
    ProtocolEnum.MEMBERSHIP: {
        **{
            segment: _membership(segment)
            for segment in (
                SegmentEnum.ALL,
                SegmentEnum.TIER_BRONZE,
                SegmentEnum.TIER_SILVER,
                SegmentEnum.TIER_GOLD,
                SegmentEnum.TIER_PLATINUM,
                SegmentEnum.VIP,
                SegmentEnum.DORMANT,
            )
        },
        **_SHARED,
    },
    ProtocolEnum.COUPON: {
        **{
            segment: _coupon(segment)
            for segment in (SegmentEnum.ALL_ACTIVE, SegmentEnum.UNREDEEMED, SegmentEnum.EXPIRING_SOON)
        },
        **_SHARED,
    },
    ProtocolEnum.EVENT_TICKET: {
        **{
            segment: _event_ticket(segment)
            for segment in (SegmentEnum.ALL_TICKETED, SegmentEnum.NOT_CHECKED_IN, SegmentEnum.CHECKED_IN)
        },
        **_SHARED,
    },
}

_RECORD_TYPES: dict[ProtocolEnum, type] = {
    ProtocolEnum.MEMBERSHIP: MembershipRecord,
    ProtocolEnum.COUPON: CouponRecord,
    ProtocolEnum.EVENT_TICKET: EventTicketRecord,
}


def filter_records(
    program: ProgramInfo,
    records: Sequence[MemberRecord],
    segment: SegmentEnum,
    config: SegmentConfig | None = None,
    *,
    now: datetime | None = None,
) -> list[MemberRecord]:
    """Apply the segment predicate for ``program.protocol`` to pre-fetched records.

    Records of another protocol, or no longer dispatch-eligible, are dropped.
    Input order is preserved.
    """

    factory = _REGISTRY.get(program.protocol, {}).get(segment)
    if factory is None:
        raise UnknownSegmentError(segment, program.protocol)
    predicate = factory(program, config or SegmentConfig(), now or datetime.now(timezone.utc))
    record_type = _RECORD_TYPES[program.protocol]
    return [
        record
        for record in records
        if isinstance(record, record_type) and record.is_dispatch_eligible and predicate(record)
    ]


class PredicateEvaluator:
    """Resolves segment recipients through a member directory."""

    def __init__(self, directory: MemberDirectory) -> None:
        self._directory = directory

    async def fetch(self, program: ProgramInfo) -> list[MemberRecord]:
        try:
            return await self._directory.list_eligible_members(program)
        except SQLAlchemyError as exc:
            logger.exception("Member directory query failed", program_id=str(program.id))
            raise BroadcastSystemError(
                "Failed to load program members",
                details={"program_id": str(program.id)},
            ) from exc

    async def evaluate(
        self,
        program: ProgramInfo,
        segment: SegmentEnum,
        config: SegmentConfig | None = None,
        *,
        now: datetime | None = None,
    ) -> list[MemberRecord]:
        if segment not in _REGISTRY.get(program.protocol, {}):
            raise UnknownSegmentError(segment, program.protocol)
        records = await self.fetch(program)
        matched = filter_records(program, records, segment, config, now=now)
        logger.debug(
            "Evaluated segment",
            program_id=str(program.id),
            segment=segment.value,
            eligible=len(records),
            matched=len(matched),
        )
        return matched


__all__ = ["PredicateEvaluator", "filter_records"]
