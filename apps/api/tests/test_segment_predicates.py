from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from walletcast_api.domain.records import (
    CouponRecord,
    EventTicketRecord,
    MembershipRecord,
    ProfileInfo,
    ProgramInfo,
    TierThresholds,
)
from walletcast_api.models.program import ProtocolEnum
from walletcast_api.models.wallet_pass import PassStatusEnum
from walletcast_api.services.broadcast.errors import UnknownSegmentError
from walletcast_api.services.broadcast.predicates import filter_records
from walletcast_api.services.broadcast.segments import SegmentConfig, SegmentEnum

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
TIER_SEGMENTS = (
    SegmentEnum.TIER_BRONZE,
    SegmentEnum.TIER_SILVER,
    SegmentEnum.TIER_GOLD,
    SegmentEnum.TIER_PLATINUM,
)


def _program(protocol: ProtocolEnum = ProtocolEnum.MEMBERSHIP, **kwargs) -> ProgramInfo:
    return ProgramInfo(
        id=uuid4(),
        tenant_id="tenant-a",
        name="Test Program",
        protocol=protocol,
        wallet_program_id="pk-test",
        **kwargs,
    )


def _member(program: ProgramInfo, **kwargs) -> MembershipRecord:
    return MembershipRecord(
        id=kwargs.pop("id", uuid4()),
        program_id=program.id,
        wallet_internal_id=kwargs.pop("wallet_internal_id", "wi-1"),
        wallet_program_id=program.wallet_program_id,
        **kwargs,
    )


def _coupon(program: ProgramInfo, **kwargs) -> CouponRecord:
    return CouponRecord(
        id=uuid4(),
        program_id=program.id,
        wallet_internal_id="wi-c",
        wallet_program_id=program.wallet_program_id,
        **kwargs,
    )


def _ticket(program: ProgramInfo, **kwargs) -> EventTicketRecord:
    return EventTicketRecord(
        id=uuid4(),
        program_id=program.id,
        wallet_internal_id="wi-t",
        wallet_program_id=program.wallet_program_id,
        **kwargs,
    )


@pytest.mark.parametrize("points", [0, 1, 998, 999, 1000, 4999, 5000, 14999, 15000, 1_000_000])
def test_tier_bands_partition_point_range(points: int) -> None:
    program = _program()
    record = _member(program, tier_points=points)

    matches = [segment for segment in TIER_SEGMENTS if filter_records(program, [record], segment, now=NOW)]

    assert len(matches) == 1


def test_tier_bands_use_custom_thresholds() -> None:
    program = _program(tiers=TierThresholds(bronze_max=100, silver_max=200, gold_max=300))
    records = [_member(program, tier_points=points) for points in (100, 101, 200, 300, 301)]

    assert [r.tier_points for r in filter_records(program, records, SegmentEnum.TIER_BRONZE)] == [100]
    assert [r.tier_points for r in filter_records(program, records, SegmentEnum.TIER_SILVER)] == [101, 200]
    assert [r.tier_points for r in filter_records(program, records, SegmentEnum.TIER_GOLD)] == [300]
    assert [r.tier_points for r in filter_records(program, records, SegmentEnum.TIER_PLATINUM)] == [301]


def test_gold_includes_5000_and_silver_excludes_it() -> None:
    program = _program(tiers=TierThresholds(bronze_max=999, silver_max=4999, gold_max=14999))
    record = _member(program, tier_points=5000)

    assert filter_records(program, [record], SegmentEnum.TIER_GOLD) == [record]
    assert filter_records(program, [record], SegmentEnum.TIER_SILVER) == []


def test_vip_threshold_is_inclusive() -> None:
    program = _program()
    at_threshold = _member(program, points_balance=500)
    below = _member(program, points_balance=499)

    assert filter_records(program, [at_threshold, below], SegmentEnum.VIP) == [at_threshold]
    assert filter_records(program, [at_threshold, below], SegmentEnum.VIP, SegmentConfig(vip_threshold=499)) == [
        at_threshold,
        below,
    ]


def test_dormant_boundary_is_strict_and_null_activity_is_dormant() -> None:
    program = _program()
    never_active = _member(program, last_activity_at=None)
    exactly_thirty = _member(program, last_activity_at=NOW - timedelta(days=30))
    thirty_one = _member(program, last_activity_at=NOW - timedelta(days=31))
    recent = _member(program, last_activity_at=NOW - timedelta(days=2))

    matched = filter_records(
        program,
        [never_active, exactly_thirty, thirty_one, recent],
        SegmentEnum.DORMANT,
        SegmentConfig(dormant_days=30),
        now=NOW,
    )

    assert matched == [never_active, thirty_one]


@pytest.mark.parametrize("days", [1, 7, 365])
def test_null_activity_is_dormant_for_any_window(days: int) -> None:
    program = _program()
    record = _member(program, last_activity_at=None)

    assert filter_records(program, [record], SegmentEnum.DORMANT, SegmentConfig(dormant_days=days), now=NOW) == [
        record
    ]


def test_csv_matches_external_or_record_id_ignoring_case_and_whitespace() -> None:
    program = _program()
    by_external = _member(program, external_id="Member-001")
    by_id = _member(program, external_id="other")
    untouched = _member(program, external_id="member-999")

    config = SegmentConfig(member_ids=["  member-001 ", f" {str(by_id.id).upper()}", "", "   "])
    matched = filter_records(program, [by_external, by_id, untouched], SegmentEnum.CSV, config)

    assert matched == [by_external, by_id]


def test_geo_matches_postal_code_prefixes() -> None:
    program = _program()
    exact = _member(program, profile=ProfileInfo(postal_code="94107"))
    prefixed = _member(program, profile=ProfileInfo(postal_code="10001"))
    elsewhere = _member(program, profile=ProfileInfo(postal_code="60601"))
    no_profile = _member(program)

    config = SegmentConfig(postal_codes=["94107", "100"])
    matched = filter_records(program, [exact, prefixed, elsewhere, no_profile], SegmentEnum.GEO, config)

    assert matched == [exact, prefixed]
    assert filter_records(program, [exact, prefixed], SegmentEnum.GEO, SegmentConfig()) == []


def test_ineligible_records_are_dropped() -> None:
    program = _program()
    installed = _member(program)
    uninstalled = _member(program, status=PassStatusEnum.UNINSTALLED)
    inactive = _member(program, is_active=False)

    assert filter_records(program, [installed, uninstalled, inactive], SegmentEnum.ALL) == [installed]


def test_coupon_segments() -> None:
    program = _program(ProtocolEnum.COUPON)
    expiring = _coupon(program, expires_at=NOW + timedelta(days=3))
    later = _coupon(program, expires_at=NOW + timedelta(days=10))
    expired = _coupon(program, expires_at=NOW - timedelta(days=1))
    redeemed = _coupon(program, redeemed_at=NOW - timedelta(days=1), expires_at=NOW + timedelta(days=2))
    missing_detail = _coupon(program, has_detail=False)
    records = [expiring, later, expired, redeemed, missing_detail]

    assert filter_records(program, records, SegmentEnum.ALL_ACTIVE, now=NOW) == [expiring, later, expired]
    assert filter_records(program, records, SegmentEnum.UNREDEEMED, now=NOW) == [expiring, later, expired]
    assert filter_records(program, records, SegmentEnum.EXPIRING_SOON, now=NOW) == [expiring]


def test_event_ticket_segments() -> None:
    program = _program(ProtocolEnum.EVENT_TICKET)
    arrived = _ticket(program, checked_in_at=NOW)
    waiting = _ticket(program)
    missing_detail = _ticket(program, has_detail=False)
    records = [arrived, waiting, missing_detail]

    assert filter_records(program, records, SegmentEnum.ALL_TICKETED) == [arrived, waiting]
    assert filter_records(program, records, SegmentEnum.CHECKED_IN) == [arrived]
    assert filter_records(program, records, SegmentEnum.NOT_CHECKED_IN) == [waiting]


def test_records_of_another_protocol_never_match() -> None:
    program = _program()
    stray = _coupon(_program(ProtocolEnum.COUPON))

    assert filter_records(program, [stray], SegmentEnum.ALL) == []


def test_segment_without_filter_for_protocol_fails_loudly() -> None:
    program = _program()

    with pytest.raises(UnknownSegmentError):
        filter_records(program, [_member(program)], SegmentEnum.CHECKED_IN)
