from datetime import date

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from walletcast_api.core.settings import Settings
from walletcast_api.jobs.birthday import run_birthday_job
from walletcast_api.models import BirthdayClaim, CampaignLog, MembershipDetail, PointsLedgerEntry
from walletcast_api.models.program import ProtocolEnum
from walletcast_api.observability.broadcast import get_broadcast_store
from walletcast_api.services.broadcast.birthday import BirthdayOutcome, is_birthday
from walletcast_api.services.broadcast.service import BroadcastService
from walletcast_api.services.loyalty.points import LedgerBalanceMutator, MutationResult
from walletcast_api.services.notifications.gateway import InMemoryPushGateway

RUN_DATE = date(2026, 3, 14)
BIRTH_DATE = date(1990, 3, 14)


async def _seed(session_factory, *objects) -> None:
    async with session_factory() as session:
        session.add_all(objects)
        await session.commit()


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def test_birthday_matches_month_and_day_only() -> None:
    assert is_birthday(date(1985, 7, 4), date(2026, 7, 4))
    assert not is_birthday(date(1985, 7, 4), date(2026, 7, 5))
    assert not is_birthday(None, date(2026, 7, 4))
    assert not is_birthday(date(2000, 2, 29), date(2026, 2, 28))
    assert is_birthday(date(2000, 2, 29), date(2028, 2, 29))


@pytest.mark.asyncio
async def test_birthday_rewards_are_granted_once_per_year(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=250)
    celebrant = build_pass(program, birth_date=BIRTH_DATE, email="ana@example.com", points_balance=40)
    other_day = build_pass(program, birth_date=date(1990, 3, 15))
    await _seed(session_factory, program, celebrant, other_day)

    gateway = InMemoryPushGateway()
    async with session_factory() as session:
        first = await BroadcastService(session, gateway=gateway).run_birthday_job(test_date=RUN_DATE)
    async with session_factory() as session:
        second = await BroadcastService(session, gateway=gateway).run_birthday_job(test_date=RUN_DATE)

    assert (first.processed, first.success_count, first.already_gifted) == (1, 1, 0)
    assert first.programs_processed == 1
    assert first.details is None
    assert (second.processed, second.success_count, second.already_gifted) == (1, 0, 1)
    assert [sent["text"] for sent in gateway.sent_messages] == ["Happy birthday from Downtown Rewards!"]

    async with session_factory() as session:
        detail = (
            await session.execute(select(MembershipDetail).where(MembershipDetail.pass_id == celebrant.id))
        ).scalar_one()
        ledger = (await session.execute(select(PointsLedgerEntry))).scalars().all()
        logs = (await session.execute(select(CampaignLog).order_by(CampaignLog.created_at))).scalars().all()

    assert detail.points_balance == 290
    assert detail.lifetime_points == 250
    assert len(ledger) == 1
    assert ledger[0].description == "Birthday Bonus"
    assert ledger[0].metadata_json == {"source": "birthday_bot", "program_id": str(program.id)}
    assert await _count(session_factory, BirthdayClaim) == 1
    assert len(logs) == 2
    assert all(log.campaign_name == "Birthday Bot (Multi-Program)" for log in logs)
    assert all(log.program_id is None for log in logs)
    assert {log.message_body for log in logs} == {
        "Processed 1 programs, 0 already gifted",
        "Processed 1 programs, 1 already gifted",
    }


@pytest.mark.asyncio
async def test_next_year_is_a_new_claim(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=100)
    celebrant = build_pass(program, birth_date=BIRTH_DATE)
    await _seed(session_factory, program, celebrant)

    for run_date in (RUN_DATE, RUN_DATE.replace(year=2027)):
        async with session_factory() as session:
            result = await BroadcastService(session, gateway=InMemoryPushGateway()).run_birthday_job(
                test_date=run_date
            )
        assert result.success_count == 1

    assert await _count(session_factory, BirthdayClaim) == 2


class FailingMutator:
    def __init__(self) -> None:
        self.calls = 0

    async def grant_points(self, member_id, amount, description, metadata=None) -> MutationResult:
        self.calls += 1
        return MutationResult(success=False, error="ledger unavailable")


@pytest.mark.asyncio
async def test_failed_grant_releases_claim_for_retry(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=100)
    celebrant = build_pass(program, birth_date=BIRTH_DATE)
    await _seed(session_factory, program, celebrant)

    gateway = InMemoryPushGateway()
    async with session_factory() as session:
        failed = await BroadcastService(session, gateway=gateway, mutator=FailingMutator()).run_birthday_job(
            test_date=RUN_DATE
        )

    assert (failed.processed, failed.failed_count, failed.success_count) == (1, 1, 0)
    assert gateway.sent_messages == []
    assert await _count(session_factory, BirthdayClaim) == 0

    async with session_factory() as session:
        retried = await BroadcastService(session, gateway=gateway).run_birthday_job(test_date=RUN_DATE)

    assert retried.success_count == 1
    assert await _count(session_factory, BirthdayClaim) == 1


class LockOnce:
    """``before_cursor_execute`` hook failing the first statement with ``prefix``."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.tripped = False

    def __call__(self, conn, cursor, statement, parameters, context, executemany) -> None:
        if not self.tripped and statement.startswith(self.prefix):
            self.tripped = True
            raise OperationalError(statement, parameters, Exception("database is locked"))


class FailFirstMutator:
    def __init__(self, delegate: LedgerBalanceMutator) -> None:
        self.delegate = delegate
        self.calls = 0

    async def grant_points(self, member_id, amount, description, metadata=None) -> MutationResult:
        self.calls += 1
        if self.calls == 1:
            return MutationResult(success=False, error="ledger unavailable")
        return await self.delegate.grant_points(member_id, amount, description, metadata)


@pytest.mark.asyncio
async def test_claim_database_error_does_not_block_other_members(
    session_factory, build_program, build_pass
) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=100)
    first = build_pass(program, birth_date=BIRTH_DATE)
    second = build_pass(program, birth_date=BIRTH_DATE)
    await _seed(session_factory, program, first, second)

    hook = LockOnce("INSERT INTO birthday_claims")
    async with session_factory() as session:
        engine = session.bind.sync_engine
        event.listen(engine, "before_cursor_execute", hook)
        try:
            result = await BroadcastService(session, gateway=InMemoryPushGateway()).run_birthday_job(
                test_date=RUN_DATE
            )
        finally:
            event.remove(engine, "before_cursor_execute", hook)

    assert hook.tripped is True
    assert (result.processed, result.success_count, result.failed_count) == (2, 1, 1)
    assert result.campaign_log_id is not None
    assert await _count(session_factory, BirthdayClaim) == 1
    assert await _count(session_factory, PointsLedgerEntry) == 1
    assert await _count(session_factory, CampaignLog) == 1
    assert get_broadcast_store().snapshot().birthday == {"success": 1, "failed": 1}


@pytest.mark.asyncio
async def test_failed_claim_release_is_counted_and_run_continues(
    session_factory, build_program, build_pass
) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=100)
    await _seed(
        session_factory,
        program,
        build_pass(program, birth_date=BIRTH_DATE),
        build_pass(program, birth_date=BIRTH_DATE),
    )

    hook = LockOnce("DELETE FROM birthday_claims")
    async with session_factory() as session:
        engine = session.bind.sync_engine
        event.listen(engine, "before_cursor_execute", hook)
        try:
            service = BroadcastService(
                session,
                gateway=InMemoryPushGateway(),
                mutator=FailFirstMutator(LedgerBalanceMutator(session)),
            )
            result = await service.run_birthday_job(test_date=RUN_DATE)
        finally:
            event.remove(engine, "before_cursor_execute", hook)

    assert hook.tripped is True
    assert (result.processed, result.success_count, result.failed_count) == (2, 1, 1)
    assert result.campaign_log_id is not None
    assert await _count(session_factory, BirthdayClaim) == 2
    assert await _count(session_factory, PointsLedgerEntry) == 1
    assert await _count(session_factory, CampaignLog) == 1


@pytest.mark.asyncio
async def test_notification_failure_keeps_the_grant(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=75)
    celebrant = build_pass(program, birth_date=BIRTH_DATE, wallet_internal_id="wi-unreachable")
    await _seed(session_factory, program, celebrant)

    gateway = InMemoryPushGateway(failing_ids={"wi-unreachable"})
    async with session_factory() as session:
        result = await BroadcastService(session, gateway=gateway).run_birthday_job(test_date=RUN_DATE)

    assert result.success_count == 1
    assert await _count(session_factory, PointsLedgerEntry) == 1
    assert get_broadcast_store().snapshot().birthday == {"success": 1}


@pytest.mark.asyncio
async def test_dry_run_touches_nothing_and_caps_details(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=50)
    members = [build_pass(program, birth_date=BIRTH_DATE, first_name=f"Guest{i}") for i in range(3)]
    await _seed(session_factory, program, *members)

    gateway = InMemoryPushGateway()
    async with session_factory() as session:
        service = BroadcastService(session, gateway=gateway, settings=Settings(birthday_detail_limit=2))
        result = await service.run_birthday_job(dry_run=True, test_date=RUN_DATE)

    assert result.processed == 3
    assert result.success_count == 3
    assert len(result.details) == 2
    assert result.details_truncated is True
    assert result.details[0].status is BirthdayOutcome.SUCCESS
    assert result.details[0].reason == "Dry run - would be processed"
    assert result.campaign_log_id is None
    payload = result.as_dict()
    assert payload["dryRun"] is True
    assert payload["detailsTruncated"] is True
    assert payload["details"][0]["pointsAwarded"] == 50
    assert gateway.sent_messages == []
    assert await _count(session_factory, BirthdayClaim) == 0
    assert await _count(session_factory, PointsLedgerEntry) == 0
    assert await _count(session_factory, CampaignLog) == 0


@pytest.mark.asyncio
async def test_only_enabled_membership_programs_are_scanned(session_factory, build_program, build_pass) -> None:
    disabled = build_program(name="Quiet Club", birthday_enabled=False, birthday_reward_points=100)
    coupons = build_program(protocol=ProtocolEnum.COUPON, birthday_enabled=True, birthday_reward_points=100)
    await _seed(
        session_factory,
        disabled,
        coupons,
        build_pass(disabled, birth_date=BIRTH_DATE),
        build_pass(coupons, birth_date=BIRTH_DATE),
    )

    async with session_factory() as session:
        result = await BroadcastService(session, gateway=InMemoryPushGateway()).run_birthday_job(test_date=RUN_DATE)

    assert result.processed == 0
    assert result.programs_processed == 0
    assert await _count(session_factory, CampaignLog) == 1


@pytest.mark.asyncio
async def test_scheduled_job_entrypoint_accepts_iso_date(session_factory, build_program, build_pass) -> None:
    program = build_program(birthday_enabled=True, birthday_reward_points=10)
    await _seed(session_factory, program, build_pass(program, birth_date=BIRTH_DATE))

    summary = await run_birthday_job(
        session_factory=session_factory,
        test_date="2026-03-14",
        gateway=InMemoryPushGateway(),
    )

    assert summary["date"] == "2026-03-14"
    assert summary["successCount"] == 1
    assert summary["dryRun"] is False
    assert "campaignLogId" in summary
