from __future__ import annotations

import itertools
from datetime import date, datetime
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import walletcast_api.models  # noqa: F401
from walletcast_api.app import create_app
from walletcast_api.db.base import Base
from walletcast_api.db.session import get_session
from walletcast_api.models import (
    CouponDetail,
    EventTicketDetail,
    MemberProfile,
    MembershipDetail,
    PassStatusEnum,
    Program,
    ProtocolEnum,
    WalletPass,
)
from walletcast_api.observability.broadcast import get_broadcast_store
from walletcast_api.services.broadcast.service import get_estimate_cache

_wallet_ids = itertools.count(1)


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_broadcast_state():
    get_broadcast_store().reset()
    get_estimate_cache().reset()
    yield


def make_program(
    *,
    tenant_id: str = "tenant-a",
    wallet_program_id: str | None = None,
    protocol: ProtocolEnum = ProtocolEnum.MEMBERSHIP,
    name: str = "Downtown Rewards",
    tiers: tuple[int | None, int | None, int | None] = (None, None, None),
    birthday_enabled: bool = False,
    birthday_reward_points: int = 0,
    birthday_message: str = "Happy birthday from Downtown Rewards!",
) -> Program:
    bronze, silver, gold = tiers
    return Program(
        id=uuid4(),
        tenant_id=tenant_id,
        name=name,
        protocol=protocol,
        wallet_program_id=wallet_program_id or f"pk-{uuid4().hex[:8]}",
        tier_bronze_max=bronze,
        tier_silver_max=silver,
        tier_gold_max=gold,
        birthday_enabled=birthday_enabled,
        birthday_reward_points=birthday_reward_points,
        birthday_message=birthday_message,
    )


def make_pass(
    program: Program,
    *,
    status: PassStatusEnum = PassStatusEnum.INSTALLED,
    is_active: bool = True,
    wallet_internal_id: str | None = None,
    external_id: str | None = None,
    last_activity_at: datetime | None = None,
    email: str | None = None,
    first_name: str | None = None,
    postal_code: str | None = None,
    birth_date: date | None = None,
    points_balance: int = 0,
    tier_points: int = 0,
    expires_at: datetime | None = None,
    redeemed_at: datetime | None = None,
    checked_in_at: datetime | None = None,
    with_detail: bool = True,
) -> WalletPass:
    profile = None
    if any(value is not None for value in (email, first_name, postal_code, birth_date)):
        profile = MemberProfile(
            id=uuid4(),
            email=email,
            first_name=first_name,
            last_name="Tester" if first_name else None,
            postal_code=postal_code,
            birth_date=birth_date,
        )
    wallet_pass = WalletPass(
        id=uuid4(),
        program_id=program.id,
        protocol=program.protocol,
        status=status,
        is_active=is_active,
        wallet_internal_id=wallet_internal_id or f"wi-{next(_wallet_ids)}",
        external_id=external_id,
        last_activity_at=last_activity_at,
        profile=profile,
    )
    if not with_detail:
        return wallet_pass
    if program.protocol == ProtocolEnum.MEMBERSHIP:
        wallet_pass.membership = MembershipDetail(
            points_balance=points_balance,
            tier_points=tier_points,
            lifetime_points=tier_points,
        )
    elif program.protocol == ProtocolEnum.COUPON:
        wallet_pass.coupon = CouponDetail(expires_at=expires_at, redeemed_at=redeemed_at)
    else:
        wallet_pass.event_ticket = EventTicketDetail(event_name="Launch Night", checked_in_at=checked_in_at)
    return wallet_pass


@pytest.fixture
def build_program():
    return make_program


@pytest.fixture
def build_pass():
    return make_pass


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
