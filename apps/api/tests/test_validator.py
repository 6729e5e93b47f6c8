import pytest
from sqlalchemy.exc import OperationalError

from walletcast_api.models.program import ProtocolEnum
from walletcast_api.services.broadcast.errors import (
    BroadcastSystemError,
    BroadcastValidationError,
    ProgramNotFoundError,
    ProtocolMismatchError,
)
from walletcast_api.services.broadcast.validator import validate_program
from walletcast_api.services.loyalty.directory import SqlMemberDirectory


@pytest.mark.asyncio
async def test_validate_program_resolves_by_tenant_and_wallet_id(session_factory, build_program) -> None:
    program = build_program(wallet_program_id="pk-downtown", tiers=(100, 200, 300))
    async with session_factory() as session:
        session.add(program)
        await session.commit()

    async with session_factory() as session:
        info = await validate_program(SqlMemberDirectory(session), "tenant-a", " pk-downtown ", "MEMBERSHIP")

    assert info.id == program.id
    assert info.protocol is ProtocolEnum.MEMBERSHIP
    assert info.tiers.gold_max == 300


@pytest.mark.asyncio
async def test_other_tenant_cannot_reach_program(session_factory, build_program) -> None:
    program = build_program(tenant_id="tenant-a", wallet_program_id="pk-shared")
    async with session_factory() as session:
        session.add(program)
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(ProgramNotFoundError) as excinfo:
            await validate_program(SqlMemberDirectory(session), "tenant-b", "pk-shared", "MEMBERSHIP")

    assert excinfo.value.code == "NOT_FOUND"
    assert excinfo.value.details == {"tenant_id": "tenant-b", "wallet_program_id": "pk-shared"}


@pytest.mark.asyncio
async def test_protocol_mismatch_names_both_protocols(session_factory, build_program) -> None:
    program = build_program(protocol=ProtocolEnum.COUPON)
    async with session_factory() as session:
        session.add(program)
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(ProtocolMismatchError) as excinfo:
            await validate_program(SqlMemberDirectory(session), "tenant-a", program.wallet_program_id, "MEMBERSHIP")

    assert excinfo.value.details == {"expected": "MEMBERSHIP", "actual": "COUPON"}
    assert "program is COUPON" in excinfo.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("tenant_id", "wallet_program_id", "protocol"),
    [
        ("", "pk-1", "MEMBERSHIP"),
        ("tenant-a", "   ", "MEMBERSHIP"),
        ("tenant-a", "pk-1", "LOYALTY"),
    ],
)
async def test_bad_input_is_rejected_before_lookup(tenant_id: str, wallet_program_id: str, protocol: str) -> None:
    class ExplodingDirectory:
        async def find_program(self, tenant_id: str, wallet_program_id: str):
            raise AssertionError("directory should not be queried")

    with pytest.raises(BroadcastValidationError):
        await validate_program(ExplodingDirectory(), tenant_id, wallet_program_id, protocol)


@pytest.mark.asyncio
async def test_directory_failure_is_a_system_error() -> None:
    class BrokenDirectory:
        async def find_program(self, tenant_id: str, wallet_program_id: str):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with pytest.raises(BroadcastSystemError) as excinfo:
        await validate_program(BrokenDirectory(), "tenant-a", "pk-1", "MEMBERSHIP")

    assert excinfo.value.code == "SYSTEM_FAILURE"
