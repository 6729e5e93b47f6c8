"""Program resolution scoped by tenant."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from walletcast_api.domain.records import ProgramInfo
from walletcast_api.models.program import ProtocolEnum
from walletcast_api.services.loyalty.directory import MemberDirectory

from .errors import (
    BroadcastSystemError,
    BroadcastValidationError,
    ProgramNotFoundError,
    ProtocolMismatchError,
)


def parse_protocol(value: str | ProtocolEnum) -> ProtocolEnum:
    try:
        return ProtocolEnum(value)
    except ValueError as exc:
        raise BroadcastValidationError(
            f"Unknown protocol '{value}'",
            details={"protocol": str(value)},
        ) from exc


async def validate_program(
    directory: MemberDirectory,
    tenant_id: str,
    wallet_program_id: str,
    protocol: str | ProtocolEnum,
) -> ProgramInfo:
    """Resolve a program by tenant id and wallet program id together.

    A wallet program id alone never addresses a program, so one tenant cannot
    reach another tenant's program by guessing its provider id.
    """

    tenant_id = (tenant_id or "").strip()
    wallet_program_id = (wallet_program_id or "").strip()
    if not tenant_id or not wallet_program_id:
        raise BroadcastValidationError("tenant_id and program_id are required")
    expected = parse_protocol(protocol)

    try:
        program = await directory.find_program(tenant_id, wallet_program_id)
    except SQLAlchemyError as exc:
        logger.exception("Program lookup failed", tenant_id=tenant_id)
        raise BroadcastSystemError("Failed to look up program") from exc

    if program is None:
        logger.info(
            "Program lookup miss",
            tenant_id=tenant_id,
            wallet_program_id=wallet_program_id,
        )
        raise ProgramNotFoundError(tenant_id, wallet_program_id)
    if program.protocol != expected:
        raise ProtocolMismatchError(expected.value, program.protocol.value)
    return program


__all__ = ["parse_protocol", "validate_program"]
