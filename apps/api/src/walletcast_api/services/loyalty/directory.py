"""Member directory: read-only access to programs and dispatch-eligible passes."""

from __future__ import annotations

from typing import Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from walletcast_api.domain.records import (
    CouponRecord,
    EventTicketRecord,
    MemberRecord,
    MembershipRecord,
    ProfileInfo,
    ProgramInfo,
    ensure_aware,
)
from walletcast_api.models.program import Program, ProtocolEnum
from walletcast_api.models.wallet_pass import MemberProfile, PassStatusEnum, WalletPass


class MemberDirectory(Protocol):
    """Collaborator interface for program and member lookups."""

    async def find_program(self, tenant_id: str, wallet_program_id: str) -> ProgramInfo | None:
        ...

    async def list_eligible_members(self, program: ProgramInfo) -> list[MemberRecord]:
        ...

    async def list_birthday_programs(self) -> list[ProgramInfo]:
        ...


class SqlMemberDirectory:
    """Directory backed by the relational store."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def find_program(self, tenant_id: str, wallet_program_id: str) -> ProgramInfo | None:
        stmt = (
            select(Program)
            .where(
                Program.tenant_id == tenant_id,
                Program.wallet_program_id == wallet_program_id,
            )
            .limit(1)
        )
        result = await self._db.execute(stmt)
        program = result.scalar_one_or_none()
        return ProgramInfo.from_model(program) if program else None

    async def list_eligible_members(self, program: ProgramInfo) -> list[MemberRecord]:
        """Return installed, active passes of the program in a single query."""

        stmt = (
            select(WalletPass)
            .options(
                selectinload(WalletPass.profile),
                selectinload(WalletPass.membership),
                selectinload(WalletPass.coupon),
                selectinload(WalletPass.event_ticket),
            )
            .where(
                WalletPass.program_id == program.id,
                WalletPass.protocol == program.protocol,
                WalletPass.status == PassStatusEnum.INSTALLED,
                WalletPass.is_active.is_(True),
            )
            .order_by(WalletPass.created_at.asc(), WalletPass.id.asc())
        )
        result = await self._db.execute(stmt)
        rows = result.scalars().all()
        records = [_to_record(row, program) for row in rows]
        logger.debug(
            "Loaded eligible passes",
            program_id=str(program.id),
            protocol=program.protocol.value,
            count=len(records),
        )
        return records

    async def list_birthday_programs(self) -> list[ProgramInfo]:
        stmt = (
            select(Program)
            .where(
                Program.birthday_enabled.is_(True),
                Program.protocol == ProtocolEnum.MEMBERSHIP,
            )
            .order_by(Program.created_at.asc(), Program.id.asc())
        )
        result = await self._db.execute(stmt)
        return [ProgramInfo.from_model(program) for program in result.scalars().all()]


def _to_profile(profile: MemberProfile | None) -> ProfileInfo | None:
    if profile is None:
        return None
    return ProfileInfo(
        email=profile.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        postal_code=profile.postal_code,
        birth_date=profile.birth_date,
    )


def _to_record(row: WalletPass, program: ProgramInfo) -> MemberRecord:
    common = dict(
        id=row.id,
        program_id=row.program_id,
        wallet_internal_id=row.wallet_internal_id,
        wallet_program_id=program.wallet_program_id,
        external_id=row.external_id,
        status=PassStatusEnum(row.status),
        is_active=bool(row.is_active),
        last_activity_at=ensure_aware(row.last_activity_at),
        profile=_to_profile(row.profile),
    )
    if program.protocol == ProtocolEnum.MEMBERSHIP:
        detail = row.membership
        return MembershipRecord(
            **common,
            has_detail=detail is not None,
            points_balance=detail.points_balance if detail else 0,
            tier_points=detail.tier_points if detail else 0,
        )
    if program.protocol == ProtocolEnum.COUPON:
        detail = row.coupon
        return CouponRecord(
            **common,
            has_detail=detail is not None,
            redeemed_at=ensure_aware(detail.redeemed_at) if detail else None,
            expires_at=ensure_aware(detail.expires_at) if detail else None,
        )
    detail = row.event_ticket
    return EventTicketRecord(
        **common,
        has_detail=detail is not None,
        checked_in_at=ensure_aware(detail.checked_in_at) if detail else None,
    )


__all__ = ["MemberDirectory", "SqlMemberDirectory"]
