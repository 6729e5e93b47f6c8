"""Balance mutation for membership passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.models.campaign import PointsLedgerEntry
from walletcast_api.models.wallet_pass import MembershipDetail


@dataclass(slots=True)
class MutationResult:
    success: bool
    error: str | None = None


class BalanceMutator(Protocol):
    """Grants points to a member pass."""

    async def grant_points(
        self,
        member_id: UUID,
        amount: int,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> MutationResult:
        ...


class LedgerBalanceMutator:
    """Writes a ledger entry and bumps the membership balances in one commit."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def grant_points(
        self,
        member_id: UUID,
        amount: int,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> MutationResult:
        if amount <= 0:
            return MutationResult(success=False, error="Grant amount must be positive")

        try:
            result = await self._db.execute(
                select(MembershipDetail).where(MembershipDetail.pass_id == member_id)
            )
            detail = result.scalar_one_or_none()
            if detail is None:
                detail = MembershipDetail(pass_id=member_id, points_balance=0, tier_points=0, lifetime_points=0)
                self._db.add(detail)

            self._db.add(
                PointsLedgerEntry(
                    pass_id=member_id,
                    amount=amount,
                    description=description,
                    metadata_json=metadata or {},
                )
            )
            detail.points_balance = (detail.points_balance or 0) + amount
            detail.tier_points = (detail.tier_points or 0) + amount
            detail.lifetime_points = (detail.lifetime_points or 0) + amount
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.warning("Points grant failed", member_id=str(member_id), amount=amount, error=str(exc))
            return MutationResult(success=False, error=str(exc))

        logger.info("Granted points", member_id=str(member_id), amount=amount, description=description)
        return MutationResult(success=True)


__all__ = ["BalanceMutator", "LedgerBalanceMutator", "MutationResult"]
