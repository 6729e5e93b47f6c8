"""Per-pass, per-year birthday claims backed by a unique constraint."""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.models.campaign import BirthdayClaim


class BirthdayClaimStore(Protocol):
    async def claim(self, *, pass_id: UUID, program_id: UUID, year: int, points_awarded: int) -> UUID | None:
        ...

    async def release(self, claim_id: UUID) -> None:
        ...


class SqlBirthdayClaimStore:
    """Claims commit immediately so concurrent runs collide on the constraint."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def claim(self, *, pass_id: UUID, program_id: UUID, year: int, points_awarded: int) -> UUID | None:
        """Insert the claim row; ``None`` means the pass was already gifted this year."""

        row = BirthdayClaim(pass_id=pass_id, program_id=program_id, year=year, points_awarded=points_awarded)
        self._db.add(row)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.info("Birthday claim already exists", pass_id=str(pass_id), year=year)
            return None
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        return row.id

    async def release(self, claim_id: UUID) -> None:
        try:
            await self._db.execute(delete(BirthdayClaim).where(BirthdayClaim.id == claim_id))
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        logger.info("Released birthday claim", claim_id=str(claim_id))


__all__ = ["BirthdayClaimStore", "SqlBirthdayClaimStore"]
