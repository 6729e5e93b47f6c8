"""Campaign log store: append-only audit trail of dispatches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.domain.records import ensure_aware
from walletcast_api.models.campaign import CampaignLog


@dataclass(slots=True)
class CampaignLogEntry:
    """Entry to append; ``program_id`` is None for cross-program jobs."""

    program_id: UUID | None
    campaign_name: str
    recipient_count: int
    success_count: int
    failed_count: int
    message_body: str
    target_segment: str


@dataclass(slots=True)
class CampaignLogRecord:
    id: UUID
    program_id: UUID | None
    campaign_name: str
    recipient_count: int
    success_count: int
    failed_count: int
    message_body: str
    target_segment: str
    created_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "programId": str(self.program_id) if self.program_id else None,
            "campaignName": self.campaign_name,
            "recipientCount": self.recipient_count,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "messageBody": self.message_body,
            "targetSegment": self.target_segment,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class CampaignLogStore(Protocol):
    async def append(self, entry: CampaignLogEntry) -> UUID:
        ...

    async def query(self, program_id: UUID | None = None, limit: int = 50) -> list[CampaignLogRecord]:
        ...


class SqlCampaignLogStore:
    """Persists campaign logs; each append commits on its own."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def append(self, entry: CampaignLogEntry) -> UUID:
        row = CampaignLog(
            program_id=entry.program_id,
            campaign_name=entry.campaign_name,
            recipient_count=entry.recipient_count,
            success_count=entry.success_count,
            failed_count=entry.failed_count,
            message_body=entry.message_body,
            target_segment=entry.target_segment,
        )
        self._db.add(row)
        try:
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            raise
        logger.info(
            "Recorded campaign log",
            campaign_log_id=str(row.id),
            campaign_name=entry.campaign_name,
            recipients=entry.recipient_count,
            success=entry.success_count,
            failed=entry.failed_count,
        )
        return row.id

    async def query(self, program_id: UUID | None = None, limit: int = 50) -> list[CampaignLogRecord]:
        bounded_limit = max(1, min(limit, 500))
        stmt = select(CampaignLog).order_by(CampaignLog.created_at.desc(), CampaignLog.id.desc())
        if program_id is not None:
            stmt = stmt.where(CampaignLog.program_id == program_id)
        stmt = stmt.limit(bounded_limit)
        result = await self._db.execute(stmt)
        return [
            CampaignLogRecord(
                id=row.id,
                program_id=row.program_id,
                campaign_name=row.campaign_name,
                recipient_count=row.recipient_count,
                success_count=row.success_count,
                failed_count=row.failed_count,
                message_body=row.message_body,
                target_segment=row.target_segment,
                created_at=ensure_aware(row.created_at),
            )
            for row in result.scalars().all()
        ]


__all__ = [
    "CampaignLogEntry",
    "CampaignLogRecord",
    "CampaignLogStore",
    "SqlCampaignLogStore",
]
