"""Dispatch engine: preview and rate-limited batch sends to wallet passes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from walletcast_api.domain.records import MemberRecord, MembershipRecord, ProgramInfo
from walletcast_api.observability.broadcast import BroadcastObservabilityStore, get_broadcast_store
from walletcast_api.services.notifications.campaign_log import CampaignLogEntry, CampaignLogStore
from walletcast_api.services.notifications.gateway import PushGateway

from .errors import BroadcastSystemError, BroadcastValidationError
from .predicates import PredicateEvaluator
from .segments import SegmentConfig, SegmentEnum, describe_segment

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class SampleRecipient:
    id: UUID
    external_id: str | None
    email: str
    first_name: str
    last_name: str
    postal_code: str
    points_balance: int | None = None
    tier_points: int | None = None
    last_activity_at: datetime | None = None

    @classmethod
    def from_record(cls, record: MemberRecord) -> "SampleRecipient":
        profile = record.profile
        is_membership = isinstance(record, MembershipRecord)
        return cls(
            id=record.id,
            external_id=record.external_id,
            email=(profile.email if profile else None) or "unknown",
            first_name=(profile.first_name if profile else None) or "Unknown",
            last_name=(profile.last_name if profile else None) or "",
            postal_code=record.postal_code,
            points_balance=record.points_balance if is_membership else None,
            tier_points=record.tier_points if is_membership else None,
            last_activity_at=record.last_activity_at,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "externalId": self.external_id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "zipCode": self.postal_code or None,
            "pointsBalance": self.points_balance,
            "tierPoints": self.tier_points,
            "lastUpdated": self.last_activity_at.isoformat() if self.last_activity_at else None,
        }


@dataclass(slots=True)
class SegmentPreview:
    segment: SegmentEnum
    protocol: str
    description: str
    count: int
    sample_recipients: list[SampleRecipient] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "segment": self.segment.value,
            "protocol": self.protocol,
            "description": self.description,
            "count": self.count,
            "sampleMembers": [sample.as_dict() for sample in self.sample_recipients],
        }


@dataclass(slots=True)
class BroadcastResult:
    """Aggregate outcome of a dispatch; partial failure is still ``success``."""

    total_recipients: int
    success_count: int
    failed_count: int
    target_segment: str
    protocol: str
    segment_description: str
    message_preview: str
    dry_run: bool = False
    batches: int = 0
    campaign_log_id: UUID | None = None
    sample_recipients: list[SampleRecipient] | None = None
    success: bool = True

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "totalRecipients": self.total_recipients,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "dryRun": self.dry_run,
            "messagePreview": self.message_preview,
            "targetSegment": self.target_segment,
            "protocol": self.protocol,
            "segmentDescription": self.segment_description,
        }
        if self.campaign_log_id is not None:
            payload["campaignLogId"] = str(self.campaign_log_id)
        if self.sample_recipients is not None:
            payload["sampleRecipients"] = [sample.as_dict() for sample in self.sample_recipients]
        return payload


def validate_message(message: str | None, *, min_length: int = 5, max_length: int = 500) -> str:
    """Return the trimmed message or raise before any work is done."""

    text = (message or "").strip()
    if len(text) < min_length:
        raise BroadcastValidationError(
            f"Message must be at least {min_length} characters",
            details={"length": len(text)},
        )
    if len(text) > max_length:
        raise BroadcastValidationError(
            f"Message must be at most {max_length} characters",
            details={"length": len(text)},
        )
    return text


class DispatchEngine:
    """Evaluates a segment once and pushes to every recipient in fixed-size batches.

    Sends within a batch run concurrently; batches run in order with
    ``batch_delay_seconds`` between them. One campaign log entry is written
    after the final batch of a live send.
    """

    def __init__(
        self,
        evaluator: PredicateEvaluator,
        gateway: PushGateway,
        log_store: CampaignLogStore,
        *,
        batch_size: int = 50,
        batch_delay_seconds: float = 0.2,
        send_timeout_seconds: float = 5.0,
        sample_size: int = 5,
        min_message_length: int = 5,
        max_message_length: int = 500,
        sleep: Sleep = asyncio.sleep,
        observability: BroadcastObservabilityStore | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._evaluator = evaluator
        self._gateway = gateway
        self._log_store = log_store
        self._batch_size = batch_size
        self._batch_delay_seconds = batch_delay_seconds
        self._send_timeout_seconds = send_timeout_seconds
        self._sample_size = sample_size
        self._min_message_length = min_message_length
        self._max_message_length = max_message_length
        self._sleep = sleep
        self._observability = observability or get_broadcast_store()

    def validate_message(self, message: str | None) -> str:
        return validate_message(
            message,
            min_length=self._min_message_length,
            max_length=self._max_message_length,
        )

    async def preview(
        self,
        program: ProgramInfo,
        segment: SegmentEnum,
        config: SegmentConfig | None = None,
        message: str | None = None,
    ) -> SegmentPreview:
        """Resolve the audience without sending or logging anything."""

        if message is not None:
            self.validate_message(message)
        recipients = await self._evaluator.evaluate(program, segment, config)
        return SegmentPreview(
            segment=segment,
            protocol=program.protocol.value,
            description=describe_segment(segment, program, config),
            count=len(recipients),
            sample_recipients=self._samples(recipients),
        )

    async def send(
        self,
        program: ProgramInfo,
        segment: SegmentEnum,
        config: SegmentConfig | None,
        message: str,
        campaign_name: str | None = None,
        *,
        dry_run: bool = False,
    ) -> BroadcastResult:
        text = self.validate_message(message)
        recipients = await self._evaluator.evaluate(program, segment, config)
        description = describe_segment(segment, program, config)
        self._observability.record_broadcast(segment.value, dry_run=dry_run)
        logger.info(
            "Resolved broadcast audience",
            program_id=str(program.id),
            segment=segment.value,
            recipients=len(recipients),
            dry_run=dry_run,
        )

        if dry_run:
            return BroadcastResult(
                total_recipients=len(recipients),
                success_count=0,
                failed_count=0,
                target_segment=segment.value,
                protocol=program.protocol.value,
                segment_description=description,
                message_preview=text,
                dry_run=True,
                sample_recipients=self._samples(recipients),
            )

        success_count, failed_count, batches = await self._dispatch(recipients, text)
        entry = CampaignLogEntry(
            program_id=program.id,
            campaign_name=campaign_name or f"{segment.value} Broadcast",
            recipient_count=len(recipients),
            success_count=success_count,
            failed_count=failed_count,
            message_body=text,
            target_segment=segment.value,
        )
        try:
            log_id = await self._log_store.append(entry)
        except SQLAlchemyError as exc:
            logger.exception("Campaign log write failed", program_id=str(program.id))
            raise BroadcastSystemError(
                "Broadcast dispatched but the campaign log could not be written",
                details={
                    "total_recipients": len(recipients),
                    "success_count": success_count,
                    "failed_count": failed_count,
                },
            ) from exc

        logger.bind(
            summary={
                "program_id": str(program.id),
                "segment": segment.value,
                "recipients": len(recipients),
                "success": success_count,
                "failed": failed_count,
                "batches": batches,
            }
        ).info("Broadcast complete")
        return BroadcastResult(
            total_recipients=len(recipients),
            success_count=success_count,
            failed_count=failed_count,
            target_segment=segment.value,
            protocol=program.protocol.value,
            segment_description=description,
            message_preview=text,
            batches=batches,
            campaign_log_id=log_id,
        )

    async def send_one(self, wallet_internal_id: str | None, wallet_program_id: str, message: str) -> bool:
        """Push to a single pass; every failure becomes ``False``."""

        if not wallet_internal_id:
            logger.warning("Skipping pass without wallet internal id", wallet_program_id=wallet_program_id)
            self._observability.record_send(False)
            return False
        try:
            result = await asyncio.wait_for(
                self._gateway.send_message(wallet_internal_id, wallet_program_id, message),
                timeout=self._send_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Wallet push timed out",
                wallet_internal_id=wallet_internal_id,
                timeout_seconds=self._send_timeout_seconds,
            )
            self._observability.record_send(False)
            return False
        except Exception as exc:
            logger.warning(
                "Wallet push raised",
                wallet_internal_id=wallet_internal_id,
                error=str(exc) or exc.__class__.__name__,
            )
            self._observability.record_send(False)
            return False

        if not result.success:
            logger.warning("Wallet push failed", wallet_internal_id=wallet_internal_id, error=result.error)
        self._observability.record_send(result.success)
        return result.success

    async def _dispatch(self, recipients: Sequence[MemberRecord], message: str) -> tuple[int, int, int]:
        success_count = 0
        failed_count = 0
        batches = 0
        for start in range(0, len(recipients), self._batch_size):
            if start:
                await self._sleep(self._batch_delay_seconds)
            batch = recipients[start : start + self._batch_size]
            batches += 1
            self._observability.record_batch(len(batch))
            outcomes = await asyncio.gather(
                *(self.send_one(record.wallet_internal_id, record.wallet_program_id, message) for record in batch)
            )
            batch_success = sum(1 for outcome in outcomes if outcome)
            success_count += batch_success
            failed_count += len(batch) - batch_success
            logger.debug(
                "Dispatched batch",
                batch=batches,
                size=len(batch),
                success=batch_success,
                failed=len(batch) - batch_success,
            )
        return success_count, failed_count, batches

    def _samples(self, recipients: Sequence[MemberRecord]) -> list[SampleRecipient]:
        return [SampleRecipient.from_record(record) for record in recipients[: self._sample_size]]


__all__ = [
    "BroadcastResult",
    "DispatchEngine",
    "SampleRecipient",
    "SegmentPreview",
    "validate_message",
]
