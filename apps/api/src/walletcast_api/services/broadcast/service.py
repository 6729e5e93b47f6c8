"""Broadcast service: the caller-facing surface of the engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.core.settings import Settings, get_settings
from walletcast_api.domain.records import ProgramInfo, TierThresholds
from walletcast_api.models.program import ProtocolEnum
from walletcast_api.observability.broadcast import BroadcastObservabilityStore, get_broadcast_store
from walletcast_api.services.loyalty.birthday_claims import SqlBirthdayClaimStore
from walletcast_api.services.loyalty.directory import MemberDirectory, SqlMemberDirectory
from walletcast_api.services.loyalty.points import BalanceMutator, LedgerBalanceMutator
from walletcast_api.services.notifications.campaign_log import CampaignLogRecord, SqlCampaignLogStore
from walletcast_api.services.notifications.gateway import PushGateway, build_push_gateway

from .birthday import BirthdayJob, BirthdayRunResult
from .dispatch import BroadcastResult, DispatchEngine, SegmentPreview
from .errors import BroadcastSystemError, BroadcastValidationError, ProgramNotFoundError
from .predicates import PredicateEvaluator, filter_records
from .segments import (
    SegmentConfig,
    SegmentDefinition,
    SegmentEnum,
    SegmentEstimateCache,
    catalog_for,
    is_estimable,
    parse_segment,
    require_config,
)
from .validator import validate_program

CSV_CAMPAIGN_NAME = "Targeted Campaign (CSV)"

_estimate_cache: SegmentEstimateCache | None = None


def get_estimate_cache() -> SegmentEstimateCache:
    global _estimate_cache
    if _estimate_cache is None:
        _estimate_cache = SegmentEstimateCache(get_settings().segment_estimate_cache_ttl_seconds)
    return _estimate_cache


@dataclass(slots=True)
class SegmentCatalog:
    protocol: ProtocolEnum
    segments: list[SegmentDefinition] = field(default_factory=list)
    tier_thresholds: TierThresholds | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "protocol": self.protocol.value,
            "segments": [segment.as_dict() for segment in self.segments],
        }
        if self.tier_thresholds is not None:
            payload["tierThresholds"] = self.tier_thresholds.as_dict()
        return payload


class BroadcastService:
    """Validates, segments and dispatches broadcasts for one database session."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        gateway: PushGateway | None = None,
        directory: MemberDirectory | None = None,
        mutator: BalanceMutator | None = None,
        settings: Settings | None = None,
        sleep=asyncio.sleep,
        estimate_cache: SegmentEstimateCache | None = None,
        observability: BroadcastObservabilityStore | None = None,
    ) -> None:
        self._db = session
        self._settings = settings or get_settings()
        self._directory = directory or SqlMemberDirectory(session)
        self._mutator = mutator or LedgerBalanceMutator(session)
        self._evaluator = PredicateEvaluator(self._directory)
        self._log_store = SqlCampaignLogStore(session)
        self._observability = observability or get_broadcast_store()
        self._estimate_cache = estimate_cache or get_estimate_cache()
        self._engine = DispatchEngine(
            self._evaluator,
            gateway or build_push_gateway(),
            self._log_store,
            batch_size=self._settings.broadcast_batch_size,
            batch_delay_seconds=self._settings.broadcast_batch_delay_ms / 1000,
            send_timeout_seconds=self._settings.wallet_gateway_timeout_seconds,
            sample_size=self._settings.broadcast_sample_size,
            min_message_length=self._settings.broadcast_min_message_length,
            max_message_length=self._settings.broadcast_max_message_length,
            sleep=sleep,
            observability=self._observability,
        )

    @property
    def engine(self) -> DispatchEngine:
        return self._engine

    async def validate_program(self, tenant_id: str, wallet_program_id: str, protocol: str) -> ProgramInfo:
        return await validate_program(self._directory, tenant_id, wallet_program_id, protocol)

    async def list_segments(self, tenant_id: str, wallet_program_id: str, protocol: str) -> SegmentCatalog:
        """Segments for the program's protocol, with estimates where no config is needed."""

        program = await self.validate_program(tenant_id, wallet_program_id, protocol)
        segments = catalog_for(program.protocol)
        counts = await self._estimate_counts(program, segments)
        for segment in segments:
            if segment.type in counts:
                segment.estimated_count = counts[segment.type]
        return SegmentCatalog(
            protocol=program.protocol,
            segments=segments,
            tier_thresholds=program.tiers if program.protocol == ProtocolEnum.MEMBERSHIP else None,
        )

    async def preview_segment(
        self,
        tenant_id: str,
        wallet_program_id: str,
        protocol: str,
        segment: str,
        config: SegmentConfig | None = None,
    ) -> SegmentPreview:
        config = config or SegmentConfig()
        require_config(segment, config)
        program = await self.validate_program(tenant_id, wallet_program_id, protocol)
        resolved = parse_segment(segment, program.protocol)
        return await self._engine.preview(program, resolved, config)

    async def send_broadcast(
        self,
        tenant_id: str,
        wallet_program_id: str,
        protocol: str,
        segment: str,
        message: str,
        *,
        config: SegmentConfig | None = None,
        campaign_name: str | None = None,
        dry_run: bool = False,
    ) -> BroadcastResult:
        self._engine.validate_message(message)
        config = config or SegmentConfig()
        require_config(segment, config)
        program = await self.validate_program(tenant_id, wallet_program_id, protocol)
        resolved = parse_segment(segment, program.protocol)
        return await self._engine.send(program, resolved, config, message, campaign_name, dry_run=dry_run)

    async def send_to_member_ids(
        self,
        tenant_id: str,
        wallet_program_id: str,
        protocol: str,
        member_ids: Sequence[str],
        message: str,
        *,
        campaign_name: str | None = None,
        dry_run: bool = False,
    ) -> BroadcastResult:
        return await self.send_broadcast(
            tenant_id,
            wallet_program_id,
            protocol,
            SegmentEnum.CSV.value,
            message,
            config=SegmentConfig(member_ids=list(member_ids)),
            campaign_name=campaign_name or CSV_CAMPAIGN_NAME,
            dry_run=dry_run,
        )

    async def run_birthday_job(self, *, dry_run: bool = False, test_date: date | None = None) -> BirthdayRunResult:
        job = BirthdayJob(
            directory=self._directory,
            claims=SqlBirthdayClaimStore(self._db),
            mutator=self._mutator,
            send_one=self._engine.send_one,
            log_store=self._log_store,
            detail_limit=self._settings.birthday_detail_limit,
            observability=self._observability,
        )
        return await job.run(dry_run=dry_run, test_date=test_date)

    async def get_campaign_logs(
        self,
        tenant_id: str | None = None,
        wallet_program_id: str | None = None,
        limit: int = 50,
    ) -> list[CampaignLogRecord]:
        """Newest first; filtering by program requires the owning tenant."""

        program_id = None
        if wallet_program_id:
            if not tenant_id:
                raise BroadcastValidationError("tenant_id is required to filter logs by program")
            try:
                program = await self._directory.find_program(tenant_id, wallet_program_id)
            except SQLAlchemyError as exc:
                raise BroadcastSystemError("Failed to look up program") from exc
            if program is None:
                raise ProgramNotFoundError(tenant_id, wallet_program_id)
            program_id = program.id
        try:
            return await self._log_store.query(program_id, limit)
        except SQLAlchemyError as exc:
            logger.exception("Campaign log query failed")
            raise BroadcastSystemError("Failed to load campaign logs") from exc

    async def _estimate_counts(
        self,
        program: ProgramInfo,
        segments: list[SegmentDefinition],
    ) -> dict[SegmentEnum, int]:
        cached = self._estimate_cache.get(program.id)
        if cached is not None:
            return cached
        records = await self._evaluator.fetch(program)
        counts = {
            segment.type: len(filter_records(program, records, segment.type))
            for segment in segments
            if is_estimable(segment)
        }
        self._estimate_cache.put(program.id, counts)
        return counts


__all__ = ["BroadcastService", "CSV_CAMPAIGN_NAME", "SegmentCatalog", "get_estimate_cache"]
