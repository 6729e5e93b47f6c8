from __future__ import annotations

from datetime import date
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.db.session import get_session
from walletcast_api.services.broadcast import BroadcastError, BroadcastService, SegmentConfig
from walletcast_api.services.notifications.gateway import PushGateway, build_push_gateway

router = APIRouter(prefix="/notify", tags=["Notifications"])

_STATUS_BY_CODE = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PROTOCOL_MISMATCH": status.HTTP_409_CONFLICT,
    "SYSTEM_FAILURE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


@lru_cache
def get_push_gateway() -> PushGateway:
    return build_push_gateway()


def get_broadcast_service(
    session: AsyncSession = Depends(get_session),
    gateway: PushGateway = Depends(get_push_gateway),
) -> BroadcastService:
    return BroadcastService(session, gateway=gateway)


def _raise_http(error: BroadcastError) -> None:
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error.as_dict(),
    ) from error


class ProgramTarget(BaseModel):
    tenant_id: str = Field(..., description="Tenant owning the program")
    program_id: str = Field(..., description="Program id as known to the wallet provider")
    protocol: str = Field(..., description="MEMBERSHIP, COUPON or EVENT_TICKET")


class BroadcastRequest(ProgramTarget):
    segment: str
    message: str = Field(..., max_length=2000)
    segment_config: SegmentConfig | None = None
    campaign_name: str | None = Field(default=None, max_length=200)
    dry_run: bool = False


class CsvBroadcastRequest(ProgramTarget):
    member_ids: list[str] = Field(..., min_length=1)
    message: str = Field(..., max_length=2000)
    campaign_name: str | None = Field(default=None, max_length=200)
    dry_run: bool = False


class SegmentPreviewRequest(ProgramTarget):
    segment: str
    segment_config: SegmentConfig | None = None


class BirthdayRunRequest(BaseModel):
    test_date: date | None = Field(default=None, description="Run as if today were this date")


@router.post("/broadcast", status_code=status.HTTP_200_OK)
async def send_broadcast(
    payload: BroadcastRequest,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    """Send a message to every member of a segment."""

    try:
        result = await service.send_broadcast(
            payload.tenant_id,
            payload.program_id,
            payload.protocol,
            payload.segment,
            payload.message,
            config=payload.segment_config,
            campaign_name=payload.campaign_name,
            dry_run=payload.dry_run,
        )
    except BroadcastError as error:
        _raise_http(error)
    return result.as_dict()


@router.post("/broadcast/test", status_code=status.HTTP_200_OK)
async def dry_run_broadcast(
    payload: BroadcastRequest,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    """Resolve a broadcast without sending; returns sample recipients."""

    try:
        result = await service.send_broadcast(
            payload.tenant_id,
            payload.program_id,
            payload.protocol,
            payload.segment,
            payload.message,
            config=payload.segment_config,
            campaign_name=payload.campaign_name,
            dry_run=True,
        )
    except BroadcastError as error:
        _raise_http(error)
    return result.as_dict()


@router.post("/broadcast/csv", status_code=status.HTTP_200_OK)
async def send_csv_broadcast(
    payload: CsvBroadcastRequest,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    try:
        result = await service.send_to_member_ids(
            payload.tenant_id,
            payload.program_id,
            payload.protocol,
            payload.member_ids,
            payload.message,
            campaign_name=payload.campaign_name,
            dry_run=payload.dry_run,
        )
    except BroadcastError as error:
        _raise_http(error)
    return result.as_dict()


@router.post("/segments/preview", status_code=status.HTTP_200_OK)
async def preview_segment(
    payload: SegmentPreviewRequest,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    try:
        preview = await service.preview_segment(
            payload.tenant_id,
            payload.program_id,
            payload.protocol,
            payload.segment,
            payload.segment_config,
        )
    except BroadcastError as error:
        _raise_http(error)
    return {"success": True, "stats": preview.as_dict()}


@router.get("/segments", status_code=status.HTTP_200_OK)
async def list_segments(
    tenant_id: str = Query(...),
    program_id: str = Query(...),
    protocol: str = Query(...),
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    """Available segments with estimated audience sizes."""

    try:
        catalog = await service.list_segments(tenant_id, program_id, protocol)
    except BroadcastError as error:
        _raise_http(error)
    return {"success": True, **catalog.as_dict()}


@router.post("/birthday-run", status_code=status.HTTP_200_OK)
async def run_birthday_job(
    payload: BirthdayRunRequest | None = None,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    try:
        result = await service.run_birthday_job(test_date=payload.test_date if payload else None)
    except BroadcastError as error:
        _raise_http(error)
    return result.as_dict()


@router.post("/birthday-test", status_code=status.HTTP_200_OK)
async def dry_run_birthday_job(
    payload: BirthdayRunRequest | None = None,
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    """Dry run: same selection as a live run, no claims, grants, pushes or logs."""

    try:
        result = await service.run_birthday_job(
            dry_run=True,
            test_date=payload.test_date if payload else None,
        )
    except BroadcastError as error:
        _raise_http(error)
    return result.as_dict()


@router.get("/logs", status_code=status.HTTP_200_OK)
async def list_campaign_logs(
    tenant_id: str | None = Query(default=None),
    program_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    service: BroadcastService = Depends(get_broadcast_service),
) -> dict[str, Any]:
    try:
        logs = await service.get_campaign_logs(tenant_id, program_id, limit)
    except BroadcastError as error:
        _raise_http(error)
    return {"success": True, "logs": [log.as_dict() for log in logs]}
