from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from walletcast_api.core.settings import settings
from walletcast_api.observability.broadcast import get_broadcast_store
from walletcast_api.observability.scheduler import get_scheduler_store

router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(request: Request) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    scheduler = getattr(request.app.state, "job_scheduler", None)
    if settings.job_scheduler_enabled and scheduler is not None:
        running = bool(getattr(scheduler, "is_running", False))
        component_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Job scheduler not running"
        failing_jobs = [
            job_id
            for job_id, job in get_scheduler_store().snapshot().jobs.items()
            if int(job.get("consecutive_failures", 0) or 0) > 0
        ]
        if failing_jobs:
            component_status = "error"
            detail = f"Jobs failing: {', '.join(failing_jobs)}"
            status = "error"
        elif not running:
            status = "degraded"
        components["job_scheduler"] = ComponentStatus(status=component_status, detail=detail)
    else:
        components["job_scheduler"] = ComponentStatus(
            status="disabled",
            detail="Job scheduler disabled via settings",
        )

    if not settings.wallet_gateway_api_token:
        components["wallet_gateway"] = ComponentStatus(
            status="disabled",
            detail="Wallet gateway token not configured; pushes are recorded in memory",
        )
    else:
        components["wallet_gateway"] = ComponentStatus(status="ready")

    return ReadinessPayload(status=status, components=components)


@router.get("/metrics/broadcast", summary="Broadcast dispatch counters")
async def broadcast_metrics() -> dict[str, object]:
    return get_broadcast_store().snapshot().as_dict()
