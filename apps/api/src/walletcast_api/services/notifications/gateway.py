"""Wallet push gateway implementations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

import httpx
from loguru import logger

from walletcast_api.core.settings import get_settings


@dataclass(slots=True)
class GatewayResult:
    """Outcome of one push attempt."""

    success: bool
    error: str | None = None


class PushGateway(Protocol):
    """Protocol for wallet-pass push notification connectors."""

    async def send_message(
        self,
        wallet_internal_id: str,
        wallet_program_id: str,
        text: str,
    ) -> GatewayResult:
        ...


class PassKitPushGateway:
    """HTTP connector for the wallet provider's message endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str,
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_token}"} if api_token else None,
        )
        self._owns_client = http_client is None

    async def send_message(
        self,
        wallet_internal_id: str,
        wallet_program_id: str,
        text: str,
    ) -> GatewayResult:
        payload = {"programId": wallet_program_id, "message": text}
        try:
            response = await self._client.post(f"/passes/{wallet_internal_id}/push", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            error = f"Gateway responded {exc.response.status_code}"
            logger.warning(
                "Wallet push rejected",
                wallet_internal_id=wallet_internal_id,
                wallet_program_id=wallet_program_id,
                status_code=exc.response.status_code,
            )
            return GatewayResult(success=False, error=error)
        except httpx.HTTPError as exc:
            logger.warning(
                "Wallet push transport failure",
                wallet_internal_id=wallet_internal_id,
                wallet_program_id=wallet_program_id,
                error=str(exc),
            )
            return GatewayResult(success=False, error=str(exc) or exc.__class__.__name__)
        return GatewayResult(success=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class InMemoryPushGateway:
    """Records pushes for inspection; ids listed in ``failing_ids`` are rejected."""

    def __init__(self, *, failing_ids: set[str] | None = None) -> None:
        self.sent_messages: List[dict[str, str]] = []
        self.failing_ids = set(failing_ids or ())

    async def send_message(
        self,
        wallet_internal_id: str,
        wallet_program_id: str,
        text: str,
    ) -> GatewayResult:
        if wallet_internal_id in self.failing_ids:
            return GatewayResult(success=False, error="rejected")
        self.sent_messages.append(
            {
                "wallet_internal_id": wallet_internal_id,
                "wallet_program_id": wallet_program_id,
                "text": text,
            }
        )
        return GatewayResult(success=True)


def build_push_gateway() -> PushGateway:
    """Build the configured gateway; an unset token yields the in-memory backend."""

    settings = get_settings()
    if not settings.wallet_gateway_api_token:
        logger.warning("Wallet gateway token not configured; using in-memory push gateway")
        return InMemoryPushGateway()
    return PassKitPushGateway(
        base_url=settings.wallet_gateway_base_url,
        api_token=settings.wallet_gateway_api_token,
        timeout_seconds=settings.wallet_gateway_timeout_seconds,
    )


__all__ = [
    "GatewayResult",
    "InMemoryPushGateway",
    "PassKitPushGateway",
    "PushGateway",
    "build_push_gateway",
]
