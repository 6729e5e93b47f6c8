"""Daily birthday reward job."""

from __future__ import annotations

from datetime import date
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from walletcast_api.services.broadcast import BroadcastService
from walletcast_api.services.notifications.gateway import PushGateway

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


def _coerce_date(value: date | str | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


async def run_birthday_job(
    *,
    session_factory: SessionFactory,
    dry_run: bool = False,
    test_date: date | str | None = None,
    gateway: PushGateway | None = None,
) -> Dict[str, Any]:
    """Grant birthday rewards across every opted-in membership program."""

    maybe_session = session_factory()
    session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session

    async with session as managed_session:
        service = BroadcastService(managed_session, gateway=gateway)
        result = await service.run_birthday_job(dry_run=dry_run, test_date=_coerce_date(test_date))

    summary = result.as_dict()
    logger.bind(
        summary={key: value for key, value in summary.items() if key != "details"}
    ).info("Birthday reward run finished")
    return summary


__all__ = ["run_birthday_job"]
