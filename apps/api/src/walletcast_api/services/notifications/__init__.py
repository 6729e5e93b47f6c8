"""Notification service package."""

from .campaign_log import (
    CampaignLogEntry,
    CampaignLogRecord,
    CampaignLogStore,
    SqlCampaignLogStore,
)
from .gateway import (
    GatewayResult,
    InMemoryPushGateway,
    PassKitPushGateway,
    PushGateway,
    build_push_gateway,
)

__all__ = [
    "CampaignLogEntry",
    "CampaignLogRecord",
    "CampaignLogStore",
    "GatewayResult",
    "InMemoryPushGateway",
    "PassKitPushGateway",
    "PushGateway",
    "SqlCampaignLogStore",
    "build_push_gateway",
]
