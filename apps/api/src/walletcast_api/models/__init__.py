"""SQLAlchemy models package."""

from .campaign import BirthdayClaim, CampaignLog, PointsLedgerEntry  # noqa: F401
from .program import DEFAULT_BIRTHDAY_MESSAGE, Program, ProtocolEnum  # noqa: F401
from .wallet_pass import (  # noqa: F401
    CouponDetail,
    EventTicketDetail,
    MemberProfile,
    MembershipDetail,
    PassStatusEnum,
    WalletPass,
)
