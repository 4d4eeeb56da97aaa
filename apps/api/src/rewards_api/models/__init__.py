"""SQLAlchemy models package."""

from .user import User, UserRoleEnum  # noqa: F401
from .rewards import (  # noqa: F401
    AwardEvent,
    AwardEventKind,
    DailyCheckin,
    ReferralApplication,
    SpotlightCandidate,
    SpotlightClaimRequest,
    SpotlightClaimStatus,
)
