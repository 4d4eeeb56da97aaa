"""Rewards ledger, check-in, referral and spotlight services."""

from .checkin import DailyCheckinService, DailyClaimResult, compute_streak, utc_today
from .ledger import PointsLedger
from .referrals import ReferralResult, ReferralService, normalize_referral_code
from .snapshot import RewardsProfile, RewardsSnapshotView, get_rewards_snapshot
from .spotlight import SpotlightCatalog, SpotlightClaimService

__all__ = [
    "DailyCheckinService",
    "DailyClaimResult",
    "PointsLedger",
    "ReferralResult",
    "ReferralService",
    "RewardsProfile",
    "RewardsSnapshotView",
    "SpotlightCatalog",
    "SpotlightClaimService",
    "compute_streak",
    "get_rewards_snapshot",
    "normalize_referral_code",
    "utc_today",
]
