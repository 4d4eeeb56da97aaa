"""Aggregate read model backing the rewards dashboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import NotAuthenticated
from rewards_api.core.settings import settings
from rewards_api.models.rewards import SpotlightCandidate
from rewards_api.models.user import User
from rewards_api.services.rewards.checkin import DailyCheckinService, compute_streak, utc_today
from rewards_api.services.rewards.ledger import PointsLedger
from rewards_api.services.rewards.spotlight import SpotlightCatalog


@dataclass
class RewardsProfile:
    id: UUID
    email: str
    display_name: str | None
    referral_code: str | None


@dataclass
class RewardsSnapshotView:
    """Everything the dashboard renders for one member."""

    profile: RewardsProfile
    balance: int
    last_7_days_checkins: list[date] = field(default_factory=list)
    streak: int = 0
    claimed_today: bool = False
    active_spotlight: SpotlightCandidate | None = None


async def get_rewards_snapshot(
    db_session: AsyncSession,
    user_id: UUID,
    *,
    today: date | None = None,
) -> RewardsSnapshotView:
    """Read balance, recent check-ins and the active spotlight for ``user_id``.

    The read never writes; the balance is summed from award events on every
    call and the check-in window spans ``settings.checkin_history_days`` days
    ending today.
    """

    result = await db_session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotAuthenticated()

    day = today or utc_today()
    checkins = DailyCheckinService(db_session)
    all_dates = await checkins.list_checkin_dates(user_id)
    window = await checkins.recent_checkins(user_id, days=settings.checkin_history_days, today=day)

    return RewardsSnapshotView(
        profile=RewardsProfile(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            referral_code=user.referral_code,
        ),
        balance=await PointsLedger(db_session).get_balance(user_id),
        last_7_days_checkins=window,
        streak=compute_streak(all_dates, day),
        claimed_today=day in all_dates,
        active_spotlight=await SpotlightCatalog(db_session).get_active_spotlight(),
    )


__all__ = ["RewardsProfile", "RewardsSnapshotView", "get_rewards_snapshot"]
