"""Daily check-in claims and streak computation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import ConstraintConflict
from rewards_api.core.settings import settings
from rewards_api.models.rewards import AwardEventKind, DailyCheckin
from rewards_api.observability.rewards import RewardsObservabilityStore, get_rewards_store
from rewards_api.services.rewards.ledger import PointsLedger
from rewards_api.services.rewards.transactions import guarded_write


@dataclass
class DailyClaimResult:
    """Outcome of a daily claim; ``awarded`` is 0 for repeat claims."""

    awarded: int
    balance: int
    streak: int
    checkin_date: date


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def compute_streak(checkin_dates: Iterable[date], today: date) -> int:
    """Count the consecutive run of check-ins ending today or yesterday.

    The walk starts at ``today`` when it is present, otherwise at yesterday, so
    a streak read before today's claim still reflects the run in progress.
    """

    days = set(checkin_dates)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


class DailyCheckinService:
    """Award the daily check-in exactly once per user per UTC day."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedger | None = None,
        points: int | None = None,
        store: RewardsObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedger(db_session)
        self._points = points if points is not None else settings.daily_checkin_points
        self._store = store or get_rewards_store()

    async def claim_daily_points(self, user_id: UUID, *, today: date | None = None) -> DailyClaimResult:
        day = today or utc_today()

        if await self._find_checkin(user_id, day) is not None:
            self._store.record_checkin("duplicate")
            return await self._already_claimed(user_id, day)

        try:
            async with guarded_write(self._db, guard="daily_checkin"):
                checkin = DailyCheckin(user_id=user_id, checkin_date=day)
                self._db.add(checkin)
                await self._db.flush()
                await self._ledger.append_award(
                    user_id,
                    amount=self._points,
                    kind=AwardEventKind.DAILY_CHECKIN,
                    source_id=checkin.id,
                )
        except ConstraintConflict as conflict:
            if await self._find_checkin(user_id, day) is None:
                raise conflict.__cause__ or conflict
            logger.info("Concurrent daily claim detected", user_id=str(user_id), checkin_date=day.isoformat())
            self._store.record_checkin("conflict")
            return await self._already_claimed(user_id, day)

        self._store.record_checkin("awarded")
        self._store.record_award(AwardEventKind.DAILY_CHECKIN.value, self._points)
        balance = await self._ledger.get_balance(user_id)
        streak = compute_streak(await self.list_checkin_dates(user_id), day)
        logger.info(
            "Daily points claimed",
            user_id=str(user_id),
            checkin_date=day.isoformat(),
            awarded=self._points,
            streak=streak,
        )
        return DailyClaimResult(awarded=self._points, balance=balance, streak=streak, checkin_date=day)

    async def current_streak(self, user_id: UUID, *, today: date | None = None) -> int:
        return compute_streak(await self.list_checkin_dates(user_id), today or utc_today())

    async def list_checkin_dates(self, user_id: UUID, *, since: date | None = None) -> set[date]:
        stmt = select(DailyCheckin.checkin_date).where(DailyCheckin.user_id == user_id)
        if since is not None:
            stmt = stmt.where(DailyCheckin.checkin_date >= since)
        result = await self._db.execute(stmt)
        return set(result.scalars().all())

    async def recent_checkins(
        self,
        user_id: UUID,
        *,
        days: int | None = None,
        today: date | None = None,
    ) -> list[date]:
        """Return check-in dates within the trailing window, oldest first."""

        window = days if days is not None else settings.checkin_history_days
        day = today or utc_today()
        since = day - timedelta(days=max(window, 1) - 1)
        dates = await self.list_checkin_dates(user_id, since=since)
        return sorted(value for value in dates if value <= day)

    async def _find_checkin(self, user_id: UUID, day: date) -> DailyCheckin | None:
        stmt = select(DailyCheckin).where(
            DailyCheckin.user_id == user_id,
            DailyCheckin.checkin_date == day,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def _already_claimed(self, user_id: UUID, day: date) -> DailyClaimResult:
        balance = await self._ledger.get_balance(user_id)
        streak = compute_streak(await self.list_checkin_dates(user_id), day)
        return DailyClaimResult(awarded=0, balance=balance, streak=streak, checkin_date=day)


__all__ = ["DailyCheckinService", "DailyClaimResult", "compute_streak", "utc_today"]
