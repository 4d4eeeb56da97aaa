"""Referral code binding and referrer bonuses."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import ConstraintConflict, InvalidReferralCode, SelfReferral
from rewards_api.core.settings import settings
from rewards_api.models.rewards import AwardEventKind, ReferralApplication
from rewards_api.models.user import User
from rewards_api.observability.rewards import RewardsObservabilityStore, get_rewards_store
from rewards_api.services.rewards.ledger import PointsLedger
from rewards_api.services.rewards.transactions import guarded_write


@dataclass
class ReferralResult:
    applied: bool
    referrer_user_id: UUID | None = None


def normalize_referral_code(ref_code: str | None) -> str:
    return (ref_code or "").strip().upper()


class ReferralService:
    """Bind a referred account to its referrer exactly once."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedger | None = None,
        bonus_points: int | None = None,
        store: RewardsObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedger(db_session)
        self._bonus_points = bonus_points if bonus_points is not None else settings.referral_bonus_points
        self._store = store or get_rewards_store()

    async def apply_referral(self, referred_user_id: UUID, ref_code: str | None) -> ReferralResult:
        """Credit the owner of ``ref_code`` for referring ``referred_user_id``.

        Invalid and self-referrals raise before anything is written. A repeat
        application, or one that loses a race to a concurrent request, returns
        ``applied=False`` and leaves the first binding in place.
        """

        code = normalize_referral_code(ref_code)
        if not code:
            self._store.record_referral("invalid")
            raise InvalidReferralCode()

        referrer = await self._find_referrer(code)
        if referrer is None:
            self._store.record_referral("invalid")
            raise InvalidReferralCode()
        if referrer.id == referred_user_id:
            self._store.record_referral("self")
            raise SelfReferral()

        existing = await self.get_application(referred_user_id)
        if existing is not None:
            self._store.record_referral("duplicate")
            return ReferralResult(applied=False, referrer_user_id=existing.referrer_user_id)

        referrer_id = referrer.id
        try:
            async with guarded_write(self._db, guard="referral_application"):
                application = ReferralApplication(
                    referred_user_id=referred_user_id,
                    referrer_user_id=referrer_id,
                    referral_code=code,
                )
                self._db.add(application)
                await self._db.flush()
                await self._ledger.append_award(
                    referrer_id,
                    amount=self._bonus_points,
                    kind=AwardEventKind.REFERRAL_BONUS,
                    source_id=application.id,
                )
        except ConstraintConflict as conflict:
            winner = await self.get_application(referred_user_id)
            if winner is None:
                raise conflict.__cause__ or conflict
            logger.info("Concurrent referral application detected", referred_user_id=str(referred_user_id))
            self._store.record_referral("conflict")
            return ReferralResult(applied=False, referrer_user_id=winner.referrer_user_id)

        self._store.record_referral("applied")
        self._store.record_award(AwardEventKind.REFERRAL_BONUS.value, self._bonus_points)
        logger.info(
            "Applied referral code",
            referred_user_id=str(referred_user_id),
            referrer_user_id=str(referrer_id),
            bonus=self._bonus_points,
        )
        return ReferralResult(applied=True, referrer_user_id=referrer_id)

    async def get_application(self, referred_user_id: UUID) -> ReferralApplication | None:
        stmt = select(ReferralApplication).where(ReferralApplication.referred_user_id == referred_user_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def assign_referral_code(self, user: User) -> str:
        """Give ``user`` a unique referral code if they do not have one yet."""

        if user.referral_code:
            return user.referral_code

        user_id = user.id
        user.referral_code = await self._generate_unique_referral_code()
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when assigning referral code", user_id=str(user_id))
            await self._db.refresh(user)
            return await self.assign_referral_code(user)

        logger.info("Assigned referral code", user_id=str(user_id))
        return user.referral_code

    async def _find_referrer(self, code: str) -> User | None:
        stmt = select(User).where(User.referral_code == code)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def _generate_unique_referral_code(self) -> str:
        candidate = uuid4().hex[:8].upper()
        if await self._find_referrer(candidate) is not None:
            return await self._generate_unique_referral_code()
        return candidate


__all__ = ["ReferralResult", "ReferralService", "normalize_referral_code"]
