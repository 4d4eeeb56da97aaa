"""Spotlight catalog reads and the evidence-backed claim workflow."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rewards_api.core.errors import (
    ClaimNotFound,
    ClaimRecordFailed,
    ConstraintConflict,
    EvidenceUploadFailed,
    InvalidClaimTransition,
    ModerationForbidden,
    SpotlightNotFound,
)
from rewards_api.core.settings import settings
from rewards_api.models.rewards import (
    AwardEventKind,
    SpotlightCandidate,
    SpotlightClaimRequest,
    SpotlightClaimStatus,
)
from rewards_api.models.user import User
from rewards_api.observability.rewards import RewardsObservabilityStore, get_rewards_store
from rewards_api.services.rewards.ledger import PointsLedger
from rewards_api.services.rewards.transactions import guarded_write
from rewards_api.services.storage import EvidenceStorage, EvidenceStorageError


_TERMINAL_DECISIONS = {SpotlightClaimStatus.APPROVED, SpotlightClaimStatus.REJECTED}


class SpotlightCatalog:
    """Read access to promoted spotlight tools."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_active_spotlight(self) -> SpotlightCandidate | None:
        """Return the most recently created active spotlight, if any."""

        stmt = (
            select(SpotlightCandidate)
            .where(SpotlightCandidate.is_active.is_(True))
            .order_by(SpotlightCandidate.created_at.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_spotlight(self, spotlight_id: UUID) -> SpotlightCandidate | None:
        stmt = select(SpotlightCandidate).where(SpotlightCandidate.id == spotlight_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()


class SpotlightClaimService:
    """Accept evidence uploads as pending claims and let moderators settle them.

    Submitting uploads the evidence first and records the claim second. When
    the record cannot be written the uploaded object is deleted again so no
    evidence is left without a claim. Awards are only granted on approval.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        storage: EvidenceStorage | None = None,
        ledger: PointsLedger | None = None,
        store: RewardsObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._storage = storage or EvidenceStorage()
        self._ledger = ledger or PointsLedger(db_session)
        self._catalog = SpotlightCatalog(db_session)
        self._store = store or get_rewards_store()

    async def submit_claim(
        self,
        user_id: UUID,
        spotlight_id: UUID,
        *,
        external_email: str,
        evidence: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> SpotlightClaimRequest:
        email = (external_email or "").strip()
        if not email:
            raise ValueError("External account email is required")
        if not evidence:
            raise ValueError("Evidence file is required")
        if len(evidence) > settings.spotlight_evidence_max_bytes:
            raise ValueError("Evidence file is too large")

        spotlight = await self._catalog.get_spotlight(spotlight_id)
        if spotlight is None:
            raise SpotlightNotFound()

        key = self._storage.build_key(user_id, spotlight_id, filename)
        try:
            await self._storage.upload(key, evidence, content_type=content_type)
        except EvidenceStorageError as exc:
            logger.warning("Evidence upload failed", user_id=str(user_id), spotlight_id=str(spotlight_id), error=str(exc))
            self._store.record_claim("upload_failed")
            raise EvidenceUploadFailed() from exc

        claim = SpotlightClaimRequest(
            user_id=user_id,
            spotlight_id=spotlight_id,
            external_email=email,
            evidence_uri=key,
            status=SpotlightClaimStatus.PENDING,
        )
        self._db.add(claim)
        try:
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.error(
                "Recording spotlight claim failed; removing uploaded evidence",
                user_id=str(user_id),
                spotlight_id=str(spotlight_id),
                key=key,
                error=str(exc),
            )
            await self._remove_orphaned_evidence(key)
            self._store.record_claim("record_failed")
            raise ClaimRecordFailed() from exc
        except BaseException:
            await self._db.rollback()
            logger.warning(
                "Spotlight claim abandoned before it was recorded; removing uploaded evidence",
                user_id=str(user_id),
                spotlight_id=str(spotlight_id),
                key=key,
            )
            await self._remove_orphaned_evidence(key)
            self._store.record_claim("abandoned")
            raise

        self._store.record_claim("submitted")
        logger.info(
            "Submitted spotlight claim",
            claim_id=str(claim.id),
            user_id=str(user_id),
            spotlight_id=str(spotlight_id),
        )
        return claim

    async def get_latest_claim_status(self, user_id: UUID, spotlight_id: UUID) -> SpotlightClaimRequest | None:
        stmt = (
            select(SpotlightClaimRequest)
            .where(
                SpotlightClaimRequest.user_id == user_id,
                SpotlightClaimRequest.spotlight_id == spotlight_id,
            )
            .order_by(SpotlightClaimRequest.created_at.desc(), SpotlightClaimRequest.id.desc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_claims(
        self,
        *,
        status: SpotlightClaimStatus | None = None,
        limit: int = 50,
    ) -> list[SpotlightClaimRequest]:
        stmt = select(SpotlightClaimRequest)
        if status is not None:
            stmt = stmt.where(SpotlightClaimRequest.status == status)
        stmt = stmt.order_by(SpotlightClaimRequest.created_at.asc()).limit(limit)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def review_claim(
        self,
        claim_id: UUID,
        *,
        reviewer: User,
        decision: SpotlightClaimStatus | str,
        note: str | None = None,
    ) -> SpotlightClaimRequest:
        """Move a pending claim to ``approved`` or ``rejected``.

        Approval grants the spotlight's reward in the same transaction as the
        status change. The change is conditional on the claim still being
        pending, so concurrent reviewers cannot both award it. Repeating the
        decision a claim already carries returns it unchanged.
        """

        if not reviewer.can_moderate:
            raise ModerationForbidden()

        target = SpotlightClaimStatus(decision)
        if target not in _TERMINAL_DECISIONS:
            raise ValueError("Decision must be 'approved' or 'rejected'")

        claim = await self._get_claim(claim_id)
        if claim.status != SpotlightClaimStatus.PENDING:
            return self._settled(claim, target)

        claimant_id = claim.user_id
        reward = int(claim.spotlight.points_reward or 0) if claim.spotlight else 0
        reviewer_id = reviewer.id
        transitioned = False
        try:
            async with guarded_write(self._db, guard="spotlight_claim_review"):
                result = await self._db.execute(
                    update(SpotlightClaimRequest)
                    .where(
                        SpotlightClaimRequest.id == claim_id,
                        SpotlightClaimRequest.status == SpotlightClaimStatus.PENDING,
                    )
                    .values(
                        status=target,
                        reviewed_at=datetime.now(timezone.utc),
                        reviewed_by_user_id=reviewer_id,
                        review_note=note,
                    )
                    .execution_options(synchronize_session=False)
                )
                transitioned = result.rowcount == 1
                if transitioned and target == SpotlightClaimStatus.APPROVED and reward > 0:
                    await self._ledger.append_award(
                        claimant_id,
                        amount=reward,
                        kind=AwardEventKind.SPOTLIGHT_CLAIM,
                        source_id=claim_id,
                    )
        except ConstraintConflict:
            transitioned = False

        await self._db.refresh(claim)
        if not transitioned:
            logger.info("Spotlight claim settled concurrently", claim_id=str(claim_id), status=claim.status.value)
            return self._settled(claim, target)

        self._store.record_claim(target.value)
        if target == SpotlightClaimStatus.APPROVED and reward > 0:
            self._store.record_award(AwardEventKind.SPOTLIGHT_CLAIM.value, reward)
        logger.info(
            "Reviewed spotlight claim",
            claim_id=str(claim_id),
            reviewer_id=str(reviewer_id),
            decision=target.value,
            awarded=reward if target == SpotlightClaimStatus.APPROVED else 0,
        )
        return claim

    async def _get_claim(self, claim_id: UUID) -> SpotlightClaimRequest:
        stmt = (
            select(SpotlightClaimRequest)
            .options(selectinload(SpotlightClaimRequest.spotlight))
            .where(SpotlightClaimRequest.id == claim_id)
        )
        result = await self._db.execute(stmt)
        claim = result.scalar_one_or_none()
        if claim is None:
            raise ClaimNotFound()
        return claim

    @staticmethod
    def _settled(claim: SpotlightClaimRequest, target: SpotlightClaimStatus) -> SpotlightClaimRequest:
        if claim.status == target:
            return claim
        raise InvalidClaimTransition(f"Spotlight claim is already {claim.status.value}")

    async def _remove_orphaned_evidence(self, key: str) -> None:
        try:
            await self._storage.delete(key)
        except EvidenceStorageError as exc:
            logger.error("Orphaned spotlight evidence left in storage", key=key, error=str(exc))
            self._store.record_claim("orphaned_evidence")


__all__ = ["SpotlightCatalog", "SpotlightClaimService"]
