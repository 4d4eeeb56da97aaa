"""Member-facing rewards endpoints: daily claims, referrals and spotlight claims."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.session import require_member_session
from rewards_api.api.dependencies.storage import get_evidence_storage
from rewards_api.core.settings import settings
from rewards_api.db.session import get_session
from rewards_api.models.rewards import AwardEvent, AwardEventKind, SpotlightCandidate, SpotlightClaimRequest
from rewards_api.models.user import User
from rewards_api.services.rewards import (
    DailyCheckinService,
    PointsLedger,
    ReferralService,
    SpotlightCatalog,
    SpotlightClaimService,
    get_rewards_snapshot,
)
from rewards_api.services.storage import EvidenceStorage


router = APIRouter(prefix="/rewards", tags=["rewards"])


class DailyClaimResponse(BaseModel):
    awarded: int
    balance: int
    streak: int


class ReferralApplyRequest(BaseModel):
    refCode: str


class ReferralApplyResponse(BaseModel):
    applied: bool


class SpotlightResponse(BaseModel):
    id: UUID
    title: str
    toolName: str
    description: Optional[str]
    ctaUrl: Optional[str]
    pointsReward: int
    isActive: bool
    createdAt: datetime


class SpotlightClaimResponse(BaseModel):
    id: UUID
    spotlightId: UUID
    status: str
    externalEmail: str
    evidenceUri: str
    createdAt: datetime
    reviewedAt: Optional[datetime] = None
    reviewNote: Optional[str] = None


class RewardsProfileResponse(BaseModel):
    id: UUID
    email: str
    displayName: Optional[str]
    referralCode: Optional[str]


class RewardsSnapshotResponse(BaseModel):
    profile: RewardsProfileResponse
    balance: int
    last7DaysCheckins: List[date]
    streak: int
    claimedToday: bool
    activeSpotlight: Optional[SpotlightResponse]


class AwardEventResponse(BaseModel):
    id: UUID
    amount: int
    kind: str
    createdAt: datetime


class LedgerResponse(BaseModel):
    balance: int
    events: List[AwardEventResponse]


@router.post("/daily-claim", response_model=DailyClaimResponse)
async def claim_daily_points(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> DailyClaimResponse:
    """Claim today's check-in points; repeat claims award nothing."""

    result = await DailyCheckinService(db).claim_daily_points(current_user.id)
    return DailyClaimResponse(awarded=result.awarded, balance=result.balance, streak=result.streak)


@router.post("/referrals/apply", response_model=ReferralApplyResponse)
async def apply_referral_code(
    payload: ReferralApplyRequest,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> ReferralApplyResponse:
    result = await ReferralService(db).apply_referral(current_user.id, payload.refCode)
    return ReferralApplyResponse(applied=result.applied)


@router.get("/spotlight", response_model=Optional[SpotlightResponse])
async def get_active_spotlight(db: AsyncSession = Depends(get_session)) -> Optional[SpotlightResponse]:
    spotlight = await SpotlightCatalog(db).get_active_spotlight()
    return _serialize_spotlight(spotlight) if spotlight else None


@router.post(
    "/spotlights/{spotlight_id}/claims",
    response_model=SpotlightClaimResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_spotlight_claim(
    spotlight_id: UUID,
    externalEmail: str = Form(...),
    evidence: UploadFile = File(...),
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    storage: EvidenceStorage = Depends(get_evidence_storage),
) -> SpotlightClaimResponse:
    """Upload claim evidence and record a pending spotlight claim."""

    # One byte past the limit is enough for the size check to reject it.
    payload = await evidence.read(settings.spotlight_evidence_max_bytes + 1)
    service = SpotlightClaimService(db, storage=storage)
    try:
        claim = await service.submit_claim(
            current_user.id,
            spotlight_id,
            external_email=externalEmail,
            evidence=payload,
            filename=evidence.filename,
            content_type=evidence.content_type,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return serialize_claim(claim)


@router.get("/spotlights/{spotlight_id}/claims/latest", response_model=Optional[SpotlightClaimResponse])
async def get_latest_spotlight_claim(
    spotlight_id: UUID,
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
    storage: EvidenceStorage = Depends(get_evidence_storage),
) -> Optional[SpotlightClaimResponse]:
    claim = await SpotlightClaimService(db, storage=storage).get_latest_claim_status(current_user.id, spotlight_id)
    return serialize_claim(claim) if claim else None


@router.get("/snapshot", response_model=RewardsSnapshotResponse)
async def get_snapshot(
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> RewardsSnapshotResponse:
    snapshot = await get_rewards_snapshot(db, current_user.id)
    return RewardsSnapshotResponse(
        profile=RewardsProfileResponse(
            id=snapshot.profile.id,
            email=snapshot.profile.email,
            displayName=snapshot.profile.display_name,
            referralCode=snapshot.profile.referral_code,
        ),
        balance=snapshot.balance,
        last7DaysCheckins=snapshot.last_7_days_checkins,
        streak=snapshot.streak,
        claimedToday=snapshot.claimed_today,
        activeSpotlight=_serialize_spotlight(snapshot.active_spotlight) if snapshot.active_spotlight else None,
    )


@router.get("/ledger", response_model=LedgerResponse)
async def list_award_events(
    limit: int = Query(50, ge=1, le=200),
    kinds: list[str] | None = Query(None, description="Filter award kinds"),
    current_user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> LedgerResponse:
    """Return the member's balance with its newest award events."""

    kind_filter: list[AwardEventKind] | None = None
    if kinds:
        kind_filter = []
        for value in kinds:
            try:
                kind_filter.append(AwardEventKind(value))
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=f"Unsupported award kind: {value}") from exc

    ledger = PointsLedger(db)
    events = await ledger.list_events(current_user.id, limit=limit, kinds=kind_filter)
    return LedgerResponse(
        balance=await ledger.get_balance(current_user.id),
        events=[_serialize_award_event(event) for event in events],
    )


def serialize_claim(claim: SpotlightClaimRequest) -> SpotlightClaimResponse:
    return SpotlightClaimResponse(
        id=claim.id,
        spotlightId=claim.spotlight_id,
        status=claim.status.value,
        externalEmail=claim.external_email,
        evidenceUri=claim.evidence_uri,
        createdAt=claim.created_at,
        reviewedAt=claim.reviewed_at,
        reviewNote=claim.review_note,
    )


def _serialize_spotlight(spotlight: SpotlightCandidate) -> SpotlightResponse:
    return SpotlightResponse(
        id=spotlight.id,
        title=spotlight.title,
        toolName=spotlight.tool_name,
        description=spotlight.description,
        ctaUrl=spotlight.cta_url,
        pointsReward=spotlight.points_reward or 0,
        isActive=bool(spotlight.is_active),
        createdAt=spotlight.created_at,
    )


def _serialize_award_event(event: AwardEvent) -> AwardEventResponse:
    return AwardEventResponse(
        id=event.id,
        amount=event.amount,
        kind=event.kind.value,
        createdAt=event.created_at,
    )
