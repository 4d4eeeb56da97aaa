"""Moderator endpoints for the spotlight claim queue."""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.session import require_moderator_session
from rewards_api.api.dependencies.storage import get_evidence_storage
from rewards_api.api.v1.endpoints.rewards import SpotlightClaimResponse, serialize_claim
from rewards_api.db.session import get_session
from rewards_api.models.rewards import SpotlightClaimStatus
from rewards_api.models.user import User
from rewards_api.services.rewards import SpotlightClaimService
from rewards_api.services.storage import EvidenceStorage


router = APIRouter(prefix="/moderation", tags=["moderation"])


class ClaimReviewRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    note: Optional[str] = Field(default=None, max_length=2000)


class ModerationClaimResponse(SpotlightClaimResponse):
    userId: UUID


@router.get("/spotlight-claims", response_model=List[ModerationClaimResponse])
async def list_spotlight_claims(
    status_filter: Optional[str] = Query("pending", alias="status"),
    limit: int = Query(50, ge=1, le=200),
    moderator: User = Depends(require_moderator_session),
    db: AsyncSession = Depends(get_session),
    storage: EvidenceStorage = Depends(get_evidence_storage),
) -> List[ModerationClaimResponse]:
    """List spotlight claims for review, oldest first."""

    claim_status: SpotlightClaimStatus | None = None
    if status_filter:
        try:
            claim_status = SpotlightClaimStatus(status_filter)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported claim status: {status_filter}") from exc

    claims = await SpotlightClaimService(db, storage=storage).list_claims(status=claim_status, limit=limit)
    return [
        ModerationClaimResponse(userId=claim.user_id, **serialize_claim(claim).model_dump())
        for claim in claims
    ]


@router.post(
    "/spotlight-claims/{claim_id}/review",
    response_model=ModerationClaimResponse,
    status_code=status.HTTP_200_OK,
)
async def review_spotlight_claim(
    claim_id: UUID,
    payload: ClaimReviewRequest,
    moderator: User = Depends(require_moderator_session),
    db: AsyncSession = Depends(get_session),
    storage: EvidenceStorage = Depends(get_evidence_storage),
) -> ModerationClaimResponse:
    claim = await SpotlightClaimService(db, storage=storage).review_claim(
        claim_id,
        reviewer=moderator,
        decision=payload.decision,
        note=payload.note,
    )
    return ModerationClaimResponse(userId=claim.user_id, **serialize_claim(claim).model_dump())
