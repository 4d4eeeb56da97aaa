"""Error taxonomy for the rewards engine.

Each error carries the HTTP status and public detail used by the API layer so
services can raise domain errors without importing FastAPI.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for errors surfaced to rewards API callers."""

    status_code: int = 400
    code: str = "rewards_error"
    detail: str = "Rewards request failed"
    retryable: bool = False

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class NotAuthenticated(RewardsError):
    status_code = 401
    code = "not_authenticated"
    detail = "Please sign in"


class InvalidReferralCode(RewardsError):
    status_code = 400
    code = "invalid_referral_code"
    detail = "Referral code not recognised"


class SelfReferral(RewardsError):
    status_code = 400
    code = "self_referral"
    detail = "You cannot use your own referral code"


class SpotlightNotFound(RewardsError):
    status_code = 404
    code = "spotlight_not_found"
    detail = "Spotlight not found"


class ClaimNotFound(RewardsError):
    status_code = 404
    code = "claim_not_found"
    detail = "Spotlight claim not found"


class ModerationForbidden(RewardsError):
    status_code = 403
    code = "moderation_forbidden"
    detail = "Only moderators can review spotlight claims"


class InvalidClaimTransition(RewardsError):
    status_code = 409
    code = "invalid_claim_transition"
    detail = "Spotlight claim has already been reviewed"


class EvidenceUploadFailed(RewardsError):
    status_code = 502
    code = "evidence_upload_failed"
    detail = "Evidence upload failed, please try again"
    retryable = True


class ClaimRecordFailed(RewardsError):
    status_code = 503
    code = "claim_record_failed"
    detail = "Could not record your claim, please try again"
    retryable = True


class ConstraintConflict(RewardsError):
    """A uniqueness guard was lost to a concurrent writer.

    Services convert this into their idempotent "already done" response; it is
    never rendered to callers.
    """

    status_code = 409
    code = "constraint_conflict"
    detail = "Conflicting write"


__all__ = [
    "ClaimNotFound",
    "ClaimRecordFailed",
    "ConstraintConflict",
    "EvidenceUploadFailed",
    "InvalidClaimTransition",
    "InvalidReferralCode",
    "ModerationForbidden",
    "NotAuthenticated",
    "RewardsError",
    "SelfReferral",
    "SpotlightNotFound",
]
