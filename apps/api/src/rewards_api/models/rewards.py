"""Rewards ledger, check-in, referral and spotlight models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rewards_api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class AwardEventKind(str, Enum):
    """Reasons a user can be granted points."""

    DAILY_CHECKIN = "daily_checkin"
    REFERRAL_BONUS = "referral_bonus"
    SPOTLIGHT_CLAIM = "spotlight_claim"


class AwardEvent(Base):
    """Append-only record of points granted to a user.

    A user's balance is the sum of ``amount`` over their events. ``source_id``
    points at the guard row that produced the award, and the unique
    ``(kind, source_id)`` pair stops any guard row from paying out twice.
    """

    __tablename__ = "award_events"
    __table_args__ = (
        UniqueConstraint("kind", "source_id", name="uq_award_events_kind_source"),
        CheckConstraint("amount > 0", name="ck_award_events_amount_positive"),
        Index("ix_award_events_user_created", "user_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)
    kind = Column(SqlEnum(AwardEventKind, name="award_event_kind", values_callable=_enum_values), nullable=False)
    source_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class DailyCheckin(Base):
    """One row per user per UTC calendar day."""

    __tablename__ = "daily_checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "checkin_date", name="uq_daily_checkins_user_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    checkin_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class ReferralApplication(Base):
    """Binding of a referred account to its referrer; at most one per account."""

    __tablename__ = "referral_applications"
    __table_args__ = (
        UniqueConstraint("referred_user_id", name="uq_referral_applications_referred"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    referred_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referrer_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_code = Column(String(length=16), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class SpotlightCandidate(Base):
    """Promoted third-party tool that members can claim a reward for."""

    __tablename__ = "spotlight_candidates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    tool_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    cta_url = Column(String, nullable=True)
    points_reward = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)

    claims = relationship("SpotlightClaimRequest", back_populates="spotlight")


class SpotlightClaimStatus(str, Enum):
    """Moderation lifecycle for spotlight claims."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SpotlightClaimRequest(Base):
    """Evidence-backed request for a spotlight reward awaiting moderation."""

    __tablename__ = "spotlight_claim_requests"
    __table_args__ = (
        Index("ix_spotlight_claims_user_spotlight_created", "user_id", "spotlight_id", "created_at"),
        Index("ix_spotlight_claims_status_created", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    spotlight_id = Column(
        UUID(as_uuid=True),
        ForeignKey("spotlight_candidates.id", ondelete="CASCADE"),
        nullable=False,
    )
    external_email = Column(String, nullable=False)
    evidence_uri = Column(String, nullable=False)
    status = Column(
        SqlEnum(SpotlightClaimStatus, name="spotlight_claim_status", values_callable=_enum_values),
        nullable=False,
        default=SpotlightClaimStatus.PENDING,
        server_default=SpotlightClaimStatus.PENDING.value,
    )
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    review_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    spotlight = relationship("SpotlightCandidate", back_populates="claims")
