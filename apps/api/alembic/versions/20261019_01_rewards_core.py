"""Create users, award ledger, check-in, referral and spotlight tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


award_event_kind = sa.Enum("daily_checkin", "referral_bonus", "spotlight_claim", name="award_event_kind")
spotlight_claim_status = sa.Enum("pending", "approved", "rejected", name="spotlight_claim_status")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="member"),
        sa.Column("referral_code", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_referral_code", "users", ["referral_code"], unique=True)

    op.create_table(
        "award_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("kind", award_event_kind, nullable=False),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("kind", "source_id", name="uq_award_events_kind_source"),
        sa.CheckConstraint("amount > 0", name="ck_award_events_amount_positive"),
    )
    op.create_index("ix_award_events_user_created", "award_events", ["user_id", "created_at"])

    op.create_table(
        "daily_checkins",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("checkin_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "checkin_date", name="uq_daily_checkins_user_date"),
    )
    op.create_index("ix_daily_checkins_user_id", "daily_checkins", ["user_id"])

    op.create_table(
        "referral_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("referred_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referrer_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referral_code", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("referred_user_id", name="uq_referral_applications_referred"),
    )
    op.create_index("ix_referral_applications_referrer_user_id", "referral_applications", ["referrer_user_id"])

    op.create_table(
        "spotlight_candidates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("tool_name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cta_url", sa.String(), nullable=True),
        sa.Column("points_reward", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_spotlight_candidates_created_at", "spotlight_candidates", ["created_at"])

    op.create_table(
        "spotlight_claim_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "spotlight_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("spotlight_candidates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_email", sa.String(), nullable=False),
        sa.Column("evidence_uri", sa.String(), nullable=False),
        sa.Column("status", spotlight_claim_status, nullable=False, server_default="pending"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_spotlight_claims_user_spotlight_created",
        "spotlight_claim_requests",
        ["user_id", "spotlight_id", "created_at"],
    )
    op.create_index("ix_spotlight_claims_status_created", "spotlight_claim_requests", ["status", "created_at"])

    op.execute(
        """
        CREATE VIEW v_points_balance AS
        SELECT user_id, SUM(amount) AS balance
        FROM award_events
        GROUP BY user_id
        """
    )


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS v_points_balance")
    op.drop_index("ix_spotlight_claims_status_created", table_name="spotlight_claim_requests")
    op.drop_index("ix_spotlight_claims_user_spotlight_created", table_name="spotlight_claim_requests")
    op.drop_table("spotlight_claim_requests")
    op.drop_index("ix_spotlight_candidates_created_at", table_name="spotlight_candidates")
    op.drop_table("spotlight_candidates")
    op.drop_index("ix_referral_applications_referrer_user_id", table_name="referral_applications")
    op.drop_table("referral_applications")
    op.drop_index("ix_daily_checkins_user_id", table_name="daily_checkins")
    op.drop_table("daily_checkins")
    op.drop_index("ix_award_events_user_created", table_name="award_events")
    op.drop_table("award_events")
    op.drop_index("ix_users_referral_code", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    spotlight_claim_status.drop(op.get_bind(), checkfirst=True)
    award_event_kind.drop(op.get_bind(), checkfirst=True)
