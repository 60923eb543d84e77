"""Pending review queue model."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from attendee_identity.models.base import Base, IdMixin, TimestampMixin

REVIEW_STATUS_OPEN = "open"
REVIEW_STATUS_RESOLVED = "resolved"
REVIEW_STATUS_DISMISSED = "dismissed"


class PendingReviewItem(Base, IdMixin, TimestampMixin):
    """A participant observation the resolver could not assign with confidence."""

    __tablename__ = "pending_review_items"
    __table_args__ = (
        UniqueConstraint(
            "meeting_instance_id",
            "raw_name",
            name="uq_pending_review_items_instance_raw_name",
        ),
    )

    meeting_instance_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    raw_name: Mapped[str] = mapped_column(String(255), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(255), nullable=False)
    candidate_identity_ids_json: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    candidate_scores_json: Mapped[list[float]] = mapped_column(JSON, default=list, nullable=False)
    top_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    queue_reason: Mapped[str] = mapped_column(String(64), nullable=False)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    platform_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16),
        default=REVIEW_STATUS_OPEN,
        index=True,
        nullable=False,
    )
    decision: Mapped[str | None] = mapped_column(String(32), nullable=True)
    resolved_identity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
