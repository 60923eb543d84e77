"""Canonical identity ORM models."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from attendee_identity.models.base import Base, CreatedAtMixin, IdMixin, TimestampMixin

IDENTITY_STATUS_ACTIVE = "active"
IDENTITY_STATUS_MERGED = "merged"


class Identity(Base, IdMixin, TimestampMixin):
    """One real person across every observed meeting alias.

    The primary key is the canonical id handed to downstream consumers. Merged
    identities are tombstoned (never deleted) so merge log entries keep
    pointing at real rows.
    """

    __tablename__ = "identities"

    canonical_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    platform_user_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    total_appearances: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        default=IDENTITY_STATUS_ACTIVE,
        index=True,
        nullable=False,
    )
    match_reason: Mapped[str | None] = mapped_column(String(128), nullable=True)
    merged_into_id: Mapped[int | None] = mapped_column(
        ForeignKey("identities.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == IDENTITY_STATUS_ACTIVE


class IdentityAlias(Base, IdMixin, CreatedAtMixin):
    """A raw display name owned by exactly one identity."""

    __tablename__ = "identity_aliases"

    identity_id: Mapped[int] = mapped_column(
        ForeignKey("identities.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    alias: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
