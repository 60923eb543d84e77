"""SQLAlchemy metadata registry import for Alembic."""

from attendee_identity.models import AttendanceRecord, Identity, IdentityAlias, MergeLogEntry, PendingReviewItem
from attendee_identity.models.base import Base

__all__ = ["Base", "Identity", "IdentityAlias", "MergeLogEntry", "PendingReviewItem", "AttendanceRecord"]
