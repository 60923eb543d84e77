"""ORM models package exports."""

from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.identity import Identity, IdentityAlias
from attendee_identity.models.merge_log_entry import MergeLogEntry
from attendee_identity.models.pending_review_item import PendingReviewItem

__all__ = [
    "AttendanceRecord",
    "Identity",
    "IdentityAlias",
    "MergeLogEntry",
    "PendingReviewItem",
]
