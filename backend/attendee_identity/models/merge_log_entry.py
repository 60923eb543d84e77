"""Merge/demerge audit log model."""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from attendee_identity.models.base import Base, IdMixin

MERGE_OPERATION = "merge"
DEMERGE_OPERATION = "demerge"


class MergeLogEntry(Base, IdMixin):
    """Append-only record of one merge or demerge; rows are never updated."""

    __tablename__ = "merge_log_entries"

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
        nullable=False,
    )
    operation: Mapped[str] = mapped_column(String(16), nullable=False)
    source_identity_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    target_identity_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    actor: Mapped[str | None] = mapped_column(String(128), nullable=True)
    aliases_moved_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    attendance_ids_moved_json: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    appearances_moved: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    platform_user_id_moved: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reverts_entry_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
