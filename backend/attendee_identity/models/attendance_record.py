"""Attendance ledger model."""

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from attendee_identity.models.base import Base, CreatedAtMixin, IdMixin


class AttendanceRecord(Base, IdMixin, CreatedAtMixin):
    """One participant in one meeting instance, attributed to a canonical identity."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint(
            "meeting_instance_id",
            "raw_name_observed",
            name="uq_attendance_records_instance_raw_name",
        ),
    )

    meeting_instance_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    identity_id: Mapped[int] = mapped_column(
        ForeignKey("identities.id"),
        index=True,
        nullable=False,
    )
    raw_name_observed: Mapped[str] = mapped_column(String(255), nullable=False)
    alias: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    match_reason: Mapped[str] = mapped_column(String(64), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
