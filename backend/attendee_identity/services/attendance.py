"""Attendance ledger queries consumed by the metrics collaborator."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.schemas.attendance import MeetingAttendanceSummary, MetricWindow


def attendance_for(db: Session, window: MetricWindow) -> set[tuple[int, str]]:
    """Distinct `(canonical_id, meeting_instance_id)` pairs joined inside the window.

    Merge and demerge repoint ledger rows, so every pair references a live
    identity and one person counts once per meeting instance.
    """

    rows = db.execute(
        select(AttendanceRecord.identity_id, AttendanceRecord.meeting_instance_id)
        .where(
            AttendanceRecord.joined_at >= window.start,
            AttendanceRecord.joined_at < window.end,
        )
        .distinct()
    ).all()
    return {(int(identity_id), str(meeting_instance_id)) for identity_id, meeting_instance_id in rows}


def new_attendees_for(db: Session, window: MetricWindow) -> set[int]:
    """Identities whose first ever attendance falls inside the window."""

    first_seen = func.min(AttendanceRecord.joined_at)
    rows = db.execute(
        select(AttendanceRecord.identity_id)
        .group_by(AttendanceRecord.identity_id)
        .having(first_seen >= window.start, first_seen < window.end)
    ).all()
    return {int(identity_id) for (identity_id,) in rows}


def attendance_summary_for(db: Session, window: MetricWindow) -> list[MeetingAttendanceSummary]:
    """Unique and first-time attendee counts per meeting instance in the window."""

    rows = db.execute(
        select(
            AttendanceRecord.meeting_instance_id,
            AttendanceRecord.identity_id,
            AttendanceRecord.joined_at,
        ).where(
            AttendanceRecord.joined_at >= window.start,
            AttendanceRecord.joined_at < window.end,
        )
    ).all()
    if not rows:
        return []

    identity_ids = {identity_id for _, identity_id, _ in rows}
    first_seen: dict[int, datetime] = dict(
        db.execute(
            select(AttendanceRecord.identity_id, func.min(AttendanceRecord.joined_at))
            .where(AttendanceRecord.identity_id.in_(identity_ids))
            .group_by(AttendanceRecord.identity_id)
        ).all()
    )

    attendees: dict[str, set[int]] = defaultdict(set)
    newcomers: dict[str, set[int]] = defaultdict(set)
    for meeting_instance_id, identity_id, joined_at in rows:
        attendees[meeting_instance_id].add(identity_id)
        if first_seen.get(identity_id) == joined_at:
            newcomers[meeting_instance_id].add(identity_id)

    return [
        MeetingAttendanceSummary(
            meeting_instance_id=meeting_instance_id,
            unique_attendees=len(attendees[meeting_instance_id]),
            new_attendees=len(newcomers[meeting_instance_id]),
        )
        for meeting_instance_id in sorted(attendees)
    ]


def list_attendance_for_identity(
    db: Session,
    identity_id: int,
    *,
    limit: int = 100,
    offset: int = 0,
) -> list[AttendanceRecord]:
    stmt = (
        select(AttendanceRecord)
        .where(AttendanceRecord.identity_id == identity_id)
        .order_by(AttendanceRecord.joined_at.desc(), AttendanceRecord.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(db.scalars(stmt).all())
