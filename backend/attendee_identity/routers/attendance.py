"""Attendance ledger routes for the metrics collaborator."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from attendee_identity.db.dependencies import get_db
from attendee_identity.schemas.attendance import AttendancePairRead, AttendanceWindowRead, MetricWindow
from attendee_identity.schemas.common import ApiResponse
from attendee_identity.services.attendance import attendance_for, attendance_summary_for, new_attendees_for

router = APIRouter()


@router.get("/attendance", response_model=ApiResponse[AttendanceWindowRead])
def get_attendance(
    start: datetime = Query(...),
    end: datetime = Query(...),
    db: Session = Depends(get_db),
) -> ApiResponse[AttendanceWindowRead]:
    """Distinct (canonical id, meeting instance) pairs joined in [start, end)."""

    try:
        window = MetricWindow(start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="end must be after start") from exc

    pairs = sorted(attendance_for(db, window), key=lambda pair: (pair[1], pair[0]))
    return ApiResponse(
        data=AttendanceWindowRead(
            start=window.start,
            end=window.end,
            pairs=[
                AttendancePairRead(canonical_id=identity_id, meeting_instance_id=meeting_instance_id)
                for identity_id, meeting_instance_id in pairs
            ],
            new_attendee_ids=sorted(new_attendees_for(db, window)),
            meetings=attendance_summary_for(db, window),
        )
    )
