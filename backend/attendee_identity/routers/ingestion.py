"""Participant list ingestion routes."""

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.orm import Session

from attendee_identity.db.dependencies import get_db
from attendee_identity.errors import IdentityResolutionError
from attendee_identity.routers.errors import http_error_for
from attendee_identity.schemas.attendance import IngestRequest, IngestResultRead
from attendee_identity.schemas.common import ApiResponse
from attendee_identity.services.ingestion import ingest_meeting_instance

router = APIRouter()


@router.post(
    "/meeting-instances/{meeting_instance_id}/participants",
    response_model=ApiResponse[IngestResultRead],
)
def post_participants(
    payload: IngestRequest,
    meeting_instance_id: str = Path(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
) -> ApiResponse[IngestResultRead]:
    """Resolve one meeting instance's participant list; safe to replay."""

    if not payload.participants:
        raise HTTPException(status_code=422, detail="participants must not be empty")
    try:
        result = ingest_meeting_instance(db, meeting_instance_id, payload.participants)
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=result)
