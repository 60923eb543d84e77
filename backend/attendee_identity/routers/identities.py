"""Identity inspection and manual correction routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from attendee_identity.db.dependencies import get_db
from attendee_identity.errors import IdentityResolutionError
from attendee_identity.routers.errors import http_error_for
from attendee_identity.schemas.attendance import AttendanceRecordRead
from attendee_identity.schemas.common import ApiResponse
from attendee_identity.schemas.identity import (
    AppearanceMismatchRead,
    ConsistencyReportRead,
    IdentityHistoryRead,
    IdentityListResponse,
    IdentityRead,
    MergeLogEntryRead,
)
from attendee_identity.schemas.merges import DemergeRequest, MergeRequest, RevertRequest
from attendee_identity.services.attendance import list_attendance_for_identity
from attendee_identity.services.identity_store import (
    audit_identity_consistency,
    get_identity,
    get_identity_history,
    list_identities,
)
from attendee_identity.services.merges import (
    demerge_identity,
    list_merge_log,
    merge_identities,
    revert_merge_log_entry,
)

router = APIRouter()


@router.get("/identities", response_model=ApiResponse[IdentityListResponse])
def get_identities(
    include_merged: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[IdentityListResponse]:
    """List identities by appearance count."""

    identities = list_identities(db, include_merged=include_merged, limit=limit, offset=offset)
    return ApiResponse(
        data=IdentityListResponse(
            items=[IdentityRead.model_validate(identity) for identity in identities],
            limit=limit,
            offset=offset,
        )
    )


@router.get("/identities/consistency", response_model=ApiResponse[ConsistencyReportRead])
def get_identity_consistency(db: Session = Depends(get_db)) -> ApiResponse[ConsistencyReportRead]:
    """Audit appearance counters and alias ownership against the ledger."""

    report = audit_identity_consistency(db)
    return ApiResponse(
        data=ConsistencyReportRead(
            ok=report.ok,
            appearance_mismatches=[
                AppearanceMismatchRead(identity_id=identity_id, recorded=recorded, ledger=ledger)
                for identity_id, (recorded, ledger) in sorted(report.appearance_mismatches.items())
            ],
            aliases_on_merged_identities=report.aliases_on_merged_identities,
            attendance_on_merged_identities=report.attendance_on_merged_identities,
            shared_platform_user_ids=report.shared_platform_user_ids,
        )
    )


@router.post("/identities/merge", response_model=ApiResponse[MergeLogEntryRead])
def post_merge(
    payload: MergeRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[MergeLogEntryRead]:
    """Absorb one identity into another."""

    try:
        entry = merge_identities(
            db,
            payload.source_identity_id,
            payload.target_identity_id,
            reason=payload.reason,
            actor=payload.actor,
        )
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=MergeLogEntryRead.model_validate(entry))


@router.get("/identities/{identity_id}", response_model=ApiResponse[IdentityRead])
def get_identity_detail(
    identity_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[IdentityRead]:
    identity = get_identity(db, identity_id)
    if identity is None:
        raise HTTPException(status_code=404, detail="Identity not found")
    return ApiResponse(data=IdentityRead.model_validate(identity))


@router.get("/identities/{identity_id}/history", response_model=ApiResponse[IdentityHistoryRead])
def get_identity_history_detail(
    identity_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[IdentityHistoryRead]:
    """Aliases, former aliases and merge log trail for one identity."""

    try:
        history = get_identity_history(db, identity_id)
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=history)


@router.get("/identities/{identity_id}/attendance", response_model=ApiResponse[list[AttendanceRecordRead]])
def get_identity_attendance(
    identity_id: int = Path(..., ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[list[AttendanceRecordRead]]:
    if get_identity(db, identity_id) is None:
        raise HTTPException(status_code=404, detail="Identity not found")
    rows = list_attendance_for_identity(db, identity_id, limit=limit, offset=offset)
    return ApiResponse(data=[AttendanceRecordRead.model_validate(row) for row in rows])


@router.post("/identities/{identity_id}/demerge", response_model=ApiResponse[MergeLogEntryRead])
def post_demerge(
    payload: DemergeRequest,
    identity_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[MergeLogEntryRead]:
    """Split aliases away from an identity."""

    try:
        entry = demerge_identity(
            db,
            identity_id,
            payload.aliases,
            target_identity_id=payload.target_identity_id,
            reason=payload.reason,
            actor=payload.actor,
        )
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=MergeLogEntryRead.model_validate(entry))


@router.get("/merge-log", response_model=ApiResponse[list[MergeLogEntryRead]])
def get_merge_log(
    identity_id: int | None = Query(default=None, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[list[MergeLogEntryRead]]:
    entries = list_merge_log(db, identity_id=identity_id, limit=limit, offset=offset)
    return ApiResponse(data=[MergeLogEntryRead.model_validate(entry) for entry in entries])


@router.post("/merge-log/{entry_id}/revert", response_model=ApiResponse[MergeLogEntryRead])
def post_revert(
    payload: RevertRequest,
    entry_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[MergeLogEntryRead]:
    """Append the inverse of a logged merge or demerge."""

    try:
        entry = revert_merge_log_entry(db, entry_id, reason=payload.reason, actor=payload.actor)
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=MergeLogEntryRead.model_validate(entry))
