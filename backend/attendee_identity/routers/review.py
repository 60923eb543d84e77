"""Pending review queue routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from attendee_identity.db.dependencies import get_db
from attendee_identity.errors import IdentityResolutionError
from attendee_identity.routers.errors import http_error_for
from attendee_identity.schemas.common import ApiResponse
from attendee_identity.schemas.review import (
    PendingReviewItemListResponse,
    PendingReviewItemRead,
    ReviewDecision,
    ReviewQueueStats,
)
from attendee_identity.services.review_queue import (
    get_review_item,
    list_open_review_items,
    resolve_review_item,
    review_queue_stats,
)

router = APIRouter()


@router.get("/review-items", response_model=ApiResponse[PendingReviewItemListResponse])
def get_review_items(
    candidate_identity_id: int | None = Query(default=None, ge=1),
    queue_reason: str | None = Query(default=None, min_length=1),
    observed_from: datetime | None = Query(default=None),
    observed_to: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> ApiResponse[PendingReviewItemListResponse]:
    """List open review items, oldest observation first."""

    items, total = list_open_review_items(
        db,
        candidate_identity_id=candidate_identity_id,
        queue_reason=queue_reason,
        observed_from=observed_from,
        observed_to=observed_to,
        limit=limit,
        offset=offset,
    )
    return ApiResponse(
        data=PendingReviewItemListResponse(
            items=[PendingReviewItemRead.model_validate(item) for item in items],
            total=total,
            limit=limit,
            offset=offset,
        )
    )


@router.get("/review-items/stats", response_model=ApiResponse[ReviewQueueStats])
def get_review_stats(db: Session = Depends(get_db)) -> ApiResponse[ReviewQueueStats]:
    return ApiResponse(data=review_queue_stats(db))


@router.get("/review-items/{item_id}", response_model=ApiResponse[PendingReviewItemRead])
def get_review_item_detail(
    item_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
) -> ApiResponse[PendingReviewItemRead]:
    try:
        item = get_review_item(db, item_id)
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=PendingReviewItemRead.model_validate(item))


@router.post("/review-items/{item_id}/resolve", response_model=ApiResponse[PendingReviewItemRead])
def post_review_decision(
    payload: ReviewDecision,
    item_id: int = Path(..., ge=1),
    actor: str | None = Query(default=None, max_length=128),
    db: Session = Depends(get_db),
) -> ApiResponse[PendingReviewItemRead]:
    """Attach, create a new identity for, or dismiss one open item."""

    try:
        item = resolve_review_item(db, item_id, payload, actor=actor)
    except IdentityResolutionError as exc:
        raise http_error_for(exc) from exc
    return ApiResponse(data=PendingReviewItemRead.model_validate(item))
