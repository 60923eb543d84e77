"""Pending review queue schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PendingReviewItemRead(BaseModel):
    """Serialized pending review item."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_instance_id: str
    raw_name: str
    normalized_name: str
    candidate_identity_ids_json: list[int]
    candidate_scores_json: list[float]
    top_score: float | None
    queue_reason: str
    observed_at: datetime
    duration_seconds: int
    platform_user_id: str | None
    status: str
    decision: str | None
    resolved_identity_id: int | None
    resolution_note: str | None
    resolved_at: datetime | None
    created_at: datetime


class ReviewDecision(BaseModel):
    """Reviewer decision for one open item."""

    action: Literal["attach_to", "create_new", "dismiss"]
    identity_id: int | None = Field(default=None, ge=1)
    canonical_name: str | None = Field(default=None, min_length=1, max_length=255)
    note: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def validate_target(self) -> "ReviewDecision":
        if self.action == "attach_to" and self.identity_id is None:
            raise ValueError("identity_id is required for attach_to.")
        if self.action != "attach_to" and self.identity_id is not None:
            raise ValueError("identity_id is only valid for attach_to.")
        return self


class ReviewQueueStats(BaseModel):
    """Queue counts by status and by open queue reason."""

    by_status: dict[str, int]
    open_by_reason: dict[str, int]


class PendingReviewItemListResponse(BaseModel):
    items: list[PendingReviewItemRead]
    total: int
    limit: int
    offset: int
