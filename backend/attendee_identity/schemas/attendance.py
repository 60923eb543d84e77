"""Ingestion and attendance ledger schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ParticipantIn(BaseModel):
    """One raw participant row as delivered by the ingestion collaborator."""

    raw_name: str = Field(..., max_length=255)
    joined_at: datetime
    duration_seconds: int = Field(default=0, ge=0)
    platform_user_id: str | None = Field(default=None, max_length=255)


class IngestRequest(BaseModel):
    participants: list[ParticipantIn]


class ObservationResultRead(BaseModel):
    raw_name: str
    state: str
    match_state: str
    identity_id: int | None
    review_item_id: int | None
    match_reason: str | None
    confidence: float | None
    duplicate: bool


class IngestResultRead(BaseModel):
    """Per-instance ingestion summary."""

    meeting_instance_id: str
    attached: int
    queued: int
    created_identities: int
    duplicates: int
    results: list[ObservationResultRead]


class AttendanceRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_instance_id: str
    identity_id: int
    raw_name_observed: str
    alias: str
    joined_at: datetime
    duration_seconds: int
    match_reason: str
    confidence: float


class MetricWindow(BaseModel):
    """Half-open [start, end) window on `joined_at`."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "MetricWindow":
        if self.end <= self.start:
            raise ValueError("end must be after start.")
        return self


class AttendancePairRead(BaseModel):
    canonical_id: int
    meeting_instance_id: str


class MeetingAttendanceSummary(BaseModel):
    meeting_instance_id: str
    unique_attendees: int
    new_attendees: int


class AttendanceWindowRead(BaseModel):
    """Ledger projection for one metric window."""

    start: datetime
    end: datetime
    pairs: list[AttendancePairRead]
    new_attendee_ids: list[int]
    meetings: list[MeetingAttendanceSummary]
