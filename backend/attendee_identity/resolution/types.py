"""Typed payloads exchanged with the resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from attendee_identity.resolution.alias_index import AliasCandidate


class MatchState(str, Enum):
    NEW = "new"
    EXACT_MATCH = "exact_match"
    FUZZY_MATCH = "fuzzy_match"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"


class TerminalState(str, Enum):
    ATTACHED = "attached"
    QUEUED = "queued"


@dataclass(slots=True)
class ParticipantObservation:
    """One raw participant row for one meeting instance."""

    meeting_instance_id: str
    raw_name: str
    joined_at: datetime
    duration_seconds: int = 0
    platform_user_id: str | None = None

    @property
    def alias(self) -> str:
        return self.raw_name.strip()


@dataclass(slots=True)
class ResolutionOutcome:
    """Result of resolving one observation."""

    state: TerminalState
    match_state: MatchState
    identity_id: int | None = None
    attendance_record_id: int | None = None
    review_item_id: int | None = None
    match_reason: str | None = None
    confidence: float | None = None
    candidates: list[AliasCandidate] = field(default_factory=list)
    duplicate: bool = False
    created_identity: bool = False

    @property
    def attached(self) -> bool:
        return self.state == TerminalState.ATTACHED
