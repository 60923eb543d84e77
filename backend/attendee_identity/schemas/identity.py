"""Identity, alias and merge log response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class IdentityRead(BaseModel):
    """Serialized canonical identity."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    canonical_name: str
    platform_user_id: str | None
    total_appearances: int
    status: str
    match_reason: str | None
    merged_into_id: int | None
    created_at: datetime
    updated_at: datetime


class IdentityAliasRead(BaseModel):
    """Serialized alias owned by an identity."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    identity_id: int
    alias: str
    normalized_name: str
    first_seen_at: datetime


class MergeLogEntryRead(BaseModel):
    """Serialized merge/demerge audit record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    operation: str
    source_identity_id: int
    target_identity_id: int
    reason: str
    actor: str | None
    aliases_moved_json: list[str]
    attendance_ids_moved_json: list[int]
    appearances_moved: int
    platform_user_id_moved: str | None
    reverts_entry_id: int | None


class IdentityHistoryRead(BaseModel):
    """Diagnosis payload: current aliases, aliases moved away and the merge trail."""

    identity: IdentityRead
    aliases: list[IdentityAliasRead]
    former_aliases: list[str]
    merge_log: list[MergeLogEntryRead]
    attendance_count: int


class IdentityListResponse(BaseModel):
    items: list[IdentityRead]
    limit: int
    offset: int


class AppearanceMismatchRead(BaseModel):
    identity_id: int
    recorded: int
    ledger: int


class ConsistencyReportRead(BaseModel):
    """Identity store invariant violations; empty lists mean consistent."""

    ok: bool
    appearance_mismatches: list[AppearanceMismatchRead]
    aliases_on_merged_identities: list[str]
    attendance_on_merged_identities: list[int]
    shared_platform_user_ids: list[str]
