"""Request schemas for manual merge/demerge corrections."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class MergeRequest(BaseModel):
    """Absorb `source_identity_id` into `target_identity_id`."""

    source_identity_id: int = Field(..., ge=1)
    target_identity_id: int = Field(..., ge=1)
    reason: str = Field(..., min_length=1, max_length=255)
    actor: str | None = Field(default=None, max_length=128)


class DemergeRequest(BaseModel):
    """Split aliases (and their attendance) away from an identity."""

    aliases: list[str] = Field(..., min_length=1)
    target_identity_id: int | None = Field(default=None, ge=1)
    reason: str = Field(..., min_length=1, max_length=255)
    actor: str | None = Field(default=None, max_length=128)

    @field_validator("aliases")
    @classmethod
    def strip_aliases(cls, value: list[str]) -> list[str]:
        cleaned = [alias.strip() for alias in value if alias.strip()]
        if not cleaned:
            raise ValueError("At least one non-empty alias must be provided.")
        return cleaned


class RevertRequest(BaseModel):
    """Apply the inverse of a logged merge/demerge."""

    reason: str = Field(..., min_length=1, max_length=255)
    actor: str | None = Field(default=None, max_length=128)
