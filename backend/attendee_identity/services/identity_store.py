"""Identity store: canonical identities, alias sets and appearance counters."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from attendee_identity.errors import AliasOwnershipConflictError, NotFoundError
from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.identity import IDENTITY_STATUS_ACTIVE, Identity, IdentityAlias
from attendee_identity.models.merge_log_entry import MergeLogEntry
from attendee_identity.models.pending_review_item import PendingReviewItem
from attendee_identity.resolution.normalizer import choose_canonical_name
from attendee_identity.schemas.identity import (
    IdentityAliasRead,
    IdentityHistoryRead,
    IdentityRead,
    MergeLogEntryRead,
)


def get_identity(db: Session, identity_id: int) -> Identity | None:
    return db.get(Identity, identity_id)


def require_live_identity(db: Session, identity_id: int) -> Identity:
    """Return an active identity or raise NotFoundError."""

    identity = db.get(Identity, identity_id)
    if identity is None or not identity.is_active:
        raise NotFoundError("Identity", identity_id)
    return identity


def find_identity_by_platform_user_id(db: Session, platform_user_id: str) -> Identity | None:
    return db.scalar(select(Identity).where(Identity.platform_user_id == platform_user_id))


def find_alias(db: Session, alias: str) -> IdentityAlias | None:
    return db.scalar(select(IdentityAlias).where(IdentityAlias.alias == alias))


def list_identity_aliases(db: Session, identity_id: int) -> list[IdentityAlias]:
    stmt = (
        select(IdentityAlias)
        .where(IdentityAlias.identity_id == identity_id)
        .order_by(IdentityAlias.first_seen_at.asc(), IdentityAlias.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_identities(
    db: Session,
    *,
    include_merged: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[Identity]:
    stmt = select(Identity)
    if not include_merged:
        stmt = stmt.where(Identity.status == IDENTITY_STATUS_ACTIVE)
    stmt = stmt.order_by(Identity.total_appearances.desc(), Identity.id.asc()).offset(offset).limit(limit)
    return list(db.scalars(stmt).all())


def find_attendance(db: Session, meeting_instance_id: str, raw_name: str) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord).where(
            AttendanceRecord.meeting_instance_id == meeting_instance_id,
            AttendanceRecord.raw_name_observed == raw_name,
        )
    )


def find_review_item(db: Session, meeting_instance_id: str, raw_name: str) -> PendingReviewItem | None:
    return db.scalar(
        select(PendingReviewItem).where(
            PendingReviewItem.meeting_instance_id == meeting_instance_id,
            PendingReviewItem.raw_name == raw_name,
        )
    )


def create_identity(
    db: Session,
    *,
    canonical_name: str,
    match_reason: str,
    platform_user_id: str | None = None,
) -> Identity:
    """Insert a new active identity and flush to assign its canonical id."""

    identity = Identity(
        canonical_name=canonical_name,
        platform_user_id=platform_user_id,
        total_appearances=0,
        status=IDENTITY_STATUS_ACTIVE,
        match_reason=match_reason,
    )
    db.add(identity)
    db.flush()
    return identity


def attach_alias(
    db: Session,
    identity: Identity,
    alias: str,
    normalized: str,
    seen_at: datetime,
) -> IdentityAlias | None:
    """Add an alias to an identity; None when it is empty or already owned by it."""

    if not alias:
        return None
    existing = find_alias(db, alias)
    if existing is not None:
        if existing.identity_id == identity.id:
            return None
        raise AliasOwnershipConflictError(
            f"Alias {alias!r} belongs to identity {existing.identity_id}, not {identity.id}"
        )
    row = IdentityAlias(
        identity_id=identity.id,
        alias=alias,
        normalized_name=normalized,
        first_seen_at=seen_at,
    )
    db.add(row)
    return row


def record_attendance(
    db: Session,
    identity: Identity,
    *,
    meeting_instance_id: str,
    raw_name: str,
    alias: str,
    joined_at: datetime,
    duration_seconds: int,
    match_reason: str,
    confidence: float,
) -> AttendanceRecord:
    """Write one ledger row and bump the identity's appearance counter."""

    record = AttendanceRecord(
        meeting_instance_id=meeting_instance_id,
        identity_id=identity.id,
        raw_name_observed=raw_name,
        alias=alias,
        joined_at=joined_at,
        duration_seconds=duration_seconds,
        match_reason=match_reason,
        confidence=confidence,
    )
    db.add(record)
    identity.total_appearances += 1
    return record


def refresh_canonical_name(db: Session, identity: Identity) -> None:
    """Re-pick the canonical display name from the current alias set."""

    db.flush()
    name = choose_canonical_name(row.alias for row in list_identity_aliases(db, identity.id))
    if name:
        identity.canonical_name = name


def get_identity_history(db: Session, identity_id: int) -> IdentityHistoryRead:
    """Aliases, merge log trail and ledger count for one identity (live or tombstoned)."""

    identity = db.get(Identity, identity_id)
    if identity is None:
        raise NotFoundError("Identity", identity_id)
    entries = list(
        db.scalars(
            select(MergeLogEntry)
            .where(
                or_(
                    MergeLogEntry.source_identity_id == identity_id,
                    MergeLogEntry.target_identity_id == identity_id,
                )
            )
            .order_by(MergeLogEntry.id.asc())
        ).all()
    )
    attendance_count = db.scalar(
        select(func.count(AttendanceRecord.id)).where(AttendanceRecord.identity_id == identity_id)
    )
    aliases = list_identity_aliases(db, identity_id)
    current = {row.alias for row in aliases}
    historical: list[str] = []
    for entry in entries:
        for alias in entry.aliases_moved_json or []:
            if alias not in current and alias not in historical:
                historical.append(alias)
    return IdentityHistoryRead(
        identity=IdentityRead.model_validate(identity),
        aliases=[IdentityAliasRead.model_validate(row) for row in aliases],
        former_aliases=historical,
        merge_log=[MergeLogEntryRead.model_validate(entry) for entry in entries],
        attendance_count=int(attendance_count or 0),
    )


@dataclass(slots=True)
class ConsistencyReport:
    """Violations of the identity store invariants."""

    appearance_mismatches: dict[int, tuple[int, int]] = field(default_factory=dict)
    aliases_on_merged_identities: list[str] = field(default_factory=list)
    attendance_on_merged_identities: list[int] = field(default_factory=list)
    shared_platform_user_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.appearance_mismatches
            or self.aliases_on_merged_identities
            or self.attendance_on_merged_identities
            or self.shared_platform_user_ids
        )


def audit_identity_consistency(db: Session) -> ConsistencyReport:
    """Check counters against the ledger and ownership of aliases/rows by live identities."""

    report = ConsistencyReport()
    ledger_counts = dict(
        db.execute(
            select(AttendanceRecord.identity_id, func.count(AttendanceRecord.id)).group_by(
                AttendanceRecord.identity_id
            )
        ).all()
    )
    identities = list(db.scalars(select(Identity)).all())
    status_by_id = {identity.id: identity.status for identity in identities}
    for identity in identities:
        ledger = int(ledger_counts.get(identity.id, 0))
        if identity.total_appearances != ledger:
            report.appearance_mismatches[identity.id] = (identity.total_appearances, ledger)

    for identity_id, alias in db.execute(select(IdentityAlias.identity_id, IdentityAlias.alias)).all():
        if status_by_id.get(identity_id) != IDENTITY_STATUS_ACTIVE:
            report.aliases_on_merged_identities.append(alias)

    for identity_id in ledger_counts:
        if status_by_id.get(identity_id) != IDENTITY_STATUS_ACTIVE:
            report.attendance_on_merged_identities.append(identity_id)

    platform_ids = Counter(identity.platform_user_id for identity in identities if identity.platform_user_id)
    report.shared_platform_user_ids = sorted(key for key, count in platform_ids.items() if count > 1)
    return report


def repair_appearance_counts(db: Session) -> dict[int, tuple[int, int]]:
    """Recount `total_appearances` from the ledger; returns {id: (old, new)} for fixed rows."""

    counts: dict[int, int] = defaultdict(int)
    for identity_id, total in db.execute(
        select(AttendanceRecord.identity_id, func.count(AttendanceRecord.id)).group_by(AttendanceRecord.identity_id)
    ).all():
        counts[identity_id] = int(total)
    repaired: dict[int, tuple[int, int]] = {}
    for identity in db.scalars(select(Identity)).all():
        expected = counts[identity.id]
        if identity.total_appearances != expected:
            repaired[identity.id] = (identity.total_appearances, expected)
            identity.total_appearances = expected
    db.commit()
    return repaired
