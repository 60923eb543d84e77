"""Manual merge/demerge corrections with an append-only merge log."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from time import perf_counter

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from attendee_identity.errors import (
    AliasNotOwnedError,
    EmptyIdentityError,
    MergeLogAlreadyRevertedError,
    NotFoundError,
    OperatorError,
    PlatformIdentityConflictError,
    SelfMergeError,
)
from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.identity import IDENTITY_STATUS_MERGED
from attendee_identity.models.merge_log_entry import DEMERGE_OPERATION, MERGE_OPERATION, MergeLogEntry
from attendee_identity.resolution.locks import identity_lock_key
from attendee_identity.resolution.normalizer import choose_canonical_name
from attendee_identity.resolution.runtime import ResolutionRuntime, get_resolution_runtime
from attendee_identity.services.identity_store import (
    create_identity,
    list_identity_aliases,
    refresh_canonical_name,
    require_live_identity,
)

logger = logging.getLogger(__name__)


def merge_identities(
    db: Session,
    source_identity_id: int,
    target_identity_id: int,
    *,
    reason: str,
    actor: str | None = None,
    runtime: ResolutionRuntime | None = None,
) -> MergeLogEntry:
    """Absorb the source identity into the target and tombstone the source."""

    runtime = runtime or get_resolution_runtime()
    if source_identity_id == target_identity_id:
        raise SelfMergeError(source_identity_id)

    started = perf_counter()
    with runtime.locks.hold(identity_lock_key(source_identity_id), identity_lock_key(target_identity_id)):
        try:
            entry = _apply_merge(db, source_identity_id, target_identity_id, reason=reason, actor=actor)
            db.commit()
        except Exception:
            db.rollback()
            raise
        runtime.index.reload_identities(db, (source_identity_id, target_identity_id))

    logger.info(
        (
            "identity.merge_applied entry_id=%d source_identity_id=%d target_identity_id=%d "
            "aliases=%d attendance_rows=%d appearances=%d total_ms=%.2f"
        ),
        entry.id,
        source_identity_id,
        target_identity_id,
        len(entry.aliases_moved_json),
        len(entry.attendance_ids_moved_json),
        entry.appearances_moved,
        (perf_counter() - started) * 1000.0,
    )
    return entry


def demerge_identity(
    db: Session,
    identity_id: int,
    aliases: Iterable[str],
    *,
    reason: str,
    target_identity_id: int | None = None,
    actor: str | None = None,
    runtime: ResolutionRuntime | None = None,
) -> MergeLogEntry:
    """Split aliases and their attendance rows away from an identity.

    The aliases move to `target_identity_id` when given, otherwise to a fresh
    identity. The source keeps its canonical id and any platform account.
    """

    runtime = runtime or get_resolution_runtime()
    requested = _clean_aliases(aliases)
    if not requested:
        raise OperatorError("At least one alias is required to demerge")
    if target_identity_id is not None and target_identity_id == identity_id:
        raise SelfMergeError(identity_id)

    started = perf_counter()
    keys = [identity_lock_key(identity_id)]
    if target_identity_id is not None:
        keys.append(identity_lock_key(target_identity_id))
    with runtime.locks.hold(*keys):
        try:
            entry = _apply_demerge(
                db,
                identity_id,
                requested,
                target_identity_id=target_identity_id,
                reason=reason,
                actor=actor,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        runtime.index.reload_identities(db, (entry.source_identity_id, entry.target_identity_id))

    logger.info(
        (
            "identity.demerge_applied entry_id=%d source_identity_id=%d target_identity_id=%d "
            "aliases=%d appearances=%d total_ms=%.2f"
        ),
        entry.id,
        entry.source_identity_id,
        entry.target_identity_id,
        len(entry.aliases_moved_json),
        entry.appearances_moved,
        (perf_counter() - started) * 1000.0,
    )
    return entry


def revert_merge_log_entry(
    db: Session,
    entry_id: int,
    *,
    reason: str,
    actor: str | None = None,
    runtime: ResolutionRuntime | None = None,
) -> MergeLogEntry:
    """Apply the structural inverse of a logged merge or demerge.

    A merge is undone by splitting the moved aliases and attendance rows back
    out to a fresh identity (the tombstoned id stays retired). A demerge is
    undone by moving the aliases back; when that empties the identity the
    demerge created, it is merged back instead. The original entry is never
    modified; the inverse is appended with `reverts_entry_id` set.
    """

    runtime = runtime or get_resolution_runtime()
    entry = db.get(MergeLogEntry, entry_id)
    if entry is None:
        raise NotFoundError("Merge log entry", entry_id)
    reverted_by = db.scalar(select(MergeLogEntry.id).where(MergeLogEntry.reverts_entry_id == entry_id))
    if reverted_by is not None:
        raise MergeLogAlreadyRevertedError(entry_id, reverted_by)

    keys = (identity_lock_key(entry.source_identity_id), identity_lock_key(entry.target_identity_id))
    with runtime.locks.hold(*keys):
        try:
            if entry.operation == MERGE_OPERATION:
                inverse = _apply_demerge(
                    db,
                    entry.target_identity_id,
                    entry.aliases_moved_json,
                    target_identity_id=None,
                    reason=reason,
                    actor=actor,
                    attendance_ids=entry.attendance_ids_moved_json,
                    platform_user_id=entry.platform_user_id_moved,
                    allow_empty=True,
                )
            else:
                inverse = _revert_demerge(db, entry, reason=reason, actor=actor)
            inverse.reverts_entry_id = entry.id
            db.commit()
        except Exception:
            db.rollback()
            raise
        runtime.index.reload_identities(
            db,
            (
                entry.source_identity_id,
                entry.target_identity_id,
                inverse.source_identity_id,
                inverse.target_identity_id,
            ),
        )

    logger.info(
        "identity.merge_log_reverted entry_id=%d inverse_entry_id=%d operation=%s",
        entry.id,
        inverse.id,
        inverse.operation,
    )
    return inverse


def list_merge_log(
    db: Session,
    *,
    identity_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[MergeLogEntry]:
    stmt = select(MergeLogEntry)
    if identity_id is not None:
        stmt = stmt.where(
            or_(
                MergeLogEntry.source_identity_id == identity_id,
                MergeLogEntry.target_identity_id == identity_id,
            )
        )
    stmt = stmt.order_by(MergeLogEntry.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt).all())


def _apply_merge(
    db: Session,
    source_identity_id: int,
    target_identity_id: int,
    *,
    reason: str,
    actor: str | None,
) -> MergeLogEntry:
    source = require_live_identity(db, source_identity_id)
    target = require_live_identity(db, target_identity_id)
    if (
        source.platform_user_id
        and target.platform_user_id
        and source.platform_user_id != target.platform_user_id
    ):
        raise PlatformIdentityConflictError(
            f"Identities {source.id} and {target.id} belong to different platform accounts"
        )

    alias_rows = list_identity_aliases(db, source.id)
    for row in alias_rows:
        row.identity_id = target.id
    attendance_rows = _attendance_rows(db, source.id)
    for row in attendance_rows:
        row.identity_id = target.id

    appearances = source.total_appearances
    target.total_appearances += appearances
    source.total_appearances = 0

    moved_platform_user_id = None
    if source.platform_user_id and not target.platform_user_id:
        moved_platform_user_id = source.platform_user_id
        source.platform_user_id = None
        db.flush()
        target.platform_user_id = moved_platform_user_id

    source.status = IDENTITY_STATUS_MERGED
    source.merged_into_id = target.id
    refresh_canonical_name(db, target)

    entry = MergeLogEntry(
        operation=MERGE_OPERATION,
        source_identity_id=source.id,
        target_identity_id=target.id,
        reason=reason,
        actor=actor,
        aliases_moved_json=[row.alias for row in alias_rows],
        attendance_ids_moved_json=[row.id for row in attendance_rows],
        appearances_moved=appearances,
        platform_user_id_moved=moved_platform_user_id,
    )
    db.add(entry)
    db.flush()
    return entry


def _apply_demerge(
    db: Session,
    identity_id: int,
    aliases: list[str],
    *,
    target_identity_id: int | None,
    reason: str,
    actor: str | None,
    attendance_ids: Iterable[int] = (),
    platform_user_id: str | None = None,
    allow_empty: bool = False,
) -> MergeLogEntry:
    source = require_live_identity(db, identity_id)
    owned = {row.alias: row for row in list_identity_aliases(db, source.id)}
    missing = [alias for alias in aliases if alias not in owned]
    if missing:
        raise AliasNotOwnedError(source.id, missing)
    if not allow_empty and owned and len(aliases) >= len(owned):
        raise EmptyIdentityError(
            f"Demerging every alias of identity {source.id} leaves it empty; merge it instead"
        )

    if target_identity_id is not None:
        target = require_live_identity(db, target_identity_id)
    else:
        target = create_identity(
            db,
            canonical_name=choose_canonical_name(aliases) or source.canonical_name,
            match_reason="demerge",
        )

    alias_set = set(aliases)
    extra_ids = set(attendance_ids)
    moved_rows = [
        row
        for row in _attendance_rows(db, source.id)
        if row.alias in alias_set or row.id in extra_ids
    ]
    for alias in aliases:
        owned[alias].identity_id = target.id
    for row in moved_rows:
        row.identity_id = target.id
    source.total_appearances -= len(moved_rows)
    target.total_appearances += len(moved_rows)

    moved_platform_user_id = None
    if platform_user_id and source.platform_user_id == platform_user_id and not target.platform_user_id:
        moved_platform_user_id = platform_user_id
        source.platform_user_id = None
        db.flush()
        target.platform_user_id = platform_user_id

    refresh_canonical_name(db, source)
    refresh_canonical_name(db, target)

    entry = MergeLogEntry(
        operation=DEMERGE_OPERATION,
        source_identity_id=source.id,
        target_identity_id=target.id,
        reason=reason,
        actor=actor,
        aliases_moved_json=list(aliases),
        attendance_ids_moved_json=[row.id for row in moved_rows],
        appearances_moved=len(moved_rows),
        platform_user_id_moved=moved_platform_user_id,
    )
    db.add(entry)
    db.flush()
    return entry


def _revert_demerge(db: Session, entry: MergeLogEntry, *, reason: str, actor: str | None) -> MergeLogEntry:
    split_off = require_live_identity(db, entry.target_identity_id)
    remaining = {row.alias for row in list_identity_aliases(db, split_off.id)}
    if remaining and remaining <= set(entry.aliases_moved_json):
        return _apply_merge(db, split_off.id, entry.source_identity_id, reason=reason, actor=actor)
    return _apply_demerge(
        db,
        split_off.id,
        [alias for alias in entry.aliases_moved_json if alias in remaining],
        target_identity_id=entry.source_identity_id,
        reason=reason,
        actor=actor,
        attendance_ids=entry.attendance_ids_moved_json,
        platform_user_id=entry.platform_user_id_moved,
        allow_empty=True,
    )


def _attendance_rows(db: Session, identity_id: int) -> list[AttendanceRecord]:
    return list(
        db.scalars(
            select(AttendanceRecord)
            .where(AttendanceRecord.identity_id == identity_id)
            .order_by(AttendanceRecord.id.asc())
        ).all()
    )


def _clean_aliases(values: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for value in values:
        alias = str(value or "").strip()
        if not alias or alias in seen:
            continue
        seen.add(alias)
        cleaned.append(alias)
    return cleaned
