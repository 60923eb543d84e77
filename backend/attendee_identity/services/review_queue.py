"""Pending review queue: listing and reviewer decisions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from attendee_identity.errors import (
    AliasOwnershipConflictError,
    NotFoundError,
    PlatformIdentityConflictError,
    ReviewItemClosedError,
)
from attendee_identity.models.identity import Identity
from attendee_identity.models.pending_review_item import (
    REVIEW_STATUS_DISMISSED,
    REVIEW_STATUS_OPEN,
    REVIEW_STATUS_RESOLVED,
    PendingReviewItem,
)
from attendee_identity.resolution.locks import acquire_advisory_lock
from attendee_identity.resolution.normalizer import display_name_for
from attendee_identity.resolution.resolver import IdentityResolver, observation_scope_key
from attendee_identity.resolution.types import MatchState, ParticipantObservation
from attendee_identity.schemas.review import ReviewDecision, ReviewQueueStats
from attendee_identity.services.identity_store import (
    find_alias,
    find_identity_by_platform_user_id,
    require_live_identity,
)

logger = logging.getLogger(__name__)


def list_open_review_items(
    db: Session,
    *,
    candidate_identity_id: int | None = None,
    queue_reason: str | None = None,
    observed_from: datetime | None = None,
    observed_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PendingReviewItem], int]:
    """Open items, oldest observation first, optionally filtered.

    `observed_from`/`observed_to` bound `observed_at` as a half-open range.
    Candidate filtering runs in Python because candidates live in a JSON list.
    """

    stmt = select(PendingReviewItem).where(PendingReviewItem.status == REVIEW_STATUS_OPEN)
    if queue_reason:
        stmt = stmt.where(PendingReviewItem.queue_reason == queue_reason)
    if observed_from is not None:
        stmt = stmt.where(PendingReviewItem.observed_at >= observed_from)
    if observed_to is not None:
        stmt = stmt.where(PendingReviewItem.observed_at < observed_to)
    stmt = stmt.order_by(PendingReviewItem.observed_at.asc(), PendingReviewItem.id.asc())
    items = list(db.scalars(stmt).all())
    if candidate_identity_id is not None:
        items = [item for item in items if candidate_identity_id in (item.candidate_identity_ids_json or [])]
    total = len(items)
    return items[offset : offset + limit], total


def get_review_item(db: Session, item_id: int) -> PendingReviewItem:
    item = db.get(PendingReviewItem, item_id)
    if item is None:
        raise NotFoundError("Review item", item_id)
    return item


def resolve_review_item(
    db: Session,
    item_id: int,
    decision: ReviewDecision,
    *,
    actor: str | None = None,
    resolver: IdentityResolver | None = None,
) -> PendingReviewItem:
    """Apply a reviewer decision to one open item.

    `attach_to` and `create_new` perform the resolver's attachment effects
    retroactively (alias, appearance counter, attendance row) in the same
    transaction that closes the item; `dismiss` only closes it.
    """

    resolver = resolver or IdentityResolver()
    resolver.runtime.ensure_index(db)
    item = get_review_item(db, item_id)
    observation = ParticipantObservation(
        meeting_instance_id=item.meeting_instance_id,
        raw_name=item.raw_name,
        joined_at=item.observed_at,
        duration_seconds=item.duration_seconds,
        platform_user_id=item.platform_user_id,
    )

    with resolver.locks.hold(observation_scope_key(observation, item.normalized_name)):
        acquire_advisory_lock(db, observation_scope_key(observation, item.normalized_name))
        db.refresh(item)
        if item.status != REVIEW_STATUS_OPEN:
            raise ReviewItemClosedError(item.id, item.status)

        match_reason = f"review:{decision.action}"
        try:
            if decision.action == "dismiss":
                _close(item, decision, status=REVIEW_STATUS_DISMISSED, actor=actor)
                db.commit()
            elif decision.action == "attach_to":
                identity = require_live_identity(db, decision.identity_id)
                _check_attach_target(db, identity, observation)
                resolver.attach_observation(
                    db,
                    identity.id,
                    observation,
                    match_state=MatchState.EXACT_MATCH,
                    match_reason=match_reason,
                    confidence=1.0,
                    before_commit=lambda target: _close(
                        item, decision, status=REVIEW_STATUS_RESOLVED, actor=actor, identity=target
                    ),
                )
            else:
                _check_new_identity(db, observation)
                resolver.create_identity_for(
                    db,
                    observation,
                    match_reason=match_reason,
                    canonical_name=decision.canonical_name
                    or display_name_for(observation.alias)
                    or f"Participant {item.id}",
                    before_commit=lambda target: _close(
                        item, decision, status=REVIEW_STATUS_RESOLVED, actor=actor, identity=target
                    ),
                )
        except Exception:
            db.rollback()
            raise

    logger.info(
        "identity.review_resolved review_item_id=%d action=%s identity_id=%s actor=%s",
        item.id,
        decision.action,
        item.resolved_identity_id,
        actor,
    )
    return item


def review_queue_stats(db: Session) -> ReviewQueueStats:
    by_status = {
        status: int(total)
        for status, total in db.execute(
            select(PendingReviewItem.status, func.count(PendingReviewItem.id)).group_by(PendingReviewItem.status)
        ).all()
    }
    open_by_reason = {
        reason: int(total)
        for reason, total in db.execute(
            select(PendingReviewItem.queue_reason, func.count(PendingReviewItem.id))
            .where(PendingReviewItem.status == REVIEW_STATUS_OPEN)
            .group_by(PendingReviewItem.queue_reason)
        ).all()
    }
    return ReviewQueueStats(by_status=by_status, open_by_reason=open_by_reason)


def _close(
    item: PendingReviewItem,
    decision: ReviewDecision,
    *,
    status: str,
    actor: str | None,
    identity: Identity | None = None,
) -> None:
    item.status = status
    item.decision = decision.action
    item.resolved_identity_id = identity.id if identity is not None else None
    note = decision.note or ""
    if actor:
        note = f"{note} (by {actor})".strip()
    item.resolution_note = note or None
    item.resolved_at = datetime.now(timezone.utc)


def _check_attach_target(db: Session, identity: Identity, observation: ParticipantObservation) -> None:
    if observation.platform_user_id:
        owner = find_identity_by_platform_user_id(db, observation.platform_user_id)
        if owner is not None and owner.id != identity.id:
            raise PlatformIdentityConflictError(
                f"Platform account {observation.platform_user_id!r} belongs to identity {owner.id}"
            )
        if identity.platform_user_id and identity.platform_user_id != observation.platform_user_id:
            raise PlatformIdentityConflictError(
                f"Identity {identity.id} belongs to a different platform account"
            )
    alias = find_alias(db, observation.alias) if observation.alias else None
    if alias is not None and alias.identity_id != identity.id:
        raise AliasOwnershipConflictError(
            f"Alias {observation.alias!r} belongs to identity {alias.identity_id}"
        )


def _check_new_identity(db: Session, observation: ParticipantObservation) -> None:
    if observation.platform_user_id:
        owner = find_identity_by_platform_user_id(db, observation.platform_user_id)
        if owner is not None:
            raise PlatformIdentityConflictError(
                f"Platform account {observation.platform_user_id!r} belongs to identity {owner.id}"
            )
    alias = find_alias(db, observation.alias) if observation.alias else None
    if alias is not None:
        raise AliasOwnershipConflictError(
            f"Alias {observation.alias!r} belongs to identity {alias.identity_id}"
        )
