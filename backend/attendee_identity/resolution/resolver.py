"""Per-observation identity resolution with confidence-gated attachment."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendee_identity.errors import (
    AliasOwnershipConflictError,
    AmbiguousMatchFailure,
    ConcurrentCreationConflict,
    NormalizationFailure,
)
from attendee_identity.models.identity import Identity
from attendee_identity.models.pending_review_item import (
    REVIEW_STATUS_DISMISSED,
    REVIEW_STATUS_OPEN,
    REVIEW_STATUS_RESOLVED,
    PendingReviewItem,
)
from attendee_identity.resolution.alias_index import AliasCandidate, AliasIndex
from attendee_identity.resolution.locks import (
    KeyedLocks,
    acquire_advisory_lock,
    identity_lock_key,
    name_lock_key,
    platform_lock_key,
)
from attendee_identity.resolution.normalizer import (
    display_name_for,
    first_last_key,
    is_probable_bot,
    normalize_display_name,
)
from attendee_identity.resolution.runtime import ResolutionRuntime, ResolutionThresholds, get_resolution_runtime
from attendee_identity.resolution.types import MatchState, ParticipantObservation, ResolutionOutcome, TerminalState
from attendee_identity.services.identity_store import (
    attach_alias,
    create_identity,
    find_alias,
    find_attendance,
    find_identity_by_platform_user_id,
    find_review_item,
    record_attendance,
)

logger = logging.getLogger(__name__)

RESOLVER_VERSION = "identity-v1"
BOT_QUEUE_REASON = "bot_participant"
PLATFORM_CONFLICT_QUEUE_REASON = "platform_identity_conflict"
ALIAS_CONFLICT_QUEUE_REASON = "alias_ownership_conflict"


class IdentityResolver:
    """Resolves participant observations into canonical identities.

    Every observation runs inside a per-name lock scope (plus the platform id
    scope when present) and commits before the scope is released, so a later
    observation always sees identities created by an earlier one.
    """

    def __init__(self, runtime: ResolutionRuntime | None = None) -> None:
        self.runtime = runtime or get_resolution_runtime()

    @property
    def index(self) -> AliasIndex:
        return self.runtime.index

    @property
    def locks(self) -> KeyedLocks:
        return self.runtime.locks

    @property
    def thresholds(self) -> ResolutionThresholds:
        return self.runtime.thresholds

    def resolve(self, db: Session, observation: ParticipantObservation) -> ResolutionOutcome:
        """Resolve one observation, retrying when a concurrent writer wins a race."""

        self.runtime.ensure_index(db)
        normalized = normalize_display_name(observation.raw_name)
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._resolve_once(db, observation, normalized)
            except ConcurrentCreationConflict as exc:
                db.rollback()
                logger.warning(
                    "identity.resolution_conflict meeting_instance_id=%s raw_name=%r attempt=%d detail=%s",
                    observation.meeting_instance_id,
                    observation.raw_name,
                    attempt,
                    exc,
                )
                if attempt > self.runtime.max_retries:
                    raise
                self.index.refresh_name(db, normalized)
                self.index.reload_identities(db, exc.identity_ids)

    def attach_observation(
        self,
        db: Session,
        identity_id: int,
        observation: ParticipantObservation,
        *,
        match_state: MatchState,
        match_reason: str,
        confidence: float,
        candidates: list[AliasCandidate] | None = None,
        before_commit: Callable[[Identity], None] | None = None,
    ) -> ResolutionOutcome:
        """ATTACHED transition: alias, counter and ledger row for a live identity."""

        normalized = normalize_display_name(observation.raw_name)
        alias = observation.alias
        with self.locks.hold(identity_lock_key(identity_id)):
            identity = db.get(Identity, identity_id, populate_existing=True)
            if identity is None or not identity.is_active:
                raise ConcurrentCreationConflict(
                    f"Identity {identity_id} is no longer live",
                    identity_ids=(identity_id, identity.merged_into_id if identity is not None else None),
                )
            try:
                new_alias = attach_alias(db, identity, alias, normalized, observation.joined_at)
                if observation.platform_user_id and identity.platform_user_id is None:
                    identity.platform_user_id = observation.platform_user_id
                record = record_attendance(
                    db,
                    identity,
                    meeting_instance_id=observation.meeting_instance_id,
                    raw_name=observation.alias,
                    alias=alias,
                    joined_at=observation.joined_at,
                    duration_seconds=observation.duration_seconds,
                    match_reason=match_reason,
                    confidence=confidence,
                )
                if before_commit is not None:
                    before_commit(identity)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise ConcurrentCreationConflict(
                    f"Concurrent write while attaching {alias!r} to identity {identity_id}",
                    identity_ids=(identity_id,),
                ) from exc
            if new_alias is not None:
                self.index.add_alias(identity.id, alias, normalized)
            self.index.set_appearances(identity.id, identity.total_appearances)
            logger.info(
                "identity.attached meeting_instance_id=%s identity_id=%d match_state=%s match_reason=%s",
                observation.meeting_instance_id,
                identity.id,
                match_state.value,
                match_reason,
            )
            return ResolutionOutcome(
                state=TerminalState.ATTACHED,
                match_state=match_state,
                identity_id=identity.id,
                attendance_record_id=record.id,
                match_reason=match_reason,
                confidence=confidence,
                candidates=list(candidates or []),
            )

    def create_identity_for(
        self,
        db: Session,
        observation: ParticipantObservation,
        *,
        match_reason: str,
        canonical_name: str | None = None,
        before_commit: Callable[[Identity], None] | None = None,
    ) -> ResolutionOutcome:
        """NO_MATCH transition: a new identity seeded with this single alias."""

        normalized = normalize_display_name(observation.raw_name)
        alias = observation.alias
        name = canonical_name or display_name_for(alias) or alias
        try:
            identity = create_identity(
                db,
                canonical_name=name,
                match_reason=match_reason,
                platform_user_id=observation.platform_user_id,
            )
            attach_alias(db, identity, alias, normalized, observation.joined_at)
            record = record_attendance(
                db,
                identity,
                meeting_instance_id=observation.meeting_instance_id,
                raw_name=observation.alias,
                alias=alias,
                joined_at=observation.joined_at,
                duration_seconds=observation.duration_seconds,
                match_reason=match_reason,
                confidence=1.0,
            )
            if before_commit is not None:
                before_commit(identity)
            db.commit()
        except (IntegrityError, AliasOwnershipConflictError) as exc:
            db.rollback()
            raise ConcurrentCreationConflict(f"Identity for {alias!r} was created concurrently") from exc
        if alias:
            self.index.add_alias(identity.id, alias, normalized)
        self.index.set_appearances(identity.id, identity.total_appearances)
        logger.info(
            "identity.created meeting_instance_id=%s identity_id=%d canonical_name=%r",
            observation.meeting_instance_id,
            identity.id,
            identity.canonical_name,
        )
        return ResolutionOutcome(
            state=TerminalState.ATTACHED,
            match_state=MatchState.NO_MATCH,
            identity_id=identity.id,
            attendance_record_id=record.id,
            match_reason=match_reason,
            confidence=1.0,
            created_identity=True,
        )

    def _resolve_once(
        self,
        db: Session,
        observation: ParticipantObservation,
        normalized: str,
    ) -> ResolutionOutcome:
        scope_key = observation_scope_key(observation, normalized)
        keys = [scope_key]
        if observation.platform_user_id:
            keys.append(platform_lock_key(observation.platform_user_id))

        with self.locks.hold(*keys):
            acquire_advisory_lock(db, scope_key)
            existing = self._existing_outcome(db, observation)
            if existing is not None:
                return existing

            owner = None
            if observation.platform_user_id:
                owner = find_identity_by_platform_user_id(db, observation.platform_user_id)
                if owner is not None and not owner.is_active:
                    owner = None

            if not normalized:
                hinted = []
                if owner is not None:
                    hinted.append(
                        AliasCandidate(
                            identity_id=owner.id,
                            score=1.0,
                            matched_name="",
                            total_appearances=owner.total_appearances,
                        )
                    )
                return self._enqueue(db, observation, normalized, NormalizationFailure.queue_reason, hinted)
            if owner is not None:
                return self._attach_or_queue(
                    db,
                    owner,
                    observation,
                    normalized,
                    match_state=MatchState.EXACT_MATCH,
                    match_reason="platform_user_id",
                    confidence=1.0,
                )
            if is_probable_bot(normalized, self.runtime.bot_keywords):
                return self._enqueue(
                    db,
                    observation,
                    normalized,
                    BOT_QUEUE_REASON,
                    [],
                    status=REVIEW_STATUS_DISMISSED,
                )

            self.index.refresh_name(db, normalized)
            exact_ids = self.index.exact_matches(normalized)
            if len(exact_ids) > 1:
                tied = [
                    AliasCandidate(
                        identity_id=identity_id,
                        score=1.0,
                        matched_name=normalized,
                        total_appearances=self.index.appearances(identity_id),
                    )
                    for identity_id in exact_ids
                ]
                tied.sort(key=lambda candidate: (-candidate.total_appearances, candidate.identity_id))
                return self._enqueue(db, observation, normalized, AmbiguousMatchFailure.queue_reason, tied)
            if exact_ids:
                identity = db.get(Identity, exact_ids[0])
                if identity is None or not identity.is_active:
                    raise ConcurrentCreationConflict(
                        f"Indexed identity {exact_ids[0]} is no longer live",
                        identity_ids=(exact_ids[0],),
                    )
                return self._attach_or_queue(
                    db,
                    identity,
                    observation,
                    normalized,
                    match_state=MatchState.EXACT_MATCH,
                    match_reason="exact",
                    confidence=1.0,
                )

            candidates = self._rank_candidates(db, normalized)
            if not candidates:
                return self.create_identity_for(db, observation, match_reason="new_identity")

            top = candidates[0]
            runner_up = candidates[1] if len(candidates) > 1 else None
            if self.thresholds.allows_auto_attach(top, runner_up):
                identity = db.get(Identity, top.identity_id)
                if identity is None or not identity.is_active:
                    raise ConcurrentCreationConflict(
                        f"Indexed identity {top.identity_id} is no longer live",
                        identity_ids=(top.identity_id,),
                    )
                return self._attach_or_queue(
                    db,
                    identity,
                    observation,
                    normalized,
                    match_state=MatchState.FUZZY_MATCH,
                    match_reason=f"fuzzy:{top.score:.4f}",
                    confidence=top.score,
                    candidates=candidates,
                )
            return self._enqueue(db, observation, normalized, AmbiguousMatchFailure.queue_reason, candidates)

    def _rank_candidates(self, db: Session, normalized: str) -> list[AliasCandidate]:
        """Fuzzy candidates for the full key, merged with discounted first-last ones.

        A 3+ token name such as "sam ghanem sober founders" is also looked up as
        its first two tokens; owners of that key score `first_last_weight`.
        """

        thresholds = self.thresholds
        best = {
            candidate.identity_id: candidate
            for candidate in self.index.candidates(
                normalized,
                floor=thresholds.floor,
                limit=thresholds.max_candidates,
            )
        }
        reduced = first_last_key(normalized)
        if reduced:
            self.index.refresh_name(db, reduced)
            pool = [
                AliasCandidate(
                    identity_id=identity_id,
                    score=1.0,
                    matched_name=reduced,
                    total_appearances=self.index.appearances(identity_id),
                )
                for identity_id in self.index.exact_matches(reduced)
            ]
            pool.extend(
                self.index.candidates(reduced, floor=thresholds.floor, limit=thresholds.max_candidates)
            )
            for candidate in pool:
                score = round(candidate.score * thresholds.first_last_weight, 4)
                if score < thresholds.floor:
                    continue
                current = best.get(candidate.identity_id)
                if current is None or score > current.score:
                    best[candidate.identity_id] = AliasCandidate(
                        identity_id=candidate.identity_id,
                        score=score,
                        matched_name=candidate.matched_name,
                        total_appearances=candidate.total_appearances,
                    )
        ranked = sorted(
            best.values(),
            key=lambda candidate: (-candidate.score, -candidate.total_appearances, candidate.identity_id),
        )
        return ranked[: thresholds.max_candidates]

    def _attach_or_queue(
        self,
        db: Session,
        identity: Identity,
        observation: ParticipantObservation,
        normalized: str,
        *,
        match_state: MatchState,
        match_reason: str,
        confidence: float,
        candidates: list[AliasCandidate] | None = None,
    ) -> ResolutionOutcome:
        candidate = AliasCandidate(
            identity_id=identity.id,
            score=confidence,
            matched_name=normalized,
            total_appearances=identity.total_appearances,
        )
        if (
            observation.platform_user_id
            and identity.platform_user_id
            and identity.platform_user_id != observation.platform_user_id
        ):
            return self._enqueue(db, observation, normalized, PLATFORM_CONFLICT_QUEUE_REASON, [candidate])

        owner = find_alias(db, observation.alias) if observation.alias else None
        if owner is not None and owner.identity_id != identity.id:
            other = AliasCandidate(
                identity_id=owner.identity_id,
                score=1.0,
                matched_name=normalized,
                total_appearances=self.index.appearances(owner.identity_id),
            )
            return self._enqueue(db, observation, normalized, ALIAS_CONFLICT_QUEUE_REASON, [candidate, other])

        return self.attach_observation(
            db,
            identity.id,
            observation,
            match_state=match_state,
            match_reason=match_reason,
            confidence=confidence,
            candidates=candidates,
        )

    def _enqueue(
        self,
        db: Session,
        observation: ParticipantObservation,
        normalized: str,
        queue_reason: str,
        candidates: list[AliasCandidate],
        *,
        status: str = REVIEW_STATUS_OPEN,
    ) -> ResolutionOutcome:
        item = PendingReviewItem(
            meeting_instance_id=observation.meeting_instance_id,
            raw_name=observation.alias,
            normalized_name=normalized,
            candidate_identity_ids_json=[candidate.identity_id for candidate in candidates],
            candidate_scores_json=[candidate.score for candidate in candidates],
            top_score=candidates[0].score if candidates else None,
            queue_reason=queue_reason,
            observed_at=observation.joined_at,
            duration_seconds=observation.duration_seconds,
            platform_user_id=observation.platform_user_id,
            status=status,
        )
        if status == REVIEW_STATUS_DISMISSED:
            item.decision = "dismiss"
            item.resolution_note = f"auto-dismissed: {queue_reason}"
            item.resolved_at = datetime.now(timezone.utc)
        db.add(item)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConcurrentCreationConflict(
                f"Review item for {observation.raw_name!r} in {observation.meeting_instance_id} exists"
            ) from exc
        logger.info(
            "identity.queued meeting_instance_id=%s review_item_id=%d queue_reason=%s candidates=%d status=%s",
            observation.meeting_instance_id,
            item.id,
            queue_reason,
            len(candidates),
            status,
        )
        return ResolutionOutcome(
            state=TerminalState.QUEUED,
            match_state=MatchState.NO_MATCH if not candidates else MatchState.AMBIGUOUS,
            review_item_id=item.id,
            match_reason=queue_reason,
            confidence=candidates[0].score if candidates else None,
            candidates=list(candidates),
        )

    def _existing_outcome(self, db: Session, observation: ParticipantObservation) -> ResolutionOutcome | None:
        record = find_attendance(db, observation.meeting_instance_id, observation.alias)
        if record is not None:
            return ResolutionOutcome(
                state=TerminalState.ATTACHED,
                match_state=MatchState.EXACT_MATCH,
                identity_id=record.identity_id,
                attendance_record_id=record.id,
                match_reason=record.match_reason,
                confidence=record.confidence,
                duplicate=True,
            )
        item = find_review_item(db, observation.meeting_instance_id, observation.alias)
        if item is not None:
            return ResolutionOutcome(
                state=TerminalState.ATTACHED if item.status == REVIEW_STATUS_RESOLVED else TerminalState.QUEUED,
                match_state=MatchState.AMBIGUOUS,
                identity_id=item.resolved_identity_id,
                review_item_id=item.id,
                match_reason=item.queue_reason,
                confidence=item.top_score,
                duplicate=True,
            )
        return None


def observation_scope_key(observation: ParticipantObservation, normalized: str) -> str:
    """Lock key serializing every writer that may act on this observation's name."""

    if normalized:
        return name_lock_key(normalized)
    return f"pair:{observation.meeting_instance_id}:{observation.alias}"
