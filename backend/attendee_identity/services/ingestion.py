"""Batch ingestion of per-instance participant lists."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from time import perf_counter

from sqlalchemy.orm import Session

from attendee_identity.config import get_settings
from attendee_identity.db.session import SessionLocal
from attendee_identity.resolution.resolver import IdentityResolver
from attendee_identity.resolution.types import ParticipantObservation, ResolutionOutcome
from attendee_identity.schemas.attendance import IngestResultRead, ObservationResultRead, ParticipantIn

logger = logging.getLogger(__name__)


def ingest_meeting_instance(
    db: Session,
    meeting_instance_id: str,
    participants: Iterable[ParticipantIn],
    *,
    resolver: IdentityResolver | None = None,
) -> IngestResultRead:
    """Resolve one instance's participant list, one observation at a time.

    Re-ingesting the same list is a no-op: every observation already settled
    for `(meeting_instance_id, trimmed raw_name)` comes back flagged as a duplicate.
    """

    resolver = resolver or IdentityResolver()
    total_started = perf_counter()
    results: list[ObservationResultRead] = []
    outcomes: list[ResolutionOutcome] = []
    try:
        for participant in participants:
            observation = ParticipantObservation(
                meeting_instance_id=meeting_instance_id,
                raw_name=participant.raw_name,
                joined_at=participant.joined_at,
                duration_seconds=participant.duration_seconds,
                platform_user_id=participant.platform_user_id,
            )
            outcome = resolver.resolve(db, observation)
            outcomes.append(outcome)
            results.append(
                ObservationResultRead(
                    raw_name=participant.raw_name,
                    state=outcome.state.value,
                    match_state=outcome.match_state.value,
                    identity_id=outcome.identity_id,
                    review_item_id=outcome.review_item_id,
                    match_reason=outcome.match_reason,
                    confidence=outcome.confidence,
                    duplicate=outcome.duplicate,
                )
            )
    except Exception:
        logger.exception(
            "identity.ingest_failed meeting_instance_id=%s resolved=%d elapsed_ms=%.2f",
            meeting_instance_id,
            len(outcomes),
            (perf_counter() - total_started) * 1000.0,
        )
        raise

    fresh = [outcome for outcome in outcomes if not outcome.duplicate]
    summary = IngestResultRead(
        meeting_instance_id=meeting_instance_id,
        attached=sum(1 for outcome in fresh if outcome.attached),
        queued=sum(1 for outcome in fresh if not outcome.attached),
        created_identities=sum(1 for outcome in fresh if outcome.created_identity),
        duplicates=len(outcomes) - len(fresh),
        results=results,
    )
    logger.info(
        (
            "identity.ingest_timing meeting_instance_id=%s observations=%d attached=%d queued=%d "
            "created=%d duplicates=%d total_ms=%.2f"
        ),
        meeting_instance_id,
        len(outcomes),
        summary.attached,
        summary.queued,
        summary.created_identities,
        summary.duplicates,
        (perf_counter() - total_started) * 1000.0,
    )
    return summary


def ingest_meeting_batch(
    instances: Mapping[str, list[ParticipantIn]],
    *,
    session_factory: Callable[[], Session] | None = None,
    max_workers: int | None = None,
    resolver: IdentityResolver | None = None,
) -> list[IngestResultRead]:
    """Ingest independent meeting instances in parallel, one session per instance.

    Results follow the order of `instances`. The first failing instance's
    error is re-raised once every submitted instance has finished.
    """

    session_factory = session_factory or SessionLocal
    resolver = resolver or IdentityResolver()
    workers = max(1, max_workers or get_settings().ingest_max_workers)
    total_started = perf_counter()

    def run(meeting_instance_id: str, participants: list[ParticipantIn]) -> IngestResultRead:
        db = session_factory()
        try:
            return ingest_meeting_instance(db, meeting_instance_id, participants, resolver=resolver)
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as executor:
        futures = [
            executor.submit(run, meeting_instance_id, list(participants))
            for meeting_instance_id, participants in instances.items()
        ]
    results = [future.result() for future in futures]
    logger.info(
        "identity.ingest_batch_timing instances=%d workers=%d total_ms=%.2f",
        len(results),
        workers,
        (perf_counter() - total_started) * 1000.0,
    )
    return results
