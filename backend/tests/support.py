"""Shared SQLite fixtures for identity resolution tests."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from attendee_identity.config import Settings
from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.base import Base
from attendee_identity.models.identity import Identity, IdentityAlias
from attendee_identity.models.merge_log_entry import MergeLogEntry
from attendee_identity.models.pending_review_item import PendingReviewItem
from attendee_identity.resolution.resolver import IdentityResolver
from attendee_identity.resolution.runtime import ResolutionRuntime, ResolutionThresholds
from attendee_identity.resolution.types import ParticipantObservation, ResolutionOutcome

SERIES_START = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)


def meeting_time(week: int, minutes: int = 0) -> datetime:
    """Start time of the weekly meeting instance `week`, plus an offset."""

    return SERIES_START + timedelta(weeks=week, minutes=minutes)


def make_runtime(**threshold_overrides) -> ResolutionRuntime:
    settings = Settings()
    return ResolutionRuntime(
        thresholds=ResolutionThresholds(**threshold_overrides),
        bot_keywords=tuple(settings.bot_name_keywords),
        max_retries=settings.resolution_max_retries,
    )


class IdentityDatabaseTestCase(unittest.TestCase):
    """In-memory SQLite per suite; tables and the resolver runtime reset per test."""

    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self._reset_tables()
        self.runtime = make_runtime()
        self.resolver = IdentityResolver(self.runtime)

    def tearDown(self) -> None:
        self.db.close()

    def observe(
        self,
        raw_name: str,
        *,
        week: int = 0,
        minutes: int = 0,
        platform_user_id: str | None = None,
        resolver: IdentityResolver | None = None,
    ) -> ResolutionOutcome:
        observation = ParticipantObservation(
            meeting_instance_id=f"weekly-sync-{week:03d}",
            raw_name=raw_name,
            joined_at=meeting_time(week, minutes),
            duration_seconds=1800,
            platform_user_id=platform_user_id,
        )
        return (resolver or self.resolver).resolve(self.db, observation)

    def _reset_tables(self) -> None:
        self.db.execute(delete(AttendanceRecord))
        self.db.execute(delete(PendingReviewItem))
        self.db.execute(delete(MergeLogEntry))
        self.db.execute(delete(IdentityAlias))
        self.db.execute(delete(Identity))
        self.db.commit()
