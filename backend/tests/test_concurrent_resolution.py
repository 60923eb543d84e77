"""Concurrency tests: keyed locks, parallel ingestion and cross-process races."""

from __future__ import annotations

import shutil
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest import mock

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.base import Base
from attendee_identity.models.identity import Identity
from attendee_identity.resolution.locks import KeyedLocks
from attendee_identity.resolution.resolver import IdentityResolver
from attendee_identity.resolution.types import TerminalState
from attendee_identity.schemas.attendance import ParticipantIn
from attendee_identity.services.identity_store import audit_identity_consistency
from attendee_identity.services.ingestion import ingest_meeting_batch

from support import IdentityDatabaseTestCase, make_runtime, meeting_time


class KeyedLocksTests(unittest.TestCase):
    def test_same_key_scopes_are_mutually_exclusive(self) -> None:
        locks = KeyedLocks()
        inside = 0
        peak = 0
        guard = threading.Lock()

        def worker() -> None:
            nonlocal inside, peak
            with locks.hold("name:sam ghanem"):
                with guard:
                    inside += 1
                    peak = max(peak, inside)
                time.sleep(0.01)
                with guard:
                    inside -= 1

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(peak, 1)
        self.assertEqual(locks.active_keys(), [])

    def test_scopes_are_reentrant_and_released_on_error(self) -> None:
        locks = KeyedLocks()
        with self.assertRaises(RuntimeError):
            with locks.hold("identity:2", "identity:1"):
                with locks.hold("identity:1"):
                    self.assertEqual(locks.active_keys(), ["identity:1", "identity:2"])
                raise RuntimeError("boom")
        self.assertEqual(locks.active_keys(), [])


class ParallelIngestionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.mkdtemp(prefix="attendee-identity-")
        self.engine = create_engine(
            f"sqlite+pysqlite:///{Path(self.tmpdir) / 'identity.db'}",
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)

    def tearDown(self) -> None:
        self.engine.dispose()
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_parallel_instances_create_exactly_one_identity_per_person(self) -> None:
        instances = {
            f"weekly-sync-{week:03d}": [
                ParticipantIn(raw_name="Priya Raman", joined_at=meeting_time(week)),
                ParticipantIn(raw_name="priya raman", joined_at=meeting_time(week, 1)),
                ParticipantIn(raw_name="Dana Lee", joined_at=meeting_time(week, 2)),
            ]
            for week in range(12)
        }
        resolver = IdentityResolver(make_runtime())

        results = ingest_meeting_batch(
            instances,
            session_factory=self.SessionLocal,
            max_workers=6,
            resolver=resolver,
        )

        self.assertEqual([result.meeting_instance_id for result in results], list(instances))
        self.assertEqual(sum(result.created_identities for result in results), 2)
        with self.SessionLocal() as db:
            identities = list(db.scalars(select(Identity).order_by(Identity.id)).all())
            self.assertEqual(len(identities), 2)
            self.assertEqual(sorted(identity.total_appearances for identity in identities), [12, 24])
            self.assertEqual(db.scalar(select(func.count(AttendanceRecord.id))), 36)
            self.assertTrue(audit_identity_consistency(db).ok)


class CrossProcessResolutionTests(IdentityDatabaseTestCase):
    def test_two_runtimes_sharing_a_database_converge(self) -> None:
        other_process = IdentityResolver(make_runtime())
        first = self.observe("Priya Raman", week=0)
        self.observe("sam ghanem", week=0)
        second = self.observe("Priya Raman", week=1, resolver=other_process)

        self.assertEqual(second.identity_id, first.identity_id)
        self.assertEqual(self.db.get(Identity, first.identity_id).total_appearances, 2)

    def test_lost_creation_race_is_retried_against_refreshed_index(self) -> None:
        other_process = IdentityResolver(make_runtime())
        self.runtime.ensure_index(self.db)
        winner = self.observe("Priya Raman", week=0, resolver=other_process)

        index = self.runtime.index
        real_refresh = index.refresh_name
        calls: list[str] = []

        def stale_first_refresh(db, normalized):
            calls.append(normalized)
            if len(calls) == 1:
                return None
            return real_refresh(db, normalized)

        with mock.patch.object(index, "refresh_name", side_effect=stale_first_refresh):
            with self.assertLogs("attendee_identity.resolution.resolver", level="WARNING") as captured:
                outcome = self.observe("Priya Raman", week=1)

        self.assertEqual(outcome.state, TerminalState.ATTACHED)
        self.assertEqual(outcome.identity_id, winner.identity_id)
        self.assertGreaterEqual(len(calls), 2)
        self.assertIn("identity.resolution_conflict", captured.output[0])
        self.assertEqual(self.db.scalar(select(func.count(Identity.id))), 1)
        self.assertEqual(self.db.get(Identity, winner.identity_id).total_appearances, 2)


if __name__ == "__main__":
    unittest.main()
