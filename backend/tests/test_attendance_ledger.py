"""Integration tests for ingestion and the attendance ledger projections."""

from __future__ import annotations

import unittest

from pydantic import ValidationError

from attendee_identity.schemas.attendance import MetricWindow, ParticipantIn
from attendee_identity.services.attendance import (
    attendance_for,
    attendance_summary_for,
    list_attendance_for_identity,
    new_attendees_for,
)
from attendee_identity.services.identity_store import audit_identity_consistency, repair_appearance_counts
from attendee_identity.services.ingestion import ingest_meeting_instance
from attendee_identity.models.identity import Identity

from support import IdentityDatabaseTestCase, meeting_time


def _participants(week: int, *names: str) -> list[ParticipantIn]:
    return [
        ParticipantIn(raw_name=name, joined_at=meeting_time(week, minutes=index), duration_seconds=1200)
        for index, name in enumerate(names)
    ]


class AttendanceLedgerTests(IdentityDatabaseTestCase):
    def _ingest(self, week: int, *names: str):
        return ingest_meeting_instance(
            self.db,
            f"weekly-sync-{week:03d}",
            _participants(week, *names),
            resolver=self.resolver,
        )

    def test_ingestion_summary_counts_outcomes(self) -> None:
        result = self._ingest(0, "Sam Ghanem", "Josh Cougler", "???", "Sam Ghanem (Guest)")

        self.assertEqual(result.meeting_instance_id, "weekly-sync-000")
        self.assertEqual(result.attached, 3)
        self.assertEqual(result.queued, 1)
        self.assertEqual(result.created_identities, 2)
        self.assertEqual(result.duplicates, 0)
        self.assertEqual([row.state for row in result.results], ["attached", "attached", "queued", "attached"])

    def test_reingesting_an_instance_is_a_no_op(self) -> None:
        self._ingest(0, "Sam Ghanem", "Josh Cougler", "???")
        replay = self._ingest(0, "Sam Ghanem", "Josh Cougler", "???")

        self.assertEqual(replay.duplicates, 3)
        self.assertEqual(replay.attached + replay.queued + replay.created_identities, 0)
        window = MetricWindow(start=meeting_time(0), end=meeting_time(1))
        self.assertEqual(len(attendance_for(self.db, window)), 2)
        self.assertTrue(audit_identity_consistency(self.db).ok)

    def test_attendance_pairs_count_each_person_once_per_instance(self) -> None:
        first = self._ingest(0, "Sam Ghanem", "Sam Ghanem (Guest)", "Josh Cougler")
        self._ingest(1, "sam ghanem")
        sam = first.results[0].identity_id
        josh = first.results[2].identity_id

        window = MetricWindow(start=meeting_time(0), end=meeting_time(2))

        self.assertEqual(
            attendance_for(self.db, window),
            {(sam, "weekly-sync-000"), (josh, "weekly-sync-000"), (sam, "weekly-sync-001")},
        )
        self.assertEqual(len(list_attendance_for_identity(self.db, sam)), 3)

    def test_window_is_half_open(self) -> None:
        self._ingest(0, "Sam Ghanem")
        self._ingest(1, "Sam Ghanem")

        window = MetricWindow(start=meeting_time(0), end=meeting_time(1))

        self.assertEqual({pair[1] for pair in attendance_for(self.db, window)}, {"weekly-sync-000"})

    def test_new_attendees_and_per_instance_summary(self) -> None:
        week0 = self._ingest(0, "Sam Ghanem")
        week1 = self._ingest(1, "Sam Ghanem", "Priya Raman", "Dana Lee")
        sam = week0.results[0].identity_id

        window = MetricWindow(start=meeting_time(1), end=meeting_time(2))
        newcomers = new_attendees_for(self.db, window)

        self.assertNotIn(sam, newcomers)
        self.assertEqual(newcomers, {week1.results[1].identity_id, week1.results[2].identity_id})
        summary = attendance_summary_for(self.db, MetricWindow(start=meeting_time(0), end=meeting_time(2)))
        self.assertEqual(
            [(row.meeting_instance_id, row.unique_attendees, row.new_attendees) for row in summary],
            [("weekly-sync-000", 1, 1), ("weekly-sync-001", 3, 2)],
        )

    def test_repair_recounts_drifted_counters(self) -> None:
        result = self._ingest(0, "Sam Ghanem")
        identity = self.db.get(Identity, result.results[0].identity_id)
        identity.total_appearances = 5
        self.db.commit()

        self.assertFalse(audit_identity_consistency(self.db).ok)
        repaired = repair_appearance_counts(self.db)

        self.assertEqual(repaired, {identity.id: (5, 1)})
        self.assertTrue(audit_identity_consistency(self.db).ok)

    def test_metric_window_rejects_inverted_bounds(self) -> None:
        with self.assertRaises(ValidationError):
            MetricWindow(start=meeting_time(1), end=meeting_time(0))


if __name__ == "__main__":
    unittest.main()
