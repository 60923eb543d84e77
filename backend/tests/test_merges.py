"""Integration tests for manual merge/demerge corrections and the merge log."""

from __future__ import annotations

import unittest

from sqlalchemy import func, select

from attendee_identity.errors import (
    AliasNotOwnedError,
    EmptyIdentityError,
    MergeLogAlreadyRevertedError,
    NotFoundError,
    PlatformIdentityConflictError,
    SelfMergeError,
)
from attendee_identity.models.attendance_record import AttendanceRecord
from attendee_identity.models.identity import IDENTITY_STATUS_MERGED, Identity
from attendee_identity.models.merge_log_entry import DEMERGE_OPERATION, MERGE_OPERATION, MergeLogEntry
from attendee_identity.resolution.types import MatchState
from attendee_identity.schemas.attendance import MetricWindow
from attendee_identity.services.attendance import attendance_for
from attendee_identity.services.identity_store import (
    audit_identity_consistency,
    get_identity_history,
    list_identity_aliases,
)
from attendee_identity.services.merges import (
    demerge_identity,
    list_merge_log,
    merge_identities,
    revert_merge_log_entry,
)

from support import IdentityDatabaseTestCase, meeting_time


class MergeEngineTests(IdentityDatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.sam = self.observe("Sam Ghanem", week=0).identity_id
        self.observe("sam ghanem", week=1)
        self.samg = self.observe("S. G.", week=2).identity_id
        self.observe("S. G.", week=3)

    def _aliases(self, identity_id: int) -> set[str]:
        return {row.alias for row in list_identity_aliases(self.db, identity_id)}

    def test_merge_moves_aliases_attendance_and_counter(self) -> None:
        entry = merge_identities(
            self.db, self.samg, self.sam, reason="same person", actor="ops", runtime=self.runtime
        )

        source = self.db.get(Identity, self.samg)
        target = self.db.get(Identity, self.sam)
        self.assertEqual(source.status, IDENTITY_STATUS_MERGED)
        self.assertEqual(source.merged_into_id, self.sam)
        self.assertEqual(source.total_appearances, 0)
        self.assertEqual(self._aliases(self.samg), set())
        self.assertEqual(self._aliases(self.sam), {"Sam Ghanem", "sam ghanem", "S. G."})
        self.assertEqual(target.total_appearances, 4)
        self.assertEqual(target.canonical_name, "Sam Ghanem")

        self.assertEqual(entry.operation, MERGE_OPERATION)
        self.assertEqual(entry.aliases_moved_json, ["S. G."])
        self.assertEqual(entry.appearances_moved, 2)
        self.assertEqual(len(entry.attendance_ids_moved_json), 2)
        self.assertEqual(entry.actor, "ops")
        self.assertEqual(self.db.scalar(select(func.count(MergeLogEntry.id))), 1)
        self.assertTrue(audit_identity_consistency(self.db).ok)

    def test_merged_alias_resolves_to_survivor(self) -> None:
        merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)

        outcome = self.observe("S. G.", week=4)

        self.assertEqual(outcome.identity_id, self.sam)
        self.assertEqual(outcome.match_state, MatchState.EXACT_MATCH)

    def test_merged_ledger_counts_one_person_once_per_instance(self) -> None:
        self.observe("S. G.", week=0, minutes=5)
        merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)

        window = MetricWindow(start=meeting_time(0), end=meeting_time(1))
        self.assertEqual(attendance_for(self.db, window), {(self.sam, "weekly-sync-000")})

    def test_merge_rejects_self_and_unknown_identities(self) -> None:
        with self.assertRaises(SelfMergeError):
            merge_identities(self.db, self.sam, self.sam, reason="noop", runtime=self.runtime)
        with self.assertRaises(NotFoundError):
            merge_identities(self.db, self.sam, 99999, reason="typo", runtime=self.runtime)

        merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)
        with self.assertRaises(NotFoundError):
            merge_identities(self.db, self.samg, self.sam, reason="again", runtime=self.runtime)
        self.assertEqual(self.db.scalar(select(func.count(MergeLogEntry.id))), 1)

    def test_merge_moves_platform_id_and_rejects_two_accounts(self) -> None:
        other = self.observe("Priya Raman", week=0, platform_user_id="zoom-u-7").identity_id
        merge_identities(self.db, other, self.sam, reason="same person", runtime=self.runtime)
        self.assertEqual(self.db.get(Identity, self.sam).platform_user_id, "zoom-u-7")
        self.assertIsNone(self.db.get(Identity, other).platform_user_id)

        third = self.observe("Dana Lee", week=0, platform_user_id="zoom-u-8").identity_id
        with self.assertRaises(PlatformIdentityConflictError):
            merge_identities(self.db, third, self.sam, reason="wrong", runtime=self.runtime)
        self.assertTrue(self.db.get(Identity, third).is_active)
        self.assertEqual(self._aliases(third), {"Dana Lee"})

    def test_demerge_is_the_structural_inverse_of_merge(self) -> None:
        before_sam = (self._aliases(self.sam), self.db.get(Identity, self.sam).total_appearances)
        before_samg = (self._aliases(self.samg), self.db.get(Identity, self.samg).total_appearances)

        merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)
        entry = demerge_identity(
            self.db,
            self.sam,
            ["S. G."],
            reason="actually different",
            runtime=self.runtime,
        )

        restored = self.db.get(Identity, entry.target_identity_id)
        self.assertEqual(entry.operation, DEMERGE_OPERATION)
        self.assertEqual((self._aliases(self.sam), self.db.get(Identity, self.sam).total_appearances), before_sam)
        self.assertEqual((self._aliases(restored.id), restored.total_appearances), before_samg)
        self.assertEqual(restored.match_reason, "demerge")
        self.assertEqual(self.db.scalar(select(func.count(MergeLogEntry.id))), 2)
        self.assertTrue(audit_identity_consistency(self.db).ok)

    def test_demerge_into_existing_identity(self) -> None:
        self.observe("S. G. (Guest)", week=4)
        entry = demerge_identity(
            self.db,
            self.samg,
            ["S. G. (Guest)"],
            target_identity_id=self.sam,
            reason="guest login is Sam",
            runtime=self.runtime,
        )

        self.assertEqual(entry.target_identity_id, self.sam)
        self.assertEqual(entry.appearances_moved, 1)
        self.assertIn("S. G. (Guest)", self._aliases(self.sam))
        self.assertEqual(self.db.get(Identity, self.sam).total_appearances, 3)
        self.assertEqual(self.db.get(Identity, self.samg).total_appearances, 2)

    def test_demerge_validation_happens_before_mutation(self) -> None:
        with self.assertRaises(AliasNotOwnedError):
            demerge_identity(self.db, self.sam, ["S. G."], reason="wrong owner", runtime=self.runtime)
        with self.assertRaises(EmptyIdentityError):
            demerge_identity(self.db, self.samg, ["S. G."], reason="everything", runtime=self.runtime)
        with self.assertRaises(SelfMergeError):
            demerge_identity(
                self.db,
                self.sam,
                ["sam ghanem"],
                target_identity_id=self.sam,
                reason="noop",
                runtime=self.runtime,
            )
        self.assertEqual(self.db.scalar(select(func.count(MergeLogEntry.id))), 0)
        self.assertEqual(self._aliases(self.sam), {"Sam Ghanem", "sam ghanem"})

    def test_revert_merge_splits_moved_aliases_back_out(self) -> None:
        entry = merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)

        inverse = revert_merge_log_entry(self.db, entry.id, reason="bad merge", runtime=self.runtime)

        self.assertEqual(inverse.operation, DEMERGE_OPERATION)
        self.assertEqual(inverse.reverts_entry_id, entry.id)
        self.assertEqual(sorted(inverse.attendance_ids_moved_json), sorted(entry.attendance_ids_moved_json))
        self.assertEqual(self._aliases(inverse.target_identity_id), {"S. G."})
        self.assertEqual(self.db.get(Identity, inverse.target_identity_id).total_appearances, 2)
        self.assertEqual(self.db.get(Identity, self.sam).total_appearances, 2)
        with self.assertRaises(MergeLogAlreadyRevertedError):
            revert_merge_log_entry(self.db, entry.id, reason="twice", runtime=self.runtime)

    def test_revert_demerge_merges_split_identity_back(self) -> None:
        self.observe("Sam Ghanem (Guest)", week=4)
        entry = demerge_identity(
            self.db,
            self.sam,
            ["Sam Ghanem (Guest)"],
            reason="split guest",
            runtime=self.runtime,
        )

        inverse = revert_merge_log_entry(self.db, entry.id, reason="undo split", runtime=self.runtime)

        self.assertEqual(inverse.operation, MERGE_OPERATION)
        self.assertEqual(self.db.get(Identity, entry.target_identity_id).status, IDENTITY_STATUS_MERGED)
        self.assertIn("Sam Ghanem (Guest)", self._aliases(self.sam))
        self.assertEqual(self.db.get(Identity, self.sam).total_appearances, 3)
        self.assertTrue(audit_identity_consistency(self.db).ok)

    def test_history_lists_former_aliases_and_log_trail(self) -> None:
        merge_identities(self.db, self.samg, self.sam, reason="same person", runtime=self.runtime)
        demerge_identity(self.db, self.sam, ["S. G."], reason="different", runtime=self.runtime)

        history = get_identity_history(self.db, self.sam)

        self.assertEqual(history.former_aliases, ["S. G."])
        self.assertEqual([entry.operation for entry in history.merge_log], ["merge", "demerge"])
        self.assertEqual(history.attendance_count, 2)
        self.assertEqual(len(list_merge_log(self.db, identity_id=self.sam)), 2)
        self.assertEqual(
            self.db.scalar(select(func.count(AttendanceRecord.id)).where(AttendanceRecord.identity_id == self.sam)),
            2,
        )


if __name__ == "__main__":
    unittest.main()
