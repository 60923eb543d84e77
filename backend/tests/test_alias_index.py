"""Unit tests for name similarity and the in-memory alias index."""

import unittest

from attendee_identity.resolution.alias_index import AliasIndex, blocking_keys, query_blocking_keys
from attendee_identity.resolution.similarity import name_similarity, token_similarity


class NameSimilarityTests(unittest.TestCase):
    def test_token_rules(self) -> None:
        self.assertEqual(token_similarity("sam", "sam"), 1.0)
        self.assertEqual(token_similarity("sam", "samuel"), 0.85)
        self.assertEqual(token_similarity("g", "ghanem"), 0.6)
        self.assertEqual(token_similarity("g", "sam"), 0.0)
        self.assertEqual(token_similarity("sam", "josh"), 0.0)
        self.assertGreaterEqual(token_similarity("ghanem", "ghanim"), 0.8)

    def test_abbreviated_surname_scores_between_floor_and_auto_attach(self) -> None:
        score = name_similarity("sam g", "sam ghanem")
        self.assertEqual(score, 0.7467)

    def test_nickname_prefix_scores_above_auto_attach(self) -> None:
        self.assertGreaterEqual(name_similarity("samuel ghanem", "sam ghanem"), 0.85)

    def test_token_order_does_not_matter(self) -> None:
        self.assertEqual(name_similarity("ghanem sam", "sam ghanem"), name_similarity("sam ghanem", "ghanem sam"))
        self.assertGreater(name_similarity("ghanem sam", "sam ghanem"), 0.9)

    def test_unrelated_names_stay_below_floor(self) -> None:
        self.assertLess(name_similarity("josh cougler", "sam ghanem"), 0.55)
        self.assertLess(name_similarity("sam smith", "sam ghanem"), 0.85)

    def test_similarity_is_symmetric_and_exact_is_one(self) -> None:
        self.assertEqual(name_similarity("sam ghanem", "sam ghanem"), 1.0)
        self.assertEqual(name_similarity("sam g", "sam ghanem"), name_similarity("sam ghanem", "sam g"))
        self.assertEqual(name_similarity("", "sam"), 0.0)


class AliasIndexTests(unittest.TestCase):
    def setUp(self) -> None:
        self.index = AliasIndex()

    def test_blocking_keys_use_initials_and_token_counts(self) -> None:
        self.assertEqual(blocking_keys("sam ghanem"), {"s:2", "g:2"})
        self.assertEqual(
            query_blocking_keys("sam g"),
            {"s:1", "s:2", "s:3", "g:1", "g:2", "g:3"},
        )

    def test_exact_lookup_tracks_every_raw_alias(self) -> None:
        self.index.add_alias(1, "Sam Ghanem", "sam ghanem")
        self.index.add_alias(1, "sam ghanem", "sam ghanem")
        self.assertEqual(self.index.exact_matches("sam ghanem"), [1])

        self.index.remove_alias(1, "Sam Ghanem")
        self.assertEqual(self.index.exact_matches("sam ghanem"), [1])
        self.index.remove_alias(1, "sam ghanem")
        self.assertEqual(self.index.exact_matches("sam ghanem"), [])
        self.assertEqual(self.index.candidates("sam g", floor=0.55, limit=5), [])

    def test_candidates_exclude_exact_key_and_rank_by_score(self) -> None:
        self.index.add_alias(1, "Sam Ghanem", "sam ghanem")
        self.index.add_alias(2, "Samuel Ghanem", "samuel ghanem")
        self.index.add_alias(3, "Josh Cougler", "josh cougler")

        candidates = self.index.candidates("sam ghanem", floor=0.55, limit=5)

        self.assertEqual([candidate.identity_id for candidate in candidates], [2])
        self.assertEqual(candidates[0].matched_name, "samuel ghanem")

    def test_ties_are_broken_by_appearances_then_id(self) -> None:
        self.index.add_alias(7, "Sam Ghanem", "sam ghanem")
        self.index.add_alias(4, "Sam Ghanem (Guest)", "sam ghanem")
        self.index.add_alias(9, "Ghanem Sam", "ghanem sam")
        self.index.set_appearances(7, 12)
        self.index.set_appearances(4, 3)

        candidates = self.index.candidates("sam ghanem x", floor=0.0, limit=5)
        self.assertEqual({candidate.score for candidate in candidates}, {candidates[0].score})
        self.assertEqual([candidate.identity_id for candidate in candidates], [7, 4, 9])

    def test_one_candidate_per_identity_with_best_alias(self) -> None:
        self.index.add_alias(1, "Sam G", "sam g")
        self.index.add_alias(1, "Samuel Ghanem", "samuel ghanem")

        candidates = self.index.candidates("sam ghanem", floor=0.55, limit=5)

        self.assertEqual(len(candidates), 1)
        self.assertEqual(candidates[0].matched_name, "samuel ghanem")

    def test_move_and_drop_keep_alias_ownership_disjoint(self) -> None:
        self.index.add_alias(1, "Sam Ghanem", "sam ghanem")
        self.index.add_alias(2, "Sam G.", "sam g")
        self.index.move_aliases(2, 1, ["Sam G."])

        self.assertEqual(self.index.aliases_of(1), {"Sam Ghanem", "Sam G."})
        self.assertEqual(self.index.aliases_of(2), set())
        self.assertEqual(self.index.exact_matches("sam g"), [1])

        self.index.add_alias(3, "Sam G.", "sam g")
        self.assertEqual(self.index.exact_matches("sam g"), [3])
        self.assertNotIn("Sam G.", self.index.aliases_of(1))

        self.index.drop_identity(1)
        self.assertEqual(self.index.exact_matches("sam ghanem"), [])

    def test_candidate_limit_is_respected(self) -> None:
        for identity_id, name in enumerate(["sam gha", "sam ghan", "sam ghane", "sam ghanem", "sam ghanemm"], start=1):
            self.index.add_alias(identity_id, name, name)
        self.assertEqual(len(self.index.candidates("sam gh", floor=0.0, limit=3)), 3)


if __name__ == "__main__":
    unittest.main()
