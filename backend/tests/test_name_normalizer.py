"""Unit tests for display-name normalization."""

import unittest

from attendee_identity.resolution.normalizer import (
    choose_canonical_name,
    display_name_for,
    first_last_key,
    is_probable_bot,
    normalize_display_name,
)


class NameNormalizerTests(unittest.TestCase):
    def test_annotations_and_case_collapse_to_one_key(self) -> None:
        variants = [
            "Sam Ghanem",
            "sam ghanem",
            "Sam Ghanem (Guest)",
            "  SAM   GHANEM ",
            "Sam Ghanem [Host]",
            "Sam Ghanem - iPad",
            "Sam Ghanem guest",
            "Sam Ghanem co-host",
        ]
        self.assertEqual({normalize_display_name(value) for value in variants}, {"sam ghanem"})

    def test_accents_and_punctuation_are_folded(self) -> None:
        self.assertEqual(normalize_display_name("José Álvarez-Núñez"), "jose alvarez nunez")
        self.assertEqual(normalize_display_name("O'Brien, Conor"), "obrien conor")
        self.assertEqual(normalize_display_name("Sam G."), "sam g")

    def test_device_names_reduce_to_owner(self) -> None:
        self.assertEqual(normalize_display_name("Sam's iPhone"), "sam")
        self.assertEqual(normalize_display_name("Priya’s MacBook Pro"), "priya")

    def test_lone_role_word_is_kept(self) -> None:
        self.assertEqual(normalize_display_name("Guest"), "guest")

    def test_unresolvable_names_normalize_to_empty(self) -> None:
        for value in ("", "   ", "???", "(Guest)", None):
            self.assertEqual(normalize_display_name(value), "", msg=repr(value))

    def test_normalization_is_idempotent(self) -> None:
        samples = [
            "Sam Ghanem (Guest)",
            "José Álvarez",
            "Sam's iPhone",
            "  Jane   Doe co host",
            "Ｆｕｌｌ Ｗｉｄｔｈ",
            "???",
        ]
        for value in samples:
            once = normalize_display_name(value)
            self.assertEqual(normalize_display_name(once), once, msg=value)

    def test_display_name_title_cases_flat_case(self) -> None:
        self.assertEqual(display_name_for("sam ghanem"), "Sam Ghanem")
        self.assertEqual(display_name_for("SAM GHANEM (Guest)"), "Sam Ghanem")
        self.assertEqual(display_name_for("Sam McArthur"), "Sam McArthur")

    def test_canonical_name_prefers_full_properly_cased_alias(self) -> None:
        self.assertEqual(
            choose_canonical_name(["sam g", "Sam Ghanem", "sam ghanem", "Sam Ghanem (Guest)"]),
            "Sam Ghanem",
        )
        self.assertEqual(choose_canonical_name([]), "")

    def test_canonical_name_skips_company_suffix(self) -> None:
        self.assertEqual(
            choose_canonical_name(["Sam Ghanem | Sober Founders", "Sam Ghanem"]),
            "Sam Ghanem",
        )

    def test_first_last_key_reduces_long_names(self) -> None:
        self.assertEqual(first_last_key(normalize_display_name("Sam Ghanem | Sober Founders")), "sam ghanem")
        self.assertEqual(first_last_key("jose alvarez nunez"), "jose alvarez")
        self.assertEqual(first_last_key("sam ghanem"), "")
        self.assertEqual(first_last_key("zoom user 4471"), "")
        self.assertEqual(first_last_key("s g consulting"), "")
        self.assertEqual(first_last_key(""), "")

    def test_bot_detection_matches_whole_keywords(self) -> None:
        keywords = ["notetaker", "fireflies.ai", "otter.ai"]
        self.assertTrue(is_probable_bot(normalize_display_name("Fireflies.ai Notetaker"), keywords))
        self.assertTrue(is_probable_bot(normalize_display_name("Otter.ai"), keywords))
        self.assertFalse(is_probable_bot(normalize_display_name("Sam Ghanem"), keywords))
        self.assertFalse(is_probable_bot(normalize_display_name("Otterman Aiden"), keywords))


if __name__ == "__main__":
    unittest.main()
