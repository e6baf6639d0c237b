import os
import sys
import unittest
from unittest import mock


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from folio.localized import (
    coerce_localized,
    is_blank,
    languages,
    localized_text,
    merge_localized,
    primary_language,
    search_columns,
)


class TestLocalizedText(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop("FOLIO_LANGUAGES", None)
        os.environ.pop("FOLIO_PRIMARY_LANGUAGE", None)

    def test_default_languages(self) -> None:
        self.assertEqual(languages(), ["id", "en"])
        self.assertEqual(primary_language(), "id")

    def test_languages_from_env(self) -> None:
        os.environ["FOLIO_LANGUAGES"] = "en, id ,ja"
        self.assertEqual(languages(), ["en", "id", "ja"])
        self.assertEqual(primary_language(), "en")
        os.environ["FOLIO_PRIMARY_LANGUAGE"] = "id"
        self.assertEqual(primary_language(), "id")

    def test_requested_language_wins(self) -> None:
        value = {"id": "Judul", "en": "Title"}
        self.assertEqual(localized_text(value, "en"), "Title")
        self.assertEqual(localized_text(value, "id"), "Judul")

    def test_falls_back_to_primary(self) -> None:
        self.assertEqual(localized_text({"id": "Judul", "en": ""}, "en"), "Judul")
        self.assertEqual(localized_text({"id": "Judul"}, "ja"), "Judul")

    def test_falls_back_to_any_non_blank(self) -> None:
        self.assertEqual(localized_text({"id": "  ", "en": "Title"}, "id"), "Title")

    def test_placeholder_when_nothing_usable(self) -> None:
        self.assertEqual(localized_text(None), "-")
        self.assertEqual(localized_text({}), "-")
        self.assertEqual(localized_text({"id": " "}, placeholder="n/a"), "n/a")

    def test_plain_string_is_primary_text(self) -> None:
        self.assertEqual(coerce_localized("Halo"), {"id": "Halo"})
        self.assertEqual(localized_text("Halo", "en"), "Halo")

    def test_non_string_entries_dropped(self) -> None:
        self.assertEqual(coerce_localized({"id": "Judul", "en": None, "ja": 3}), {"id": "Judul"})
        self.assertEqual(coerce_localized(42), {})

    def test_merge_keeps_untouched_languages(self) -> None:
        merged = merge_localized({"id": "Lama", "en": "Old"}, {"en": "New"})
        self.assertEqual(merged, {"id": "Lama", "en": "New"})

    def test_is_blank(self) -> None:
        self.assertTrue(is_blank({"en": "Title"}, "id"))
        self.assertTrue(is_blank({"id": "   "}, "id"))
        self.assertFalse(is_blank({"id": "Judul"}, "id"))

    def test_search_columns_cover_each_language(self) -> None:
        self.assertEqual(
            search_columns(["title"], ["id", "en"]),
            [("title", "id"), ("title", "en")],
        )


if __name__ == "__main__":
    unittest.main()
