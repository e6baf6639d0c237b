import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.pop("FOLIO_LANGUAGES", None)
os.environ.pop("FOLIO_PRIMARY_LANGUAGE", None)

from folio.pagination import build_pagination
from folio.table import (
    Column,
    ComputedAccessor,
    RowAction,
    apply_filter_change,
    build_table,
    field_column,
    localized_column,
    parse_sort_option,
    toggle_sort,
)
from app.table_render import HtmlTableRenderer, JsonTableRenderer

COLUMNS = [
    localized_column("Title", "title", sortable=True),
    field_column("Order", "order_no"),
    Column("Status", ComputedAccessor("status", lambda item: "Active" if item.get("is_active") else "Inactive")),
]
ITEMS = [
    {"id": 1, "title": {"id": "Satu", "en": "One"}, "order_no": 1, "is_active": True},
    {"id": 2, "title": {"id": "Dua"}, "order_no": 2, "is_active": False},
]


class TestBuildTable(unittest.TestCase):
    def test_loading_wins_over_empty(self) -> None:
        model = build_table([], COLUMNS, loading=True)
        self.assertEqual(model.state, "loading")
        self.assertEqual(model.rows, [])

    def test_empty_state_uses_message(self) -> None:
        model = build_table([], COLUMNS)
        self.assertEqual(model.state, "empty")
        self.assertEqual(model.empty_message, "Tidak ada data")
        custom = build_table(None, COLUMNS, empty_message="Belum ada proyek")
        self.assertEqual(custom.empty_message, "Belum ada proyek")

    def test_rows_resolve_accessors(self) -> None:
        model = build_table(ITEMS, COLUMNS, lang="en")
        self.assertEqual(model.state, "rows")
        self.assertEqual(model.rows[0]["cells"], ["One", 1, "Active"])
        self.assertEqual(model.rows[1]["cells"], ["Dua", 2, "Inactive"])

    def test_row_actions_hidden_and_disabled(self) -> None:
        actions = [
            RowAction("edit", "Edit"),
            RowAction("delete", "Delete", variant="danger", disabled=lambda item: item.get("is_active")),
            RowAction("publish", "Publish", hidden=lambda item: item.get("is_active")),
        ]
        model = build_table(ITEMS, COLUMNS, actions)
        first = {a["key"]: a for a in model.rows[0]["actions"]}
        second = {a["key"]: a for a in model.rows[1]["actions"]}
        self.assertTrue(first["delete"]["disabled"])
        self.assertNotIn("publish", first)
        self.assertFalse(second["delete"]["disabled"])
        self.assertIn("publish", second)

    def test_sorted_header_marked(self) -> None:
        model = build_table(ITEMS, COLUMNS, sort={"sort": "title", "order": "asc"})
        self.assertEqual(model.columns[0]["sorted"], "asc")
        self.assertIsNone(model.columns[1]["sorted"])


class TestSortAndFilter(unittest.TestCase):
    def test_toggle_sort(self) -> None:
        state = toggle_sort(None, "title")
        self.assertEqual(state, {"sort": "title", "order": "asc"})
        state = toggle_sort(state, "title")
        self.assertEqual(state, {"sort": "title", "order": "desc"})
        self.assertEqual(toggle_sort(state, "created_at"), {"sort": "created_at", "order": "asc"})

    def test_parse_sort_option(self) -> None:
        self.assertEqual(parse_sort_option("created_at-desc"), ("created_at", "desc"))
        self.assertIsNone(parse_sort_option("created_at"))
        self.assertIsNone(parse_sort_option("created_at-sideways"))

    def test_filter_change_resets_page(self) -> None:
        filters = apply_filter_change({"page": 4, "limit": 10}, search=" web ")
        self.assertEqual(filters, {"page": 1, "limit": 10, "search": "web"})
        cleared = apply_filter_change(filters, search="", sort_option="title-asc")
        self.assertNotIn("search", cleared)
        self.assertEqual((cleared["sort"], cleared["order"]), ("title", "asc"))


class TestTableRenderers(unittest.TestCase):
    def test_html_escapes_cells(self) -> None:
        items = [{"id": 1, "title": {"id": "<script>x</script>"}, "order_no": 1}]
        html = HtmlTableRenderer().render(build_table(items, COLUMNS, [RowAction("edit", "Edit")]))
        self.assertIn("&lt;script&gt;", html)
        self.assertNotIn("<script>", html)
        self.assertIn('data-action="edit"', html)

    def test_html_empty_and_pagination(self) -> None:
        html = HtmlTableRenderer().render(build_table([], COLUMNS), build_pagination(2, 7))
        self.assertIn("Tidak ada data", html)
        self.assertIn('aria-current="page"', html)
        self.assertIn("&hellip;", html)

    def test_json_payload(self) -> None:
        payload = JsonTableRenderer().payload(build_table(ITEMS, COLUMNS), build_pagination(1, 2))
        self.assertEqual(payload["table"]["state"], "rows")
        self.assertEqual(payload["pagination"]["total"], 2)


if __name__ == "__main__":
    unittest.main()
