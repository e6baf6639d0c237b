import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
for path in (SRC, ROOT):
    if path not in sys.path:
        sys.path.insert(0, path)

from app.analytics import VISITORS_TABLE, VisitorAnalytics, bucket_key, percent_change, referer_category
from app.stores import MemoryTableStore

CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"


class TestHelpers(unittest.TestCase):
    def test_percent_change(self) -> None:
        self.assertEqual(percent_change(150, 100), 50.0)
        self.assertEqual(percent_change(50, 100), -50.0)
        self.assertEqual(percent_change(1, 3), -66.67)
        self.assertEqual(percent_change(5, 0), 0.0)
        self.assertEqual(percent_change(0, 0), 0.0)

    def test_bucket_keys(self) -> None:
        ts = "2024-03-05T10:00:00.000000Z"
        self.assertEqual(bucket_key(ts, "day"), "2024-03-05")
        self.assertEqual(bucket_key(ts, "month"), "2024-03")
        self.assertEqual(bucket_key(ts, "year"), "2024")
        self.assertEqual(bucket_key("2024-01-01T00:00:00Z", "week"), "2024-W01")
        self.assertEqual(bucket_key("2023-01-01T00:00:00Z", "week"), "2022-W52")
        with self.assertRaises(ValueError):
            bucket_key(ts, "hour")

    def test_referer_category(self) -> None:
        self.assertEqual(referer_category(None), "direct")
        self.assertEqual(referer_category("https://www.google.com/search"), "organic")
        self.assertEqual(referer_category("https://l.facebook.com/"), "social")
        self.assertEqual(referer_category("https://outlook.live.com/"), "email")
        self.assertEqual(referer_category("https://blog.example.com/post"), "referral")


class TestVisitorAnalytics(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryTableStore()
        self.analytics = VisitorAnalytics(self.store)

    def _visit(self, visited_at: str, session: str, duration: int, page: str = "/", referer=None, is_bot=False) -> None:
        self.store.insert(
            VISITORS_TABLE,
            {
                "id": f"{session}-{visited_at}",
                "session_id": session,
                "page_url": page,
                "referer": referer,
                "visited_at": f"{visited_at}.000000Z",
                "duration_seconds": duration,
                "is_bot": is_bot,
            },
        )

    def _seed(self) -> None:
        self._visit("2024-01-02T10:00:00", "a", 30)
        self._visit("2024-01-03T10:00:00", "b", 60, "/projects", "https://www.google.com/")
        self._visit("2024-01-09T10:00:00", "a", 10)
        self._visit("2024-01-09T11:00:00", "c", 20, "/", "https://facebook.com")
        self._visit("2024-01-10T10:00:00", "c", 30, "/projects", "https://blog.example.com")
        self._visit("2024-01-10T12:00:00", "d", 0, "/about", "https://outlook.live.com")

    def test_record_page_view(self) -> None:
        visitor = self.analytics.record_page_view("/projects", session_id="s1", user_agent=CHROME_MAC, referer="https://google.com")
        self.assertEqual(visitor["browser"], "Chrome")
        self.assertEqual(visitor["os"], "macOS")
        self.assertEqual(visitor["duration_seconds"], 0)
        self.assertEqual(visitor["session_id"], "s1")
        self.assertEqual(self.store.get(VISITORS_TABLE, visitor["id"])["page_url"], "/projects")
        with self.assertRaises(ValueError):
            self.analytics.record_page_view("")

    def test_update_duration(self) -> None:
        visitor = self.analytics.record_page_view("/")
        self.assertTrue(self.analytics.update_duration(visitor["id"], 12.6))
        self.assertEqual(self.store.get(VISITORS_TABLE, visitor["id"])["duration_seconds"], 13)
        with self.assertLogs("folio.analytics", level="WARNING"):
            self.assertFalse(self.analytics.update_duration("missing", 5))

    def test_update_duration_rejects_non_finite(self) -> None:
        visitor = self.analytics.record_page_view("/")
        for value in (float("inf"), float("-inf"), float("nan"), "1e999"):
            with self.assertRaises(ValueError):
                self.analytics.update_duration(visitor["id"], value)
        self.assertEqual(self.store.get(VISITORS_TABLE, visitor["id"])["duration_seconds"], 0)

    def test_track_event(self) -> None:
        visitor = self.analytics.record_page_view("/")
        self.analytics.track_event(visitor["id"], "cv_download", {"lang": "en"})
        events = self.analytics.events("cv_download")
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["event_data"], {"lang": "en"})

    def test_event_stats(self) -> None:
        first = self.analytics.record_page_view("/cv")
        second = self.analytics.record_page_view("/contact")
        self.analytics.track_event(first["id"], "cv_download")
        self.analytics.track_event(second["id"], "contact_click")
        self.analytics.track_event(second["id"], "cv_download")
        stats = self.analytics.event_stats()
        self.assertEqual(stats["total"], 3)
        self.assertEqual(stats["by_type"], [{"event_type": "cv_download", "count": 2}, {"event_type": "contact_click", "count": 1}])
        pages = sorted(e["visitor"]["page_url"] for e in stats["events"])
        self.assertEqual(pages, ["/contact", "/contact", "/cv"])
        self.assertEqual(self.analytics.event_stats("contact_click")["total"], 1)

    def test_stats_by_day(self) -> None:
        self._seed()
        stats = self.analytics.stats(group_by="day")
        self.assertEqual(
            stats,
            [
                {"date": "2024-01-02", "visits": 1, "unique_visitors": 1, "avg_duration": 30},
                {"date": "2024-01-03", "visits": 1, "unique_visitors": 1, "avg_duration": 60},
                {"date": "2024-01-09", "visits": 2, "unique_visitors": 2, "avg_duration": 15},
                {"date": "2024-01-10", "visits": 2, "unique_visitors": 2, "avg_duration": 15},
            ],
        )

    def test_stats_by_week_and_month(self) -> None:
        self._seed()
        weeks = self.analytics.stats(group_by="week")
        self.assertEqual([(w["date"], w["visits"], w["unique_visitors"]) for w in weeks], [("2024-W01", 2, 2), ("2024-W02", 4, 3)])
        months = self.analytics.stats(group_by="month")
        self.assertEqual(months, [{"date": "2024-01", "visits": 6, "unique_visitors": 4, "avg_duration": 25}])
        with self.assertRaises(ValueError):
            self.analytics.stats(group_by="decade")

    def test_summary_range(self) -> None:
        self._seed()
        summary = self.analytics.summary("2024-01-08T00:00:00.000000Z", "2024-01-14T23:59:59.999999Z")
        self.assertEqual(summary, {"total_visits": 4, "unique_visitors": 3, "avg_duration": 15})
        self.assertEqual(self.analytics.summary("2025-01-01T00:00:00.000000Z"), {"total_visits": 0, "unique_visitors": 0, "avg_duration": 0})

    def test_compare_periods_defaults_previous_window(self) -> None:
        self._seed()
        result = self.analytics.compare_periods("2024-01-08T00:00:00.000000Z", "2024-01-14T23:59:59.999999Z")
        self.assertEqual(result["previous"], {"total_visits": 2, "unique_visitors": 2, "avg_duration": 45})
        self.assertEqual(
            result["changes"],
            {"visits_percent": 100.0, "unique_visitors_percent": 50.0, "avg_duration_percent": -66.67},
        )
        self.assertEqual(result["periods"]["previous"]["end"], "2024-01-07T23:59:59.999999Z")

    def test_top_pages(self) -> None:
        self._seed()
        pages = self.analytics.top_pages(limit=2)
        self.assertEqual(
            pages,
            [
                {"page_url": "/", "count": 3, "avg_duration": 20},
                {"page_url": "/projects", "count": 2, "avg_duration": 45},
            ],
        )

    def test_traffic_sources(self) -> None:
        self._seed()
        sources = self.analytics.traffic_sources()
        self.assertEqual(sources[0], {"referer": "direct", "count": 2, "percent": 33})
        self.assertEqual([s["referer"] for s in sources[1:]], ["email", "organic", "referral", "social"])
        self.assertTrue(all(s["percent"] == 17 for s in sources[1:]))

    def test_bots_can_be_excluded(self) -> None:
        self._visit("2024-01-02T10:00:00", "a", 30)
        self._visit("2024-01-02T11:00:00", "bot", 0, is_bot=True)
        self.assertEqual(len(self.analytics.visits()), 2)
        self.assertEqual(len(self.analytics.visits(include_bots=False)), 1)


if __name__ == "__main__":
    unittest.main()
