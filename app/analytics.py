"""Visitor tracking and dashboard rollups."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from folio.user_agent import parse_user_agent

logger = logging.getLogger("folio.analytics")

VISITORS_TABLE = "visitors"
EVENTS_TABLE = "visitor_events"
GROUP_BY = ("day", "week", "month", "year")
_ORGANIC = ("google", "bing", "yahoo")
_SOCIAL = ("facebook", "twitter", "instagram", "linkedin")
_EMAIL = ("mail", "outlook", "gmail")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _round(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def percent_change(current: float, previous: float) -> float:
    """Relative change in percent; a zero previous value yields 0.0."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def bucket_key(visited_at: Any, group_by: str) -> str:
    moment = _parse(visited_at).astimezone(timezone.utc)
    if group_by == "day":
        return moment.strftime("%Y-%m-%d")
    if group_by == "week":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by == "month":
        return moment.strftime("%Y-%m")
    if group_by == "year":
        return moment.strftime("%Y")
    raise ValueError(f"unsupported group_by: {group_by}")


def referer_category(referer: str | None) -> str:
    if not referer:
        return "direct"
    value = referer.lower()
    if any(name in value for name in _ORGANIC):
        return "organic"
    if any(name in value for name in _SOCIAL):
        return "social"
    if any(name in value for name in _EMAIL):
        return "email"
    return "referral"


class VisitorAnalytics:
    def __init__(self, store) -> None:
        self.store = store

    def record_page_view(
        self,
        page_url: str,
        session_id: str | None = None,
        user_agent: str | None = None,
        referer: str | None = None,
        ip_info: dict | None = None,
        ip_address: str | None = None,
    ) -> dict:
        if not page_url:
            raise ValueError("page_url is required")
        ip_info = ip_info or {}
        parsed = parse_user_agent(user_agent)
        ts = _now()
        row = {
            "id": str(uuid.uuid4()),
            "session_id": session_id or str(uuid.uuid4()),
            "user_agent": user_agent,
            "browser": parsed["browser"],
            "os": parsed["os"],
            "device_type": parsed["device_type"],
            "is_bot": parsed["is_bot"],
            "ip_address": ip_info.get("ip") or ip_address,
            "country": ip_info.get("country"),
            "region": ip_info.get("region"),
            "city": ip_info.get("city"),
            "latitude": ip_info.get("latitude"),
            "longitude": ip_info.get("longitude"),
            "page_url": page_url,
            "referer": referer,
            "visited_at": ts,
            "duration_seconds": 0,
            "created_at": ts,
            "updated_at": ts,
        }
        visitor = self.store.insert(VISITORS_TABLE, row)
        logger.info("visitor_recorded id=%s page=%s bot=%s", visitor["id"], page_url, parsed["is_bot"])
        return visitor

    def update_duration(self, visitor_id: str, duration: float) -> bool:
        """Set the visit duration. Unknown visitors are logged, not raised."""
        value = float(duration)
        if not math.isfinite(value):
            raise ValueError("duration must be finite")
        seconds = max(_round(value), 0)
        updated = self.store.update(VISITORS_TABLE, visitor_id, {"duration_seconds": seconds, "updated_at": _now()})
        if updated is None:
            logger.warning("visitor_duration_unknown_visitor id=%s", visitor_id)
            return False
        return True

    def track_event(self, visitor_id: str, event_type: str, event_data: dict | None = None) -> dict:
        row = {
            "id": str(uuid.uuid4()),
            "visitor_id": visitor_id,
            "event_type": event_type,
            "event_data": event_data or {},
            "event_time": _now(),
        }
        return self.store.insert(EVENTS_TABLE, row)

    def events(self, event_type: str | None = None, start: str | None = None, end: str | None = None) -> List[dict]:
        query: dict = {"order": ("event_time", True)}
        if event_type:
            query["eq"] = {"event_type": event_type}
        if start:
            query["gte"] = {"event_time": start}
        if end:
            query["lte"] = {"event_time": end}
        return self.store.select(EVENTS_TABLE, query)

    def visits(self, start: str | None = None, end: str | None = None, include_bots: bool = True) -> List[dict]:
        query: dict = {"order": ("visited_at", True)}
        if start:
            query["gte"] = {"visited_at": start}
        if end:
            query["lte"] = {"visited_at": end}
        if not include_bots:
            query["eq"] = {"is_bot": False}
        return self.store.select(VISITORS_TABLE, query)

    def stats(self, start: str | None = None, end: str | None = None, group_by: str = "day") -> List[dict]:
        if group_by not in GROUP_BY:
            raise ValueError(f"unsupported group_by: {group_by}")
        buckets: Dict[str, dict] = {}
        for visit in self.visits(start, end):
            key = bucket_key(visit.get("visited_at") or visit.get("created_at"), group_by)
            bucket = buckets.setdefault(key, {"visits": 0, "sessions": set(), "duration": 0})
            bucket["visits"] += 1
            if visit.get("session_id"):
                bucket["sessions"].add(visit["session_id"])
            bucket["duration"] += visit.get("duration_seconds") or 0
        return [
            {
                "date": key,
                "visits": data["visits"],
                "unique_visitors": len(data["sessions"]),
                "avg_duration": _round(data["duration"] / data["visits"]) if data["visits"] else 0,
            }
            for key, data in sorted(buckets.items())
        ]

    def summary(self, start: str | None = None, end: str | None = None) -> dict:
        visits = self.visits(start, end)
        total = len(visits)
        duration = sum(v.get("duration_seconds") or 0 for v in visits)
        return {
            "total_visits": total,
            "unique_visitors": len({v["session_id"] for v in visits if v.get("session_id")}),
            "avg_duration": _round(duration / total) if total else 0,
        }

    def compare_periods(
        self,
        current_start: str,
        current_end: str,
        previous_start: str | None = None,
        previous_end: str | None = None,
    ) -> dict:
        """Compare two windows; the previous window defaults to the equal-length span just before."""
        if previous_start is None or previous_end is None:
            span = _parse(current_end) - _parse(current_start)
            previous_end = _iso(_parse(current_start) - timedelta(microseconds=1))
            previous_start = _iso(_parse(current_start) - span)
        current = self.summary(current_start, current_end)
        previous = self.summary(previous_start, previous_end)
        return {
            "current": current,
            "previous": previous,
            "changes": {
                "visits_percent": percent_change(current["total_visits"], previous["total_visits"]),
                "unique_visitors_percent": percent_change(current["unique_visitors"], previous["unique_visitors"]),
                "avg_duration_percent": percent_change(current["avg_duration"], previous["avg_duration"]),
            },
            "periods": {
                "current": {"start": current_start, "end": current_end},
                "previous": {"start": previous_start, "end": previous_end},
            },
        }

    def top_pages(self, start: str | None = None, end: str | None = None, limit: int = 10) -> List[dict]:
        pages: Dict[str, dict] = {}
        for visit in self.visits(start, end):
            page = pages.setdefault(visit.get("page_url") or "", {"count": 0, "duration": 0})
            page["count"] += 1
            page["duration"] += visit.get("duration_seconds") or 0
        result = [
            {"page_url": url, "count": data["count"], "avg_duration": _round(data["duration"] / data["count"])}
            for url, data in pages.items()
        ]
        result.sort(key=lambda item: (-item["count"], item["page_url"]))
        return result[:limit]

    def traffic_sources(self, start: str | None = None, end: str | None = None, limit: int = 10) -> List[dict]:
        counts: Dict[str, int] = {}
        visits = self.visits(start, end)
        for visit in visits:
            category = referer_category(visit.get("referer"))
            counts[category] = counts.get(category, 0) + 1
        total = len(visits)
        result = [
            {"referer": category, "count": count, "percent": _round(count / total * 100)}
            for category, count in counts.items()
        ]
        result.sort(key=lambda item: (-item["count"], item["referer"]))
        return result[:limit]

    def event_stats(self, event_type: str | None = None, start: str | None = None, end: str | None = None) -> dict:
        """Event counts per type, plus the matching events joined to their page view."""
        events = self.events(event_type, start, end)
        pages = {}
        visitor_ids = sorted({e["visitor_id"] for e in events if e.get("visitor_id") is not None})
        if visitor_ids:
            for visitor in self.store.select(VISITORS_TABLE, {"in": {"id": visitor_ids}}):
                pages[visitor["id"]] = {"id": visitor["id"], "page_url": visitor.get("page_url"), "visited_at": visitor.get("visited_at")}
        counts: Dict[str, int] = {}
        for event in events:
            counts[event["event_type"]] = counts.get(event["event_type"], 0) + 1
        return {
            "total": len(events),
            "by_type": [{"event_type": name, "count": count} for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))],
            "events": [dict(event, visitor=pages.get(event.get("visitor_id"))) for event in events],
        }
