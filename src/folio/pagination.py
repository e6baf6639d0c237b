"""Page arithmetic and the page-control model."""

from __future__ import annotations

import math

DEFAULT_LIMIT = 10
WINDOW_THRESHOLD = 5


def total_pages(count: int, limit: int) -> int:
    if limit <= 0:
        raise ValueError("limit must be positive")
    return math.ceil(max(count, 0) / limit)


def normalize_page(page) -> int:
    try:
        value = int(page)
    except (TypeError, ValueError):
        return 1
    return value if value >= 1 else 1


def page_offset(page, limit: int) -> int:
    return (normalize_page(page) - 1) * limit


def _page(number: int, current: int) -> dict:
    return {"type": "page", "page": number, "current": number == current}


def build_pagination(current: int, total: int) -> dict | None:
    """Return the page-control model, or None when there is nothing to page."""
    if total <= 1:
        return None
    current = min(normalize_page(current), total)
    items: list[dict] = []
    if total <= WINDOW_THRESHOLD:
        items = [_page(n, current) for n in range(1, total + 1)]
    else:
        if current > 2:
            items.append(_page(1, current))
        if current > 3:
            items.append({"type": "ellipsis"})
        if current > 1:
            items.append(_page(current - 1, current))
        items.append(_page(current, current))
        if current < total:
            items.append(_page(current + 1, current))
        if current < total - 2:
            items.append({"type": "ellipsis"})
        if current < total - 1:
            items.append(_page(total, current))
    return {
        "current": current,
        "total": total,
        "prev": {"page": current - 1, "disabled": current <= 1},
        "next": {"page": current + 1, "disabled": current >= total},
        "items": items,
    }
