"""Heuristic user-agent classification for visitor analytics."""

from __future__ import annotations

import re

_BOT_RE = re.compile(r"bot|crawler|spider|crawling", re.IGNORECASE)


def _browser(ua: str) -> str:
    if "chrome" in ua and "edg" not in ua and "opr" not in ua:
        return "Chrome"
    if "firefox" in ua:
        return "Firefox"
    if "safari" in ua and "chrome" not in ua:
        return "Safari"
    if "edg" in ua:
        return "Edge"
    if "opr" in ua or "opera" in ua:
        return "Opera"
    if "msie" in ua or "trident" in ua:
        return "Internet Explorer"
    return "Unknown"


def _os(ua: str) -> str:
    if "windows" in ua:
        return "Windows"
    # iOS agents also say "like Mac OS X".
    if "iphone" in ua or "ipad" in ua:
        return "iOS"
    if "macintosh" in ua or "mac os" in ua:
        return "macOS"
    if "android" in ua:
        return "Android"
    if "linux" in ua:
        return "Linux"
    return "Unknown"


def _device(ua: str) -> str:
    if "mobile" in ua:
        return "Mobile"
    if "tablet" in ua or "ipad" in ua:
        return "Tablet"
    return "Desktop"


def parse_user_agent(user_agent: str | None) -> dict:
    ua = (user_agent or "").lower()
    return {
        "browser": _browser(ua),
        "os": _os(ua),
        "device_type": _device(ua),
        "is_bot": bool(_BOT_RE.search(ua)),
    }
