"""Localized text values: one string per language code."""

from __future__ import annotations

import os
from typing import Any, Iterable

DEFAULT_LANGUAGES = ("id", "en")
PLACEHOLDER = "-"


def languages() -> list[str]:
    raw = os.getenv("FOLIO_LANGUAGES", "")
    codes = [code.strip() for code in raw.split(",") if code.strip()]
    return codes or list(DEFAULT_LANGUAGES)


def primary_language() -> str:
    value = (os.getenv("FOLIO_PRIMARY_LANGUAGE") or "").strip()
    return value or languages()[0]


def coerce_localized(value: Any) -> dict[str, str]:
    """Return a language map for a stored value.

    Plain strings are attributed to the primary language, non-string entries
    are dropped and None becomes an empty map.
    """
    if value is None:
        return {}
    if isinstance(value, str):
        return {primary_language(): value} if value else {}
    if isinstance(value, dict):
        return {str(lang): text for lang, text in value.items() if isinstance(text, str)}
    return {}


def localized_text(value: Any, lang: str | None = None, placeholder: str = PLACEHOLDER) -> str:
    texts = coerce_localized(value)
    for candidate in (lang, primary_language()):
        if candidate and (texts.get(candidate) or "").strip():
            return texts[candidate]
    for text in texts.values():
        if text.strip():
            return text
    return placeholder


def is_blank(value: Any, lang: str) -> bool:
    return not (coerce_localized(value).get(lang) or "").strip()


def merge_localized(current: Any, changes: Any) -> dict[str, str]:
    merged = coerce_localized(current)
    merged.update(coerce_localized(changes))
    return merged


def search_columns(fields: Iterable[str], langs: Iterable[str] | None = None) -> list[tuple[str, str]]:
    codes = list(langs) if langs is not None else languages()
    return [(field, lang) for field in fields for lang in codes]
