"""Folio admin core utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps, fingerprint
from .localized import localized_text, coerce_localized, merge_localized, languages, primary_language
from .pagination import build_pagination, page_offset, total_pages

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "fingerprint",
    "localized_text",
    "coerce_localized",
    "merge_localized",
    "languages",
    "primary_language",
    "build_pagination",
    "page_offset",
    "total_pages",
]
