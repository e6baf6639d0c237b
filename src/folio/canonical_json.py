"""Deterministic canonical JSON serialization, used to compare filter state by value."""

from __future__ import annotations

import hashlib
import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when an object cannot be serialized to canonical JSON."""


def _normalize(obj: Any, path: str = "$") -> Any:
    if isinstance(obj, dict):
        out = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise CanonicalJsonTypeError(f"Unsupported key type at {path}: {type(key).__name__}")
            out[key] = _normalize(value, f"{path}.{key}")
        return out
    if isinstance(obj, (list, tuple)):
        return [_normalize(item, f"{path}[{idx}]") for idx, item in enumerate(obj)]
    if obj is None or isinstance(obj, (str, int, bool)):
        return obj
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValueError(f"Non-finite float at {path}: {obj!r}")
        return obj
    raise CanonicalJsonTypeError(f"Unsupported type at {path}: {type(obj).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Serialize an object to deterministic canonical JSON.

    Dict keys are sorted recursively, tuples become lists, non-ASCII text is
    kept as-is and no whitespace is emitted.
    """
    return json.dumps(
        _normalize(obj),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def fingerprint(obj: Any) -> str:
    return hashlib.sha256(canonical_dumps(obj).encode("utf-8")).hexdigest()
