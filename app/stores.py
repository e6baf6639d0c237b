"""In-memory table and blob stores for tests and local runs."""

from __future__ import annotations

import copy
import json
import threading
import uuid
from typing import Any, Dict, List


def _search_value(row: dict, column: str, lang: str | None) -> str | None:
    value = row.get(column)
    if lang is not None:
        value = value.get(lang) if isinstance(value, dict) else None
    return value if isinstance(value, str) else None


def _matches(row: dict, query: dict) -> bool:
    for column, value in (query.get("eq") or {}).items():
        if row.get(column) != value:
            return False
    for column, values in (query.get("in") or {}).items():
        if row.get(column) not in set(values):
            return False
    for column, value in (query.get("gte") or {}).items():
        current = row.get(column)
        if current is None or current < value:
            return False
    for column, value in (query.get("lte") or {}).items():
        current = row.get(column)
        if current is None or current > value:
            return False
    search = query.get("search") or {}
    needle = str(search.get("q") or "").strip().lower()
    if needle:
        columns = search.get("columns") or []
        if not any(needle in (_search_value(row, col, lang) or "").lower() for col, lang in columns):
            return False
    return True


def _sort_key(value: Any):
    if value is None:
        return (1, "")
    if isinstance(value, (dict, list)):
        return (0, json.dumps(value, sort_keys=True))
    return (0, value)


class MemoryTableStore:
    def __init__(self) -> None:
        self._tables: Dict[str, Dict[Any, dict]] = {}
        self._sequences: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _table(self, table: str) -> Dict[Any, dict]:
        return self._tables.setdefault(table, {})

    def _next_id(self, table: str) -> int:
        # Serial semantics: ids are never reused after a delete.
        value = self._sequences.get(table, 0) + 1
        self._sequences[table] = value
        return value

    def select(self, table: str, query: dict | None = None) -> List[dict]:
        query = query or {}
        with self._lock:
            rows = [row for row in self._table(table).values() if _matches(row, query)]
        order = query.get("order")
        if order:
            column, ascending = order
            rows.sort(key=lambda r: _sort_key(r.get(column)), reverse=not ascending)
        offset = int(query.get("offset") or 0)
        limit = query.get("limit")
        rows = rows[offset:] if limit is None else rows[offset : offset + int(limit)]
        return [copy.deepcopy(row) for row in rows]

    def count(self, table: str, query: dict | None = None) -> int:
        query = {k: v for k, v in (query or {}).items() if k not in ("order", "offset", "limit")}
        with self._lock:
            return sum(1 for row in self._table(table).values() if _matches(row, query))

    def get(self, table: str, row_id: Any) -> dict | None:
        with self._lock:
            row = self._table(table).get(row_id)
            return copy.deepcopy(row) if row else None

    def insert(self, table: str, row: dict) -> dict:
        with self._lock:
            rows = self._table(table)
            record = copy.deepcopy(row)
            if record.get("id") is None:
                record["id"] = self._next_id(table)
            elif isinstance(record["id"], int):
                self._sequences[table] = max(self._sequences.get(table, 0), record["id"])
            rows[record["id"]] = record
            return copy.deepcopy(record)

    def update(self, table: str, row_id: Any, changes: dict) -> dict | None:
        with self._lock:
            row = self._table(table).get(row_id)
            if row is None:
                return None
            row.update(copy.deepcopy({k: v for k, v in changes.items() if k != "id"}))
            return copy.deepcopy(row)

    def delete(self, table: str, row_id: Any) -> int:
        with self._lock:
            return 1 if self._table(table).pop(row_id, None) is not None else 0

    def delete_many(self, table: str, ids: List[Any]) -> int:
        with self._lock:
            rows = self._table(table)
            return sum(1 for row_id in ids if rows.pop(row_id, None) is not None)


class MemoryBlobStore:
    kind = "blob"

    def __init__(self, base_url: str = "memory://public") -> None:
        self.base_url = base_url.rstrip("/")
        self._objects: Dict[str, dict] = {}

    def new_path(self, folder: str, ext: str) -> str:
        return f"{folder}/{uuid.uuid4().hex}.{ext}"

    def upload(self, path: str, data: bytes, mime_type: str | None = None) -> str:
        self._objects[path] = {"data": bytes(data), "mime_type": mime_type}
        return path

    def remove(self, paths: List[str]) -> None:
        for path in paths:
            self._objects.pop(path, None)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def read(self, path: str) -> bytes:
        obj = self._objects.get(path)
        if obj is None:
            raise FileNotFoundError(path)
        return obj["data"]

    def exists(self, path: str) -> bool:
        return path in self._objects
