"""Async state container for one entity list: items, loading, error and filters."""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Mapping

import anyio

from folio.canonical_json import fingerprint

logger = logging.getLogger("folio.state")


class CancelToken:
    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


def _clean_filters(filters: Mapping[str, Any] | None) -> dict:
    return {k: v for k, v in (filters or {}).items() if v not in (None, "")}


class EntityState:
    """Holds the list state for one entity page.

    Remote calls run in worker threads. Local state is patched only after a
    call succeeds and only while the call's token is live; ``close`` cancels
    every in-flight token so late results are dropped.
    """

    def __init__(self, service, filters: Mapping[str, Any] | None = None) -> None:
        self.service = service
        self.items: list[dict] = []
        self.total = 0
        self.loading = False
        self.error: Exception | None = None
        self.filters = _clean_filters(filters)
        self.closed = False
        self._fingerprint: str | None = None
        self._tokens: set[CancelToken] = set()
        self._fetch_token: CancelToken | None = None
        self._pending = 0

    async def __aenter__(self) -> "EntityState":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    async def _run(self, token: CancelToken, fn: Callable, *args) -> Any:
        if self.closed:
            raise RuntimeError("entity state is closed")
        self._tokens.add(token)
        self._pending += 1
        self.loading = True
        try:
            return await anyio.to_thread.run_sync(functools.partial(fn, *args))
        except Exception as exc:
            if not token.cancelled:
                self.error = exc
            raise
        finally:
            self._tokens.discard(token)
            self._pending -= 1
            self.loading = self._pending > 0 and not self.closed

    async def load(self) -> list[dict]:
        if self.closed:
            raise RuntimeError("entity state is closed")
        if self._fetch_token is not None:
            self._fetch_token.cancel()
        token = CancelToken()
        self._fetch_token = token
        filters = dict(self.filters)
        self._fingerprint = fingerprint(filters)
        self.error = None
        try:
            items, total = await self._run(token, self.service.list_page, filters)
        except Exception as exc:
            logger.warning("state_load_failed entity=%s error=%s", self.service.name, exc)
            return self.items
        if token.cancelled:
            logger.info("state_result_discarded entity=%s op=load", self.service.name)
            return self.items
        self.items = items
        self.total = total
        return self.items

    async def set_filters(self, filters: Mapping[str, Any] | None) -> bool:
        """Replace the filters; refetch only when they differ by value."""
        cleaned = _clean_filters(filters)
        if fingerprint(cleaned) == self._fingerprint:
            return False
        self.filters = cleaned
        await self.load()
        return True

    async def update_filters(self, **changes: Any) -> bool:
        merged = dict(self.filters)
        merged.update(changes)
        return await self.set_filters(merged)

    async def create(self, data: Mapping[str, Any], files=None) -> dict:
        token = CancelToken()
        self.error = None
        item = await self._run(token, self.service.create, data, files)
        if not token.cancelled:
            self.items = [item] + self.items
            self.total += 1
        return item

    async def update(self, row_id: Any, changes: Mapping[str, Any], files=None) -> dict:
        token = CancelToken()
        self.error = None
        item = await self._run(token, self.service.update, row_id, changes, files)
        if not token.cancelled:
            self.items = [item if existing.get("id") == row_id else existing for existing in self.items]
        return item

    async def delete(self, row_id: Any) -> None:
        token = CancelToken()
        self.error = None
        await self._run(token, self.service.delete, row_id)
        if not token.cancelled:
            before = len(self.items)
            self.items = [existing for existing in self.items if existing.get("id") != row_id]
            if len(self.items) < before:
                self.total = max(self.total - 1, 0)

    def close(self) -> None:
        self.closed = True
        for token in list(self._tokens):
            token.cancel()
        self.loading = False
