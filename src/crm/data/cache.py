"""In-memory collection cache keyed by (table, tenant id, filter set).

Views read cached collections freely; writes go through exactly two paths:

- set_data(): the optimistic patch path used by the stage engine
- fetch()/invalidate(): reconciliation with the backend

Each key tracks at most one in-flight reconciliation task and a generation
counter. A fetch only writes its result if the generation it started under is
still current, and cancel() both cancels the task and bumps the generation, so
a stale response can never overwrite a newer optimistic write.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from src.crm.data.backend import Row

logger = structlog.get_logger(__name__)

Fetcher = Callable[[], Awaitable[list[Row]]]


@dataclass(frozen=True)
class QueryKey:
    """Cache key: table, owning tenant, and a canonical (sorted) filter set."""

    table: str
    tenant_id: str | None
    filters: tuple[tuple[str, Any], ...] = ()

    @classmethod
    def build(
        cls, table: str, tenant_id: str | None, filters: Mapping[str, Any] | None = None
    ) -> QueryKey:
        canonical = tuple(
            sorted((k, v) for k, v in (filters or {}).items() if v is not None)
        )
        return cls(table=table, tenant_id=tenant_id, filters=canonical)


@dataclass
class _Entry:
    data: list[Row] | None = None
    fetcher: Fetcher | None = None
    task: asyncio.Task | None = None
    generation: int = 0
    stale: bool = True
    updated_at: datetime | None = None
    error: BaseException | None = field(default=None, repr=False)


class QueryCache:
    """Per-key cached collections with cancellable reconciliation fetches."""

    def __init__(self) -> None:
        self._entries: dict[QueryKey, _Entry] = {}

    def _entry(self, key: QueryKey) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        return entry

    # ── Reads ───────────────────────────────────────────────────────────────

    def get(self, key: QueryKey) -> list[Row] | None:
        """Cached rows for the key (shared; callers must not mutate them)."""
        entry = self._entries.get(key)
        return entry.data if entry else None

    def snapshot(self, key: QueryKey) -> list[Row] | None:
        """Deep copy of the cached rows, for rollback."""
        return copy.deepcopy(self.get(key))

    def generation(self, key: QueryKey) -> int:
        entry = self._entries.get(key)
        return entry.generation if entry else 0

    def is_fetching(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.task and not entry.task.done())

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    # ── Writes ──────────────────────────────────────────────────────────────

    def set_data(self, key: QueryKey, rows: list[Row] | None) -> int:
        """Replace cached rows directly. Returns the new generation."""
        entry = self._entry(key)
        entry.data = rows
        entry.generation += 1
        entry.updated_at = datetime.now(timezone.utc)
        return entry.generation

    async def fetch(self, key: QueryKey, fetcher: Fetcher | None = None) -> list[Row]:
        """Run (or join) the reconciliation fetch for key and return its rows.

        The fetcher is remembered so invalidate() can refetch the key later.
        If the fetch is cancelled or superseded, the returned rows are whatever
        the cache holds afterwards; the stale result is discarded.
        """
        entry = self._entry(key)
        if fetcher is not None:
            entry.fetcher = fetcher
        if entry.fetcher is None:
            raise LookupError(f"No fetcher registered for {key}")

        if entry.task is None or entry.task.done():
            entry.task = asyncio.create_task(self._run(key, entry, entry.generation))
        task = entry.task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            logger.debug("cache.fetch_cancelled", table=key.table, tenant_id=key.tenant_id)
        return entry.data or []

    async def _run(self, key: QueryKey, entry: _Entry, started_at: int) -> None:
        assert entry.fetcher is not None
        try:
            rows = await entry.fetcher()
        except Exception as exc:
            entry.error = exc
            raise
        if entry.generation != started_at:
            logger.debug(
                "cache.stale_result_discarded",
                table=key.table,
                tenant_id=key.tenant_id,
            )
            return
        entry.data = rows
        entry.error = None
        entry.stale = False
        entry.generation += 1
        entry.updated_at = datetime.now(timezone.utc)

    def cancel(self, key: QueryKey) -> bool:
        """Cancel the in-flight fetch for key; its result will never be written.

        Returns True if a fetch was actually in flight.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False
        entry.generation += 1
        task, entry.task = entry.task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("cache.fetch_cancel_requested", table=key.table, tenant_id=key.tenant_id)
            return True
        return False

    async def invalidate(self, table: str, tenant_id: str | None) -> None:
        """Mark every key of (table, tenant) stale and refetch those with a fetcher.

        Refetch failures are logged and kept on the entry; the cached rows stay
        as they were.
        """
        matching = [
            key for key in self._entries if key.table == table and key.tenant_id == tenant_id
        ]
        refetch_keys = []
        for key in matching:
            entry = self._entries[key]
            entry.stale = True
            if entry.fetcher is not None:
                # A refetch always starts from the latest state.
                if entry.task is not None and not entry.task.done():
                    self.cancel(key)
                refetch_keys.append(key)
        if not refetch_keys:
            return
        results = await asyncio.gather(
            *(self.fetch(key) for key in refetch_keys), return_exceptions=True
        )
        for key, result in zip(refetch_keys, results):
            if isinstance(result, Exception):
                logger.warning(
                    "cache.refetch_failed",
                    table=key.table,
                    tenant_id=key.tenant_id,
                    error=str(result),
                )

    def clear_tenant(self, tenant_id: str | None) -> None:
        """Drop every cached collection of a tenant (sign-out)."""
        for key in [k for k in self._entries if k.tenant_id == tenant_id]:
            self.cancel(key)
            del self._entries[key]
