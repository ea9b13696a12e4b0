"""In-process event bus and the handlers that react to a finished sync."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from storage.cache import KEY_PREFIX, MemoryCache
from storage.fulltext import FullTextIndex

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSyncedEvent:
    item_count: int
    synced_at: datetime


Handler = Callable[[DataSyncedEvent], Awaitable[None]]


class EventBus:
    """Fire-and-forget publish/subscribe.

    ``publish`` returns as soon as every handler has been scheduled; handlers
    run as background tasks and their failures are logged, not raised.
    """

    def __init__(self):
        self._handlers: list[Handler] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: Handler) -> None:
        self._handlers.append(handler)

    async def publish(self, event: DataSyncedEvent) -> None:
        for handler in self._handlers:
            task = asyncio.create_task(self._run(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        log.debug("Published %s to %d handlers", type(event).__name__, len(self._handlers))

    async def drain(self) -> None:
        """Wait for every handler that is still running."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    async def _run(handler: Handler, event: DataSyncedEvent) -> None:
        try:
            await handler(event)
        except Exception:
            log.exception("Event handler %s failed – event acknowledged", getattr(handler, "__name__", type(handler).__name__))


class CacheInvalidationHandler:
    """Drops every cached search result and item after a sync."""

    def __init__(self, cache: MemoryCache):
        self._cache = cache

    async def __call__(self, event: DataSyncedEvent) -> None:
        log.info("Sync event received (%d items) – clearing cache", event.item_count)
        await self._cache.remove_by_prefix(KEY_PREFIX)


class IndexRebuildHandler:
    """Re-indexes the whole store so the index converges on it after a sync."""

    def __init__(self, repository, index: FullTextIndex):
        self._repository = repository
        self._index = index

    async def __call__(self, event: DataSyncedEvent) -> None:
        log.info("Sync event received (%d items) – rebuilding full-text index", event.item_count)
        items = await self._repository.list_all()
        await self._index.index_many(items)
        log.info("Full-text index rebuilt with %d items", len(items))
