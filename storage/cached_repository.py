"""Read-through caching around the content repository."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

from storage.cache import KEY_PREFIX, MemoryCache
from storage.db import ContentRepository
from storage.models import Content, ContentType, SortBy

log = logging.getLogger(__name__)


def search_cache_key(
    keyword: Optional[str],
    content_type: Optional[ContentType],
    sort_by: SortBy,
    page: int,
    page_size: int,
) -> str:
    kw = (keyword or "").strip().lower()
    ctype = content_type.value if content_type else ""
    return f"{KEY_PREFIX}search:{kw}:{ctype}:{sort_by.value}:{page}:{page_size}"


def content_cache_key(item_id: str) -> str:
    return f"{KEY_PREFIX}content:{item_id}"


class CachedContentRepository:
    """Cache-aside wrapper with the same contract as ContentRepository.

    Only ``search`` and ``get_by_id`` are cached.  Writes pass straight
    through; invalidation is driven by the data-synced event.
    """

    def __init__(
        self,
        inner: ContentRepository,
        cache: MemoryCache,
        search_ttl: timedelta = timedelta(minutes=5),
        content_ttl: timedelta = timedelta(minutes=10),
    ):
        self._inner = inner
        self._cache = cache
        self._search_ttl = search_ttl
        self._content_ttl = content_ttl

    async def search(
        self,
        keyword: Optional[str],
        content_type: Optional[ContentType],
        sort_by: SortBy,
        page: int,
        page_size: int,
    ) -> tuple[list[Content], int]:
        key = search_cache_key(keyword, content_type, sort_by, page, page_size)

        cached = await self._read(key)
        if cached is not None:
            try:
                return [Content.from_dict(d) for d in cached["items"]], int(cached["total_count"])
            except (KeyError, TypeError, ValueError):
                log.warning("Discarding malformed cached search result for %s", key)

        items, total = await self._inner.search(keyword, content_type, sort_by, page, page_size)
        await self._write(
            key,
            {"items": [c.to_dict() for c in items], "total_count": total},
            self._search_ttl,
        )
        return items, total

    async def get_by_id(self, item_id: str) -> Optional[Content]:
        key = content_cache_key(item_id)

        cached = await self._read(key)
        if cached is not None:
            try:
                return Content.from_dict(cached)
            except (KeyError, TypeError, ValueError):
                log.warning("Discarding malformed cached content for %s", key)

        item = await self._inner.get_by_id(item_id)
        if item is not None:
            await self._write(key, item.to_dict(), self._content_ttl)
        return item

    async def upsert_many(self, items: Sequence[Content]) -> None:
        await self._inner.upsert_many(items)

    async def list_all(self) -> list[Content]:
        return await self._inner.list_all()

    # The store stays the source of truth: cache trouble never fails a read.

    async def _read(self, key: str):
        try:
            return await self._cache.get(key)
        except Exception:
            log.warning("Cache read failed for %s – falling through to store", key, exc_info=True)
            return None

    async def _write(self, key: str, value, ttl: timedelta) -> None:
        try:
            await self._cache.set(key, value, ttl)
        except Exception:
            log.warning("Cache write failed for %s – continuing without cache", key, exc_info=True)
