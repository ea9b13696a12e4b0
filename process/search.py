"""Search routing – full-text index first, the store as fallback."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from storage.models import Content, ContentType, SortBy

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchQuery:
    keyword: Optional[str] = None
    content_type: Optional[ContentType] = None
    sort_by: SortBy = SortBy.POPULARITY
    page: int = 1
    page_size: int = 10

    @property
    def has_keyword(self) -> bool:
        return bool(self.keyword and self.keyword.strip())


@dataclass(frozen=True)
class SearchPage:
    items: list[Content]
    total_count: int
    page: int
    page_size: int
    total_pages: int

    def to_dict(self) -> dict:
        return {
            "items": [c.to_dict() for c in self.items],
            "total_count": self.total_count,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size > 0 else 0


class SearchRouter:
    """Chooses the backend per request; holds no state between requests."""

    def __init__(self, repository, index):
        self._repository = repository
        self._index = index

    async def search(self, query: SearchQuery) -> SearchPage:
        items, total = await self._find(query)
        return SearchPage(
            items=items,
            total_count=total,
            page=query.page,
            page_size=query.page_size,
            total_pages=total_pages(total, query.page_size),
        )

    async def _find(self, query: SearchQuery) -> tuple[list[Content], int]:
        if not query.has_keyword:
            return await self._from_store(query)

        if not await self._index.is_available():
            log.warning("Full-text index unavailable – searching the store for %r", query.keyword)
            return await self._from_store(query)

        try:
            log.info("Searching the full-text index for %r", query.keyword)
            return await self._index.search(
                query.keyword.strip(), query.content_type, query.sort_by, query.page, query.page_size
            )
        except Exception:
            log.warning("Full-text search failed – falling back to the store", exc_info=True)
            return await self._from_store(query)

    async def _from_store(self, query: SearchQuery) -> tuple[list[Content], int]:
        return await self._repository.search(
            query.keyword, query.content_type, query.sort_by, query.page, query.page_size
        )
