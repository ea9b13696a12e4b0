"""Full-text index over content titles and tags (SQLite FTS5).

The index is a derived projection of the store: documents are keyed by
content id and carry the full serialized item, so search results never need
a round trip to the store.  It can be dropped and rebuilt at any time.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from typing import Optional, Sequence

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from storage.models import Content, ContentType, SortBy, as_utc

log = logging.getLogger(__name__)

INDEX_TABLE = "content_index"
_CHUNK = 500

# bm25 weights follow the column order of the virtual table
_BM25 = f"bm25({INDEX_TABLE}, 0.0, 5.0, 3.0, 0.0, 0.0, 0.0, 0.0)"

_ORDER_BY = {
    SortBy.POPULARITY: "CAST(final_score AS REAL) DESC, id",
    SortBy.RECENCY: "published_at DESC, id",
    SortBy.RELEVANCE: f"{_BM25}, CAST(final_score AS REAL) DESC, id",
}

_CREATE = f"""
CREATE VIRTUAL TABLE IF NOT EXISTS {INDEX_TABLE} USING fts5(
    id UNINDEXED,
    title,
    tags,
    content_type UNINDEXED,
    final_score UNINDEXED,
    published_at UNINDEXED,
    payload UNINDEXED,
    tokenize = 'unicode61 remove_diacritics 2'
)
"""


class SearchIndexError(RuntimeError):
    """The full-text index could not serve or accept documents."""


def get_index_url(settings: dict | None = None) -> str:
    url = os.getenv("INDEX_URL") or (settings or {}).get("search", {}).get("index_url")
    return url or "sqlite:///content_index.db"


def match_expression(keyword: str) -> str:
    """Prefix-match every word of *keyword*; all words must match."""
    terms = re.findall(r"\w+", keyword.lower())
    if not terms:
        raise SearchIndexError(f"No indexable terms in {keyword!r}")
    return " ".join(f'"{t}"*' for t in terms)


def _sortable_time(content: Content) -> str:
    return as_utc(content.published_at).strftime("%Y-%m-%dT%H:%M:%S.%f")


class FullTextIndex:
    def __init__(self, url: str):
        if not url.startswith("sqlite"):
            raise ValueError(f"Full-text index requires an SQLite URL, got {url!r}")
        self._engine = create_engine(url, connect_args={"check_same_thread": False})

    async def ensure_index(self) -> None:
        try:
            await asyncio.to_thread(self._ensure)
        except SQLAlchemyError as exc:
            raise SearchIndexError("Could not create the full-text index") from exc

    async def is_available(self) -> bool:
        """Liveness plus index-existence check; never raises."""
        try:
            return await asyncio.to_thread(self._exists)
        except SQLAlchemyError:
            log.debug("Full-text index probe failed", exc_info=True)
            return False

    async def index_many(self, items: Sequence[Content]) -> None:
        if not items:
            return
        try:
            await asyncio.to_thread(self._index_many, list(items))
        except SQLAlchemyError as exc:
            raise SearchIndexError(f"Indexing {len(items)} items failed") from exc
        log.info("Indexed %d items in the full-text index", len(items))

    async def search(
        self,
        keyword: str,
        content_type: Optional[ContentType],
        sort_by: SortBy,
        page: int,
        page_size: int,
    ) -> tuple[list[Content], int]:
        match = match_expression(keyword)
        try:
            return await asyncio.to_thread(
                self._search, match, content_type, sort_by, page, page_size
            )
        except SQLAlchemyError as exc:
            raise SearchIndexError(f"Full-text search for {keyword!r} failed") from exc

    # ── blocking implementations ──

    def _ensure(self) -> None:
        with self._engine.begin() as conn:
            conn.execute(text(_CREATE))

    def _exists(self) -> bool:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
                {"name": INDEX_TABLE},
            ).first()
            return row is not None

    def _index_many(self, items: list[Content]) -> None:
        docs = {c.id: c for c in items}
        ids = list(docs)
        delete = text(f"DELETE FROM {INDEX_TABLE} WHERE id IN :ids").bindparams(
            bindparam("ids", expanding=True)
        )
        insert = text(
            f"INSERT INTO {INDEX_TABLE} "
            "(id, title, tags, content_type, final_score, published_at, payload) "
            "VALUES (:id, :title, :tags, :content_type, :final_score, :published_at, :payload)"
        )
        with self._engine.begin() as conn:
            conn.execute(text(_CREATE))
            for start in range(0, len(ids), _CHUNK):
                conn.execute(delete, {"ids": ids[start : start + _CHUNK]})
            conn.execute(
                insert,
                [
                    {
                        "id": c.id,
                        "title": c.title,
                        "tags": " ".join(c.tags),
                        "content_type": c.content_type.value,
                        "final_score": c.final_score,
                        "published_at": _sortable_time(c),
                        "payload": json.dumps(c.to_dict(), ensure_ascii=False),
                    }
                    for c in docs.values()
                ],
            )

    def _search(self, match, content_type, sort_by, page, page_size):
        where = f"{INDEX_TABLE} MATCH :match"
        params: dict = {"match": match}
        if content_type is not None:
            where += " AND content_type = :content_type"
            params["content_type"] = content_type.value

        with self._engine.connect() as conn:
            total = conn.execute(
                text(f"SELECT count(*) FROM {INDEX_TABLE} WHERE {where}"), params
            ).scalar_one()
            rows = conn.execute(
                text(
                    f"SELECT payload FROM {INDEX_TABLE} WHERE {where} "
                    f"ORDER BY {_ORDER_BY[sort_by]} LIMIT :limit OFFSET :offset"
                ),
                {**params, "limit": page_size, "offset": (page - 1) * page_size},
            ).all()
        return [_decode(r.payload) for r in rows], int(total)


def _decode(payload: str) -> Content:
    try:
        return Content.from_dict(json.loads(payload))
    except (KeyError, TypeError, ValueError) as exc:
        raise SearchIndexError(f"Corrupt index document: {exc}") from exc
