"""Database helpers – SQLite for MVP, easy swap to Postgres."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional, Sequence

from sqlalchemy import case, create_engine, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storage.models import Base, Content, ContentRow, ContentTagRow, ContentType, SortBy, as_utc

log = logging.getLogger(__name__)

_IN_CHUNK = 500  # keep IN (...) lists under SQLite's bound-parameter limit


class PersistenceError(RuntimeError):
    """The durable store rejected a read or write."""


# ── Engine / session factory ─────────────────────────────────────────


def get_database_url(settings: dict | None = None) -> str:
    """Return the DB URL.  Postgres swap: set DATABASE_URL env var."""
    url = os.getenv("DATABASE_URL") or (settings or {}).get("database", {}).get("url")
    if url:
        return url
    db_path = os.getenv("SQLITE_PATH", "content_search.db")
    return f"sqlite:///{db_path}"


def init_db(url: str) -> sessionmaker[Session]:
    """Create engine, session factory, and tables (idempotent)."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(url, echo=False, connect_args=connect_args)
    Base.metadata.create_all(engine)
    log.info("Database initialised (%s)", url.split("///")[0] + "///…")
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a transactional session scope."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ── Row <-> Content mapping ──────────────────────────────────────────


def row_to_content(row: ContentRow) -> Content:
    return Content(
        id=row.id,
        external_id=row.external_id,
        source_provider=row.source_provider,
        title=row.title,
        content_type=ContentType(row.content_type),
        published_at=as_utc(row.published_at),
        tags=[t.tag for t in row.tag_rows],
        views=row.views,
        likes=row.likes,
        duration=row.duration,
        reading_time=row.reading_time,
        reactions=row.reactions,
        comments=row.comments,
        final_score=row.final_score,
        last_synced_at=as_utc(row.last_synced_at) if row.last_synced_at else None,
    )


def _apply(row: ContentRow, item: Content) -> None:
    """Overwrite every mutable column of *row* from *item*."""
    row.title = item.title
    row.content_type = item.content_type.value
    row.views = item.views
    row.likes = item.likes
    row.duration = item.duration
    row.reading_time = item.reading_time
    row.reactions = item.reactions
    row.comments = item.comments
    row.published_at = as_utc(item.published_at)
    # keep unchanged tag rows so the (content_id, tag) key is never re-inserted
    current = {t.tag: t for t in row.tag_rows}
    row.tag_rows = [current.get(tag) or ContentTagRow(tag=tag) for tag in sorted(set(item.tags))]
    row.final_score = item.final_score
    row.last_synced_at = as_utc(item.last_synced_at or dt.datetime.now(dt.timezone.utc))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _order_by(sort_by: SortBy, keyword: str) -> tuple:
    if sort_by is SortBy.RECENCY:
        return (ContentRow.published_at.desc(), ContentRow.id)
    if sort_by is SortBy.RELEVANCE and keyword:
        kw = keyword.lower()
        title = func.lower(ContentRow.title)
        match_rank = case(
            (title == kw, 2),
            (title.startswith(kw, autoescape=True), 1),
            else_=0,
        )
        return (match_rank.desc(), ContentRow.final_score.desc(), ContentRow.id)
    # popularity, and relevance without a keyword
    return (ContentRow.final_score.desc(), ContentRow.id)


# ── Repository ───────────────────────────────────────────────────────


class ContentRepository:
    """Authoritative store for Content, upserted by (external_id, source_provider)."""

    def __init__(self, factory: sessionmaker[Session]):
        self._factory = factory

    async def search(
        self,
        keyword: Optional[str],
        content_type: Optional[ContentType],
        sort_by: SortBy,
        page: int,
        page_size: int,
    ) -> tuple[list[Content], int]:
        try:
            return await asyncio.to_thread(
                self._search, keyword, content_type, sort_by, page, page_size
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Content search failed") from exc

    async def get_by_id(self, item_id: str) -> Optional[Content]:
        try:
            return await asyncio.to_thread(self._get_by_id, item_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Lookup of {item_id} failed") from exc

    async def upsert_many(self, items: Sequence[Content]) -> None:
        if not items:
            return
        try:
            await asyncio.to_thread(self._upsert_many, list(items))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Upsert of {len(items)} items failed") from exc

    async def list_all(self) -> list[Content]:
        try:
            return await asyncio.to_thread(self._list_all)
        except SQLAlchemyError as exc:
            raise PersistenceError("Listing contents failed") from exc

    # ── blocking implementations (run in a worker thread) ──

    def _search(self, keyword, content_type, sort_by, page, page_size):
        kw = (keyword or "").strip()
        with session_scope(self._factory) as session:
            query = session.query(ContentRow)
            if kw:
                pattern = f"%{_escape_like(kw)}%"
                query = query.filter(
                    or_(
                        ContentRow.title.ilike(pattern, escape="\\"),
                        ContentRow.tag_rows.any(ContentTagRow.tag.ilike(pattern, escape="\\")),
                    )
                )
            if content_type is not None:
                query = query.filter(ContentRow.content_type == content_type.value)

            total = query.count()
            rows = (
                query.order_by(*_order_by(sort_by, kw))
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return [row_to_content(r) for r in rows], total

    def _get_by_id(self, item_id: str) -> Optional[Content]:
        with session_scope(self._factory) as session:
            row = session.get(ContentRow, item_id)
            return row_to_content(row) if row else None

    def _list_all(self) -> list[Content]:
        with session_scope(self._factory) as session:
            return [row_to_content(r) for r in session.query(ContentRow).all()]

    def _upsert_many(self, items: list[Content]) -> None:
        # last occurrence wins if a batch repeats a key
        latest = {(c.external_id, c.source_provider): c for c in items}
        external_ids = sorted({key[0] for key in latest})

        inserted = updated = 0
        with session_scope(self._factory) as session:
            existing: dict[tuple[str, str], ContentRow] = {}
            for start in range(0, len(external_ids), _IN_CHUNK):
                chunk = external_ids[start : start + _IN_CHUNK]
                for row in session.query(ContentRow).filter(ContentRow.external_id.in_(chunk)):
                    existing[(row.external_id, row.source_provider)] = row

            for key, item in latest.items():
                row = existing.get(key)
                if row is None:
                    row = ContentRow(
                        id=item.id,
                        external_id=item.external_id,
                        source_provider=item.source_provider,
                    )
                    session.add(row)
                    inserted += 1
                else:
                    updated += 1
                _apply(row, item)
        log.info("Upserted %d items (%d new, %d updated)", inserted + updated, inserted, updated)
