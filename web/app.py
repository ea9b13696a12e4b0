"""FastAPI web server – content search and sync trigger API.

Run:
    python -m web.app                 # or
    uvicorn web.app:app --reload
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request

from bootstrap import Services, build_services, load_settings, setup_logging
from process.scheduler import start_scheduler
from process.search import SearchQuery
from storage.db import PersistenceError
from storage.fulltext import SearchIndexError
from storage.models import ContentType, SortBy

PROJECT_ROOT = Path(__file__).resolve().parent.parent

log = logging.getLogger(__name__)

# "text" is what provider 2 calls articles
_TYPE_ALIASES = {
    "video": ContentType.VIDEO,
    "article": ContentType.ARTICLE,
    "text": ContentType.ARTICLE,
}


def _parse_type(value: Optional[str]) -> Optional[ContentType]:
    return _TYPE_ALIASES.get((value or "").strip().lower())


def _parse_sort(value: Optional[str]) -> SortBy:
    try:
        return SortBy((value or "").strip().lower())
    except ValueError:
        return SortBy.POPULARITY


async def _startup_sync(services: Services) -> None:
    try:
        outcome = await services.orchestrator.sync_all()
        log.info("Startup sync finished: %d items processed", outcome.processed)
    except Exception:
        log.exception("Startup sync failed")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is not None:
        # services injected by the caller (tests); nothing to start
        yield
        return

    setup_logging()
    services = build_services(load_settings())
    app.state.services = services

    try:
        await services.index.ensure_index()
    except SearchIndexError:
        log.warning("Full-text index not ready – keyword search will use the store", exc_info=True)

    sync_cfg = services.settings.get("sync", {})
    startup_task = None
    if sync_cfg.get("on_startup", True):
        startup_task = asyncio.create_task(_startup_sync(services))
    scheduler = start_scheduler(services.orchestrator, float(sync_cfg.get("interval_minutes", 30)))

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        if startup_task is not None and not startup_task.done():
            startup_task.cancel()
        await services.events.drain()


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="Content Search", version="1.0.0", lifespan=_lifespan)
    app.state.services = services

    def _services(request: Request) -> Services:
        return request.app.state.services

    # ── API: search ──────────────────────────────────────────────────

    @app.get("/api/search")
    async def search_contents(
        request: Request,
        keyword: Optional[str] = None,
        type: Optional[str] = None,
        sort_by: str = "popularity",
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1),
    ):
        """Search and filter content from every provider."""
        services = _services(request)
        search_cfg = services.settings.get("search", {})
        max_page_size = int(search_cfg.get("max_page_size", 50))
        if page_size is None:
            page_size = int(search_cfg.get("default_page_size", 10))
        if page_size > max_page_size:
            raise HTTPException(status_code=422, detail=f"page_size must be at most {max_page_size}")

        query = SearchQuery(
            keyword=keyword,
            content_type=_parse_type(type),
            sort_by=_parse_sort(sort_by),
            page=page,
            page_size=page_size,
        )
        try:
            result = await asyncio.wait_for(
                services.search.search(query),
                timeout=float(search_cfg.get("timeout_seconds", 10)),
            )
        except asyncio.TimeoutError:
            raise HTTPException(status_code=504, detail="Search timed out") from None
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return result.to_dict()

    # ── API: one item ────────────────────────────────────────────────

    @app.get("/api/contents/{item_id}")
    async def get_content(request: Request, item_id: str):
        """Return a single content item by id."""
        try:
            item = await _services(request).repository.get_by_id(item_id)
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if item is None:
            raise HTTPException(status_code=404, detail=f"No content with id {item_id}")
        return item.to_dict()

    # ── API: providers / sync ────────────────────────────────────────

    @app.get("/api/providers")
    async def list_providers(request: Request):
        services = _services(request)
        return {
            "providers": services.registry.names(),
            "sync_running": services.orchestrator.running,
        }

    @app.api_route("/api/providers/sync", methods=["GET", "POST"])
    async def sync_providers(request: Request):
        """Fetch, score and store content from every provider (waits for a running sync)."""
        services = _services(request)
        timeout = float(services.settings.get("sync", {}).get("timeout_seconds", 120))
        try:
            outcome = await asyncio.wait_for(services.orchestrator.sync_all(), timeout=timeout)
        except asyncio.TimeoutError:
            raise HTTPException(status_code=504, detail="Sync timed out") from None
        except PersistenceError as exc:
            log.error("Manual sync failed: %s", exc)
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"processed": outcome.processed, "skipped": outcome.skipped}

    return app


app = create_app()


# ── Run directly ─────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    sys.path.insert(0, str(PROJECT_ROOT))
    uvicorn.run("web.app:app", host="0.0.0.0", port=8000, reload=True)
