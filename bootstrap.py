"""Settings, logging and service wiring shared by the CLI and the web app."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import yaml
from dotenv import load_dotenv

from ingest.registry import ProviderRegistry, build_registry
from process.events import CacheInvalidationHandler, EventBus, IndexRebuildHandler
from process.search import SearchRouter
from process.sync import SyncOrchestrator
from storage.cache import MemoryCache
from storage.cached_repository import CachedContentRepository
from storage.db import ContentRepository, get_database_url, init_db
from storage.fulltext import FullTextIndex, get_index_url

PROJECT_ROOT = Path(__file__).resolve().parent
CONFIG_DIR = PROJECT_ROOT / "config"

log = logging.getLogger("content_search")


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def load_settings(path: str | Path | None = None) -> dict:
    """Read the YAML settings, after loading .env so env overrides are visible."""
    load_dotenv(PROJECT_ROOT / ".env", override=False)
    path = Path(path or os.getenv("SETTINGS_PATH") or CONFIG_DIR / "settings.yaml")
    with open(path, encoding="utf-8") as f:
        settings = yaml.safe_load(f) or {}

    interval = os.getenv("SYNC_INTERVAL_MINUTES")
    if interval:
        settings.setdefault("sync", {})["interval_minutes"] = float(interval)
    return settings


@dataclass
class Services:
    settings: dict
    registry: ProviderRegistry
    repository: CachedContentRepository
    index: FullTextIndex
    cache: MemoryCache
    events: EventBus
    orchestrator: SyncOrchestrator
    search: SearchRouter


def build_services(settings: dict) -> Services:
    """Wire one instance of every component; the orchestrator is shared by all triggers."""
    cache_cfg = settings.get("cache", {})
    sync_cfg = settings.get("sync", {})

    store = ContentRepository(init_db(get_database_url(settings)))
    cache = MemoryCache(max_entries=int(cache_cfg.get("max_entries", 10_000)))
    repository = CachedContentRepository(
        store,
        cache,
        search_ttl=timedelta(minutes=cache_cfg.get("search_ttl_minutes", 5)),
        content_ttl=timedelta(minutes=cache_cfg.get("content_ttl_minutes", 10)),
    )
    index = FullTextIndex(get_index_url(settings))

    events = EventBus()
    events.subscribe(CacheInvalidationHandler(cache))
    events.subscribe(IndexRebuildHandler(store, index))

    registry = build_registry(settings)
    orchestrator = SyncOrchestrator(
        registry,
        repository,
        index,
        events,
        adjust_dates_to_now=bool(sync_cfg.get("adjust_dates_to_now", False)),
    )
    return Services(
        settings=settings,
        registry=registry,
        repository=repository,
        index=index,
        cache=cache,
        events=events,
        orchestrator=orchestrator,
        search=SearchRouter(repository, index),
    )
