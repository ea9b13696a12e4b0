import asyncio

import pytest
from fastapi.testclient import TestClient

from bootstrap import Services
from ingest.registry import ProviderRegistry
from process.events import CacheInvalidationHandler, EventBus
from process.search import SearchRouter
from process.sync import SyncOrchestrator
from storage.cache import MemoryCache
from storage.cached_repository import CachedContentRepository
from storage.db import PersistenceError
from storage.models import ContentType
from web.app import create_app

SETTINGS = {
    "sync": {"timeout_seconds": 5},
    "search": {"timeout_seconds": 5, "max_page_size": 50},
}


class _Provider:
    def __init__(self, name, items):
        self.provider_name = name
        self.items = items

    async def fetch_all(self):
        return list(self.items)


class _OfflineIndex:
    async def is_available(self):
        return False

    async def index_many(self, items):
        pass


def _services(store, providers):
    cache = MemoryCache()
    repository = CachedContentRepository(store, cache)
    index = _OfflineIndex()
    events = EventBus()
    events.subscribe(CacheInvalidationHandler(cache))
    registry = ProviderRegistry(providers)
    return Services(
        settings=SETTINGS,
        registry=registry,
        repository=repository,
        index=index,
        cache=cache,
        events=events,
        orchestrator=SyncOrchestrator(registry, repository, index, events),
        search=SearchRouter(repository, index),
    )


@pytest.fixture
def catalogue(make_content):
    return [
        make_content("v1", content_type=ContentType.VIDEO, title="Go Programming Tutorial", views=15000, likes=1200),
        make_content("a1", title="Clean Architecture", tags=["go"], reading_time=8, reactions=450),
        make_content("a2", provider="Provider2_XML", title="Docker Deep Dive", reading_time=3, reactions=2),
    ]


@pytest.fixture
def client(store, catalogue):
    providers = [
        _Provider("Provider1_JSON", catalogue[:2]),
        _Provider("Provider2_XML", catalogue[2:]),
    ]
    services = _services(store, providers)
    with TestClient(create_app(services)) as http:
        yield http, services


def test_search_before_sync_is_empty(client):
    http, _ = client

    resp = http.get("/api/search")

    assert resp.status_code == 200
    assert resp.json() == {"items": [], "total_count": 0, "page": 1, "page_size": 10, "total_pages": 0}


def test_sync_then_search(client):
    http, _ = client

    sync = http.post("/api/providers/sync")
    assert sync.status_code == 200
    assert sync.json() == {"processed": 3, "skipped": False}

    body = http.get("/api/search", params={"sort_by": "popularity"}).json()
    assert body["total_count"] == 3
    scores = [item["final_score"] for item in body["items"]]
    assert scores == sorted(scores, reverse=True)


def test_sync_accepts_get(client):
    http, _ = client
    assert http.get("/api/providers/sync").json()["processed"] == 3


def test_keyword_and_type_filters(client):
    http, _ = client
    http.post("/api/providers/sync")

    body = http.get("/api/search", params={"keyword": "go", "type": "article"}).json()

    assert [item["external_id"] for item in body["items"]] == ["a1"]


def test_unknown_type_and_sort_are_ignored(client):
    http, _ = client
    http.post("/api/providers/sync")

    body = http.get("/api/search", params={"type": "podcast", "sort_by": "random"}).json()

    assert body["total_count"] == 3


def test_pagination_params(client):
    http, _ = client
    http.post("/api/providers/sync")

    body = http.get("/api/search", params={"page": 2, "page_size": 2}).json()

    assert body["page"] == 2
    assert body["total_pages"] == 2
    assert len(body["items"]) == 1


@pytest.mark.parametrize("params", [{"page": 0}, {"page_size": 0}, {"page_size": 51}])
def test_invalid_paging_is_rejected(client, params):
    http, _ = client
    assert http.get("/api/search", params=params).status_code == 422


def test_cache_is_refreshed_after_sync(client):
    http, services = client
    assert http.get("/api/search").json()["total_count"] == 0

    http.post("/api/providers/sync")
    http.portal.call(services.events.drain)

    assert http.get("/api/search").json()["total_count"] == 3


def test_get_content_by_id(client, catalogue):
    http, _ = client
    http.post("/api/providers/sync")

    resp = http.get(f"/api/contents/{catalogue[0].id}")

    assert resp.status_code == 200
    assert resp.json()["title"] == "Go Programming Tutorial"
    assert resp.json()["content_type"] == "video"


def test_missing_content_is_404(client):
    http, _ = client
    assert http.get("/api/contents/does-not-exist").status_code == 404


def test_providers_listing(client):
    http, _ = client

    body = http.get("/api/providers").json()

    assert body == {"providers": ["Provider1_JSON", "Provider2_XML"], "sync_running": False}


def test_store_outage_maps_to_503(client, monkeypatch):
    http, services = client

    async def broken(*args, **kwargs):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(services.search, "search", broken)
    monkeypatch.setattr(services.repository, "get_by_id", broken)

    assert http.get("/api/search").status_code == 503
    assert http.get("/api/contents/abc").status_code == 503


def test_search_timeout_maps_to_504(client, monkeypatch):
    http, services = client
    services.settings = {**SETTINGS, "search": {"timeout_seconds": 0.01, "max_page_size": 50}}

    async def slow(query):
        await asyncio.sleep(1)

    monkeypatch.setattr(services.search, "search", slow)

    assert http.get("/api/search").status_code == 504


def test_sync_persistence_failure_maps_to_503(client, monkeypatch):
    http, services = client

    async def broken(items):
        raise PersistenceError("disk full")

    monkeypatch.setattr(services.repository, "upsert_many", broken)

    assert http.post("/api/providers/sync").status_code == 503

