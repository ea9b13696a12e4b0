import asyncio

import pytest

from process.search import SearchQuery, SearchRouter, total_pages
from storage.fulltext import SearchIndexError
from storage.models import ContentType, SortBy


class _Backend:
    def __init__(self, name, available=True, error=None):
        self.name = name
        self.available = available
        self.error = error
        self.calls = []

    async def is_available(self):
        return self.available

    async def search(self, keyword, content_type, sort_by, page, page_size):
        self.calls.append((keyword, content_type, sort_by, page, page_size))
        if self.error is not None:
            raise self.error
        return [self.name], 1


def _route(query, index=None):
    store = _Backend("store")
    index = index or _Backend("index")
    page = asyncio.run(SearchRouter(store, index).search(query))
    return page, store, index


@pytest.mark.parametrize("keyword", [None, "", "   "])
def test_blank_keyword_goes_to_the_store(keyword):
    page, store, index = _route(SearchQuery(keyword=keyword))

    assert page.items == ["store"]
    assert index.calls == []


def test_keyword_uses_the_index():
    query = SearchQuery(keyword=" docker ", content_type=ContentType.VIDEO, sort_by=SortBy.RELEVANCE, page=2, page_size=5)
    page, store, index = _route(query)

    assert page.items == ["index"]
    assert index.calls == [("docker", ContentType.VIDEO, SortBy.RELEVANCE, 2, 5)]
    assert store.calls == []


def test_unavailable_index_falls_back_to_the_store():
    page, store, index = _route(SearchQuery(keyword="docker"), _Backend("index", available=False))

    assert page.items == ["store"]
    assert index.calls == []


def test_index_error_falls_back_to_the_store():
    page, store, _ = _route(SearchQuery(keyword="docker"), _Backend("index", error=SearchIndexError("down")))

    assert page.items == ["store"]
    assert store.calls[0][0] == "docker"


def test_page_metadata():
    page, _, _ = _route(SearchQuery(page=3, page_size=4))

    assert (page.total_count, page.page, page.page_size, page.total_pages) == (1, 3, 4, 1)


@pytest.mark.parametrize(
    "total, size, expected",
    [(0, 10, 0), (5, 2, 3), (10, 5, 2), (11, 5, 3), (1, 50, 1)],
)
def test_total_pages(total, size, expected):
    assert total_pages(total, size) == expected


def test_page_to_dict(make_content):
    item = make_content("a1")
    store = _Backend("store")

    async def search(*args):
        return [item], 1

    store.search = search
    page = asyncio.run(SearchRouter(store, _Backend("index")).search(SearchQuery()))

    body = page.to_dict()
    assert body["items"][0]["id"] == item.id
    assert body["total_pages"] == 1


@pytest.mark.parametrize("keyword, expected", [("café", 1), ('", "', 0)])
def test_store_fallback_matches_tags_individually(store, make_content, keyword, expected):
    asyncio.run(
        store.upsert_many(
            [
                make_content("1", title="Plain", tags=["café"]),
                make_content("2", title="Other", tags=["go", "rust"]),
            ]
        )
    )
    router = SearchRouter(store, _Backend("index", available=False))

    page = asyncio.run(router.search(SearchQuery(keyword=keyword)))

    assert page.total_count == expected
