import asyncio
from datetime import timedelta

import pytest

from storage.fulltext import FullTextIndex, SearchIndexError, match_expression
from storage.models import ContentType, SortBy

from conftest import REFERENCE_TIME


def _search(index, keyword, content_type=None, sort_by=SortBy.POPULARITY, page=1, page_size=10):
    return asyncio.run(index.search(keyword, content_type, sort_by, page, page_size))


@pytest.fixture
def filled_index(fts_index, make_content):
    asyncio.run(fts_index.ensure_index())
    asyncio.run(
        fts_index.index_many(
            [
                make_content(
                    "v1",
                    content_type=ContentType.VIDEO,
                    title="Docker Deep Dive",
                    tags=["devops", "containers"],
                    final_score=60.0,
                    published_at=REFERENCE_TIME - timedelta(days=20),
                ),
                make_content(
                    "a1",
                    title="Kubernetes Networking",
                    tags=["docker", "devops"],
                    final_score=300.0,
                    published_at=REFERENCE_TIME - timedelta(days=2),
                ),
                make_content("a2", title="Café Culture", tags=["travel"], final_score=5.0),
                make_content("a3", title="Python Packaging", tags=["python"], final_score=80.0),
            ]
        )
    )
    return fts_index


def test_match_expression_prefix_matches_every_term():
    assert match_expression("Docker  deep") == '"docker"* "deep"*'


def test_match_expression_strips_operators():
    assert match_expression('go OR "rust"') == '"go"* "or"* "rust"*'


def test_match_expression_rejects_empty_terms():
    with pytest.raises(SearchIndexError):
        match_expression("  --  ")


def test_non_sqlite_url_is_rejected():
    with pytest.raises(ValueError):
        FullTextIndex("postgresql://localhost/content")


def test_availability_follows_index_creation(fts_index):
    assert asyncio.run(fts_index.is_available()) is False
    asyncio.run(fts_index.ensure_index())
    assert asyncio.run(fts_index.is_available()) is True


def test_keyword_matches_title_and_tags(filled_index):
    items, total = _search(filled_index, "docker")

    assert total == 2
    assert {c.external_id for c in items} == {"v1", "a1"}


def test_keyword_prefix_match(filled_index):
    items, _ = _search(filled_index, "kube")
    assert [c.external_id for c in items] == ["a1"]


def test_diacritics_are_folded(filled_index):
    items, _ = _search(filled_index, "cafe")
    assert [c.external_id for c in items] == ["a2"]


def test_type_filter(filled_index):
    items, total = _search(filled_index, "devops", content_type=ContentType.VIDEO)
    assert total == 1
    assert items[0].content_type is ContentType.VIDEO


def test_popularity_and_recency_orders(filled_index):
    by_score, _ = _search(filled_index, "docker", sort_by=SortBy.POPULARITY)
    by_date, _ = _search(filled_index, "docker", sort_by=SortBy.RECENCY)

    assert [c.external_id for c in by_score] == ["a1", "v1"]
    assert [c.external_id for c in by_date] == ["a1", "v1"]


def test_relevance_weights_title_over_tags(filled_index):
    items, _ = _search(filled_index, "docker", sort_by=SortBy.RELEVANCE)
    assert [c.external_id for c in items] == ["v1", "a1"]


def test_results_carry_the_full_item(filled_index):
    items, _ = _search(filled_index, "deep")

    video = items[0]
    assert video.title == "Docker Deep Dive"
    assert video.tags == ["devops", "containers"]
    assert video.final_score == 60.0
    assert video.published_at == REFERENCE_TIME - timedelta(days=20)


def test_reindexing_replaces_documents(filled_index, make_content):
    asyncio.run(filled_index.index_many([make_content("a3", title="Rust Packaging", final_score=1.0)]))

    _, python_total = _search(filled_index, "python")
    items, _ = _search(filled_index, "rust")
    assert python_total == 0
    assert [c.title for c in items] == ["Rust Packaging"]


def test_pagination(filled_index):
    page1, total = _search(filled_index, "devops", page=1, page_size=1)
    page2, _ = _search(filled_index, "devops", page=2, page_size=1)

    assert total == 2
    assert [c.external_id for c in page1 + page2] == ["a1", "v1"]


def test_no_match_returns_empty_page(filled_index):
    assert _search(filled_index, "haskell") == ([], 0)
