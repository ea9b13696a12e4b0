import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storage.db import ContentRepository, init_db  # noqa: E402
from storage.fulltext import FullTextIndex  # noqa: E402
from storage.models import Content, ContentType, content_id  # noqa: E402

REFERENCE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_content():
    """Factory for Content with sensible defaults; keyword args override fields."""

    def _make(external_id="1", provider="Provider1_JSON", content_type=ContentType.ARTICLE, **fields):
        base = dict(
            id=content_id(provider, external_id),
            external_id=external_id,
            source_provider=provider,
            title=f"Item {external_id}",
            content_type=content_type,
            published_at=REFERENCE_TIME - timedelta(days=3),
            tags=[],
            last_synced_at=REFERENCE_TIME,
        )
        if content_type is ContentType.VIDEO:
            base.update(views=1000, likes=10, duration="5:00")
        else:
            base.update(reading_time=5, reactions=50, comments=3)
        base.update(fields)
        return Content(**base)

    return _make


@pytest.fixture
def store(tmp_path):
    return ContentRepository(init_db(f"sqlite:///{tmp_path / 'store.db'}"))


def _fts5_supported() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE probe USING fts5(x)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


@pytest.fixture
def fts_index(tmp_path):
    if not _fts5_supported():
        pytest.skip("SQLite build lacks FTS5")
    return FullTextIndex(f"sqlite:///{tmp_path / 'index.db'}")
