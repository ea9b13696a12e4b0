"""Tree-document provider – XML feed with string-typed fields."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from dateutil import parser as dateutil_parser

from ingest.http import DEFAULT_TIMEOUT, FetchError, fetch
from storage.models import Content, ContentType, as_utc, content_id

log = logging.getLogger(__name__)


def _text(elem: ET.Element | None, tag: str) -> str | None:
    if elem is None:
        return None
    child = elem.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _parse_int(value: str | None) -> int | None:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _parse_published(raw: str | None) -> datetime | None:
    """Parse "2024-03-15" or a full ISO string; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        return as_utc(dateutil_parser.parse(raw))
    except (ValueError, OverflowError):
        return None


class XmlContentProvider:
    """Adapter for ``<feed><items><item>…</item></items><meta/></feed>`` feeds."""

    def __init__(self, url: str, provider_name: str = "Provider2_XML", timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.provider_name = provider_name
        self.timeout = timeout

    async def fetch_all(self) -> list[Content]:
        return await asyncio.to_thread(self._fetch_all)

    def _fetch_all(self) -> list[Content]:
        log.info("Fetching contents from %s", self.provider_name)
        resp = fetch(self.provider_name, self.url, timeout=self.timeout)
        try:
            root = ET.fromstring(resp.content)
        except ET.ParseError as exc:
            raise FetchError(self.provider_name, f"invalid XML: {exc}") from exc

        if root.tag != "feed":
            raise FetchError(self.provider_name, f"unexpected root element <{root.tag}>")

        synced_at = datetime.now(timezone.utc)
        items: list[Content] = []
        for elem in root.iterfind("items/item"):
            item = self._to_content(elem, synced_at)
            if item is not None:
                items.append(item)

        log.info("%s → %d items", self.provider_name, len(items))
        return items

    def _to_content(self, elem: ET.Element, synced_at: datetime) -> Content | None:
        """Convert one <item>, or None when it cannot be placed in time."""
        external_id = _text(elem, "id")
        if not external_id:
            log.warning("%s: skipping item without id", self.provider_name)
            return None

        published = _parse_published(_text(elem, "publication_date"))
        if published is None:
            log.warning(
                "%s: skipping item %s with unparsable publication_date %r",
                self.provider_name,
                external_id,
                _text(elem, "publication_date"),
            )
            return None

        is_video = (_text(elem, "type") or "").lower() == "video"
        stats = elem.find("stats")

        content = Content(
            id=content_id(self.provider_name, external_id),
            external_id=external_id,
            source_provider=self.provider_name,
            title=_text(elem, "headline") or "",
            content_type=ContentType.VIDEO if is_video else ContentType.ARTICLE,
            published_at=published,
            tags=[c.text.strip() for c in elem.iterfind("categories/category") if c.text],
            last_synced_at=synced_at,
        )
        if is_video:
            content.views = _parse_int(_text(stats, "views"))
            content.likes = _parse_int(_text(stats, "likes"))
            content.duration = _text(stats, "duration")
        else:
            content.reading_time = _parse_int(_text(stats, "reading_time"))
            content.reactions = _parse_int(_text(stats, "reactions"))
            content.comments = _parse_int(_text(stats, "comments"))
        return content
