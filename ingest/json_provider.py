"""Structured-document provider – JSON feed with typed fields."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from dateutil.parser import isoparse

from ingest.http import DEFAULT_TIMEOUT, FetchError, fetch
from storage.models import Content, ContentType, as_utc, content_id

log = logging.getLogger(__name__)


class JsonContentProvider:
    """Adapter for feeds shaped like ``{"contents": [...], "pagination": {...}}``."""

    def __init__(self, url: str, provider_name: str = "Provider1_JSON", timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.provider_name = provider_name
        self.timeout = timeout

    async def fetch_all(self) -> list[Content]:
        return await asyncio.to_thread(self._fetch_all)

    def _fetch_all(self) -> list[Content]:
        log.info("Fetching contents from %s", self.provider_name)
        resp = fetch(self.provider_name, self.url, timeout=self.timeout)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(self.provider_name, f"invalid JSON: {exc}") from exc

        raw_items = payload.get("contents") if isinstance(payload, dict) else None
        if not isinstance(raw_items, list):
            raise FetchError(self.provider_name, "response has no 'contents' list")

        synced_at = datetime.now(timezone.utc)
        try:
            items = [self._to_content(raw, synced_at) for raw in raw_items]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise FetchError(self.provider_name, f"malformed item: {exc}") from exc

        log.info("%s → %d items", self.provider_name, len(items))
        return items

    def _to_content(self, raw: dict[str, Any], synced_at: datetime) -> Content:
        external_id = str(raw["id"])
        is_video = str(raw.get("type", "")).lower() == "video"
        metrics = raw.get("metrics") or {}

        content = Content(
            id=content_id(self.provider_name, external_id),
            external_id=external_id,
            source_provider=self.provider_name,
            title=str(raw.get("title") or "").strip(),
            content_type=ContentType.VIDEO if is_video else ContentType.ARTICLE,
            published_at=as_utc(isoparse(raw["published_at"])),
            tags=[str(t) for t in raw.get("tags") or []],
            last_synced_at=synced_at,
        )
        if is_video:
            content.views = _opt_int(metrics.get("views"))
            content.likes = _opt_int(metrics.get("likes"))
            content.duration = metrics.get("duration")
        else:
            content.reading_time = _opt_int(metrics.get("reading_time"))
            content.reactions = _opt_int(metrics.get("reactions"))
            content.comments = _opt_int(metrics.get("comments"))
        return content


def _opt_int(value: Any) -> int | None:
    return None if value is None else int(value)
