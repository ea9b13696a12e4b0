"""Key/value cache with per-entry TTL – values are stored as JSON text.

The cache is an advisory projection of the store: every operation logs and
degrades to a miss / no-op instead of raising.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from time import monotonic
from typing import Any

log = logging.getLogger(__name__)

KEY_PREFIX = "content_search:"


class CacheError(RuntimeError):
    """A cache read or write could not be completed."""


class MemoryCache:
    """Process-local cache with the get / set / remove-by-prefix contract."""

    def __init__(self, max_entries: int = 10_000):
        self._entries: dict[str, tuple[float, str]] = {}
        self._max_entries = max_entries
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        try:
            async with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return None
                expires_at, payload = entry
                if expires_at <= monotonic():
                    del self._entries[key]
                    return None
            log.debug("Cache hit for key: %s", key)
            return _loads(payload)
        except CacheError:
            log.warning("Cache GET failed for key: %s – treating as miss", key, exc_info=True)
            return None

    async def set(self, key: str, value: Any, ttl: timedelta) -> None:
        try:
            payload = _dumps(value)
            async with self._lock:
                if len(self._entries) >= self._max_entries:
                    self._evict_expired()
                if len(self._entries) >= self._max_entries:
                    # drop the entry closest to expiry
                    oldest = min(self._entries, key=lambda k: self._entries[k][0])
                    del self._entries[oldest]
                self._entries[key] = (monotonic() + ttl.total_seconds(), payload)
            log.debug("Cache set for key: %s with TTL: %s", key, ttl)
        except CacheError:
            log.warning("Cache SET failed for key: %s – continuing without cache", key, exc_info=True)

    async def remove_by_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            log.info("Removed %d cache keys with prefix: %s", len(doomed), prefix)
        return len(doomed)

    def _evict_expired(self) -> None:
        now = monotonic()
        for k in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            del self._entries[k]


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise CacheError(f"Value is not JSON-serializable: {exc}") from exc


def _loads(payload: str) -> Any:
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise CacheError(f"Corrupt cache payload: {exc}") from exc
