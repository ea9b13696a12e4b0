"""Name-keyed registry of content providers."""

from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Iterable, Protocol

from ingest.http import DEFAULT_TIMEOUT
from ingest.json_provider import JsonContentProvider
from ingest.xml_provider import XmlContentProvider
from storage.models import Content

log = logging.getLogger(__name__)


class ContentProvider(Protocol):
    provider_name: str

    async def fetch_all(self) -> list[Content]: ...


class ProviderNotFoundError(KeyError):
    """No provider is registered under the requested name."""


_KINDS = {
    "json": JsonContentProvider,
    "xml": XmlContentProvider,
}


class ProviderRegistry:
    """Immutable, case-insensitive lookup of providers by name."""

    def __init__(self, providers: Iterable[ContentProvider]):
        by_name: dict[str, ContentProvider] = {}
        for provider in providers:
            key = provider.provider_name.lower()
            if key in by_name:
                raise ValueError(f"Duplicate provider name: {provider.provider_name}")
            by_name[key] = provider
        self._providers = MappingProxyType(by_name)

    def get(self, name: str) -> ContentProvider:
        try:
            return self._providers[name.lower()]
        except KeyError:
            raise ProviderNotFoundError(f"Content provider '{name}' is not registered.") from None

    def get_all(self) -> list[ContentProvider]:
        return list(self._providers.values())

    def names(self) -> list[str]:
        return [p.provider_name for p in self._providers.values()]

    def __len__(self) -> int:
        return len(self._providers)


def build_registry(settings: dict) -> ProviderRegistry:
    """Create one provider per configured entry that has a URL.

    Each entry of ``settings["providers"]`` is
    ``{"name": ..., "kind": "json"|"xml", "url": ..., "url_env": ..., "timeout_seconds": ...}``;
    ``url_env`` names an environment variable that overrides ``url``.
    """
    providers: list[ContentProvider] = []
    for cfg in settings.get("providers", []):
        name = cfg["name"]
        url = os.getenv(cfg.get("url_env", ""), "") or cfg.get("url")
        if not url:
            log.warning("Provider %s has no URL configured – skipping", name)
            continue
        kind = cfg.get("kind", "json").lower()
        if kind not in _KINDS:
            raise ValueError(f"Unknown provider kind {kind!r} for {name}")
        timeout = float(cfg.get("timeout_seconds", DEFAULT_TIMEOUT))
        providers.append(_KINDS[kind](url, provider_name=name, timeout=timeout))

    registry = ProviderRegistry(providers)
    log.info("Registered %d providers: %s", len(registry), ", ".join(registry.names()) or "(none)")
    return registry
