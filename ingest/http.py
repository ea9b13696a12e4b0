"""Shared HTTP session with retries and backoff for provider feeds."""

from __future__ import annotations

import logging
import threading

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = logging.getLogger(__name__)

# ── Defaults ─────────────────────────────────────────────────────────
DEFAULT_TIMEOUT = 30  # seconds
_MAX_RETRIES = 3
_BACKOFF_FACTOR = 1.0  # 1s, 2s, 4s …
_RETRY_STATUS_CODES = (429, 500, 502, 503, 504)


class FetchError(RuntimeError):
    """A provider feed could not be fetched or parsed."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


# ── Module-level session (reusable across syncs) ─────────────────────
_session: requests.Session | None = None
_session_lock = threading.Lock()


def get_session() -> requests.Session:
    """Return a requests.Session configured with automatic retries."""
    global _session
    with _session_lock:
        if _session is not None:
            return _session

        session = requests.Session()
        retry = Retry(
            total=_MAX_RETRIES,
            backoff_factor=_BACKOFF_FACTOR,
            status_forcelist=_RETRY_STATUS_CODES,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update({"User-Agent": "content_search/1.0"})
        _session = session
        return _session


def fetch(provider: str, url: str, timeout: float = DEFAULT_TIMEOUT) -> requests.Response:
    """GET *url* for *provider*; any transport failure or HTTP error raises FetchError."""
    sess = get_session()
    log.debug("HTTP GET %s (%s)", url, provider)
    try:
        resp = sess.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise FetchError(provider, f"request to {url} failed: {exc}") from exc

    if resp.status_code >= 400:
        log.warning("HTTP %d for %s", resp.status_code, url)
        raise FetchError(provider, f"HTTP {resp.status_code} from {url}")

    return resp
