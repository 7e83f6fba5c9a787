"""
ContentFetcher — retrieves announcement/support JSON with TTL caching.

Sources, by URL shape:
  http(s)://host/path      → GET through the fetcher's requests session
  \\\\server\\share\\x.json   → UNC path (existence check, then read, bounded by the timeout)
  anything else            → local path, relative to base_dir if not absolute

Any failure resolves to the compiled-in default snapshot. Defaults are
never cached, so the next call goes back to the source.
"""

import json
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import requests

from .config import log, BASE_DIR
from .constants import FETCH_TIMEOUT_SEC
from .content import ContentSnapshot, ContentError, FetchResult, FetchSource, default_snapshot
from . import http_client


class ContentNotFound(Exception):
    """The source answered, but the content does not exist (HTTP 404 / missing file)."""


def classify(url):
    """Return "http", "unc" or "local"."""
    lowered = url.strip().lower()
    if lowered.startswith(("http://", "https://")):
        return "http"
    if url.startswith("\\\\") or url.startswith("//"):
        return "unc"
    return "local"


def strip_query(url):
    return url.split("?", 1)[0]


class ContentFetcher:
    """
    Owns the content cache. One instance per engine; the clock is injectable
    so TTL behaviour can be tested without sleeping.
    """

    def __init__(self, session=None, base_dir=BASE_DIR, timeout=FETCH_TIMEOUT_SEC,
                 clock=time.monotonic):
        self._session = session if session is not None else http_client.create_session()
        self.base_dir = Path(base_dir)
        self.timeout = timeout
        self._clock = clock
        self._cached = None          # FetchResult of the last successful fetch
        self._cached_url = None
        self._cached_at = 0.0        # monotonic

    @property
    def cached(self):
        return self._cached

    def invalidate(self):
        self._cached = None
        self._cached_url = None

    def fetch(self, url, cache_ttl) -> FetchResult:
        now = self._clock()
        if (self._cached is not None
                and self._cached_url == url
                and (now - self._cached_at) < cache_ttl):
            return FetchResult(
                data=self._cached.data,
                source=FetchSource.CACHE,
                fetched_at=self._cached.fetched_at,
            )

        try:
            text = self._retrieve(url)
            data = ContentSnapshot.from_dict(json.loads(text))
        except (requests.RequestException, OSError, ContentNotFound,
                json.JSONDecodeError, ContentError, UnicodeDecodeError) as e:
            log.warning("Content fetch failed for %s: %s — using built-in default", url, e)
            return FetchResult(
                data=default_snapshot(),
                source=FetchSource.DEFAULT,
                fetched_at=datetime.now(timezone.utc),
            )

        result = FetchResult(
            data=data,
            source=FetchSource.REMOTE,
            fetched_at=datetime.now(timezone.utc),
        )
        self._cached = result
        self._cached_url = url
        self._cached_at = self._clock()
        log.info("Content fetched from %s", url)
        return result

    # ─── Retrieval ───────────────────────────────────────────

    def _retrieve(self, url):
        kind = classify(url)
        if kind == "http":
            return self._get_http(url)
        if kind == "unc":
            return self._read_unc(Path(url))
        path = Path(url)
        if not path.is_absolute():
            path = self.base_dir / path
        return self._read_file(path)

    def _get_http(self, url):
        deadline = self._clock() + self.timeout
        try:
            return self._get_once(url, self.timeout)
        except ContentNotFound:
            stripped = strip_query(url)
            if stripped == url:
                raise
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise
            log.info("Content not found at %s — retrying without query string", url)
            return self._get_once(stripped, remaining)

    def _get_once(self, url, timeout):
        try:
            resp = self._session.get(url, timeout=timeout)
        except requests.ConnectionError:
            self._session = http_client.reset_session(self._session)
            raise
        if resp.status_code == 404:
            raise ContentNotFound(f"HTTP 404 for {url}")
        if resp.status_code != 200:
            raise requests.HTTPError(f"HTTP {resp.status_code} for {url}", response=resp)
        return resp.text

    def _read_unc(self, path):
        """
        Read a share path on a daemon thread joined with the fetch timeout.
        A hung SMB server can block stat/open far longer than the tick; the
        abandoned thread finishes (or stays blocked) on its own.
        """
        outcome = {}

        def worker():
            try:
                outcome["text"] = self._read_file(path)
            except Exception as e:
                outcome["error"] = e

        reader = threading.Thread(target=worker, name="unc-read", daemon=True)
        reader.start()
        reader.join(self.timeout)
        if reader.is_alive():
            raise TimeoutError(f"share did not answer within {self.timeout}s: {path}")
        if "error" in outcome:
            raise outcome["error"]
        return outcome["text"]

    @staticmethod
    def _read_file(path):
        if not path.exists():
            raise ContentNotFound(f"path does not exist: {path}")
        return path.read_text(encoding="utf-8-sig")
