# tests/test_page_fetcher.py
"""Fetch caching, PDF short-circuit and error mapping (no network)"""

import asyncio
import logging

import pytest

from agents.page_fetcher import FetchCache, FetchResult, PageFetcher
from utils.async_utils import ConcurrencyGuard
from utils.errors import FetchFailure, TooManyConcurrentRequests

from conftest import make_test_config

logger = logging.getLogger(__name__)


def _http_fetcher(monkeypatch, handler, **kwargs):
    fetcher = PageFetcher(make_test_config(), use_browser=False, **kwargs)
    calls = []

    async def fake_http(url, timeout_ms, mobile_viewport):
        calls.append((url, timeout_ms, mobile_viewport))
        return handler(url)

    monkeypatch.setattr(fetcher, "_fetch_with_http", fake_http)
    return fetcher, calls


def test_cache_is_bounded_and_expires():
    logger.info("🧪 Testing fetch cache")
    cache = FetchCache(max_size=2, ttl=60)
    for name in ("a", "b", "c"):
        cache.put((name, False), FetchResult(url=name, html="<p>x</p>"))
    assert len(cache) == 2
    assert cache.get(("a", False)) is None
    assert cache.get(("c", False)).url == "c"

    expired = FetchCache(max_size=2, ttl=-1)
    expired.put(("a", False), FetchResult(url="a", html="<p>x</p>"))
    assert expired.get(("a", False)) is None


def test_pdf_urls_are_not_downloaded(monkeypatch):
    fetcher, calls = _http_fetcher(monkeypatch, lambda url: FetchResult(url=url, html="<p>x</p>"))
    result = asyncio.run(fetcher.fetch("https://harborgrill.com/files/menu.pdf"))
    assert result.is_pdf and result.ok
    assert calls == []


def test_successful_fetches_are_cached(monkeypatch):
    fetcher, calls = _http_fetcher(
        monkeypatch, lambda url: FetchResult(url=url, final_url=url, status=200, html="<h1>Menu</h1>", method="http"))

    async def scenario():
        first = await fetcher.fetch("https://harborgrill.com/menu")
        second = await fetcher.fetch("https://harborgrill.com/menu")
        mobile = await fetcher.fetch("https://harborgrill.com/menu", mobile_viewport=True)
        return first, second, mobile

    first, second, mobile = asyncio.run(scenario())
    assert first.ok and second.html == "<h1>Menu</h1>"
    assert len(calls) == 2
    assert calls[1][2] is True
    assert fetcher.get_stats()["cache_hits"] == 1


def test_http_failures_become_results(monkeypatch):
    def not_found(url):
        raise FetchFailure(url, "HTTP 404", status=404)

    fetcher, _ = _http_fetcher(monkeypatch, not_found)
    result = asyncio.run(fetcher.fetch("https://harborgrill.com/gone"))
    assert not result.ok
    assert result.status == 404
    assert result.error == "HTTP 404"
    assert fetcher.get_stats()["failed_fetches"] == 1


def test_full_guard_rejects_the_fetch(monkeypatch):
    async def scenario():
        guard = ConcurrencyGuard(max_in_flight=1, max_waiting=0)
        fetcher, _ = _http_fetcher(monkeypatch, lambda url: FetchResult(url=url, html="<p>x</p>"), guard=guard)
        await guard.acquire()
        try:
            await fetcher.fetch("https://harborgrill.com")
        finally:
            guard.release()

    with pytest.raises(TooManyConcurrentRequests):
        asyncio.run(scenario())
