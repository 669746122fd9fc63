# agents/page_fetcher.py
"""
Page fetching for menu discovery.

BrowserPool owns a small set of headless Chromium instances shared by all
concurrent fetches. PageFetcher puts a hard cap on in-flight fetches in
front of it, falls back to plain HTTP when the browser fails, reports PDFs
by content type instead of decoding them, and caches successful pages.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from playwright.async_api import async_playwright, Browser, TimeoutError as PlaywrightTimeoutError

from utils.async_utils import ConcurrencyGuard
from utils.errors import FetchFailure, TooManyConcurrentRequests
from utils.url_utils import is_pdf_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """What a fetch produced; html is empty for PDFs and failures"""
    url: str
    final_url: str = ""
    status: Optional[int] = None
    content_type: str = ""
    html: str = ""
    title: str = ""
    is_pdf: bool = False
    error: Optional[str] = None
    fetch_time: float = 0.0
    method: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and (self.is_pdf or bool(self.html))


class FetchCache:
    """Bounded LRU of successful fetches with a time-to-live"""

    def __init__(self, max_size: int = 64, ttl: float = 600):
        self.max_size = max_size
        self.ttl = ttl
        self._entries: "OrderedDict[Tuple[str, bool], Tuple[float, FetchResult]]" = OrderedDict()

    def get(self, key: Tuple[str, bool]) -> Optional[FetchResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if time.monotonic() - stored_at > self.ttl:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return result

    def put(self, key: Tuple[str, bool], result: FetchResult):
        if self.max_size <= 0:
            return
        self._entries[key] = (time.monotonic(), result)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)


class BrowserPool:
    """
    Headless Chromium instances handed out round-robin.

    Browsers are launched lazily on first use and closed in close().
    Each page gets its own context so cookies and viewport never leak
    between fetches.
    """

    def __init__(self, config, size: Optional[int] = None):
        self.config = config
        self.size = max(1, size or getattr(config, 'BROWSER_POOL_SIZE', 2))
        self.playwright = None
        self.browsers: List[Browser] = []
        self._next = 0
        self._lock = asyncio.Lock()
        self.stats = {"browsers_launched": 0, "pages_opened": 0, "blocked_requests": 0}

    async def start(self):
        async with self._lock:
            if self.browsers:
                return
            logger.info(f"🚀 Launching {self.size} headless Chromium instance(s)")
            self.playwright = await async_playwright().start()
            try:
                for _ in range(self.size):
                    browser = await self.playwright.chromium.launch(
                        headless=True,
                        args=[
                            '--no-sandbox',
                            '--disable-setuid-sandbox',
                            '--disable-dev-shm-usage',
                            '--disable-gpu',
                            '--disable-extensions',
                            '--mute-audio',
                        ]
                    )
                    self.browsers.append(browser)
                    self.stats["browsers_launched"] += 1
            except Exception as e:
                logger.error(f"❌ Failed to launch browser: {e}")
                await self._shutdown()
                raise
            logger.info(f"✅ Browser pool ready ({len(self.browsers)} instance(s))")

    def _pick_browser(self) -> Browser:
        browser = self.browsers[self._next % len(self.browsers)]
        self._next += 1
        return browser

    async def _route(self, route):
        request = route.request
        blocked_types = getattr(self.config, 'BLOCKED_RESOURCE_TYPES', [])
        blocked_patterns = getattr(self.config, 'BLOCKED_URL_PATTERNS', [])
        if request.resource_type in blocked_types or any(p in request.url for p in blocked_patterns):
            self.stats["blocked_requests"] += 1
            await route.abort()
        else:
            await route.continue_()

    @asynccontextmanager
    async def page(self, mobile_viewport: bool = False, timeout_ms: int = 30000):
        """Open a fresh page in its own context; both are closed on exit"""
        if not self.browsers:
            await self.start()

        if mobile_viewport:
            viewport = getattr(self.config, 'MOBILE_VIEWPORT', {"width": 375, "height": 667})
            user_agent = getattr(self.config, 'MOBILE_USER_AGENT', None)
        else:
            viewport = getattr(self.config, 'DESKTOP_VIEWPORT', {"width": 1920, "height": 1080})
            user_agent = getattr(self.config, 'DESKTOP_USER_AGENT', None)

        context = await self._pick_browser().new_context(
            viewport=viewport,
            user_agent=user_agent,
            is_mobile=mobile_viewport,
            has_touch=mobile_viewport,
            ignore_https_errors=True,
            java_script_enabled=True,
            extra_http_headers={
                'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                'Accept-Language': 'en-US,en;q=0.9',
            },
        )
        context.set_default_timeout(timeout_ms)
        context.set_default_navigation_timeout(timeout_ms)
        try:
            page = await context.new_page()
            await page.route("**/*", self._route)
            self.stats["pages_opened"] += 1
            yield page
        finally:
            await context.close()

    async def _shutdown(self):
        for browser in self.browsers:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"⚠️ Error closing browser: {e}")
        self.browsers = []
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    async def close(self):
        async with self._lock:
            await self._shutdown()
        logger.info("🔒 Browser pool closed")


class PageFetcher:
    """
    fetch(url) -> FetchResult, bounded by a shared in-flight cap.

    Never raises for network trouble (the result carries the error);
    raises TooManyConcurrentRequests when the cap and its queue are full.
    """

    def __init__(self, config, browser_pool: Optional[BrowserPool] = None,
                 use_browser: Optional[bool] = None, guard: Optional[ConcurrencyGuard] = None):
        self.config = config
        self.use_browser = getattr(config, 'USE_BROWSER', True) if use_browser is None else use_browser
        self.browser_pool = browser_pool or (BrowserPool(config) if self.use_browser else None)
        self.guard = guard or ConcurrencyGuard(
            max_in_flight=getattr(config, 'MAX_CONCURRENT_FETCHES', 10),
            max_waiting=getattr(config, 'MAX_QUEUED_FETCHES', 20),
            acquire_timeout=getattr(config, 'FETCH_QUEUE_TIMEOUT', 30.0),
        )
        self.cache = FetchCache(
            max_size=getattr(config, 'FETCH_CACHE_SIZE', 64),
            ttl=getattr(config, 'FETCH_CACHE_TTL', 600),
        )
        self.default_timeout_ms = getattr(config, 'PAGE_FETCH_TIMEOUT_MS', 30000)
        self.settle_ms = getattr(config, 'PAGE_SETTLE_MS', 2000)
        self._session: Optional[aiohttp.ClientSession] = None

        self.stats = {
            "total_fetches": 0,
            "successful_fetches": 0,
            "failed_fetches": 0,
            "cache_hits": 0,
            "browser_fetches": 0,
            "http_fetches": 0,
            "browser_fallbacks": 0,
            "pdf_responses": 0,
            "total_time": 0.0,
        }

    async def fetch(self, url: str, timeout_ms: Optional[int] = None,
                    mobile_viewport: bool = False) -> FetchResult:
        timeout_ms = timeout_ms or self.default_timeout_ms
        self.stats["total_fetches"] += 1

        if is_pdf_url(url):
            self.stats["pdf_responses"] += 1
            return FetchResult(url=url, final_url=url, content_type="application/pdf",
                               is_pdf=True, method="extension")

        key = (url, mobile_viewport)
        cached = self.cache.get(key)
        if cached is not None:
            self.stats["cache_hits"] += 1
            logger.debug(f"Cache hit for {url}")
            return cached

        start_time = time.time()
        async with self.guard.slot():
            result = None
            if self.browser_pool is not None:
                try:
                    result = await self._fetch_with_browser(url, timeout_ms, mobile_viewport)
                    self.stats["browser_fetches"] += 1
                except TooManyConcurrentRequests:
                    raise
                except Exception as e:
                    self.stats["browser_fallbacks"] += 1
                    logger.warning(f"⚠️ Browser fetch failed for {url}: {e} - falling back to HTTP")

            if result is None:
                try:
                    result = await self._fetch_with_http(url, timeout_ms, mobile_viewport)
                    self.stats["http_fetches"] += 1
                except FetchFailure as e:
                    result = FetchResult(url=url, status=e.status, error=str(e), method="http")

        elapsed = time.time() - start_time
        self.stats["total_time"] += elapsed
        result = replace(result, fetch_time=elapsed)

        if result.is_pdf:
            self.stats["pdf_responses"] += 1
        if result.ok:
            self.stats["successful_fetches"] += 1
            self.cache.put(key, result)
            logger.info(f"✅ Fetched {url} via {result.method} in {elapsed:.2f}s")
        else:
            self.stats["failed_fetches"] += 1
            logger.warning(f"❌ Failed to fetch {url}: {result.error}")
        return result

    async def _fetch_with_browser(self, url: str, timeout_ms: int, mobile_viewport: bool) -> FetchResult:
        async with self.browser_pool.page(mobile_viewport=mobile_viewport, timeout_ms=timeout_ms) as page:
            try:
                response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
            except PlaywrightTimeoutError:
                return FetchResult(url=url, error=f"Page load timed out after {timeout_ms}ms", method="browser")

            status = response.status if response else None
            headers = await response.all_headers() if response else {}
            content_type = headers.get("content-type", "")

            if "application/pdf" in content_type.lower():
                return FetchResult(url=url, final_url=page.url, status=status,
                                   content_type=content_type, is_pdf=True, method="browser")
            if status is not None and status >= 400:
                return FetchResult(url=url, final_url=page.url, status=status,
                                   content_type=content_type, error=f"HTTP {status}", method="browser")

            # Menus are often rendered client-side
            if self.settle_ms:
                try:
                    await page.wait_for_load_state("networkidle", timeout=self.settle_ms)
                except PlaywrightTimeoutError:
                    pass

            html = await page.content()
            title = await page.title()
            return FetchResult(url=url, final_url=page.url, status=status, content_type=content_type,
                               html=html, title=title, method="browser")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _fetch_with_http(self, url: str, timeout_ms: int, mobile_viewport: bool) -> FetchResult:
        user_agent = getattr(self.config, 'MOBILE_USER_AGENT' if mobile_viewport else 'DESKTOP_USER_AGENT', None)
        headers = {
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
        }
        if user_agent:
            headers['User-Agent'] = user_agent

        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
        try:
            async with session.get(url, headers=headers, timeout=timeout, allow_redirects=True) as response:
                content_type = response.headers.get('Content-Type', '')
                if 'application/pdf' in content_type.lower():
                    return FetchResult(url=url, final_url=str(response.url), status=response.status,
                                       content_type=content_type, is_pdf=True, method="http")
                if response.status >= 400:
                    raise FetchFailure(url, f"HTTP {response.status}", status=response.status)
                html = await response.text(errors='replace')
                return FetchResult(url=url, final_url=str(response.url), status=response.status,
                                   content_type=content_type, html=html, method="http")
        except asyncio.TimeoutError:
            raise FetchFailure(url, f"Request timed out after {timeout_ms}ms")
        except aiohttp.ClientError as e:
            raise FetchFailure(url, f"Network error: {e}")

    async def close(self):
        """Wait for in-flight fetches, then release browsers and the HTTP session"""
        drained = await self.guard.drain(timeout=getattr(self.config, 'DRAIN_TIMEOUT', 30.0))
        if not drained:
            logger.warning("⚠️ Closing fetcher with fetches still in flight")
        if self.browser_pool is not None:
            await self.browser_pool.close()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self.cache.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats["in_flight"] = self.guard.in_flight
        stats["cache_size"] = len(self.cache)
        if self.browser_pool is not None:
            stats.update(self.browser_pool.stats)
        return stats
