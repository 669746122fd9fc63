# tests/conftest.py
"""
Shared fakes for the discovery pipeline.

Nothing here touches the network, a browser or an API key: pages come from
FakeFetcher, verdicts from FakeClassifier.
"""

import logging
import os
from types import SimpleNamespace
from typing import Dict, List, Optional, Union

import pytest

import config
from agents.page_classifier import PageClassifier
from agents.page_fetcher import FetchResult
from utils.errors import ClassificationUnavailable
from utils.menu_models import MenuLinkCandidate, MenuLinksVerdict, PageVerdict
from utils.url_utils import normalize_url

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

FIXTURES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fixtures")


def load_fixture(name: str) -> str:
    with open(os.path.join(FIXTURES_DIR, name), encoding="utf-8") as f:
        return f.read()


def make_test_config(**overrides) -> SimpleNamespace:
    """The real settings, minus the API key, the browser and every pause"""
    values = {name: getattr(config, name) for name in dir(config) if name.isupper()}
    values.update(
        OPENAI_API_KEY=None,
        USE_BROWSER=False,
        SUB_MENU_REQUEST_DELAY=0,
        PDF_CHUNK_DELAY=0,
        DEBUG_DUMPS=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class FakeFetcher:
    """Serves canned pages by URL; anything unknown is a 404"""

    def __init__(self, pages: Optional[Dict[str, Union[str, FetchResult]]] = None,
                 unreachable: bool = False):
        self.pages = {normalize_url(url): page for url, page in (pages or {}).items()}
        self.unreachable = unreachable
        self.calls: List[str] = []

    async def fetch(self, url: str, timeout_ms: Optional[int] = None,
                    mobile_viewport: bool = False) -> FetchResult:
        self.calls.append(normalize_url(url))
        if self.unreachable:
            return FetchResult(url=url, error="Page load timed out after 30000ms", method="fake")

        page = self.pages.get(normalize_url(url))
        if page is None:
            return FetchResult(url=url, final_url=url, status=404, error="HTTP 404", method="fake")
        if isinstance(page, FetchResult):
            return page
        return FetchResult(url=url, final_url=url, status=200, content_type="text/html",
                           html=page, method="fake")

    def fetch_count(self, url: str) -> int:
        return self.calls.count(normalize_url(url))


class FakeClassifier(PageClassifier):
    """
    Scripted classifier.

    verdicts maps URL -> PageVerdict, links maps URL -> [MenuLinkCandidate].
    Unknown pages are "not a menu" and have no links.
    """

    name = "fake"

    def __init__(self, verdicts=None, links=None, hidden_menu=None, offline: bool = False):
        self.verdicts = {normalize_url(url): v for url, v in (verdicts or {}).items()}
        self.links = {normalize_url(url): v for url, v in (links or {}).items()}
        self.hidden_menu = {normalize_url(url) for url in (hidden_menu or [])}
        self.offline = offline
        self.classified: List[str] = []
        self.link_searches: List[str] = []

    async def classify_page(self, page_text: str, url: str) -> Optional[PageVerdict]:
        self.classified.append(normalize_url(url))
        if self.offline:
            raise ClassificationUnavailable("Model call timed out after 30.0s")
        return self.verdicts.get(normalize_url(url), PageVerdict(is_menu=False, confidence=10, reason="not a menu"))

    async def find_menu_links(self, page_structure: str, url: str) -> Optional[MenuLinksVerdict]:
        self.link_searches.append(normalize_url(url))
        if self.offline:
            raise ClassificationUnavailable("Model call timed out after 30.0s")
        key = normalize_url(url)
        return MenuLinksVerdict(menu_urls=self.links.get(key, []), has_hidden_menu=key in self.hidden_menu)


def menu_verdict(confidence: float) -> PageVerdict:
    return PageVerdict(is_menu=True, confidence=confidence, reason="priced dishes listed")


def link(url: str, confidence: float, link_type: str = "direct", category: Optional[str] = None) -> MenuLinkCandidate:
    return MenuLinkCandidate(url=url, confidence=confidence, type=link_type, category=category)


@pytest.fixture
def test_config():
    return make_test_config()
