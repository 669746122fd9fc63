# tests/test_menu_locator.py
"""End-to-end discovery over canned pages"""

import asyncio
import json
import logging

import pytest

from agents.menu_locator import MenuLocator, NO_MENU_FOUND_REASON
from utils.errors import InvalidURLError, TooManyConcurrentRequests
from utils.menu_models import DiscoveryMethod, DiscoveryResult, MenuItem

from conftest import FakeClassifier, FakeFetcher, link, load_fixture, make_test_config, menu_verdict

logger = logging.getLogger(__name__)

PLAIN_PAGE = "<html><body><h1>{title}</h1><p>Welcome to our little corner of the internet.</p></body></html>"


class FakePDFParser:
    """Returns a canned PDF result and records what it was asked to parse"""

    def __init__(self, success: bool = True):
        self.success = success
        self.parsed = []

    async def parse(self, pdf_url: str) -> DiscoveryResult:
        self.parsed.append(pdf_url)
        if not self.success:
            return DiscoveryResult(success=False, discovery_method=DiscoveryMethod.PDF_PARSING_FAILED,
                                   url=pdf_url, menu_page_url=pdf_url,
                                   reason="PDF not found (404) - the menu link may be outdated")
        return DiscoveryResult(
            success=True,
            discovery_method=DiscoveryMethod.PDF_PARSING,
            url=pdf_url,
            menu_page_url=pdf_url,
            items=[MenuItem(name="Caesar Salad", price="$8.95", category="appetizer", source_url=pdf_url)],
            categories=frozenset({"appetizer"}),
        )

    def get_stats(self):
        return {"pdfs_processed": len(self.parsed)}


def _locator(fetcher, classifier=None, pdf_parser=None, **overrides):
    return MenuLocator(make_test_config(**overrides), fetcher, classifier=classifier,
                       pdf_parser=pdf_parser or FakePDFParser())


def test_menu_on_homepage_without_classifier():
    """Test a priced homepage accepted without a model"""
    logger.info("🧪 Testing unvalidated original URL")
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    result = asyncio.run(_locator(fetcher).discover("bellacucina.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.ORIGINAL_URL_UNVALIDATED
    assert result.url == "https://bellacucina.com"
    assert result.menu_page_url == "https://bellacucina.com"
    assert result.item_count == 5
    assert result.classifier_confidence is None
    assert all(item.confidence is None for item in result.items)
    assert "Our Menu" in result.categories
    assert result.restaurant_info.name == "Bella Cucina"
    assert result.discovery_time >= 0
    assert fetcher.calls == ["https://bellacucina.com"]


def test_validated_homepage_carries_confidence():
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    classifier = FakeClassifier(verdicts={"https://bellacucina.com": menu_verdict(90)})
    result = asyncio.run(_locator(fetcher, classifier).discover("https://bellacucina.com/"))

    assert result.discovery_method == DiscoveryMethod.ORIGINAL_URL_VALIDATED
    assert result.classifier_confidence == 90
    assert all(item.confidence == 90 for item in result.items)


def test_low_confidence_homepage_is_not_accepted():
    """Test that a validated verdict under the original-URL bar sends us searching"""
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    classifier = FakeClassifier(verdicts={"https://bellacucina.com": menu_verdict(60)})
    result = asyncio.run(_locator(fetcher, classifier).discover("https://bellacucina.com"))

    assert not result.success
    assert result.discovery_method == DiscoveryMethod.FAILED
    assert result.reason == NO_MENU_FOUND_REASON


def test_menu_link_followed_from_homepage():
    """Test the 'View Menu' link found by the keyword fallback"""
    fetcher = FakeFetcher({
        "https://harborgrill.com": load_fixture("homepage_with_menu_link.html"),
        "https://harborgrill.com/menu": load_fixture("harbor_menu.html"),
    })
    result = asyncio.run(_locator(fetcher).discover("https://harborgrill.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.AI_DISCOVERY
    assert result.menu_page_url.endswith("/menu")
    assert [item.name for item in result.items] == ["Grilled Salmon", "Fish Tacos", "Clam Chowder"]
    assert result.items[0].price == "$24.00"
    assert fetcher.fetch_count("https://harborgrill.com/menu") == 1


def test_classifier_suggested_link():
    fetcher = FakeFetcher({
        "https://harborgrill.com": load_fixture("homepage_with_menu_link.html"),
        "https://harborgrill.com/dinner": load_fixture("harbor_menu.html"),
    })
    classifier = FakeClassifier(
        verdicts={"https://harborgrill.com/dinner": menu_verdict(85)},
        links={"https://harborgrill.com": [link("https://harborgrill.com/dinner", 80)]},
    )
    result = asyncio.run(_locator(fetcher, classifier).discover("https://harborgrill.com"))

    assert result.discovery_method == DiscoveryMethod.AI_DISCOVERY
    assert result.menu_page_url == "https://harborgrill.com/dinner"
    assert result.classifier_confidence == 85


def test_unreachable_site():
    fetcher = FakeFetcher(unreachable=True)
    result = asyncio.run(_locator(fetcher).discover("https://nowhere-grill.com"))

    assert not result.success
    assert result.discovery_method == DiscoveryMethod.FAILED
    assert result.reason.startswith("Website unreachable:")
    assert fetcher.calls == ["https://nowhere-grill.com"]


def test_offline_classifier_falls_back_to_heuristics():
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    result = asyncio.run(_locator(fetcher, FakeClassifier(offline=True)).discover("https://bellacucina.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.ORIGINAL_URL_UNVALIDATED
    assert result.item_count == 5


def test_recursive_search_is_depth_bounded_and_never_refetches():
    """
    Test root -> /a -> /b -> /c where /b links back to /a.

    /c sits at the depth limit so it is classified but never searched, and
    /a is not fetched a second time when /b suggests it again.
    """
    root = "https://cycle-cafe.com"
    pages = {root: PLAIN_PAGE.format(title="Cycle Cafe")}
    for path in ("/a", "/b", "/c"):
        pages[root + path] = PLAIN_PAGE.format(title=f"Page {path}")
    classifier = FakeClassifier(links={
        root: [link(root + "/a", 90)],
        root + "/a": [link(root + "/b", 90)],
        root + "/b": [link(root + "/a", 90), link(root + "/c", 90)],
        root + "/c": [link(root + "/d", 90)],
    })
    fetcher = FakeFetcher(pages)
    result = asyncio.run(_locator(fetcher, classifier).discover(root))

    assert not result.success
    assert result.reason == NO_MENU_FOUND_REASON
    assert classifier.link_searches == [root, root + "/a", root + "/b"]
    assert fetcher.fetch_count(root + "/d") == 0
    for url in set(fetcher.calls):
        assert fetcher.fetch_count(url) == 1


def test_hidden_menu_accepts_the_search_root():
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    classifier = FakeClassifier(verdicts={"https://bellacucina.com": menu_verdict(55)},
                                hidden_menu=["https://bellacucina.com"])
    result = asyncio.run(_locator(fetcher, classifier).discover("https://bellacucina.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.AI_DISCOVERY
    assert result.menu_page_url == "https://bellacucina.com"


def test_common_path_fallback():
    fetcher = FakeFetcher({
        "https://taverna.com": PLAIN_PAGE.format(title="Taverna"),
        "https://taverna.com/menu": load_fixture("harbor_menu.html"),
    })
    result = asyncio.run(_locator(fetcher).discover("https://taverna.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.COMMON_PATH
    assert result.menu_page_url == "https://taverna.com/menu"


def test_pdf_url_goes_straight_to_the_pdf_parser():
    parser = FakePDFParser()
    fetcher = FakeFetcher()
    result = asyncio.run(_locator(fetcher, pdf_parser=parser).discover("https://harborgrill.com/files/menu.pdf"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.PDF_PARSING
    assert parser.parsed == ["https://harborgrill.com/files/menu.pdf"]
    assert fetcher.calls == []


def test_failed_direct_pdf_is_the_answer():
    parser = FakePDFParser(success=False)
    result = asyncio.run(_locator(FakeFetcher(), pdf_parser=parser).discover("https://harborgrill.com/menu.pdf"))

    assert not result.success
    assert result.discovery_method == DiscoveryMethod.PDF_PARSING_FAILED
    assert result.reason == "PDF not found (404) - the menu link may be outdated"


def test_pdf_candidate_link():
    fetcher = FakeFetcher({"https://harborgrill.com": load_fixture("homepage_with_menu_link.html")})
    classifier = FakeClassifier(links={
        "https://harborgrill.com": [link("https://harborgrill.com/files/menu.pdf", 80, "pdf")],
    })
    parser = FakePDFParser()
    result = asyncio.run(_locator(fetcher, classifier, parser).discover("https://harborgrill.com"))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.PDF_DIRECT
    assert result.url == "https://harborgrill.com"
    assert parser.parsed == ["https://harborgrill.com/files/menu.pdf"]


def test_low_confidence_pdf_candidate_is_skipped():
    fetcher = FakeFetcher({"https://harborgrill.com": load_fixture("homepage_with_menu_link.html")})
    classifier = FakeClassifier(links={
        "https://harborgrill.com": [link("https://harborgrill.com/files/old.pdf", 30, "pdf")],
    })
    parser = FakePDFParser()
    result = asyncio.run(_locator(fetcher, classifier, parser).discover("https://harborgrill.com"))

    assert parser.parsed == []
    assert not result.success


def test_discovery_is_repeatable():
    pages = {
        "https://harborgrill.com": load_fixture("homepage_with_menu_link.html"),
        "https://harborgrill.com/menu": load_fixture("harbor_menu.html"),
    }
    locator = _locator(FakeFetcher(pages))
    first = asyncio.run(locator.discover("https://harborgrill.com")).to_dict()
    second = asyncio.run(locator.discover("https://harborgrill.com")).to_dict()
    first.pop("discovery_time")
    second.pop("discovery_time")
    assert first == second
    assert locator.get_stats()["successful_discoveries"] == 2


def test_invalid_urls_raise():
    locator = _locator(FakeFetcher())
    with pytest.raises(InvalidURLError):
        asyncio.run(locator.discover("ftp://harborgrill.com/menu"))
    with pytest.raises(InvalidURLError):
        asyncio.run(locator.discover(""))


def test_busy_fetcher_reaches_the_caller():
    class BusyFetcher(FakeFetcher):
        async def fetch(self, url, timeout_ms=None, mobile_viewport=False):
            raise TooManyConcurrentRequests()

    with pytest.raises(TooManyConcurrentRequests):
        asyncio.run(_locator(BusyFetcher()).discover("https://harborgrill.com"))


def test_unexpected_errors_become_error_results():
    class BrokenFetcher(FakeFetcher):
        async def fetch(self, url, timeout_ms=None, mobile_viewport=False):
            raise RuntimeError("socket exploded")

    result = asyncio.run(_locator(BrokenFetcher()).discover("https://harborgrill.com"))
    assert result.discovery_method == DiscoveryMethod.ERROR
    assert result.reason == "Menu discovery failed: socket exploded"


def test_debug_dumps_record_the_run(tmp_path):
    fetcher = FakeFetcher({"https://bellacucina.com": load_fixture("direct_menu.html")})
    locator = _locator(fetcher, DEBUG_DUMPS=True, DEBUG_DIR=str(tmp_path))
    asyncio.run(locator.discover("https://bellacucina.com"))

    dumps = list(tmp_path.glob("*_discovery_result.json"))
    assert len(dumps) == 1
    payload = json.loads(dumps[0].read_text(encoding="utf-8"))
    assert payload["stage"] == "discovery_result"
    assert payload["state"]["url"] == "https://bellacucina.com"
    assert payload["state"]["result"]["success"] is True
    assert "error" not in payload


def test_homepage_taglines_do_not_become_items():
    fetcher = FakeFetcher({"https://lighthousecafe.com": load_fixture("menu_with_taglines.html")})
    result = asyncio.run(_locator(fetcher).discover("https://lighthousecafe.com"))

    assert result.discovery_method == DiscoveryMethod.ORIGINAL_URL_UNVALIDATED
    assert result.item_count == 3
    assert all(item.price for item in result.items)
