# tests/test_link_discoverer.py
"""Keyword scoring of candidate menu links"""

import logging

from agents.link_discoverer import LinkDiscoverer, SUB_MENU_KEYWORDS, infer_category

from conftest import load_fixture

logger = logging.getLogger(__name__)

HOMEPAGE = """
<html><body>
  <a href="/">Home</a>
  <a href="/menu">View Menu</a>
  <a href="/about" title="Our food and drinks">About</a>
  <a href="/files/dinner-menu.pdf">Download</a>
  <a href="https://instagram.com/harborgrill">Menu on Instagram</a>
  <a href="https://ubereats.com/store/harbor-grill">Order delivery</a>
  <a href="/great-outdoors">Great Outdoors</a>
  <a href="mailto:hello@harborgrill.com">Email us</a>
</body></html>
"""


def test_text_matches_outrank_labels_and_hrefs():
    """Test scoring order: text, then title/aria-label, then href only"""
    logger.info("🧪 Testing candidate link scoring")
    links = LinkDiscoverer().find_candidate_links(HOMEPAGE, "https://harborgrill.com", limit=10)

    assert [link.url for link in links] == [
        "https://harborgrill.com/menu",
        "https://ubereats.com/store/harbor-grill",
        "https://harborgrill.com/about",
        "https://harborgrill.com/files/dinner-menu.pdf",
    ]
    assert links[0].score == LinkDiscoverer.TEXT_SCORE + LinkDiscoverer.HREF_SCORE
    assert links[0].keyword == "menu"
    assert links[3].is_pdf
    assert links[3].score == LinkDiscoverer.HREF_SCORE + LinkDiscoverer.PDF_BONUS


def test_same_site_only_and_limit():
    discoverer = LinkDiscoverer()
    links = discoverer.find_candidate_links(HOMEPAGE, "https://harborgrill.com", same_site_only=True, limit=2)
    assert [link.url for link in links] == ["https://harborgrill.com/menu", "https://harborgrill.com/about"]
    assert discoverer.get_stats()["pages_scanned"] == 1


def test_sub_menu_links_skip_social_and_other_sites():
    links = LinkDiscoverer().find_candidate_links(
        load_fixture("menu_with_sub_menus.html"), "https://cornerbistro.com/menu",
        keywords=SUB_MENU_KEYWORDS, same_site_only=True, limit=8,
    )
    assert [link.url for link in links] == [
        "https://cornerbistro.com/menu/drinks",
        "https://cornerbistro.com/menu/desserts",
    ]


def test_excluded_urls_are_not_returned():
    links = LinkDiscoverer().find_candidate_links(
        HOMEPAGE, "https://harborgrill.com", exclude=["https://harborgrill.com/menu"], limit=10,
    )
    assert "https://harborgrill.com/menu" not in [link.url for link in links]


def test_no_html_no_links():
    assert LinkDiscoverer().find_candidate_links("", "https://harborgrill.com") == []


def test_infer_category():
    assert infer_category("Happy Hour") == "Happy Hour"
    assert infer_category("See more", "https://cornerbistro.com/menu/drinks") == "Drinks"
    assert infer_category("Kids Menu") == "Kids"
    assert infer_category("Barbecue") is None
