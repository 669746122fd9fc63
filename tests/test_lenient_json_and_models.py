# tests/test_lenient_json_and_models.py
"""Tolerant decoding of model replies and the verdict models built from them"""

import logging

from utils.lenient_json import try_parse_lenient, quote_bare_tokens, extract_json_span
from utils.menu_dedup import dedupe_items, names_similar, normalize_name
from utils.menu_models import (
    DiscoveryMethod, DiscoveryResult, LinkType, MenuItem, MenuLinksVerdict, PageVerdict,
)

logger = logging.getLogger(__name__)


def test_recovers_prose_wrapped_bare_keys_and_trailing_comma():
    """Test the classic 'Sure! {isMenu: true, confidence: 80,}' reply"""
    logger.info("🧪 Testing lenient JSON recovery")
    assert try_parse_lenient("Sure! {isMenu: true, confidence: 80,}") == {"isMenu": True, "confidence": 80}


def test_strict_json_passes_through():
    assert try_parse_lenient('{"isMenu": false, "confidence": 12}') == {"isMenu": False, "confidence": 12}


def test_code_fences_and_trailing_commas():
    reply = 'Here is the analysis:\n```json\n{"menuUrls": [{"url": "/menu", "confidence": 90,},],}\n```'
    assert try_parse_lenient(reply) == {"menuUrls": [{"url": "/menu", "confidence": 90}]}


def test_python_literals_and_single_quotes():
    assert try_parse_lenient("{'isMenu': True, 'reason': None}") == {"isMenu": True, "reason": None}


def test_array_span_inside_prose():
    assert try_parse_lenient('I found these: [{"url": "/menu"}] hope it helps') == [{"url": "/menu"}]


def test_raw_control_characters_inside_strings():
    assert try_parse_lenient('{"reason": "line one\nline two\ttabbed"}') == {"reason": "line one\nline two\ttabbed"}


def test_unrecoverable_input_returns_none():
    assert try_parse_lenient("I could not find a menu on this page.") is None
    assert try_parse_lenient("") is None
    assert try_parse_lenient(None) is None


def test_repair_helpers():
    assert quote_bare_tokens("{a: 1, b: 'x'}") == '{"a": 1, "b": "x"}'
    assert extract_json_span("noise {\"a\": [1]} tail") == '{"a": [1]}'
    assert extract_json_span("no braces") is None


def test_page_verdict_coercion():
    """Test that loose verdict values are coerced and clamped"""
    verdict = PageVerdict.model_validate({"isMenu": "yes", "confidence": "85%", "reason": None, "extra": 1})
    assert verdict.is_menu is True
    assert verdict.confidence == 85.0
    assert verdict.reason == ""

    assert PageVerdict.model_validate({"isMenu": True, "confidence": 0.8}).confidence == 80.0
    assert PageVerdict.model_validate({"isMenu": True, "confidence": 150}).confidence == 100.0
    assert PageVerdict.model_validate({"confidence": "unknown"}).confidence == 0.0


def test_menu_links_verdict_normalizes_candidates():
    verdict = MenuLinksVerdict.model_validate({
        "menuUrls": [
            "/menu",
            {"url": "/files/dinner.pdf", "confidence": "70", "type": "PDF", "reason": "PDF link"},
            {"url": "/order", "confidence": 65, "type": "ordering_system"},
            {"confidence": 50},
        ],
        "hasHiddenMenu": "false",
        "contextClues": "menu button in header",
    })
    assert [c.url for c in verdict.ranked()] == ["/files/dinner.pdf", "/order", "/menu"]
    assert verdict.ranked()[0].type == LinkType.PDF
    assert verdict.ranked()[1].type == LinkType.ORDERING_SYSTEM
    assert verdict.has_hidden_menu is False
    assert verdict.context_clues == ["menu button in header"]


def test_normalize_and_similarity():
    assert normalize_name("  Fish & Chips!! ") == "fish chips"
    assert names_similar("margherita pizza", "margarita pizza")
    assert not names_similar("caesar salad", "greek salad")


def test_dedupe_keeps_first_name_and_fills_gaps():
    items = [
        MenuItem(name="Margherita Pizza", price="$12.95"),
        MenuItem(name="Margarita Pizza", description="Tomato and mozzarella", category="Pizza"),
        MenuItem(name="Caesar Salad", price="$8.95"),
        MenuItem(name="caesar salad!", price="$9.50"),
    ]
    deduped = dedupe_items(items)
    assert [item.name for item in deduped] == ["Margherita Pizza", "Caesar Salad"]
    assert deduped[0].description == "Tomato and mozzarella"
    assert deduped[0].category == "Pizza"
    assert deduped[1].price == "$8.95"


def test_dedupe_of_doubled_list_keeps_the_same_names():
    items = [MenuItem(name=name, price="$5.00") for name in ("Latte", "Flat White", "Cortado", "Mocha")]
    once = {normalize_name(item.name) for item in dedupe_items(items)}
    twice = {normalize_name(item.name) for item in dedupe_items(items + items)}
    assert once == twice


def test_result_to_dict():
    result = DiscoveryResult(
        success=True,
        discovery_method=DiscoveryMethod.COMMON_PATH,
        url="https://example.com",
        menu_page_url="https://example.com/menu",
        items=[MenuItem(name="Latte", price="$4.00")],
        categories=frozenset({"Coffee", "Bakery"}),
    )
    data = result.to_dict()
    assert data["discovery_method"] == "common-path"
    assert data["categories"] == ["Bakery", "Coffee"]
    assert data["item_count"] == 1
    assert data["items"][0]["extraction_strategy"] == "aggressive-text"


def test_exponents_stay_part_of_the_number():
    assert quote_bare_tokens("{score: 1e5, ratio: 2.5E-3}") == '{"score": 1e5, "ratio": 2.5E-3}'
    assert try_parse_lenient("{confidence: 8.5e1, isMenu: true}") == {"confidence": 85.0, "isMenu": True}
