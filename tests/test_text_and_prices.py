# tests/test_text_and_prices.py
"""Plain-text normalization and price recognition"""

import logging

from utils.price_lexer import detect_dominant_currency, find_prices, is_price_only, contains_price
from utils.text_normalizer import to_plain_text, prepare_page_structure

logger = logging.getLogger(__name__)


def test_plain_text_drops_scripts_and_decodes_entities():
    """Test that script/style content disappears and the five entities decode"""
    logger.info("🧪 Testing to_plain_text")
    html = (
        "<html><head><style>body { color: red; }</style>"
        "<script>var price = '$99';</script></head>"
        "<body><h1>Fish &amp; Chips</h1>\n\n<p>Crispy&nbsp;cod &lt;fresh&gt; "
        "&quot;daily&quot; &#39;catch&#39;</p></body></html>"
    )
    assert to_plain_text(html) == "Fish & Chips Crispy cod <fresh> \"daily\" 'catch'"


def test_plain_text_empty_input():
    assert to_plain_text(None) == ""
    assert to_plain_text("") == ""
    assert to_plain_text("<div>   </div>") == ""


def test_page_structure_lists_links_and_buttons():
    html = (
        "<html><head><title>Harbor Grill</title></head><body>"
        "<nav><a href='/menu' title='Our food'>View Menu</a></nav>"
        "<button onclick=\"location.href='/order'\">Order Online</button>"
        "<main><p>Welcome</p></main></body></html>"
    )
    structure = prepare_page_structure(html)
    assert "PAGE TITLE: Harbor Grill" in structure
    assert '- [View Menu] href="/menu" title="Our food"' in structure
    assert "Order Online" in structure
    assert "CONTENT:\nWelcome" in structure


def test_prefix_and_suffix_symbols():
    """Test symbol-tagged prices on either side of the amount"""
    prices = find_prices("Burger $12.95, Pasta 14,50 €, Tea ¥480")
    assert [p.raw for p in prices] == ["$12.95", "14,50 €", "¥480"]
    assert [p.currency for p in prices] == ["$", "€", "¥"]
    assert all(p.explicit for p in prices)


def test_iso_codes_map_to_symbols():
    prices = find_prices("Tasting menu EUR 85 or 120 GBP")
    assert [p.currency for p in prices] == ["€", "£"]


def test_bare_decimals_take_dominant_currency():
    """Test that a bare 6.50 in euro text is emitted as €6.50"""
    text = "Soup of the day 6.50 / Salad 8,00 € / Bread 2.00"
    assert detect_dominant_currency(text) == "€"
    tagged = [p.tagged for p in find_prices(text)]
    assert tagged == ["€6.50", "8,00 €", "€2.00"]


def test_bare_decimals_use_given_currency():
    prices = find_prices("Lemonade 3.50", currency="£")
    assert prices[0].tagged == "£3.50"
    assert not prices[0].explicit


def test_phone_numbers_dates_and_percentages_are_not_prices():
    """Test the usual false positives"""
    logger.info("🧪 Testing price false positives")
    assert find_prices("Call 555-123-4567 to book") == []
    assert find_prices("Closed on 12.05.2024") == []
    assert find_prices("Save 15.50% on Tuesdays") == []
    assert find_prices("Open 11:30 to 22:00") == []
    assert not contains_price("Established 1998")


def test_currency_inference_order():
    assert detect_dominant_currency("Pizza 12 € and pasta 10 €, tip $2") == "€"
    assert detect_dominant_currency("All prices in GBP") == "£"
    assert detect_dominant_currency("Prices are shown in euros") == "€"
    assert detect_dominant_currency("Margherita 12.00") == "$"
    assert detect_dominant_currency(None) == "$"


def test_price_only_strings():
    assert is_price_only("$12.95")
    assert is_price_only(" 12.95 ")
    assert is_price_only("14,50 €")
    assert not is_price_only("Burger")
    assert not is_price_only("Burger $12")
    assert not is_price_only("")


def test_spelled_out_dollars_count_as_prices():
    assert contains_price("Whole lobster, 38 dollars")
    assert contains_price("Soup of the day $6")
    assert not contains_price(None)
    assert not contains_price("Serves two")
