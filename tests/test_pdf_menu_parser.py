# tests/test_pdf_menu_parser.py
"""PDF menu download, text cleanup and item parsing"""

import asyncio
import logging

from langchain_core.language_models.fake_chat_models import FakeListChatModel
from pdfminer.pdfdocument import PDFPasswordIncorrect

import agents.pdf_menu_parser as pdf_module
from agents.pdf_menu_parser import (
    PDFMenuParser, _is_encryption_error, clean_extracted_text, is_non_menu_content, normalize_category,
)
from utils.errors import EncryptedResource
from utils.llm_client import LLMClient
from utils.menu_models import DiscoveryMethod, ExtractionStrategy

from conftest import make_test_config

logger = logging.getLogger(__name__)

PDF_URL = "https://harborgrill.com/files/menu.pdf"
MENU_TEXT = (
    "Harbor Grill\n"
    "STARTERS\n"
    "Caesar Salad ........ $8.95\n"
    "www.harborgrill.com\n"
    "555-123-4567"
)


class FakeContent:
    def __init__(self, chunks):
        self.chunks = chunks

    async def iter_chunked(self, size):
        for chunk in self.chunks:
            yield chunk


class FakeResponse:
    def __init__(self, status=200, body=b"", content_length=None):
        self.status = status
        self.content_length = content_length
        self.content = FakeContent([body] if body else [])

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response, **kwargs):
        self.response = response
        self.kwargs = kwargs

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url, allow_redirects=True):
        if isinstance(self.response, BaseException):
            raise self.response
        return self.response


def _parser(response=None, llm=None, **overrides):
    config = make_test_config(**overrides)
    return PDFMenuParser(config, llm=llm, session_factory=lambda **kwargs: FakeSession(response, **kwargs))


def _serve_text(monkeypatch, parser, text):
    async def fake_download(url):
        return b"%PDF-1.7 fake"

    monkeypatch.setattr(parser, "download", fake_download)
    monkeypatch.setattr(pdf_module, "extract_pdf_text", lambda data: text)


def test_clean_extracted_text():
    text = "Page 1 of 2\nCaesar Salad ........ $8.95\nGrilledSalmon ---- $24\n\n\n\n1/2"
    assert clean_extracted_text(text) == "Caesar Salad $8.95\nGrilled Salmon $24"


def test_pattern_parsing_of_leader_lines():
    """Test 'STARTERS / Caesar Salad ........ $8.95'"""
    logger.info("🧪 Testing PDF pattern parsing")
    parser = _parser()
    items, categories = parser.parse_with_patterns(clean_extracted_text("STARTERS\nCaesar Salad ........ $8.95"))

    assert len(items) == 1
    assert items[0].name == "Caesar Salad"
    assert items[0].price == "$8.95"
    assert items[0].category == "appetizer"
    assert items[0].extraction_strategy == ExtractionStrategy.PDF_PATTERN
    assert categories == ["appetizer"]


def test_name_description_split_and_priceless_dishes():
    parser = _parser()
    item = parser.extract_menu_item("Fish Tacos - beer battered cod, slaw 16.50", "main")
    assert item.name == "Fish Tacos"
    assert item.description == "beer battered cod, slaw"
    assert item.price == "$16.50"

    priceless = parser.extract_menu_item("Grilled chicken with lemon sauce", "main")
    assert priceless.name == "Grilled chicken with lemon sauce"
    assert priceless.price == ""

    assert parser.extract_menu_item("Thank you for dining with us", "other") is None


def test_parse_success_with_restaurant_info(monkeypatch):
    parser = _parser()
    _serve_text(monkeypatch, parser, MENU_TEXT)
    result = asyncio.run(parser.parse(PDF_URL))

    assert result.success
    assert result.discovery_method == DiscoveryMethod.PDF_PARSING
    assert result.menu_page_url == PDF_URL
    assert [item.name for item in result.items] == ["Caesar Salad"]
    assert result.restaurant_info.name == "Harbor Grill"
    assert result.restaurant_info.phone == "555-123-4567"
    assert result.restaurant_info.website == "www.harborgrill.com"
    assert result.raw_text.startswith("Harbor Grill")


def test_model_parsing_when_available(monkeypatch):
    reply = (
        '{"menuItems": [{"name": "Clam Chowder", "price": "9.75", "category": "Soups", '
        '"description": "New England style"}], "categories": ["Soups"], '
        '"restaurantInfo": {"name": "Harbor Grill"}}'
    )
    llm = LLMClient(make_test_config(), model=FakeListChatModel(responses=[reply]))
    parser = _parser(llm=llm)
    _serve_text(monkeypatch, parser, MENU_TEXT)
    result = asyncio.run(parser.parse(PDF_URL))

    assert result.success
    assert result.items[0].name == "Clam Chowder"
    assert result.items[0].price == "$9.75"
    assert result.items[0].category == "soup"
    assert result.items[0].extraction_strategy == ExtractionStrategy.PDF_AI
    assert parser.get_stats()["ai_parses"] == 1


def test_missing_pdf():
    result = asyncio.run(_parser(FakeResponse(status=404)).parse(PDF_URL))
    assert not result.success
    assert result.discovery_method == DiscoveryMethod.PDF_PARSING_FAILED
    assert result.reason == "PDF not found (404) - the menu link may be outdated"


def test_access_denied_and_timeout():
    denied = asyncio.run(_parser(FakeResponse(status=403)).parse(PDF_URL))
    assert denied.reason == "Access denied to PDF - the restaurant may have restricted access"

    timed_out = asyncio.run(_parser(asyncio.TimeoutError()).parse(PDF_URL))
    assert timed_out.reason == "PDF download timeout - file may be too large or server too slow"


def test_size_cap_on_header_and_stream():
    declared = asyncio.run(_parser(FakeResponse(content_length=5000), PDF_MAX_SIZE=1000).parse(PDF_URL))
    assert declared.reason == "PDF file too large: 5000 bytes (max: 1000)"

    streamed = asyncio.run(_parser(FakeResponse(body=b"%PDF" + b"x" * 2000), PDF_MAX_SIZE=1000).parse(PDF_URL))
    assert streamed.reason == "PDF file too large: 2004 bytes (max: 1000)"


def test_not_a_pdf():
    result = asyncio.run(_parser(FakeResponse(body=b"<html>Menu coming soon</html>")).parse(PDF_URL))
    assert result.reason == "Invalid PDF file format"


def test_encrypted_and_image_only_pdfs(monkeypatch):
    parser = _parser()

    def encrypted(data):
        raise EncryptedResource()

    _serve_text(monkeypatch, parser, "")
    monkeypatch.setattr(pdf_module, "extract_pdf_text", encrypted)
    assert asyncio.run(parser.parse(PDF_URL)).reason == "PDF is password protected and cannot be read"

    _serve_text(monkeypatch, parser, "  12  ")
    assert asyncio.run(parser.parse(PDF_URL)).reason == "PDF contains no readable text or may be image-based"


def test_encryption_detection():
    assert _is_encryption_error(PDFPasswordIncorrect())
    assert _is_encryption_error(RuntimeError("file is encrypted"))
    assert not _is_encryption_error(RuntimeError("unexpected EOF"))


def test_category_and_non_menu_helpers():
    assert normalize_category("STARTERS") == "appetizer"
    assert normalize_category("Cocktails") == "beverage"
    assert normalize_category("Chef's Table") == "other"
    assert normalize_category("") == "other"

    assert is_non_menu_content("Monday - Friday 11am - 10pm")
    assert is_non_menu_content("www.harborgrill.com")
    assert not is_non_menu_content("Caesar Salad $8.95")
