# agents/pdf_menu_parser.py
"""
PDF menu pipeline: download, text extraction, cleanup and item parsing.

Items come from the chat model when one is configured (text is sent in
line-aligned chunks) and from line patterns otherwise, or when the model
returns nothing usable.
"""

import asyncio
import io
import logging
import re
import time
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import pdfplumber
from langchain_core.prompts import ChatPromptTemplate
from langsmith import traceable
from pdfminer.pdfdocument import PDFPasswordIncorrect
from pdfminer.pdfparser import PDFSyntaxError

from prompts.prompt_templates import PDF_MENU_PARSING_PROMPT, PDF_MENU_PARSING_HUMAN
from utils.async_utils import sync_to_async
from utils.errors import (
    ClassificationUnavailable, EncryptedResource, FetchFailure, InvalidPDF, OversizedResource,
    ParseFailure, PDFAccessDenied, PDFDownloadTimeout, PDFNotFound, PDFResourceError, UnreadableResource,
)
from utils.llm_client import LLMClient
from utils.menu_dedup import dedupe_items
from utils.menu_models import (
    DEFAULT_CATEGORY, DiscoveryMethod, DiscoveryResult, ExtractionStrategy, MenuItem, RestaurantInfo,
)
from utils.price_lexer import contains_price, detect_dominant_currency, find_prices, is_price_only
from utils.url_utils import site_origin

logger = logging.getLogger(__name__)

NON_MENU_PATTERNS = [
    re.compile(r'^(monday|tuesday|wednesday|thursday|friday|saturday|sunday)', re.I),
    re.compile(r'\d{1,2}:\d{2}\s*(am|pm)', re.I),
    re.compile(r'^(hours|phone|address|website|email|fax)', re.I),
    re.compile(r'^(www\.|http|@)', re.I),
    re.compile(r'^\d{3}-\d{3}-\d{4}'),
    re.compile(r'^\(\d{3}\)\s*\d{3}-\d{4}'),
    re.compile(r'^page \d+', re.I),
    re.compile(r'^(copyright|all rights reserved|terms|conditions)', re.I),
    re.compile(r'^(thank you|please|welcome|location|directions)', re.I),
    re.compile(r'^(we are|we\'re|our |about|history|since)', re.I),
    re.compile(r'^(home|menu|contact|order|online)$', re.I),
    re.compile(r'^(catering|events|private|party|book)', re.I),
    re.compile(r'^\d+\s+\w+\s+(street|st|avenue|ave|road|rd|drive|dr|lane|ln|blvd)\b', re.I),
    re.compile(r'^\w+,\s*\w{2}\s*\d{5}'),
    re.compile(r'(facebook|instagram|twitter|tiktok)', re.I),
]

CATEGORY_KEYWORD_RE = re.compile(
    r'^(appetizers?|starters?|small plates|salads?|soups?|mains?|main courses?|entr[eé]es?|'
    r'desserts?|sweets|beverages?|drinks|wines?|beers?|cocktails?|sides|'
    r'breakfast|lunch|dinner|brunch|pizzas?|pastas?|burgers?|sandwiches|wraps)\b',
    re.I,
)
CATEGORY_MAP = [
    (re.compile(r'appetizer|starter|small plate', re.I), 'appetizer'),
    (re.compile(r'salad', re.I), 'salad'),
    (re.compile(r'soup', re.I), 'soup'),
    (re.compile(r'dessert|sweet', re.I), 'dessert'),
    (re.compile(r'drink|beverage|cocktail|wine|beer|coffee|tea\b', re.I), 'beverage'),
    (re.compile(r'\bsides?\b', re.I), 'side'),
    (re.compile(r'main|entr[eé]e', re.I), 'main'),
]
VALID_CATEGORIES = {'appetizer', 'main', 'dessert', 'beverage', 'salad', 'soup', 'side', 'other'}

FOOD_KEYWORDS = [
    'grilled', 'fried', 'baked', 'roasted', 'steamed', 'sautéed', 'braised',
    'chicken', 'beef', 'pork', 'fish', 'salmon', 'shrimp', 'pasta', 'rice',
    'cheese', 'mushroom', 'onion', 'tomato', 'lettuce', 'avocado', 'tofu',
    'fresh', 'organic', 'seasonal', 'homemade', 'crispy', 'tender',
    'sandwich', 'burger', 'pizza', 'salad', 'soup', 'steak', 'wrap',
    'served', 'topped', 'sauce', 'dressing',
]
NON_FOOD_START_RE = re.compile(r'^(we|our|all|the|this|that|please|thank|call|visit)\b', re.I)
TRAILING_PRICE_RE = re.compile(r'(?P<price>[$£€¥₹]?\s?\d{1,4}(?:[.,]\d{1,2})?\s?[$£€¥₹]?)\s*$')
PHONE_RE = re.compile(r'(\d{3}[-.\s]?\d{3}[-.\s]?\d{4})')
WEBSITE_RE = re.compile(r'(www\.[^\s]+|https?://[^\s]+)')
RESTAURANT_NAME_RE = re.compile(r"^[A-Za-z\s&']+$")


def _is_encryption_error(error: BaseException) -> bool:
    """pdfplumber may wrap pdfminer's errors, so look at the cause chain too"""
    seen = 0
    current: Optional[BaseException] = error
    while current is not None and seen < 5:
        if isinstance(current, PDFPasswordIncorrect):
            return True
        message = f"{type(current).__name__} {current}".lower()
        if 'password' in message or 'encrypt' in message:
            return True
        current = current.__cause__ or current.__context__
        seen += 1
    return False


def _is_syntax_error(error: BaseException) -> bool:
    current: Optional[BaseException] = error
    seen = 0
    while current is not None and seen < 5:
        if isinstance(current, PDFSyntaxError):
            return True
        current = current.__cause__ or current.__context__
        seen += 1
    return False


def extract_pdf_text(data: bytes) -> str:
    """Text of every page, blank-line separated (blocking; run in a thread)"""
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = []
            for page in pdf.pages:
                text = page.extract_text() or ""
                if text.strip():
                    pages.append(text)
            return "\n\n".join(pages)
    except Exception as e:
        if _is_encryption_error(e):
            raise EncryptedResource() from e
        if _is_syntax_error(e):
            raise InvalidPDF() from e
        raise InvalidPDF(f"Invalid PDF file format: {e}") from e


def clean_extracted_text(text: str) -> str:
    """Remove pagination artefacts, leaders and broken spacing"""
    if not text:
        return ""
    text = re.sub(r'\bPage\s+\d+(\s+of\s+\d+)?\b', ' ', text, flags=re.I)
    text = re.sub(r'(?<![\d$£€¥₹.,])\b\d{1,3}\s*/\s*\d{1,3}\b(?![\d.,])', ' ', text)
    text = re.sub(r'([a-z])([A-Z])', r'\1 \2', text)
    text = re.sub(r'\.{3,}|…+', ' ', text)
    text = re.sub(r'-{3,}|_{3,}', ' ', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def is_non_menu_content(line: str) -> bool:
    return any(pattern.search(line) for pattern in NON_MENU_PATTERNS)


def contains_food_keywords(line: str) -> bool:
    lowered = line.lower()
    return any(re.search(rf'\b{re.escape(keyword)}\b', lowered) for keyword in FOOD_KEYWORDS)


def looks_like_category(line: str) -> bool:
    line = line.strip()
    if not line or len(line) >= 30 or contains_price(line):
        return False
    if re.fullmatch(r'[A-Z][A-Z\s&\']{2,19}', line):
        return True
    return bool(CATEGORY_KEYWORD_RE.match(line))


def normalize_category(text: str) -> str:
    if not text:
        return 'other'
    lowered = text.strip().lower()
    if lowered in VALID_CATEGORIES:
        return lowered
    for pattern, category in CATEGORY_MAP:
        if pattern.search(lowered):
            return category
    return 'other'


def looks_like_food_item(text: str) -> bool:
    if NON_FOOD_START_RE.match(text):
        return False
    if PHONE_RE.search(text) or re.search(r'www\.|\.com\b|\.net\b', text):
        return False
    if re.fullmatch(r'[A-Z\s]+', text):
        return False
    return contains_food_keywords(text)


class PDFMenuParser:
    """parse(pdf_url) -> DiscoveryResult tagged pdf-parsing / pdf-parsing-failed"""

    def __init__(self, config, llm: Optional[LLMClient] = None, session_factory=None):
        self.config = config
        self.llm = llm if llm is not None else LLMClient(
            config, timeout=getattr(config, 'PDF_PARSING_TIMEOUT', 120.0))
        self.session_factory = session_factory or aiohttp.ClientSession
        self.max_size = getattr(config, 'PDF_MAX_SIZE', 50 * 1024 * 1024)
        self.download_timeout = getattr(config, 'PDF_DOWNLOAD_TIMEOUT', 120.0)
        self.min_text_length = getattr(config, 'PDF_MIN_TEXT_LENGTH', 50)
        self.chunk_size = getattr(config, 'PDF_CHUNK_SIZE', 6000)
        self.chunk_delay = getattr(config, 'PDF_CHUNK_DELAY', 0.3)
        self.raw_text_limit = getattr(config, 'PDF_RAW_TEXT_LIMIT', 5000)
        self.max_items = getattr(config, 'MAX_TOTAL_ITEMS', 200)
        self.max_description = getattr(config, 'MAX_DESCRIPTION_LENGTH', 200)

        self.prompt = ChatPromptTemplate.from_messages([
            ("system", PDF_MENU_PARSING_PROMPT),
            ("human", PDF_MENU_PARSING_HUMAN),
        ])

        self.stats = {
            "pdfs_processed": 0,
            "pdfs_failed": 0,
            "ai_parses": 0,
            "pattern_parses": 0,
            "bytes_downloaded": 0,
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @traceable(run_type="tool", name="pdf_menu_parsing")
    async def parse(self, pdf_url: str) -> DiscoveryResult:
        start_time = time.time()
        self.stats["pdfs_processed"] += 1
        logger.info(f"📄 Parsing PDF menu: {pdf_url}")

        try:
            data = await self.download(pdf_url)
            text = await self.extract_text(data)
            cleaned = clean_extracted_text(text)
            items, categories, info = await self.parse_menu_text(cleaned, pdf_url)
        except PDFResourceError as e:
            return self._failure(pdf_url, str(e), start_time)
        except FetchFailure as e:
            return self._failure(pdf_url, f"PDF download failed: {e}", start_time)
        except Exception as e:
            logger.error(f"❌ Unexpected error parsing PDF {pdf_url}: {e}")
            return self._failure(pdf_url, f"PDF parsing failed: {e}", start_time)

        if not items:
            return self._failure(pdf_url, "No menu items could be recognized in the PDF", start_time,
                                 raw_text=cleaned[:self.raw_text_limit])

        elapsed = time.time() - start_time
        logger.info(f"✅ PDF menu parsed: {len(items)} items in {elapsed:.2f}s")
        return DiscoveryResult(
            success=True,
            discovery_method=DiscoveryMethod.PDF_PARSING,
            url=pdf_url,
            menu_page_url=pdf_url,
            items=items,
            categories=frozenset(categories),
            restaurant_info=info,
            discovery_time=elapsed,
            raw_text=cleaned[:self.raw_text_limit],
        )

    def _failure(self, pdf_url: str, reason: str, start_time: float,
                 raw_text: Optional[str] = None) -> DiscoveryResult:
        self.stats["pdfs_failed"] += 1
        logger.warning(f"❌ PDF menu failed ({pdf_url}): {reason}")
        return DiscoveryResult(
            success=False,
            discovery_method=DiscoveryMethod.PDF_PARSING_FAILED,
            url=pdf_url,
            menu_page_url=pdf_url,
            reason=reason,
            restaurant_info=RestaurantInfo(website=site_origin(pdf_url)),
            discovery_time=time.time() - start_time,
            raw_text=raw_text,
        )

    async def download(self, pdf_url: str) -> bytes:
        """Stream the PDF into memory, refusing anything over the size cap"""
        timeout = aiohttp.ClientTimeout(total=self.download_timeout)
        headers = {
            'User-Agent': getattr(self.config, 'DESKTOP_USER_AGENT', 'Mozilla/5.0'),
            'Accept': 'application/pdf,*/*',
        }
        try:
            async with self.session_factory(timeout=timeout, headers=headers) as session:
                async with session.get(pdf_url, allow_redirects=True) as response:
                    if response.status == 404:
                        raise PDFNotFound()
                    if response.status == 403:
                        raise PDFAccessDenied()
                    if response.status >= 400:
                        raise FetchFailure(pdf_url, f"HTTP {response.status}", status=response.status)

                    declared = response.content_length
                    if declared and declared > self.max_size:
                        raise OversizedResource(declared, self.max_size)

                    buffer = bytearray()
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        buffer.extend(chunk)
                        if len(buffer) > self.max_size:
                            raise OversizedResource(len(buffer), self.max_size)
        except asyncio.TimeoutError:
            raise PDFDownloadTimeout()
        except aiohttp.ClientError as e:
            raise FetchFailure(pdf_url, f"Network error: {e}")

        self.stats["bytes_downloaded"] += len(buffer)
        logger.info(f"📥 Downloaded {len(buffer)} bytes from {pdf_url}")
        return bytes(buffer)

    async def extract_text(self, data: bytes) -> str:
        if not data or not data.lstrip().startswith(b'%PDF'):
            raise InvalidPDF()
        text = await sync_to_async(extract_pdf_text)(data)
        if len(text.strip()) < self.min_text_length:
            raise UnreadableResource()
        logger.info(f"📄 Extracted {len(text)} characters of PDF text")
        return text

    async def parse_menu_text(self, text: str, source_url: str = "") -> Tuple[List[MenuItem], List[str], RestaurantInfo]:
        """Items, categories and restaurant details from cleaned PDF text"""
        currency = detect_dominant_currency(text)
        info = self.extract_restaurant_info(text, source_url)

        if self.llm.available:
            try:
                items, categories, ai_info = await self.parse_with_ai(text, source_url, currency)
                if items:
                    self.stats["ai_parses"] += 1
                    return items, categories, info.merged_with(ai_info)
                logger.warning("⚠️ Model returned no PDF menu items - using pattern parsing")
            except ClassificationUnavailable as e:
                logger.warning(f"⚠️ Model unavailable for PDF parsing ({e}) - using pattern parsing")

        self.stats["pattern_parses"] += 1
        items, categories = self.parse_with_patterns(text, source_url, currency)
        return items, categories, info

    # ------------------------------------------------------------------
    # Model-backed parsing
    # ------------------------------------------------------------------

    def pre_filter_menu_content(self, text: str) -> str:
        kept = []
        for line in (line.strip() for line in text.split('\n')):
            if len(line) < 3 or len(line) > 300:
                continue
            if is_non_menu_content(line):
                continue
            if re.fullmatch(r'\d+', line) or re.fullmatch(r'\d{1,2}/\d{1,2}/\d{2,4}', line):
                continue
            if looks_like_category(line) or contains_price(line) or contains_food_keywords(line) \
                    or looks_like_food_item(line):
                kept.append(line)
        logger.debug(f"Pre-filter kept {len(kept)} lines")
        return '\n'.join(kept)

    def split_text_into_chunks(self, text: str) -> List[str]:
        chunks, current, size = [], [], 0
        for line in text.split('\n'):
            if current and size + len(line) + 1 > self.chunk_size:
                chunks.append('\n'.join(current))
                current, size = [], 0
            current.append(line)
            size += len(line) + 1
        if current:
            chunks.append('\n'.join(current))
        return chunks

    async def parse_with_ai(self, text: str, source_url: str,
                            currency: str) -> Tuple[List[MenuItem], List[str], RestaurantInfo]:
        filtered = self.pre_filter_menu_content(text) or text
        chunks = self.split_text_into_chunks(filtered)
        items: List[MenuItem] = []
        categories: List[str] = []
        info = RestaurantInfo()

        for number, chunk in enumerate(chunks, start=1):
            if number > 1 and self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            try:
                parsed = await self.llm.invoke_json(self.prompt, {
                    "menu_text": chunk,
                    "chunk_number": number,
                    "chunk_total": len(chunks),
                })
            except ParseFailure as e:
                logger.warning(f"⚠️ PDF chunk {number}/{len(chunks)}: {e}")
                continue
            if not isinstance(parsed, dict):
                logger.warning(f"⚠️ PDF chunk {number}/{len(chunks)} gave no usable JSON")
                continue

            for entry in parsed.get("menuItems") or []:
                item = self._item_from_ai(entry, source_url, currency)
                if item:
                    items.append(item)
            for category in parsed.get("categories") or []:
                if isinstance(category, str) and category.strip() and category.strip() not in categories:
                    categories.append(category.strip())
            raw_info = parsed.get("restaurantInfo")
            if isinstance(raw_info, dict):
                info = info.merged_with(RestaurantInfo(
                    name=str(raw_info.get("name") or ""),
                    website=str(raw_info.get("website") or ""),
                    phone=raw_info.get("phone") or None,
                    address=raw_info.get("address") or None,
                ))

        items = dedupe_items(items)[:self.max_items]
        for item in items:
            if item.category not in categories:
                categories.append(item.category)
        return items, categories, info

    def _item_from_ai(self, entry: Any, source_url: str, currency: str) -> Optional[MenuItem]:
        if not isinstance(entry, dict):
            return None
        name = re.sub(r'\s+', ' ', str(entry.get("name") or "")).strip()
        if not (3 <= len(name) <= 200) or is_price_only(name):
            return None
        price = str(entry.get("price") or "").strip()
        if price:
            matches = find_prices(price, currency)
            if matches:
                price = matches[0].tagged
            elif re.fullmatch(r'\d+(?:[.,]\d{1,2})?', price):
                price = f"{currency}{price}"
            else:
                price = ""
        description = re.sub(r'\s+', ' ', str(entry.get("description") or "")).strip()
        return MenuItem(
            name=name,
            price=price,
            description=description[:self.max_description],
            category=normalize_category(str(entry.get("category") or "")),
            source_url=source_url,
            extraction_strategy=ExtractionStrategy.PDF_AI,
        )

    # ------------------------------------------------------------------
    # Pattern fallback
    # ------------------------------------------------------------------

    def parse_with_patterns(self, text: str, source_url: str = "",
                            currency: Optional[str] = None) -> Tuple[List[MenuItem], List[str]]:
        currency = currency or detect_dominant_currency(text)
        items: List[MenuItem] = []
        categories: List[str] = []
        current_category = 'other'

        for line in (line.strip() for line in text.split('\n')):
            if len(line) < 3 or is_non_menu_content(line):
                continue
            if looks_like_category(line):
                current_category = normalize_category(line)
                if current_category not in categories:
                    categories.append(current_category)
                continue
            item = self.extract_menu_item(line, current_category, source_url, currency)
            if item:
                items.append(item)

        items = dedupe_items(items)[:self.max_items]
        logger.info(f"📋 Pattern parsing found {len(items)} items in {len(categories)} categories")
        return items, categories

    def extract_menu_item(self, line: str, category: str, source_url: str = "",
                          currency: str = '$') -> Optional[MenuItem]:
        match = TRAILING_PRICE_RE.search(line)
        if match and match.start() > 0 and re.search(r'[A-Za-z]', line[:match.start()]):
            raw_price = match.group('price').strip()
            body = line[:match.start()].strip(' \t-–—:|.·')
            name, description = body, ""
            for separator in (' - ', ' – ', ' | '):
                if separator in body:
                    name, description = (part.strip() for part in body.split(separator, 1))
                    break

            if not (3 <= len(name) <= 200) or is_price_only(name):
                return None
            matches = find_prices(raw_price, currency)
            if matches:
                price = matches[0].tagged
            else:
                price = f"{currency}{re.sub(r'[^0-9.,]', '', raw_price)}"
            return MenuItem(
                name=name,
                price=price,
                description=description[:self.max_description],
                category=category or DEFAULT_CATEGORY,
                source_url=source_url,
                extraction_strategy=ExtractionStrategy.PDF_PATTERN,
            )

        cleaned = line.strip()
        if 10 <= len(cleaned) <= 100 and looks_like_food_item(cleaned):
            return MenuItem(
                name=cleaned,
                category=category or DEFAULT_CATEGORY,
                source_url=source_url,
                extraction_strategy=ExtractionStrategy.PDF_PATTERN,
            )
        return None

    def extract_restaurant_info(self, text: str, source_url: str = "") -> RestaurantInfo:
        phone_match = PHONE_RE.search(text or "")
        website_match = WEBSITE_RE.search(text or "")

        name = ""
        for line in (text or "").split('\n')[:10]:
            line = line.strip()
            if 5 <= len(line) <= 50 and RESTAURANT_NAME_RE.match(line) \
                    and not CATEGORY_KEYWORD_RE.match(line) and not is_non_menu_content(line):
                name = line
                break

        website = website_match.group(1).rstrip('.,;)') if website_match else ""
        if not website and source_url:
            website = site_origin(source_url)
        return RestaurantInfo(
            name=name,
            website=website,
            phone=phone_match.group(1) if phone_match else None,
        )

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
