# agents/item_extractor.py
"""
Menu item extraction from arbitrary restaurant HTML.

Seven independent strategies each turn a parsed page into MenuItem
candidates. They run in trust order and are merged by keeping the first
occurrence of every normalized name, so a structured-data item always wins
over the same dish found by text mining. One strategy blowing up never
stops the others.
"""

import json
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from readability import Document

from agents.pdf_menu_parser import looks_like_food_item
from utils.menu_dedup import dedupe_items, normalize_name
from utils.menu_models import DEFAULT_CATEGORY, ExtractionStrategy, MenuItem, RestaurantInfo
from utils.price_lexer import ISO_CODES, detect_dominant_currency, find_prices, is_price_only
from utils.text_normalizer import collapse_whitespace
from utils.url_utils import site_origin

logger = logging.getLogger(__name__)

HEADING_TAGS = {'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}
BLOCK_TAGS = HEADING_TAGS | {
    'address', 'article', 'aside', 'blockquote', 'caption', 'dd', 'details', 'div', 'dl', 'dt',
    'fieldset', 'figcaption', 'figure', 'footer', 'header', 'hr', 'li', 'main', 'nav', 'ol', 'p',
    'pre', 'section', 'summary', 'table', 'tbody', 'td', 'tfoot', 'th', 'thead', 'tr', 'ul',
}
STRIPPED_TAGS = ['script', 'style', 'noscript', 'template', 'svg', 'iframe', 'select', 'option']

# Broad naming conventions used by menu widgets and site builders
GENERIC_ITEM_SELECTORS = (
    '[class*="menu"], [class*="item"], [class*="dish"], [class*="food"], '
    '[class*="product"], [class*="card"], [id*="menu"], article, [role="listitem"]'
)
PRICE_SELECTORS = '[class*="price"], [class*="cost"], [class*="amount"], .currency, [itemprop="price"]'
NAME_SELECTORS = ('h1, h2, h3, h4, h5, h6, [class*="name"], [class*="title"], '
                  '[itemprop="name"], strong, b, dt')
DESCRIPTION_SELECTORS = '[class*="desc"], [class*="ingredients"], [itemprop="description"], p, dd'
CATEGORY_SELECTORS = ('h1, h2, h3, h4, h5, h6, [class*="category"], [class*="section-title"], '
                      '[class*="section-heading"], [class*="menu-title"], caption')

ITEM_CLASS_RE = re.compile(r'item|dish|product|card', re.IGNORECASE)
VISUAL_CLASS_RE = re.compile(r'(?<![a-z])(card|tile|box|panel|grid|flex|row|col)', re.IGNORECASE)
VISUAL_STYLE_RE = re.compile(r'display\s*:\s*(flex|grid|inline-flex)', re.IGNORECASE)

MENU_KEYWORDS_RE = re.compile(
    r'\b(menu|appetizers?|starters?|entr[eé]es?|mains?|desserts?|salads?|soups?|sides|'
    r'beverages?|drinks|wines?|cocktails?|beers?|burgers?|pizzas?|pastas?|sandwich(?:es)?|'
    r'served with|grilled|fried|roasted|vegan|vegetarian|gluten[- ]free)\b',
    re.IGNORECASE,
)

# Lines that are never dishes
NON_ITEM_RE = re.compile(
    r'\b(phone|tel|telephone|fax|address|e-?mail|copyright|all rights reserved|privacy|'
    r'cookie policy|subscribe|newsletter|sign in|log ?in|opening hours|open daily|follow us)\b'
    r'|©|@|https?://|www\.'
    r'|\b\d{3}[-.\s]\d{3}[-.\s]\d{4}\b'
    r'|\b\d{1,2}(:\d{2})?\s*(am|pm)\s*[-–]\s*\d{1,2}(:\d{2})?\s*(am|pm)\b',
    re.IGNORECASE,
)
LIST_SEPARATORS_RE = re.compile(r'\s*(?:\n|•|·|–|—|\|)\s*')
NAME_TRIM_CHARS = ' \t-–—:|.·•*,;…'
LEADING_MARKER_RE = re.compile(r'^(?:[•·*▪►\-–—]+|\d{1,2}[.)])\s+')
PHONE_RE = re.compile(r'(\+?\d{1,2}[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}')

LINE_CANDIDATE_MAX_LENGTH = 100


@dataclass
class PageContext:
    """One parsed page shared (read-only) by every strategy"""
    source_url: str
    soup: BeautifulSoup
    json_ld: List[Any]
    currency: str
    html: str = ""


@dataclass
class PageExtraction:
    items: List[MenuItem] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    restaurant_info: RestaurantInfo = field(default_factory=RestaurantInfo)
    title: str = ""
    strategy_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def priced_items(self) -> List[MenuItem]:
        return [item for item in self.items if item.price]


class ItemExtractor:
    """extract(html, source_url) -> [MenuItem]; never raises"""

    def __init__(self, config=None):
        self.config = config
        self.max_items = getattr(config, 'MAX_ITEMS_PER_PAGE', 150)
        self.max_description = getattr(config, 'MAX_DESCRIPTION_LENGTH', 200)
        self.max_categories = getattr(config, 'MAX_CATEGORIES', 20)
        self.name_min = getattr(config, 'ITEM_NAME_MIN_LENGTH', 3)
        self.name_max = getattr(config, 'ITEM_NAME_MAX_LENGTH', 200)

        # Merge trust order
        self.strategies: List[Tuple[ExtractionStrategy, Callable[[PageContext], List[MenuItem]]]] = [
            (ExtractionStrategy.STRUCTURED_DATA, self._extract_structured_data),
            (ExtractionStrategy.TABULAR, self._extract_tabular),
            (ExtractionStrategy.CONTENT_DENSITY, self._extract_content_density),
            (ExtractionStrategy.GENERIC_SELECTOR, self._extract_generic_selectors),
            (ExtractionStrategy.LIST, self._extract_lists),
            (ExtractionStrategy.VISUAL, self._extract_visual),
            (ExtractionStrategy.AGGRESSIVE_TEXT, self._extract_aggressive_text),
        ]

        self.stats = {
            "pages_processed": 0,
            "items_extracted": 0,
            "strategy_failures": 0,
            "strategy_hits": {strategy.value: 0 for strategy, _ in self.strategies},
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, html: str, source_url: str) -> List[MenuItem]:
        return self.extract_page(html, source_url).items

    def extract_page(self, html: str, source_url: str) -> PageExtraction:
        """Run every strategy over *html* and merge the results"""
        self.stats["pages_processed"] += 1
        if not html:
            return PageExtraction(restaurant_info=RestaurantInfo(website=self._origin(source_url)))

        try:
            context = self._build_context(html, source_url)
        except Exception as e:
            logger.error(f"❌ Could not parse page {source_url}: {e}")
            return PageExtraction(restaurant_info=RestaurantInfo(website=self._origin(source_url)))

        candidates: List[MenuItem] = []
        counts: Dict[str, int] = {}
        for strategy, run in self.strategies:
            try:
                found = run(context)
            except Exception as e:
                self.stats["strategy_failures"] += 1
                logger.warning(f"⚠️ {strategy.value} extraction failed on {source_url}: {e}")
                continue
            counts[strategy.value] = len(found)
            if found:
                self.stats["strategy_hits"][strategy.value] += 1
                candidates.extend(found)

        items = dedupe_items(candidates, fuzzy=False)[:self.max_items]
        self.stats["items_extracted"] += len(items)

        title = self._safe(lambda: collapse_whitespace(context.soup.title.get_text()) if context.soup.title else "", "")
        categories = self._safe(lambda: self._extract_categories(context, items), [])
        info = self._safe(lambda: self._extract_restaurant_info(context, title),
                          RestaurantInfo(website=self._origin(source_url)))

        if items:
            logger.info(f"🍽️ {len(items)} items from {source_url} "
                        f"({', '.join(f'{k}={v}' for k, v in counts.items() if v)})")
        return PageExtraction(items=items, categories=categories, restaurant_info=info,
                              title=title, strategy_counts=counts)

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)

    # ------------------------------------------------------------------
    # Page preparation
    # ------------------------------------------------------------------

    def _build_context(self, html: str, source_url: str) -> PageContext:
        soup = BeautifulSoup(html, 'html.parser')

        json_ld = []
        for script in soup.select('script[type="application/ld+json"]'):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                json_ld.append(json.loads(raw))
            except json.JSONDecodeError as e:
                logger.debug(f"Skipping malformed JSON-LD on {source_url}: {e}")

        for element in soup(STRIPPED_TAGS):
            element.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        currency = detect_dominant_currency(soup.get_text(' '))
        return PageContext(source_url=source_url, soup=soup, json_ld=json_ld, currency=currency, html=html)

    @staticmethod
    def _safe(build, default):
        try:
            return build()
        except Exception as e:
            logger.debug(f"Page metadata extraction failed: {e}")
            return default

    @staticmethod
    def _origin(url: str) -> str:
        try:
            return site_origin(url)
        except ValueError:
            return url or ""

    # ------------------------------------------------------------------
    # Item construction
    # ------------------------------------------------------------------

    def _clean_name(self, name: str) -> str:
        name = collapse_whitespace(name)
        name = LEADING_MARKER_RE.sub('', name)
        name = re.sub(r'\.{2,}|…', ' ', name)
        return collapse_whitespace(name).strip(NAME_TRIM_CHARS)

    def _valid_name(self, name: str) -> bool:
        if not name or not (self.name_min <= len(name) <= self.name_max):
            return False
        if is_price_only(name):
            return False
        if sum(ch.isalpha() for ch in name) < 2:
            return False
        return not NON_ITEM_RE.search(name)

    def _make_item(self, ctx: PageContext, name: str, price: str = "", description: str = "",
                   category: Optional[str] = None,
                   strategy: ExtractionStrategy = ExtractionStrategy.AGGRESSIVE_TEXT) -> Optional[MenuItem]:
        name = self._clean_name(name or "")
        if not price:
            inline = find_prices(name, ctx.currency)
            if inline:
                last = inline[-1]
                price = last.tagged
                name = self._clean_name(name[:last.start] + ' ' + name[last.end:])
        if not self._valid_name(name):
            return None

        tagged_price = ""
        if price:
            matches = find_prices(price, ctx.currency)
            tagged_price = matches[0].tagged if matches else ""

        description = collapse_whitespace(description or "")
        if description and (normalize_name(description) == normalize_name(name) or is_price_only(description)):
            description = ""
        if len(description) > self.max_description:
            description = description[:self.max_description].rstrip() + "..."

        category = collapse_whitespace(category or "") or DEFAULT_CATEGORY
        return MenuItem(
            name=name,
            price=tagged_price,
            description=description,
            category=category,
            source_url=ctx.source_url,
            extraction_strategy=strategy,
        )

    # ------------------------------------------------------------------
    # DOM helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_page_chrome(tag: Tag) -> bool:
        """Site navigation, banners and footers, but not headers inside a card"""
        if tag.name == 'nav' or tag.get('role') in ('navigation', 'banner', 'contentinfo'):
            return True
        if tag.name in ('header', 'footer'):
            return tag.find_parent(['article', 'li']) is None
        return False

    def _block_lines(self, root: Tag, skip_chrome: bool = True) -> List[Tuple[str, bool]]:
        """
        Flatten *root* into (text, is_heading) lines.

        Inline content is joined with spaces, block boundaries and <br>
        start new lines. Iterative so deeply nested markup cannot blow the
        recursion limit.
        """
        lines: List[Tuple[str, bool]] = []
        buffer: List[str] = []

        def flush(is_heading: bool = False):
            text = collapse_whitespace(' '.join(buffer))
            buffer.clear()
            if text:
                lines.append((text, is_heading))

        stack: List[Tuple[Any, bool]] = [(root, False)]
        while stack:
            node, closing = stack.pop()
            if closing:
                flush(is_heading=node.name in HEADING_TAGS)
                continue
            if isinstance(node, NavigableString):
                # Comments, doctypes and CDATA are NavigableString subclasses
                if type(node) is NavigableString:
                    buffer.append(str(node))
                continue
            if not isinstance(node, Tag):
                continue
            if node.name == 'br':
                flush()
                continue
            if skip_chrome and node is not root and self._is_page_chrome(node):
                continue
            if node.name in BLOCK_TAGS:
                flush()
                stack.append((node, True))
            stack.extend((child, False) for child in reversed(list(node.children)))
        flush()
        return lines

    def _nearest_heading(self, element: Tag) -> Optional[str]:
        """Closest preceding section heading that is not some other item's name"""
        for heading in element.find_all_previous(list(HEADING_TAGS), limit=15):
            if any(ITEM_CLASS_RE.search(' '.join(parent.get('class', [])))
                   for parent in heading.parents if isinstance(parent, Tag)):
                continue
            text = collapse_whitespace(heading.get_text(' '))
            if 2 <= len(text) <= 60 and not find_prices(text):
                return text
        return None

    def _element_name(self, element: Tag) -> str:
        for candidate in element.select(NAME_SELECTORS):
            text = collapse_whitespace(candidate.get_text(' '))
            stripped = text
            for match in reversed(find_prices(text)):
                stripped = stripped[:match.start] + stripped[match.end:]
            stripped = self._clean_name(stripped)
            if self._valid_name(stripped):
                return stripped
        for text, _ in self._block_lines(element, skip_chrome=False):
            if not is_price_only(text):
                return text
        return ""

    def _element_price(self, element: Tag, ctx: PageContext) -> str:
        for price_el in element.select(PRICE_SELECTORS):
            text = price_el.get('content') or price_el.get_text(' ')
            matches = find_prices(text, ctx.currency)
            if not matches and re.fullmatch(r'\s*\d+(?:[.,]\d{1,2})?\s*', text or ''):
                return f"{ctx.currency}{text.strip()}"
            if matches:
                return matches[0].tagged
        matches = find_prices(element.get_text(' '), ctx.currency)
        return matches[0].tagged if matches else ""

    def _element_description(self, element: Tag, name: str) -> str:
        for desc_el in element.select(DESCRIPTION_SELECTORS):
            text = collapse_whitespace(desc_el.get_text(' '))
            if text and normalize_name(text) != normalize_name(name) and not is_price_only(text):
                return text
        rest = [text for text, _ in self._block_lines(element, skip_chrome=False)
                if normalize_name(text) != normalize_name(name) and not find_prices(text)]
        return ' '.join(rest)

    def _items_from_lines(self, lines: List[Tuple[str, bool]], ctx: PageContext,
                          strategy: ExtractionStrategy, keep_unpriced: bool) -> List[MenuItem]:
        """
        Pair names with prices across consecutive lines.

        A price on its own line belongs to the line (or heading) right
        before it. A heading followed by anything else is a section
        heading. Long plain lines right after an item become its
        description.
        """
        items: List[MenuItem] = []
        category: Optional[str] = None
        pending: Optional[Tuple[str, bool]] = None

        def emit(name, price="", description=""):
            item = self._make_item(ctx, name, price, description, category, strategy)
            if item:
                items.append(item)
            return item

        def settle_pending():
            nonlocal category
            if pending is None:
                return
            text, is_heading = pending
            if is_heading:
                category = text
            elif keep_unpriced and len(text) <= LINE_CANDIDATE_MAX_LENGTH and looks_like_food_item(text):
                emit(text)

        last_emitted: Optional[MenuItem] = None
        for text, is_heading in lines:
            prices = find_prices(text, ctx.currency)

            if is_heading and not prices:
                settle_pending()
                pending = (text, True)
                last_emitted = None
                continue

            if prices:
                price = prices[-1]
                name_part = text[:price.start].strip(NAME_TRIM_CHARS)
                # "Name - description ... $12" keeps the description
                description = text[price.end:].strip(NAME_TRIM_CHARS)
                for splitter in (' - ', ' – ', ' — ', ' | '):
                    if splitter in name_part:
                        name_part, extra = name_part.split(splitter, 1)
                        description = ' '.join(filter(None, [extra, description]))
                        break
                if self._valid_name(self._clean_name(name_part)):
                    settle_pending()
                    last_emitted = emit(name_part, price.tagged, description)
                elif pending is not None:
                    last_emitted = emit(pending[0], price.tagged, description)
                else:
                    last_emitted = None
                pending = None
                continue

            if (last_emitted is not None and not last_emitted.description and pending is None
                    and len(text) > 40):
                items[-1] = self._make_item(ctx, last_emitted.name, last_emitted.price, text,
                                            last_emitted.category, strategy) or last_emitted
                last_emitted = None
                continue

            settle_pending()
            pending = (text, False)
            last_emitted = None

        settle_pending()
        return items

    # ------------------------------------------------------------------
    # Strategy 1: schema.org JSON-LD and microdata
    # ------------------------------------------------------------------

    @staticmethod
    def _tag_amount(price: str, code: Optional[str], ctx: PageContext) -> str:
        """Attach a currency to a schema.org price value such as '12' or '12.50'"""
        price = (price or "").strip()
        if not price:
            return ""
        if any(match.explicit for match in find_prices(price, ctx.currency)):
            return price
        amount = re.search(r'\d+(?:[.,]\d{1,2})?', price)
        if not amount:
            return ""
        symbol = ISO_CODES.get((code or "").strip().upper(), ctx.currency)
        return f"{symbol}{amount.group(0)}"

    def _ld_price(self, node: Dict[str, Any], ctx: PageContext) -> str:
        offers = node.get('offers')
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        price = None
        currency = None
        if isinstance(offers, dict):
            price = offers.get('price') or offers.get('lowPrice')
            currency = offers.get('priceCurrency')
        price = price if price is not None else node.get('price')
        currency = currency or node.get('priceCurrency')
        if price is None:
            return ""
        return self._tag_amount(str(price), str(currency) if currency else None, ctx)

    def _extract_structured_data(self, ctx: PageContext) -> List[MenuItem]:
        items: List[MenuItem] = []

        def walk(node, section: Optional[str]):
            if isinstance(node, list):
                for child in node:
                    walk(child, section)
                return
            if not isinstance(node, dict):
                return

            types = node.get('@type', [])
            types = [types] if isinstance(types, str) else (types if isinstance(types, list) else [])
            lowered = {str(t).lower() for t in types}

            if 'menusection' in lowered and node.get('name'):
                section = str(node['name'])
            if lowered & {'menuitem', 'product'} and node.get('name'):
                item = self._make_item(
                    ctx, str(node.get('name')), self._ld_price(node, ctx),
                    str(node.get('description') or ''), section, ExtractionStrategy.STRUCTURED_DATA,
                )
                if item:
                    items.append(item)

            for key, value in node.items():
                if key.startswith('@') and key != '@graph':
                    continue
                if key == 'offers':
                    continue
                if isinstance(value, (dict, list)):
                    walk(value, section)

        walk(ctx.json_ld, None)

        for element in ctx.soup.select('[itemtype*="schema.org/MenuItem"], [itemtype*="schema.org/Product"]'):
            name_el = element.select_one('[itemprop="name"]')
            if not name_el:
                continue
            price_el = element.select_one('[itemprop="price"]')
            price = ""
            if price_el:
                currency_el = element.select_one('[itemprop="priceCurrency"]')
                code = (currency_el.get('content') or currency_el.get_text()) if currency_el else None
                price = self._tag_amount(price_el.get('content') or price_el.get_text(' '), code, ctx)
            desc_el = element.select_one('[itemprop="description"]')
            section = None
            section_el = element.find_parent(attrs={'itemtype': re.compile(r'MenuSection', re.I)})
            if section_el:
                section_name = section_el.find(attrs={'itemprop': 'name'})
                section = section_name.get_text(' ') if section_name else None
            item = self._make_item(
                ctx, name_el.get('content') or name_el.get_text(' '), price,
                desc_el.get_text(' ') if desc_el else "", section or self._nearest_heading(element),
                ExtractionStrategy.STRUCTURED_DATA,
            )
            if item:
                items.append(item)

        return items

    # ------------------------------------------------------------------
    # Strategy 2: tables
    # ------------------------------------------------------------------

    def _extract_tabular(self, ctx: PageContext) -> List[MenuItem]:
        items = []
        for row in ctx.soup.find_all('tr'):
            cells = row.find_all(['td', 'th'], recursive=False)
            if len(cells) < 2:
                continue
            texts = [collapse_whitespace(cell.get_text(' ')) for cell in cells]
            middle = [t for t in texts[1:-1] if t]

            if find_prices(texts[-1], ctx.currency):
                name, price, description = texts[0], texts[-1], ' '.join(middle)
            elif middle and max(len(t) for t in middle) > 30:
                name, price, description = texts[0], "", max(middle, key=len)
            else:
                continue

            table = row.find_parent('table')
            caption = table.find('caption') if table else None
            category = (collapse_whitespace(caption.get_text(' ')) if caption else None) or self._nearest_heading(row)
            item = self._make_item(ctx, name, price, description, category, ExtractionStrategy.TABULAR)
            if item:
                items.append(item)
        return items

    # ------------------------------------------------------------------
    # Strategy 3: densest container
    # ------------------------------------------------------------------

    def _density_score(self, element: Tag, ctx: PageContext) -> Tuple[float, int]:
        text = element.get_text(' ')
        prices = len(find_prices(text, ctx.currency))
        keywords = len(MENU_KEYWORDS_RE.findall(text))
        return prices * 10 + keywords * 5 + len(text) / 100, prices

    def _extract_content_density(self, ctx: PageContext) -> List[MenuItem]:
        best, best_score, best_prices = None, 0.0, 0
        for element in ctx.soup.find_all(['main', 'section', 'article', 'div', 'ul', 'ol', 'table']):
            if self._is_page_chrome(element):
                continue
            score, prices = self._density_score(element, ctx)
            if score > best_score:
                best, best_score, best_prices = element, score, prices

        if best is None or not best_prices:
            # No prices anywhere: fall back to the page's main content block
            try:
                summary = Document(ctx.html).summary(html_partial=True)
            except Exception as e:
                logger.debug(f"Readability failed on {ctx.source_url}: {e}")
                return []
            best = BeautifulSoup(summary, 'html.parser')

        return self._items_from_lines(self._block_lines(best), ctx,
                                      ExtractionStrategy.CONTENT_DENSITY, keep_unpriced=False)

    # ------------------------------------------------------------------
    # Strategy 4: generic menu/item/dish selectors
    # ------------------------------------------------------------------

    def _item_from_element(self, element: Tag, ctx: PageContext,
                           strategy: ExtractionStrategy, require_price: bool = True) -> Optional[MenuItem]:
        name = self._element_name(element)
        if not name:
            return None
        price = self._element_price(element, ctx)
        if require_price and not price:
            return None
        description = self._element_description(element, name)
        return self._make_item(ctx, name, price, description, self._nearest_heading(element), strategy)

    def _extract_generic_selectors(self, ctx: PageContext) -> List[MenuItem]:
        items = []
        for element in ctx.soup.select(GENERIC_ITEM_SELECTORS):
            if element.find_parent(['nav']) or self._is_page_chrome(element):
                continue
            text = collapse_whitespace(element.get_text(' '))
            if not (3 <= len(text) <= 500):
                continue
            prices = find_prices(text, ctx.currency)
            # Two or more prices means a section container, not a dish
            if len(prices) >= 2:
                continue
            classes = ' '.join(element.get('class', []))
            # Named dish blocks may legitimately omit prices
            require_price = not re.search(r'menu-item|menu_item|dish', classes, re.IGNORECASE)
            item = self._item_from_element(element, ctx, ExtractionStrategy.GENERIC_SELECTOR, require_price)
            if item:
                items.append(item)
        return items

    # ------------------------------------------------------------------
    # Strategy 5: list items
    # ------------------------------------------------------------------

    def _extract_lists(self, ctx: PageContext) -> List[MenuItem]:
        items = []
        for li in ctx.soup.find_all(['li', 'dt']):
            if any(self._is_page_chrome(parent) for parent in li.parents if isinstance(parent, Tag)):
                continue
            if li.find('li'):
                continue
            source = li
            if li.name == 'dt':
                dd = li.find_next_sibling('dd')
                text = li.get_text('\n') + '\n' + (dd.get_text('\n') if dd else '')
            else:
                text = li.get_text('\n')
            parts = [p for p in LIST_SEPARATORS_RE.split(text) if p and p.strip()]
            full = collapse_whitespace(' '.join(parts))
            prices = find_prices(full, ctx.currency)
            if not prices and len(full) <= 20:
                continue

            name_parts = [p for p in parts if not is_price_only(p)]
            if not name_parts:
                continue
            name = name_parts[0]
            description = ' '.join(p for p in name_parts[1:] if not find_prices(p, ctx.currency))
            if len(name) > LINE_CANDIDATE_MAX_LENGTH:
                continue
            # An inline price is split off the name by _make_item
            price = "" if find_prices(name, ctx.currency) else (prices[-1].tagged if prices else "")
            item = self._make_item(ctx, name, price, description,
                                   self._nearest_heading(source), ExtractionStrategy.LIST)
            if item:
                items.append(item)
        return items

    # ------------------------------------------------------------------
    # Strategy 6: card / flex framed blocks holding a single price
    # ------------------------------------------------------------------

    def _extract_visual(self, ctx: PageContext) -> List[MenuItem]:
        items = []
        for element in ctx.soup.find_all(True):
            if element.name in HEADING_TAGS or element.name in ('body', 'html'):
                continue
            classes = ' '.join(element.get('class', []))
            style = element.get('style', '')
            if not (VISUAL_CLASS_RE.search(classes) or VISUAL_STYLE_RE.search(style)):
                continue
            if any(self._is_page_chrome(parent) for parent in element.parents if isinstance(parent, Tag)):
                continue
            text = collapse_whitespace(element.get_text(' '))
            if not (3 <= len(text) <= 300):
                continue
            if len(find_prices(text, ctx.currency)) != 1:
                continue
            item = self._item_from_element(element, ctx, ExtractionStrategy.VISUAL)
            if item:
                items.append(item)
        return items

    # ------------------------------------------------------------------
    # Strategy 7: every text line on the page
    # ------------------------------------------------------------------

    def _extract_aggressive_text(self, ctx: PageContext) -> List[MenuItem]:
        root = ctx.soup.body or ctx.soup
        lines = [(text, heading) for text, heading in self._block_lines(root)
                 if heading or len(text) <= LINE_CANDIDATE_MAX_LENGTH * 2]
        return self._items_from_lines(lines, ctx, ExtractionStrategy.AGGRESSIVE_TEXT, keep_unpriced=True)

    # ------------------------------------------------------------------
    # Page-level metadata
    # ------------------------------------------------------------------

    def _extract_categories(self, ctx: PageContext, items: List[MenuItem]) -> List[str]:
        item_names = {normalize_name(item.name) for item in items}
        seen, categories = set(), []
        for element in ctx.soup.select(CATEGORY_SELECTORS):
            if any(self._is_page_chrome(parent) for parent in element.parents if isinstance(parent, Tag)):
                continue
            text = collapse_whitespace(element.get_text(' '))
            key = normalize_name(text)
            if not (2 <= len(text) <= 60) or not key or key in seen or key in item_names:
                continue
            if find_prices(text, ctx.currency):
                continue
            seen.add(key)
            categories.append(text)
            if len(categories) >= self.max_categories:
                break
        for item in items:
            key = normalize_name(item.category)
            if item.category != DEFAULT_CATEGORY and key not in seen and len(categories) < self.max_categories:
                seen.add(key)
                categories.append(item.category)
        return categories

    def _extract_restaurant_info(self, ctx: PageContext, title: str) -> RestaurantInfo:
        soup = ctx.soup
        name = ""
        site_name = soup.find('meta', attrs={'property': 'og:site_name'})
        if site_name and site_name.get('content'):
            name = collapse_whitespace(site_name['content'])
        elif title:
            name = re.split(r'\s[|\-–—]\s', title)[0].strip()

        phone = None
        tel = soup.select_one('a[href^="tel:"]')
        if tel:
            phone = tel['href'][4:].strip() or collapse_whitespace(tel.get_text())
        else:
            match = PHONE_RE.search(soup.get_text(' '))
            phone = match.group(0).strip() if match else None

        address = None
        address_el = soup.find('address') or soup.select_one('[itemprop="streetAddress"], [class*="address"]')
        if address_el:
            address = collapse_whitespace(address_el.get_text(' '))[:200] or None

        return RestaurantInfo(name=name, website=self._origin(ctx.source_url), phone=phone, address=address)


