# agents/page_classifier.py
"""
Menu page classification.

PageClassifier answers two questions about a page: is it a menu, and
which of its links lead to one. OpenAIPageClassifier asks a chat model;
HeuristicPageClassifier answers from prices, menu vocabulary and link
keywords so discovery keeps working without a model.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.prompts import ChatPromptTemplate
from langsmith import traceable
from pydantic import ValidationError

from agents.link_discoverer import LinkDiscoverer, MENU_LINK_KEYWORDS, infer_category
from prompts.prompt_templates import (
    PAGE_CLASSIFICATION_PROMPT, PAGE_CLASSIFICATION_HUMAN,
    MENU_LINKS_PROMPT, MENU_LINKS_HUMAN,
)
from utils.errors import ParseFailure
from utils.llm_client import LLMClient
from utils.menu_models import LinkType, MenuLinkCandidate, MenuLinksVerdict, PageVerdict
from utils.price_lexer import find_prices
from utils.text_normalizer import prepare_page_structure
from utils.url_utils import resolve_url, is_pdf_url

logger = logging.getLogger(__name__)

MENU_VOCABULARY_RE = re.compile(
    r'\b(appetizers?|starters?|entr[eé]es?|mains?|main courses?|desserts?|salads?|soups?|sides|'
    r'beverages?|drinks|wines?|cocktails?|beers?|burgers?|pizzas?|pastas?|sandwich(?:es)?|'
    r'breakfast|brunch|lunch|dinner|served with|grilled|fried|roasted|vegan|vegetarian)\b',
    re.IGNORECASE,
)


class PageClassifier:
    """Interface shared by every classifier adapter"""

    name = "base"

    @property
    def available(self) -> bool:
        return True

    def page_structure(self, html: str) -> str:
        """What find_menu_links() expects to be given for a page"""
        return prepare_page_structure(html)

    async def classify_page(self, page_text: str, url: str) -> Optional[PageVerdict]:
        raise NotImplementedError

    async def find_menu_links(self, page_structure: str, url: str) -> Optional[MenuLinksVerdict]:
        raise NotImplementedError


def _finalize_links(verdict: MenuLinksVerdict, url: str) -> MenuLinksVerdict:
    """Resolve relative URLs, force PDF typing and drop duplicates"""
    seen = set()
    candidates: List[MenuLinkCandidate] = []
    for candidate in verdict.menu_urls:
        resolved = resolve_url(candidate.url, url)
        if not resolved or resolved in seen:
            continue
        seen.add(resolved)
        link_type = LinkType.PDF if is_pdf_url(resolved) else candidate.type
        candidates.append(candidate.model_copy(update={"url": resolved, "type": link_type}))
    return verdict.model_copy(update={"menu_urls": candidates})


class OpenAIPageClassifier(PageClassifier):
    """Chat-model adapter; raises ClassificationUnavailable when the model cannot answer"""

    name = "openai"

    def __init__(self, config, llm: Optional[LLMClient] = None):
        self.config = config
        self.llm = llm or LLMClient(config)
        self.text_limit = getattr(config, 'CLASSIFIER_TEXT_LIMIT', 20000)
        self.structure_limit = getattr(config, 'CLASSIFIER_STRUCTURE_LIMIT', 25000)

        self.page_prompt = ChatPromptTemplate.from_messages([
            ("system", PAGE_CLASSIFICATION_PROMPT),
            ("human", PAGE_CLASSIFICATION_HUMAN),
        ])
        self.links_prompt = ChatPromptTemplate.from_messages([
            ("system", MENU_LINKS_PROMPT),
            ("human", MENU_LINKS_HUMAN),
        ])

        self.stats = {"page_classifications": 0, "link_searches": 0, "parse_failures": 0}

    @property
    def available(self) -> bool:
        return self.llm.available

    @traceable(run_type="llm", name="classify_menu_page")
    async def classify_page(self, page_text: str, url: str) -> Optional[PageVerdict]:
        self.stats["page_classifications"] += 1
        try:
            parsed = await self.llm.invoke_json(self.page_prompt, {
                "url": url,
                "page_text": (page_text or "")[:self.text_limit],
            })
        except ParseFailure as e:
            self.stats["parse_failures"] += 1
            logger.warning(f"⚠️ Page verdict for {url} could not be parsed: {e}")
            return None
        if isinstance(parsed, list) and parsed and isinstance(parsed[0], dict):
            parsed = parsed[0]
        if not isinstance(parsed, dict):
            self.stats["parse_failures"] += 1
            return None
        try:
            verdict = PageVerdict.model_validate(parsed)
        except ValidationError as e:
            self.stats["parse_failures"] += 1
            logger.warning(f"⚠️ Page verdict for {url} did not match the expected shape: {e}")
            return None
        logger.info(f"🤖 {url}: isMenu={verdict.is_menu} confidence={verdict.confidence:.0f} - {verdict.reason}")
        return verdict

    @traceable(run_type="llm", name="find_menu_links")
    async def find_menu_links(self, page_structure: str, url: str) -> Optional[MenuLinksVerdict]:
        self.stats["link_searches"] += 1
        try:
            parsed = await self.llm.invoke_json(self.links_prompt, {
                "url": url,
                "page_structure": (page_structure or "")[:self.structure_limit],
            })
        except ParseFailure as e:
            self.stats["parse_failures"] += 1
            logger.warning(f"⚠️ Link verdict for {url} could not be parsed: {e}")
            return None
        if isinstance(parsed, list):
            parsed = {"menuUrls": parsed}
        if not isinstance(parsed, dict):
            self.stats["parse_failures"] += 1
            return None
        try:
            verdict = MenuLinksVerdict.model_validate(parsed)
        except ValidationError as e:
            self.stats["parse_failures"] += 1
            logger.warning(f"⚠️ Link verdict for {url} did not match the expected shape: {e}")
            return None
        verdict = _finalize_links(verdict, url)
        logger.info(f"🤖 {len(verdict.menu_urls)} menu link candidate(s) suggested for {url}")
        return verdict

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, **self.llm.get_stats()}


class HeuristicPageClassifier(PageClassifier):
    """
    Model-free classifier.

    A page is a menu when it shows several prices, or at least one price
    alongside menu vocabulary. Link candidates come from LinkDiscoverer,
    with confidence derived from where the keyword matched.
    """

    name = "heuristic"

    def __init__(self, config=None, link_discoverer: Optional[LinkDiscoverer] = None):
        self.config = config
        self.link_discoverer = link_discoverer or LinkDiscoverer(config)
        self.stats = {"page_classifications": 0, "link_searches": 0}

    def page_structure(self, html: str) -> str:
        return html or ""

    async def classify_page(self, page_text: str, url: str) -> Optional[PageVerdict]:
        self.stats["page_classifications"] += 1
        text = page_text or ""
        prices = len(find_prices(text))
        vocabulary = len(MENU_VOCABULARY_RE.findall(text))

        is_menu = prices >= 3 or (prices >= 1 and vocabulary >= 2)
        if is_menu:
            confidence = min(90.0, 20 + prices * 10 + vocabulary * 2)
        else:
            confidence = min(35.0, prices * 10 + vocabulary * 2)

        return PageVerdict(
            is_menu=is_menu,
            confidence=confidence,
            reason=f"{prices} price(s) and {vocabulary} menu term(s) found",
            menu_items_found=prices,
        )

    async def find_menu_links(self, page_structure: str, url: str) -> Optional[MenuLinksVerdict]:
        """*page_structure* is the raw page HTML for this adapter"""
        self.stats["link_searches"] += 1
        links = self.link_discoverer.find_candidate_links(page_structure, url, MENU_LINK_KEYWORDS)
        candidates = []
        for link in links:
            # Text + href match on 'menu' tops out near 90
            confidence = min(90.0, 40 + link.score * 3)
            if link.keyword and 'menu' in link.keyword:
                confidence = min(95.0, confidence + 10)
            candidates.append(MenuLinkCandidate(
                url=link.url,
                confidence=confidence,
                reason=f"Link '{link.text or link.url}' matches '{link.keyword}'",
                type=LinkType.PDF if link.is_pdf else LinkType.DIRECT,
                category=infer_category(link.text, link.url),
            ))
        return MenuLinksVerdict(menu_urls=candidates)
