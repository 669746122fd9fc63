# agents/sub_menu_collector.py
"""
Collects items from a confirmed menu page and the sub-menus it links to
(Lunch, Drinks, Desserts, ...), then merges them into one deduplicated list.

Sub-pages are fetched in parallel but merged in candidate-rank order, so the
first-seen-wins dedup gives the same answer on every run.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple

from langsmith import traceable

from agents.item_extractor import ItemExtractor, PageExtraction
from agents.link_discoverer import LinkDiscoverer, SUB_MENU_KEYWORDS, infer_category
from agents.page_classifier import PageClassifier
from utils.errors import ClassificationUnavailable, TooManyConcurrentRequests
from utils.menu_dedup import dedupe_items
from utils.menu_models import DEFAULT_CATEGORY, MenuItem, RestaurantInfo, SubMenuSource
from utils.text_normalizer import to_plain_text
from utils.url_utils import is_pdf_url, normalize_url, same_site

logger = logging.getLogger(__name__)


@dataclass
class SubMenuCollection:
    items: List[MenuItem] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    sub_menu_sources: List[SubMenuSource] = field(default_factory=list)
    restaurant_info: RestaurantInfo = field(default_factory=RestaurantInfo)


@dataclass(frozen=True)
class _SubMenuLink:
    url: str
    category: Optional[str]
    rank: int


@dataclass
class _PageHarvest:
    """What one visited sub-page contributed"""
    link: _SubMenuLink
    items: List[MenuItem] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    restaurant_info: RestaurantInfo = field(default_factory=RestaurantInfo)
    children: List[_SubMenuLink] = field(default_factory=list)


class SubMenuCollector:
    """collect(menu_url) -> SubMenuCollection"""

    def __init__(self, config, fetcher, extractor: Optional[ItemExtractor] = None,
                 classifier: Optional[PageClassifier] = None,
                 link_discoverer: Optional[LinkDiscoverer] = None,
                 pdf_parser=None):
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor or ItemExtractor(config)
        self.classifier = classifier
        self.link_discoverer = link_discoverer or LinkDiscoverer(config)
        self.pdf_parser = pdf_parser

        self.max_links = getattr(config, 'MAX_SUB_MENU_LINKS', 8)
        self.default_depth = getattr(config, 'MAX_SUB_MENU_DEPTH', 1)
        self.concurrency = getattr(config, 'SUB_MENU_CONCURRENCY', 3)
        self.request_delay = getattr(config, 'SUB_MENU_REQUEST_DELAY', 0.5)
        self.confidence_threshold = getattr(config, 'SUB_MENU_CONFIDENCE_THRESHOLD', 60)
        self.max_total_items = getattr(config, 'MAX_TOTAL_ITEMS', 200)
        self.similarity = getattr(config, 'NAME_SIMILARITY_THRESHOLD', 0.85)
        self.max_categories = getattr(config, 'MAX_CATEGORIES', 20)

        self.stats = {
            "collections": 0,
            "sub_pages_visited": 0,
            "sub_pages_accepted": 0,
            "sub_pages_rejected": 0,
            "items_before_dedup": 0,
            "items_after_dedup": 0,
        }

    @traceable(run_type="chain", name="sub_menu_collection")
    async def collect(self, menu_url: str, timeout_ms: Optional[int] = None,
                      mobile_viewport: bool = False, max_depth: Optional[int] = None,
                      first_page: Optional[Tuple[str, PageExtraction]] = None) -> SubMenuCollection:
        """
        Gather every item reachable from *menu_url*.

        Args:
            menu_url: confirmed menu page
            max_depth: how many link hops to follow from the menu page (0 = page only)
            first_page: (html, extraction) of menu_url when the caller already has it

        Returns:
            SubMenuCollection with merged items, categories and the sub-pages used
        """
        self.stats["collections"] += 1
        if is_pdf_url(menu_url):
            logger.info(f"📄 {menu_url} is a PDF - no sub-menus to collect")
            return SubMenuCollection()

        depth_limit = self.default_depth if max_depth is None else max(0, max_depth)

        if first_page is None:
            result = await self.fetcher.fetch(menu_url, timeout_ms=timeout_ms, mobile_viewport=mobile_viewport)
            if not result.ok or result.is_pdf:
                logger.warning(f"⚠️ Could not load menu page {menu_url}: {result.error}")
                return SubMenuCollection()
            html = result.html
            extraction = self.extractor.extract_page(html, menu_url)
        else:
            html, extraction = first_page

        all_items: List[MenuItem] = list(extraction.items)
        categories: List[str] = list(extraction.categories)
        info = extraction.restaurant_info
        sources: List[SubMenuSource] = []
        visited: Set[str] = {normalize_url(menu_url)}

        frontier: List[_SubMenuLink] = []
        if depth_limit > 0:
            frontier = await self._find_sub_menu_links(html, menu_url, visited)

        depth = 0
        while frontier and depth < depth_limit:
            for link in frontier:
                visited.add(normalize_url(link.url))

            harvests = await self._visit_all(frontier, timeout_ms, mobile_viewport,
                                             collect_children=depth + 1 < depth_limit)
            next_frontier: List[_SubMenuLink] = []
            for harvest in harvests:
                if harvest is None or not harvest.items:
                    continue
                label = harvest.link.category or DEFAULT_CATEGORY
                all_items.extend(harvest.items)
                sources.append(SubMenuSource(url=harvest.link.url, category=label,
                                             item_count=len(harvest.items)))
                for category in [label] + harvest.categories:
                    if category not in categories:
                        categories.append(category)
                info = info.merged_with(harvest.restaurant_info)
                for child in harvest.children:
                    key = normalize_url(child.url)
                    if key not in visited:
                        visited.add(key)
                        next_frontier.append(child)
            frontier = next_frontier[:self.max_links]
            depth += 1

        self.stats["items_before_dedup"] += len(all_items)
        items = dedupe_items(all_items, threshold=self.similarity)[:self.max_total_items]
        self.stats["items_after_dedup"] += len(items)

        for item in items:
            if item.category not in categories:
                categories.append(item.category)

        logger.info(f"🍽️ Collected {len(items)} items from {menu_url} "
                    f"and {len(sources)} sub-menu page(s)")
        return SubMenuCollection(
            items=items,
            categories=categories[:self.max_categories],
            sub_menu_sources=sources,
            restaurant_info=info,
        )

    # ------------------------------------------------------------------
    # Candidate links
    # ------------------------------------------------------------------

    async def _find_sub_menu_links(self, html: str, page_url: str, visited: Set[str]) -> List[_SubMenuLink]:
        """Classifier-ranked links first, then keyword matches, capped"""
        links: List[_SubMenuLink] = []
        seen = set(visited)

        def add(url: str, category: Optional[str]):
            key = normalize_url(url)
            if key in seen or not same_site(url, page_url):
                return
            seen.add(key)
            links.append(_SubMenuLink(url=url, category=category, rank=len(links)))

        if self.classifier is not None and self.classifier.available:
            try:
                verdict = await self.classifier.find_menu_links(self.classifier.page_structure(html), page_url)
            except ClassificationUnavailable as e:
                logger.warning(f"⚠️ Classifier unavailable for sub-menu ranking: {e}")
                verdict = None
            if verdict:
                for candidate in verdict.ranked():
                    add(candidate.url, candidate.category or infer_category("", candidate.url))

        for link in self.link_discoverer.find_candidate_links(
                html, page_url, SUB_MENU_KEYWORDS, limit=self.max_links, same_site_only=True):
            add(link.url, infer_category(link.text, link.url))

        if links:
            logger.info(f"🔗 {len(links[:self.max_links])} sub-menu candidate(s) on {page_url}")
        return links[:self.max_links]

    # ------------------------------------------------------------------
    # Visiting
    # ------------------------------------------------------------------

    async def _visit_all(self, links: List[_SubMenuLink], timeout_ms: Optional[int],
                         mobile_viewport: bool, collect_children: bool) -> List[Optional[_PageHarvest]]:
        semaphore = asyncio.Semaphore(max(1, self.concurrency))

        async def visit(link: _SubMenuLink) -> Optional[_PageHarvest]:
            async with semaphore:
                if self.request_delay:
                    await asyncio.sleep(self.request_delay)
                return await self._visit(link, timeout_ms, mobile_viewport, collect_children)

        # gather keeps input order, which is candidate rank
        results = await asyncio.gather(*(visit(link) for link in links), return_exceptions=True)
        harvests: List[Optional[_PageHarvest]] = []
        for link, outcome in zip(links, results):
            if isinstance(outcome, TooManyConcurrentRequests):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(f"⚠️ Sub-menu page {link.url} failed: {outcome}")
                harvests.append(None)
            else:
                harvests.append(outcome)
        return harvests

    async def _visit(self, link: _SubMenuLink, timeout_ms: Optional[int], mobile_viewport: bool,
                     collect_children: bool) -> Optional[_PageHarvest]:
        self.stats["sub_pages_visited"] += 1

        if is_pdf_url(link.url):
            return await self._visit_pdf(link)

        result = await self.fetcher.fetch(link.url, timeout_ms=timeout_ms, mobile_viewport=mobile_viewport)
        if result.is_pdf:
            return await self._visit_pdf(link)
        if not result.ok:
            logger.debug(f"Skipping sub-menu {link.url}: {result.error}")
            return None

        extraction = self.extractor.extract_page(result.html, link.url)
        if not extraction.items or not await self._is_actual_menu(result.html, link.url, extraction):
            self.stats["sub_pages_rejected"] += 1
            return None

        self.stats["sub_pages_accepted"] += 1
        children = []
        if collect_children:
            children = await self._find_sub_menu_links(result.html, link.url, {normalize_url(link.url)})
        return _PageHarvest(
            link=link,
            items=self._tag_items(extraction.items, link),
            categories=extraction.categories,
            restaurant_info=extraction.restaurant_info,
            children=children,
        )

    async def _visit_pdf(self, link: _SubMenuLink) -> Optional[_PageHarvest]:
        if self.pdf_parser is None:
            return None
        parsed = await self.pdf_parser.parse(link.url)
        if not parsed.success or not parsed.items:
            self.stats["sub_pages_rejected"] += 1
            return None
        self.stats["sub_pages_accepted"] += 1
        return _PageHarvest(
            link=link,
            items=self._tag_items(parsed.items, link),
            categories=sorted(parsed.categories),
            restaurant_info=parsed.restaurant_info,
        )

    async def _is_actual_menu(self, html: str, url: str, extraction: PageExtraction) -> bool:
        """Menu content rather than another navigation page"""
        if self.classifier is not None and self.classifier.available:
            try:
                verdict = await self.classifier.classify_page(to_plain_text(html), url)
                if verdict is not None:
                    return verdict.is_menu and verdict.confidence >= self.confidence_threshold
            except ClassificationUnavailable as e:
                logger.warning(f"⚠️ Classifier unavailable for {url}: {e}")
        return bool(extraction.priced_items)

    @staticmethod
    def _tag_items(items: List[MenuItem], link: _SubMenuLink) -> List[MenuItem]:
        tagged = []
        for item in items:
            label = link.category or DEFAULT_CATEGORY
            changes: Dict[str, Any] = {"source_url": item.source_url or link.url, "sub_menu_category": label}
            if link.category and item.category == DEFAULT_CATEGORY:
                changes["category"] = link.category
            tagged.append(replace(item, **changes))
        return tagged

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
