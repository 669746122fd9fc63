# agents/menu_locator.py
"""
Menu discovery state machine.

Start -> TestOriginal -> AIAssistedSearch -> CommonPaths -> Success | Failed

Stages run in that fixed order and the first page that clears its stage's
confidence threshold wins. Stage failures are logged and fall through to the
next stage; only an invalid URL or the fetch guard rejecting us reach the
caller as exceptions.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from langsmith import traceable

import config as default_config
from agents.item_extractor import ItemExtractor, PageExtraction
from agents.link_discoverer import LinkDiscoverer
from agents.page_classifier import HeuristicPageClassifier, OpenAIPageClassifier, PageClassifier
from agents.page_fetcher import FetchResult, PageFetcher
from agents.pdf_menu_parser import PDFMenuParser
from agents.sub_menu_collector import SubMenuCollector
from utils.debug_utils import dump_discovery_state
from utils.errors import ClassificationUnavailable, InvalidURLError, TooManyConcurrentRequests
from utils.menu_models import (
    DiscoveryMethod, DiscoveryOptions, DiscoveryResult, LinkType, MenuLinkCandidate,
    MenuLinksVerdict, PageVerdict, RestaurantInfo,
)
from utils.text_normalizer import to_plain_text
from utils.url_utils import is_pdf_url, normalize_url, site_origin, validate_url

logger = logging.getLogger(__name__)

NO_MENU_FOUND_REASON = (
    "No menu page could be found on this website after searching links, "
    "AI suggestions and common menu paths"
)


@dataclass
class _DiscoveryRun:
    """State for one discover() call; never shared between calls"""
    url: str
    options: DiscoveryOptions
    started: float = field(default_factory=time.time)
    pages: Dict[str, FetchResult] = field(default_factory=dict)
    verdicts: Dict[str, Tuple[PageVerdict, bool]] = field(default_factory=dict)
    searched: Set[str] = field(default_factory=set)
    reached_site: bool = False
    root_error: Optional[str] = None
    trail: List[Dict[str, Any]] = field(default_factory=list)

    def note(self, stage: str, url: str, outcome: str, **extra):
        self.trail.append({"stage": stage, "url": url, "outcome": outcome, **extra})


@dataclass
class _SearchFrame:
    """One page being searched for menu links"""
    url: str
    depth: int
    html: str
    candidates: List[MenuLinkCandidate]
    has_hidden_menu: bool = False
    position: int = 0


class MenuLocator:
    """
    discover(url, options) -> DiscoveryResult

    The model-backed classifier is optional: whenever it is missing, slow or
    answers with something unusable, the heuristic classifier takes over for
    that call and the run keeps going.
    """

    def __init__(self, config, fetcher, classifier: Optional[PageClassifier] = None,
                 extractor: Optional[ItemExtractor] = None,
                 link_discoverer: Optional[LinkDiscoverer] = None,
                 sub_menu_collector: Optional[SubMenuCollector] = None,
                 pdf_parser: Optional[PDFMenuParser] = None,
                 fallback_classifier: Optional[PageClassifier] = None):
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor or ItemExtractor(config)
        self.link_discoverer = link_discoverer or LinkDiscoverer(config)
        self.classifier = classifier if classifier is not None else OpenAIPageClassifier(config)
        self.fallback_classifier = fallback_classifier or HeuristicPageClassifier(config, self.link_discoverer)
        self.pdf_parser = pdf_parser or PDFMenuParser(config)
        self.sub_menu_collector = sub_menu_collector or SubMenuCollector(
            config, fetcher,
            extractor=self.extractor,
            classifier=self.classifier,
            link_discoverer=self.link_discoverer,
            pdf_parser=self.pdf_parser,
        )

        self.original_threshold = getattr(config, 'ORIGINAL_URL_CONFIDENCE_THRESHOLD', 75)
        self.discovered_threshold = getattr(config, 'DISCOVERED_PAGE_CONFIDENCE_THRESHOLD', 40)
        self.recursion_threshold = getattr(config, 'RECURSIVE_SEARCH_CONFIDENCE', 70)
        self.pdf_link_threshold = getattr(config, 'PDF_LINK_CONFIDENCE_THRESHOLD', 60)
        self.hidden_menu_threshold = getattr(config, 'HIDDEN_MENU_CONFIDENCE_THRESHOLD', 50)
        self.max_depth = getattr(config, 'MAX_SEARCH_DEPTH', 3)
        self.max_candidates = getattr(config, 'MAX_CANDIDATE_LINKS', 5)
        self.common_paths = list(getattr(config, 'COMMON_MENU_PATHS', ['/menu']))
        self.debug_dumps = getattr(config, 'DEBUG_DUMPS', False)
        self.debug_dir = getattr(config, 'DEBUG_DIR', 'debug_logs')

        self.stats = {
            "total_discoveries": 0,
            "successful_discoveries": 0,
            "failed_discoveries": 0,
            "errors": 0,
            "classifier_fallbacks": 0,
            "methods": {method.value: 0 for method in DiscoveryMethod},
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    @traceable(run_type="chain", name="menu_discovery")
    async def discover(self, url: str,
                       options: Union[DiscoveryOptions, Dict[str, Any], None] = None) -> DiscoveryResult:
        """
        Find the menu for a restaurant website and extract its items.

        Raises:
            InvalidURLError: url is not an http(s) URL with a host
            TooManyConcurrentRequests: the fetch guard is full; retry later
        """
        url = validate_url(url)
        if isinstance(options, dict):
            options = DiscoveryOptions(**options)
        run = _DiscoveryRun(url=url, options=options or DiscoveryOptions())
        self.stats["total_discoveries"] += 1
        logger.info(f"🔍 Starting menu discovery for {url}")

        try:
            result = await self._run_stages(run)
        except (TooManyConcurrentRequests, InvalidURLError):
            raise
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"❌ Menu discovery failed for {url}: {e}", exc_info=True)
            self._dump(run, "discovery_error", error=e)
            result = DiscoveryResult(
                success=False,
                discovery_method=DiscoveryMethod.ERROR,
                url=url,
                reason=f"Menu discovery failed: {e}",
                restaurant_info=RestaurantInfo(website=site_origin(url)),
            )

        result = replace(result, discovery_time=time.time() - run.started)
        self.stats["methods"][result.discovery_method.value] += 1
        if result.success:
            self.stats["successful_discoveries"] += 1
            logger.info(f"✅ Menu found for {url} via {result.discovery_method.value}: "
                        f"{result.item_count} items from {result.menu_page_url} "
                        f"in {result.discovery_time:.2f}s")
        else:
            self.stats["failed_discoveries"] += 1
            logger.warning(f"❌ No menu for {url}: {result.reason}")
        self._dump(run, "discovery_result", result=result)
        return result

    async def _run_stages(self, run: _DiscoveryRun) -> DiscoveryResult:
        if is_pdf_url(run.url):
            return await self._parse_pdf(run, run.url, direct=True)

        root = await self._fetch(run, run.url)
        if root.ok and root.is_pdf:
            return await self._parse_pdf(run, run.url, direct=True)

        if root.ok:
            result = await self._test_original(run, root)
            if result:
                return result
            result = await self._ai_assisted_search(run, root)
            if result:
                return result
        else:
            run.root_error = root.error
            run.note("test-original", run.url, "unreachable", error=root.error)

        # A site that never answered will not answer on /menu either
        if root.ok or root.status is not None:
            result = await self._try_common_paths(run)
            if result:
                return result

        return self._failure(run)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _test_original(self, run: _DiscoveryRun, page: FetchResult) -> Optional[DiscoveryResult]:
        """Is the URL we were given already the menu?"""
        extraction = self.extractor.extract_page(page.html, run.url)
        if not extraction.items:
            run.note("test-original", run.url, "no-items")
            return None

        verdict, validated = await self._classify(run, run.url, page.html)
        if validated:
            if verdict.is_menu and verdict.confidence >= self.original_threshold:
                run.note("test-original", run.url, "accepted", confidence=verdict.confidence)
                return await self._accept_page(run, run.url, page.html, extraction,
                                               DiscoveryMethod.ORIGINAL_URL_VALIDATED, verdict.confidence)
            run.note("test-original", run.url, "rejected", confidence=verdict.confidence)
            logger.info(f"🤖 {run.url} is not the menu itself "
                        f"(confidence {verdict.confidence:.0f} < {self.original_threshold})")
            return None

        if extraction.priced_items:
            run.note("test-original", run.url, "accepted-unvalidated")
            logger.info(f"⚠️ Accepting {run.url} without classifier validation "
                        f"({len(extraction.priced_items)} priced items)")
            return await self._accept_page(run, run.url, page.html, extraction,
                                           DiscoveryMethod.ORIGINAL_URL_UNVALIDATED, None)
        run.note("test-original", run.url, "no-priced-items")
        return None

    async def _ai_assisted_search(self, run: _DiscoveryRun, root: FetchResult) -> Optional[DiscoveryResult]:
        """
        Follow ranked menu-link suggestions from the root page.

        Depth-first over an explicit stack of frames: a confidently suggested
        page that turns out not to be a menu becomes a new search root, at
        most max_depth levels deep, and no URL is fetched twice in a run.
        """
        stack: List[_SearchFrame] = []
        frame = await self._open_frame(run, run.url, 0, root.html)
        if frame:
            stack.append(frame)

        while stack:
            frame = stack[-1]

            if frame.position < len(frame.candidates):
                candidate = frame.candidates[frame.position]
                frame.position += 1
                result, child = await self._try_candidate(run, frame, candidate)
                if result:
                    return result
                if child:
                    stack.append(child)
                continue

            stack.pop()
            result = await self._check_search_root(run, frame)
            if result:
                return result

        return None

    async def _open_frame(self, run: _DiscoveryRun, url: str, depth: int, html: str) -> Optional[_SearchFrame]:
        key = normalize_url(url)
        if depth >= self.max_depth or key in run.searched:
            return None
        run.searched.add(key)

        verdict = await self._find_links(run, url, html)
        candidates = verdict.ranked()[:self.max_candidates] if verdict else []
        logger.info(f"🔍 AI search depth {depth} on {url}: {len(candidates)} candidate(s)")
        run.note("ai-search", url, "searching", depth=depth, candidates=[c.url for c in candidates])
        return _SearchFrame(url=url, depth=depth, html=html, candidates=candidates,
                            has_hidden_menu=bool(verdict and verdict.has_hidden_menu))

    async def _try_candidate(self, run: _DiscoveryRun, frame: _SearchFrame,
                             candidate: MenuLinkCandidate) -> Tuple[Optional[DiscoveryResult], Optional[_SearchFrame]]:
        key = normalize_url(candidate.url)
        if key in run.pages or key in run.searched:
            logger.debug(f"Already visited: {candidate.url}")
            return None, None

        if candidate.type == LinkType.PDF or is_pdf_url(candidate.url):
            if candidate.confidence < self.pdf_link_threshold:
                run.note("ai-search", candidate.url, "pdf-low-confidence", confidence=candidate.confidence)
                return None, None
            result = await self._parse_pdf(run, candidate.url, direct=False)
            return result, None

        page = await self._fetch(run, candidate.url)
        if not page.ok:
            run.note("ai-search", candidate.url, "unreachable", error=page.error)
            return None, None
        if page.is_pdf:
            if candidate.confidence >= self.pdf_link_threshold:
                return await self._parse_pdf(run, candidate.url, direct=False), None
            return None, None

        verdict, _ = await self._classify(run, candidate.url, page.html)
        if verdict.is_menu and verdict.confidence >= self.discovered_threshold:
            extraction = self.extractor.extract_page(page.html, candidate.url)
            if extraction.items:
                run.note("ai-search", candidate.url, "accepted", confidence=verdict.confidence)
                result = await self._accept_page(run, candidate.url, page.html, extraction,
                                                 DiscoveryMethod.AI_DISCOVERY, verdict.confidence)
                if result:
                    return result, None
            run.note("ai-search", candidate.url, "menu-without-items", confidence=verdict.confidence)
            return None, None

        run.note("ai-search", candidate.url, "rejected",
                 confidence=verdict.confidence, suggested=candidate.confidence)
        if candidate.confidence > self.recursion_threshold and frame.depth + 1 < self.max_depth:
            logger.info(f"🔁 High-confidence suggestion {candidate.url} was not a menu - searching from it")
            child = await self._open_frame(run, candidate.url, frame.depth + 1, page.html)
            return None, child
        return None, None

    async def _check_search_root(self, run: _DiscoveryRun, frame: _SearchFrame) -> Optional[DiscoveryResult]:
        """After its links are exhausted, a search root may itself hold the menu"""
        threshold = None
        if frame.depth > 0:
            threshold = self.discovered_threshold
        if frame.has_hidden_menu:
            threshold = self.hidden_menu_threshold if threshold is None else min(threshold, self.hidden_menu_threshold)
        if threshold is None:
            return None

        verdict, _ = await self._classify(run, frame.url, frame.html)
        if not (verdict.is_menu and verdict.confidence >= threshold):
            return None
        extraction = self.extractor.extract_page(frame.html, frame.url)
        if not extraction.items:
            return None
        run.note("ai-search", frame.url, "accepted-search-root", confidence=verdict.confidence)
        return await self._accept_page(run, frame.url, frame.html, extraction,
                                       DiscoveryMethod.AI_DISCOVERY, verdict.confidence)

    async def _try_common_paths(self, run: _DiscoveryRun) -> Optional[DiscoveryResult]:
        """Try /menu, /food, /order, ... against the site origin"""
        origin = site_origin(run.url)
        for path in self.common_paths:
            candidate_url = normalize_url(origin + path)
            if candidate_url in run.pages or candidate_url in run.searched:
                continue

            page = await self._fetch(run, candidate_url)
            if not page.ok:
                continue
            if page.is_pdf:
                result = await self._parse_pdf(run, candidate_url, direct=False,
                                               method=DiscoveryMethod.COMMON_PATH)
                if result:
                    return result
                continue

            # Paths that just redirect back to a page we already judged
            final_key = normalize_url(page.final_url) if page.final_url else candidate_url
            if final_key != candidate_url and final_key in run.verdicts:
                continue

            extraction = self.extractor.extract_page(page.html, candidate_url)
            if not extraction.items:
                run.note("common-path", candidate_url, "no-items")
                continue

            verdict, _ = await self._classify(run, candidate_url, page.html)
            if verdict.is_menu and verdict.confidence >= self.discovered_threshold:
                run.note("common-path", candidate_url, "accepted", confidence=verdict.confidence)
                result = await self._accept_page(run, candidate_url, page.html, extraction,
                                                 DiscoveryMethod.COMMON_PATH, verdict.confidence)
                if result:
                    return result
            else:
                run.note("common-path", candidate_url, "rejected", confidence=verdict.confidence)
        return None

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    async def _accept_page(self, run: _DiscoveryRun, page_url: str, html: str, extraction: PageExtraction,
                           method: DiscoveryMethod, confidence: Optional[float]) -> Optional[DiscoveryResult]:
        collection = await self.sub_menu_collector.collect(
            page_url,
            timeout_ms=run.options.timeout_ms,
            mobile_viewport=run.options.mobile_viewport,
            max_depth=run.options.max_sub_menu_depth,
            first_page=(html, extraction),
        )
        if not collection.items:
            logger.warning(f"⚠️ {page_url} was accepted but produced no items - continuing search")
            return None

        items = collection.items
        if confidence is not None:
            items = [item if item.confidence is not None else replace(item, confidence=confidence)
                     for item in items]

        info = collection.restaurant_info
        if not info.website:
            info = replace(info, website=site_origin(run.url))

        return DiscoveryResult(
            success=True,
            discovery_method=method,
            url=run.url,
            menu_page_url=page_url,
            items=items,
            categories=frozenset(collection.categories),
            restaurant_info=info,
            sub_menu_sources=collection.sub_menu_sources,
            classifier_confidence=confidence,
        )

    async def _parse_pdf(self, run: _DiscoveryRun, pdf_url: str, direct: bool,
                         method: DiscoveryMethod = DiscoveryMethod.PDF_DIRECT) -> Optional[DiscoveryResult]:
        """
        direct=True: the caller asked for this PDF, so its result (even a
        failure) is the answer. Otherwise a failed PDF lets the search go on.
        """
        run.pages.setdefault(normalize_url(pdf_url), FetchResult(url=pdf_url, is_pdf=True, method="pdf"))
        parsed = await self.pdf_parser.parse(pdf_url)
        run.note("pdf", pdf_url, "parsed" if parsed.success else "failed", reason=parsed.reason)

        if direct:
            return replace(parsed, url=run.url)
        if not parsed.success:
            logger.info(f"📄 PDF candidate {pdf_url} unusable ({parsed.reason}) - continuing search")
            return None
        return replace(parsed, url=run.url, discovery_method=method)

    def _failure(self, run: _DiscoveryRun) -> DiscoveryResult:
        if run.reached_site:
            reason = NO_MENU_FOUND_REASON
        else:
            reason = f"Website unreachable: {run.root_error or 'no page could be loaded'}"
        return DiscoveryResult(
            success=False,
            discovery_method=DiscoveryMethod.FAILED,
            url=run.url,
            reason=reason,
            restaurant_info=RestaurantInfo(website=site_origin(run.url)),
        )

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _fetch(self, run: _DiscoveryRun, url: str) -> FetchResult:
        """Fetch at most once per URL per run"""
        key = normalize_url(url)
        if key in run.pages:
            return run.pages[key]
        page = await self.fetcher.fetch(url, timeout_ms=run.options.timeout_ms,
                                        mobile_viewport=run.options.mobile_viewport)
        run.pages[key] = page
        if page.ok:
            run.reached_site = True
        return page

    async def _classify(self, run: _DiscoveryRun, url: str, html: str) -> Tuple[PageVerdict, bool]:
        """
        Returns (verdict, validated). validated is False when the verdict
        came from the heuristic fallback rather than the classifier.
        """
        key = normalize_url(url)
        if key in run.verdicts:
            return run.verdicts[key]

        text = to_plain_text(html)
        verdict, validated = None, False
        if self.classifier.available:
            try:
                verdict = await self.classifier.classify_page(text, url)
                validated = verdict is not None
            except ClassificationUnavailable as e:
                logger.warning(f"⚠️ Classifier unavailable for {url}: {e}")
        if verdict is None:
            self.stats["classifier_fallbacks"] += 1
            verdict = await self.fallback_classifier.classify_page(text, url)

        run.verdicts[key] = (verdict, validated)
        return verdict, validated

    async def _find_links(self, run: _DiscoveryRun, url: str, html: str) -> Optional[MenuLinksVerdict]:
        verdict = None
        if self.classifier.available:
            try:
                verdict = await self.classifier.find_menu_links(self.classifier.page_structure(html), url)
            except ClassificationUnavailable as e:
                logger.warning(f"⚠️ Classifier unavailable for link search on {url}: {e}")
        if verdict is None:
            self.stats["classifier_fallbacks"] += 1
            verdict = await self.fallback_classifier.find_menu_links(
                self.fallback_classifier.page_structure(html), url)
        return verdict

    def _dump(self, run: _DiscoveryRun, stage: str, result: Optional[DiscoveryResult] = None,
              error: Optional[Exception] = None):
        if not self.debug_dumps:
            return
        state = {
            "url": run.url,
            "options": vars(run.options),
            "visited": sorted(run.pages),
            "searched": sorted(run.searched),
            "trail": run.trail,
            "stats": self.get_stats(),
        }
        if result is not None:
            state["result"] = result
        dump_discovery_state(stage, state, error=error, directory=self.debug_dir)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "sub_menus": self.sub_menu_collector.get_stats(),
            "extractor": self.extractor.get_stats(),
        }


async def discover_menu(url: str, options: Union[DiscoveryOptions, Dict[str, Any], None] = None,
                        config=default_config) -> DiscoveryResult:
    """
    One-shot discovery: builds the pipeline, runs it and releases the browser.

    Long-running callers should build a MenuLocator once and reuse it so the
    browser pool and fetch cache survive between requests.
    """
    async with PageFetcher(config) as fetcher:
        locator = MenuLocator(config, fetcher)
        return await locator.discover(url, options)
