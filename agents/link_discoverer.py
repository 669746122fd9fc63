# agents/link_discoverer.py
"""
Pattern-based menu link discovery.

Deterministic fallback for the classifier: scores every anchor on a page
by keyword hits in its text, title, aria-label and href.
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from utils.text_normalizer import collapse_whitespace
from utils.url_utils import resolve_url, same_site, is_pdf_url

logger = logging.getLogger(__name__)

# Broad set for finding the menu from a homepage
MENU_LINK_KEYWORDS = [
    'menu', 'menus', 'food', 'order', 'dining', 'eat', 'kitchen', 'dishes',
    'cuisine', 'meals', 'lunch', 'dinner', 'breakfast', 'brunch', 'drinks',
    'dessert', 'food-menu', 'our-menu', 'view-menu', 'carte', 'speisekarte',
]

# Narrower set for category / meal-period pages linked from a menu
SUB_MENU_KEYWORDS = [
    'lunch', 'dinner', 'breakfast', 'brunch', 'drinks', 'beverages', 'wine',
    'cocktails', 'beer', 'bar', 'dessert', 'desserts', 'happy hour', 'happy-hour',
    'kids', 'specials', 'appetizers', 'starters', 'mains', 'entrees', 'sides',
    'salads', 'pizza', 'pasta', 'coffee', 'vegan', 'vegetarian', 'gluten free',
    'gluten-free', 'takeaway', 'seasonal',
]

# Keyword -> label used to tag items collected from a sub-menu page
CATEGORY_LABELS: Dict[str, str] = {
    'lunch': 'Lunch', 'dinner': 'Dinner', 'breakfast': 'Breakfast', 'brunch': 'Brunch',
    'drinks': 'Drinks', 'beverages': 'Drinks', 'wine': 'Wine', 'cocktails': 'Cocktails',
    'beer': 'Beer', 'bar': 'Bar', 'dessert': 'Desserts', 'desserts': 'Desserts',
    'happy hour': 'Happy Hour', 'happy-hour': 'Happy Hour', 'kids': 'Kids',
    'specials': 'Specials', 'appetizers': 'Appetizers', 'starters': 'Appetizers',
    'mains': 'Mains', 'entrees': 'Mains', 'sides': 'Sides', 'salads': 'Salads',
    'pizza': 'Pizza', 'pasta': 'Pasta', 'coffee': 'Coffee', 'vegan': 'Vegan',
    'vegetarian': 'Vegetarian', 'gluten free': 'Gluten Free', 'gluten-free': 'Gluten Free',
    'takeaway': 'Takeaway', 'seasonal': 'Seasonal',
}

# Links that never lead to a menu
IGNORED_LINK_PATTERNS = re.compile(
    r'(facebook|instagram|twitter|tiktok|youtube|linkedin|pinterest|tripadvisor|yelp)\.com'
    r'|/(wp-login|login|signin|account|cart|privacy|terms|cookie)',
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CandidateLink:
    url: str
    text: str
    score: int = 0
    keyword: Optional[str] = None

    @property
    def is_pdf(self) -> bool:
        return is_pdf_url(self.url)


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Word-ish boundaries so 'bar' does not match 'barbecue' and 'eat' not 'great'
    escaped = re.escape(keyword).replace(r'\ ', r'[\s\-_]+')
    return re.compile(rf'(?<![a-z]){escaped}(?![a-z])', re.IGNORECASE)


class LinkDiscoverer:
    """
    find_candidate_links(html, base_url, keywords) -> [CandidateLink]

    Text matches outrank title/aria-label matches, which outrank href-only
    matches; ties keep document order.
    """

    TEXT_SCORE = 10
    LABEL_SCORE = 6
    HREF_SCORE = 4
    PDF_BONUS = 2

    def __init__(self, config=None):
        self.config = config
        self.default_limit = getattr(config, 'MAX_CANDIDATE_LINKS', 5)
        self._patterns: Dict[str, re.Pattern] = {}
        self.stats = {"pages_scanned": 0, "links_considered": 0, "candidates_found": 0}

    def _pattern(self, keyword: str) -> re.Pattern:
        if keyword not in self._patterns:
            self._patterns[keyword] = _keyword_pattern(keyword)
        return self._patterns[keyword]

    def _match(self, value: str, keywords: Sequence[str]) -> Optional[str]:
        if not value:
            return None
        for keyword in keywords:
            if self._pattern(keyword).search(value):
                return keyword
        return None

    def find_candidate_links(self, html: str, base_url: str,
                             keywords: Optional[Iterable[str]] = None,
                             limit: Optional[int] = None,
                             same_site_only: bool = False,
                             exclude: Optional[Iterable[str]] = None) -> List[CandidateLink]:
        if not html:
            return []
        keywords = list(keywords or MENU_LINK_KEYWORDS)
        limit = self.default_limit if limit is None else limit
        excluded = set(exclude or ())
        excluded.add(base_url)

        soup = BeautifulSoup(html, 'html.parser')
        self.stats["pages_scanned"] += 1

        best: Dict[str, CandidateLink] = {}
        order: List[str] = []

        for anchor in soup.find_all('a', href=True):
            self.stats["links_considered"] += 1
            url = resolve_url(anchor['href'], base_url)
            if not url or url in excluded or IGNORED_LINK_PATTERNS.search(url):
                continue
            if same_site_only and not same_site(url, base_url):
                continue

            text = collapse_whitespace(anchor.get_text(' '))
            labels = ' '.join(filter(None, [anchor.get('title'), anchor.get('aria-label')]))
            href_words = re.sub(r'[/_.?=&]+', ' ', anchor['href'])

            score, keyword = 0, None
            for value, weight in ((text, self.TEXT_SCORE), (labels, self.LABEL_SCORE),
                                  (href_words, self.HREF_SCORE)):
                matched = self._match(value, keywords)
                if matched:
                    score += weight
                    keyword = keyword or matched
            if not score:
                continue
            if is_pdf_url(url):
                score += self.PDF_BONUS

            candidate = CandidateLink(url=url, text=text[:100], score=score, keyword=keyword)
            if url not in best:
                order.append(url)
                best[url] = candidate
            elif score > best[url].score:
                best[url] = candidate

        ranked = sorted((best[url] for url in order), key=lambda c: c.score, reverse=True)
        self.stats["candidates_found"] += len(ranked)
        if ranked:
            logger.debug(f"🔗 {len(ranked)} candidate links on {base_url}, keeping {min(limit, len(ranked))}")
        return ranked[:limit]

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats)


def infer_category(text: str, url: str = "") -> Optional[str]:
    """Map link text (or failing that, the URL) to a sub-menu label"""
    for value in (text or "", re.sub(r'[/_.?=&]+', ' ', url or "")):
        for keyword in sorted(CATEGORY_LABELS, key=len, reverse=True):
            if _keyword_pattern(keyword).search(value):
                return CATEGORY_LABELS[keyword]
    return None
