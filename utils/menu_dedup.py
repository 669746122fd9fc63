# utils/menu_dedup.py
"""Name normalization and similarity-based deduplication of menu items"""

import re
import logging
from dataclasses import replace
from difflib import SequenceMatcher
from typing import Dict, Iterable, List

from utils.menu_models import MenuItem, DEFAULT_CATEGORY

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85

_PUNCTUATION_RE = re.compile(r'[^\w\s]', re.UNICODE)
_SPACES_RE = re.compile(r'\s+')


def normalize_name(name: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace"""
    if not name:
        return ""
    text = _PUNCTUATION_RE.sub(' ', name.lower()).replace('_', ' ')
    return _SPACES_RE.sub(' ', text).strip()


def names_similar(a: str, b: str, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> bool:
    if a == b:
        return True
    if not a or not b:
        return False
    return SequenceMatcher(None, a, b).ratio() >= threshold


def _merge_duplicate(kept: MenuItem, duplicate: MenuItem) -> MenuItem:
    """Keep the first-seen name; take better fields from the duplicate"""
    updates = {}
    if (duplicate.confidence or 0) > (kept.confidence or 0):
        updates["confidence"] = duplicate.confidence
    if not kept.price and duplicate.price:
        updates["price"] = duplicate.price
    if not kept.description and duplicate.description:
        updates["description"] = duplicate.description
    if kept.category == DEFAULT_CATEGORY and duplicate.category != DEFAULT_CATEGORY:
        updates["category"] = duplicate.category
    return replace(kept, **updates) if updates else kept


def dedupe_items(items: Iterable[MenuItem],
                 threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
                 fuzzy: bool = True) -> List[MenuItem]:
    """
    Merge items whose normalized names match (or are at least *threshold*
    similar when *fuzzy*). The first occurrence keeps its position and name.
    """
    kept: List[MenuItem] = []
    keys: List[str] = []
    exact: Dict[str, int] = {}

    for item in items:
        key = normalize_name(item.name)
        if not key:
            continue

        index = exact.get(key)
        if index is None and fuzzy:
            for i, existing in enumerate(keys):
                if names_similar(key, existing, threshold):
                    index = i
                    break

        if index is None:
            exact[key] = len(kept)
            keys.append(key)
            kept.append(item)
        else:
            kept[index] = _merge_duplicate(kept[index], item)

    removed = 0
    if isinstance(items, list):
        removed = len(items) - len(kept)
    if removed:
        logger.debug(f"Deduplication removed {removed} items")
    return kept
