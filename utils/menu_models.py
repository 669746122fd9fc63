# utils/menu_models.py
"""
Data model for menu discovery: items, results and classifier verdicts
"""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CATEGORY = "General"


class DiscoveryMethod(str, Enum):
    """How the canonical menu source was found"""
    ORIGINAL_URL_VALIDATED = "original-url-validated"
    ORIGINAL_URL_UNVALIDATED = "original-url-unvalidated"
    AI_DISCOVERY = "ai-discovery"
    COMMON_PATH = "common-path"
    PDF_DIRECT = "pdf-direct"
    PDF_PARSING = "pdf-parsing"
    PDF_PARSING_FAILED = "pdf-parsing-failed"
    FAILED = "failed"
    ERROR = "error"


class ExtractionStrategy(str, Enum):
    """Which heuristic produced an item, listed in merge trust order"""
    STRUCTURED_DATA = "structured-data"
    TABULAR = "tabular"
    CONTENT_DENSITY = "content-density"
    GENERIC_SELECTOR = "generic-selector"
    LIST = "list"
    VISUAL = "visual"
    AGGRESSIVE_TEXT = "aggressive-text"
    PDF_AI = "pdf-ai"
    PDF_PATTERN = "pdf-pattern"


class LinkType(str, Enum):
    DIRECT = "direct"
    PDF = "pdf"
    ORDERING_SYSTEM = "ordering-system"


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: str = ""
    description: str = ""
    category: str = DEFAULT_CATEGORY
    source_url: str = ""
    extraction_strategy: ExtractionStrategy = ExtractionStrategy.AGGRESSIVE_TEXT
    confidence: Optional[float] = None
    sub_menu_category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["extraction_strategy"] = self.extraction_strategy.value
        return data


@dataclass(frozen=True)
class RestaurantInfo:
    name: str = ""
    website: str = ""
    phone: Optional[str] = None
    address: Optional[str] = None

    def merged_with(self, other: "RestaurantInfo") -> "RestaurantInfo":
        """Fill blanks from *other*, keeping what we already have"""
        return RestaurantInfo(
            name=self.name or other.name,
            website=self.website or other.website,
            phone=self.phone or other.phone,
            address=self.address or other.address,
        )


@dataclass(frozen=True)
class SubMenuSource:
    url: str
    category: str
    item_count: int


@dataclass
class DiscoveryOptions:
    timeout_ms: Optional[int] = None
    mobile_viewport: bool = False
    max_sub_menu_depth: Optional[int] = None


@dataclass(frozen=True)
class DiscoveryResult:
    """Outcome of one discovery request; built once and handed to the caller"""
    success: bool
    discovery_method: DiscoveryMethod
    url: str = ""
    menu_page_url: Optional[str] = None
    items: List[MenuItem] = field(default_factory=list)
    categories: FrozenSet[str] = field(default_factory=frozenset)
    restaurant_info: RestaurantInfo = field(default_factory=RestaurantInfo)
    sub_menu_sources: List[SubMenuSource] = field(default_factory=list)
    reason: Optional[str] = None
    classifier_confidence: Optional[float] = None
    discovery_time: float = 0.0
    raw_text: Optional[str] = None

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "discovery_method": self.discovery_method.value,
            "url": self.url,
            "menu_page_url": self.menu_page_url,
            "items": [item.to_dict() for item in self.items],
            "categories": sorted(self.categories),
            "restaurant_info": asdict(self.restaurant_info),
            "sub_menu_sources": [asdict(source) for source in self.sub_menu_sources],
            "reason": self.reason,
            "classifier_confidence": self.classifier_confidence,
            "discovery_time": round(self.discovery_time, 2),
            "item_count": self.item_count,
        }


# ============================================================================
# CLASSIFIER VERDICTS
# ============================================================================

def _coerce_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        match = re.search(r'-?\d+(?:\.\d+)?', value)
        value = float(match.group(0)) if match else 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    # Some models answer on a 0-1 scale
    if 0 < number <= 1 and not float(number).is_integer():
        number *= 100
    return max(0.0, min(100.0, number))


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1', 'y')
    return bool(value)


class PageVerdict(BaseModel):
    """Answer to 'is this page a menu?'"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    is_menu: bool = Field(default=False, alias="isMenu", description="Whether the page is a menu")
    confidence: float = Field(default=0.0, description="Confidence 0-100")
    reason: str = Field(default="", description="Short explanation")
    menu_items_found: int = Field(default=0, alias="menuItemsFound")

    @field_validator('is_menu', mode='before')
    @classmethod
    def _is_menu(cls, value):
        return _coerce_bool(value)

    @field_validator('confidence', mode='before')
    @classmethod
    def _confidence(cls, value):
        return _coerce_confidence(value)

    @field_validator('reason', mode='before')
    @classmethod
    def _reason(cls, value):
        return "" if value is None else str(value)

    @field_validator('menu_items_found', mode='before')
    @classmethod
    def _items_found(cls, value):
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError):
            return 0


class MenuLinkCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    url: str
    confidence: float = 0.0
    reason: str = ""
    type: LinkType = LinkType.DIRECT
    category: Optional[str] = None

    @field_validator('confidence', mode='before')
    @classmethod
    def _confidence(cls, value):
        return _coerce_confidence(value)

    @field_validator('reason', mode='before')
    @classmethod
    def _reason(cls, value):
        return "" if value is None else str(value)

    @field_validator('type', mode='before')
    @classmethod
    def _type(cls, value):
        if isinstance(value, LinkType):
            return value
        text = str(value or '').strip().lower().replace('_', '-').replace(' ', '-')
        if text == 'pdf':
            return LinkType.PDF
        if text in ('ordering-system', 'orderingsystem', 'ordering', 'order', 'online-ordering'):
            return LinkType.ORDERING_SYSTEM
        return LinkType.DIRECT


class MenuLinksVerdict(BaseModel):
    """Answer to 'where on this page does the menu live?'"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    menu_urls: List[MenuLinkCandidate] = Field(default_factory=list, alias="menuUrls")
    has_hidden_menu: bool = Field(default=False, alias="hasHiddenMenu")
    context_clues: List[str] = Field(default_factory=list, alias="contextClues")

    @field_validator('menu_urls', mode='before')
    @classmethod
    def _menu_urls(cls, value):
        if not isinstance(value, list):
            return []
        candidates = []
        for entry in value:
            if isinstance(entry, MenuLinkCandidate):
                candidates.append(entry)
            elif isinstance(entry, str):
                candidates.append({"url": entry})
            elif isinstance(entry, dict) and entry.get("url"):
                candidates.append(entry)
        return candidates

    @field_validator('has_hidden_menu', mode='before')
    @classmethod
    def _hidden(cls, value):
        return _coerce_bool(value)

    @field_validator('context_clues', mode='before')
    @classmethod
    def _clues(cls, value):
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            return []
        return [str(clue) for clue in value]

    def ranked(self) -> List[MenuLinkCandidate]:
        return sorted(self.menu_urls, key=lambda c: c.confidence, reverse=True)
