# config.py
"""
Configuration for the Restaurant Menu Discovery pipeline
Every tunable lives here; components read it with getattr(config, NAME, default)
"""

import os
import logging

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================================================
# API KEYS - Environment Variables
# ============================================================================

# Optional: without it the pipeline runs on pattern heuristics only
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")

# Optional: enables LangSmith traces of discovery runs (with LANGSMITH_TRACING=true)
LANGSMITH_API_KEY = os.environ.get("LANGSMITH_API_KEY")

# ============================================================================
# AI MODEL CONFIGURATION
# ============================================================================

OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TEMPERATURE = 0.1
CLASSIFIER_TIMEOUT = 30.0          # seconds per classifier call
PDF_PARSING_TIMEOUT = 120.0        # seconds per PDF chunk parsed by the model

# Text limits for what we send to the model
CLASSIFIER_TEXT_LIMIT = 20000
CLASSIFIER_STRUCTURE_LIMIT = 25000

# ============================================================================
# DISCOVERY THRESHOLDS (provisional, tune against real sites)
# ============================================================================

ORIGINAL_URL_CONFIDENCE_THRESHOLD = 75    # accept the URL we were given as the menu
DISCOVERED_PAGE_CONFIDENCE_THRESHOLD = 40 # accept a page we navigated to
SUB_MENU_CONFIDENCE_THRESHOLD = 60        # accept a linked sub-menu page
RECURSIVE_SEARCH_CONFIDENCE = 70          # search from a rejected candidate we were sure about
PDF_LINK_CONFIDENCE_THRESHOLD = 60        # parse a PDF candidate straight away
HIDDEN_MENU_CONFIDENCE_THRESHOLD = 50     # accept the current page when the menu is embedded

MAX_SEARCH_DEPTH = 3
MAX_CANDIDATE_LINKS = 5

COMMON_MENU_PATHS = [
    "/menu", "/menus", "/food-menu", "/restaurant-menu", "/our-menu",
    "/order", "/order-online", "/food", "/dining", "/food-and-drink",
    "/eat", "/kitchen", "/dishes", "/lunch", "/dinner", "/breakfast",
]

# ============================================================================
# EXTRACTION SETTINGS
# ============================================================================

MAX_ITEMS_PER_PAGE = 150
MAX_TOTAL_ITEMS = 200
MAX_DESCRIPTION_LENGTH = 200
MAX_CATEGORIES = 20
ITEM_NAME_MIN_LENGTH = 3
ITEM_NAME_MAX_LENGTH = 200
NAME_SIMILARITY_THRESHOLD = 0.85

# ============================================================================
# SUB-MENU COLLECTION
# ============================================================================

MAX_SUB_MENU_LINKS = 8
MAX_SUB_MENU_DEPTH = 1
SUB_MENU_CONCURRENCY = 3
SUB_MENU_REQUEST_DELAY = 0.5       # seconds before each sub-page fetch

# ============================================================================
# FETCHING
# ============================================================================

USE_BROWSER = _env_flag("MENU_USE_BROWSER", True)
BROWSER_POOL_SIZE = 2
MAX_CONCURRENT_FETCHES = 10
MAX_QUEUED_FETCHES = 20
FETCH_QUEUE_TIMEOUT = 30.0
PAGE_FETCH_TIMEOUT_MS = 30000
PAGE_SETTLE_MS = 2000
DRAIN_TIMEOUT = 30.0

FETCH_CACHE_SIZE = 64
FETCH_CACHE_TTL = 600              # seconds

DESKTOP_VIEWPORT = {"width": 1920, "height": 1080}
MOBILE_VIEWPORT = {"width": 375, "height": 667}
DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

BLOCKED_RESOURCE_TYPES = ["media", "websocket", "font"]
BLOCKED_URL_PATTERNS = [
    "google-analytics", "googletagmanager", "facebook.com/tr",
    "doubleclick", "googlesyndication",
]

# ============================================================================
# PDF MENUS
# ============================================================================

PDF_MAX_SIZE = 50 * 1024 * 1024    # 50MB
PDF_DOWNLOAD_TIMEOUT = 120.0
PDF_MIN_TEXT_LENGTH = 50
PDF_CHUNK_SIZE = 6000
PDF_CHUNK_DELAY = 0.3
PDF_RAW_TEXT_LIMIT = 5000

# ============================================================================
# LOGGING / DEBUG
# ============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
DEBUG_DUMPS = _env_flag("MENU_DEBUG_DUMPS", False)
DEBUG_DIR = os.environ.get("MENU_DEBUG_DIR", "debug_logs")


def validate_config():
    """Report missing or degraded settings without stopping the pipeline"""
    warnings = []

    if not OPENAI_API_KEY:
        warnings.append("OPENAI_API_KEY not set - menus will be validated with pattern heuristics only")

    if not (0 <= DISCOVERED_PAGE_CONFIDENCE_THRESHOLD <= ORIGINAL_URL_CONFIDENCE_THRESHOLD <= 100):
        warnings.append("Confidence thresholds should satisfy 0 <= discovered <= original <= 100")

    if MAX_SEARCH_DEPTH < 1:
        warnings.append("MAX_SEARCH_DEPTH below 1 disables AI-assisted search")

    for warning in warnings:
        logger.warning(f"⚠️ {warning}")

    if not warnings:
        logger.info("✅ Configuration validated")

    return {"valid": not warnings, "warnings": warnings}
