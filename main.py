# main.py
"""
Restaurant Menu Discovery - Main Entry Point

Runs discovery for one restaurant website and prints the result as JSON:

    python main.py https://example-bistro.com --mobile
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables before config reads them
load_dotenv()

import config

logging.basicConfig(
    level=getattr(logging, str(config.LOG_LEVEL).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from agents.menu_locator import discover_menu
from utils.errors import InvalidURLError, TooManyConcurrentRequests
from utils.menu_models import DiscoveryOptions


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Find a restaurant's menu and extract its items")
    parser.add_argument("url", help="Restaurant website or menu PDF URL")
    parser.add_argument("--mobile", action="store_true", help="Render pages with a mobile viewport")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Per-page fetch timeout")
    parser.add_argument("--sub-menu-depth", type=int, default=None,
                        help="Link hops to follow from the menu page (0 disables sub-menus)")
    parser.add_argument("--include-raw-text", action="store_true",
                        help="Include extracted PDF text in the output")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point: run one discovery and print it"""
    args = parse_args(argv)
    logger.info("🍽️ Starting Restaurant Menu Discovery")
    config.validate_config()

    if os.environ.get("LANGSMITH_TRACING", os.environ.get("LANGSMITH_TRACING_V2")) == "true":
        logger.info(f"🔍 LangSmith tracing is ENABLED (project: {os.environ.get('LANGSMITH_PROJECT', 'default')})")

    options = DiscoveryOptions(
        timeout_ms=args.timeout_ms,
        mobile_viewport=args.mobile,
        max_sub_menu_depth=args.sub_menu_depth,
    )

    try:
        result = asyncio.run(discover_menu(args.url, options))
    except InvalidURLError as e:
        logger.error(f"❌ {e}")
        return 2
    except TooManyConcurrentRequests as e:
        logger.error(f"❌ {e}")
        return 3

    output = result.to_dict()
    if args.include_raw_text:
        output["raw_text"] = result.raw_text
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
