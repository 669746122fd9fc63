# utils/text_normalizer.py
"""
Plain-text and page-structure helpers shared by every discovery stage
"""

import re
import logging
from typing import Optional

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

_SCRIPT_STYLE_RE = re.compile(r'<(script|style)\b[^>]*>.*?</\1\s*>', re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r'<[^>]+>')
_WHITESPACE_RE = re.compile(r'\s+')

HTML_ENTITIES = {
    '&nbsp;': ' ',
    '&amp;': '&',
    '&lt;': '<',
    '&gt;': '>',
    '&quot;': '"',
    '&#39;': "'",
}

# Elements that carry navigation hints for menu link discovery
STRUCTURE_SELECTORS = [
    'nav', 'header', 'footer',
    '[role="navigation"]', '[class*="nav"]', '[class*="menu"]',
]


def to_plain_text(html: Optional[str]) -> str:
    """Strip an HTML document down to a single line of readable text"""
    if not html:
        return ""

    text = _SCRIPT_STYLE_RE.sub(' ', html)
    text = _TAG_RE.sub(' ', text)
    for entity, replacement in HTML_ENTITIES.items():
        text = text.replace(entity, replacement)
    return _WHITESPACE_RE.sub(' ', text).strip()


def collapse_whitespace(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WHITESPACE_RE.sub(' ', text).strip()


def prepare_page_structure(html: Optional[str], max_length: int = 25000) -> str:
    """
    Build a compact digest of a page for link discovery.

    The digest lists every link and button (text, href, title, aria-label),
    then the text of navigation areas and the main content, so the
    classifier sees where a menu could be hiding without the full markup.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, 'html.parser')
    for element in soup(['script', 'style', 'noscript', 'svg']):
        element.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    sections = []

    title = soup.title.get_text(strip=True) if soup.title else ""
    if title:
        sections.append(f"PAGE TITLE: {title}")

    link_lines = []
    for link in soup.find_all('a', href=True):
        text = collapse_whitespace(link.get_text(' '))
        attrs = [f'href="{link["href"]}"']
        for attr in ('title', 'aria-label'):
            if link.get(attr):
                attrs.append(f'{attr}="{link[attr]}"')
        link_lines.append(f"- [{text}] {' '.join(attrs)}")
    if link_lines:
        sections.append("LINKS:\n" + "\n".join(link_lines))

    button_lines = []
    for button in soup.select('button, [role="button"], input[type="button"], input[type="submit"]'):
        text = collapse_whitespace(button.get_text(' ')) or button.get('value', '')
        onclick = button.get('onclick') or button.get('data-href') or ''
        if text or onclick:
            button_lines.append(f"- [{text}] {onclick}".rstrip())
    if button_lines:
        sections.append("BUTTONS:\n" + "\n".join(button_lines))

    seen = set()
    nav_lines = []
    for selector in STRUCTURE_SELECTORS:
        for element in soup.select(selector):
            text = collapse_whitespace(element.get_text(' '))
            if text and text not in seen:
                seen.add(text)
                nav_lines.append(f"<{element.name}> {text[:500]}")
    if nav_lines:
        sections.append("NAVIGATION:\n" + "\n".join(nav_lines))

    main = soup.find('main') or soup.find('article') or soup.body
    if main is not None:
        sections.append("CONTENT:\n" + collapse_whitespace(main.get_text(' '))[:5000])

    structure = "\n\n".join(sections)
    if len(structure) > max_length:
        logger.debug(f"Page structure truncated from {len(structure)} to {max_length} chars")
        structure = structure[:max_length]
    return structure
