# utils/url_utils.py
"""URL helpers: normalization, validation and same-site checks"""

from urllib.parse import urljoin, urlparse, urlunparse, parse_qsl, urlencode
from typing import Optional

from utils.errors import InvalidURLError

TRACKING_PARAMS = ('fbclid', 'gclid', 'mc_cid', 'mc_eid')


def normalize_url(url: str) -> str:
    """Add a scheme, drop fragments, tracking parameters and the trailing slash"""
    if not url or not isinstance(url, str):
        raise InvalidURLError(f"Invalid URL: {url!r}")

    url = url.strip()
    if '://' not in url:
        url = 'https://' + url.lstrip('/')

    parsed = urlparse(url)
    query = [
        (key, value) for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not key.lower().startswith('utm_') and key.lower() not in TRACKING_PARAMS
    ]
    path = parsed.path.rstrip('/') if parsed.path not in ('', '/') else ''
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path,
                       parsed.params, urlencode(query), ''))


def validate_url(url: str) -> str:
    """Normalize *url* and make sure it is something we can fetch"""
    normalized = normalize_url(url)
    parsed = urlparse(normalized)
    if parsed.scheme not in ('http', 'https'):
        raise InvalidURLError(f"Only http and https URLs are supported: {url}")
    host = parsed.hostname
    if not host or ('.' not in host and host != 'localhost'):
        raise InvalidURLError(f"URL has no valid host: {url}")
    return normalized


def resolve_url(href: str, base_url: str) -> Optional[str]:
    """Resolve a link against its page; None for links we never follow"""
    if not href:
        return None
    href = href.strip()
    if href.startswith(('#', 'mailto:', 'tel:', 'javascript:', 'data:', 'sms:')):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme not in ('http', 'https'):
        return None
    try:
        return normalize_url(absolute)
    except InvalidURLError:
        return None


def site_origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def _bare_host(url: str) -> str:
    host = (urlparse(url).hostname or '').lower()
    return host[4:] if host.startswith('www.') else host


def same_site(url: str, other: str) -> bool:
    return _bare_host(url) == _bare_host(other)


def is_pdf_url(url: Optional[str]) -> bool:
    if not url:
        return False
    return urlparse(url).path.lower().endswith('.pdf')
