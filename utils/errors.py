# utils/errors.py
"""
Exception taxonomy for menu discovery.

Only InvalidURLError and TooManyConcurrentRequests are meant to reach the
caller of discover_menu(); everything else is caught where it happens and
turned into "this stage produced nothing".
"""

from typing import Optional


class MenuDiscoveryError(Exception):
    """Base class for every error raised by the discovery pipeline"""


class InvalidURLError(MenuDiscoveryError, ValueError):
    """The caller passed something that is not an http(s) URL"""


class TooManyConcurrentRequests(MenuDiscoveryError):
    """The in-flight fetch cap is exhausted; retry later"""

    def __init__(self, message: str = "Too many concurrent scrapes. Please try again in a moment."):
        super().__init__(message)


class FetchFailure(MenuDiscoveryError):
    """Network error, timeout or non-2xx status while fetching a page"""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class ClassificationUnavailable(MenuDiscoveryError):
    """The chat model cannot be used (no credentials, quota, timeout, API error)"""


class ParseFailure(MenuDiscoveryError):
    """The chat model answered, but not with anything we could decode"""


class PDFResourceError(MenuDiscoveryError):
    """A PDF menu could not be used; the message is shown to the user"""

    reason = "PDF menu could not be processed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class PDFDownloadTimeout(PDFResourceError):
    reason = "PDF download timeout - file may be too large or server too slow"


class PDFNotFound(PDFResourceError):
    reason = "PDF not found (404) - the menu link may be outdated"


class PDFAccessDenied(PDFResourceError):
    reason = "Access denied to PDF - the restaurant may have restricted access"


class OversizedResource(PDFResourceError):
    def __init__(self, size: int, max_size: int):
        super().__init__(f"PDF file too large: {size} bytes (max: {max_size})")
        self.size = size
        self.max_size = max_size


class EncryptedResource(PDFResourceError):
    reason = "PDF is password protected and cannot be read"


class UnreadableResource(PDFResourceError):
    reason = "PDF contains no readable text or may be image-based"


class InvalidPDF(UnreadableResource):
    reason = "Invalid PDF file format"
