"""Listing vs. detail page classification."""

import re
from enum import Enum

from catalog_crawl.profile import SiteProfile

__all__ = ["PageType", "classify_page", "is_detail_url"]


class PageType(Enum):
    LISTING = "listing"
    DETAIL = "detail"


def is_detail_url(url: str, pattern: str) -> bool:
    """True if ``pattern`` occurs in ``url`` as a substring or regex match."""
    if not pattern:
        return False
    if pattern in url:
        return True
    try:
        return re.search(pattern, url) is not None
    except re.error:
        return False


def classify_page(url: str, profile: SiteProfile) -> PageType:
    if is_detail_url(url, profile.detail_url_pattern):
        return PageType.DETAIL
    return PageType.LISTING
