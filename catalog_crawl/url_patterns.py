"""Article numbers from product URLs."""

import re
from typing import Optional, Sequence

from bs4 import BeautifulSoup

from catalog_crawl.config import ARTICLE_NUMBER_URL_PATTERNS
from catalog_crawl.html_utils import select_text
from catalog_crawl.logging_config import get_logger
from catalog_crawl.models import ProductRecord

__all__ = ["match_article_number", "extract_from_url"]

logger = get_logger("url_patterns")

_COMPILED = tuple(re.compile(pattern) for pattern in ARTICLE_NUMBER_URL_PATTERNS)


def match_article_number(url: str, patterns: Sequence[re.Pattern] = _COMPILED) -> Optional[str]:
    """First capture group of the first pattern that matches ``url``."""
    for pattern in patterns:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def extract_from_url(
    url: str,
    soup: Optional[BeautifulSoup] = None,
    sku_selector: str = "",
) -> ProductRecord:
    """Last-resort source: only ever contributes ``article_number``.

    Tries the URL patterns first, then the site's SKU selector when one
    is configured and a document is available.
    """
    record = ProductRecord()
    article_number = match_article_number(url)
    if article_number:
        logger.debug(f"Article number from URL: {article_number}")
    elif sku_selector and soup is not None:
        article_number = select_text(soup, sku_selector)
        if article_number:
            logger.debug(f"Article number from SKU selector: {article_number}")
    record.article_number = article_number
    return record
