"""HTML parsing and selector-based extraction utilities."""

from typing import Dict, Iterable, List, Optional
from urllib.parse import urldefrag, urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from catalog_crawl.config import LAZY_IMAGE_ATTRIBUTES
from catalog_crawl.logging_config import get_logger
from catalog_crawl.models import ProductRecord
from catalog_crawl.prices import parse_price

__all__ = [
    "parse_html",
    "select_text",
    "first_srcset_candidate",
    "resolve_image_url",
    "extract_images",
    "extract_with_selectors",
    "extract_page_links",
    "dedupe",
]

logger = get_logger("html_utils")

# Record fields that map straight to trimmed element text
_TEXT_FIELDS = ("name", "description", "color_id")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def select_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    """Trimmed text of the first element matching ``selector``."""
    try:
        element = soup.select_one(selector)
    except Exception as e:
        # soupsieve raises on malformed selectors
        logger.warning(f"Bad selector {selector!r}: {e}")
        return None
    if element is None:
        return None
    text = element.get_text().strip()
    return text or None


def first_srcset_candidate(srcset: Optional[str]) -> Optional[str]:
    """URL of the first candidate in a ``srcset`` list, without its descriptor."""
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    if not first:
        return None
    return first.split()[0]


def _attr(element: Tag, name: str) -> Optional[str]:
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value and value.strip():
        return value.strip()
    return None


def resolve_image_url(element: Tag) -> Optional[str]:
    """Effective image URL of an ``<img>`` (or similar) element.

    Inside ``<picture>`` a sibling ``<source>`` candidate wins over the
    image's own attributes. Otherwise: ``src``, then the lazy-load
    attributes, then the first ``srcset`` candidate.
    """
    parent = element.parent
    if isinstance(parent, Tag) and parent.name == "picture":
        for source in parent.find_all("source"):
            srcset = _attr(source, "data-srcset") or _attr(source, "srcset")
            candidate = first_srcset_candidate(srcset)
            if candidate:
                return candidate

    for attribute in ("src",) + tuple(LAZY_IMAGE_ATTRIBUTES):
        value = _attr(element, attribute)
        if value and not value.startswith("data:"):
            return value

    return first_srcset_candidate(_attr(element, "srcset") or _attr(element, "data-srcset"))


def extract_images(soup: BeautifulSoup, selector: str, base_url: str = "") -> List[str]:
    """Resolved, de-duplicated image URLs of every element matching ``selector``."""
    try:
        elements = soup.select(selector)
    except Exception as e:
        logger.warning(f"Bad image selector {selector!r}: {e}")
        return []

    images: List[str] = []
    for element in elements:
        url = resolve_image_url(element)
        if not url:
            continue
        if base_url:
            url = urljoin(base_url, url)
        if url not in images:
            images.append(url)
    return images


def extract_with_selectors(
    soup: BeautifulSoup,
    selectors: Dict[str, str],
    base_url: str = "",
) -> ProductRecord:
    """Apply field -> selector pairs and return what was found.

    Keys are record field names (``name``, ``price``, ``description``,
    ``color_id``, ``image_urls``). Stateless: the caller decides which
    fields are worth querying.
    """
    record = ProductRecord()
    for field_name, selector in selectors.items():
        if not selector:
            continue
        if field_name == "image_urls":
            record.image_urls = extract_images(soup, selector, base_url)
        elif field_name == "price":
            record.price = parse_price(select_text(soup, selector))
        elif field_name in _TEXT_FIELDS:
            setattr(record, field_name, select_text(soup, selector))
        else:
            logger.debug(f"No selector handling for field '{field_name}'")
    return record


def extract_page_links(soup: BeautifulSoup, page_url: str) -> List[str]:
    """Absolute, fragment-free ``<a href>`` targets in document order."""
    links: List[str] = []
    seen = set()
    for a in soup.find_all("a", href=True):
        href = a.get("href")
        if not href or not isinstance(href, str):
            continue
        href = href.strip()
        if href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        absolute, _ = urldefrag(urljoin(page_url, href))
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


def dedupe(urls: Iterable[str]) -> List[str]:
    seen = set()
    unique: List[str] = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique
