"""Image URL discovery, validation and download.

JSON-LD often points at access-restricted origin-CDN URLs, while the
page itself renders the same photos from a public path, sometimes with
a zero-padded color suffix. Discovery scans the whole document for
image URLs containing the article number, rewrites known CDN prefixes,
and keeps the ones that answer a HEAD request.
"""

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urljoin

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from catalog_crawl.config import (
    DEFAULT_IMAGE_EXTENSION,
    IMAGE_CHECK_TIMEOUT,
    MAX_IMAGE_WORKERS,
    REQUEST_TIMEOUT,
)
from catalog_crawl.logging_config import get_logger

__all__ = [
    "generate_patterns",
    "find_candidate_image_urls",
    "rewrite_cdn_url",
    "check_image_url",
    "validate_image_urls",
    "find_valid_image_urls",
    "download_image",
    "download_images",
]

logger = get_logger("images")

# <digits>-<1 or 2 digits>, e.g. 9970239-5
_SHORT_SUFFIX_RE = re.compile(r"^(\d+)-(\d{1,2})$")

# Attributes that carry image URLs on image-bearing elements
_IMAGE_ATTRIBUTES = (
    "src",
    "data-src",
    "srcset",
    "data-srcset",
    "data-original",
    "data-lazy-src",
    "href",
)
_IMAGE_ELEMENTS = "img, source, link[rel='preload'][as='image']"


def generate_patterns(article_number: str) -> List[str]:
    """Identifiers to look for in image URLs.

    Sites render the color suffix zero-padded to three digits, so
    "9970239-5" also yields "9970239-005".
    """
    patterns = [article_number]
    match = _SHORT_SUFFIX_RE.match(article_number)
    if match:
        padded = f"{match.group(1)}-{match.group(2).zfill(3)}"
        if padded not in patterns:
            patterns.append(padded)
    return patterns


def _split_values(attribute: str, value: str) -> List[str]:
    if "srcset" in attribute:
        return [part.strip().split()[0] for part in value.split(",") if part.strip()]
    return [value.strip()]


def _matches(value: str, patterns: Iterable[str], extension: str) -> bool:
    lower = value.lower()
    if not lower.endswith(extension.lower()):
        return False
    return any(pattern.lower() in lower for pattern in patterns)


def find_candidate_image_urls(
    soup: BeautifulSoup,
    article_number: str,
    extension: str = DEFAULT_IMAGE_EXTENSION,
) -> List[str]:
    """Every image URL in the document that ends in ``extension`` and
    contains one of the article-number patterns.

    Looks at image-bearing elements, inline ``background-image`` styles
    and all ``data-*`` attributes. De-duplicated case-insensitively,
    first spelling kept.
    """
    patterns = generate_patterns(article_number)
    found: Dict[str, str] = {}

    def add(value: str) -> None:
        if value and _matches(value, patterns, extension):
            found.setdefault(value.lower(), value)

    for element in soup.select(_IMAGE_ELEMENTS):
        for attribute in _IMAGE_ATTRIBUTES:
            value = element.get(attribute)
            if isinstance(value, str) and value.strip():
                for candidate in _split_values(attribute, value):
                    add(candidate)

    style_re = re.compile(
        r"url\(\s*['\"]?([^'\"()]+" + re.escape(extension) + r")['\"]?\s*\)",
        re.IGNORECASE,
    )
    for element in soup.find_all(True):
        style = element.get("style")
        if isinstance(style, str) and extension.lower() in style.lower():
            for url in style_re.findall(style):
                add(url.strip())

        for attribute, value in element.attrs.items():
            if attribute.lower().startswith("data-") and isinstance(value, str) and value.strip():
                for candidate in _split_values(attribute.lower(), value):
                    add(candidate)

    candidates = list(found.values())
    logger.debug(
        f"{len(candidates)} candidate image URLs for {article_number} "
        f"(patterns: {', '.join(patterns)})"
    )
    return candidates


def rewrite_cdn_url(url: str, rewrites: Mapping[str, str]) -> str:
    """Swap the first matching origin-CDN prefix for its public equivalent."""
    for prefix, replacement in rewrites.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def check_image_url(
    url: str,
    session: requests.Session,
    timeout: float = IMAGE_CHECK_TIMEOUT,
) -> bool:
    """Lightweight existence check. Never raises."""
    try:
        response = session.head(url, timeout=timeout, allow_redirects=True)
        if response.status_code in (405, 501):
            # HEAD not supported; fall back to a streamed GET
            response = session.get(url, timeout=timeout, stream=True)
            response.close()
        if response.ok:
            return True
        logger.debug(f"Image check failed ({response.status_code}): {url}")
    except requests.exceptions.RequestException as e:
        logger.debug(f"Image check error for {url}: {e}")
    return False


def validate_image_urls(
    urls: List[str],
    session: requests.Session,
    base_url: str = "",
    rewrites: Optional[Mapping[str, str]] = None,
    timeout: float = IMAGE_CHECK_TIMEOUT,
) -> List[str]:
    """Check all URLs in parallel and return those that respond.

    Results come back in completion order. A failing candidate is
    dropped without affecting the others.

    All workers share ``session`` read-only: they only issue HEAD/GET
    requests, whose connection pool and cookie jar are lock-protected.
    Do not change headers, auth or adapters on it while a check runs.
    """
    targets: List[str] = []
    for url in urls:
        absolute = urljoin(base_url, url) if base_url else url
        absolute = rewrite_cdn_url(absolute, rewrites or {})
        if absolute not in targets:
            targets.append(absolute)

    if not targets:
        return []

    valid: List[str] = []
    with ThreadPoolExecutor(max_workers=min(len(targets), MAX_IMAGE_WORKERS)) as executor:
        future_to_url = {
            executor.submit(check_image_url, url, session, timeout): url for url in targets
        }
        for future in as_completed(future_to_url):
            url = future_to_url[future]
            try:
                if future.result():
                    valid.append(url)
            except Exception as e:
                logger.debug(f"Image check crashed for {url}: {e}")

    logger.info(f"Validated {len(valid)}/{len(targets)} image URLs")
    return valid


def find_valid_image_urls(
    soup: BeautifulSoup,
    article_number: str,
    session: requests.Session,
    base_url: str = "",
    extension: str = DEFAULT_IMAGE_EXTENSION,
    rewrites: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """Discover candidate image URLs for ``article_number`` and keep the live ones."""
    candidates = find_candidate_image_urls(soup, article_number, extension)
    if not candidates:
        logger.info(f"No image URLs containing {article_number} found on page")
        return []
    return validate_image_urls(candidates, session, base_url=base_url, rewrites=rewrites)


def download_image(
    url: str,
    session: requests.Session,
    timeout: float = REQUEST_TIMEOUT,
) -> Optional[bytes]:
    """Image bytes, or None on any HTTP failure."""
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content
    except requests.exceptions.RequestException as e:
        logger.warning(f"Failed to download image {url}: {e}")
        return None


def download_images(
    urls: List[str],
    session: requests.Session,
    timeout: float = REQUEST_TIMEOUT,
) -> List[Tuple[str, Optional[bytes]]]:
    """Download several images concurrently, keeping input order.

    ``session`` is shared across workers the same way as in
    ``validate_image_urls``.
    """
    if not urls:
        return []
    with ThreadPoolExecutor(max_workers=min(len(urls), MAX_IMAGE_WORKERS)) as executor:
        payloads = list(executor.map(lambda url: download_image(url, session, timeout), urls))
    downloaded = sum(1 for data in payloads if data is not None)
    logger.info(f"Downloaded {downloaded}/{len(urls)} images")
    return list(zip(urls, payloads))
