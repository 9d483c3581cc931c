"""Crawl orchestration: fetch, classify, extract, persist."""

import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional, Set

import requests  # type: ignore[import-untyped]
from bs4 import BeautifulSoup

from catalog_crawl.batch import BatchFlushError, BatchSaver, FlushStats, ImageFetcher
from catalog_crawl.classifier import PageType, classify_page
from catalog_crawl.config import (
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    SKIP_URL_SUBSTRINGS,
)
from catalog_crawl.html_utils import dedupe, extract_page_links, parse_html
from catalog_crawl.images import download_images, find_valid_image_urls
from catalog_crawl.logging_config import get_logger, log_crawl_event
from catalog_crawl.models import ProductRecord
from catalog_crawl.parser import parse_product_page
from catalog_crawl.profile import SiteProfile
from catalog_crawl.structured_data import extract_listing_links_from_json_ld
from catalog_crawl.url_validation import URLValidationError, is_safe_url, validate_url

__all__ = [
    "FetchError",
    "CrawlError",
    "LinkRenderer",
    "CrawlResult",
    "CrawlSession",
    "create_session",
    "fetch_html",
    "login",
    "make_image_fetcher",
]

logger = get_logger("crawler")

# Browser-automation collaborator: listing URL -> absolute product links
LinkRenderer = Callable[[str, SiteProfile], List[str]]


class FetchError(ValueError):
    """A page could not be fetched after all retries."""


class CrawlError(Exception):
    """The crawl cannot proceed at all."""


def create_session() -> requests.Session:
    """Create a requests Session with connection pooling and crawler headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def fetch_html(
    url: str,
    session: requests.Session,
    allowed_domains: Optional[List[str]] = None,
    timeout: float = REQUEST_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """HTTP GET with exponential backoff on transient failures.

    Args:
        url: URL to fetch
        session: Session to fetch with
        allowed_domains: Domains the URL must belong to (None = any)
        timeout: Per-request timeout in seconds
        sleep: Sleep function used for backoff

    Returns:
        Response body as text (UTF-8 unless the server says otherwise)

    Raises:
        FetchError: If the URL is invalid or the request fails after all retries
    """
    try:
        url = validate_url(url, allowed_domains)
    except URLValidationError as e:
        raise FetchError(f"Invalid URL: {e}") from e

    last_exception: Optional[Exception] = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = session.get(url, timeout=timeout)

            if resp.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = _backoff(attempt)
                logger.warning(
                    f"Received {resp.status_code} for {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                sleep(backoff)
                continue

            resp.raise_for_status()
            if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
                resp.encoding = "utf-8"
            return str(resp.text)

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            raise FetchError(f"HTTP Error {status_code} fetching {url}") from e

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            last_exception = e
            if attempt < MAX_RETRIES:
                backoff = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{MAX_RETRIES})"
                )
                sleep(backoff)
                continue
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

    raise FetchError(f"Failed to fetch {url} after {MAX_RETRIES} retries") from last_exception


def login(
    session: requests.Session,
    profile: SiteProfile,
    timeout: float = REQUEST_TIMEOUT,
) -> bool:
    """Log in to the target site with a form POST, keeping cookies on ``session``.

    Profiles without a login URL or credentials are public sites and
    count as logged in.

    Returns:
        True when crawling may proceed
    """
    if not profile.login_url:
        return True
    if not profile.requires_login:
        logger.warning(f"Login URL set for {profile.name} but username or password is empty, skipping login")
        return True

    try:
        url = validate_url(profile.login_url)
    except URLValidationError as e:
        logger.error(f"Invalid login URL for {profile.name}: {e}")
        return False

    logger.info(f"Logging in at {url}")
    form = {
        profile.username_field: profile.username,
        profile.password_field: profile.password,
    }
    try:
        resp = session.post(url, data=form, timeout=timeout, allow_redirects=True)
    except requests.exceptions.RequestException as e:
        logger.error(f"Login request to {url} failed: {e}")
        return False

    if resp.ok:
        logger.info("Login successful")
        return True
    logger.warning(f"Login failed with status {resp.status_code}")
    logger.debug(f"Login response: {resp.text[:500]}")
    return False


@dataclass
class CrawlResult:
    """What one crawl session did."""

    pages_visited: int = 0
    products_found: int = 0
    pages_dropped: int = 0
    page_errors: int = 0
    stats: FlushStats = field(default_factory=FlushStats)
    flush_errors: List[BatchFlushError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.flush_errors


class CrawlSession:
    """One sequential crawl of one site.

    Strategy is fixed per session by ``profile.use_javascript_rendering``:
    either follow in-document links breadth-first from the start page, or
    ask ``link_renderer`` for the product links of the JavaScript-rendered
    listing and fetch each of them over plain HTTP.

    Usage:
        saver = BatchSaver(db_path)
        session = CrawlSession(profile, saver)
        result = session.run()
    """

    def __init__(
        self,
        profile: SiteProfile,
        saver: BatchSaver,
        http: Optional[requests.Session] = None,
        link_renderer: Optional[LinkRenderer] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.profile = profile
        self.saver = saver
        self.http = http or create_session()
        self.link_renderer = link_renderer
        self._sleep = sleep
        self._detail_fetches = 0
        self._result = CrawlResult()

    # -- strategies ---------------------------------------------------------

    def run(self) -> CrawlResult:
        """Crawl the site and flush everything that was extracted.

        Raises:
            CrawlError: If login fails or the start/listing page yields nothing to process
        """
        profile = self.profile
        self._result = CrawlResult()
        self._detail_fetches = 0

        strategy = "hybrid" if profile.use_javascript_rendering else "links"
        logger.info(f"Starting crawl of {profile.name} ({strategy}): {profile.start_url}")
        log_crawl_event("crawl_start", {
            "profile": profile.name,
            "url": profile.start_url,
            "strategy": strategy,
            "max_pages": profile.max_pages,
        })

        if not login(self.http, profile):
            raise CrawlError(f"Login to {profile.name} failed, aborting crawl")

        if profile.use_javascript_rendering:
            self._crawl_rendered_listing()
        else:
            self._crawl_links()

        self._flush()

        result = self._result
        result.stats = self.saver.totals
        logger.info(
            f"Crawl of {profile.name} complete: {result.pages_visited} pages, "
            f"{result.products_found} products, {result.pages_dropped} dropped, "
            f"{result.stats.inserted} inserted, {result.stats.updated} updated"
        )
        log_crawl_event("crawl_complete", {
            "profile": profile.name,
            "pages_visited": result.pages_visited,
            "products_found": result.products_found,
            "pages_dropped": result.pages_dropped,
            "page_errors": result.page_errors,
            "inserted": result.stats.inserted,
            "updated": result.stats.updated,
            "images": result.stats.images,
            "failed_flushes": len(result.flush_errors),
        })
        return result

    def _crawl_rendered_listing(self) -> None:
        if self.link_renderer is None:
            raise CrawlError(
                f"Profile '{self.profile.name}' needs JavaScript rendering but no link renderer was given"
            )
        links = self.link_renderer(self.profile.start_url, self.profile)
        if not links:
            raise CrawlError(f"No product links rendered for {self.profile.start_url}")

        logger.info(f"Rendered listing gave {len(links)} product links")
        for url in links[: self.profile.max_pages]:
            self._result.pages_visited += 1
            self.process_detail_page(url)

    def _crawl_links(self) -> None:
        profile = self.profile
        queue: Deque[str] = deque([profile.start_url])
        seen: Set[str] = {profile.start_url}
        first = True

        while queue and self._result.pages_visited < profile.max_pages:
            url = queue.popleft()
            self._result.pages_visited += 1

            if not first and classify_page(url, profile) is PageType.DETAIL:
                self.process_detail_page(url)
                continue

            try:
                soup = parse_html(self._fetch(url))
            except FetchError as e:
                if first:
                    raise CrawlError(f"Cannot fetch start page {url}: {e}") from e
                self._page_error(url, e)
                continue

            if first and classify_page(url, profile) is PageType.DETAIL:
                # started directly on a product page
                first = False
                self._handle_detail(url, soup)
                continue
            first = False

            for link in self._listing_links(soup, url):
                if link not in seen:
                    seen.add(link)
                    queue.append(link)

    def _listing_links(self, soup: BeautifulSoup, url: str) -> List[str]:
        candidates = extract_page_links(soup, url) + extract_listing_links_from_json_ld(soup, url)
        return [
            link for link in dedupe(candidates)
            if is_safe_url(link, self.profile.allowed_domains)
        ]

    # -- per page -----------------------------------------------------------

    def process_detail_page(self, url: str) -> Optional[ProductRecord]:
        """Fetch one detail page, extract it and hand the record to the saver."""
        lowered = url.lower()
        if any(marker in lowered for marker in SKIP_URL_SUBSTRINGS):
            logger.info(f"Skipping non-product page: {url}")
            return None

        self._pace()
        try:
            html = self._fetch(url)
        except FetchError as e:
            self._page_error(url, e)
            return None
        return self._handle_detail(url, parse_html(html))

    def _handle_detail(self, url: str, soup: BeautifulSoup) -> Optional[ProductRecord]:
        try:
            record = parse_product_page(soup, url, self.profile)
        except Exception as e:
            self._page_error(url, e)
            return None

        if not record.article_number:
            self._result.pages_dropped += 1
            logger.warning(f"No article number found, dropping page: {url}")
            log_crawl_event("page_dropped", {"url": url}, level=logging.WARNING)
            return None

        if self.profile.validate_images:
            validated = find_valid_image_urls(
                soup,
                record.article_number,
                self.http,
                base_url=url,
                extension=self.profile.image_extension,
                rewrites=self.profile.cdn_rewrites,
            )
            if validated:
                record.image_urls = validated

        self._result.products_found += 1
        logger.info(
            f"Parsed product {record.article_number}"
            + (f" / {record.color_id}" if record.color_id else "")
            + f" ({len(record.image_urls)} images)"
        )

        try:
            self.saver.add(record)
        except BatchFlushError as e:
            self._result.flush_errors.append(e)
        return record

    # -- helpers ------------------------------------------------------------

    def _fetch(self, url: str) -> str:
        return fetch_html(url, self.http, self.profile.allowed_domains, sleep=self._sleep)

    def _pace(self) -> None:
        if self._detail_fetches and self.profile.crawl_delay > 0:
            self._sleep(self.profile.crawl_delay)
        self._detail_fetches += 1

    def _page_error(self, url: str, error: Exception) -> None:
        self._result.page_errors += 1
        logger.error(f"Error processing {url}: {error}")
        log_crawl_event("page_error", {"url": url, "error": str(error)}, level=logging.ERROR)

    def _flush(self) -> None:
        try:
            self.saver.flush()
        except BatchFlushError as e:
            self._result.flush_errors.append(e)


def make_image_fetcher(http: requests.Session) -> ImageFetcher:
    """Adapter so ``BatchSaver`` downloads payloads over the crawl's session."""
    def fetch(urls: List[str]):
        return download_images(urls, http)
    return fetch
