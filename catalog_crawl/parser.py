"""Detail-page parsing: runs the extraction sources in merge order."""

from typing import Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from catalog_crawl.html_utils import dedupe, extract_with_selectors, parse_html
from catalog_crawl.logging_config import get_logger
from catalog_crawl.models import ProductRecord, merge_records
from catalog_crawl.profile import SiteProfile
from catalog_crawl.structured_data import extract_structured_data
from catalog_crawl.url_patterns import extract_from_url

__all__ = ["parse_product_page"]

logger = get_logger("parser")


def parse_product_page(
    page: Union[str, BeautifulSoup],
    url: str,
    profile: SiteProfile,
) -> ProductRecord:
    """Extract one product record from a detail page.

    Source order is fixed: JSON-LD first, then the profile's HTML
    selectors (only for fields still missing), then URL patterns (only
    for a missing article number). Earlier sources always win.

    The returned record may lack an article number; callers must drop
    such records before persistence.
    """
    soup = parse_html(page) if isinstance(page, str) else page

    if profile.use_structured_data:
        record = extract_structured_data(soup, profile, url)
    else:
        record = ProductRecord()
    record.source_url = url

    if profile.use_html_selectors:
        missing = record.missing_fields()
        selectors = {
            field_name: selector
            for field_name, selector in profile.detail_selectors.items()
            if field_name in missing
        }
        if selectors:
            merge_records(record, extract_with_selectors(soup, selectors, base_url=url))

    if profile.use_url_patterns and not record.article_number:
        merge_records(record, extract_from_url(url, soup, profile.sku_selector))

    if record.article_number:
        record.article_number = record.article_number.strip()
    if record.color_id is not None and not record.color_id.strip():
        record.color_id = None
    record.image_urls = dedupe(urljoin(url, image) for image in record.image_urls)

    logger.debug(
        f"Parsed {url}: article={record.article_number} color={record.color_id} "
        f"images={len(record.image_urls)}"
    )
    return record
