"""JSON-LD (schema.org) product extraction."""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional

from bs4 import BeautifulSoup

from catalog_crawl.logging_config import get_logger, log_crawl_event
from catalog_crawl.models import ProductRecord
from catalog_crawl.prices import parse_decimal
from catalog_crawl.profile import SiteProfile

__all__ = [
    "iter_json_ld_blocks",
    "find_product_object",
    "extract_structured_data",
    "extract_image_list",
    "extract_ean",
    "extract_article_number",
    "extract_offer",
    "extract_listing_links_from_json_ld",
]

logger = get_logger("structured_data")


def iter_json_ld_blocks(soup: BeautifulSoup, page_url: str = "") -> Iterator[Any]:
    """Yield each parsed ``application/ld+json`` block in document order.

    Malformed blocks are logged and skipped.
    """
    for index, script in enumerate(soup.find_all("script", type="application/ld+json"), start=1):
        content = script.string if script.string is not None else script.get_text()
        if not content or not content.strip():
            continue
        try:
            yield json.loads(content)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Skipping malformed JSON-LD block #{index} on {page_url}: {e}")
            log_crawl_event(
                "structured_data_error",
                {"url": page_url, "block": index, "error": str(e)},
                level=logging.WARNING,
            )


def _is_product(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    type_value = obj.get("@type")
    if isinstance(type_value, list):
        return "Product" in type_value
    return type_value == "Product"


def _candidates(block: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(block, list):
        for item in block:
            yield from _candidates(item)
    elif isinstance(block, dict):
        yield block
        graph = block.get("@graph")
        if isinstance(graph, list):
            for item in graph:
                yield from _candidates(item)


def find_product_object(soup: BeautifulSoup, page_url: str = "") -> Optional[Dict[str, Any]]:
    """Return the first Product-typed object on the page.

    Scanning stops at the first match; later Product blocks are ignored.
    """
    for block in iter_json_ld_blocks(soup, page_url):
        for candidate in _candidates(block):
            if _is_product(candidate):
                return candidate
    return None


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def extract_image_list(value: Any) -> List[str]:
    """Flatten the ``image`` property into an ordered list of URLs.

    Accepts a string, an ImageObject (``url``, then ``contentUrl``, then
    ``@id``), or an array mixing both.
    """
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        value = [value]
    if isinstance(value, list):
        images: List[str] = []
        for item in value:
            if isinstance(item, str):
                if item.strip():
                    images.append(item.strip())
            elif isinstance(item, dict):
                url = _text(item.get("url")) or _text(item.get("contentUrl")) or _text(item.get("@id"))
                if url:
                    images.append(url)
        return images
    return []


def extract_ean(product: Dict[str, Any], ean_fields: List[str]) -> Optional[str]:
    """Return the first configured barcode field present with a value.

    Nothing is inferred when none of the configured fields is present.
    """
    for field_name in ean_fields:
        if field_name not in product:
            continue
        value = product[field_name]
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        text = _text(value)
        if text:
            logger.debug(f"EAN from JSON-LD field '{field_name}': {text}")
            return text
    return None


def extract_article_number(product: Dict[str, Any], profile: SiteProfile) -> Optional[str]:
    """Read the article number the way the profile says to.

    ``field``: value of ``article_number_field``, narrowed by
    ``article_number_pattern`` when it matches.
    ``url``: ``article_number_pattern`` applied to the URL held in
    ``article_number_field`` (``@id`` by default); no match, no number.
    """
    raw = _text(product.get(profile.article_number_field))
    if raw is None:
        return None

    pattern = profile.article_number_pattern
    match = None
    if pattern:
        try:
            match = re.search(pattern, raw)
        except re.error as e:
            logger.warning(f"Invalid article_number_pattern {pattern!r}: {e}")

    if match and match.groups() and match.group(1):
        return match.group(1)
    if profile.article_number_source == "field":
        return raw
    return None


def extract_offer(offers: Any):
    """Return ``(price, currency)`` from an Offer, AggregateOffer, or list of offers."""
    if isinstance(offers, list):
        offers = next((item for item in offers if isinstance(item, dict)), None)
    if not isinstance(offers, dict):
        return None, None

    price_value = offers.get("price")
    if price_value is None:
        price_value = offers.get("lowPrice")
    price = parse_decimal(price_value)

    currency = _text(offers.get("priceCurrency"))
    return price, currency


def extract_structured_data(
    soup: BeautifulSoup,
    profile: SiteProfile,
    page_url: str = "",
) -> ProductRecord:
    """Build a record from the first Product JSON-LD object.

    Never raises; a page without usable JSON-LD yields an empty record.
    """
    record = ProductRecord()
    try:
        product = find_product_object(soup, page_url)
    except Exception as e:
        logger.warning(f"JSON-LD scan failed on {page_url}: {e}")
        return record

    if product is None:
        logger.debug(f"No Product JSON-LD on {page_url}")
        return record

    record.name = _text(product.get("name"))
    record.description = _text(product.get("description"))

    if "color" in product and product["color"] is None:
        # explicit null: the product has no color
        record.explicit_nulls.add("color_id")
    else:
        record.color_id = _text(product.get("color"))

    record.image_urls = extract_image_list(product.get("image"))
    record.ean = extract_ean(product, profile.ean_fields)
    record.article_number = extract_article_number(product, profile)

    if profile.extract_material:
        record.material = _text(product.get("material"))
    if profile.extract_category:
        record.category = _text(product.get("category"))

    record.price, record.currency = extract_offer(product.get("offers"))
    return record


def extract_listing_links_from_json_ld(soup: BeautifulSoup, page_url: str = "") -> List[str]:
    """Collect ``offers.url`` of every Product block on a listing page."""
    links: List[str] = []
    for block in iter_json_ld_blocks(soup, page_url):
        for candidate in _candidates(block):
            if not _is_product(candidate):
                continue
            offers = candidate.get("offers")
            if isinstance(offers, list):
                offers = next((item for item in offers if isinstance(item, dict)), None)
            if isinstance(offers, dict):
                url = _text(offers.get("url"))
                if url and url not in links:
                    links.append(url)
    return links
