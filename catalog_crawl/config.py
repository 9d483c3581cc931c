"""Configuration and constants for the crawler."""

import os
from pathlib import Path
from typing import Dict, Tuple

from dotenv import load_dotenv

__all__ = [
    "HEADERS",
    "REQUEST_TIMEOUT",
    "IMAGE_CHECK_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "BATCH_SIZE",
    "FAILED_SAMPLE_SIZE",
    "DEFAULT_CRAWL_DELAY",
    "DEFAULT_MAX_PAGES",
    "DEFAULT_EAN_FIELDS",
    "ARTICLE_NUMBER_URL_PATTERNS",
    "LAZY_IMAGE_ATTRIBUTES",
    "DEFAULT_IMAGE_EXTENSION",
    "MAX_IMAGE_WORKERS",
    "SKIP_URL_SUBSTRINGS",
    "DB_PATH",
    "LOG_DIR",
]

_PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables from .env file (explicitly specify path)
load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")

# HTTP headers sent with every request
HEADERS: Dict[str, str] = {
    "User-Agent": os.getenv(
        "CATALOG_CRAWL_USER_AGENT",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ),
    "Accept-Charset": "utf-8",
}

# Request timeouts (seconds)
REQUEST_TIMEOUT = int(os.getenv("CATALOG_CRAWL_REQUEST_TIMEOUT", "15"))
IMAGE_CHECK_TIMEOUT = int(os.getenv("CATALOG_CRAWL_IMAGE_TIMEOUT", "10"))

# Retry settings with exponential backoff
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2.0  # 2^attempt seconds
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Batch persistence
BATCH_SIZE = 50
FAILED_SAMPLE_SIZE = 5  # article numbers reported when a flush fails

# Crawl pacing
DEFAULT_CRAWL_DELAY = float(os.getenv("CATALOG_CRAWL_DELAY", "1.0"))
DEFAULT_MAX_PAGES = int(os.getenv("CATALOG_CRAWL_MAX_PAGES", "100"))

# Barcode-typed JSON-LD fields, most specific first.
# Generic identifiers (sku, productID, mpn) are deliberately absent.
DEFAULT_EAN_FIELDS: Tuple[str, ...] = ("gtin13", "gtin14", "gtin12", "gtin8", "gtin")

# Ordered most specific -> least specific. Identifiers in this domain are
# 7+ digits, so years and prices never match.
ARTICLE_NUMBER_URL_PATTERNS: Tuple[str, ...] = (
    r"/(\d{7,})\.html",
    r"/(\d{7,})(?:[?#]|$)",
    r"(\d{7,})",
)

# Lazy-load attributes checked after src, in order
LAZY_IMAGE_ATTRIBUTES: Tuple[str, ...] = ("data-src", "data-original", "data-lazy-src")

DEFAULT_IMAGE_EXTENSION = ".jpg"
MAX_IMAGE_WORKERS = 20

# Pages that are never real products
SKIP_URL_SUBSTRINGS: Tuple[str, ...] = ("gift-card", "giftcard")

# Target-site login password when a profile leaves it out
LOGIN_PASSWORD = os.getenv("CATALOG_CRAWL_PASSWORD", "")

# Output paths
DB_PATH = os.getenv("CATALOG_CRAWL_DB", str(_PROJECT_ROOT / "data" / "catalog.db"))
LOG_DIR = _PROJECT_ROOT / "logs"
