"""Product catalog crawler package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from catalog_crawl.batch import BatchFlushError, BatchSaver, FlushStats
from catalog_crawl.config import BATCH_SIZE, DB_PATH
from catalog_crawl.crawler import CrawlError, CrawlResult, CrawlSession, FetchError
from catalog_crawl.csv_utils import export_db_to_csv
from catalog_crawl.db import get_all_products, get_product_count, init_db
from catalog_crawl.models import ImageAsset, ProductRecord, merge_records
from catalog_crawl.parser import parse_product_page
from catalog_crawl.prices import parse_price
from catalog_crawl.profile import SiteProfile, load_site_profile

__all__ = [
    # Version
    "__version__",
    # Config
    "BATCH_SIZE",
    "DB_PATH",
    # Models
    "ProductRecord",
    "ImageAsset",
    "SiteProfile",
    "merge_records",
    # Core functions
    "load_site_profile",
    "parse_product_page",
    "parse_price",
    "CrawlSession",
    "CrawlResult",
    "CrawlError",
    "FetchError",
    "BatchSaver",
    "BatchFlushError",
    "FlushStats",
    "init_db",
    "get_all_products",
    "get_product_count",
    "export_db_to_csv",
]
