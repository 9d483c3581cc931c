"""Batched insert-or-update persistence of product records."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from catalog_crawl.config import BATCH_SIZE, DB_PATH, FAILED_SAMPLE_SIZE
from catalog_crawl.db import (
    fetch_products_by_article_numbers,
    get_connection,
    init_db,
    insert_product,
    replace_product_images,
    update_product,
)
from catalog_crawl.logging_config import get_logger, log_crawl_event
from catalog_crawl.models import ImageAsset, ProductRecord, storage_key

__all__ = ["BatchSaver", "BatchFlushError", "FlushStats", "ImageFetcher"]

logger = get_logger("batch")

# Takes image URLs, returns (url, bytes or None) pairs in the same order
ImageFetcher = Callable[[List[str]], List[Tuple[str, Optional[bytes]]]]

ProductKey = Tuple[Optional[str], str]


class BatchFlushError(Exception):
    """A flush failed. The batch it carried has been discarded."""

    def __init__(self, count: int, sample_article_numbers: List[str], cause: Exception):
        self.count = count
        self.sample_article_numbers = sample_article_numbers
        self.cause = cause
        super().__init__(
            f"Failed to flush batch of {count} products "
            f"(sample: {', '.join(sample_article_numbers)}): {cause}"
        )


@dataclass
class FlushStats:
    """Outcome of one flush."""

    inserted: int = 0
    updated: int = 0
    images: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def __add__(self, other: "FlushStats") -> "FlushStats":
        return FlushStats(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            images=self.images + other.images,
        )


class _PendingProduct:
    __slots__ = ("record", "images")

    def __init__(self, record: ProductRecord, images: List[ImageAsset]):
        self.record = record
        self.images = images


class BatchSaver:
    """Accumulates records and writes them to SQLite in bulk.

    One instance belongs to one crawl session; ``add`` and ``flush`` are
    the only ways to touch the pending batch.

    Usage:
        saver = BatchSaver("data/catalog.db")
        for record in records:
            saver.add(record)      # flushes on its own every 50 records
        saver.flush()              # write the remainder
    """

    def __init__(
        self,
        db_path: str = DB_PATH,
        batch_size: int = BATCH_SIZE,
        image_fetcher: Optional[ImageFetcher] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.db_path = db_path
        self.batch_size = batch_size
        self._image_fetcher = image_fetcher
        self._pending: List[_PendingProduct] = []
        self._totals = FlushStats()
        self._failed_count = 0
        init_db(db_path)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def totals(self) -> FlushStats:
        """Sum of all successful flushes."""
        return FlushStats(self._totals.inserted, self._totals.updated, self._totals.images)

    @property
    def failed_count(self) -> int:
        """Records lost to failed flushes."""
        return self._failed_count

    def _build_images(self, record: ProductRecord) -> List[ImageAsset]:
        if not record.image_urls:
            return []
        if self._image_fetcher is not None:
            downloaded = self._image_fetcher(list(record.image_urls))
        else:
            downloaded = [(url, None) for url in record.image_urls]
        return [
            ImageAsset(url=url, data=data, order=index, is_primary=index == 0)
            for index, (url, data) in enumerate(downloaded)
        ]

    def add(self, record: ProductRecord) -> Optional[FlushStats]:
        """Queue a record; returns the flush stats when this call triggered a flush.

        Raises:
            ValueError: If the record has no article number
            BatchFlushError: If the triggered flush failed
        """
        if not record.article_number:
            raise ValueError("Cannot persist a record without an article number")

        self._pending.append(_PendingProduct(record, self._build_images(record)))
        if len(self._pending) >= self.batch_size:
            return self.flush()
        return None

    def flush(self) -> FlushStats:
        """Write the pending batch in one transaction.

        Existing products (matched on article number and color) get all
        scalar fields overwritten and their image set replaced; unknown
        keys are inserted. On failure the batch is discarded and
        ``BatchFlushError`` is raised.
        """
        if not self._pending:
            return FlushStats()

        batch = self._pending
        self._pending = []
        logger.info(f"Flushing batch of {len(batch)} products to {self.db_path}")

        try:
            stats = self._write(batch)
        except Exception as e:
            self._failed_count += len(batch)
            sample = [item.record.article_number for item in batch[:FAILED_SAMPLE_SIZE]]
            logger.error(
                f"Error flushing product batch. Discarded {len(batch)} products. "
                f"Sample article numbers: {', '.join(sample)}"
            )
            log_crawl_event(
                "batch_failed",
                {"count": len(batch), "sample_article_numbers": sample, "error": str(e)},
                level=logging.ERROR,
            )
            raise BatchFlushError(len(batch), sample, e) from e

        self._totals = self._totals + stats
        logger.info(
            f"Batch saved: {stats.inserted} new, {stats.updated} updated, {stats.images} images"
        )
        log_crawl_event("batch_flushed", {
            "inserted": stats.inserted,
            "updated": stats.updated,
            "images": stats.images,
        })
        return stats

    def _write(self, batch: List[_PendingProduct]) -> FlushStats:
        stats = FlushStats()
        with get_connection(self.db_path) as conn:
            try:
                existing_rows = fetch_products_by_article_numbers(
                    conn, (item.record.article_number for item in batch)
                )
                existing: Dict[ProductKey, int] = {
                    storage_key(row["article_number"], row["color_id"]): row["id"]
                    for row in existing_rows
                }

                for item in batch:
                    record = item.record
                    key = record.key
                    product_id = existing.get(key)
                    if product_id is not None:
                        update_product(conn, product_id, record)
                        stats.updated += 1
                    else:
                        product_id = insert_product(conn, record)
                        # a later record in this batch with the same key updates this row
                        existing[key] = product_id
                        stats.inserted += 1
                    replace_product_images(conn, product_id, item.images)
                    stats.images += len(item.images)

                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return stats
