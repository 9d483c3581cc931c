"""CSV export of persisted products."""

import csv
import os
from typing import Any, Dict, List

from catalog_crawl.db import get_all_products

__all__ = ["IMAGE_URL_SEPARATOR", "EXPORT_FIELDS", "export_db_to_csv"]

IMAGE_URL_SEPARATOR = "|"

EXPORT_FIELDS = [
    "id", "article_number", "color_id", "ean", "name", "description",
    "material", "category", "price", "currency", "source_url", "image_urls",
    "created_at", "updated_at",
]


def export_db_to_csv(db_path: str, csv_path: str) -> int:
    """Export products from SQLite database to CSV.

    Args:
        db_path: Path to the SQLite database
        csv_path: Path for the output CSV file

    Returns:
        Number of products exported
    """
    products = get_all_products(db_path, include_images=True)

    if not products:
        print("No products to export.")
        return 0

    rows: List[Dict[str, Any]] = []
    for product in products:
        row: Dict[str, Any] = {}
        for field in EXPORT_FIELDS:
            if field == "image_urls":
                row[field] = IMAGE_URL_SEPARATOR.join(product.get("image_urls") or [])
            else:
                value = product.get(field)
                row[field] = "" if value is None else value
        rows.append(row)

    os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
    with open(csv_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)

    print(f"Exported {len(rows)} products to {csv_path}")
    return len(rows)
