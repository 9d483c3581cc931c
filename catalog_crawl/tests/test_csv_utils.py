"""Tests for CSV export of persisted products."""

import csv
from decimal import Decimal

from catalog_crawl.batch import BatchSaver
from catalog_crawl.csv_utils import EXPORT_FIELDS, export_db_to_csv
from catalog_crawl.db import init_db
from catalog_crawl.models import ProductRecord


class TestExportDbToCsv:
    def test_rows_with_joined_image_urls(self, temp_db, tmp_path):
        """Test export rows with image URLs joined by the separator."""
        saver = BatchSaver(temp_db)
        saver.add(ProductRecord(
            article_number="7325708333070",
            name="Necessär i läder",
            price=Decimal("499.00"),
            currency="SEK",
            image_urls=["https://shop.example.com/a.jpg", "https://shop.example.com/b.jpg"],
        ))
        saver.add(ProductRecord(article_number="9970239", color_id="5", name="Weekend bag"))
        saver.flush()

        out = tmp_path / "export" / "products.csv"
        assert export_db_to_csv(temp_db, str(out)) == 2

        with open(out, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
            assert reader.fieldnames == EXPORT_FIELDS

        by_number = {row["article_number"]: row for row in rows}
        necessar = by_number["7325708333070"]
        assert necessar["name"] == "Necessär i läder"
        assert necessar["price"] == "499.00"
        assert necessar["color_id"] == ""
        assert necessar["image_urls"] == "https://shop.example.com/a.jpg|https://shop.example.com/b.jpg"
        assert by_number["9970239"]["color_id"] == "5"
        assert by_number["9970239"]["image_urls"] == ""

    def test_empty_database(self, temp_db, tmp_path):
        """Verify an empty database writes no file."""
        init_db(temp_db)
        out = tmp_path / "empty.csv"
        assert export_db_to_csv(temp_db, str(out)) == 0
        assert not out.exists()
