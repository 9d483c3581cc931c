"""SQLite schema and helpers for persisted products."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

from catalog_crawl.config import DB_PATH
from catalog_crawl.models import ImageAsset, ProductRecord

__all__ = [
    "get_connection",
    "init_db",
    "fetch_products_by_article_numbers",
    "insert_product",
    "update_product",
    "replace_product_images",
    "get_product_images",
    "get_all_products",
    "get_product_count",
]


@contextmanager
def get_connection(db_path: str = DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database connections."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                article_number TEXT NOT NULL,
                color_id TEXT,
                ean TEXT,
                name TEXT,
                description TEXT,
                material TEXT,
                category TEXT,
                price TEXT,
                currency TEXT,
                source_url TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_images (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                url TEXT NOT NULL,
                data BLOB,
                sort_order INTEGER NOT NULL DEFAULT 0,
                is_primary INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        # A missing color is its own key value, so NULL folds to ''
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_products_key
            ON products(article_number, IFNULL(color_id, ''))
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_ean ON products(ean)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_product_images_product_id ON product_images(product_id)"
        )

        conn.commit()


def _price_text(record: ProductRecord) -> Optional[str]:
    return str(record.price) if record.price is not None else None


def fetch_products_by_article_numbers(
    conn: sqlite3.Connection,
    article_numbers: Iterable[str],
) -> List[Dict[str, Any]]:
    """All stored products whose article number is in the given set, in one query."""
    numbers = sorted(set(article_numbers))
    if not numbers:
        return []
    placeholders = ", ".join("?" for _ in numbers)
    cursor = conn.execute(
        f"SELECT * FROM products WHERE article_number IN ({placeholders})",
        numbers,
    )
    return [dict(row) for row in cursor.fetchall()]


def insert_product(conn: sqlite3.Connection, record: ProductRecord) -> int:
    """Insert a new product row and return its id. Does not commit."""
    cursor = conn.execute("""
        INSERT INTO products (article_number, color_id, ean, name, description,
                              material, category, price, currency, source_url)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (record.article_number, record.color_id or None, record.ean, record.name,
          record.description, record.material, record.category,
          _price_text(record), record.currency, record.source_url))
    return int(cursor.lastrowid)


def update_product(conn: sqlite3.Connection, product_id: int, record: ProductRecord) -> None:
    """Overwrite every scalar field of an existing product. Does not commit."""
    conn.execute("""
        UPDATE products SET
            ean = ?,
            name = ?,
            description = ?,
            material = ?,
            category = ?,
            price = ?,
            currency = ?,
            source_url = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
    """, (record.ean, record.name, record.description, record.material,
          record.category, _price_text(record), record.currency,
          record.source_url, product_id))


def replace_product_images(
    conn: sqlite3.Connection,
    product_id: int,
    images: List[ImageAsset],
) -> None:
    """Delete all images of a product and insert ``images``. Does not commit."""
    conn.execute("DELETE FROM product_images WHERE product_id = ?", (product_id,))
    conn.executemany("""
        INSERT INTO product_images (product_id, url, data, sort_order, is_primary)
        VALUES (?, ?, ?, ?, ?)
    """, [
        (product_id, image.url, image.data, image.order, int(image.is_primary))
        for image in images
    ])


def get_product_images(db_path: str, product_id: int) -> List[Dict[str, Any]]:
    """Images of one product in display order."""
    with get_connection(db_path) as conn:
        cursor = conn.execute("""
            SELECT id, url, data, sort_order, is_primary
            FROM product_images
            WHERE product_id = ?
            ORDER BY sort_order
        """, (product_id,))
        return [dict(row) for row in cursor.fetchall()]


def get_all_products(db_path: str = DB_PATH, include_images: bool = True) -> List[Dict[str, Any]]:
    """All products, each with an ``image_urls`` list in display order."""
    with get_connection(db_path) as conn:
        products = [
            dict(row)
            for row in conn.execute("SELECT * FROM products ORDER BY article_number, color_id")
        ]
        if include_images:
            for product in products:
                rows = conn.execute(
                    "SELECT url FROM product_images WHERE product_id = ? ORDER BY sort_order",
                    (product["id"],),
                ).fetchall()
                product["image_urls"] = [row["url"] for row in rows]
        return products


def get_product_count(db_path: str = DB_PATH) -> int:
    with get_connection(db_path) as conn:
        return conn.execute("SELECT COUNT(*) AS count FROM products").fetchone()["count"]
