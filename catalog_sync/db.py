"""SQLite rendition of the storefront catalog schema and its helpers."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple

from catalog_sync.config import DB_PATH
from catalog_sync.errors import PersistenceError
from catalog_sync.models import Brand, CatalogProduct, Category

__all__ = [
    "get_connection",
    "init_db",
    "upsert_product",
    "insert_brand",
    "insert_category",
    "get_active_brands",
    "get_active_categories",
    "get_all_products",
    "get_product_by_sku",
    "get_products_missing_price_stock",
    "get_products_without_images",
    "get_product_images",
    "get_primary_images",
    "update_product_brand",
    "update_product_category",
    "update_price_stock",
    "set_primary_image",
    "add_product_image",
    "get_product_count",
    "get_catalog_stats",
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


@contextmanager
def _writing(db_path: str, action: str) -> Generator[sqlite3.Connection, None, None]:
    """Connection for a single write; commits on success, rolls back otherwise."""
    with get_connection(db_path) as conn:
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Failed to {action}: {e}") from e


def init_db(db_path: str = DB_PATH) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS brands (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                website_url TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sku TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                slug TEXT,
                brand_id INTEGER,
                category_id INTEGER,
                price REAL,
                inventory_quantity INTEGER,
                short_description TEXT,
                long_description TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (brand_id) REFERENCES brands(id) ON DELETE SET NULL,
                FOREIGN KEY (category_id) REFERENCES product_categories(id) ON DELETE SET NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS product_images (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                product_id INTEGER NOT NULL,
                image_url TEXT NOT NULL,
                alt_text TEXT,
                is_primary INTEGER NOT NULL DEFAULT 0,
                sort_order INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_brand ON products(brand_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_category ON products(category_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_images_product ON product_images(product_id)")
        # At most one primary image per product
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_images_one_primary
            ON product_images(product_id) WHERE is_primary = 1
        """)

        conn.commit()


# =============================================================================
# Writes
# =============================================================================

def upsert_product(
    db_path: str,
    sku: str,
    name: str,
    slug: Optional[str] = None,
    price: Optional[float] = None,
    inventory_quantity: Optional[int] = None,
    short_description: str = "",
    long_description: str = "",
    brand_id: Optional[int] = None,
    category_id: Optional[int] = None,
    is_active: bool = True,
) -> int:
    """Insert or update a product keyed by SKU, returning its ID."""
    with _writing(db_path, f"upsert product {sku}") as conn:
        cursor = conn.cursor()

        cursor.execute("SELECT id FROM products WHERE sku = ?", (sku,))
        existing = cursor.fetchone()

        if existing:
            cursor.execute("""
                UPDATE products SET
                    name = ?,
                    slug = ?,
                    price = ?,
                    inventory_quantity = ?,
                    short_description = ?,
                    long_description = ?,
                    brand_id = ?,
                    category_id = ?,
                    is_active = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
            """, (name, slug, price, inventory_quantity, short_description, long_description,
                  brand_id, category_id, int(is_active), existing["id"]))
            return existing["id"]

        cursor.execute("""
            INSERT INTO products (sku, name, slug, price, inventory_quantity, short_description,
                                  long_description, brand_id, category_id, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (sku, name, slug, price, inventory_quantity, short_description, long_description,
              brand_id, category_id, int(is_active)))
        return cursor.lastrowid


def insert_brand(db_path: str, name: str, website_url: Optional[str] = None, is_active: bool = True) -> int:
    """Insert a brand if missing, returning its ID."""
    with _writing(db_path, f"insert brand {name}") as conn:
        conn.execute(
            "INSERT OR IGNORE INTO brands (name, website_url, is_active) VALUES (?, ?, ?)",
            (name, website_url, int(is_active)),
        )
        return conn.execute("SELECT id FROM brands WHERE name = ?", (name,)).fetchone()["id"]


def insert_category(db_path: str, name: str, is_active: bool = True) -> int:
    with _writing(db_path, f"insert category {name}") as conn:
        conn.execute(
            "INSERT OR IGNORE INTO product_categories (name, is_active) VALUES (?, ?)",
            (name, int(is_active)),
        )
        return conn.execute("SELECT id FROM product_categories WHERE name = ?", (name,)).fetchone()["id"]


def update_product_brand(db_path: str, product_id: int, brand_id: Optional[int]) -> None:
    with _writing(db_path, f"set brand of product {product_id}") as conn:
        conn.execute(
            "UPDATE products SET brand_id = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (brand_id, product_id),
        )


def update_product_category(db_path: str, product_id: int, category_id: Optional[int]) -> None:
    with _writing(db_path, f"set category of product {product_id}") as conn:
        conn.execute(
            "UPDATE products SET category_id = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (category_id, product_id),
        )


def update_price_stock(
    db_path: str,
    product_id: int,
    price: Optional[float] = None,
    inventory_quantity: Optional[int] = None,
) -> bool:
    """Write whichever of price / stock is given. Returns False if neither was."""
    assignments: List[str] = []
    params: List[Any] = []
    if price is not None:
        assignments.append("price = ?")
        params.append(price)
    if inventory_quantity is not None:
        assignments.append("inventory_quantity = ?")
        params.append(inventory_quantity)
    if not assignments:
        return False

    with _writing(db_path, f"update price/stock of product {product_id}") as conn:
        conn.execute(
            f"UPDATE products SET {', '.join(assignments)}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (*params, product_id),
        )
    return True


def set_primary_image(db_path: str, product_id: int, image_url: str, alt_text: str = "") -> int:
    """Point the product's primary image at ``image_url``.

    Updates the existing primary row if there is one, otherwise inserts it.
    Returns the image row ID.
    """
    with _writing(db_path, f"set primary image of product {product_id}") as conn:
        existing = conn.execute(
            "SELECT id FROM product_images WHERE product_id = ? AND is_primary = 1",
            (product_id,),
        ).fetchone()
        if existing:
            conn.execute(
                "UPDATE product_images SET image_url = ?, alt_text = ? WHERE id = ?",
                (image_url, alt_text, existing["id"]),
            )
            return existing["id"]

        cursor = conn.execute(
            "INSERT INTO product_images (product_id, image_url, alt_text, is_primary, sort_order) "
            "VALUES (?, ?, ?, 1, 0)",
            (product_id, image_url, alt_text),
        )
        return cursor.lastrowid


def add_product_image(
    db_path: str,
    product_id: int,
    image_url: str,
    alt_text: str = "",
    is_primary: bool = False,
    sort_order: int = 0,
) -> int:
    """Attach an image; a primary image goes through ``set_primary_image``."""
    if is_primary:
        return set_primary_image(db_path, product_id, image_url, alt_text)

    with _writing(db_path, f"add image to product {product_id}") as conn:
        existing = conn.execute(
            "SELECT id FROM product_images WHERE product_id = ? AND image_url = ?",
            (product_id, image_url),
        ).fetchone()
        if existing:
            return existing["id"]
        cursor = conn.execute(
            "INSERT INTO product_images (product_id, image_url, alt_text, is_primary, sort_order) "
            "VALUES (?, ?, ?, 0, ?)",
            (product_id, image_url, alt_text, sort_order),
        )
        return cursor.lastrowid


# =============================================================================
# Reads
# =============================================================================

def get_active_brands(db_path: str = DB_PATH) -> List[Brand]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT id, name, website_url, is_active FROM brands WHERE is_active = 1 ORDER BY id"
        ).fetchall()
    return [Brand(r["id"], r["name"], r["website_url"], bool(r["is_active"])) for r in rows]


def get_active_categories(db_path: str = DB_PATH) -> List[Category]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT id, name, is_active FROM product_categories WHERE is_active = 1 ORDER BY id"
        ).fetchall()
    return [Category(r["id"], r["name"], bool(r["is_active"])) for r in rows]


def get_all_products(db_path: str = DB_PATH, active_only: bool = True) -> List[CatalogProduct]:
    query = "SELECT * FROM products"
    if active_only:
        query += " WHERE is_active = 1"
    with get_connection(db_path) as conn:
        rows = conn.execute(query + " ORDER BY id").fetchall()
    return [CatalogProduct.from_row(r) for r in rows]


def get_product_by_sku(db_path: str, sku: str) -> Optional[CatalogProduct]:
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT * FROM products WHERE sku = ?", (sku,)).fetchone()
    return CatalogProduct.from_row(row) if row else None


def get_products_missing_price_stock(db_path: str = DB_PATH) -> List[CatalogProduct]:
    """Active products whose price or stock still holds an unknown sentinel."""
    with get_connection(db_path) as conn:
        rows = conn.execute("""
            SELECT * FROM products
            WHERE is_active = 1
              AND (price IS NULL OR price = 0
                   OR inventory_quantity IS NULL OR inventory_quantity = 0)
            ORDER BY name
        """).fetchall()
    return [CatalogProduct.from_row(r) for r in rows]


def get_products_without_images(
    db_path: str = DB_PATH,
) -> List[Tuple[CatalogProduct, Optional[str], Optional[str]]]:
    """Active products with no primary image, with brand name and website.

    Ordered by brand so a run works through one brand site at a time.
    """
    with get_connection(db_path) as conn:
        rows = conn.execute("""
            SELECT p.*, b.name AS brand_name, b.website_url AS brand_website
            FROM products p
            LEFT JOIN brands b ON p.brand_id = b.id
            WHERE p.is_active = 1
              AND NOT EXISTS (
                  SELECT 1 FROM product_images pi
                  WHERE pi.product_id = p.id AND pi.is_primary = 1
              )
            ORDER BY COALESCE(b.name, ''), p.name
        """).fetchall()
    return [(CatalogProduct.from_row(r), r["brand_name"], r["brand_website"]) for r in rows]


def get_product_images(db_path: str, product_id: int) -> List[Dict[str, Any]]:
    with get_connection(db_path) as conn:
        rows = conn.execute(
            "SELECT id, image_url, alt_text, is_primary, sort_order FROM product_images "
            "WHERE product_id = ? ORDER BY is_primary DESC, sort_order",
            (product_id,),
        ).fetchall()
    return [dict(r) for r in rows]


def get_primary_images(db_path: str = DB_PATH) -> List[Dict[str, Any]]:
    """Primary image of every product, with the product's id, SKU and name."""
    with get_connection(db_path) as conn:
        rows = conn.execute("""
            SELECT p.id AS product_id, p.sku, p.name, pi.image_url
            FROM product_images pi
            JOIN products p ON p.id = pi.product_id
            WHERE pi.is_primary = 1
            ORDER BY p.id
        """).fetchall()
    return [dict(r) for r in rows]


def get_product_count(db_path: str = DB_PATH, active_only: bool = False) -> int:
    """Get the total number of products."""
    with get_connection(db_path) as conn:
        query = "SELECT COUNT(*) as count FROM products"
        if active_only:
            query += " WHERE is_active = 1"
        return conn.execute(query).fetchone()["count"]


def get_catalog_stats(db_path: str = DB_PATH) -> Dict[str, int]:
    """Counts for the ``stats`` command."""
    with get_connection(db_path) as conn:
        row = conn.execute("""
            SELECT
                COUNT(*) AS products,
                SUM(CASE WHEN is_active = 1 THEN 1 ELSE 0 END) AS active,
                SUM(CASE WHEN price IS NULL OR price = 0 THEN 1 ELSE 0 END) AS missing_price,
                SUM(CASE WHEN inventory_quantity IS NULL OR inventory_quantity = 0 THEN 1 ELSE 0 END)
                    AS missing_stock,
                SUM(CASE WHEN brand_id IS NULL THEN 1 ELSE 0 END) AS without_brand,
                SUM(CASE WHEN category_id IS NULL THEN 1 ELSE 0 END) AS without_category,
                SUM(CASE WHEN NOT EXISTS (
                    SELECT 1 FROM product_images pi WHERE pi.product_id = products.id AND pi.is_primary = 1
                ) THEN 1 ELSE 0 END) AS without_image
            FROM products
        """).fetchone()
        stats = {key: row[key] or 0 for key in row.keys()}
        stats["brands"] = conn.execute("SELECT COUNT(*) FROM brands").fetchone()[0]
        stats["categories"] = conn.execute("SELECT COUNT(*) FROM product_categories").fetchone()[0]
    return stats
