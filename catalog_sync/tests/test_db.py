"""Tests for the SQLite catalog schema and helpers."""

import sqlite3

import pytest

from catalog_sync.db import (
    add_product_image,
    get_active_brands,
    get_active_categories,
    get_catalog_stats,
    get_connection,
    get_product_by_sku,
    get_product_count,
    get_product_images,
    get_products_missing_price_stock,
    get_products_without_images,
    init_db,
    insert_brand,
    insert_category,
    set_primary_image,
    update_price_stock,
    update_product_brand,
    upsert_product,
)
from catalog_sync.errors import PersistenceError


class TestSchema:
    def test_init_db_creates_tables(self, temp_db):
        with get_connection(temp_db) as conn:
            tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"products", "brands", "product_categories", "product_images"} <= tables

    def test_init_db_is_idempotent(self, temp_db):
        upsert_product(temp_db, "HM-1", "Thing")
        init_db(temp_db)
        assert get_product_count(temp_db) == 1

    def test_only_one_primary_image_per_product(self, temp_db):
        product_id = upsert_product(temp_db, "HM-1", "Thing")
        with get_connection(temp_db) as conn:
            conn.execute("INSERT INTO product_images (product_id, image_url, is_primary) VALUES (?, 'a', 1)",
                         (product_id,))
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO product_images (product_id, image_url, is_primary) VALUES (?, 'b', 1)",
                             (product_id,))


class TestProducts:
    def test_upsert_by_sku(self, temp_db):
        first = upsert_product(temp_db, "HM-1", "Old Name", price=5.0)
        second = upsert_product(temp_db, "HM-1", "New Name", price=6.0)

        assert first == second
        product = get_product_by_sku(temp_db, "HM-1")
        assert product.name == "New Name"
        assert product.price == 6.0

    def test_missing_price_or_stock(self, temp_db):
        upsert_product(temp_db, "HM-1", "No price", price=None, inventory_quantity=10)
        upsert_product(temp_db, "HM-2", "Zero stock", price=9.99, inventory_quantity=0)
        upsert_product(temp_db, "HM-3", "Complete", price=9.99, inventory_quantity=10)
        upsert_product(temp_db, "HM-4", "Inactive", is_active=False)

        skus = {p.sku for p in get_products_missing_price_stock(temp_db)}
        assert skus == {"HM-1", "HM-2"}

    def test_update_price_stock_writes_only_given_fields(self, temp_db):
        product_id = upsert_product(temp_db, "HM-1", "Thing", price=12.5, inventory_quantity=None)

        assert update_price_stock(temp_db, product_id, inventory_quantity=100)
        assert not update_price_stock(temp_db, product_id)

        product = get_product_by_sku(temp_db, "HM-1")
        assert product.price == 12.5
        assert product.inventory_quantity == 100

    def test_foreign_key_violation_is_persistence_error(self, temp_db):
        product_id = upsert_product(temp_db, "HM-1", "Thing")
        with pytest.raises(PersistenceError):
            update_product_brand(temp_db, product_id, 999)


class TestBrandsAndCategories:
    def test_insert_brand_is_idempotent(self, temp_db):
        first = insert_brand(temp_db, "Now Foods", "https://www.nowfoods.com")
        second = insert_brand(temp_db, "Now Foods")
        assert first == second
        brands = get_active_brands(temp_db)
        assert [(b.name, b.website_url) for b in brands] == [("Now Foods", "https://www.nowfoods.com")]

    def test_inactive_excluded(self, temp_db):
        insert_category(temp_db, "Vitamins")
        insert_category(temp_db, "Retired", is_active=False)
        assert [c.name for c in get_active_categories(temp_db)] == ["Vitamins"]


class TestImages:
    def test_set_primary_image_updates_existing(self, temp_db):
        product_id = upsert_product(temp_db, "HM-1", "Thing")

        first = set_primary_image(temp_db, product_id, "https://cdn.test/a.jpg")
        second = set_primary_image(temp_db, product_id, "https://cdn.test/b.jpg", alt_text="Thing")

        assert first == second
        images = get_product_images(temp_db, product_id)
        assert len(images) == 1
        assert images[0]["image_url"] == "https://cdn.test/b.jpg"

    def test_add_product_image(self, temp_db):
        product_id = upsert_product(temp_db, "HM-1", "Thing")
        add_product_image(temp_db, product_id, "https://cdn.test/a.jpg", is_primary=True)
        extra = add_product_image(temp_db, product_id, "https://cdn.test/b.jpg", sort_order=1)
        again = add_product_image(temp_db, product_id, "https://cdn.test/b.jpg", sort_order=1)

        assert extra == again
        assert [i["is_primary"] for i in get_product_images(temp_db, product_id)] == [1, 0]

    def test_products_without_images(self, temp_db):
        brand_id = insert_brand(temp_db, "Now Foods", "https://www.nowfoods.com")
        with_image = upsert_product(temp_db, "HM-1", "Has Image", brand_id=brand_id)
        upsert_product(temp_db, "HM-2", "No Image", brand_id=brand_id)
        upsert_product(temp_db, "HM-3", "Only Secondary")
        set_primary_image(temp_db, with_image, "https://cdn.test/a.jpg")
        add_product_image(temp_db, with_image + 2, "https://cdn.test/c.jpg")

        work = get_products_without_images(temp_db)

        assert [(p.sku, brand, site) for p, brand, site in work] == [
            ("HM-3", None, None),
            ("HM-2", "Now Foods", "https://www.nowfoods.com"),
        ]

    def test_stats(self, temp_db):
        upsert_product(temp_db, "HM-1", "Thing", price=0)
        stats = get_catalog_stats(temp_db)
        assert stats["products"] == 1
        assert stats["missing_price"] == 1
        assert stats["without_image"] == 1
        assert stats["brands"] == 0
