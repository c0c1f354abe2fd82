"""Storefront scraper and catalog synchronisation package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from catalog_sync.config import BASE_URL, DB_PATH
from catalog_sync.db import get_product_count, init_db
from catalog_sync.extractor import ProductPageParser, parse_price
from catalog_sync.images import ImageDownloader, is_valid_image
from catalog_sync.matcher import CatalogMatcher, match_brand, match_category, plan_gap_fill
from catalog_sync.models import Brand, CatalogProduct, Category, ImageAsset, ImageRef, ScrapeCandidate
from catalog_sync.pipeline import (
    download_catalog_images,
    scrape_catalog,
    sync_missing_images,
    sync_price_stock,
)
from catalog_sync.report import RunReport

__all__ = [
    # Version
    "__version__",
    # Config
    "BASE_URL",
    "DB_PATH",
    # Models
    "CatalogProduct",
    "Brand",
    "Category",
    "ImageRef",
    "ScrapeCandidate",
    "ImageAsset",
    "RunReport",
    # Core functions
    "init_db",
    "get_product_count",
    "parse_price",
    "is_valid_image",
    "match_brand",
    "match_category",
    "plan_gap_fill",
    "ProductPageParser",
    "ImageDownloader",
    "CatalogMatcher",
    "scrape_catalog",
    "download_catalog_images",
    "sync_price_stock",
    "sync_missing_images",
]
