"""Command-line interface for catalog sync."""

import argparse
import logging
import sqlite3
import sys
from typing import List, Optional

from catalog_sync.config import (
    DATA_DIR,
    DB_PATH,
    DEFAULT_MAX_PAGES,
    IMAGES_DIR,
    PRODUCTS_CSV,
    PRODUCTS_JSON,
)
from catalog_sync.db import get_catalog_stats, init_db
from catalog_sync.errors import CatalogSyncError
from catalog_sync.logging_config import get_logger, setup_logging
from catalog_sync import pipeline

__all__ = ["main", "run", "build_parser", "show_stats"]

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-sync",
        description="Scrape the storefront and keep the product catalog in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the database with the reference brands and categories
  python -m catalog_sync.cli init-db

  # Scrape the first 5 listing pages into data/scraped-products.json
  python -m catalog_sync.cli scrape --max-pages 5

  # Download the images of the scraped products
  python -m catalog_sync.cli download-images data/scraped-products.json images/products

  # Load the scraped products into the catalog database
  python -m catalog_sync.cli import-products data/scraped-products.json

  # Fill unknown prices and stock levels from the live store
  python -m catalog_sync.cli sync-price-stock

  # Find images for products without one and store them locally
  python -m catalog_sync.cli sync-images --download
  python -m catalog_sync.cli sync-images --headless

  # Assign brands and categories, then list what is still missing
  python -m catalog_sync.cli match-brands
  python -m catalog_sync.cli match-categories
  python -m catalog_sync.cli audit
        """,
    )

    parser.add_argument(
        "--db",
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--data-dir",
        default=str(DATA_DIR),
        help=f"Directory for run reports and artifacts (default: {DATA_DIR})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug output on the console",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write the JSONL log file",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    scrape = commands.add_parser("scrape", help="Scrape product listing and detail pages")
    scrape.add_argument("output", nargs="?", default=str(PRODUCTS_JSON),
                        help=f"Product list JSON (default: {PRODUCTS_JSON})")
    scrape.add_argument("--csv", default=str(PRODUCTS_CSV),
                        help=f"CSV copy of the product list (default: {PRODUCTS_CSV})")
    scrape.add_argument("--max-pages", type=int, default=DEFAULT_MAX_PAGES,
                        help=f"Listing pages to walk (default: {DEFAULT_MAX_PAGES})")

    download = commands.add_parser("download-images", help="Download images of a scraped product list")
    download.add_argument("products_json", nargs="?", default=str(PRODUCTS_JSON),
                          help=f"Product list JSON (default: {PRODUCTS_JSON})")
    download.add_argument("images_dir", nargs="?", default=str(IMAGES_DIR),
                          help=f"Destination directory (default: {IMAGES_DIR})")

    importer = commands.add_parser("import-products", help="Upsert a product list (.json or .csv) into the catalog")
    importer.add_argument("path", help="Product list, e.g. data/scraped-products.json")

    commands.add_parser("sync-price-stock", help="Fill unknown prices and stock from the storefront")

    images = commands.add_parser("sync-images", help="Find a primary image for products without one")
    images.add_argument("--download", action="store_true",
                        help="Save the image locally instead of linking the remote URL")
    images.add_argument("--images-dir", default=str(IMAGES_DIR),
                        help=f"Destination directory with --download (default: {IMAGES_DIR})")
    images.add_argument("--headless", action="store_true",
                        help="Also search Google Images in a headless browser (needs Playwright browsers)")

    brands = commands.add_parser("match-brands", help="Assign brands by product-name prefix")
    brands.add_argument("--only-missing", action="store_true",
                        help="Leave products that already have a brand alone")

    commands.add_parser("match-categories", help="Assign categories by keyword score")
    commands.add_parser("audit", help="Write data/missing-data.json (no network)")
    commands.add_parser("stats", help="Show database statistics")
    commands.add_parser("init-db", help="Create the schema and seed brands and categories")

    return parser


def show_stats(db_path: str) -> None:
    """Display database statistics."""
    init_db(db_path)
    stats = get_catalog_stats(db_path)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")
    print(f"\nTotal products: {stats['products']} ({stats['active']} active)")
    print(f"Brands: {stats['brands']}")
    print(f"Categories: {stats['categories']}")
    print("\nGaps:")
    print(f"  missing price:    {stats['missing_price']}")
    print(f"  missing stock:    {stats['missing_stock']}")
    print(f"  without brand:    {stats['without_brand']}")
    print(f"  without category: {stats['without_category']}")
    print(f"  without image:    {stats['without_image']}")
    print()


def _dispatch(args: argparse.Namespace) -> None:
    data_dir = args.data_dir

    if args.command == "init-db":
        seeded = pipeline.seed_catalog(args.db)
        print(f"Initialized {args.db}: {seeded['brands']} brands, {seeded['categories']} categories")
        return

    if args.command == "stats":
        show_stats(args.db)
        return

    if args.command == "audit":
        init_db(args.db)
        audit = pipeline.audit_missing_data(args.db, data_dir)
        for key, count in audit["counts"].items():
            print(f"  {key.replace('_', ' ')}: {count}")
        return

    if args.command == "scrape":
        _candidates, report = pipeline.scrape_catalog(
            max_pages=args.max_pages,
            output_json=args.output,
            output_csv=args.csv,
            data_dir=data_dir,
        )
    elif args.command == "download-images":
        report = pipeline.download_catalog_images(args.products_json, args.images_dir, data_dir)
    elif args.command == "import-products":
        init_db(args.db)
        report = pipeline.import_products(args.path, args.db, data_dir)
    elif args.command == "sync-price-stock":
        init_db(args.db)
        report = pipeline.sync_price_stock(args.db, data_dir)
    elif args.command == "sync-images":
        init_db(args.db)
        report = pipeline.sync_missing_images(args.db, download=args.download,
                                              images_dir=args.images_dir, data_dir=data_dir,
                                              headless=args.headless)
    elif args.command == "match-brands":
        init_db(args.db)
        report = pipeline.match_brands(args.db, data_dir, only_missing=args.only_missing)
    elif args.command == "match-categories":
        init_db(args.db)
        report = pipeline.match_categories(args.db, data_dir)
    else:
        raise ValueError(f"Unknown command: {args.command}")

    report.print_summary()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_to_file=not args.no_log_file,
    )

    try:
        _dispatch(args)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1
    except (CatalogSyncError, sqlite3.Error, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
