"""Batch pipelines: scrape, download, import, sync price/stock, find images, match.

Every pipeline is one sequential loop with a fixed pause after each
network call. Per-item failures are logged, counted in the RunReport and
skipped; only failing to open the database stops a run. Re-running a
pipeline is safe: downloads skip existing files and gap-fill never
overwrites known values.
"""

import csv
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from catalog_sync import db
from catalog_sync.config import (
    BASE_URL,
    BRAND_WEBSITES,
    CATEGORY_KEYWORDS,
    DATA_DIR,
    DB_PATH,
    DEFAULT_MAX_PAGES,
    DELAY_DOWNLOAD,
    DELAY_LISTING,
    DELAY_PRODUCT,
    DELAY_SEARCH,
    IMAGES_DIR,
    KNOWN_BRANDS,
    MAX_SEARCH_RESULTS,
    PRODUCTS_CSV,
    PRODUCTS_JSON,
    PRODUCTS_PATH,
)
from catalog_sync.csv_utils import (
    load_candidates_from_csv,
    load_candidates_from_json,
    save_candidates_to_csv,
    save_candidates_to_json,
    save_json,
)
from catalog_sync.discovery import ImageFinder
from catalog_sync.errors import CatalogSyncError, FetchError, HttpError
from catalog_sync.extractor import (
    ProductPageParser,
    extract_product_links,
    extract_search_result_links,
    is_last_listing_page,
    is_product_page,
    listing_page_url,
)
from catalog_sync.fetcher import GOOGLE_IMAGES_PROFILE, STORE_PROFILE, Fetcher, HttpFetcher, build_fetcher
from catalog_sync.images import ImageDownloader, image_filename, is_valid_image
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.matcher import CatalogMatcher, name_similarity, plan_gap_fill
from catalog_sync.models import CatalogProduct, ScrapeCandidate
from catalog_sync.report import DOWNLOADED, ERROR, NOT_FOUND, SKIPPED, UNCHANGED, UPDATED, RunReport

__all__ = [
    "Throttle",
    "StoreSearch",
    "seed_catalog",
    "scrape_catalog",
    "download_catalog_images",
    "load_product_file",
    "import_products",
    "sync_price_stock",
    "sync_missing_images",
    "match_brands",
    "match_categories",
    "audit_missing_data",
]

logger = get_logger("pipeline")

PathLike = Union[str, Path]

# Below this a search hit is treated as a different product
MIN_NAME_SIMILARITY = 0.5


class Throttle:
    """Fixed cooldown after each network call."""

    def __init__(self, delay: float, sleep: Callable[[float], None] = time.sleep):
        self.delay = delay
        self.sleep = sleep

    def __call__(self) -> None:
        if self.delay > 0:
            self.sleep(self.delay)


def _record_error(
    report: RunReport,
    error: Exception,
    sku: str = "",
    product_id: Optional[int] = None,
    name: str = "",
    url: str = "",
) -> None:
    # Unexpected exception types get a traceback in the log
    logger.error(f"   Error on {sku or url}: {error}", exc_info=not isinstance(error, CatalogSyncError))
    log_sync_event("item_error", {
        "run": report.name,
        "sku": sku,
        "product_id": product_id,
        "url": url,
        "error_type": type(error).__name__,
        "error": str(error),
    }, level=logging.ERROR)
    report.add(ERROR, sku=sku, product_id=product_id, name=name, url=url, error=str(error))


def _finish(report: RunReport, data_dir: Optional[PathLike]) -> RunReport:
    report.finish()
    log_sync_event("run_complete", {"run": report.name, **report.counts()})
    if data_dir is not None:
        report.save(data_dir)
    return report


def seed_catalog(db_path: str = DB_PATH) -> Dict[str, int]:
    """Create the schema and the reference brands and categories."""
    db.init_db(db_path)
    brands = 0
    for name in KNOWN_BRANDS:
        db.insert_brand(db_path, name, BRAND_WEBSITES.get(name))
        brands += 1
    categories = 0
    for name in CATEGORY_KEYWORDS:
        db.insert_category(db_path, name)
        categories += 1
    return {"brands": brands, "categories": categories}


# =============================================================================
# Scraping the storefront
# =============================================================================

def _scrape_product(
    fetcher: Fetcher,
    parser: ProductPageParser,
    url: str,
    report: RunReport,
    pause: Throttle,
) -> Optional[ScrapeCandidate]:
    try:
        result = fetcher.get(url)
    except HttpError as e:
        if not e.is_not_found:
            raise
        report.add(NOT_FOUND, url=url)
        return None
    finally:
        pause()

    soup = BeautifulSoup(result.text, "html.parser")
    if not is_product_page(soup):
        report.add(SKIPPED, url=url, detail="not a product page")
        return None

    candidate = parser.parse_soup(soup, url)
    price = f"${candidate.price:.2f}" if candidate.has_price else "no price"
    logger.info(f"    {candidate.name} ({candidate.sku}) {price}")
    report.add(UPDATED, sku=candidate.sku, name=candidate.name, url=url, detail="scraped")
    return candidate


def scrape_catalog(
    max_pages: int = DEFAULT_MAX_PAGES,
    output_json: PathLike = PRODUCTS_JSON,
    output_csv: Optional[PathLike] = PRODUCTS_CSV,
    data_dir: Optional[PathLike] = DATA_DIR,
    fetcher: Optional[Fetcher] = None,
    parser: Optional[ProductPageParser] = None,
    base_url: str = BASE_URL,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[List[ScrapeCandidate], RunReport]:
    """Walk the product listing pages and scrape every product found."""
    report = RunReport("scrape")
    own_fetcher = fetcher is None
    fetcher = fetcher or HttpFetcher(STORE_PROFILE)
    parser = parser or ProductPageParser(base_url=base_url)
    listing_pause = Throttle(DELAY_LISTING, sleep)
    product_pause = Throttle(DELAY_PRODUCT, sleep)

    log_sync_event("run_start", {"run": report.name, "max_pages": max_pages, "base_url": base_url})

    candidates: List[ScrapeCandidate] = []
    try:
        product_urls: List[str] = []
        seen = set()
        for page in range(1, max_pages + 1):
            url = listing_page_url(page, base_url)
            logger.info(f"  Page {page}/{max_pages}: {url}")
            try:
                result = fetcher.get(url)
            except HttpError as e:
                if e.is_not_found:
                    logger.info(f"  Listing ended at page {page}")
                    break
                _record_error(report, e, url=url)
                continue
            except FetchError as e:
                _record_error(report, e, url=url)
                continue
            finally:
                listing_pause()

            links = [link for link in extract_product_links(result.text, base_url) if link not in seen]
            logger.info(f"    Found {len(links)} new product links on page {page}")
            if not links:
                break
            seen.update(links)
            product_urls.extend(links)
            if is_last_listing_page(result.text, page):
                logger.info(f"  Page {page} is the last listing page")
                break

        for i, url in enumerate(product_urls, start=1):
            logger.info(f"  [{i}/{len(product_urls)}] {url}")
            try:
                candidate = _scrape_product(fetcher, parser, url, report, product_pause)
            except Exception as e:
                _record_error(report, e, url=url)
                continue
            if candidate is not None:
                candidates.append(candidate)
    finally:
        if own_fetcher:
            fetcher.close()

    save_candidates_to_json(candidates, output_json)
    logger.info(f"Saved {len(candidates)} products to {output_json}")
    if output_csv:
        save_candidates_to_csv(candidates, output_csv)
        logger.info(f"Saved CSV to {output_csv}")

    return candidates, _finish(report, data_dir)


def _download_product_images(
    downloader: ImageDownloader,
    candidate: ScrapeCandidate,
    report: RunReport,
    pause: Throttle,
) -> None:
    before = dict(downloader.stats)
    assets = downloader.download_for_product(candidate, throttle=pause)
    candidate.local_images = [a.local_path for a in assets]

    downloaded = downloader.stats["downloaded"] - before["downloaded"]
    failed = downloader.stats["failed"] - before["failed"]
    detail = f"{downloaded} downloaded, {len(assets) - downloaded} present, {failed} failed"
    outcome = dict(sku=candidate.sku, name=candidate.name, url=candidate.url)
    if downloaded:
        report.add(DOWNLOADED, detail=detail, **outcome)
    elif assets:
        report.add(SKIPPED, detail=detail, **outcome)
    elif failed:
        report.add(ERROR, error=f"all {failed} image downloads failed", **outcome)
    else:
        report.add(NOT_FOUND, detail="no valid images", **outcome)


def download_catalog_images(
    products_json: PathLike = PRODUCTS_JSON,
    images_dir: PathLike = IMAGES_DIR,
    data_dir: Optional[PathLike] = DATA_DIR,
    fetcher: Optional[HttpFetcher] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Download the images of a scraped product list.

    The product list is written back with each product's local image paths.
    """
    report = RunReport("download-images")
    candidates = load_candidates_from_json(products_json)
    own_fetcher = fetcher is None
    fetcher = fetcher or HttpFetcher(STORE_PROFILE)
    downloader = ImageDownloader(fetcher, images_dir)
    pause = Throttle(DELAY_DOWNLOAD, sleep)

    logger.info(f"Downloading images for {len(candidates)} products into {images_dir}")
    try:
        for i, candidate in enumerate(candidates, start=1):
            if not candidate.images:
                report.add(NOT_FOUND, sku=candidate.sku, name=candidate.name, url=candidate.url,
                           detail="no images")
                continue

            logger.info(f"  [{i}/{len(candidates)}] {candidate.name}")
            try:
                _download_product_images(downloader, candidate, report, pause)
            except Exception as e:
                _record_error(report, e, sku=candidate.sku, name=candidate.name, url=candidate.url)
    finally:
        if own_fetcher:
            fetcher.close()

    save_candidates_to_json(candidates, products_json)
    logger.info(
        f"Images: {downloader.stats['downloaded']} downloaded, "
        f"{downloader.stats['skipped']} skipped, {downloader.stats['failed']} failed"
    )
    return _finish(report, data_dir)


# =============================================================================
# Product import
# =============================================================================

def product_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def load_product_file(path: PathLike) -> List[ScrapeCandidate]:
    """Product list from a ``.json`` or ``.csv`` file.

    Raises:
        CatalogSyncError: Unknown file type or unreadable content
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in (".json", ".csv"):
        raise CatalogSyncError(f"Unsupported product file {path}: expected .json or .csv")
    try:
        if suffix == ".json":
            return load_candidates_from_json(path)
        return load_candidates_from_csv(path)
    except (ValueError, TypeError, csv.Error) as e:
        raise CatalogSyncError(f"Cannot read {path}: {e}") from e


def _import_product(db_path: str, candidate: ScrapeCandidate, report: RunReport) -> None:
    existing = db.get_product_by_sku(db_path, candidate.sku)

    # Empty fields keep what the catalog already has
    brand_id = existing.brand_id if existing else None
    if candidate.brand:
        brand_id = db.insert_brand(db_path, candidate.brand)
    category_id = existing.category_id if existing else None
    if candidate.category:
        category_id = db.insert_category(db_path, candidate.category)

    price = candidate.price if candidate.has_price else (existing.price if existing else None)
    stock = candidate.stock_quantity if candidate.stock_quantity > 0 else (
        existing.inventory_quantity if existing else None)

    product_id = db.upsert_product(
        db_path,
        candidate.sku,
        candidate.name,
        slug=(existing.slug if existing else None) or product_slug(candidate.name),
        price=price,
        inventory_quantity=stock,
        short_description=candidate.short_description or (existing.short_description if existing else ""),
        long_description=candidate.long_description or (existing.long_description if existing else ""),
        brand_id=brand_id,
        category_id=category_id,
        is_active=existing.is_active if existing else True,
    )

    has_primary = any(image["is_primary"] for image in db.get_product_images(db_path, product_id))
    added = 0
    for sort_order, image in enumerate(candidate.images):
        if not is_valid_image(image.url):
            logger.debug(f"    Skipping image {image.url}")
            continue
        db.add_product_image(db_path, product_id, image.url, alt_text=image.alt or candidate.name,
                             is_primary=not has_primary, sort_order=sort_order)
        has_primary = True
        added += 1

    report.add(UPDATED, sku=candidate.sku, product_id=product_id, name=candidate.name, url=candidate.url,
               detail=f"{'updated' if existing else 'inserted'}, {added} images")


def import_products(
    path: PathLike,
    db_path: str = DB_PATH,
    data_dir: Optional[PathLike] = DATA_DIR,
) -> RunReport:
    """Upsert a product list (as written by ``scrape``, or a hand-made CSV) into the catalog.

    Products are keyed by SKU; rows without a SKU or name are skipped.
    Brands and categories are created by name when missing. Images that
    fail the deny-list are left out, and the first kept image becomes the
    primary one when the product has none yet.
    """
    report = RunReport("import-products")
    candidates = load_product_file(path)
    logger.info(f"Importing {len(candidates)} products from {path}")

    for i, candidate in enumerate(candidates, start=1):
        if not candidate.sku or not candidate.name:
            report.add(SKIPPED, sku=candidate.sku, name=candidate.name, url=candidate.url,
                       detail="no SKU or name")
            continue
        try:
            _import_product(db_path, candidate, report)
        except Exception as e:
            _record_error(report, e, sku=candidate.sku, name=candidate.name, url=candidate.url)
        if i % 100 == 0:
            logger.info(f"  Imported {i}/{len(candidates)} products...")

    return _finish(report, data_dir)


# =============================================================================
# Price / stock gap-fill
# =============================================================================

def slug_variations(slug: str) -> List[str]:
    """Plausible spellings of a product slug on the storefront."""
    variants = [
        slug,
        slug.lower(),
        slug.replace("-", ""),
        slug.replace("-", "_"),
        slug[:-1] if slug.endswith("s") else slug,
        "-".join(slug.split("-")[:-1]),
    ]
    return [v for v in dict.fromkeys(variants) if v]


def is_same_product(product: CatalogProduct, candidate: ScrapeCandidate) -> bool:
    """A scraped page belongs to ``product`` if the SKU or most of the name matches."""
    if product.sku and candidate.sku and candidate.sku.upper() == product.sku.upper():
        return True
    return name_similarity(product.name, candidate.name) >= MIN_NAME_SIMILARITY


class StoreSearch:
    """Locates a catalog product on the storefront.

    Tries the site search by SKU, then by name, then guesses the product
    URL from the slug. Each lookup returns the parsed page or None.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        parser: ProductPageParser,
        throttle: Callable[[], None],
        base_url: str = BASE_URL,
        max_results: int = MAX_SEARCH_RESULTS,
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.throttle = throttle
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results

    def _get(self, url: str) -> str:
        try:
            return self.fetcher.get(url).text
        finally:
            self.throttle()

    def _search_url(self, query: str) -> str:
        return f"{self.base_url}/index.php/search?q={quote_plus(query)}"

    def _parse(self, url: str) -> Optional[ScrapeCandidate]:
        try:
            html = self._get(url)
        except HttpError as e:
            if e.is_not_found:
                return None
            raise
        soup = BeautifulSoup(html, "html.parser")
        if not is_product_page(soup):
            return None
        return self.parser.parse_soup(soup, url)

    def by_sku(self, product: CatalogProduct) -> Optional[ScrapeCandidate]:
        if not product.sku:
            return None
        links = extract_product_links(self._get(self._search_url(product.sku)), self.base_url)
        for url in links[:self.max_results]:
            candidate = self._parse(url)
            if candidate is not None and is_same_product(product, candidate):
                return candidate
        return None

    def by_name(self, product: CatalogProduct) -> Optional[ScrapeCandidate]:
        if not product.name:
            return None
        html = self._get(self._search_url(product.name))
        results = [
            (url, text) for url, text in extract_search_result_links(html, self.base_url, limit=50)
            if f"{PRODUCTS_PATH}/" in url
        ]
        if not results:
            return None

        words = [w for w in product.name.lower().split() if len(w) > 3]
        needed = min(2, len(words))
        sku = (product.sku or "").lower()
        for url, text in results[:self.max_results * 2]:
            text = text.lower()
            if not ((words and sum(1 for w in words if w in text) >= needed) or (sku and sku in text)):
                continue
            candidate = self._parse(url)
            if candidate is not None and is_same_product(product, candidate):
                return candidate
        return None

    def by_slug(self, product: CatalogProduct) -> Optional[ScrapeCandidate]:
        for variant in slug_variations(product.slug or ""):
            candidate = self._parse(f"{self.base_url}{PRODUCTS_PATH}/{variant}")
            if candidate is not None and is_same_product(product, candidate):
                return candidate
        return None

    def locate(self, product: CatalogProduct) -> Tuple[Optional[ScrapeCandidate], Optional[FetchError]]:
        """First successful lookup, plus the last fetch error seen if none succeeded."""
        last_error: Optional[FetchError] = None
        for lookup in (self.by_sku, self.by_name, self.by_slug):
            try:
                candidate = lookup(product)
            except FetchError as e:
                logger.debug(f"   {lookup.__name__} failed for {product.sku}: {e}")
                if not (isinstance(e, HttpError) and e.is_not_found):
                    last_error = e
                continue
            if candidate is not None:
                return candidate, None
        return None, last_error


def _fill_price_stock(db_path: str, search: StoreSearch, product: CatalogProduct, report: RunReport) -> None:
    candidate, error = search.locate(product)
    if candidate is None:
        if error is not None:
            raise error
        logger.info("    Not found on storefront")
        report.add(NOT_FOUND, sku=product.sku, product_id=product.id, name=product.name)
        return

    plan = plan_gap_fill(product, candidate)
    if plan.is_empty:
        report.add(UNCHANGED, sku=product.sku, product_id=product.id, name=product.name, url=candidate.url)
        return

    db.update_price_stock(db_path, product.id, plan.price, plan.inventory_quantity)
    logger.info(f"    Updated {plan.as_dict()}")
    report.add(UPDATED, sku=product.sku, product_id=product.id, name=product.name,
               url=candidate.url, detail=", ".join(f"{k}={v}" for k, v in plan.as_dict().items()))


def sync_price_stock(
    db_path: str = DB_PATH,
    data_dir: Optional[PathLike] = DATA_DIR,
    fetcher: Optional[Fetcher] = None,
    parser: Optional[ProductPageParser] = None,
    base_url: str = BASE_URL,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """Fill unknown prices and stock levels from the live storefront."""
    report = RunReport("sync-price-stock")
    products = db.get_products_missing_price_stock(db_path)
    logger.info(f"Found {len(products)} products missing price or stock")

    own_fetcher = fetcher is None
    fetcher = fetcher or HttpFetcher(STORE_PROFILE)
    search = StoreSearch(fetcher, parser or ProductPageParser(base_url=base_url),
                         Throttle(DELAY_PRODUCT, sleep), base_url=base_url)
    try:
        for i, product in enumerate(products, start=1):
            logger.info(f"  [{i}/{len(products)}] {product.name} (SKU: {product.sku})")
            try:
                _fill_price_stock(db_path, search, product, report)
            except Exception as e:
                _record_error(report, e, product.sku, product.id, product.name, getattr(e, "url", ""))
    finally:
        if own_fetcher:
            fetcher.close()

    return _finish(report, data_dir)


# =============================================================================
# Missing images
# =============================================================================

def _attach_image(
    db_path: str,
    finder: ImageFinder,
    downloader: Optional[ImageDownloader],
    product: CatalogProduct,
    brand_name: Optional[str],
    website: Optional[str],
    report: RunReport,
) -> None:
    found = finder.find(product.name, brand_name or "", website)
    if found is None:
        report.add(NOT_FOUND, sku=product.sku, product_id=product.id, name=product.name)
        return

    image_url = found.url
    if downloader is not None:
        filename = image_filename(product.name, product.sku, 0, found.url)
        downloader.download(found.url, downloader.images_dir / filename)
        image_url = f"{downloader.public_prefix}/{filename}"
    db.set_primary_image(db_path, product.id, image_url, alt_text=product.name)

    logger.info(f"    {found.source}: {image_url}")
    report.add(UPDATED, sku=product.sku, product_id=product.id, name=product.name,
               url=found.url, detail=found.source)


def sync_missing_images(
    db_path: str = DB_PATH,
    download: bool = False,
    images_dir: PathLike = IMAGES_DIR,
    data_dir: Optional[PathLike] = DATA_DIR,
    finder: Optional[ImageFinder] = None,
    downloader: Optional[ImageDownloader] = None,
    sleep: Callable[[float], None] = time.sleep,
    headless: bool = False,
) -> RunReport:
    """Find and attach a primary image for products that have none.

    With ``download`` the image is saved under ``images_dir`` and the local
    path is stored; otherwise the remote URL is. ``headless`` adds Google
    Images, rendered in a browser, as the last search source.
    """
    report = RunReport("sync-images")
    work = db.get_products_without_images(db_path)
    logger.info(f"Found {len(work)} products without a primary image")

    own_finder = finder is None
    if finder is None:
        finder = ImageFinder(
            headless_fetcher=build_fetcher(GOOGLE_IMAGES_PROFILE) if headless else None,
            throttle=Throttle(DELAY_SEARCH, sleep),
        )
    own_downloader = download and downloader is None
    if download and downloader is None:
        downloader = ImageDownloader(HttpFetcher(STORE_PROFILE), images_dir)

    current_brand: Optional[str] = None
    try:
        for i, (product, brand_name, website) in enumerate(work, start=1):
            if brand_name != current_brand:
                current_brand = brand_name
                logger.info(f"Brand: {brand_name or '(none)'}")
            logger.info(f"  [{i}/{len(work)}] {product.name}")

            try:
                _attach_image(db_path, finder, downloader if download else None, product, brand_name, website, report)
            except Exception as e:
                _record_error(report, e, product.sku, product.id, product.name, getattr(e, "url", ""))
    finally:
        if own_finder:
            finder.close()
        if own_downloader:
            downloader.fetcher.close()

    return _finish(report, data_dir)


# =============================================================================
# Matching and audit
# =============================================================================

def match_brands(db_path: str = DB_PATH, data_dir: Optional[PathLike] = DATA_DIR,
                 only_missing: bool = False) -> RunReport:
    report = CatalogMatcher(db_path).assign_brands(only_missing=only_missing)
    return _finish(report, data_dir)


def match_categories(db_path: str = DB_PATH, data_dir: Optional[PathLike] = DATA_DIR) -> RunReport:
    report = CatalogMatcher(db_path).assign_categories()
    return _finish(report, data_dir)


def audit_missing_data(db_path: str = DB_PATH, data_dir: Optional[PathLike] = DATA_DIR) -> Dict[str, Any]:
    """List products missing price, stock or a primary image. No network.

    Also lists primary images whose URL fails the image deny-list.
    """
    def entry(p: CatalogProduct) -> Dict[str, Any]:
        return {"id": p.id, "sku": p.sku, "name": p.name, "slug": p.slug}

    missing = db.get_products_missing_price_stock(db_path)
    without_images = db.get_products_without_images(db_path)

    audit = {
        "missing_price": [entry(p) for p in missing if not p.price],
        "missing_stock": [entry(p) for p in missing if not p.inventory_quantity],
        "missing_image": [dict(entry(p), brand=brand) for p, brand, _site in without_images],
        "invalid_images": [
            {"id": row["product_id"], "sku": row["sku"], "name": row["name"], "image_url": row["image_url"]}
            for row in db.get_primary_images(db_path)
            # Local paths were validated before download
            if row["image_url"].lower().startswith(("http://", "https://"))
            and not is_valid_image(row["image_url"], allow_banners=True)
        ],
    }
    audit["counts"] = {key: len(items) for key, items in audit.items()}

    if data_dir is not None:
        path = Path(data_dir) / "missing-data.json"
        save_json(audit, path)
        logger.info(f"Audit saved to: {path}")
    return audit
