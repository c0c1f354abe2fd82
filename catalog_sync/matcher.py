"""Reconciling products with the catalog's brands, categories and gaps.

Brands are matched by longest case-insensitive name prefix, categories by
summed keyword length. Price and stock are only ever written over an
unknown sentinel (gap-fill), never over a value someone already set.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from catalog_sync import db
from catalog_sync.config import CATEGORY_KEYWORDS, DB_PATH, FALLBACK_CATEGORY
from catalog_sync.errors import PersistenceError
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import Brand, CatalogProduct, Category, ScrapeCandidate
from catalog_sync.report import ERROR, NOT_FOUND, UNCHANGED, UPDATED, RunReport

__all__ = [
    "match_brand",
    "score_categories",
    "match_category",
    "is_unknown_price",
    "is_unknown_stock",
    "GapFill",
    "plan_gap_fill",
    "name_similarity",
    "CatalogMatcher",
]

logger = get_logger("matcher")


def match_brand(name: str, brands: Sequence[Brand]) -> Optional[Brand]:
    """Longest brand whose name is a case-insensitive prefix of ``name``."""
    lowered = name.lower().strip()
    best: Optional[Brand] = None
    for brand in brands:
        brand_name = brand.name.lower().strip()
        if not brand_name or not lowered.startswith(brand_name):
            continue
        if best is None or len(brand_name) > len(best.name.strip()):
            best = brand
    return best


def score_categories(text: str, keyword_table: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    """Sum of keyword lengths found in ``text``, per category."""
    lowered = text.lower()
    return {
        category: sum(len(keyword) for keyword in keywords if keyword.lower() in lowered)
        for category, keywords in keyword_table.items()
    }


def match_category(
    product: CatalogProduct,
    categories: Sequence[Category],
    keyword_table: Mapping[str, Sequence[str]] = CATEGORY_KEYWORDS,
    fallback: str = FALLBACK_CATEGORY,
) -> Optional[Category]:
    """Best-scoring existing category for the product.

    Categories without keywords never win on score. Ties go to the
    category listed first in ``keyword_table``. With no positive score the
    ``fallback`` category is used if it exists.
    """
    by_name = {c.name.lower(): c for c in categories}
    scores = score_categories(product.search_text, keyword_table)

    best: Optional[Category] = None
    best_score = 0
    for name, keywords in keyword_table.items():
        category = by_name.get(name.lower())
        if category is None or not keywords:
            continue
        if scores[name] > best_score:
            best, best_score = category, scores[name]

    if best is not None:
        return best
    return by_name.get(fallback.lower()) if fallback else None


# =============================================================================
# Gap-fill
# =============================================================================

def is_unknown_price(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return True
        try:
            return float(value) == 0
        except ValueError:
            return False
    return value == 0


def is_unknown_stock(value: Any) -> bool:
    return value is None or value == 0


@dataclass
class GapFill:
    """Values that may be written; None means leave the stored value alone."""

    price: Optional[float] = None
    inventory_quantity: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.price is None and self.inventory_quantity is None

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in (("price", self.price), ("inventory_quantity", self.inventory_quantity))
                if v is not None}


def plan_gap_fill(product: CatalogProduct, candidate: ScrapeCandidate) -> GapFill:
    """Which scraped values may overwrite the stored ones."""
    plan = GapFill()
    if is_unknown_price(product.price) and candidate.price > 0:
        plan.price = round(candidate.price, 2)
    # An out-of-stock reading is not worth writing over an unknown
    if is_unknown_stock(product.inventory_quantity) and candidate.in_stock and candidate.stock_quantity > 0:
        plan.inventory_quantity = candidate.stock_quantity
    return plan


def name_similarity(a: str, b: str) -> float:
    """Share of words in common, relative to the longer name."""
    words_a = a.lower().split()
    words_b = b.lower().split()
    if not words_a or not words_b:
        return 0.0
    common = [w for w in words_a if w in words_b]
    return len(common) / max(len(words_a), len(words_b))


# =============================================================================
# Batch matcher
# =============================================================================

class CatalogMatcher:
    """Assigns brands and categories to every active product in the database.

    Each product is written on its own; a failed write is reported and the
    batch carries on.
    """

    def __init__(
        self,
        db_path: str = DB_PATH,
        keyword_table: Mapping[str, Sequence[str]] = CATEGORY_KEYWORDS,
        fallback_category: str = FALLBACK_CATEGORY,
    ):
        self.db_path = db_path
        self.keyword_table = keyword_table
        self.fallback_category = fallback_category

    def _record_error(self, report: RunReport, product: CatalogProduct, error: Exception) -> None:
        logger.error(f"   {product.sku}: {error}")
        log_sync_event("item_error", {
            "run": report.name,
            "sku": product.sku,
            "product_id": product.id,
            "error": str(error),
        }, level=logging.ERROR)
        report.add(ERROR, sku=product.sku, product_id=product.id, name=product.name, error=str(error))

    def assign_brands(self, only_missing: bool = False) -> RunReport:
        report = RunReport("match-brands")
        brands = db.get_active_brands(self.db_path)
        products = db.get_all_products(self.db_path)
        logger.info(f"Matching {len(products)} products against {len(brands)} brands")

        for product in products:
            if only_missing and product.brand_id is not None:
                report.add(UNCHANGED, sku=product.sku, product_id=product.id, name=product.name)
                continue

            brand = match_brand(product.name, brands)
            if brand is None:
                report.add(NOT_FOUND, sku=product.sku, product_id=product.id, name=product.name)
                continue
            if brand.id == product.brand_id:
                report.add(UNCHANGED, sku=product.sku, product_id=product.id, name=product.name,
                           detail=brand.name)
                continue

            try:
                db.update_product_brand(self.db_path, product.id, brand.id)
            except PersistenceError as e:
                self._record_error(report, product, e)
                continue
            logger.info(f"   {product.name} -> {brand.name}")
            report.add(UPDATED, sku=product.sku, product_id=product.id, name=product.name, detail=brand.name)

        return report.finish()

    def assign_categories(self) -> RunReport:
        report = RunReport("match-categories")
        categories = db.get_active_categories(self.db_path)
        products = db.get_all_products(self.db_path)
        logger.info(f"Categorizing {len(products)} products into {len(categories)} categories")

        for product in products:
            category = match_category(product, categories, self.keyword_table, self.fallback_category)
            if category is None:
                report.add(NOT_FOUND, sku=product.sku, product_id=product.id, name=product.name)
                continue
            if category.id == product.category_id:
                report.add(UNCHANGED, sku=product.sku, product_id=product.id, name=product.name,
                           detail=category.name)
                continue

            try:
                db.update_product_category(self.db_path, product.id, category.id)
            except PersistenceError as e:
                self._record_error(report, product, e)
                continue
            report.add(UPDATED, sku=product.sku, product_id=product.id, name=product.name,
                       detail=category.name)

        return report.finish()

    def category_distribution(self) -> List[Dict[str, Any]]:
        """Product count per category name, largest first."""
        categories = {c.id: c.name for c in db.get_active_categories(self.db_path)}
        counts: Dict[str, int] = {}
        for product in db.get_all_products(self.db_path):
            name = categories.get(product.category_id, "(none)")
            counts[name] = counts.get(name, 0) + 1
        return [{"category": k, "count": v} for k, v in sorted(counts.items(), key=lambda kv: -kv[1])]
