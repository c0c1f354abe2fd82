"""CSV and JSON artifacts for scraped product lists."""

import csv
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from catalog_sync.models import ImageRef, ScrapeCandidate

__all__ = [
    "CSV_FIELDS",
    "candidate_to_row",
    "row_to_candidate",
    "save_candidates_to_csv",
    "load_candidates_from_csv",
    "save_candidates_to_json",
    "load_candidates_from_json",
    "save_json",
]

CSV_FIELDS = [
    "name",
    "sku",
    "brand",
    "category",
    "price",
    "compare_price",
    "in_stock",
    "stock_quantity",
    "weight",
    "health_categories",
    "image_url",
    "local_image",
    "short_description",
    "url",
]


def candidate_to_row(candidate: ScrapeCandidate) -> Dict[str, Any]:
    """Flatten a candidate into a CSV row (first image only)."""
    return {
        "name": candidate.name,
        "sku": candidate.sku,
        "brand": candidate.brand,
        "category": candidate.category,
        "price": f"{candidate.price:.2f}",
        "compare_price": f"{candidate.compare_price:.2f}" if candidate.compare_price else "",
        "in_stock": "yes" if candidate.in_stock else "no",
        "stock_quantity": candidate.stock_quantity,
        "weight": candidate.weight,
        "health_categories": "; ".join(candidate.health_categories),
        "image_url": candidate.images[0].url if candidate.images else "",
        "local_image": candidate.local_images[0] if candidate.local_images else "",
        "short_description": candidate.short_description,
        "url": candidate.url,
    }


def save_candidates_to_csv(candidates: Iterable[ScrapeCandidate], path: Union[str, Path]) -> int:
    """Write candidates to CSV, returning the number of rows."""
    rows = [candidate_to_row(c) for c in candidates]
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)


def _float(value: Optional[str]) -> float:
    value = (value or "").strip().lstrip("$").replace(",", "")
    return float(value) if value else 0.0


def _int(value: Optional[str]) -> int:
    return int(_float(value))


def row_to_candidate(row: Mapping[str, Optional[str]]) -> ScrapeCandidate:
    """Build a candidate from a CSV row in the ``CSV_FIELDS`` layout.

    Missing columns read as empty. Raises ValueError on a malformed number.
    """
    def text(column: str) -> str:
        return (row.get(column) or "").strip()

    return ScrapeCandidate(
        url=text("url"),
        name=text("name"),
        sku=text("sku"),
        brand=text("brand"),
        category=text("category"),
        price=_float(row.get("price")),
        compare_price=_float(row.get("compare_price")),
        in_stock=text("in_stock").lower() not in ("no", "false", "0"),
        stock_quantity=_int(row.get("stock_quantity")),
        weight=text("weight"),
        health_categories=[c.strip() for c in text("health_categories").split(";") if c.strip()],
        images=[ImageRef(url=text("image_url"))] if text("image_url") else [],
        local_images=[text("local_image")] if text("local_image") else [],
        short_description=text("short_description"),
    )


def load_candidates_from_csv(path: Union[str, Path]) -> List[ScrapeCandidate]:
    """Read a product list written by ``save_candidates_to_csv``."""
    with open(path, "r", newline="", encoding="utf-8") as f:
        return [row_to_candidate(row) for row in csv.DictReader(f)]


def save_json(data: Any, path: Union[str, Path]) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def save_candidates_to_json(candidates: Iterable[ScrapeCandidate], path: Union[str, Path]) -> int:
    data = [c.to_dict() for c in candidates]
    save_json(data, path)
    return len(data)


def load_candidates_from_json(path: Union[str, Path]) -> List[ScrapeCandidate]:
    """Read a product list written by ``save_candidates_to_json``.

    Accepts either a bare list or an object with a ``products`` key.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("products") or []
    return [ScrapeCandidate.from_dict(item) for item in data if isinstance(item, dict)]
