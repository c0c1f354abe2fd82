"""Data models for catalog rows and scraped products."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

__all__ = [
    "CatalogProduct",
    "Brand",
    "Category",
    "ImageRef",
    "ScrapeCandidate",
    "ImageAsset",
]


@dataclass
class CatalogProduct:
    """A row of the products table.

    ``price`` of 0/None and ``inventory_quantity`` of 0/None are the
    "unknown" sentinels the gap-fill logic looks for.
    """

    id: int
    sku: str
    name: str
    slug: Optional[str] = None
    brand_id: Optional[int] = None
    category_id: Optional[int] = None
    price: Optional[float] = None
    inventory_quantity: Optional[int] = None
    short_description: str = ""
    long_description: str = ""
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CatalogProduct":
        keys = set(row.keys())

        def get(name: str, default: Any = None) -> Any:
            return row[name] if name in keys else default

        return cls(
            id=row["id"],
            sku=get("sku") or "",
            name=get("name") or "",
            slug=get("slug"),
            brand_id=get("brand_id"),
            category_id=get("category_id"),
            price=get("price"),
            inventory_quantity=get("inventory_quantity"),
            short_description=get("short_description") or "",
            long_description=get("long_description") or "",
            is_active=bool(get("is_active", 1)),
        )

    @property
    def search_text(self) -> str:
        """Name plus descriptions, lower-cased, for keyword matching."""
        return f"{self.name.strip()} {self.short_description.strip()} {self.long_description.strip()}".lower()


@dataclass
class Brand:
    id: int
    name: str
    website_url: Optional[str] = None
    is_active: bool = True


@dataclass
class Category:
    id: int
    name: str
    is_active: bool = True


@dataclass
class ImageRef:
    """One candidate image on a scraped page."""

    url: str
    alt: str = ""


@dataclass
class ScrapeCandidate:
    """Fields extracted from one remote product page.

    Transient: consumed by the matcher or written to the run artifacts,
    never stored verbatim in the catalog.
    """

    url: str
    name: str = ""
    sku: str = ""
    price: float = 0.0
    compare_price: float = 0.0
    short_description: str = ""
    long_description: str = ""
    brand: str = ""
    category: str = ""
    images: List[ImageRef] = field(default_factory=list)
    in_stock: bool = True
    stock_quantity: int = 0
    weight: str = ""
    ingredients: str = ""
    health_categories: List[str] = field(default_factory=list)

    # Filled in by the image downloader
    local_images: List[str] = field(default_factory=list)

    @property
    def has_price(self) -> bool:
        return self.price > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScrapeCandidate":
        images = []
        for image in data.get("images") or []:
            # Older product lists stored bare URL strings
            if isinstance(image, str):
                images.append(ImageRef(url=image))
            elif isinstance(image, Mapping) and image.get("url"):
                images.append(ImageRef(url=image["url"], alt=image.get("alt") or ""))

        return cls(
            url=data.get("url") or "",
            name=data.get("name") or "",
            sku=data.get("sku") or "",
            price=float(data.get("price") or 0),
            compare_price=float(data.get("compare_price") or 0),
            short_description=data.get("short_description") or "",
            long_description=data.get("long_description") or "",
            brand=data.get("brand") or "",
            category=data.get("category") or "",
            images=images,
            in_stock=bool(data.get("in_stock", True)),
            stock_quantity=int(data.get("stock_quantity") or 0),
            weight=data.get("weight") or "",
            ingredients=data.get("ingredients") or "",
            health_categories=list(data.get("health_categories") or []),
            local_images=list(data.get("local_images") or []),
        )


@dataclass
class ImageAsset:
    """A downloaded image file and its relation to a product."""

    source_url: str
    local_path: str
    product_id: Optional[int] = None
    is_primary: bool = False
    sort_order: int = 0
    size_bytes: int = 0
