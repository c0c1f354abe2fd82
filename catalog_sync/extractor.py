"""Field extraction from product pages.

Every field is an ordered tuple of strategies, each a plain function
``soup -> Optional[value]``. ``first_result`` walks the tuple and keeps the
first non-empty, plausible value:

    1. structured data (JSON-LD Product)
    2. meta tags (Open Graph / Twitter / named meta)
    3. ranked CSS selectors
    4. free-text patterns over the product area

Nothing here raises on missing data; an empty field is the normal
"unknown" outcome (0 for prices, "" for text, [] for images).
"""

import json
import re
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Comment, Tag

from catalog_sync.config import (
    BASE_URL,
    DEFAULT_STOCK_QUANTITY,
    HEALTH_CATEGORY_KEYWORDS,
    KNOWN_BRANDS,
    LISTING_PAGE_PARAM,
    MAX_PRICE,
    MIN_LARGE_IMAGE_AREA,
    MIN_PRICE,
    PRODUCTS_PATH,
)
from catalog_sync.images import is_valid_image
from catalog_sync.models import ImageRef, ScrapeCandidate
from catalog_sync.url_validation import resolve_url

__all__ = [
    "first_result",
    "parse_price",
    "parse_dollar_price",
    "clean_text",
    "iter_json_ld",
    "find_json_ld_product",
    "product_area",
    "extract_price",
    "extract_compare_price",
    "extract_name",
    "extract_sku",
    "generate_sku",
    "extract_short_description",
    "extract_long_description",
    "extract_stock_quantity",
    "extract_images",
    "extract_largest_image",
    "extract_brand",
    "extract_category",
    "extract_breadcrumbs",
    "category_from_breadcrumbs",
    "category_from_url",
    "brand_from_name",
    "extract_weight",
    "extract_ingredients",
    "categorize_by_health",
    "is_product_page",
    "listing_page_url",
    "extract_product_links",
    "is_last_listing_page",
    "extract_search_result_links",
    "ProductPageParser",
]

T = TypeVar("T")
Strategy = Callable[[BeautifulSoup], Optional[T]]

# "$1,299.00", "$ 24.99", "24.99" -- the symbol group is optional in the pattern
PRICE_RE = re.compile(r"(?P<symbol>\$)?\s*(?P<whole>\d{1,3}(?:,\d{3})+|\d+)(?:\.(?P<cents>\d{1,2}))?")

SKU_IN_TITLE_RE = re.compile(r"SKU:\s*([A-Za-z0-9\-]+)")
SKU_SUFFIX_RE = re.compile(r"\s*SKU:\s*[A-Za-z0-9\-]+.*$", re.DOTALL)

PRODUCT_AREA_SELECTORS = (
    "form.store-product",
    ".product-details",
    ".product-info",
    "[itemtype*='schema.org/Product']",
    "div.product",
    "main",
)

PRICE_SELECTORS = (
    ".product-price",
    ".price",
    "[itemprop='price']",
    ".woocommerce-Price-amount",
    ".amount",
    "[class*='price']",
)
COMPARE_PRICE_SELECTORS = (".compare-price", ".original-price", ".was-price", "del .amount", "del")

LONG_DESCRIPTION_SELECTORS = (
    ".product-description",
    ".description",
    ".product-details",
    ".product-info",
    ".product-content",
    "[itemprop='description']",
    ".product-text",
    ".entry-content",
)
SHORT_DESCRIPTION_SELECTORS = (
    ".product-summary",
    ".short-description",
    ".product-excerpt",
    ".product-intro",
)

IMAGE_SELECTORS = (
    ".product-image img",
    ".product-photos img",
    ".product-gallery img",
    ".product-images img",
    ".main-image img",
    ".product-img img",
    ".product-media img",
    ".woocommerce-product-gallery img",
    ".product-single__photo img",
    "figure.product-image img",
    ".product-thumbnails img",
    "img[itemprop='image']",
    ".gallery img",
    ".slideshow img",
)
IMAGE_SRC_ATTRS = ("src", "data-src", "data-lazy-src", "data-zoom-src")
IMAGE_PATH_HINTS = ("product", "cache", "application/files")

OUT_OF_STOCK_LABELS = (".store-out-of-stock-label", ".store-not-available-label", ".out-of-stock")
OUT_OF_STOCK_MARKERS = ("out of stock", "sold out", "unavailable", "not available")
STOCK_QUANTITY_SELECTORS = (
    ".stock-quantity",
    ".inventory-quantity",
    ".qty-available",
    ".quantity-available",
    "[data-stock]",
    "[data-quantity]",
    ".product-stock",
)

BREADCRUMB_SELECTORS = (
    "nav[aria-label='breadcrumb']",
    "nav[aria-label='Breadcrumb']",
    ".breadcrumb",
    ".breadcrumbs",
    ".ccm-autonav-breadcrumb",
)
GENERIC_SEGMENTS = frozenset({
    "", "home", "products", "product", "shop", "store", "all products",
    "index.php", "catalog", "collections", "p", "item", "items",
})

UNKNOWN_BRAND = "Unknown"


# =============================================================================
# Cascade helpers
# =============================================================================

def first_result(strategies: Sequence[Callable[[Any], Optional[T]]], soup: Any) -> Optional[T]:
    """Return the first non-empty value produced by ``strategies``."""
    for strategy in strategies:
        value = strategy(soup)
        if value:
            return value
    return None


def clean_text(text: Optional[str]) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def _plausible_price(value: float) -> bool:
    return MIN_PRICE <= value <= MAX_PRICE


def parse_price(text: Any, require_symbol: bool = True) -> float:
    """Extract the first plausible price from ``text``.

    With ``require_symbol`` only ``$``-prefixed amounts count, so model
    numbers like "CoQ10" are not mistaken for prices. Amounts outside
    [MIN_PRICE, MAX_PRICE] are skipped. Returns 0.0 if nothing fits.
    """
    if text is None:
        return 0.0
    for match in PRICE_RE.finditer(str(text)):
        if require_symbol and not match.group("symbol"):
            continue
        whole = match.group("whole").replace(",", "")
        cents = match.group("cents") or "00"
        value = float(f"{whole}.{cents}")
        if _plausible_price(value):
            return value
    return 0.0


def parse_dollar_price(text: Any) -> float:
    """Only $-prefixed amounts; for free text where bare numbers are doses or counts."""
    return parse_price(text, require_symbol=True)


def _text(el: Optional[Tag]) -> str:
    return clean_text(el.get_text(" ", strip=True)) if el is not None else ""


def _meta_content(soup: BeautifulSoup, **attrs: str) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is not None and tag.get("content"):
        return clean_text(tag["content"])
    return None


def product_area(soup: BeautifulSoup) -> Tag:
    """The subtree holding the product itself, away from header/footer/ads."""
    for selector in PRODUCT_AREA_SELECTORS:
        area = soup.select_one(selector)
        if area is not None:
            return area
    return soup.body or soup


# =============================================================================
# Structured data
# =============================================================================

def iter_json_ld(soup: BeautifulSoup) -> Iterator[Dict[str, Any]]:
    """Yield every JSON-LD object on the page, flattening lists and @graph."""
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            continue

        stack = data if isinstance(data, list) else [data]
        for item in stack:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                for node in graph:
                    if isinstance(node, dict):
                        yield node
            yield item


def _is_product_type(item: Dict[str, Any]) -> bool:
    types = item.get("@type")
    if not isinstance(types, list):
        types = [types]
    return any(isinstance(t, str) and t.rsplit("/", 1)[-1] == "Product" for t in types)


def find_json_ld_product(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for item in iter_json_ld(soup):
        if _is_product_type(item):
            return item
    return None


def _json_ld_offers(product: Dict[str, Any]) -> List[Dict[str, Any]]:
    offers = product.get("offers")
    if isinstance(offers, dict):
        offers = [offers]
    return [o for o in offers or [] if isinstance(o, dict)]


# =============================================================================
# Price
# =============================================================================

def price_from_json_ld(soup: BeautifulSoup) -> Optional[float]:
    product = find_json_ld_product(soup)
    if not product:
        return None
    for offer in _json_ld_offers(product):
        for key in ("price", "lowPrice"):
            value = parse_price(offer.get(key), require_symbol=False)
            if value:
                return value
    return parse_price(product.get("price"), require_symbol=False) or None


def price_from_meta(soup: BeautifulSoup) -> Optional[float]:
    for attrs in (
        {"property": "product:price:amount"},
        {"property": "og:price:amount"},
        {"itemprop": "price"},
        {"name": "twitter:data1"},
    ):
        value = parse_price(_meta_content(soup, **attrs), require_symbol=False)
        if value:
            return value
    return None


def price_from_selectors(soup: BeautifulSoup) -> Optional[float]:
    area = product_area(soup)
    for selector in PRICE_SELECTORS:
        el = area.select_one(selector)
        if el is None:
            continue
        # itemprop="price" often carries the machine-readable value in content
        value = parse_price(el.get("content"), require_symbol=False) or \
            parse_price(_text(el), require_symbol=False)
        if value:
            return value
    return None


def price_from_text(soup: BeautifulSoup) -> Optional[float]:
    return parse_dollar_price(_text(product_area(soup))) or None


PRICE_STRATEGIES: Tuple[Strategy, ...] = (
    price_from_json_ld,
    price_from_meta,
    price_from_selectors,
    price_from_text,
)


def extract_price(soup: BeautifulSoup) -> float:
    """Best price on the page, or 0.0 (unknown)."""
    return first_result(PRICE_STRATEGIES, soup) or 0.0


def extract_compare_price(soup: BeautifulSoup) -> float:
    area = product_area(soup)
    for selector in COMPARE_PRICE_SELECTORS:
        value = parse_price(_text(area.select_one(selector)), require_symbol=False)
        if value:
            return value
    return 0.0


# =============================================================================
# Name / SKU
# =============================================================================

def name_from_heading(soup: BeautifulSoup) -> Optional[str]:
    h1 = soup.find("h1")
    if h1 is None:
        return None
    return clean_text(SKU_SUFFIX_RE.sub("", h1.get_text(" ", strip=True))) or None


def name_from_json_ld(soup: BeautifulSoup) -> Optional[str]:
    product = find_json_ld_product(soup)
    if product and isinstance(product.get("name"), str):
        return clean_text(product["name"]) or None
    return None


def name_from_meta(soup: BeautifulSoup) -> Optional[str]:
    return _meta_content(soup, property="og:title") or _meta_content(soup, name="twitter:title")


NAME_STRATEGIES: Tuple[Strategy, ...] = (name_from_heading, name_from_json_ld, name_from_meta)


def extract_name(soup: BeautifulSoup) -> str:
    return first_result(NAME_STRATEGIES, soup) or ""


def sku_from_heading(soup: BeautifulSoup) -> Optional[str]:
    h1 = soup.find("h1")
    if h1 is None:
        return None
    match = SKU_IN_TITLE_RE.search(h1.get_text(" ", strip=True))
    return match.group(1) if match else None


def sku_from_markup(soup: BeautifulSoup) -> Optional[str]:
    el = soup.select_one("[itemprop='sku'], .sku, .product-sku")
    if el is None:
        return None
    return clean_text(el.get("content") or el.get_text(" ", strip=True)).replace("SKU:", "").strip() or None


def sku_from_json_ld(soup: BeautifulSoup) -> Optional[str]:
    product = find_json_ld_product(soup)
    if product and product.get("sku"):
        return clean_text(str(product["sku"])) or None
    return None


SKU_STRATEGIES: Tuple[Strategy, ...] = (sku_from_heading, sku_from_markup, sku_from_json_ld)


def generate_sku(name: str) -> str:
    """Stand-in SKU for pages that do not show one."""
    if not name:
        return "HM-UNKNOWN"
    return "HM-" + re.sub(r"[^a-zA-Z0-9]", "", name).upper()[:20]


def extract_sku(soup: BeautifulSoup) -> str:
    return first_result(SKU_STRATEGIES, soup) or generate_sku(extract_name(soup))


# =============================================================================
# Descriptions
# =============================================================================

def long_description_from_json_ld(soup: BeautifulSoup) -> Optional[str]:
    product = find_json_ld_product(soup)
    if product and isinstance(product.get("description"), str):
        text = clean_text(BeautifulSoup(product["description"], "html.parser").get_text(" "))
        return text if len(text) > 50 else None
    return None


def long_description_from_selectors(soup: BeautifulSoup) -> Optional[str]:
    for selector in LONG_DESCRIPTION_SELECTORS:
        text = _text(soup.select_one(selector))
        if len(text) > 50:
            return text
    return None


def long_description_from_paragraphs(soup: BeautifulSoup) -> Optional[str]:
    """Paragraphs following the heading, skipping price and cart text."""
    h1 = soup.find("h1")
    if h1 is None:
        return None
    parts: List[str] = []
    for el in h1.find_all_next(["p", "div"]):
        text = _text(el)
        if len(text) > 20 and "$" not in text and "add to cart" not in text.lower():
            parts.append(text)
            if sum(len(p) for p in parts) > 500:
                break
    description = " ".join(parts)
    return description if len(description) > 50 else None


LONG_DESCRIPTION_STRATEGIES: Tuple[Strategy, ...] = (
    long_description_from_json_ld,
    long_description_from_selectors,
    long_description_from_paragraphs,
)


def extract_long_description(soup: BeautifulSoup) -> str:
    return first_result(LONG_DESCRIPTION_STRATEGIES, soup) or ""


def short_description_from_selectors(soup: BeautifulSoup) -> Optional[str]:
    for selector in SHORT_DESCRIPTION_SELECTORS:
        text = _text(soup.select_one(selector))
        if len(text) > 10:
            return text
    return None


def short_description_from_meta(soup: BeautifulSoup) -> Optional[str]:
    for attrs in ({"name": "description"}, {"property": "og:description"}, {"name": "twitter:description"}):
        text = _meta_content(soup, **attrs)
        if text and len(text) > 10:
            return text
    return None


def short_description_from_first_paragraph(soup: BeautifulSoup) -> Optional[str]:
    h1 = soup.find("h1")
    paragraph = h1.find_next_sibling("p") if h1 is not None else None
    text = _text(paragraph)
    return text if 10 < len(text) < 200 else None


SHORT_DESCRIPTION_STRATEGIES: Tuple[Strategy, ...] = (
    short_description_from_selectors,
    short_description_from_meta,
    short_description_from_first_paragraph,
)


def extract_short_description(soup: BeautifulSoup) -> str:
    return first_result(SHORT_DESCRIPTION_STRATEGIES, soup) or ""


# =============================================================================
# Stock
# =============================================================================

def _is_hidden(el: Tag) -> bool:
    if "hidden" in (el.get("class") or []) or el.has_attr("hidden"):
        return True
    style = (el.get("style") or "").replace(" ", "").lower()
    return "display:none" in style or "visibility:hidden" in style


def _visible_text(root: Tag) -> str:
    """Text of ``root`` without hidden elements, scripts or styles."""
    parts = []
    for string in root.find_all(string=True):
        if isinstance(string, Comment):
            continue
        parent = string.parent
        if parent is not None and parent.name in ("script", "style", "noscript"):
            continue
        if any(_is_hidden(p) for p in string.parents if isinstance(p, Tag)):
            continue
        parts.append(string)
    return clean_text(" ".join(parts))


def stock_from_labels(soup: BeautifulSoup) -> Optional[int]:
    """Visible out-of-stock labels are authoritative."""
    for selector in OUT_OF_STOCK_LABELS:
        for label in soup.select(selector):
            if not any(_is_hidden(el) for el in [label, *label.parents] if isinstance(el, Tag)):
                return 0
    return None


def stock_from_json_ld(soup: BeautifulSoup) -> Optional[int]:
    product = find_json_ld_product(soup)
    if not product:
        return None
    for offer in _json_ld_offers(product):
        availability = str(offer.get("availability") or "")
        if availability.endswith(("OutOfStock", "SoldOut", "Discontinued")):
            return 0
    return None


def stock_from_text(soup: BeautifulSoup) -> Optional[int]:
    text = _visible_text(product_area(soup)).lower()
    if any(marker in text for marker in OUT_OF_STOCK_MARKERS):
        return 0
    return None


def stock_from_quantity_markup(soup: BeautifulSoup) -> Optional[int]:
    for selector in STOCK_QUANTITY_SELECTORS:
        el = soup.select_one(selector)
        if el is None:
            continue
        for raw in (el.get("data-stock"), el.get("data-quantity"), _text(el)):
            match = re.search(r"(\d+)", str(raw or ""))
            if match:
                return int(match.group(1))
    return None


# Negative signals come first; a found quantity of 0 ends the cascade too.
STOCK_STRATEGIES: Tuple[Strategy, ...] = (
    stock_from_labels,
    stock_from_json_ld,
    stock_from_text,
    stock_from_quantity_markup,
)


def extract_stock_quantity(soup: BeautifulSoup, default: int = DEFAULT_STOCK_QUANTITY) -> int:
    """Explicit quantity if shown, 0 if marked out of stock, else ``default``.

    ``default`` is an assumption ("probably available"), not a count.
    """
    for strategy in STOCK_STRATEGIES:
        value = strategy(soup)
        if value is not None:
            return value
    return default


# =============================================================================
# Images
# =============================================================================

def _image_src(img: Tag) -> Optional[str]:
    for attr in IMAGE_SRC_ATTRS:
        value = img.get(attr)
        if value and isinstance(value, str) and not value.startswith("data:"):
            return value
    return None


def _declared_area(img: Tag) -> int:
    def dimension(*attrs: str) -> int:
        for attr in attrs:
            match = re.match(r"\s*(\d+)", str(img.get(attr) or ""))
            if match:
                return int(match.group(1))
        return 0

    return dimension("width", "data-width") * dimension("height", "data-height")


def _collect_images(imgs: Sequence[Tag], base_url: str, seen: set) -> List[ImageRef]:
    found: List[ImageRef] = []
    for img in imgs:
        url = resolve_url(_image_src(img), base_url)
        if not url or url in seen or not is_valid_image(url):
            continue
        seen.add(url)
        found.append(ImageRef(url=url, alt=clean_text(img.get("alt") or img.get("title") or "")))
    return found


def extract_largest_image(soup: BeautifulSoup, base_url: str = BASE_URL) -> Optional[str]:
    """Largest image by declared width x height above MIN_LARGE_IMAGE_AREA."""
    largest: Optional[str] = None
    largest_area = MIN_LARGE_IMAGE_AREA
    for img in soup.find_all("img"):
        area = _declared_area(img)
        if area <= largest_area:
            continue
        url = resolve_url(_image_src(img), base_url)
        if url and is_valid_image(url):
            largest, largest_area = url, area
    return largest


def extract_images(soup: BeautifulSoup, base_url: str = BASE_URL) -> List[ImageRef]:
    """Validated product images, gallery first, de-duplicated in page order."""
    area = product_area(soup)
    seen: set = set()
    images: List[ImageRef] = []

    for selector in IMAGE_SELECTORS:
        images.extend(_collect_images(area.select(selector), base_url, seen))
    if images:
        return images

    # Image paths that the store's CMS uses for product photos
    hinted = [
        img for img in area.find_all("img")
        if any(hint in (_image_src(img) or "") for hint in IMAGE_PATH_HINTS)
    ]
    images = _collect_images(hinted, base_url, seen)
    if images:
        return images

    largest = extract_largest_image(area, base_url)
    return [ImageRef(url=largest)] if largest else []


# =============================================================================
# Brand / category
# =============================================================================

def brand_from_markup(soup: BeautifulSoup) -> Optional[str]:
    for selector in (".product-brand", ".brand", "[itemprop='brand']"):
        el = soup.select_one(selector)
        if el is not None:
            text = clean_text(el.get("content") or el.get_text(" ", strip=True))
            if text:
                return text
    return None


def brand_from_json_ld(soup: BeautifulSoup) -> Optional[str]:
    product = find_json_ld_product(soup)
    brand = product.get("brand") if product else None
    if isinstance(brand, dict):
        brand = brand.get("name")
    return clean_text(brand) if isinstance(brand, str) and brand.strip() else None


def brand_from_name(name: str, known_brands: Sequence[str] = KNOWN_BRANDS) -> Optional[str]:
    """Longest known brand the product name starts with."""
    lowered = name.lower().strip()
    best: Optional[str] = None
    for brand in known_brands:
        if lowered.startswith(brand.lower()) and (best is None or len(brand) > len(best)):
            best = brand
    return best


def extract_brand(soup: BeautifulSoup, name: str = "", known_brands: Sequence[str] = KNOWN_BRANDS) -> str:
    strategies: Tuple[Strategy, ...] = (
        brand_from_markup,
        brand_from_json_ld,
        lambda _soup: brand_from_name(name, known_brands),
    )
    return first_result(strategies, soup) or UNKNOWN_BRAND


def extract_breadcrumbs(soup: BeautifulSoup) -> List[str]:
    for selector in BREADCRUMB_SELECTORS:
        nav = soup.select_one(selector)
        if nav is None:
            continue
        items = nav.find_all("li") or nav.find_all(["a", "span"])
        crumbs = [_text(item) for item in items]
        crumbs = [c for c in crumbs if c and c not in (">", "/", "»")]
        if crumbs:
            return crumbs
    return []


def category_from_breadcrumbs(crumbs: Sequence[str], product_name: str = "") -> Optional[str]:
    """Last crumb that is neither generic nor the product itself."""
    name = product_name.lower().strip()
    for crumb in reversed(crumbs):
        lowered = crumb.lower().strip()
        if lowered in GENERIC_SEGMENTS or (name and lowered == name):
            continue
        return crumb
    return None


def category_from_url(url: str) -> Optional[str]:
    """Parent path segment of a product URL, e.g. /heart-health/coq10 -> 'Heart Health'."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    # The last segment is the product slug itself
    for segment in reversed(segments[:-1]):
        if segment.lower() in GENERIC_SEGMENTS:
            continue
        return segment.replace("-", " ").replace("_", " ").title()
    return None


def category_from_markup(soup: BeautifulSoup) -> Optional[str]:
    for selector in (".product-category", ".category", "[itemprop='category']"):
        text = _text(soup.select_one(selector))
        if text:
            return text
    product = find_json_ld_product(soup)
    if product and isinstance(product.get("category"), str):
        return clean_text(product["category"]) or None
    return None


def extract_category(soup: BeautifulSoup, url: str = "", name: str = "") -> str:
    strategies: Tuple[Strategy, ...] = (
        category_from_markup,
        lambda s: category_from_breadcrumbs(extract_breadcrumbs(s), name),
        lambda _s: category_from_url(url),
    )
    return first_result(strategies, soup) or ""


# =============================================================================
# Misc fields
# =============================================================================

def extract_weight(soup: BeautifulSoup) -> str:
    for selector in (".weight", ".product-weight", "[itemprop='weight']"):
        text = _text(soup.select_one(selector))
        if text:
            return text
    product = find_json_ld_product(soup)
    weight = product.get("weight") if product else None
    if isinstance(weight, dict):
        weight = " ".join(str(weight.get(k, "")) for k in ("value", "unitText")).strip()
    return clean_text(str(weight)) if weight else ""


def extract_ingredients(soup: BeautifulSoup) -> str:
    return _text(soup.select_one(".ingredients")) or _text(soup.select_one(".supplement-facts"))


def categorize_by_health(
    text: str,
    keyword_table: Mapping[str, Sequence[str]] = HEALTH_CATEGORY_KEYWORDS,
) -> List[str]:
    lowered = text.lower()
    return [
        category for category, keywords in keyword_table.items()
        if any(keyword in lowered for keyword in keywords)
    ]


def is_product_page(soup: BeautifulSoup) -> bool:
    """Heuristic: is this a single product rather than a listing or search page?"""
    h1 = soup.find("h1")
    if h1 is not None and "SKU:" in h1.get_text():
        return True
    if find_json_ld_product(soup):
        return True
    if soup.select_one(".product-details, .product-price, form.store-product"):
        return True
    return h1 is not None and "add to cart" in soup.get_text(" ").lower()


# =============================================================================
# Listing / search pages
# =============================================================================

def listing_page_url(page: int, base_url: str = BASE_URL) -> str:
    url = f"{base_url}{PRODUCTS_PATH}"
    return url if page <= 1 else f"{url}?{LISTING_PAGE_PARAM}={page}"


def extract_product_links(html: str, base_url: str = BASE_URL) -> List[str]:
    """Product detail URLs on a listing page, in page order, de-duplicated."""
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    seen = set()
    for a in soup.select("a[href*='/products/']"):
        href = a.get("href")
        if not href or not isinstance(href, str) or LISTING_PAGE_PARAM in href:
            continue
        url = resolve_url(href, base_url)
        if not url or urlparse(url).path.rstrip("/").endswith(PRODUCTS_PATH):
            continue
        url = url.split("#")[0]
        if url not in seen:
            seen.add(url)
            links.append(url)
    return links


def is_last_listing_page(html: str, page: int) -> bool:
    """True when the page shows a pager that links to no later page.

    Pages without any pager markup are not treated as last; the walk then
    ends on an empty page or a 404 instead.
    """
    soup = BeautifulSoup(html, "html.parser")
    pager = soup.select_one(".pagination, .ccm-pagination, ul.pager, nav[aria-label*='agination']")
    if pager is None:
        return False
    if pager.select_one("a[rel~='next'], li.next a, .next a"):
        return False
    next_param = f"{LISTING_PAGE_PARAM}={page + 1}"
    return not any(next_param in (a.get("href") or "") for a in pager.find_all("a"))


def extract_search_result_links(html: str, base_url: str, limit: int = 10) -> List[Tuple[str, str]]:
    """(url, link text) pairs from a site search results page."""
    soup = BeautifulSoup(html, "html.parser")
    results: List[Tuple[str, str]] = []
    seen = set()
    for a in soup.select("a[href*='/product'], a[href*='/p/'], .product-title a, .product-item-link, h2 a, h3 a"):
        url = resolve_url(a.get("href"), base_url)
        if not url or url in seen:
            continue
        seen.add(url)
        results.append((url, _text(a)))
        if len(results) >= limit:
            break
    return results


# =============================================================================
# Page parser
# =============================================================================

class ProductPageParser:
    """Turns a product page into a ScrapeCandidate.

    Lookup tables are passed in rather than read from module globals so
    tests (and other stores) can use their own.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        known_brands: Sequence[str] = KNOWN_BRANDS,
        health_keywords: Mapping[str, Sequence[str]] = HEALTH_CATEGORY_KEYWORDS,
        default_stock: int = DEFAULT_STOCK_QUANTITY,
    ):
        self.base_url = base_url
        self.known_brands = tuple(known_brands)
        self.health_keywords = health_keywords
        self.default_stock = default_stock

    def parse(self, html: str, url: str) -> ScrapeCandidate:
        soup = BeautifulSoup(html, "html.parser")
        return self.parse_soup(soup, url)

    def parse_soup(self, soup: BeautifulSoup, url: str) -> ScrapeCandidate:
        name = extract_name(soup)
        long_description = extract_long_description(soup)
        stock_quantity = extract_stock_quantity(soup, default=self.default_stock)

        return ScrapeCandidate(
            url=url,
            name=name,
            sku=first_result(SKU_STRATEGIES, soup) or generate_sku(name),
            price=extract_price(soup),
            compare_price=extract_compare_price(soup),
            short_description=extract_short_description(soup),
            long_description=long_description,
            brand=extract_brand(soup, name, self.known_brands),
            category=extract_category(soup, url, name),
            images=extract_images(soup, url or self.base_url),
            in_stock=stock_quantity > 0,
            stock_quantity=stock_quantity,
            weight=extract_weight(soup),
            ingredients=extract_ingredients(soup),
            health_categories=categorize_by_health(f"{name} {long_description}", self.health_keywords),
        )
