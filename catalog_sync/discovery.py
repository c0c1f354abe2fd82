"""Finding a product image on the web for products that have none.

Sources are tried in order: the brand's own site search, DuckDuckGo image
search, then Google image search (headless, only if a browser fetcher was
configured). Each source yields raw candidate URLs; the first one passing
``validate_image`` wins.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional
from urllib.parse import quote_plus, urlparse

from bs4 import BeautifulSoup

from catalog_sync.config import BRAND_WEBSITES, MAX_SEARCH_RESULTS
from catalog_sync.errors import FetchError
from catalog_sync.extractor import (
    IMAGE_SELECTORS,
    extract_largest_image,
    extract_search_result_links,
)
from catalog_sync.fetcher import (
    DUCKDUCKGO_PROFILE,
    Fetcher,
    brand_profile,
    build_fetcher,
)
from catalog_sync.images import is_valid_image
from catalog_sync.logging_config import get_logger
from catalog_sync.url_validation import resolve_url

__all__ = [
    "FoundImage",
    "page_image_candidates",
    "image_from_product_page",
    "duckduckgo_search_url",
    "google_images_search_url",
    "search_duckduckgo_images",
    "search_google_images",
    "ImageFinder",
]

logger = get_logger("discovery")

RAW_IMAGE_URL_RE = re.compile(r"https?://[^\s\"'<>()\\]+?\.(?:jpe?g|png|webp)(?:\?[^\s\"'<>()\\]*)?", re.IGNORECASE)

# Thumbnails served by the search engines themselves
SEARCH_ENGINE_HOSTS = ("duckduckgo.com", "google.com", "gstatic.com", "googleusercontent.com")


@dataclass
class FoundImage:
    url: str
    source: str


def _first_valid(candidates: List[str], allow_banners: bool = False) -> Optional[str]:
    for url in candidates:
        if is_valid_image(url, allow_banners=allow_banners):
            return url
    return None


def _not_search_engine(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return not any(host == h or host.endswith("." + h) for h in SEARCH_ENGINE_HOSTS)


def page_image_candidates(html: str, page_url: str) -> List[str]:
    """Image URLs on a product page, most trustworthy first."""
    soup = BeautifulSoup(html, "html.parser")
    candidates: List[str] = []

    for attrs in ({"property": "og:image"}, {"name": "twitter:image"}, {"property": "twitter:image"}):
        tag = soup.find("meta", attrs=attrs)
        if tag is not None:
            url = resolve_url(tag.get("content"), page_url)
            if url:
                candidates.append(url)

    for selector in IMAGE_SELECTORS:
        for img in soup.select(selector):
            url = resolve_url(img.get("src") or img.get("data-src"), page_url)
            if url:
                candidates.append(url)

    largest = extract_largest_image(soup, page_url)
    if largest:
        candidates.append(largest)

    return list(dict.fromkeys(candidates))


def image_from_product_page(fetcher: Fetcher, url: str, allow_banners: bool = False) -> Optional[str]:
    """First valid image on the page at ``url``.

    Raises:
        FetchError: If the page cannot be retrieved
    """
    result = fetcher.get(url)
    return _first_valid(page_image_candidates(result.text, result.url), allow_banners)


def duckduckgo_search_url(brand: str, product: str) -> str:
    return f"https://duckduckgo.com/?q={quote_plus(f'{brand} {product}'.strip())}&iax=images&ia=images"


def google_images_search_url(brand: str, product: str) -> str:
    return f"https://www.google.com/search?q={quote_plus(f'{brand} {product}'.strip())}&tbm=isch&safe=active"


def _search_page_candidates(html: str, page_url: str) -> List[str]:
    """<img> sources first, then image URLs embedded in scripts and attributes."""
    soup = BeautifulSoup(html, "html.parser")
    candidates = []
    for img in soup.find_all("img"):
        url = resolve_url(img.get("src") or img.get("data-src"), page_url)
        if url and _not_search_engine(url):
            candidates.append(url)
    candidates.extend(u for u in RAW_IMAGE_URL_RE.findall(html) if _not_search_engine(u))
    return list(dict.fromkeys(candidates))


def duckduckgo_image_candidates(fetcher: Fetcher, brand: str, product: str) -> List[str]:
    url = duckduckgo_search_url(brand, product)
    return _search_page_candidates(fetcher.get(url).text, url)


def google_image_candidates(fetcher: Fetcher, brand: str, product: str) -> List[str]:
    """Needs a headless fetcher; the results page is built by JavaScript."""
    url = google_images_search_url(brand, product)
    return _search_page_candidates(fetcher.get(url).text, url)


def search_duckduckgo_images(fetcher: Fetcher, brand: str, product: str, allow_banners: bool = False) -> Optional[str]:
    return _first_valid(duckduckgo_image_candidates(fetcher, brand, product), allow_banners)


def search_google_images(fetcher: Fetcher, brand: str, product: str, allow_banners: bool = False) -> Optional[str]:
    return _first_valid(google_image_candidates(fetcher, brand, product), allow_banners)


class ImageFinder:
    """Chains the image sources for one product at a time.

    Args:
        search_fetcher: Lightweight fetcher for DuckDuckGo
        headless_fetcher: Optional browser fetcher; enables the Google step
        brand_websites: Brand name -> website URL
        throttle: Called after every network request
        fetcher_factory: Builds fetchers for brand sites (one per brand)
    """

    def __init__(
        self,
        search_fetcher: Optional[Fetcher] = None,
        headless_fetcher: Optional[Fetcher] = None,
        brand_websites: Mapping[str, str] = BRAND_WEBSITES,
        throttle: Optional[Callable[[], None]] = None,
        fetcher_factory: Callable = build_fetcher,
        max_results: int = MAX_SEARCH_RESULTS,
    ):
        self.search_fetcher = search_fetcher or fetcher_factory(DUCKDUCKGO_PROFILE)
        self.headless_fetcher = headless_fetcher
        self.brand_websites = dict(brand_websites)
        self.throttle = throttle
        self.fetcher_factory = fetcher_factory
        self.max_results = max_results
        self._brand_fetchers: Dict[str, Fetcher] = {}

    def _pause(self) -> None:
        if self.throttle:
            self.throttle()

    def _brand_fetcher(self, brand: str, website: str) -> Fetcher:
        if brand not in self._brand_fetchers:
            self._brand_fetchers[brand] = self.fetcher_factory(brand_profile(brand, website))
        return self._brand_fetchers[brand]

    def _brand_site_candidates(self, brand: str, product: str, website: str) -> List[str]:
        fetcher = self._brand_fetcher(brand, website)
        search_url = f"{website.rstrip('/')}/search?q={quote_plus(product)}"
        try:
            result = fetcher.get(search_url)
        finally:
            self._pause()

        candidates: List[str] = []
        for url, _text in extract_search_result_links(result.text, result.url, limit=self.max_results):
            try:
                page = fetcher.get(url)
            except FetchError as e:
                logger.debug(f"   Brand result unavailable {url}: {e}")
                continue
            finally:
                self._pause()
            candidates.extend(page_image_candidates(page.text, page.url))
            if _first_valid(candidates):
                break
        return candidates

    def _engine_candidates(self, collect: Callable[[Fetcher, str, str], List[str]], fetcher: Fetcher,
                           brand: str, product: str) -> List[str]:
        try:
            return collect(fetcher, brand, product)
        finally:
            self._pause()

    def find(
        self,
        product_name: str,
        brand_name: str = "",
        website_url: Optional[str] = None,
        allow_banners_fallback: bool = True,
    ) -> Optional[FoundImage]:
        """Best image for a product, or None.

        Sources that fail to fetch are logged and skipped. If no source
        yields a strictly valid image, the collected candidates are
        re-checked with banner images allowed.
        """
        website = website_url or self.brand_websites.get(brand_name)
        sources = []
        if website:
            sources.append(("brand-site", lambda: self._brand_site_candidates(brand_name, product_name, website)))
        sources.append(("duckduckgo-images", lambda: self._engine_candidates(
            duckduckgo_image_candidates, self.search_fetcher, brand_name, product_name)))
        if self.headless_fetcher is not None:
            sources.append(("google-images", lambda: self._engine_candidates(
                google_image_candidates, self.headless_fetcher, brand_name, product_name)))

        collected: List[FoundImage] = []
        for source, collect in sources:
            try:
                candidates = collect()
            except FetchError as e:
                logger.warning(f"   {source} lookup failed for '{product_name}': {e}")
                continue
            url = _first_valid(candidates)
            if url:
                return FoundImage(url, source)
            collected.extend(FoundImage(c, source) for c in candidates)

        if allow_banners_fallback:
            for found in collected:
                if is_valid_image(found.url, allow_banners=True):
                    logger.info(f"   Accepted banner-like image for '{product_name}'")
                    return found
        return None

    def close(self) -> None:
        for fetcher in self._brand_fetchers.values():
            fetcher.close()
        self._brand_fetchers.clear()
        self.search_fetcher.close()
        if self.headless_fetcher is not None:
            self.headless_fetcher.close()
