"""Shared test fixtures: temporary databases and an in-memory fetcher."""

import tempfile
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from catalog_sync.db import init_db
from catalog_sync.errors import HttpError
from catalog_sync.fetcher import FetchResult, Fetcher, SiteProfile

STORE_URL = "https://store.test"


class FakeFetcher(Fetcher):
    """Serves canned pages and image bytes; anything else is a 404."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, images: Optional[Dict[str, bytes]] = None):
        super().__init__(SiteProfile("fake", STORE_URL))
        self.pages = dict(pages or {})
        self.images = dict(images or {})
        self.requested: List[str] = []
        self.closed = False

    def get(self, url: str) -> FetchResult:
        self.requested.append(url)
        if url not in self.pages:
            raise HttpError(404, url, "Not Found")
        return FetchResult(url=url, status=200, text=self.pages[url])

    def stream(self, url: str, headers=None):
        self.requested.append(url)
        if url not in self.images:
            raise HttpError(404, url, "Not Found")
        resp = MagicMock()
        resp.status_code = 200
        resp.iter_content.return_value = [self.images[url]]
        return resp

    def close(self) -> None:
        self.closed = True


def product_page(
    name: str = "Now Foods CoQ10",
    sku: str = "HM-123",
    json_ld_price: Optional[str] = "24.99",
    body: str = "",
) -> str:
    """A storefront product page in the shape the live site serves."""
    json_ld = ""
    if json_ld_price is not None:
        json_ld = (
            '<script type="application/ld+json">'
            '{"@context": "https://schema.org", "@type": "Product", '
            f'"name": "{name}", "sku": "{sku}", '
            f'"offers": {{"@type": "Offer", "price": "{json_ld_price}", "priceCurrency": "USD"}}}}'
            "</script>"
        )
    return f"""
    <html><head><title>{name}</title>{json_ld}</head>
    <body>
      <header><img src="/application/files/site-logo.png" alt="Store"></header>
      <div class="product-details">
        <h1>{name} SKU: {sku}</h1>
        <div class="product-image"><img src="/application/files/coq10-front.jpg" alt="{name}"></div>
        <p>Supports heart health and cellular energy production for active adults.</p>
        {body}
      </div>
    </body></html>
    """


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    init_db(db_path)
    yield db_path
    # Cleanup
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    return MagicMock()
