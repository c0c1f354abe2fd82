"""Tests for field extraction from product, listing and search pages."""

import pytest
from bs4 import BeautifulSoup

from catalog_sync.extractor import (
    ProductPageParser,
    brand_from_name,
    categorize_by_health,
    category_from_breadcrumbs,
    category_from_url,
    extract_breadcrumbs,
    extract_category,
    extract_compare_price,
    extract_images,
    extract_name,
    extract_price,
    extract_product_links,
    extract_search_result_links,
    extract_sku,
    extract_stock_quantity,
    first_result,
    generate_sku,
    is_last_listing_page,
    is_product_page,
    listing_page_url,
    parse_dollar_price,
    parse_price,
    price_from_json_ld,
    price_from_text,
)

from conftest import STORE_URL, product_page


def soup_of(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class TestParsePrice:
    """Price parsing from free text."""

    def test_dollar_amount_after_model_number(self):
        assert parse_price("Now Foods CoQ10 $19.99") == 19.99

    def test_no_dollar_amount_is_unknown(self):
        assert parse_price("Now Foods CoQ10 100mg, 60 softgels") == 0

    def test_thousands_separator(self):
        assert parse_price("Now only $1,299.00") == 1299.00

    def test_whole_dollars(self):
        assert parse_price("$15") == 15.0

    def test_implausible_amount_skipped(self):
        assert parse_price("$0.00 shipping, price $24.50") == 24.50
        assert parse_price("$25,000.00") == 0

    def test_symbol_optional_for_structured_values(self):
        assert parse_price("24.99", require_symbol=False) == 24.99
        assert parse_price(24.99, require_symbol=False) == 24.99

    def test_none(self):
        assert parse_price(None) == 0

    def test_dollar_price_ignores_bare_numbers(self):
        assert parse_dollar_price("60 softgels, 100 mg, now $12.5") == 12.5
        assert parse_dollar_price("60 softgels") == 0


class TestFirstResult:
    def test_returns_first_non_empty(self):
        strategies = (lambda s: None, lambda s: "", lambda s: "found", lambda s: "later")
        assert first_result(strategies, None) == "found"

    def test_all_empty(self):
        assert first_result((lambda s: None, lambda s: 0), None) is None


class TestPriceExtraction:
    def test_json_ld_offer(self):
        assert extract_price(soup_of(product_page(json_ld_price="24.99"))) == 24.99

    def test_json_ld_in_graph(self):
        html = """<script type="application/ld+json">
        {"@graph": [{"@type": "WebPage"}, {"@type": "Product", "offers": [{"price": 31.5}]}]}
        </script>"""
        assert price_from_json_ld(soup_of(html)) == 31.5

    def test_meta_tag(self):
        html = '<meta property="product:price:amount" content="12.00"><h1>X</h1>'
        assert extract_price(soup_of(html)) == 12.0

    def test_selector_in_product_area(self):
        html = """
        <div class="promo"><span class="price">$1.00</span></div>
        <form class="store-product"><h1>X</h1><span class="product-price">$18.49</span></form>
        """
        assert extract_price(soup_of(html)) == 18.49

    def test_text_fallback_needs_symbol(self):
        html = "<main><h1>Vitamin D3 5000 IU</h1><p>Only $8.99 today</p></main>"
        assert price_from_text(soup_of(html)) == 8.99

    def test_no_price_is_zero(self):
        html = "<main><h1>Vitamin D3 5000 IU</h1></main>"
        assert extract_price(soup_of(html)) == 0

    def test_compare_price(self):
        html = '<div class="product-details"><del>$30.00</del><span class="price">$24.00</span></div>'
        assert extract_compare_price(soup_of(html)) == 30.0


class TestNameAndSku:
    def test_name_strips_sku(self):
        assert extract_name(soup_of("<h1>Now Foods CoQ10 SKU: HM-123</h1>")) == "Now Foods CoQ10"

    def test_name_from_og_title(self):
        html = '<meta property="og:title" content="Solaray Magnesium">'
        assert extract_name(soup_of(html)) == "Solaray Magnesium"

    def test_sku_from_heading(self):
        assert extract_sku(soup_of("<h1>Now Foods CoQ10 SKU: HM-123</h1>")) == "HM-123"

    def test_sku_from_itemprop(self):
        html = '<h1>Thing</h1><meta itemprop="sku" content="733739">'
        assert extract_sku(soup_of(html)) == "733739"

    def test_generated_sku(self):
        assert extract_sku(soup_of("<h1>Life-Flo Pure Magnesium!</h1>")) == "HM-LIFEFLOPUREMAGNESIUM"

    def test_generate_sku_empty(self):
        assert generate_sku("") == "HM-UNKNOWN"


class TestStock:
    def test_default_when_no_marker(self):
        assert extract_stock_quantity(soup_of(product_page())) == 100

    def test_visible_out_of_stock_label(self):
        html = '<form class="store-product"><h1>X</h1><span class="store-out-of-stock-label">Out</span></form>'
        assert extract_stock_quantity(soup_of(html)) == 0

    def test_hidden_out_of_stock_label_ignored(self):
        html = ('<form class="store-product"><h1>X</h1>'
                '<span class="store-out-of-stock-label hidden">Out</span></form>')
        assert extract_stock_quantity(soup_of(html)) == 100

    def test_hidden_label_text_is_not_a_marker(self):
        for hidden in (
            '<span class="store-out-of-stock-label hidden">Out of Stock</span>',
            '<div style="display: none"><p>Sold out</p></div>',
            '<p hidden>Currently unavailable</p>',
        ):
            assert extract_stock_quantity(soup_of(product_page(body=hidden))) == 100

    def test_text_marker(self):
        html = '<div class="product-details"><h1>X</h1><p>Sold out</p></div>'
        assert extract_stock_quantity(soup_of(html)) == 0

    def test_json_ld_availability(self):
        html = """<script type="application/ld+json">
        {"@type": "Product", "offers": {"price": "5.00", "availability": "https://schema.org/OutOfStock"}}
        </script>"""
        assert extract_stock_quantity(soup_of(html)) == 0

    def test_explicit_quantity(self):
        html = '<div class="product-details"><h1>X</h1><span class="stock-quantity">12 left</span></div>'
        assert extract_stock_quantity(soup_of(html)) == 12

    def test_custom_default(self):
        assert extract_stock_quantity(soup_of("<main><h1>X</h1></main>"), default=5) == 5


class TestImages:
    def test_gallery_images_resolved_and_filtered(self):
        html = """
        <div class="product-details">
          <div class="product-gallery">
            <img src="/application/files/a.jpg" alt="front">
            <img data-src="//cdn.store.test/images/b.png">
            <img src="/application/files/logo.png">
            <img src="/application/files/a.jpg">
          </div>
        </div>
        """
        images = extract_images(soup_of(html), STORE_URL + "/index.php/products/x")
        assert [i.url for i in images] == [
            "https://store.test/application/files/a.jpg",
            "https://cdn.store.test/images/b.png",
        ]
        assert images[0].alt == "front"

    def test_header_images_outside_product_area_ignored(self):
        html = """
        <header><div class="product-image"><img src="/images/header.jpg"></div></header>
        <div class="product-details"><h1>X</h1></div>
        """
        assert extract_images(soup_of(html), STORE_URL) == []

    def test_largest_image_fallback(self):
        html = """
        <main>
          <img src="/media/small.jpg" width="50" height="50">
          <img src="/media/big.jpg" width="400" height="400">
        </main>
        """
        images = extract_images(soup_of(html), STORE_URL)
        assert [i.url for i in images] == ["https://store.test/media/big.jpg"]


class TestBrandAndCategory:
    def test_known_brand_prefix_prefers_longest(self):
        assert brand_from_name("Nature's Plus Ultra", ["Nature", "Nature's Plus"]) == "Nature's Plus"

    def test_unknown_brand(self):
        parser = ProductPageParser(base_url=STORE_URL, known_brands=["Solaray"])
        candidate = parser.parse("<main><h1>Mystery Tonic</h1></main>", STORE_URL + "/index.php/products/x")
        assert candidate.brand == "Unknown"

    def test_breadcrumb_category(self):
        html = """
        <ol class="breadcrumb">
          <li><a href="/">Home</a></li><li><a href="/products">Products</a></li>
          <li><a href="/c/heart">Heart Health</a></li><li>Now Foods CoQ10</li>
        </ol>
        """
        crumbs = extract_breadcrumbs(soup_of(html))
        assert category_from_breadcrumbs(crumbs, "Now Foods CoQ10") == "Heart Health"

    def test_category_from_url(self):
        assert category_from_url("https://brand.test/supplements/heart-health/coq10-100mg") == "Heart Health"
        assert category_from_url("https://store.test/index.php/products/coq10") is None

    def test_markup_wins(self):
        html = '<span class="product-category">Vitamins</span>'
        assert extract_category(soup_of(html), "https://brand.test/minerals/zinc") == "Vitamins"

    def test_health_categories(self):
        table = {"Heart Health": ("heart", "cardio"), "Sleep": ("sleep",)}
        assert categorize_by_health("Supports HEART function", table) == ["Heart Health"]


class TestPageClassification:
    def test_product_page(self):
        assert is_product_page(soup_of(product_page()))

    def test_listing_page(self):
        assert not is_product_page(soup_of("<h1>All products</h1><a href='/index.php/products/a'>A</a>"))


class TestListingAndSearch:
    def test_listing_page_url(self):
        assert listing_page_url(1, STORE_URL) == "https://store.test/index.php/products"
        assert listing_page_url(3, STORE_URL) == "https://store.test/index.php/products?ccm_paging_p=3"

    def test_product_links_deduplicated(self):
        html = """
        <a href="/index.php/products/coq10">CoQ10</a>
        <a href="https://store.test/index.php/products/coq10#reviews">CoQ10 reviews</a>
        <a href="/index.php/products/zinc">Zinc</a>
        <a href="/index.php/products?ccm_paging_p=2">Next</a>
        <a href="/about">About</a>
        """
        assert extract_product_links(html, STORE_URL) == [
            "https://store.test/index.php/products/coq10",
            "https://store.test/index.php/products/zinc",
        ]

    def test_last_listing_page(self):
        pager = '<ul class="pagination"><li><a href="?ccm_paging_p=1">1</a></li><li><a href="?ccm_paging_p=2">2</a></li></ul>'
        assert not is_last_listing_page(pager, 1)
        assert is_last_listing_page(pager, 2)
        assert not is_last_listing_page('<a href="/index.php/products/coq10">CoQ10</a>', 2)

    def test_search_result_links(self):
        html = '<h3><a href="/products/coq10">Now CoQ10</a></h3><h3><a href="/products/zinc">Zinc</a></h3>'
        results = extract_search_result_links(html, "https://brand.test", limit=1)
        assert results == [("https://brand.test/products/coq10", "Now CoQ10")]


class TestProductPageParser:
    @pytest.fixture
    def parser(self):
        return ProductPageParser(base_url=STORE_URL)

    def test_full_page(self, parser):
        url = STORE_URL + "/index.php/products/now-foods-coq10"
        candidate = parser.parse(product_page(), url)

        assert candidate.url == url
        assert candidate.name == "Now Foods CoQ10"
        assert candidate.sku == "HM-123"
        assert candidate.price == 24.99
        assert candidate.brand == "Now Foods"
        assert candidate.stock_quantity == 100
        assert candidate.in_stock is True
        assert [i.url for i in candidate.images] == ["https://store.test/application/files/coq10-front.jpg"]
        assert "Heart Health" in candidate.health_categories

    def test_out_of_stock_page(self, parser):
        html = product_page(body='<span class="store-out-of-stock-label">Out of stock</span>')
        candidate = parser.parse(html, STORE_URL + "/index.php/products/x")
        assert candidate.stock_quantity == 0
        assert candidate.in_stock is False

    def test_missing_price_is_unknown(self, parser):
        candidate = parser.parse(product_page(json_ld_price=None), STORE_URL + "/index.php/products/x")
        assert candidate.price == 0
        assert not candidate.has_price
