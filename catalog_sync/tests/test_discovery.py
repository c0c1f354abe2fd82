"""Tests for web image discovery."""

from catalog_sync.discovery import (
    ImageFinder,
    duckduckgo_search_url,
    google_images_search_url,
    image_from_product_page,
    page_image_candidates,
    search_duckduckgo_images,
    search_google_images,
)

from conftest import FakeFetcher

BRAND_SITE = "https://brand.test"


def ddg_page(*image_urls: str) -> str:
    imgs = "".join(f'<img src="{u}">' for u in image_urls)
    return f'<html><body>{imgs}<img src="https://external-content.duckduckgo.com/iu/?u=x"></body></html>'


class TestPageImages:
    def test_og_image_first(self):
        html = """
        <meta property="og:image" content="/media/coq10-og.jpg">
        <div class="product-image"><img src="/media/coq10-gallery.jpg"></div>
        """
        assert page_image_candidates(html, BRAND_SITE + "/p/coq10") == [
            "https://brand.test/media/coq10-og.jpg",
            "https://brand.test/media/coq10-gallery.jpg",
        ]

    def test_image_from_product_page_skips_invalid(self):
        url = BRAND_SITE + "/p/coq10"
        fetcher = FakeFetcher(pages={url: """
            <meta property="og:image" content="/media/brand-logo.png">
            <div class="product-image"><img src="/media/coq10.jpg"></div>
        """})
        assert image_from_product_page(fetcher, url) == "https://brand.test/media/coq10.jpg"


class TestDuckDuckGo:
    def test_search_engine_thumbnails_skipped(self):
        url = duckduckgo_search_url("Now Foods", "CoQ10")
        fetcher = FakeFetcher(pages={url: ddg_page("https://cdn.shop.test/coq10.jpg")})
        assert search_duckduckgo_images(fetcher, "Now Foods", "CoQ10") == "https://cdn.shop.test/coq10.jpg"

    def test_raw_url_in_script(self):
        url = duckduckgo_search_url("Now Foods", "CoQ10")
        html = '<script>var r = {"image":"https://cdn.shop.test/images/coq10-60.png"};</script>'
        fetcher = FakeFetcher(pages={url: html})
        assert search_duckduckgo_images(fetcher, "Now Foods", "CoQ10") == "https://cdn.shop.test/images/coq10-60.png"

    def test_query_encoding(self):
        assert duckduckgo_search_url("Nature's Plus", "Ultra B") == (
            "https://duckduckgo.com/?q=Nature%27s+Plus+Ultra+B&iax=images&ia=images"
        )


class TestGoogleImages:
    def test_rendered_results_page(self):
        url = google_images_search_url("Now Foods", "CoQ10")
        html = (
            '<img src="https://encrypted-tbn0.gstatic.com/images?q=tbn:x">'
            '<script>AF_initDataCallback({data:["https://cdn.shop.test/coq10-softgels.jpg",600,600]});</script>'
        )
        fetcher = FakeFetcher(pages={url: html})

        assert search_google_images(fetcher, "Now Foods", "CoQ10") == "https://cdn.shop.test/coq10-softgels.jpg"


class TestImageFinder:
    def test_brand_site_first(self):
        search = f"{BRAND_SITE}/search?q=CoQ10"
        product_url = f"{BRAND_SITE}/products/coq10"
        fetcher = FakeFetcher(pages={
            search: f'<h3><a href="{product_url}">CoQ10</a></h3>',
            product_url: '<meta property="og:image" content="https://brand.test/media/coq10.jpg">',
        })
        finder = ImageFinder(search_fetcher=fetcher, fetcher_factory=lambda profile: fetcher)

        found = finder.find("CoQ10", "Now Foods", BRAND_SITE)

        assert found.url == "https://brand.test/media/coq10.jpg"
        assert found.source == "brand-site"

    def test_falls_back_to_duckduckgo(self):
        ddg = duckduckgo_search_url("Now Foods", "CoQ10")
        fetcher = FakeFetcher(pages={ddg: ddg_page("https://cdn.shop.test/coq10.jpg")})
        throttle_calls = []
        finder = ImageFinder(search_fetcher=fetcher, fetcher_factory=lambda profile: fetcher,
                             throttle=lambda: throttle_calls.append(1))

        found = finder.find("CoQ10", "Now Foods", BRAND_SITE)

        assert found.source == "duckduckgo-images"
        # brand search (404) and DuckDuckGo
        assert len(throttle_calls) == 2

    def test_banner_accepted_as_last_resort(self):
        ddg = duckduckgo_search_url("", "CoQ10")
        fetcher = FakeFetcher(pages={ddg: ddg_page("https://cdn.shop.test/coq10-banner.jpg")})
        finder = ImageFinder(search_fetcher=fetcher, brand_websites={})

        assert finder.find("CoQ10").url == "https://cdn.shop.test/coq10-banner.jpg"
        assert finder.find("CoQ10", allow_banners_fallback=False) is None

    def test_nothing_found(self):
        finder = ImageFinder(search_fetcher=FakeFetcher(), brand_websites={})
        assert finder.find("CoQ10", "Now Foods") is None

    def test_close_closes_fetchers(self):
        fetcher = FakeFetcher()
        ImageFinder(search_fetcher=fetcher).close()
        assert fetcher.closed

    def test_headless_google_after_duckduckgo(self):
        google = google_images_search_url("Now Foods", "CoQ10")
        headless = FakeFetcher(pages={google: ddg_page("https://cdn.shop.test/coq10.jpg")})
        finder = ImageFinder(search_fetcher=FakeFetcher(), headless_fetcher=headless, brand_websites={})

        found = finder.find("CoQ10", "Now Foods")

        assert found.url == "https://cdn.shop.test/coq10.jpg"
        assert found.source == "google-images"
        assert headless.requested == [google]

    def test_headless_fetcher_closed(self):
        headless = FakeFetcher()
        ImageFinder(search_fetcher=FakeFetcher(), headless_fetcher=headless).close()
        assert headless.closed
