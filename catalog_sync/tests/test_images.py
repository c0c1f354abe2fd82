"""Tests for image URL validation and the downloader."""

from unittest.mock import MagicMock

import pytest

from catalog_sync.errors import DownloadError, NetworkError, ValidationRejected
from catalog_sync.images import (
    DENIED_SUBSTRINGS,
    ImageDownloader,
    get_image_extension,
    image_filename,
    is_valid_image,
    sanitize_filename,
    validate_image,
)
from catalog_sync.models import ImageRef, ScrapeCandidate

from conftest import FakeFetcher

IMAGE_URL = "https://store.test/application/files/coq10.jpg"


class TestImageValidation:
    @pytest.mark.parametrize("pattern", DENIED_SUBSTRINGS)
    def test_deny_list(self, pattern):
        assert not is_valid_image(f"https://cdn.test/img/{pattern}/photo.jpg")

    @pytest.mark.parametrize("url", [
        "ftp://cdn.test/photo.jpg",
        "/application/files/photo.jpg",
        "file:///tmp/photo.jpg",
        "",
        None,
    ])
    def test_non_http_rejected(self, url):
        assert not is_valid_image(url)

    def test_product_photo_accepted(self):
        assert is_valid_image(IMAGE_URL)

    def test_extensionless_cdn_path_accepted(self):
        assert is_valid_image("https://cdn.test/media/catalog/12345?w=800")

    def test_extensionless_unknown_path_rejected(self):
        assert not is_valid_image("https://cdn.test/render/12345")

    def test_banner_needs_allow_banners(self):
        url = "https://brand.test/files/coq10-banner.jpg"
        assert not is_valid_image(url)
        assert is_valid_image(url, allow_banners=True)

    def test_validate_image_reports_reason(self):
        with pytest.raises(ValidationRejected, match="placeholder"):
            validate_image("https://cdn.test/placeholder.png")


class TestFilenames:
    def test_sanitize_filename(self):
        assert sanitize_filename("Now Foods: CoQ10 (100mg)") == "now-foods-coq10-100mg"
        assert len(sanitize_filename("x" * 80)) == 50

    def test_extension(self):
        assert get_image_extension("https://cdn.test/a/b.PNG?v=2") == ".png"
        assert get_image_extension("https://cdn.test/a/b") == ".jpg"

    def test_image_filename(self):
        assert image_filename("Now Foods CoQ10", "HM-123", 0, IMAGE_URL) == "now-foods-coq10-hm-123-0.jpg"
        assert image_filename("", "", 2, "https://cdn.test/x.webp") == "product-unknown-2.webp"


class TestImageDownloader:
    def test_second_download_is_skipped(self, tmp_path):
        fetcher = FakeFetcher(images={IMAGE_URL: b"jpegdata"})
        downloader = ImageDownloader(fetcher, tmp_path)
        destination = tmp_path / "coq10.jpg"

        first = downloader.download(IMAGE_URL, destination)
        second = downloader.download(IMAGE_URL, destination)

        assert fetcher.requested == [IMAGE_URL]
        assert not first.skipped and first.size_bytes == 8
        assert second.skipped
        assert destination.read_bytes() == b"jpegdata"
        assert downloader.stats == {"downloaded": 1, "skipped": 1, "failed": 0}

    def test_missing_image_raises_status_error(self, tmp_path):
        downloader = ImageDownloader(FakeFetcher(), tmp_path)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download(IMAGE_URL, tmp_path / "coq10.jpg")

        assert exc_info.value.kind == "status"
        assert exc_info.value.status == 404
        assert list(tmp_path.iterdir()) == []

    def test_timeout_maps_to_timeout_kind(self, tmp_path):
        fetcher = MagicMock()
        fetcher.stream.side_effect = NetworkError("timed out", IMAGE_URL, timeout=True)
        downloader = ImageDownloader(fetcher, tmp_path)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download(IMAGE_URL, tmp_path / "coq10.jpg")

        assert exc_info.value.kind == "timeout"

    def test_non_200_success_status_leaves_no_file(self, tmp_path):
        resp = MagicMock()
        resp.status_code = 204
        fetcher = MagicMock()
        fetcher.stream.return_value = resp
        downloader = ImageDownloader(fetcher, tmp_path)

        with pytest.raises(DownloadError):
            downloader.download(IMAGE_URL, tmp_path / "coq10.jpg")

        resp.close.assert_called_once()
        assert list(tmp_path.iterdir()) == []

    def test_unwritable_destination_maps_to_filesystem_kind(self, tmp_path):
        blocker = tmp_path / "images"
        blocker.write_text("not a directory")
        downloader = ImageDownloader(FakeFetcher(images={IMAGE_URL: b"jpeg"}), tmp_path)

        with pytest.raises(DownloadError) as exc_info:
            downloader.download(IMAGE_URL, blocker / "coq10.jpg")

        assert exc_info.value.kind == "filesystem"
        assert downloader.stats["failed"] == 1

    def test_download_for_product(self, tmp_path):
        good = "https://store.test/application/files/coq10-back.jpg"
        fetcher = FakeFetcher(images={IMAGE_URL: b"front", good: b"back"})
        downloader = ImageDownloader(fetcher, tmp_path)
        candidate = ScrapeCandidate(
            url="https://store.test/index.php/products/coq10",
            name="Now Foods CoQ10",
            sku="HM-123",
            images=[
                ImageRef("https://store.test/application/files/missing.jpg"),
                ImageRef("https://store.test/application/files/logo.png"),
                ImageRef(IMAGE_URL),
                ImageRef(good),
            ],
        )
        throttle = MagicMock()

        assets = downloader.download_for_product(candidate, throttle=throttle)

        assert [a.source_url for a in assets] == [IMAGE_URL, good]
        assert [a.is_primary for a in assets] == [True, False]
        assert assets[0].local_path == "/images/products/now-foods-coq10-hm-123-2.jpg"
        # the filtered logo never reaches the network
        assert throttle.call_count == 3
        assert downloader.stats["failed"] == 1
