"""Image URL validation and downloading."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import requests  # type: ignore[import-untyped]

from catalog_sync.config import IMAGE_HEADERS, IMAGES_DIR
from catalog_sync.errors import (
    DownloadError,
    FetchError,
    HttpError,
    NetworkError,
    ValidationRejected,
)
from catalog_sync.fetcher import HttpFetcher
from catalog_sync.logging_config import get_logger, log_sync_event
from catalog_sync.models import ImageAsset, ScrapeCandidate

__all__ = [
    "DENIED_SUBSTRINGS",
    "BANNER_SUBSTRINGS",
    "IMAGE_EXTENSIONS",
    "is_valid_image",
    "validate_image",
    "sanitize_filename",
    "get_image_extension",
    "image_filename",
    "DownloadResult",
    "ImageDownloader",
]

logger = get_logger("images")

# Substrings that mark tracking pixels, placeholders and site chrome
DENIED_SUBSTRINGS = (
    "bat.bing.com",
    "pixel.gif",
    "tracking",
    "analytics",
    "placeholder",
    "data:image",
    "logo",
    "icon",
    "spinner",
    "loading",
    "1x1",
    "transparent",
)
BANNER_SUBSTRINGS = ("banner", "searchbann", "promo", "advertisement")

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
IMAGE_PATH_HINTS = ("/image", "/img", "/product", "/media")

_EXTENSION_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp|bmp)$", re.IGNORECASE)


def validate_image(url: Optional[str], allow_banners: bool = False) -> str:
    """Return ``url`` if it looks like a real product photo.

    Raises:
        ValidationRejected: With the reason the URL was filtered out
    """
    if not url or not isinstance(url, str):
        raise ValidationRejected("Empty image URL", url or "")

    lower = url.lower()
    denied = DENIED_SUBSTRINGS if allow_banners else DENIED_SUBSTRINGS + BANNER_SUBSTRINGS
    for pattern in denied:
        if pattern in lower:
            raise ValidationRejected(f"Image URL contains '{pattern}'", url)

    if not lower.startswith(("http://", "https://")):
        raise ValidationRejected("Image URL is not http(s)", url)

    # Extension preferred; extensionless CDN URLs pass if the path looks like an image endpoint
    if not any(ext in lower for ext in IMAGE_EXTENSIONS):
        if not any(hint in lower for hint in IMAGE_PATH_HINTS):
            raise ValidationRejected("Image URL has no image extension or image path", url)

    return url


def is_valid_image(url: Optional[str], allow_banners: bool = False) -> bool:
    """Boolean form of ``validate_image``."""
    try:
        validate_image(url, allow_banners=allow_banners)
        return True
    except ValidationRejected:
        return False


def sanitize_filename(name: str) -> str:
    """Lower-case, dash-separated, at most 50 characters."""
    cleaned = re.sub(r"[^a-z0-9]", "-", name, flags=re.IGNORECASE)
    cleaned = re.sub(r"-+", "-", cleaned).strip("-").lower()
    return cleaned[:50]


def get_image_extension(url: str) -> str:
    path = url.split("?")[0].split("#")[0]
    match = _EXTENSION_RE.search(path)
    return match.group(0).lower() if match else ".jpg"


def image_filename(product_name: str, sku: str, index: int, url: str) -> str:
    """Deterministic filename so re-runs map to the same file."""
    name = sanitize_filename(product_name or "product") or "product"
    sku_part = sanitize_filename(sku) if sku else "unknown"
    return f"{name}-{sku_part or 'unknown'}-{index}{get_image_extension(url)}"


@dataclass
class DownloadResult:
    path: Path
    size_bytes: int
    skipped: bool = False


class ImageDownloader:
    """Streams images to disk, skipping files that already exist.

    Args:
        fetcher: HttpFetcher used for the GET (its redirect limit applies)
        images_dir: Destination directory for ``download_for_product``
        public_prefix: Path prefix recorded for the storefront
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        images_dir: Union[str, Path] = IMAGES_DIR,
        public_prefix: str = "/images/products",
    ):
        self.fetcher = fetcher
        self.images_dir = Path(images_dir)
        self.public_prefix = public_prefix.rstrip("/")
        self.stats: Dict[str, int] = {"downloaded": 0, "skipped": 0, "failed": 0}

    def download(self, url: str, destination: Union[str, Path]) -> DownloadResult:
        """Download ``url`` to ``destination``.

        Raises:
            DownloadError: On a non-200 response or network failure; no
                partial file is left behind
        """
        destination = Path(destination)
        if destination.exists():
            logger.debug(f"Already present, skipping: {destination}")
            self.stats["skipped"] += 1
            return DownloadResult(destination, destination.stat().st_size, skipped=True)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.stats["failed"] += 1
            raise DownloadError(f"Cannot create {destination.parent}: {e}", kind="filesystem", url=url) from e
        partial = destination.with_name(destination.name + ".part")

        try:
            resp = self.fetcher.stream(url, headers=IMAGE_HEADERS)
        except HttpError as e:
            self.stats["failed"] += 1
            raise DownloadError(f"Image download failed with status {e.status}: {url}",
                                kind="status", status=e.status, url=url) from e
        except NetworkError as e:
            self.stats["failed"] += 1
            kind = "timeout" if e.timeout else "network"
            raise DownloadError(f"Image download {kind} error: {e}", kind=kind, url=url) from e
        except FetchError as e:
            self.stats["failed"] += 1
            raise DownloadError(f"Image download failed: {e}", kind="network", url=url) from e

        size = 0
        try:
            if resp.status_code != 200:
                raise DownloadError(f"Image download failed with status {resp.status_code}: {url}",
                                    kind="status", status=resp.status_code, url=url)
            with open(partial, "wb") as f:
                for chunk in resp.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
                        size += len(chunk)
            partial.replace(destination)
        except requests.exceptions.Timeout as e:
            self.stats["failed"] += 1
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Timed out reading {url}: {e}", kind="timeout", url=url) from e
        except requests.exceptions.RequestException as e:
            self.stats["failed"] += 1
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Failed reading {url}: {e}", kind="network", url=url) from e
        except OSError as e:
            self.stats["failed"] += 1
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Failed writing {destination}: {e}", kind="filesystem", url=url) from e
        except DownloadError:
            self.stats["failed"] += 1
            partial.unlink(missing_ok=True)
            raise
        finally:
            resp.close()

        self.stats["downloaded"] += 1
        logger.info(f"   Saved {destination.name} ({size} bytes)")
        return DownloadResult(destination, size, skipped=False)

    def download_for_product(
        self,
        candidate: ScrapeCandidate,
        throttle: Optional[Callable[[], None]] = None,
    ) -> List[ImageAsset]:
        """Download every valid image of a scraped product.

        The first image that lands on disk becomes the primary one.
        Individual failures are logged and skipped. ``throttle`` is called
        after every attempt that went to the network.
        """
        assets: List[ImageAsset] = []
        for index, image in enumerate(candidate.images):
            if not is_valid_image(image.url):
                logger.debug(f"   Filtered image: {image.url}")
                continue

            filename = image_filename(candidate.name, candidate.sku, index, image.url)
            try:
                result = self.download(image.url, self.images_dir / filename)
            except DownloadError as e:
                logger.warning(f"   Failed to download image {index + 1}: {e}")
                log_sync_event("image_download_failed", {
                    "sku": candidate.sku,
                    "url": image.url,
                    "kind": e.kind,
                    "status": e.status,
                }, level=logging.WARNING)
                if throttle:
                    throttle()
                continue

            if throttle and not result.skipped:
                throttle()

            assets.append(ImageAsset(
                source_url=image.url,
                local_path=f"{self.public_prefix}/{filename}",
                is_primary=not assets,
                sort_order=len(assets),
                size_bytes=result.size_bytes,
            ))
        return assets
