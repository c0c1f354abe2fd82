"""HTML fetching: a fast requests-based client and a headless browser.

Which one a target gets is decided by its ``SiteProfile``; the pipeline
never checks at runtime whether a browser happens to be available.
Neither fetcher retries. Retrying is a matter of re-running the batch.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlparse

import requests  # type: ignore[import-untyped]

from catalog_sync.config import (
    BASE_URL,
    HEADERS,
    HEADLESS_SETTLE_MS,
    HEADLESS_TIMEOUT,
    MAX_REDIRECTS,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from catalog_sync.errors import FetchError, HttpError, NetworkError, RedirectLoop
from catalog_sync.logging_config import get_logger
from catalog_sync.url_validation import URLValidationError, validate_url

__all__ = [
    "LIGHTWEIGHT",
    "HEADLESS",
    "FetchResult",
    "SiteProfile",
    "Fetcher",
    "HttpFetcher",
    "HeadlessFetcher",
    "build_fetcher",
    "STORE_PROFILE",
    "DUCKDUCKGO_PROFILE",
    "GOOGLE_IMAGES_PROFILE",
    "brand_profile",
]

logger = get_logger("fetcher")

LIGHTWEIGHT = "lightweight"
HEADLESS = "headless"


@dataclass
class FetchResult:
    """Body and status of a successful (2xx) fetch."""

    url: str
    status: int
    text: str
    content: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SiteProfile:
    """A named fetch target and the strategy used for it."""

    name: str
    base_url: str
    strategy: str = LIGHTWEIGHT
    referer: Optional[str] = None

    @property
    def origin(self) -> str:
        parsed = urlparse(self.base_url)
        return f"{parsed.scheme}://{parsed.netloc}/"

    def headers(self) -> Dict[str, str]:
        headers = dict(HEADERS)
        headers["Referer"] = self.referer or self.origin
        return headers


STORE_PROFILE = SiteProfile("store", BASE_URL)
DUCKDUCKGO_PROFILE = SiteProfile("duckduckgo-images", "https://duckduckgo.com")
# Google image results are rendered client-side
GOOGLE_IMAGES_PROFILE = SiteProfile("google-images", "https://www.google.com", strategy=HEADLESS)


def brand_profile(brand_name: str, website_url: str) -> SiteProfile:
    """Profile for a brand partner site."""
    return SiteProfile(f"brand:{brand_name}", website_url.rstrip("/"))


class Fetcher:
    """Common interface of the fetch strategies."""

    strategy = ""

    def __init__(self, profile: SiteProfile = STORE_PROFILE):
        self.profile = profile

    def get(self, url: str) -> FetchResult:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _check_url(url: str) -> str:
        try:
            return validate_url(url)
        except URLValidationError as e:
            raise FetchError(f"Invalid URL: {e}", url) from e


class HttpFetcher(Fetcher):
    """Plain HTTP GET via a requests Session.

    Redirects are followed up to ``max_redirects``; connection failures,
    timeouts and non-2xx statuses are mapped onto the fetch error types.
    """

    strategy = LIGHTWEIGHT

    def __init__(
        self,
        profile: SiteProfile = STORE_PROFILE,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
    ):
        super().__init__(profile)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(profile.headers())
        self.session.max_redirects = max_redirects

    def _request(self, url: str, stream: bool, headers: Optional[Dict[str, str]]) -> requests.Response:
        url = self._check_url(url)
        try:
            resp = self.session.get(url, timeout=self.timeout, stream=stream, headers=headers)
        except requests.exceptions.TooManyRedirects as e:
            raise RedirectLoop(f"More than {self.session.max_redirects} redirects: {url}", url) from e
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Timeout fetching {url}: {e}", url, timeout=True) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Failed to fetch {url}: {e}", url) from e

        if not 200 <= resp.status_code < 300:
            resp.close()
            raise HttpError(resp.status_code, url, resp.reason or "")
        return resp

    def get(self, url: str) -> FetchResult:
        resp = self._request(url, stream=False, headers=None)
        logger.debug(f"GET {url} -> {resp.status_code} ({len(resp.content)} bytes)")
        return FetchResult(
            url=resp.url or url,
            status=resp.status_code,
            text=resp.text,
            content=resp.content,
            headers=dict(resp.headers),
        )

    def stream(self, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Open a streaming 2xx response; the caller must close it."""
        return self._request(url, stream=True, headers=headers)

    def close(self) -> None:
        self.session.close()


class HeadlessFetcher(Fetcher):
    """Chromium via Playwright for pages that build their content in JS.

    The browser starts on first use and is reused until ``close()``.
    """

    strategy = HEADLESS

    def __init__(
        self,
        profile: SiteProfile = GOOGLE_IMAGES_PROFILE,
        timeout: float = HEADLESS_TIMEOUT,
        settle_ms: int = HEADLESS_SETTLE_MS,
    ):
        super().__init__(profile)
        self.timeout = timeout
        self.settle_ms = settle_ms
        self._playwright = None
        self._browser = None
        self._page = None

    def _ensure_page(self):
        if self._page is None:
            # Only headless runs load the browser driver
            from playwright.sync_api import sync_playwright

            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
            )
            headers = self.profile.headers()
            headers.pop("User-Agent", None)
            context = self._browser.new_context(user_agent=USER_AGENT, extra_http_headers=headers)
            self._page = context.new_page()
        return self._page

    def get(self, url: str) -> FetchResult:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        url = self._check_url(url)
        page = self._ensure_page()
        try:
            response = page.goto(url, wait_until="networkidle", timeout=self.timeout * 1000)
            page.wait_for_timeout(self.settle_ms)
            html = page.content()
        except PlaywrightTimeoutError as e:
            raise NetworkError(f"Timeout rendering {url}: {e}", url, timeout=True) from e
        except PlaywrightError as e:
            raise NetworkError(f"Browser failed on {url}: {e}", url) from e

        status = response.status if response is not None else 200
        if not 200 <= status < 300:
            raise HttpError(status, url)

        logger.debug(f"RENDER {url} -> {status} ({len(html)} chars)")
        return FetchResult(url=page.url, status=status, text=html, content=html.encode("utf-8"))

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self._page = None


def build_fetcher(profile: SiteProfile) -> Fetcher:
    """Instantiate the fetcher the profile asks for."""
    if profile.strategy == HEADLESS:
        return HeadlessFetcher(profile)
    if profile.strategy == LIGHTWEIGHT:
        return HttpFetcher(profile)
    raise ValueError(f"Unknown fetch strategy: {profile.strategy}")
