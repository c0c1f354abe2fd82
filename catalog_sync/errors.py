"""Exception types raised by the catalog sync pipeline."""

from typing import Optional

__all__ = [
    "CatalogSyncError",
    "FetchError",
    "NetworkError",
    "HttpError",
    "RedirectLoop",
    "DownloadError",
    "ValidationRejected",
    "PersistenceError",
]


class CatalogSyncError(Exception):
    """Base class for all catalog sync errors."""


class FetchError(CatalogSyncError):
    """A page could not be retrieved."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """DNS, connection or timeout failure."""

    def __init__(self, message: str, url: str = "", timeout: bool = False):
        super().__init__(message, url)
        self.timeout = timeout


class HttpError(FetchError):
    """Non-2xx response. A 404 means the page is legitimately absent."""

    def __init__(self, status: int, url: str = "", reason: str = ""):
        super().__init__(f"HTTP {status}{' ' + reason if reason else ''} for {url}", url)
        self.status = status
        self.reason = reason

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class RedirectLoop(FetchError):
    """More redirects than the configured limit."""


class DownloadError(CatalogSyncError):
    """An image download failed; ``kind`` is 'status', 'network', 'timeout' or 'filesystem'."""

    def __init__(self, message: str, kind: str, status: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.url = url


class ValidationRejected(CatalogSyncError):
    """An image URL was filtered out by the validator."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class PersistenceError(CatalogSyncError):
    """A database write failed."""
