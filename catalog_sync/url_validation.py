"""URL checks applied before any request, and href/src resolution."""

import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "validate_url",
    "resolve_url",
]

FETCHABLE_SCHEMES = ("http", "https")

# Substrings that never belong in a URL we fetch
REJECTED_FRAGMENTS = (
    ("../", "path traversal"),
    ("%2e%2e", "encoded path traversal"),
    ("<script", "markup in URL"),
    ("javascript:", "script URL"),
)

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")


class URLValidationError(ValueError):
    """The URL is not something the fetchers will request."""


def sanitize_url(url: Optional[str]) -> str:
    """Trim whitespace and drop control characters and encoded NULs."""
    if not url:
        return ""
    return CONTROL_CHARS_RE.sub("", url.strip()).replace("%00", "")


def validate_url(url: Optional[str], allowed_hosts: Optional[Iterable[str]] = None) -> str:
    """Return the sanitised URL, or raise URLValidationError.

    Only absolute http(s) URLs with a host pass. ``allowed_hosts`` restricts
    the host when given.
    """
    cleaned = sanitize_url(url)
    if not cleaned:
        raise URLValidationError("URL is empty")

    try:
        parsed = urlparse(cleaned)
    except ValueError as e:
        raise URLValidationError(f"Unparseable URL {cleaned!r}: {e}") from e

    if parsed.scheme.lower() not in FETCHABLE_SCHEMES:
        raise URLValidationError(f"Refusing {parsed.scheme or 'scheme-less'} URL: {cleaned}")

    host = (parsed.hostname or "").lower()
    if not host:
        raise URLValidationError(f"URL has no host: {cleaned}")
    if allowed_hosts is not None and host not in set(allowed_hosts):
        raise URLValidationError(f"Host {host} is not allowed")

    lowered = cleaned.lower()
    for fragment, reason in REJECTED_FRAGMENTS:
        if fragment in lowered:
            raise URLValidationError(f"{reason}: {cleaned}")

    return cleaned


def resolve_url(src: Optional[str], base_url: str) -> Optional[str]:
    """Absolute http(s) URL for an href/src attribute, or None.

    Protocol-relative values (``//cdn/x.jpg``) get https. Fragments,
    empty values and other schemes give None.
    """
    src = sanitize_url(src)
    if not src or src.startswith("#"):
        return None
    if src.startswith("//"):
        return "https:" + src

    absolute = urljoin(base_url, src)
    if urlparse(absolute).scheme.lower() not in FETCHABLE_SCHEMES:
        return None
    return absolute
