"""URL validation and sanitization for crawled links."""

import re
from typing import Iterable, Optional
from urllib.parse import urlparse

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "domain_allowed",
    "validate_url",
    "is_safe_url",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

SUSPICIOUS_PATTERNS = (
    re.compile(r"\.\./"),       # path traversal
    re.compile(r"%2e%2e"),      # encoded path traversal
    re.compile(r"<script"),
    re.compile(r"javascript:"),
)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_url(url: str) -> str:
    """Strip whitespace, control characters and encoded null bytes."""
    if not url:
        return ""
    url = _CONTROL_CHARS_RE.sub("", url.strip())
    return url.replace("%00", "")


def domain_allowed(host: str, allowed_domains: Iterable[str]) -> bool:
    """True if ``host`` equals an allowed domain or is a subdomain of one.

    ``www.`` is ignored on both sides so a profile written for
    ``www.shop.se`` also accepts ``shop.se``.
    """
    host = host.lower().split(":")[0]
    bare_host = host[4:] if host.startswith("www.") else host
    for domain in allowed_domains:
        domain = domain.lower()
        bare = domain[4:] if domain.startswith("www.") else domain
        if bare_host == bare or bare_host.endswith("." + bare):
            return True
    return False


def validate_url(
    url: str,
    allowed_domains: Optional[Iterable[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate a URL before fetching it.

    Args:
        url: URL to validate
        allowed_domains: Domains the crawl may touch (None = any)
        require_https: Whether to require the https scheme

    Returns:
        The sanitized URL

    Raises:
        URLValidationError: If the URL is malformed, unsafe or off-site
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")
    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")
    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme!r}")

    if not parsed.netloc:
        raise URLValidationError("URL has no domain")

    if allowed_domains is not None and not domain_allowed(parsed.netloc, allowed_domains):
        raise URLValidationError(f"URL domain '{parsed.netloc}' not in allowed domains")

    url_lower = url.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern.pattern}")

    return url


def is_safe_url(url: str, allowed_domains: Optional[Iterable[str]] = None) -> bool:
    """``validate_url`` without the exception."""
    try:
        validate_url(url, allowed_domains)
        return True
    except URLValidationError:
        return False
