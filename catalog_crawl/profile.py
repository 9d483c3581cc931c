"""Per-site crawl profile."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from catalog_crawl.config import (
    DEFAULT_CRAWL_DELAY,
    DEFAULT_EAN_FIELDS,
    DEFAULT_IMAGE_EXTENSION,
    DEFAULT_MAX_PAGES,
)

__all__ = ["SiteProfile", "load_site_profile", "ARTICLE_NUMBER_SOURCES"]

ARTICLE_NUMBER_SOURCES = ("field", "url")


@dataclass(frozen=True)
class SiteProfile:
    """Read-only description of how to crawl one target site.

    The surrounding application owns profile storage; the crawler only
    reads a profile for the duration of one session.
    """

    name: str
    start_url: str
    allowed_domains: List[str] = field(default_factory=list)

    # Detail-page selectors (empty string = not configured)
    name_selector: str = ""
    price_selector: str = ""
    description_selector: str = ""
    image_selector: str = ""
    color_selector: str = ""
    sku_selector: str = ""

    # Substring or regex identifying detail-page URLs
    detail_url_pattern: str = ""

    # Fetch strategy: False = follow in-document links, True = hybrid
    use_javascript_rendering: bool = False

    # Extraction sources and features
    use_structured_data: bool = True
    use_html_selectors: bool = True
    use_url_patterns: bool = True
    validate_images: bool = True
    download_images: bool = False
    extract_material: bool = True
    extract_category: bool = True

    # Where the article number comes from in structured data
    article_number_source: str = "url"
    article_number_field: str = "@id"
    article_number_pattern: str = r"/([^/]+)$"

    ean_fields: List[str] = field(default_factory=lambda: list(DEFAULT_EAN_FIELDS))

    image_extension: str = DEFAULT_IMAGE_EXTENSION
    # Origin-CDN prefix -> public prefix, applied before image checks
    cdn_rewrites: Dict[str, str] = field(default_factory=dict)

    crawl_delay: float = DEFAULT_CRAWL_DELAY
    max_pages: int = DEFAULT_MAX_PAGES

    # Form login on the target site (empty login_url = public site)
    login_url: str = ""
    username: str = ""
    password: str = field(default="", repr=False)
    username_field: str = "username"
    password_field: str = "password"

    def __post_init__(self) -> None:
        if not self.start_url:
            raise ValueError(f"Profile '{self.name}' has no start_url")
        if self.article_number_source not in ARTICLE_NUMBER_SOURCES:
            raise ValueError(
                f"article_number_source must be one of {ARTICLE_NUMBER_SOURCES}, "
                f"got: {self.article_number_source!r}"
            )
        if self.crawl_delay < 0:
            raise ValueError("crawl_delay must not be negative")
        if not self.allowed_domains:
            host = urlparse(self.start_url).netloc.lower().split(":")[0]
            if host:
                # frozen; set once during construction
                object.__setattr__(self, "allowed_domains", [host])

    @property
    def requires_login(self) -> bool:
        return bool(self.login_url and self.username and self.password)

    @property
    def detail_selectors(self) -> Dict[str, str]:
        """Configured selectors keyed by the record field they fill."""
        selectors = {
            "name": self.name_selector,
            "price": self.price_selector,
            "description": self.description_selector,
            "image_urls": self.image_selector,
            "color_id": self.color_selector,
        }
        return {key: value for key, value in selectors.items() if value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SiteProfile":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown profile keys: {sorted(unknown)}")
        return cls(**dict(data))

    def with_overrides(self, **overrides: Any) -> "SiteProfile":
        """Return a copy with some fields replaced (CLI flags)."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return SiteProfile(**values)


def load_site_profile(path: str, name: Optional[str] = None) -> SiteProfile:
    """Load a profile from a JSON file.

    The file holds either one profile object or a list of them; with a
    list, ``name`` picks one (case-insensitive).
    """
    with open(Path(path), "r", encoding="utf-8") as f:
        data = json.load(f)

    if isinstance(data, list):
        if name is None:
            if len(data) != 1:
                raise ValueError(f"{path} holds {len(data)} profiles; pass a profile name")
            return SiteProfile.from_dict(data[0])
        for entry in data:
            if str(entry.get("name", "")).lower() == name.lower():
                return SiteProfile.from_dict(entry)
        raise ValueError(f"No profile named '{name}' in {path}")

    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a profile object")
    return SiteProfile.from_dict(data)
