"""Data models for extracted and persisted products."""

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import List, Optional, Set, Tuple

__all__ = ["ProductRecord", "ImageAsset", "merge_records", "storage_key", "SCALAR_FIELDS"]

# Fields merged with the fill-only-missing rule. image_urls is handled apart.
SCALAR_FIELDS = (
    "article_number",
    "ean",
    "color_id",
    "name",
    "description",
    "material",
    "category",
    "price",
    "currency",
    "source_url",
)


@dataclass
class ProductRecord:
    """A product as extracted from one detail page.

    Acts as an accumulator while the extraction sources are merged.
    ``(article_number, color_id)`` is the storage key; a missing color is
    its own key value, not a wildcard.
    """

    article_number: Optional[str] = None
    ean: Optional[str] = None
    color_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    material: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    source_url: Optional[str] = None

    # Fields a source explicitly reported as absent (e.g. "color": null).
    # Later sources must not fill them.
    explicit_nulls: Set[str] = field(default_factory=set)

    @property
    def key(self) -> Tuple[Optional[str], str]:
        """Storage key; a blank color folds to ""."""
        return storage_key(self.article_number, self.color_id)

    def missing_fields(self) -> Set[str]:
        """Names of scalar fields a later source may still fill."""
        missing = {
            name for name in SCALAR_FIELDS
            if _is_empty(getattr(self, name)) and name not in self.explicit_nulls
        }
        if not self.image_urls:
            missing.add("image_urls")
        return missing

    def is_empty(self) -> bool:
        return all(_is_empty(getattr(self, f.name)) for f in fields(self))


@dataclass
class ImageAsset:
    """One stored image of a product. ``order`` 0 is the primary image."""

    url: str
    order: int
    is_primary: bool
    data: Optional[bytes] = None


def storage_key(article_number: Optional[str], color_id: Optional[str]) -> Tuple[Optional[str], str]:
    return article_number, color_id or ""


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, set, dict)):
        return not value
    return False


def merge_records(primary: ProductRecord, secondary: Optional[ProductRecord]) -> ProductRecord:
    """Fill empty fields of ``primary`` from ``secondary`` and return ``primary``.

    Populated fields are never overwritten. The image list moves over
    wholesale, and only when ``primary`` has no images at all.
    """
    if secondary is None:
        return primary

    for name in SCALAR_FIELDS:
        if name in primary.explicit_nulls:
            continue
        if _is_empty(getattr(primary, name)):
            value = getattr(secondary, name)
            if not _is_empty(value):
                setattr(primary, name, value)

    if not primary.image_urls and secondary.image_urls:
        primary.image_urls = list(secondary.image_urls)

    primary.explicit_nulls |= {
        name for name in secondary.explicit_nulls if _is_empty(getattr(primary, name))
    }
    return primary
