"""Price parsing for locale-ambiguous strings."""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

__all__ = ["parse_price", "parse_decimal"]

_NON_NUMERIC_RE = re.compile(r"[^\d.,]")


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a display price such as "1.234,56 kr" or "$1,234.56".

    Separator rules:
    - both ',' and '.' present: the later one is the decimal separator
    - only ',': exactly three digits after it (with a digit before) means
      thousands, otherwise decimal
    - only '.' or none: already normalized

    Returns None when nothing parseable remains.
    """
    if not raw:
        return None

    cleaned = _NON_NUMERIC_RE.sub("", raw)
    if not cleaned:
        return None

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma >= 0 and last_dot >= 0:
        if last_comma > last_dot:
            normalized = cleaned.replace(".", "").replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    elif last_comma >= 0:
        digits_after = len(cleaned) - last_comma - 1
        if digits_after == 3 and last_comma > 0:
            normalized = cleaned.replace(",", "")
        else:
            normalized = cleaned.replace(",", ".")
    else:
        normalized = cleaned

    return _to_decimal(normalized)


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse a machine-readable number (JSON number or numeric string).

    Strings are read with '.' as the decimal point regardless of locale;
    a ',' before it is a group separator ("1,299.00").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _to_decimal(str(value))
    if isinstance(value, str):
        text = value.strip()
        if "," in text and "." in text and text.rfind(",") < text.rfind("."):
            text = text.replace(",", "")
        return _to_decimal(text)
    return None


def _to_decimal(text: str) -> Optional[Decimal]:
    try:
        result = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result
