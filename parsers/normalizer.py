"""Cleaning of raw scraped strings into validated product values.

Every function here is total: malformed input degrades to a sentinel
(``"missing"`` or ``Decimal("0.0")``) instead of raising.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Sequence
from urllib.parse import urlsplit

from core.types import MISSING, ZERO_PRICE, Product, RawRecord

DEFAULT_PRICE_PREFIXES: tuple[str, ...] = ("Sale priceFrom £", "Sale price£")

# Leading number, parsed the way a float prefix parser would read it.
_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def clean_name(name: Optional[str]) -> str:
    if name is None:
        return MISSING
    cleaned = name.strip()
    return cleaned or MISSING


def clean_price(
    price_text: Optional[str],
    prefixes: Iterable[str] = DEFAULT_PRICE_PREFIXES,
) -> Decimal:
    """Parse price text such as ``"Sale price£12.50"`` into a Decimal."""
    if not isinstance(price_text, str) or not price_text.strip():
        return ZERO_PRICE

    cleaned = price_text.strip()
    # Longest prefix first so "Sale priceFrom £" is not half-stripped.
    for prefix in sorted(prefixes, key=len, reverse=True):
        cleaned = cleaned.replace(prefix, "")
    cleaned = cleaned.strip().replace(",", "")

    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return ZERO_PRICE

    try:
        value = Decimal(match.group(0))
    except InvalidOperation:
        return ZERO_PRICE

    if not value.is_finite() or value < 0:
        return ZERO_PRICE
    return value


def convert_price(price_original: Decimal, conversion_rate: Decimal) -> Decimal:
    return price_original * conversion_rate


def make_absolute_url(url: Optional[str], site_origin: str) -> str:
    if url is None:
        return MISSING
    path = url.strip()
    if not path:
        return MISSING

    if urlsplit(path).scheme in ("http", "https"):
        return path

    if not path.startswith("/"):
        path = "/" + path
    return site_origin.rstrip("/") + path


def normalize(
    raw: RawRecord,
    *,
    site_origin: str,
    conversion_rate: Decimal,
    price_prefixes: Sequence[str] = DEFAULT_PRICE_PREFIXES,
) -> Product:
    """Turn a RawRecord into an immutable Product. Never raises."""
    price_original = clean_price(raw.price, price_prefixes)
    return Product(
        name=clean_name(raw.name),
        price_original=price_original,
        price_converted=convert_price(price_original, conversion_rate),
        url=make_absolute_url(raw.url, site_origin),
    )


class ProductNormalizer:
    """Binds the configured constants so workers can call ``normalizer(raw)``."""

    def __init__(
        self,
        site_origin: str,
        conversion_rate: Decimal,
        price_prefixes: Sequence[str] = DEFAULT_PRICE_PREFIXES,
    ) -> None:
        self.site_origin = site_origin
        self.conversion_rate = Decimal(conversion_rate)
        self.price_prefixes = tuple(price_prefixes)

    @classmethod
    def from_settings(cls, settings) -> "ProductNormalizer":
        return cls(
            site_origin=settings.site_origin,
            conversion_rate=settings.conversion_rate,
            price_prefixes=settings.price_prefixes,
        )

    def __call__(self, raw: RawRecord) -> Product:
        return normalize(
            raw,
            site_origin=self.site_origin,
            conversion_rate=self.conversion_rate,
            price_prefixes=self.price_prefixes,
        )


__all__ = [
    "DEFAULT_PRICE_PREFIXES",
    "clean_name",
    "clean_price",
    "convert_price",
    "make_absolute_url",
    "normalize",
    "ProductNormalizer",
]
