"""Product listing extraction from a rendered catalog page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from core.types import PageLike, RawRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListingSelectors:
    """CSS selectors describing one catalog layout."""

    product: str = "product-item"
    name: str = ".product-item-meta__title"
    price: str = ".price"
    next_page: str = "a.pagination__nav-item:nth-child(4)"

    @classmethod
    def from_settings(cls, settings) -> "ListingSelectors":
        return cls(
            product=settings.product_selector,
            name=settings.name_selector,
            price=settings.price_selector,
            next_page=settings.next_page_selector,
        )


ExtractionResult = Tuple[List[RawRecord], Optional[str]]


def _text(element: Optional[Tag]) -> Optional[str]:
    if element is None:
        return None
    text = element.get_text().strip()
    return text or None


def _attr(element: Optional[Tag], name: str) -> Optional[str]:
    if element is None:
        return None
    value = element.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    if value is None:
        return None
    value = value.strip()
    return value or None


class PageExtractor:
    """Reads product entries and the next-page link from a loaded page."""

    def __init__(self, selectors: Optional[ListingSelectors] = None) -> None:
        self.selectors = selectors or ListingSelectors()

    async def extract(
        self, page: PageLike, *, base_url: Optional[str] = None
    ) -> ExtractionResult:
        """Extract from a live page.

        ``base_url`` is the catalog URL the worker navigated to; relative
        next-page links resolve against it rather than ``page.url``, which
        points at the relay when requests are tunneled.
        """
        html = await page.content()
        return self.extract_from_html(html, base_url or page.url)

    def extract_from_html(self, html: str, base_url: str) -> ExtractionResult:
        soup = BeautifulSoup(html or "", "html.parser")

        records: List[RawRecord] = []
        dropped = 0
        for item in soup.select(self.selectors.product):
            title = item.select_one(self.selectors.name)
            record = RawRecord(
                name=_text(title),
                price=_text(item.select_one(self.selectors.price)),
                url=_attr(title, "href"),
            )
            if record.is_complete:
                records.append(record)
            else:
                dropped += 1

        if dropped:
            logger.debug("Dropped %d incomplete product entries on %s", dropped, base_url)

        next_url = self._next_page_url(soup, base_url)
        if next_url is None:
            logger.info("Last page reached: %s", base_url)
        return records, next_url

    def _next_page_url(self, soup: BeautifulSoup, base_url: str) -> Optional[str]:
        link = soup.select_one(self.selectors.next_page)
        href = _attr(link, "href")
        if not href:
            return None
        return urljoin(base_url, href)


__all__ = ["ListingSelectors", "PageExtractor", "ExtractionResult"]
