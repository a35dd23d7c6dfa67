"""
Core data types for the catalog crawler.

Holds the raw and normalized product records, per-worker crawl state,
run outcomes, and the Protocol classes describing the slice of the
Playwright page/response API the crawl pipeline relies on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)


# ============================================================================
# Basic aliases
# ============================================================================

URL = str
Headers = Dict[str, str]
HTMLContent = str
HTTPStatusCode = int

MISSING = "missing"
ZERO_PRICE = Decimal("0.0")

PRODUCT_COLUMNS: Tuple[str, ...] = (
    "name",
    "price_original",
    "price_converted",
    "url",
)


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class RawRecord:
    """Product entry as read from the rendered page, before cleaning."""

    name: Optional[str] = None
    price: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.name and self.price and self.url)


@dataclass(frozen=True)
class Product:
    """Normalized product record handed to the pipeline and sinks."""

    name: str
    price_original: Decimal
    price_converted: Decimal
    url: URL

    def as_row(self) -> Tuple[str, str, str, str]:
        return (
            self.name,
            str(self.price_original),
            str(self.price_converted),
            self.url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price_original": float(self.price_original),
            "price_converted": float(self.price_converted),
            "url": self.url,
        }


# ============================================================================
# Crawl state
# ============================================================================


class CrawlStage(str, Enum):
    """Stages of a single worker's pagination walk."""

    FETCHING = "fetching"
    EXTRACTING = "extracting"
    EMITTING = "emitting"
    RECURSING = "recursing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CrawlStage.DONE, CrawlStage.FAILED)


@dataclass
class CrawlState:
    """Mutable state owned by one crawl worker for the length of its walk."""

    seed_url: URL
    current_url: URL
    stage: CrawlStage = CrawlStage.FETCHING
    retry_count: int = 0
    pages_visited: int = 0
    records_emitted: int = 0


@dataclass(frozen=True)
class WorkerOutcome:
    """Terminal result of one crawl worker."""

    seed_url: URL
    stage: CrawlStage
    pages_visited: int = 0
    records_emitted: int = 0
    retry_count: int = 0
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.stage is CrawlStage.FAILED


@dataclass
class CrawlReport:
    """Aggregate of every worker outcome for one dispatcher run."""

    outcomes: List[WorkerOutcome] = field(default_factory=list)

    @property
    def failed_seeds(self) -> List[URL]:
        return [outcome.seed_url for outcome in self.outcomes if outcome.failed]

    @property
    def succeeded(self) -> bool:
        return not self.failed_seeds

    @property
    def pages_visited(self) -> int:
        return sum(outcome.pages_visited for outcome in self.outcomes)

    @property
    def records_emitted(self) -> int:
        return sum(outcome.records_emitted for outcome in self.outcomes)

    @property
    def retry_count(self) -> int:
        return sum(outcome.retry_count for outcome in self.outcomes)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


# ============================================================================
# Pipeline bookkeeping
# ============================================================================


@dataclass(frozen=True)
class FlushResult:
    """What a sink reports back after persisting a batch."""

    sink: str
    written: int


@dataclass
class PipelineStats:
    received: int = 0
    duplicates: int = 0
    flushed: int = 0
    flush_count: int = 0
    mirror_failures: int = 0


# ============================================================================
# Protocols for the browser surface
# ============================================================================


@runtime_checkable
class ResponseLike(Protocol):
    """Subset of ``playwright.async_api.Response`` used by the fetch policy."""

    @property
    def status(self) -> int: ...


@runtime_checkable
class PageLike(Protocol):
    """Subset of ``playwright.async_api.Page`` used by the crawl pipeline."""

    @property
    def url(self) -> str: ...

    async def goto(self, url: str, **kwargs: Any) -> Optional[ResponseLike]: ...

    async def content(self) -> str: ...

    async def set_extra_http_headers(self, headers: Mapping[str, str]) -> None: ...


__all__ = [
    "URL",
    "Headers",
    "HTMLContent",
    "HTTPStatusCode",
    "MISSING",
    "ZERO_PRICE",
    "PRODUCT_COLUMNS",
    "RawRecord",
    "Product",
    "CrawlStage",
    "CrawlState",
    "WorkerOutcome",
    "CrawlReport",
    "FlushResult",
    "PipelineStats",
    "ResponseLike",
    "PageLike",
]
