"""End-to-end wiring of one crawl run."""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from config.settings import CrawlSettings
from core.browser_manager import BrowserManager
from core.dispatcher import CrawlDispatcher
from core.fetch_policy import FetchPolicy
from core.header_provider import HeaderProvider
from core.pipeline import ProductPipeline
from core.proxy_relay import ProxyRelay
from core.sinks import ProductSink, build_sinks
from core.types import CrawlReport, PipelineStats
from parsers.normalizer import ProductNormalizer
from parsers.page_extractor import ListingSelectors, PageExtractor
from utils.error_handling import SinkError

logger = logging.getLogger(__name__)

SinkSet = Tuple[Sequence[ProductSink], Sequence[ProductSink]]


@dataclass
class CrawlResult:
    report: CrawlReport
    stats: PipelineStats
    sink_error: Optional[SinkError] = None

    @property
    def exit_code(self) -> int:
        if self.sink_error is not None:
            return 2
        return self.report.exit_code


async def run_crawl(
    settings: CrawlSettings,
    *,
    browser: Any = None,
    sinks: Optional[SinkSet] = None,
    header_provider: Optional[HeaderProvider] = None,
) -> CrawlResult:
    """Crawl every configured seed and persist the products.

    ``browser`` may be any object exposing ``page_context(headers)``; when
    omitted a Playwright ``BrowserManager`` is started and stopped here.
    The pipeline is always closed, even if the dispatcher raised.
    """
    primary, mirrors = sinks if sinks is not None else build_sinks(settings)
    pipeline = ProductPipeline.from_settings(settings, primary, mirrors)

    relay = ProxyRelay.from_settings(settings)
    dispatcher_browser = browser
    own_browser = browser is None
    if own_browser:
        dispatcher_browser = BrowserManager.from_settings(settings)

    dispatcher = CrawlDispatcher(
        page_provider=dispatcher_browser.page_context,
        fetch_policy=FetchPolicy.from_settings(settings, relay=relay),
        extractor=PageExtractor(ListingSelectors.from_settings(settings)),
        normalizer=ProductNormalizer.from_settings(settings),
        emit=pipeline.add_product,
        header_provider=header_provider or HeaderProvider.from_settings(settings),
        header_count=settings.header_count,
        max_concurrency=settings.max_concurrency,
    )

    report = CrawlReport()
    sink_error: Optional[SinkError] = None
    await pipeline.start()
    try:
        if own_browser:
            await dispatcher_browser.start()
        report = await dispatcher.run(settings.seed_urls)
    finally:
        try:
            await pipeline.close()
        except SinkError as exc:
            logger.error("Crawl output incomplete: %s", exc)
            sink_error = exc
        finally:
            if own_browser:
                await dispatcher_browser.stop()

    logger.info(
        "Crawl finished: %d pages, %d products emitted, %d unique flushed, %d failed seeds",
        report.pages_visited,
        report.records_emitted,
        pipeline.stats.flushed,
        len(report.failed_seeds),
    )
    return CrawlResult(report=report, stats=pipeline.stats, sink_error=sink_error)


__all__ = ["CrawlResult", "run_crawl", "SinkSet"]
