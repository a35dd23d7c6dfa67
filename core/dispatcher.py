"""Fan-out of crawl workers, one asyncio task per seed URL."""

import asyncio
import logging
from typing import Iterable, List, Optional

from core.crawl_worker import CrawlWorker, EmitFn, NormalizeFn, PageProvider
from core.fetch_policy import FetchPolicy
from core.header_provider import HeaderProvider
from core.types import CrawlReport, CrawlStage, WorkerOutcome
from parsers.page_extractor import PageExtractor
from utils.error_handling import WorkerError, describe_error

logger = logging.getLogger(__name__)


class CrawlDispatcher:
    """Runs a crawl worker per seed and collects their outcomes.

    Workers are independent: one failing never cancels the others, and
    whatever a failed worker emitted before failing stays in the pipeline.
    """

    def __init__(
        self,
        *,
        page_provider: PageProvider,
        fetch_policy: FetchPolicy,
        extractor: PageExtractor,
        normalizer: NormalizeFn,
        emit: EmitFn,
        header_provider: Optional[HeaderProvider] = None,
        header_count: int = 2,
        max_concurrency: Optional[int] = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be positive")
        self.page_provider = page_provider
        self.fetch_policy = fetch_policy
        self.extractor = extractor
        self.normalizer = normalizer
        self.emit = emit
        self.header_provider = header_provider
        self.header_count = header_count
        self.max_concurrency = max_concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def run(self, seed_urls: Iterable[str]) -> CrawlReport:
        seeds = list(seed_urls)
        if self.max_concurrency is not None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)

        logger.info(
            "Dispatching %d workers (concurrency: %s)",
            len(seeds),
            self.max_concurrency or "unlimited",
        )
        tasks = [
            asyncio.create_task(self._run_worker(worker_id, seed))
            for worker_id, seed in enumerate(seeds, start=1)
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: List[WorkerOutcome] = []
        for seed, result in zip(seeds, results):
            if isinstance(result, WorkerOutcome):
                outcomes.append(result)
                continue
            logger.error("Worker for %s raised: %s", seed, describe_error(result))
            error = WorkerError(seed, describe_error(result))
            error.__cause__ = result
            outcomes.append(
                WorkerOutcome(seed_url=seed, stage=CrawlStage.FAILED, error=error)
            )

        report = CrawlReport(outcomes)
        if report.failed_seeds:
            logger.warning("Failed seeds: %s", ", ".join(report.failed_seeds))
        return report

    async def _run_worker(self, worker_id: int, seed_url: str) -> WorkerOutcome:
        if self._semaphore is None:
            return await self._start_worker(worker_id, seed_url)
        async with self._semaphore:
            return await self._start_worker(worker_id, seed_url)

    async def _start_worker(self, worker_id: int, seed_url: str) -> WorkerOutcome:
        header_set = None
        if self.header_provider is not None:
            header_set = await self.header_provider.choose(self.header_count)

        worker = CrawlWorker(
            worker_id,
            seed_url,
            self.page_provider,
            self.fetch_policy,
            self.extractor,
            self.normalizer,
            self.emit,
            header_set=header_set,
        )
        return await worker.run()


__all__ = ["CrawlDispatcher"]
