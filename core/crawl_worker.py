"""Single-seed pagination walker."""

import logging
from typing import (
    Any,
    AsyncContextManager,
    Awaitable,
    Callable,
    List,
    Optional,
)

from core.fetch_policy import FetchPolicy
from core.types import (
    CrawlStage,
    CrawlState,
    Headers,
    PageLike,
    Product,
    RawRecord,
    WorkerOutcome,
)
from parsers.page_extractor import PageExtractor
from utils.error_handling import WorkerError, describe_error

logger = logging.getLogger(__name__)

PageProvider = Callable[[Optional[Headers]], AsyncContextManager[PageLike]]
EmitFn = Callable[[Product], Awaitable[Any]]
NormalizeFn = Callable[[RawRecord], Product]


class CrawlWorker:
    """Walks one seed URL page by page until no next link remains.

    The walk is a loop over ``CrawlStage`` values; it holds a single page
    for its whole life and always ends in ``DONE`` or ``FAILED``. Failures
    are reported through the returned ``WorkerOutcome`` instead of raised.
    """

    def __init__(
        self,
        worker_id: int,
        seed_url: str,
        page_provider: PageProvider,
        fetch_policy: FetchPolicy,
        extractor: PageExtractor,
        normalizer: NormalizeFn,
        emit: EmitFn,
        header_set: Optional[Headers] = None,
    ) -> None:
        self.worker_id = worker_id
        self.page_provider = page_provider
        self.fetch_policy = fetch_policy
        self.extractor = extractor
        self.normalizer = normalizer
        self.emit = emit
        self.header_set = header_set
        self.state = CrawlState(seed_url=seed_url, current_url=seed_url)
        logger.info("Worker %s created for %s", worker_id, seed_url)

    async def run(self) -> WorkerOutcome:
        state = self.state
        error: Optional[BaseException] = None
        try:
            async with self.page_provider(self.header_set) as page:
                await self._walk(page)
        except Exception as exc:
            state.stage = CrawlStage.FAILED
            error = WorkerError(
                state.seed_url, describe_error(exc), url=state.current_url
            )
            error.__cause__ = exc
            logger.exception(
                "Worker %s failed on %s", self.worker_id, state.current_url
            )
        finally:
            logger.info("Worker %s exited", self.worker_id)

        return WorkerOutcome(
            seed_url=state.seed_url,
            stage=state.stage,
            pages_visited=state.pages_visited,
            records_emitted=state.records_emitted,
            retry_count=state.retry_count,
            error=error,
        )

    async def _walk(self, page: PageLike) -> None:
        state = self.state
        records: List[RawRecord] = []
        next_url: Optional[str] = None

        while not state.stage.is_terminal:
            if state.stage is CrawlStage.FETCHING:
                logger.info("Worker %s working on %s", self.worker_id, state.current_url)
                result = await self.fetch_policy.fetch_with_attempts(
                    page, state.current_url, headers=self.header_set
                )
                state.retry_count += result.retries
                if result.response is None:
                    logger.warning(
                        "Worker %s stopping, could not load %s",
                        self.worker_id,
                        state.current_url,
                    )
                    state.stage = CrawlStage.DONE
                    continue
                state.pages_visited += 1
                state.stage = CrawlStage.EXTRACTING

            elif state.stage is CrawlStage.EXTRACTING:
                records, next_url = await self.extractor.extract(
                    page, base_url=state.current_url
                )
                logger.debug(
                    "Worker %s found %d products on %s",
                    self.worker_id,
                    len(records),
                    state.current_url,
                )
                state.stage = CrawlStage.EMITTING

            elif state.stage is CrawlStage.EMITTING:
                for raw in records:
                    await self.emit(self.normalizer(raw))
                    state.records_emitted += 1
                records = []
                state.stage = CrawlStage.RECURSING if next_url else CrawlStage.DONE

            elif state.stage is CrawlStage.RECURSING:
                state.current_url = next_url
                next_url = None
                state.stage = CrawlStage.FETCHING

        logger.info("Worker %s finished", self.worker_id)


__all__ = ["CrawlWorker", "PageProvider", "EmitFn", "NormalizeFn"]
