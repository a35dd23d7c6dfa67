"""
Deduplicating, batching aggregator between crawl workers and sinks.

Workers only ever enqueue products; a single consumer task owns the
set of seen URLs and the pending batch, so neither needs locking. The
pending batch is flushed to every primary sink, then to every mirror,
whenever it reaches ``storage_queue_limit`` and once more on close.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Set

from core.sinks import ProductSink
from core.types import PipelineStats, Product
from utils.error_handling import PipelineClosedError, SinkError, describe_error

logger = logging.getLogger(__name__)

_CLOSE = object()


class ProductPipeline:
    def __init__(
        self,
        sinks: Sequence[ProductSink],
        mirrors: Sequence[ProductSink] = (),
        storage_queue_limit: int = 5,
        mirror_timeout: float = 30.0,
    ) -> None:
        if storage_queue_limit < 1:
            raise ValueError("storage_queue_limit must be at least 1")
        self.sinks = list(sinks)
        self.mirrors = list(mirrors)
        self.storage_queue_limit = storage_queue_limit
        self.mirror_timeout = mirror_timeout
        self.stats = PipelineStats()

        self._seen: Set[str] = set()
        self._pending: List[Product] = []
        self._inbox: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._flush_lock: Optional[asyncio.Lock] = None
        self._failure: Optional[SinkError] = None
        self._closing = False
        self._closed = False

    @classmethod
    def from_settings(cls, settings, sinks, mirrors=()) -> "ProductPipeline":
        return cls(
            sinks,
            mirrors,
            storage_queue_limit=settings.storage_queue_limit,
            mirror_timeout=settings.mirror_timeout_seconds,
        )

    @property
    def failure(self) -> Optional[SinkError]:
        return self._failure

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        if self._consumer is not None:
            return
        if self._closing:
            raise PipelineClosedError("Pipeline already closed")
        self._inbox = asyncio.Queue()
        self._flush_lock = asyncio.Lock()
        self._consumer = asyncio.create_task(self._consume(), name="product-pipeline")
        logger.debug(
            "Pipeline started (batch size %d, %d sinks, %d mirrors)",
            self.storage_queue_limit,
            len(self.sinks),
            len(self.mirrors),
        )

    async def add_product(self, product: Product) -> None:
        """Queue a product for deduplication; never waits on a flush."""
        if self._failure is not None:
            raise PipelineClosedError(
                "Pipeline stopped after a sink failure",
                {"sink": self._failure.sink},
            ) from self._failure
        if self._closing:
            raise PipelineClosedError("Pipeline is closed")
        if self._consumer is None:
            await self.start()
        self._inbox.put_nowait(product)

    async def close(self) -> None:
        """Drain the inbox, flush the remainder and close every sink.

        Call only after all producers have finished. A primary sink
        failure seen at any point is re-raised here once sinks are closed.
        """
        if self._closing:
            return
        self._closing = True

        if self._consumer is not None:
            if not self._consumer.done():
                self._inbox.put_nowait(_CLOSE)
            await self._consumer

        if self._failure is None and self._pending:
            lock = self._flush_lock or asyncio.Lock()
            async with lock:
                try:
                    await self._flush()
                except SinkError as exc:
                    self._failure = exc

        await self._close_sinks()
        self._closed = True
        logger.info("Pipeline closed")
        logger.debug(
            "Pipeline stats: received=%d duplicates=%d flushed=%d flushes=%d",
            self.stats.received,
            self.stats.duplicates,
            self.stats.flushed,
            self.stats.flush_count,
        )
        if self._failure is not None:
            raise self._failure

    async def __aenter__(self) -> "ProductPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _consume(self) -> None:
        while True:
            message = await self._inbox.get()
            if message is _CLOSE:
                return
            self._accept(message)
            if len(self._pending) < self.storage_queue_limit:
                continue
            async with self._flush_lock:
                try:
                    await self._flush()
                except SinkError as exc:
                    logger.error("Stopping pipeline: %s", exc)
                    self._failure = exc
                    return

    def _accept(self, product: Product) -> None:
        self.stats.received += 1
        if product.url in self._seen:
            self.stats.duplicates += 1
            logger.debug("Duplicate product skipped: %s", product.url)
            return
        self._seen.add(product.url)
        self._pending.append(product)

    async def _flush(self) -> None:
        if not self._pending:
            return
        batch, self._pending = self._pending, []

        for sink in self.sinks:
            try:
                result = await sink.flush(batch)
            except Exception as exc:
                raise SinkError(
                    sink.name, describe_error(exc), batch_size=len(batch)
                ) from exc
            logger.info("Flushed %d products to %s", result.written, sink.name)

        self.stats.flush_count += 1
        self.stats.flushed += len(batch)

        for mirror in self.mirrors:
            await self._flush_mirror(mirror, batch)

    async def _flush_mirror(self, mirror: ProductSink, batch: List[Product]) -> None:
        try:
            result = await asyncio.wait_for(
                mirror.flush(batch), timeout=self.mirror_timeout
            )
        except asyncio.TimeoutError:
            self.stats.mirror_failures += 1
            logger.warning(
                "Mirror %s timed out after %.1fs", mirror.name, self.mirror_timeout
            )
        except Exception as exc:
            self.stats.mirror_failures += 1
            logger.warning("Mirror %s failed: %s", mirror.name, describe_error(exc))
        else:
            logger.info("Flushed %d products to %s", result.written, mirror.name)

    async def _close_sinks(self) -> None:
        for sink in [*self.sinks, *self.mirrors]:
            try:
                await sink.close()
            except Exception as exc:
                logger.warning("Failed to close sink %s: %s", sink.name, describe_error(exc))


__all__ = ["ProductPipeline"]
