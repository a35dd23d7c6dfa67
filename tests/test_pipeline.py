"""Tests for the deduplicating, batching aggregator."""

import asyncio

import pytest

from core.pipeline import ProductPipeline
from fakes import RecordingSink, make_product
from utils.error_handling import PipelineClosedError, SinkError


def _products(*paths):
    return [make_product(f"https://shop.test{path}") for path in paths]


async def _settle(predicate, rounds: int = 100) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_duplicates_are_dropped_and_batches_sized():
    sink = RecordingSink()
    pipeline = ProductPipeline([sink], storage_queue_limit=5)

    async with pipeline:
        for product in _products(
            "/1", "/2", "/1", "/3", "/4", "/2", "/5", "/6", "/7", "/3", "/8", "/9"
        ):
            await pipeline.add_product(product)

    assert [len(batch) for batch in sink.batches] == [5, 4]
    assert [p.url.rsplit("/", 1)[1] for p in sink.products] == [
        "1", "2", "3", "4", "5", "6", "7", "8", "9"
    ]
    assert pipeline.stats.received == 12
    assert pipeline.stats.duplicates == 3
    assert pipeline.stats.flushed == 9
    assert pipeline.stats.flush_count == 2
    assert sink.closed is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "unique, limit, expected_flushes",
    [(0, 5, 0), (1, 5, 1), (5, 5, 1), (10, 5, 2), (11, 5, 3), (7, 1, 7)],
)
async def test_flush_count_follows_batch_size(unique, limit, expected_flushes):
    sink = RecordingSink()
    pipeline = ProductPipeline([sink], storage_queue_limit=limit)

    async with pipeline:
        for product in _products(*[f"/{n}" for n in range(unique)]):
            await pipeline.add_product(product)

    assert len(sink.batches) == expected_flushes
    assert all(len(batch) <= limit for batch in sink.batches)
    assert len(sink.products) == unique


@pytest.mark.asyncio
async def test_url_comparison_is_case_sensitive():
    sink = RecordingSink()

    async with ProductPipeline([sink]) as pipeline:
        for product in _products("/Bar", "/bar", "/bar"):
            await pipeline.add_product(product)

    assert [p.url for p in sink.products] == [
        "https://shop.test/Bar",
        "https://shop.test/bar",
    ]


@pytest.mark.asyncio
async def test_primary_sinks_run_before_mirrors():
    calls = []
    csv_sink = RecordingSink("csv", calls=calls)
    json_sink = RecordingSink("json", calls=calls)
    mirror = RecordingSink("s3", calls=calls)

    async with ProductPipeline([csv_sink, json_sink], [mirror], storage_queue_limit=2) as pipeline:
        for product in _products("/1", "/2", "/3"):
            await pipeline.add_product(product)

    assert calls == ["csv", "json", "s3", "csv", "json", "s3"]
    assert mirror.closed is True


@pytest.mark.asyncio
async def test_products_arriving_during_flush_are_queued():
    gate = asyncio.Event()
    sink = RecordingSink(gate=gate)
    pipeline = ProductPipeline([sink], storage_queue_limit=2)
    await pipeline.start()

    for product in _products("/1", "/2"):
        await pipeline.add_product(product)
    await _settle(lambda: sink.in_flight == 1)
    assert sink.in_flight == 1

    for product in _products("/3", "/4", "/5"):
        await pipeline.add_product(product)
    await asyncio.sleep(0)
    assert sink.batches == []

    gate.set()
    await pipeline.close()

    assert [len(batch) for batch in sink.batches] == [2, 2, 1]
    assert sink.max_in_flight == 1


@pytest.mark.asyncio
async def test_close_waits_for_in_flight_flush():
    sink = RecordingSink(delay=0.05)
    pipeline = ProductPipeline([sink], storage_queue_limit=2)
    await pipeline.start()

    for product in _products("/1", "/2", "/3"):
        await pipeline.add_product(product)
    await _settle(lambda: sink.in_flight == 1)

    await pipeline.close()

    assert [len(batch) for batch in sink.batches] == [2, 1]
    assert sink.max_in_flight == 1


@pytest.mark.asyncio
async def test_primary_failure_is_fatal():
    good = RecordingSink("csv")
    bad = RecordingSink("json", fail=OSError("disk full"))
    pipeline = ProductPipeline([good, bad], storage_queue_limit=2)
    await pipeline.start()

    for product in _products("/1", "/2"):
        await pipeline.add_product(product)
    await _settle(lambda: pipeline.failure is not None)

    with pytest.raises(PipelineClosedError) as closed:
        await pipeline.add_product(make_product("https://shop.test/3"))
    assert isinstance(closed.value.__cause__, SinkError)

    with pytest.raises(SinkError) as failure:
        await pipeline.close()
    assert failure.value.sink == "json"
    assert "disk full" in str(failure.value)
    assert good.closed and bad.closed


@pytest.mark.asyncio
async def test_failure_in_final_flush_is_raised_from_close():
    sink = RecordingSink(fail=RuntimeError("boom"))
    pipeline = ProductPipeline([sink], storage_queue_limit=10)
    await pipeline.start()
    await pipeline.add_product(make_product("https://shop.test/1"))

    with pytest.raises(SinkError):
        await pipeline.close()
    assert sink.closed is True


@pytest.mark.asyncio
async def test_mirror_failures_are_swallowed():
    primary = RecordingSink("csv")
    broken = RecordingSink("postgres", fail=ConnectionError("refused"))
    slow = RecordingSink("s3", delay=1.0)
    pipeline = ProductPipeline(
        [primary], [broken, slow], storage_queue_limit=2, mirror_timeout=0.01
    )

    async with pipeline:
        for product in _products("/1", "/2", "/3"):
            await pipeline.add_product(product)

    assert len(primary.products) == 3
    assert pipeline.stats.mirror_failures == 4
    assert broken.closed and slow.closed


@pytest.mark.asyncio
async def test_close_is_idempotent_and_rejects_late_products():
    sink = RecordingSink()
    pipeline = ProductPipeline([sink])
    await pipeline.start()
    await pipeline.add_product(make_product("https://shop.test/1"))

    await pipeline.close()
    await pipeline.close()

    assert pipeline.closed
    assert len(sink.batches) == 1
    with pytest.raises(PipelineClosedError):
        await pipeline.add_product(make_product("https://shop.test/2"))


@pytest.mark.asyncio
async def test_add_product_starts_pipeline_lazily():
    sink = RecordingSink()
    pipeline = ProductPipeline([sink])

    await pipeline.add_product(make_product("https://shop.test/1"))
    await pipeline.close()

    assert len(sink.products) == 1


def test_rejects_zero_batch_size():
    with pytest.raises(ValueError):
        ProductPipeline([], storage_queue_limit=0)
