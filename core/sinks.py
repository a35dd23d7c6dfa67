"""
Storage sink contract and configuration-driven sink selection.

A sink is anything with a ``name`` plus async ``flush(batch)`` and
``close()``. Primary sinks must succeed for a flush to count; mirrors
are best-effort copies whose failures never stop the crawl.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence, Tuple, runtime_checkable

from core.types import FlushResult, Product

logger = logging.getLogger(__name__)


@runtime_checkable
class ProductSink(Protocol):
    name: str

    async def flush(self, batch: Sequence[Product]) -> FlushResult: ...

    async def close(self) -> None: ...


def build_sinks(settings) -> Tuple[List[ProductSink], List[ProductSink]]:
    """Return ``(primary, mirrors)`` for the configured outputs.

    The CSV writer is always the first primary sink. JSON output, the
    Postgres mirror and the S3 mirror are enabled by their settings.
    """
    from utils.export_writers import CsvProductWriter, JsonProductWriter

    primary: List[ProductSink] = [CsvProductWriter(settings.csv_path)]
    if settings.json_path:
        primary.append(JsonProductWriter(settings.json_path))

    mirrors: List[ProductSink] = []
    if settings.database_url:
        from database.manager import PostgresProductSink

        mirrors.append(
            PostgresProductSink(settings.database_url, settings.database_table)
        )
    if settings.s3_bucket:
        from network.object_storage import S3FileMirror

        mirrors.append(S3FileMirror.from_settings(settings))

    logger.debug(
        "Sinks configured: primary=%s mirrors=%s",
        [sink.name for sink in primary],
        [sink.name for sink in mirrors],
    )
    return primary, mirrors


__all__ = ["ProductSink", "build_sinks"]
