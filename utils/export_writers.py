from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence

import pandas as pd

from core.types import PRODUCT_COLUMNS, FlushResult, Product

logger = logging.getLogger(__name__)

__all__ = [
    "CsvProductWriter",
    "JsonProductWriter",
]


def _build_dataframe(batch: Sequence[Product]) -> pd.DataFrame:
    return pd.DataFrame(
        [product.as_row() for product in batch], columns=list(PRODUCT_COLUMNS)
    )


def _extract_products_from_payload(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        candidates = payload.get("products")
        if isinstance(candidates, list):
            return [item for item in candidates if isinstance(item, dict)]
        return []
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    return []


class CsvProductWriter:
    """Primary sink appending batches to one CSV file.

    The file is created with a header row when absent (or empty); an
    existing file is appended to without repeating the header.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = f"csv:{self.path.name}"
        self.rows_written = 0

    async def flush(self, batch: Sequence[Product]) -> FlushResult:
        if not batch:
            return FlushResult(self.name, 0)
        written = await asyncio.to_thread(self._append, list(batch))
        self.rows_written += written
        return FlushResult(self.name, written)

    async def close(self) -> None:
        logger.debug("CSV sink %s closed after %d rows", self.path, self.rows_written)

    def _append(self, batch: List[Product]) -> int:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        if write_header:
            logger.info("Creating %s with header", self.path)

        frame = _build_dataframe(batch)
        frame.to_csv(
            self.path,
            mode="a",
            header=write_header,
            index=False,
            encoding="utf-8",
            lineterminator="\n",
        )
        return len(frame)


class JsonProductWriter:
    """Primary sink keeping every flushed product in one JSON document.

    Products already present in the file are kept and new batches are
    appended; each flush rewrites the file through a temp file and
    ``os.replace`` so readers never observe a partial document.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = f"json:{self.path.name}"
        self._products: List[Dict[str, Any]] | None = None

    async def flush(self, batch: Sequence[Product]) -> FlushResult:
        if not batch:
            return FlushResult(self.name, 0)
        written = await asyncio.to_thread(self._merge, list(batch))
        return FlushResult(self.name, written)

    async def close(self) -> None:
        logger.debug("JSON sink %s closed", self.path)

    def _load_existing(self) -> List[Dict[str, Any]]:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return []
        payload = json.loads(self.path.read_text(encoding="utf-8"))
        return _extract_products_from_payload(payload)

    def _merge(self, batch: List[Product]) -> int:
        if self._products is None:
            self._products = self._load_existing()
        self._products.extend(product.to_dict() for product in batch)

        json_payload = json.dumps(
            {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "products": self._products,
            },
            ensure_ascii=False,
            indent=2,
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json_payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return len(batch)
