"""S3 / MinIO mirror for the crawl's CSV output."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import boto3
from botocore.config import Config as BotoConfig

from core.types import FlushResult, Product

logger = logging.getLogger(__name__)


class S3FileMirror:
    """Uploads a local file to a bucket after every flush.

    Primary sinks run first, so by the time this mirror is called the
    file already holds the batch being flushed. The upload replaces the
    whole object each time.

    Uploads run in a worker thread that a timeout cannot stop. While one
    is still running later flushes are skipped, and ``close`` uploads the
    file once more so the final object is never older than the file.
    """

    def __init__(
        self,
        bucket: str,
        file_path: str | Path,
        key: Optional[str] = None,
        *,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client: Any = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self.bucket = bucket
        self.file_path = Path(file_path)
        self.key = key or self.file_path.name
        self.name = f"s3:{bucket}/{self.key}"
        self.uploads = 0
        self._in_flight: Optional[asyncio.Future] = None
        self._stale = False

        if client is None:
            cfg = BotoConfig(retries={"max_attempts": 3, "mode": "standard"})
            session_args = {}
            if region:
                session_args["region_name"] = region
            if endpoint_url:
                session_args["endpoint_url"] = endpoint_url
            if access_key and secret_key:
                session_args["aws_access_key_id"] = access_key
                session_args["aws_secret_access_key"] = secret_key
            client = boto3.client("s3", config=cfg, **session_args)
        self.s3 = client

    @classmethod
    def from_settings(cls, settings) -> "S3FileMirror":
        return cls(
            settings.s3_bucket,
            settings.csv_path,
            settings.s3_key,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
        )

    async def flush(self, batch: Sequence[Product]) -> FlushResult:
        if not batch:
            return FlushResult(self.name, 0)
        if self._in_flight is not None and not self._in_flight.done():
            self._stale = True
            logger.warning("Upload to %s still running, skipping this flush", self.name)
            return FlushResult(self.name, 0)

        self._stale = False
        self._in_flight = asyncio.ensure_future(asyncio.to_thread(self._upload))
        self._in_flight.add_done_callback(self._upload_finished)
        # a caller timeout must not hide the running upload from the next flush
        await asyncio.shield(self._in_flight)
        return FlushResult(self.name, len(batch))

    async def close(self) -> None:
        if self._in_flight is not None and not self._in_flight.done():
            try:
                await self._in_flight
            except Exception as exc:
                logger.warning("Pending upload to %s failed: %s", self.name, exc)
        if self._stale:
            self._stale = False
            await asyncio.to_thread(self._upload)
            self.uploads += 1
        logger.debug("S3 mirror %s closed after %d uploads", self.name, self.uploads)

    def _upload_finished(self, future: asyncio.Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self.uploads += 1

    def _upload(self) -> None:
        if not self.file_path.exists():
            raise FileNotFoundError(f"Nothing to upload, {self.file_path} does not exist")
        with open(self.file_path, "rb") as fh:
            self.s3.upload_fileobj(fh, self.bucket, self.key)
        logger.debug("Uploaded %s to s3://%s/%s", self.file_path, self.bucket, self.key)
