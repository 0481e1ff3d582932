from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, BinaryIO, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from slideshow_worker.application.interfaces.object_store import IObjectStore
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import StorageError, StreamError

logger = logging.getLogger(__name__)


def build_s3_client():
    """Create an S3 client from settings (custom endpoint, path-style addressing)."""
    return boto3.client(
        "s3",
        region_name=settings.s3_region or None,
        endpoint_url=settings.s3_endpoint or None,
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        config=Config(
            s3={"addressing_style": "path" if settings.s3_force_path_style else "auto"}
        ),
    )


class S3ObjectStore(IObjectStore):
    """S3-compatible object store.

    boto3 is blocking, so every call is pushed to a worker thread; reads are
    streamed chunk by chunk from the ``get_object`` body.
    """

    def __init__(
        self,
        client=None,
        *,
        bucket_name: Optional[str] = None,
        chunk_size: Optional[int] = None,
    ) -> None:
        self._client = client
        self.bucket_name = bucket_name or settings.s3_bucket_name
        self.chunk_size = chunk_size or settings.ffmpeg_chunk_size

    @property
    def client(self):
        if self._client is None:
            self._client = build_s3_client()
        return self._client

    async def open_read_stream(
        self, key: str, *, bucket: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        bucket = bucket or self.bucket_name
        try:
            response = await asyncio.to_thread(
                self.client.get_object, Bucket=bucket, Key=key
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("File not found: %s in bucket: %s (%s)", key, bucket, e)
            raise StreamError(f"File not found: {key}", source_name=key) from e

        body = response.get("Body") if response else None
        if body is None:
            logger.error("File not found: %s in bucket: %s", key, bucket)
            raise StreamError(f"File not found: {key}", source_name=key)
        return self._iter_body(body)

    async def _iter_body(self, body) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def write_object(
        self,
        key: str,
        body: Union[bytes, BinaryIO],
        content_type: str,
        *,
        bucket: Optional[str] = None,
    ) -> str:
        bucket = bucket or self.bucket_name

        def _put() -> str:
            response = self.client.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType=content_type or "application/octet-stream",
            )
            return str(response.get("ETag", "")).strip('"')

        try:
            etag = await asyncio.to_thread(_put)
        except (ClientError, BotoCoreError) as e:
            logger.error("Error uploading buffer: %s (%s)", key, e)
            raise StorageError(f"Failed to upload buffer: {key}", key=key) from e
        logger.info("Object uploaded: %s to bucket: %s (etag=%s)", key, bucket, etag)
        return etag
