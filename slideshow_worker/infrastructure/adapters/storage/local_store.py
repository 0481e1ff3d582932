from __future__ import annotations

import hashlib
import logging
import os
from typing import AsyncIterator, BinaryIO, Optional, Union

import aiofiles

from slideshow_worker.application.interfaces.object_store import IObjectStore
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import StorageError, StreamError

logger = logging.getLogger(__name__)


class LocalObjectStore(IObjectStore):
    """Object store on local disk, used when S3 is not configured.

    Buckets map to sub-directories of ``root``; the content identifier is the
    MD5 hex digest of the stored bytes (what S3 reports for simple uploads).
    """

    def __init__(self, root: Optional[str] = None, *, chunk_size: Optional[int] = None):
        self.root = os.path.abspath(root or settings.local_store_dir)
        self.chunk_size = chunk_size or settings.ffmpeg_chunk_size

    def _resolve(self, key: str, bucket: Optional[str]) -> str:
        base = os.path.join(self.root, bucket) if bucket else self.root
        path = os.path.abspath(os.path.join(base, key.lstrip("/")))
        if os.path.commonpath([self.root, path]) != self.root:
            raise StorageError(f"Key escapes storage root: {key}", key=key)
        return path

    async def open_read_stream(
        self, key: str, *, bucket: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        try:
            path = self._resolve(key, bucket)
        except StorageError as e:
            raise StreamError(e.message, source_name=key) from e
        if not os.path.isfile(path):
            logger.error("File not found: %s", path)
            raise StreamError(f"File not found: {key}", source_name=key)
        return self._iter_file(path)

    async def _iter_file(self, path: str) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    async def write_object(
        self,
        key: str,
        body: Union[bytes, BinaryIO],
        content_type: str,
        *,
        bucket: Optional[str] = None,
    ) -> str:
        path = self._resolve(key, bucket)
        digest = hashlib.md5()
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                if isinstance(body, (bytes, bytearray)):
                    digest.update(body)
                    await out.write(body)
                else:
                    while True:
                        chunk = body.read(self.chunk_size)
                        if not chunk:
                            break
                        digest.update(chunk)
                        await out.write(chunk)
        except OSError as e:
            logger.error("Error writing object %s: %s", key, e)
            raise StorageError(f"Failed to upload buffer: {key}", key=key) from e
        etag = digest.hexdigest()
        logger.info("Object stored locally: %s (%s, etag=%s)", path, content_type, etag)
        return etag
