from __future__ import annotations
from typing import AsyncIterator, BinaryIO, Optional, Protocol, Union


class IObjectStore(Protocol):
    """Named byte-blob storage (S3, local disk, ...).

    Reads are streamed so large media never has to sit in memory.
    """

    async def open_read_stream(
        self, key: str, *, bucket: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """Open ``key`` and return an async iterator over its byte chunks."""
        ...

    async def write_object(
        self,
        key: str,
        body: Union[bytes, BinaryIO],
        content_type: str,
        *,
        bucket: Optional[str] = None,
    ) -> str:
        """Store ``body`` under ``key`` and return its content identifier (ETag)."""
        ...
