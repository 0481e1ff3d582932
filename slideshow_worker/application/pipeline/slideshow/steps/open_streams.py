from __future__ import annotations

import asyncio
import logging
from typing import List

from slideshow_worker.application.interfaces import IObjectStore, NamedStream
from slideshow_worker.application.pipeline.base import (
    PipelineContext,
    BaseStep,
    run_until_cancelled,
)
from slideshow_worker.core.exceptions import StreamError
from slideshow_worker.core.pyd_schemas import SlideshowSpec

logger = logging.getLogger(__name__)


async def close_streams(streams: List[NamedStream]) -> None:
    """Release source streams that were opened but never fully consumed."""
    for stream in streams:
        aclose = getattr(stream.chunks, "aclose", None)
        if aclose is None:
            continue
        try:
            await aclose()
        except Exception as e:  # noqa: BLE001
            logger.debug("Closing stream %s failed: %s", stream.name, e)


class OpenStreamsStep(BaseStep):
    """Open one read stream per asset, images first, then audio.

    Input:  spec
    Output: input_streams (ordered as the transcoder input channels)
    """

    name = "open_streams"
    required_keys = ["spec"]

    def __init__(self, store: IObjectStore):
        self.store = store

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        spec: SlideshowSpec = context.get("spec")
        assets = list(spec.images) + list(spec.audio)

        async def _open(ref: str) -> NamedStream:
            chunks = await self.store.open_read_stream(ref, bucket=spec.input_bucket)
            return NamedStream(name=ref, chunks=chunks)

        results = await run_until_cancelled(
            asyncio.gather(
                *(_open(a.source_ref) for a in assets), return_exceptions=True
            ),
            context.get_cancel_event(),
            what="opening input streams",
        )
        opened = [r for r in results if isinstance(r, NamedStream)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            await close_streams(opened)
            first = failures[0]
            if isinstance(first, StreamError):
                raise first
            raise StreamError(f"Failed to open input stream: {first}") from first

        logger.info(
            "Opened %d image and %d audio streams", len(spec.images), len(spec.audio)
        )
        context.set("input_streams", opened)
