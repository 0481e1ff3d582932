from __future__ import annotations

import asyncio
import logging
from typing import Optional

from slideshow_worker.application.interfaces import ISlideshowAdapters
from slideshow_worker.application.pipeline.base import (
    PipelineContext,
    PipelineResult,
    ProgressCallback,
)
from slideshow_worker.application.pipeline.slideshow.builder import (
    build_slideshow_pipeline,
)
from slideshow_worker.application.pipeline.slideshow.steps.open_streams import (
    close_streams,
)
from slideshow_worker.core.exceptions import JobError
from slideshow_worker.core.pyd_schemas import SlideshowResult, SlideshowSpec

logger = logging.getLogger(__name__)


def summarize_steps(result: PipelineResult) -> str:
    """One-line timing summary, e.g. ``validate_spec=0.001s open_streams=0.120s``."""
    return " ".join(
        f"{step['name']}={step['duration']:.3f}s" for step in result["steps"]
    )


class CreateSlideshowUseCase:
    """Build one slideshow from stored assets and upload the result.

    Failures from any step propagate unchanged; nothing is retried.
    """

    def __init__(self, adapters: ISlideshowAdapters) -> None:
        self._adapters = adapters

    async def execute(
        self,
        spec: SlideshowSpec,
        *,
        run_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SlideshowResult:
        async with self._adapters.workspace() as work_dir:
            ctx = PipelineContext(
                input={"spec": spec, "work_dir": work_dir, "cancel_event": cancel_event}
            )
            if run_id:
                ctx.ensure_run_id(lambda: run_id)

            pipeline = build_slideshow_pipeline(self._adapters, on_progress=on_progress)
            try:
                result = await pipeline.execute(ctx)
            finally:
                # Streams the transcoder never drained (e.g. it failed to start)
                await close_streams(ctx.get("input_streams") or [])

        logger.info(
            "Slideshow pipeline for run %s finished in %.3fs: %s",
            ctx.get_run_id(),
            result["duration"],
            summarize_steps(result),
        )
        output = result["context"].get("result")
        if not isinstance(output, SlideshowResult):
            raise JobError("Slideshow pipeline finished without an uploaded result")
        return output
