from __future__ import annotations

import asyncio
import os
import logging

from slideshow_worker.application.interfaces import ITranscoderPipeline
from slideshow_worker.application.pipeline.base import PipelineContext, BaseStep
from slideshow_worker.application.slideshow.filter_graph import (
    FilterGraphBuilder,
    composed_video_duration,
)
from slideshow_worker.core.exceptions import JobError

logger = logging.getLogger(__name__)


class RenderSlideshowStep(BaseStep):
    """Build the filter graph and run the transcoder over the opened streams.

    Input:  spec, input_streams, work_dir (context.input), cancel_event (optional)
    Output: output_path
    """

    name = "render_slideshow"
    required_keys = ["spec", "input_streams"]
    progress_weight = 8.0

    def __init__(self, transcoder: ITranscoderPipeline, builder: FilterGraphBuilder):
        self.transcoder = transcoder
        self.builder = builder

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        spec = context.get("spec")
        streams = context.get("input_streams")
        work_dir = context.input.get("work_dir") or "."
        cancel_event: asyncio.Event | None = context.input.get("cancel_event")

        output_path = os.path.join(work_dir, f"slideshow_{context.ensure_run_id()}.mp4")
        _, args = self.builder.build(spec, output_path)

        logger.info(
            "Rendering slideshow: %d images, %d audio, transition=%s, expected video %.2fs",
            len(spec.images),
            len(spec.audio),
            spec.transition_duration,
            composed_video_duration(spec),
        )
        await self.transcoder.run(args, streams, cancel_event)

        if not os.path.exists(output_path):
            raise JobError(
                f"Transcoder reported success but output not found: {output_path}"
            )
        try:
            size_mb = os.path.getsize(output_path) / (1024 * 1024)
            logger.info("Slideshow rendered: %s (%.2f MB)", output_path, size_mb)
        except OSError:  # size is best-effort
            logger.info("Slideshow rendered: %s", output_path)
        context.set("output_path", output_path)
