from __future__ import annotations

import logging

from slideshow_worker.application.interfaces import IObjectStore
from slideshow_worker.application.pipeline.base import (
    PipelineContext,
    BaseStep,
    run_until_cancelled,
)
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import JobError
from slideshow_worker.core.pyd_schemas import SlideshowResult


logger = logging.getLogger(__name__)


class UploadOutputStep(BaseStep):
    name = "upload_output"
    required_keys = ["spec", "output_path"]

    def __init__(self, store: IObjectStore):
        self.store = store

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        spec = context.get("spec")
        output_path = context.get("output_path")

        logger.info("Uploading slideshow: %s -> %s", output_path, spec.output_ref)
        with open(output_path, "rb") as body:
            etag = await run_until_cancelled(
                self.store.write_object(
                    spec.output_ref,
                    body,
                    settings.slideshow_output_content_type,
                    bucket=spec.output_bucket,
                ),
                context.get_cancel_event(),
                what=f"upload of {spec.output_ref}",
            )
        if not etag:
            raise JobError(f"Storage returned no content identifier for {spec.output_ref}")

        context.set("result", SlideshowResult(videoKey=spec.output_ref, videoEtag=etag))
        logger.info("Slideshow uploaded to: %s (etag=%s)", spec.output_ref, etag)
