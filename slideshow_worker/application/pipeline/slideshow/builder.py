from __future__ import annotations

from typing import Optional

from slideshow_worker.application.pipeline.base import (
    Pipeline,
    ProgressCallback,
    make_logging_middleware,
)
from slideshow_worker.application.pipeline.factory import PipelineFactory
from slideshow_worker.application.interfaces import ISlideshowAdapters
from slideshow_worker.application.pipeline.slideshow.steps.validate_spec import (
    ValidateSpecStep,
)
from slideshow_worker.application.pipeline.slideshow.steps.open_streams import (
    OpenStreamsStep,
)
from slideshow_worker.application.pipeline.slideshow.steps.render_slideshow import (
    RenderSlideshowStep,
)
from slideshow_worker.application.pipeline.slideshow.steps.upload_output import (
    UploadOutputStep,
)


def build_slideshow_pipeline(
    adapters: ISlideshowAdapters,
    *,
    enable_logging_middleware: bool = True,
    on_progress: Optional[ProgressCallback] = None,
) -> Pipeline:
    """Assemble validate -> open streams -> render -> upload."""
    middlewares = [make_logging_middleware()] if enable_logging_middleware else []
    factory = PipelineFactory(middlewares=middlewares, on_progress=on_progress)
    factory.add(ValidateSpecStep())
    factory.add(OpenStreamsStep(adapters.store))
    factory.add(RenderSlideshowStep(adapters.transcoder, adapters.builder))
    factory.add(UploadOutputStep(adapters.store))
    return factory.build()
