from __future__ import annotations

from slideshow_worker.application.pipeline.base import PipelineContext, BaseStep
from slideshow_worker.application.slideshow.validation import validate_slideshow_spec
from slideshow_worker.core.config import settings
from slideshow_worker.core.pyd_schemas import SlideshowSpec


class ValidateSpecStep(BaseStep):
    """Input: spec. Output: spec (validated)."""

    name = "validate_spec"
    progress_weight = 0.0

    async def run(self, context: PipelineContext) -> None:  # type: ignore[override]
        spec = context.input.get("spec")
        if not isinstance(spec, SlideshowSpec):
            raise ValueError("context.input['spec'] must be a SlideshowSpec")
        validate_slideshow_spec(
            spec, require_equal_counts=settings.slideshow_require_equal_counts
        )
        context.set("spec", spec)
