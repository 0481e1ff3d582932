from __future__ import annotations

from typing import List, Optional

from slideshow_worker.application.pipeline.base import (
    Middleware,
    Pipeline,
    ProgressCallback,
    Step,
)


class PipelineFactory:
    """Fluent builder for Pipelines, with optional middlewares per step.

    Example:
        factory = PipelineFactory()
        pipeline = factory.add(step1).add(step2).build()
    """

    def __init__(
        self,
        *,
        middlewares: List[Middleware] | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self._steps: List[Step] = []
        self._middlewares = list(middlewares or [])
        self._on_progress = on_progress

    def add(self, step: Step) -> "PipelineFactory":
        wrapped = step
        for mw in self._middlewares:
            wrapped = mw(wrapped)
        self._steps.append(wrapped)
        return self

    def extend(self, steps: List[Step]) -> "PipelineFactory":
        for s in steps:
            self.add(s)
        return self

    def build(self) -> Pipeline:
        return Pipeline(self._steps, on_progress=self._on_progress)
