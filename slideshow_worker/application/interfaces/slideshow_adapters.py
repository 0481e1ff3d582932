from __future__ import annotations

from typing import AsyncContextManager, Callable, Protocol, runtime_checkable

from .object_store import IObjectStore
from .transcoder import ITranscoderPipeline


@runtime_checkable
class ISlideshowAdapters(Protocol):
    store: IObjectStore
    transcoder: ITranscoderPipeline
    # FilterGraphBuilder (application-level, injected so canvas/codecs can vary)
    builder: object
    # returns an async context manager yielding a job-scoped work directory
    workspace: Callable[[], AsyncContextManager[str]]
