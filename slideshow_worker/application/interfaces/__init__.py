from .object_store import IObjectStore
from .transcoder import ITranscoderPipeline, NamedStream
from .notifier import ITaskNotifier
from .slideshow_adapters import ISlideshowAdapters

__all__ = [
    "IObjectStore",
    "ITranscoderPipeline",
    "NamedStream",
    "ITaskNotifier",
    "ISlideshowAdapters",
]
