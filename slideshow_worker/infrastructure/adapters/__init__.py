from .storage.s3_store import S3ObjectStore
from .storage.local_store import LocalObjectStore
from .ffmpeg.process_pipeline import FFmpegProcessPipeline
from .notifier_webhook import NullNotifier, WebhookNotifier

__all__ = [
    "S3ObjectStore",
    "LocalObjectStore",
    "FFmpegProcessPipeline",
    "NullNotifier",
    "WebhookNotifier",
]
