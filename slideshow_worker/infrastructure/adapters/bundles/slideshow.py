from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import Optional

from slideshow_worker.application.interfaces import IObjectStore, ISlideshowAdapters
from slideshow_worker.application.slideshow.filter_graph import FilterGraphBuilder
from slideshow_worker.core.config import settings
from slideshow_worker.infrastructure.adapters import (
    FFmpegProcessPipeline,
    LocalObjectStore,
    S3ObjectStore,
)
from slideshow_worker.infrastructure.resource_manager import managed_temp_directory

logger = logging.getLogger(__name__)


def get_object_store() -> IObjectStore:
    """S3 when configured, otherwise the local-disk store."""
    if settings.s3_configured:
        return S3ObjectStore()
    logger.warning(
        "S3 is not configured; using local object store at %s", settings.local_store_dir
    )
    return LocalObjectStore()


def get_slideshow_adapter_bundle(
    *, store: Optional[IObjectStore] = None
) -> ISlideshowAdapters:
    """Provide the adapters container for the slideshow pipeline."""
    return SimpleNamespace(
        store=store or get_object_store(),
        transcoder=FFmpegProcessPipeline(timeout=settings.ffmpeg_timeout),
        builder=FilterGraphBuilder(),
        workspace=managed_temp_directory,
    )
