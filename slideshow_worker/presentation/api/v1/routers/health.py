"""
Health check API endpoints
"""

import shutil
import time

from fastapi import APIRouter, Depends

from slideshow_worker.application.tasks.service import TaskService
from slideshow_worker.core.config import settings
from slideshow_worker.presentation.api.v1.dependencies.tasks import get_task_service

router = APIRouter(tags=["health"])

_started_at = time.time()


@router.get("/health")
async def health_check(service: TaskService = Depends(get_task_service)):
    """
    Health check endpoint that reports transcoder availability and job load
    """
    ffmpeg_available = shutil.which(settings.ffmpeg_binary_path) is not None
    return {
        "status": "healthy" if ffmpeg_available else "degraded",
        "version": settings.api_version,
        "uptime_seconds": round(time.time() - _started_at, 1),
        "ffmpeg_available": ffmpeg_available,
        "storage": "s3" if settings.s3_configured else "local",
        "notifications": bool(settings.backend_url),
        "tasks": len(service.registry),
        "active_jobs": service.active_jobs,
    }


@router.get("/")
async def root():
    """
    Root endpoint
    """
    return {"message": "Slideshow Worker API is running", "status": "healthy"}
