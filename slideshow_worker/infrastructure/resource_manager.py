"""
Temporary work directories for slideshow jobs
"""

import asyncio
import logging
import os
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from slideshow_worker.core.config import settings

logger = logging.getLogger(__name__)


def _base_dir() -> str:
    # TEMP_BASE_DIR overrides the configured base (used by tests)
    return os.getenv("TEMP_BASE_DIR", settings.temp_base_dir)


@asynccontextmanager
async def managed_temp_directory(prefix: Optional[str] = None) -> AsyncIterator[str]:
    """Async context manager for a job-scoped temporary directory.

    The directory is removed on exit unless ``cleanup_temp_files`` is off,
    which keeps rendered artifacts around for debugging.
    """
    base_dir = _base_dir()
    os.makedirs(base_dir, exist_ok=True)

    if prefix is None:
        dir_prefix = os.path.join(base_dir, settings.temp_dir_prefix)
    else:
        safe_prefix = prefix.rstrip("_") + "_"
        dir_prefix = os.path.join(base_dir, safe_prefix)

    temp_dir = f"{dir_prefix}{uuid.uuid4().hex}"
    os.makedirs(temp_dir, exist_ok=True)

    try:
        yield temp_dir
    finally:
        if settings.cleanup_temp_files:
            await _cleanup_temp_directory_async(temp_dir)
        else:
            logger.debug("Keeping temporary directory: %s", temp_dir)


async def _cleanup_temp_directory_async(temp_dir: str) -> None:
    try:
        if not os.path.exists(temp_dir):
            return
        await asyncio.to_thread(shutil.rmtree, temp_dir, True)
        logger.info("Cleaned up temporary directory: %s", temp_dir)
    except (OSError, shutil.Error) as e:
        logger.warning("Failed to clean up temp directory %s: %s", temp_dir, str(e))


def cleanup_old_temp_directories(max_age_hours: float = 24.0) -> int:
    """Remove job directories left behind by a crashed process.

    Returns the number of directories removed.
    """
    base_dir = _base_dir()
    if not os.path.isdir(base_dir):
        return 0

    removed = 0
    max_age_seconds = max_age_hours * 3600
    now = time.time()
    for item in os.listdir(base_dir):
        if not item.startswith(settings.temp_dir_prefix):
            continue
        path = os.path.join(base_dir, item)
        try:
            if not os.path.isdir(path):
                continue
            age_seconds = now - os.path.getmtime(path)
            if age_seconds > max_age_seconds:
                logger.info(
                    "Cleaning up old temp directory: %s (age: %.1fh)",
                    path,
                    age_seconds / 3600,
                )
                shutil.rmtree(path, ignore_errors=True)
                removed += 1
        except OSError as e:
            logger.warning("Failed to process temp directory %s: %s", path, str(e))
    return removed
