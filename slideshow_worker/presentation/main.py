import os
import logging
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, APIRouter
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
from contextlib import asynccontextmanager

from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import (
    SlideshowError,
    general_exception_handler,
    http_exception_handler,
    slideshow_exception_handler,
    validation_exception_handler,
)
from slideshow_worker.core.middleware import RequestLoggingMiddleware
from slideshow_worker.infrastructure.resource_manager import (
    cleanup_old_temp_directories,
)
from slideshow_worker.presentation.api.v1.dependencies.tasks import (
    get_notifier,
    get_task_service,
)
from slideshow_worker.presentation.api.v1.routers import health, tasks


def configure_logging() -> None:
    """Log to console and, when log_file is set, to a rotating file."""
    log_handlers = [logging.StreamHandler()]
    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        log_handlers.append(
            RotatingFileHandler(
                settings.log_file,
                maxBytes=5 * 1024 * 1024,
                backupCount=2,
                encoding="utf-8",
            )
        )
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format=settings.log_format,
        datefmt=settings.log_date_format,
        handlers=log_handlers,
    )


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Starting Slideshow Worker API...")
    removed = cleanup_old_temp_directories()
    if removed:
        logger.info("Removed %d stale temp directories", removed)
    yield
    logger.info("Shutting down Slideshow Worker API...")
    await get_task_service().shutdown()
    await get_notifier().aclose()


def create_application() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SlideshowError, slideshow_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include API routers under versioned prefix
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(tasks.router, tags=["tasks"])
    api_v1.include_router(health.router)
    app.include_router(api_v1)

    return app


# Create application instance
app = create_application()

if __name__ == "__main__":
    dev_mode = os.getenv("DEV_MODE", "false").lower() == "true"
    uvicorn.run(
        "slideshow_worker.presentation.main:app",
        host=settings.host,
        port=settings.port,
        reload=dev_mode,
    )
