from functools import lru_cache

from slideshow_worker.application.interfaces import ITaskNotifier
from slideshow_worker.application.tasks.registry import TaskRegistry
from slideshow_worker.application.tasks.service import TaskService
from slideshow_worker.application.use_cases.slideshow_create import (
    CreateSlideshowUseCase,
)
from slideshow_worker.core.config import settings
from slideshow_worker.infrastructure.adapters import NullNotifier, WebhookNotifier
from slideshow_worker.infrastructure.adapters.bundles.slideshow import (
    get_slideshow_adapter_bundle,
)


def get_create_slideshow_use_case() -> CreateSlideshowUseCase:
    """Compose the CreateSlideshowUseCase at Presentation layer using adapter providers."""
    return CreateSlideshowUseCase(get_slideshow_adapter_bundle())


@lru_cache(maxsize=1)
def get_notifier() -> ITaskNotifier:
    if settings.backend_url:
        return WebhookNotifier(settings.backend_url)
    return NullNotifier()


@lru_cache(maxsize=1)
def get_task_registry() -> TaskRegistry:
    return TaskRegistry(get_notifier())


@lru_cache(maxsize=1)
def get_task_service() -> TaskService:
    """Process-wide service; jobs outlive the request that submitted them."""
    return TaskService(get_task_registry(), get_create_slideshow_use_case)
