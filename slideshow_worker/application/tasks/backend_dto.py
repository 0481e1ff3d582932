"""Task representation sent to the backend on every transition."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from slideshow_worker.core.pyd_schemas import Task, TaskAction, TaskStatus


class BackendTaskKind(str, Enum):
    create_slideshow = "create_slideshow"
    render_video = "render_video"


BackendTaskStatus = Literal["running", "error", "pending", "finished", "canceled"]


class CreateSlideshowResultDto(BaseModel):
    videoKey: str
    videoEtag: str


class RenderVideoResultDto(BaseModel):
    videoKey: str
    duration: float
    fileSize: float


class _BackendBaseTaskDto(BaseModel):
    id: str
    status: BackendTaskStatus
    progress: float
    error: Optional[str] = None


class CreateSlideshowTaskDto(_BackendBaseTaskDto):
    kind: Literal[BackendTaskKind.create_slideshow]
    result: Optional[CreateSlideshowResultDto] = None


class RenderVideoTaskDto(_BackendBaseTaskDto):
    kind: Literal[BackendTaskKind.render_video]
    result: Optional[RenderVideoResultDto] = None


BackendTaskDto = Annotated[
    Union[CreateSlideshowTaskDto, RenderVideoTaskDto], Field(discriminator="kind")
]
_backend_task_adapter = TypeAdapter(BackendTaskDto)


def map_task_action_to_backend(action: TaskAction) -> BackendTaskKind:
    match action:
        case TaskAction.create_slideshow:
            return BackendTaskKind.create_slideshow
        case TaskAction.render_video:
            return BackendTaskKind.render_video
    raise ValueError(f"Unknown task action: {action}")


def map_task_status_to_backend(status: TaskStatus) -> str:
    match status:
        case TaskStatus.processing:
            return "running"
        case TaskStatus.done:
            return "finished"
        case TaskStatus.error:
            return "error"
    return "pending"


def map_task_to_backend_dto(task: Task) -> Union[CreateSlideshowTaskDto, RenderVideoTaskDto]:
    """Validate and build the backend DTO; raises pydantic.ValidationError on mismatch."""
    return _backend_task_adapter.validate_python(
        {
            "id": task.id,
            "kind": map_task_action_to_backend(task.action),
            "status": map_task_status_to_backend(task.status),
            "progress": task.progress,
            "error": task.error or None,
            "result": task.result or None,
        }
    )
