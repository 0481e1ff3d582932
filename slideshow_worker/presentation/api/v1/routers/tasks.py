import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from pydantic import ValidationError as PydanticValidationError

from slideshow_worker.application.slideshow.validation import (
    implicit_transition,
    spec_from_lists,
)
from slideshow_worker.application.tasks.service import TaskService
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import (
    ConflictError,
    ValidationError,
    jsonable_errors,
)
from slideshow_worker.core.pyd_schemas import TaskStatus
from slideshow_worker.presentation.api.v1.dependencies.tasks import get_task_service
from slideshow_worker.presentation.api.v1.schemas.tasks import (
    CreateSlideshowRequest,
    CreateTaskResponse,
    TaskStatusResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks")


def _require_uuid(task_id: str) -> str:
    try:
        uuid.UUID(task_id)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Invalid taskId format",
                "details": "Must be a valid UUID.",
            },
        )
    return task_id


@router.post("/{task_id}", status_code=201, response_model=CreateTaskResponse)
async def create_slideshow_task(
    task_id: str,
    response: Response,
    payload: Dict[str, Any] = Body(...),
    service: TaskService = Depends(get_task_service),
):
    """Register a slideshow task and start rendering it in the background."""
    _require_uuid(task_id)
    if task_id in service.registry:
        # Duplicates are rejected before the body is looked at
        raise ConflictError("Task with this ID already exists", task_id)

    try:
        request = CreateSlideshowRequest.model_validate(payload)
    except PydanticValidationError as e:
        errors = jsonable_errors(e.errors())
        raise ValidationError("Invalid slideshow request", errors) from e

    transition = request.transitionDuration
    if transition is None:
        transition = implicit_transition(
            request.imageTimings, settings.slideshow_default_transition
        )
    spec = spec_from_lists(
        image_keys=request.imageKeys,
        image_timings=request.imageTimings,
        audio_keys=request.audioKeys,
        audio_timings=request.audioTimings,
        output_key=request.outputKey,
        transition_duration=transition,
        input_bucket=request.inputBucket,
        output_bucket=request.outputBucket,
    )

    task = await service.submit_slideshow(task_id, spec)
    logger.info(
        "Slideshow task %s accepted: %d image(s), %d audio, output=%s",
        task_id,
        len(spec.images),
        len(spec.audio),
        spec.output_ref,
    )
    response.headers["Location"] = f"/api/v1/tasks/{task_id}"
    return CreateTaskResponse(id=task.id, status=task.status, progress=task.progress)


@router.get(
    "/{task_id}", response_model=TaskStatusResponse, response_model_exclude_none=True
)
async def get_task_status(task_id: str, service: TaskService = Depends(get_task_service)):
    _require_uuid(task_id)
    task = service.registry.get(task_id)
    if task.status is TaskStatus.error:
        return TaskStatusResponse(
            id=task.id,
            status=task.status,
            progress=task.progress,
            error=task.error or "Unknown error",
        )
    return TaskStatusResponse(
        id=task.id, status=task.status, progress=task.progress, result=task.result
    )


@router.delete(
    "/{task_id}",
    status_code=202,
    response_model=TaskStatusResponse,
    response_model_exclude_none=True,
)
async def cancel_task(task_id: str, service: TaskService = Depends(get_task_service)):
    """Ask a running task to stop; it ends in ``error`` once the job unwinds."""
    _require_uuid(task_id)
    task = await service.cancel(task_id)
    return TaskStatusResponse(id=task.id, status=task.status, progress=task.progress)
