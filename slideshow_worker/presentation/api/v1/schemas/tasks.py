from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from slideshow_worker.application.slideshow.validation import output_key_problem
from slideshow_worker.core.pyd_schemas import TaskStatus


class CreateSlideshowRequest(BaseModel):
    """Body of ``POST /tasks/{id}``; keys are object-store keys."""

    imageKeys: List[str]
    imageTimings: List[float] = Field(description="Seconds per image, each >= 1")
    audioKeys: List[str]
    audioTimings: List[float] = Field(description="Seconds per audio clip, each >= 1")
    outputKey: str = Field(min_length=1, max_length=1024)
    transitionDuration: Optional[float] = Field(default=None, ge=0)
    inputBucket: Optional[str] = None
    outputBucket: Optional[str] = None

    @model_validator(mode="after")
    def check_request(self):
        for name in ("imageTimings", "audioTimings"):
            if any(t < 1 for t in getattr(self, name)):
                raise ValueError(f"{name} values must be greater than or equal to 1")
        problem = output_key_problem(self.outputKey)
        if problem:
            raise ValueError(problem)
        if len(self.imageKeys) != len(self.imageTimings):
            raise ValueError("imageKeys and imageTimings must have the same length")
        if len(self.audioKeys) != len(self.audioTimings):
            raise ValueError("audioKeys and audioTimings must have the same length")
        return self


class CreateTaskResponse(BaseModel):
    id: str
    status: TaskStatus
    progress: float


class TaskStatusResponse(BaseModel):
    id: str
    status: TaskStatus
    progress: float
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
