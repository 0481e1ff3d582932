from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, constr


class TaskStatus(str, Enum):
    processing = "processing"
    done = "done"
    error = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.processing


class TaskAction(str, Enum):
    create_slideshow = "createSlideshow"
    render_video = "renderVideo"


class InputMode(str, Enum):
    """How transcoder inputs are declared on the command line."""

    pipe = "pipe"
    file = "file"


class MediaAsset(BaseModel):
    """One source asset and how long it contributes to the slideshow."""

    model_config = ConfigDict(frozen=True)

    source_ref: constr(strip_whitespace=True, min_length=1)
    duration: float = Field(gt=0)


class SlideshowSpec(BaseModel):
    """Ordered slideshow description consumed by the filter-graph builder.

    Image and audio sequences are independent; cross-field rules (transition
    bound, optional count equality) are enforced by ``validate_slideshow_spec``.
    """

    model_config = ConfigDict(frozen=True)

    images: List[MediaAsset]
    audio: List[MediaAsset]
    transition_duration: Optional[float] = None
    output_ref: str
    input_bucket: Optional[str] = None
    output_bucket: Optional[str] = None

    @property
    def crossfade_enabled(self) -> bool:
        return bool(
            self.transition_duration
            and self.transition_duration > 0
            and len(self.images) > 1
        )

    @property
    def input_count(self) -> int:
        return len(self.images) + len(self.audio)


class SlideshowResult(BaseModel):
    videoKey: str
    videoEtag: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(BaseModel):
    """Immutable snapshot of a tracked job; the registry swaps snapshots."""

    model_config = ConfigDict(frozen=True)

    id: str
    action: TaskAction
    status: TaskStatus
    object_name: str
    progress: float = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    params: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
