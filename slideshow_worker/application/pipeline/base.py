from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    TypedDict,
    runtime_checkable,
)
import logging
from abc import ABC, abstractmethod
from time import perf_counter
from enum import Enum
import asyncio
import uuid

from slideshow_worker.core.exceptions import ProcessCancelledError


ProgressCallback = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class PipelineContext:
    """Common pipeline context shared across all steps of one job run.

    - input: request/run input payload (treated as read-only)
    - artifacts: cross-step working data and outputs (also stores run-scoped
      technical info like run_id via reserved keys)
    """

    # Reserved artifact keys (not dataclass fields)
    RUN_ID_KEY: ClassVar[str] = "_run_id"

    input: Mapping[str, Any]
    artifacts: Dict[str, Any] = field(default_factory=dict)

    # ----- Artifacts: primary cross-step data store -----
    def set(self, key: str, value: Any) -> None:
        self.artifacts[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.artifacts.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.artifacts

    # ----- Run ID (generic, stored in artifacts) -----
    def get_run_id(self) -> Optional[str]:
        return self.get(self.RUN_ID_KEY, None)

    def ensure_run_id(self, factory: Optional[Callable[[], str]] = None) -> str:
        rid = self.get_run_id()
        if not rid and factory:
            rid = factory()
        if not rid:
            rid = str(uuid.uuid4())
        self.set(self.RUN_ID_KEY, rid)
        return rid

    # ----- Cancellation (caller-owned event in input) -----
    def get_cancel_event(self) -> Optional[asyncio.Event]:
        return self.input.get("cancel_event")

    def raise_if_cancelled(self, where: str = "pipeline") -> None:
        event = self.get_cancel_event()
        if event is not None and event.is_set():
            raise ProcessCancelledError(f"Cancelled before {where}")


async def run_until_cancelled(
    awaitable: Awaitable[Any],
    cancel_event: Optional[asyncio.Event],
    *,
    what: str = "operation",
) -> Any:
    """Await ``awaitable`` unless ``cancel_event`` fires first.

    On cancellation the pending work is cancelled and awaited before
    ``ProcessCancelledError`` is raised. Work that already finished wins over
    a cancellation that arrived in the same iteration.
    """
    if cancel_event is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise ProcessCancelledError(f"{what} cancelled")

    waiter = asyncio.create_task(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not work.done():
            work.cancel()
        await asyncio.gather(work, waiter, return_exceptions=True)

    if work.cancelled():
        raise ProcessCancelledError(f"{what} cancelled")
    return work.result()


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@runtime_checkable
class Step(Protocol):
    name: str

    async def __call__(
        self, context: PipelineContext
    ) -> None:  # pragma: no cover - protocol
        ...


logger = logging.getLogger(__name__)


class BaseStep(ABC):
    """Base class for pipeline steps with lifecycle hooks, status and timeout.

    Steps never retry: a failed transcode or upload is reported as-is and the
    caller resubmits.
    """

    name: str = "base_step"

    # execution config
    required_keys: List[str] = []
    timeout: Optional[float] = None  # seconds
    # share of overall job progress this step accounts for
    progress_weight: float = 1.0

    # runtime fields
    status: StepStatus = StepStatus.PENDING
    last_error: Optional[BaseException] = None
    duration: float = 0.0

    async def __call__(self, context: PipelineContext) -> None:
        self.last_error = None

        missing = [k for k in self.required_keys if not context.has(k)]
        if missing:
            raise KeyError(
                f"Missing required inputs for step '{self.name}': {', '.join(missing)}"
            )

        self.status = StepStatus.RUNNING
        self.on_start(context)
        start = perf_counter()
        try:
            if self.timeout:
                try:
                    await asyncio.wait_for(self.run(context), timeout=self.timeout)
                except asyncio.TimeoutError as e:
                    raise asyncio.TimeoutError(
                        f"Step {self.name} timed out after {self.timeout}s"
                    ) from e
            else:
                await self.run(context)
            self.status = StepStatus.COMPLETED
        except BaseException as e:
            self.last_error = e
            self.status = StepStatus.FAILED
            raise
        finally:
            self.duration = perf_counter() - start
            self.on_finish(context, self.duration)

    @abstractmethod
    async def run(
        self, context: PipelineContext
    ) -> None:  # pragma: no cover - abstract
        ...

    # Hooks
    def on_start(self, context: PipelineContext) -> None:
        logger.debug("Step %s start", self.name)

    def on_finish(self, context: PipelineContext, duration: float) -> None:
        logger.info(
            "Step %s finished in %.3fs with status=%s run_id=%s",
            self.name,
            duration,
            self.status.value,
            context.get_run_id(),
        )


class StepResult(TypedDict):  # pragma: no cover - typing helper
    name: str
    status: str
    duration: float
    error: Optional[str]


class PipelineResult(TypedDict):  # pragma: no cover - typing helper
    success: bool
    duration: float
    steps: List[StepResult]
    context: PipelineContext


class Pipeline:
    """Runs steps in order; the first failure propagates unchanged."""

    def __init__(
        self, steps: List[Step], *, on_progress: Optional[ProgressCallback] = None
    ):
        self._steps = steps
        self._on_progress = on_progress

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    async def execute(self, context: PipelineContext) -> PipelineResult:
        context.ensure_run_id()

        pipeline_start = perf_counter()
        results: Dict[str, Any] = {"success": False, "duration": 0.0, "steps": []}
        total_weight = sum(
            float(getattr(s, "progress_weight", 1.0)) for s in self._steps
        ) or 1.0
        done_weight = 0.0

        for step in self._steps:
            step_name = getattr(step, "name", step.__class__.__name__)
            context.raise_if_cancelled(f"step {step_name}")
            step_info: Dict[str, Any] = {
                "name": step_name,
                "status": StepStatus.PENDING.value,
                "duration": 0.0,
                "error": None,
            }
            results["steps"].append(step_info)

            step_start = perf_counter()
            try:
                await step(context)  # use __call__ lifecycle
                step_info["status"] = StepStatus.COMPLETED.value
            except Exception as e:  # noqa: BLE001
                step_info["status"] = StepStatus.FAILED.value
                step_info["error"] = str(e)
                raise
            finally:
                step_info["duration"] = perf_counter() - step_start

            done_weight += float(getattr(step, "progress_weight", 1.0))
            if self._on_progress is not None:
                await self._on_progress(round(100.0 * done_weight / total_weight, 1))

        results["duration"] = perf_counter() - pipeline_start
        results["success"] = True
        results["context"] = context
        return results


class Middleware(Protocol):  # pragma: no cover - optional extension point
    def __call__(self, step: Step) -> Step: ...


def make_logging_middleware(
    logger_obj: logging.Logger | None = None,
    level_before: int = logging.DEBUG,
    level_after: int = logging.INFO,
) -> Middleware:
    """Return a middleware that logs before and after each step execution.

    Logs include: step name, run_id, status, duration.
    """
    _log = logger_obj or logger

    def _middleware(step: Step) -> Step:
        class _Wrapped:
            def __init__(self, inner: Step):
                self._inner = inner

            def __getattr__(self, item):  # delegate attributes like 'name'
                return getattr(self._inner, item)

            async def __call__(self, context: PipelineContext) -> None:
                step_name = getattr(self._inner, "name", self._inner.__class__.__name__)
                rid = context.get_run_id()
                _log.log(level_before, "[run_id=%s] Step %s BEGIN", rid, step_name)
                start = perf_counter()
                try:
                    await self._inner(context)
                finally:
                    status = getattr(self._inner, "status", StepStatus.PENDING)
                    _log.log(
                        level_after,
                        "[run_id=%s] Step %s END status=%s duration=%.3fs",
                        rid,
                        step_name,
                        getattr(status, "value", str(status)),
                        perf_counter() - start,
                    )

        return _Wrapped(step)

    return _middleware
