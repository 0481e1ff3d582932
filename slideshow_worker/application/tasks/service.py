from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple

from slideshow_worker.application.slideshow.validation import validate_slideshow_spec
from slideshow_worker.application.tasks.registry import TaskRegistry
from slideshow_worker.application.use_cases.slideshow_create import (
    CreateSlideshowUseCase,
)
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import ProcessCancelledError, TaskStateError
from slideshow_worker.core.pyd_schemas import SlideshowSpec, Task, TaskAction

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Task cancelled"


def describe_error(exc: BaseException) -> str:
    """Human-readable text recorded on a failed task."""
    text = str(exc).strip()
    return text or type(exc).__name__


class TaskService:
    """Runs slideshow jobs in the background and records their outcome.

    One asyncio task and one cancellation event per job. The registry's
    terminal transition happens only after the job's result is known.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        use_case_factory: Callable[[], CreateSlideshowUseCase],
    ) -> None:
        self.registry = registry
        self._use_case_factory = use_case_factory
        self._jobs: Dict[str, Tuple[asyncio.Task, asyncio.Event]] = {}

    @property
    def active_jobs(self) -> int:
        return len(self._jobs)

    async def submit_slideshow(self, task_id: str, spec: SlideshowSpec) -> Task:
        """Validate, register and start a slideshow job.

        Raises:
            ValidationError: before any record exists.
            ConflictError: when ``task_id`` is taken; the existing record is untouched.
        """
        validate_slideshow_spec(
            spec, require_equal_counts=settings.slideshow_require_equal_counts
        )
        task = await self.registry.create(
            task_id,
            action=TaskAction.create_slideshow,
            object_name=spec.output_ref,
            params=spec.model_dump(mode="json"),
        )

        cancel_event = asyncio.Event()
        job = asyncio.create_task(
            self._run_slideshow(task_id, spec, cancel_event), name=f"slideshow-{task_id}"
        )
        self._jobs[task_id] = (job, cancel_event)
        job.add_done_callback(lambda _: self._jobs.pop(task_id, None))
        return task

    async def cancel(self, task_id: str) -> Task:
        """Signal a running job to stop; the job records the terminal state."""
        task = self.registry.get(task_id)
        entry = self._jobs.get(task_id)
        if task.status.is_terminal or entry is None:
            raise TaskStateError(
                f"Task {task_id} is already {task.status.value}", task_id
            )
        logger.info("Cancelling task %s", task_id)
        entry[1].set()
        return task

    async def wait(self, task_id: str) -> Task:
        """Wait for a job to reach its terminal state (used by tests and shutdown)."""
        entry = self._jobs.get(task_id)
        if entry is not None:
            await asyncio.gather(entry[0], return_exceptions=True)
        return self.registry.get(task_id)

    async def shutdown(self) -> None:
        """Cancel every in-flight job and wait for them to record their outcome."""
        jobs = [job for job, _ in self._jobs.values()]
        for job, event in list(self._jobs.values()):
            event.set()
            job.cancel()
        if jobs:
            logger.info("Cancelling %d in-flight job(s)", len(jobs))
            await asyncio.gather(*jobs, return_exceptions=True)

    async def _run_slideshow(
        self, task_id: str, spec: SlideshowSpec, cancel_event: asyncio.Event
    ) -> None:
        async def _progress(value: float) -> None:
            if value < 100:
                await self.registry.update_progress(task_id, value)

        try:
            use_case = self._use_case_factory()
            result = await use_case.execute(
                spec, run_id=task_id, cancel_event=cancel_event, on_progress=_progress
            )
        except asyncio.CancelledError:
            await self._record_failure(task_id, CANCELLED_MESSAGE)
            raise
        except ProcessCancelledError:
            await self._record_failure(task_id, CANCELLED_MESSAGE)
        except Exception as e:  # noqa: BLE001
            logger.exception("Error creating slideshow for task %s", task_id)
            await self._record_failure(task_id, describe_error(e))
        else:
            if cancel_event.is_set():
                # Cancel was accepted while the job was finishing
                logger.info("Task %s cancelled after its last step", task_id)
                await self._record_failure(task_id, CANCELLED_MESSAGE)
                return
            await self.registry.complete(task_id, result.model_dump())
            logger.info(
                "Slideshow created successfully and uploaded to: %s", result.videoKey
            )

    async def _record_failure(self, task_id: str, message: str) -> None:
        try:
            await self.registry.fail(task_id, message)
        except TaskStateError:
            logger.warning("Task %s already terminal; dropping error: %s", task_id, message)
