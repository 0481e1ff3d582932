"""In-process task registry.

Holds one immutable ``Task`` snapshot per id. Every mutation takes that id's
lock, swaps in a new snapshot and enqueues exactly one notification, so
unrelated jobs never contend and no update to the same task is lost.

States: processing -> done | error. Both terminal states are final.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from slideshow_worker.application.interfaces import ITaskNotifier
from slideshow_worker.core.exceptions import ConflictError, NotFoundError, TaskStateError
from slideshow_worker.core.pyd_schemas import Task, TaskAction, TaskStatus, utcnow

logger = logging.getLogger(__name__)


class TaskRegistry:
    def __init__(
        self,
        notifier: Optional[ITaskNotifier] = None,
        *,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self._notifier = notifier
        self._clock = clock
        self._tasks: Dict[str, Task] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    async def create(
        self,
        task_id: str,
        *,
        action: TaskAction,
        object_name: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Task:
        """Insert a new ``processing`` record.

        Raises:
            ConflictError: if ``task_id`` is already registered.
        """
        lock = self._locks.setdefault(task_id, asyncio.Lock())
        async with lock:
            if task_id in self._tasks:
                raise ConflictError("Task with this ID already exists", task_id)
            now = self._clock()
            task = Task(
                id=task_id,
                action=action,
                status=TaskStatus.processing,
                object_name=object_name,
                progress=0,
                created_at=now,
                updated_at=now,
                params=params or {},
            )
            self._tasks[task_id] = task
            self._notify(task)
        logger.info("Task %s created (%s)", task_id, action.value)
        return task

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found", task_id)
        return task

    async def complete(self, task_id: str, result: Dict[str, Any]) -> Task:
        """processing -> done, attaching ``result``."""
        task = await self._transition(
            task_id, status=TaskStatus.done, result=result, progress=100
        )
        logger.info("Task %s done", task_id)
        return task

    async def fail(self, task_id: str, error_message: str) -> Task:
        """processing -> error, attaching a human-readable message."""
        task = await self._transition(
            task_id, status=TaskStatus.error, error=error_message or "Unknown error"
        )
        logger.info("Task %s failed: %s", task_id, task.error)
        return task

    async def update_progress(self, task_id: str, progress: float) -> Task:
        """Record progress (0-100) on a task that is still processing."""
        progress = max(0.0, min(100.0, float(progress)))
        current = self.get(task_id)
        if current.progress == progress:
            return current
        return await self._transition(task_id, progress=progress)

    async def _transition(self, task_id: str, **changes: Any) -> Task:
        lock = self._locks.get(task_id)
        if lock is None or task_id not in self._tasks:
            raise NotFoundError(f"Task with ID {task_id} not found", task_id)
        async with lock:
            current = self._tasks[task_id]
            if current.status.is_terminal:
                raise TaskStateError(
                    f"Task {task_id} is already {current.status.value}", task_id
                )
            updated = current.model_copy(
                update={**changes, "updated_at": self._clock()}
            )
            self._tasks[task_id] = updated
            self._notify(updated)
        return updated

    def _notify(self, task: Task) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(task)
        except Exception as e:  # noqa: BLE001
            logger.error("Error notifying task status for %s: %s", task.id, e)
