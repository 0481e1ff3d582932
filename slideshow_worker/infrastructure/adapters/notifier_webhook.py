from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

import aiohttp

from slideshow_worker.application.interfaces.notifier import ITaskNotifier
from slideshow_worker.application.tasks.backend_dto import map_task_to_backend_dto
from slideshow_worker.core.config import settings
from slideshow_worker.core.pyd_schemas import Task

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger(__name__ + ".dead_letter")


class WebhookDeliveryError(Exception):
    """Raised when the backend answers a notification with a non-2xx status."""


class NullNotifier(ITaskNotifier):
    """Used when no backend URL is configured."""

    def notify(self, task: Task) -> None:
        logger.debug("Notification disabled; task %s is %s", task.id, task.status.value)

    async def aclose(self) -> None:
        return None


class WebhookNotifier(ITaskNotifier):
    """Background sender that PATCHes task snapshots to ``{base_url}/tasks/{id}``.

    ``notify`` only enqueues. A single worker delivers in order, retrying with
    exponential backoff and jitter; what still fails is dead-lettered (logged
    and kept in a bounded in-memory list). The job is never blocked.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        max_backoff: Optional[float] = None,
        jitter: Optional[float] = None,
        timeout: Optional[float] = None,
        queue_size: Optional[int] = None,
        dead_letter_size: Optional[int] = None,
    ) -> None:
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.retries = settings.notify_retries if retries is None else retries
        self.retry_backoff = (
            settings.notify_retry_backoff if retry_backoff is None else retry_backoff
        )
        self.max_backoff = settings.notify_max_backoff if max_backoff is None else max_backoff
        self.jitter = settings.notify_jitter if jitter is None else jitter
        self.timeout = settings.notify_timeout if timeout is None else timeout
        self.queue_size = queue_size or settings.notify_queue_size
        self.dead_letters: Deque[Dict[str, Any]] = deque(
            maxlen=dead_letter_size or settings.notify_dead_letter_size
        )
        self._queue: Optional[asyncio.Queue[Tuple[str, Dict[str, Any]]]] = None
        self._worker: Optional[asyncio.Task] = None
        self._session: Optional[aiohttp.ClientSession] = None

    def notify(self, task: Task) -> None:
        try:
            payload = map_task_to_backend_dto(task).model_dump(mode="json")
        except Exception as e:  # noqa: BLE001
            logger.error("Cannot map task %s for notification: %s", task.id, e)
            return

        self._ensure_worker()
        try:
            self._queue.put_nowait((task.id, payload))
        except asyncio.QueueFull:
            self._dead_letter(task.id, payload, "notification queue full", 0)

    async def flush(self) -> None:
        """Wait until every queued notification was delivered or dead-lettered."""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        if self._queue is not None and self._worker is not None:
            try:
                await asyncio.wait_for(self.flush(), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Dropping %d undelivered notification(s) on shutdown",
                    self._queue.qsize(),
                )
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _ensure_worker(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.queue_size)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name="webhook-notifier"
            )

    async def _run(self) -> None:
        while True:
            task_id, payload = await self._queue.get()
            try:
                await self._deliver(task_id, payload)
            except Exception as e:  # noqa: BLE001
                self._dead_letter(task_id, payload, str(e), 0)
            finally:
                self._queue.task_done()

    async def _deliver(self, task_id: str, payload: Dict[str, Any]) -> None:
        url = f"{self.base_url}/tasks/{task_id}"
        attempts = 0
        while True:
            attempts += 1
            try:
                await self._send(url, payload)
                logger.info(
                    "Successfully notified task status webhook for task: %s %s",
                    task_id,
                    payload.get("status"),
                )
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, WebhookDeliveryError) as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Error notifying task status webhook (attempt %d): %s",
                    attempts,
                    last_error,
                )

            if attempts > self.retries:
                self._dead_letter(task_id, payload, last_error, attempts)
                return
            sleep_s = max(0.0, float(self.retry_backoff)) * (2 ** (attempts - 1))
            sleep_s = min(float(self.max_backoff), sleep_s)
            sleep_s += random.uniform(0.0, max(0.0, float(self.jitter)))
            await asyncio.sleep(sleep_s)

    async def _send(self, url: str, payload: Dict[str, Any]) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        async with self._session.patch(url, json=payload) as response:
            if response.status >= 400:
                raise WebhookDeliveryError(f"{response.status} {response.reason}")

    def _dead_letter(
        self, task_id: str, payload: Dict[str, Any], reason: str, attempts: int
    ) -> None:
        self.dead_letters.append(
            {"task_id": task_id, "payload": payload, "reason": reason, "attempts": attempts}
        )
        dead_letter_logger.error(
            "Notification for task %s dead-lettered after %d attempt(s): %s | payload=%s",
            task_id,
            attempts,
            reason,
            payload,
        )
