from __future__ import annotations
from typing import Protocol

from slideshow_worker.core.pyd_schemas import Task


class ITaskNotifier(Protocol):
    """Publishes task transitions to an external collaborator.

    ``notify`` must never block or raise into the caller; delivery is
    best-effort and happens in the background.
    """

    def notify(self, task: Task) -> None:
        ...

    async def aclose(self) -> None:
        """Flush pending notifications and release resources."""
        ...
