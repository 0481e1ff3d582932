from __future__ import annotations

import asyncio

import pytest

from slideshow_worker.application.tasks.registry import TaskRegistry
from slideshow_worker.core.exceptions import (
    ConflictError,
    NotFoundError,
    TaskStateError,
)
from slideshow_worker.core.pyd_schemas import TaskAction, TaskStatus


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.seen = []

    def notify(self, task):
        self.seen.append(task)
        if self.fail:
            raise RuntimeError("backend down")

    async def aclose(self):
        return None


async def _create(registry, task_id="t-1"):
    return await registry.create(
        task_id,
        action=TaskAction.create_slideshow,
        object_name="videos/out.mp4",
        params={"outputKey": "videos/out.mp4"},
    )


@pytest.mark.asyncio
async def test_create_starts_processing_and_notifies():
    notifier = RecordingNotifier()
    registry = TaskRegistry(notifier)

    task = await _create(registry)

    assert task.status is TaskStatus.processing
    assert task.progress == 0
    assert registry.get("t-1") == task
    assert "t-1" in registry and len(registry) == 1
    assert [t.status for t in notifier.seen] == [TaskStatus.processing]


@pytest.mark.asyncio
async def test_duplicate_id_is_rejected_and_record_untouched():
    registry = TaskRegistry()
    original = await _create(registry)

    with pytest.raises(ConflictError):
        await _create(registry)
    assert registry.get("t-1") is original


def test_unknown_id_raises_not_found():
    with pytest.raises(NotFoundError):
        TaskRegistry().get("missing")


@pytest.mark.asyncio
async def test_complete_sets_result_and_full_progress():
    notifier = RecordingNotifier()
    registry = TaskRegistry(notifier)
    created = await _create(registry)

    done = await registry.complete("t-1", {"videoKey": "videos/out.mp4", "videoEtag": "e"})

    assert done.status is TaskStatus.done
    assert done.progress == 100
    assert done.result == {"videoKey": "videos/out.mp4", "videoEtag": "e"}
    assert done.updated_at >= created.updated_at
    assert created.status is TaskStatus.processing  # snapshots are immutable
    assert len(notifier.seen) == 2


@pytest.mark.asyncio
async def test_terminal_states_are_final():
    registry = TaskRegistry()
    await _create(registry)
    await registry.fail("t-1", "boom")

    with pytest.raises(TaskStateError):
        await registry.complete("t-1", {"videoKey": "k", "videoEtag": "e"})
    with pytest.raises(TaskStateError):
        await registry.update_progress("t-1", 50)
    assert registry.get("t-1").error == "boom"


@pytest.mark.asyncio
async def test_fail_without_message_uses_placeholder():
    registry = TaskRegistry()
    await _create(registry)
    task = await registry.fail("t-1", "")
    assert task.error == "Unknown error"


@pytest.mark.asyncio
async def test_progress_is_clamped_and_deduplicated():
    notifier = RecordingNotifier()
    registry = TaskRegistry(notifier)
    await _create(registry)

    await registry.update_progress("t-1", 150)
    await registry.update_progress("t-1", 100)

    assert registry.get("t-1").progress == 100
    assert len(notifier.seen) == 2


@pytest.mark.asyncio
async def test_notifier_errors_do_not_break_transitions():
    registry = TaskRegistry(RecordingNotifier(fail=True))
    await _create(registry)
    task = await registry.complete("t-1", {"videoKey": "k", "videoEtag": "e"})
    assert task.status is TaskStatus.done


@pytest.mark.asyncio
async def test_concurrent_updates_on_different_tasks_do_not_interfere():
    notifier = RecordingNotifier()
    registry = TaskRegistry(notifier)
    ids = [f"t-{i}" for i in range(10)]
    await asyncio.gather(*(_create(registry, i) for i in ids))

    await asyncio.gather(
        *(registry.complete(i, {"videoKey": i, "videoEtag": "e"}) for i in ids[::2]),
        *(registry.fail(i, f"failed {i}") for i in ids[1::2]),
    )

    for n, task_id in enumerate(ids):
        task = registry.get(task_id)
        if n % 2 == 0:
            assert task.status is TaskStatus.done and task.result["videoKey"] == task_id
        else:
            assert task.status is TaskStatus.error and task.error == f"failed {task_id}"
    assert len(notifier.seen) == 20
