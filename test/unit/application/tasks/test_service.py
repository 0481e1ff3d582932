from __future__ import annotations

import asyncio

import pytest

from slideshow_worker.application.tasks.registry import TaskRegistry
from slideshow_worker.application.use_cases.slideshow_create import (
    CreateSlideshowUseCase,
)
from slideshow_worker.application.tasks.service import (
    CANCELLED_MESSAGE,
    TaskService,
    describe_error,
)
from slideshow_worker.core.exceptions import (
    ConflictError,
    ProcessCancelledError,
    ProcessError,
    TaskStateError,
    ValidationError,
)
from slideshow_worker.core.pyd_schemas import SlideshowResult, TaskStatus


class _UseCase:
    def __init__(self, behaviour="ok"):
        self.behaviour = behaviour
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = []

    async def execute(self, spec, *, run_id=None, cancel_event=None, on_progress=None):
        self.calls.append(run_id)
        self.started.set()
        if on_progress is not None:
            await on_progress(40.0)
            await on_progress(100.0)
        if self.behaviour == "fail":
            raise ProcessError(
                "ffmpeg process exited with code 1",
                returncode=1,
                stderr="Invalid data found when processing input",
            )
        if self.behaviour == "empty":
            raise RuntimeError()
        if self.behaviour == "block":
            await cancel_event.wait()
            raise ProcessCancelledError()
        if self.behaviour == "hang":
            await asyncio.sleep(3600)
        if self.behaviour == "ignore_cancel":
            await self.release.wait()
        return SlideshowResult(videoKey=spec.output_ref, videoEtag="etag-1")


def _service(use_case):
    return TaskService(TaskRegistry(), lambda: use_case)


@pytest.mark.asyncio
async def test_successful_job_completes_with_result(spec_factory):
    use_case = _UseCase()
    service = _service(use_case)

    task = await service.submit_slideshow("t-1", spec_factory(output_key="videos/a.mp4"))
    assert task.status is TaskStatus.processing

    final = await service.wait("t-1")
    assert final.status is TaskStatus.done
    assert final.progress == 100
    assert final.result == {"videoKey": "videos/a.mp4", "videoEtag": "etag-1"}
    assert use_case.calls == ["t-1"]
    assert service.active_jobs == 0


@pytest.mark.asyncio
async def test_progress_is_recorded_while_processing(spec_factory):
    use_case = _UseCase("hang")
    service = _service(use_case)
    await service.submit_slideshow("t-1", spec_factory())
    await use_case.started.wait()
    await asyncio.sleep(0)

    assert service.registry.get("t-1").progress == 40.0
    await service.shutdown()


@pytest.mark.asyncio
async def test_failed_job_records_error_text(spec_factory):
    service = _service(_UseCase("fail"))
    await service.submit_slideshow("t-1", spec_factory())

    final = await service.wait("t-1")
    assert final.status is TaskStatus.error
    assert "exited with code 1" in final.error
    assert "Invalid data found" in final.error


@pytest.mark.asyncio
async def test_empty_exception_message_uses_class_name(spec_factory):
    service = _service(_UseCase("empty"))
    await service.submit_slideshow("t-1", spec_factory())
    assert (await service.wait("t-1")).error == "RuntimeError"


@pytest.mark.asyncio
async def test_invalid_spec_creates_no_task(spec_factory):
    use_case = _UseCase()
    service = _service(use_case)
    spec = spec_factory((5, 1), (6,), transition=2)

    with pytest.raises(ValidationError):
        await service.submit_slideshow("t-1", spec)
    assert "t-1" not in service.registry
    assert use_case.calls == []


@pytest.mark.asyncio
async def test_duplicate_submission_keeps_first_task(spec_factory):
    use_case = _UseCase("hang")
    service = _service(use_case)
    await service.submit_slideshow("t-1", spec_factory(output_key="videos/first.mp4"))

    with pytest.raises(ConflictError):
        await service.submit_slideshow("t-1", spec_factory(output_key="videos/b.mp4"))

    assert service.registry.get("t-1").object_name == "videos/first.mp4"
    assert service.active_jobs == 1
    await service.shutdown()


@pytest.mark.asyncio
async def test_cancel_ends_task_in_error(spec_factory):
    use_case = _UseCase("block")
    service = _service(use_case)
    await service.submit_slideshow("t-1", spec_factory())
    await use_case.started.wait()

    await service.cancel("t-1")
    final = await service.wait("t-1")

    assert final.status is TaskStatus.error
    assert final.error == CANCELLED_MESSAGE


@pytest.mark.asyncio
async def test_cancel_accepted_while_finishing_is_not_reported_done(spec_factory):
    use_case = _UseCase("ignore_cancel")
    service = _service(use_case)
    await service.submit_slideshow("t-1", spec_factory())
    await use_case.started.wait()

    await service.cancel("t-1")
    use_case.release.set()
    final = await service.wait("t-1")

    assert final.status is TaskStatus.error
    assert final.error == CANCELLED_MESSAGE
    assert final.result is None


@pytest.mark.asyncio
async def test_cancel_during_upload_ends_task_in_error(
    spec_factory, fake_store_cls, fake_adapters_factory
):
    spec = spec_factory()
    upload_started = asyncio.Event()

    class _SlowStore(fake_store_cls):
        async def write_object(self, key, body, content_type, *, bucket=None):
            upload_started.set()
            await asyncio.sleep(0.3)
            return await super().write_object(key, body, content_type, bucket=bucket)

    refs = [a.source_ref for a in list(spec.images) + list(spec.audio)]
    store = _SlowStore({ref: b"data" for ref in refs})
    adapters = fake_adapters_factory(store=store)
    service = TaskService(TaskRegistry(), lambda: CreateSlideshowUseCase(adapters))

    await service.submit_slideshow("t-1", spec)
    await asyncio.wait_for(upload_started.wait(), timeout=5)
    await service.cancel("t-1")
    final = await service.wait("t-1")

    assert final.status is TaskStatus.error
    assert final.error == CANCELLED_MESSAGE
    assert store.written == []


@pytest.mark.asyncio
async def test_cancel_terminal_task_is_rejected(spec_factory):
    service = _service(_UseCase())
    await service.submit_slideshow("t-1", spec_factory())
    await service.wait("t-1")

    with pytest.raises(TaskStateError):
        await service.cancel("t-1")


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_jobs(spec_factory):
    use_case = _UseCase("hang")
    service = _service(use_case)
    await service.submit_slideshow("t-1", spec_factory())
    await use_case.started.wait()

    await service.shutdown()

    task = service.registry.get("t-1")
    assert task.status is TaskStatus.error
    assert task.error == CANCELLED_MESSAGE
    assert service.active_jobs == 0


def test_describe_error():
    assert describe_error(ValueError("  bad input ")) == "bad input"
    assert describe_error(KeyError()) == "KeyError"
