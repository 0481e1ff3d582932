"""
Shared test configuration and fixtures for the slideshow worker.
"""

import logging
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from slideshow_worker.application.interfaces import NamedStream
from slideshow_worker.application.slideshow.filter_graph import FilterGraphBuilder
from slideshow_worker.application.slideshow.validation import spec_from_lists
from slideshow_worker.core.exceptions import StreamError
from slideshow_worker.infrastructure.resource_manager import managed_temp_directory


def setup_logging():
    """Configure logging for the whole test run."""
    log_dir = Path("test/test_output/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "test_run.log"

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)-8s [%(name)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler = logging.FileHandler(filename=log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(formatter)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Noisy libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return log_file


def pytest_configure(config):  # pylint: disable=unused-argument
    log_file = setup_logging()
    logging.getLogger("pytest").info("Log file: %s", log_file)


@pytest.fixture(autouse=True, scope="session")
def set_temp_base_dir():
    """Force temporary directories to be created under test/temp for all tests."""
    base = Path("test/temp")
    base.mkdir(parents=True, exist_ok=True)
    os.environ["TEMP_BASE_DIR"] = str(base)
    yield


def make_spec(
    image_timings=(5, 5, 5),
    audio_timings=(15,),
    *,
    transition: Optional[float] = 1.0,
    output_key: str = "videos/out.mp4",
    **kwargs,
):
    return spec_from_lists(
        image_keys=[f"images/{i}.jpg" for i in range(len(image_timings))],
        image_timings=list(image_timings),
        audio_keys=[f"audio/{j}.mp3" for j in range(len(audio_timings))],
        audio_timings=list(audio_timings),
        output_key=output_key,
        transition_duration=transition,
        **kwargs,
    )


@pytest.fixture
def spec_factory():
    return make_spec


class FakeStore:
    """In-memory object store that records every call."""

    def __init__(self, objects: Optional[Dict[str, bytes]] = None, etag: str = "etag-1"):
        self.objects: Dict[str, bytes] = dict(objects or {})
        self.etag = etag
        self.opened: List[tuple] = []
        self.written: List[dict] = []
        self.closed: List[str] = []

    async def open_read_stream(self, key, *, bucket=None):
        self.opened.append((key, bucket))
        if key not in self.objects:
            raise StreamError(f"File not found: {key}", source_name=key)
        data = self.objects[key]

        async def _chunks():
            try:
                yield data
            finally:
                self.closed.append(key)

        return _chunks()

    async def write_object(self, key, body, content_type, *, bucket=None):
        data = body if isinstance(body, (bytes, bytearray)) else body.read()
        self.written.append(
            {"key": key, "data": data, "content_type": content_type, "bucket": bucket}
        )
        return self.etag


class FakeTranscoder:
    """Drains every input stream and writes a placeholder output file."""

    def __init__(self, error: Optional[BaseException] = None, write_output: bool = True):
        self.error = error
        self.write_output = write_output
        self.calls: List[dict] = []

    async def run(self, command_args, input_streams, cancel_event=None):
        received = []
        for stream in input_streams:
            data = b""
            async for chunk in stream.chunks:
                data += chunk
            received.append((stream.name, data))
        self.calls.append(
            {"args": list(command_args), "inputs": received, "cancel_event": cancel_event}
        )
        if self.error is not None:
            raise self.error
        if self.write_output:
            Path(command_args[-1]).write_bytes(b"fake-mp4")


def store_for(spec, payload: bytes = b"data") -> FakeStore:
    refs = [a.source_ref for a in list(spec.images) + list(spec.audio)]
    return FakeStore({ref: payload + ref.encode() for ref in refs})


@pytest.fixture
def fake_adapters_factory():
    def _make(store=None, transcoder=None):
        return SimpleNamespace(
            store=store or FakeStore(),
            transcoder=transcoder or FakeTranscoder(),
            builder=FilterGraphBuilder(),
            workspace=managed_temp_directory,
        )

    return _make


def bytes_stream(name: str, *chunks: bytes) -> NamedStream:
    async def _gen():
        for chunk in chunks:
            yield chunk

    return NamedStream(name=name, chunks=_gen())


@pytest.fixture
def fake_store_cls():
    return FakeStore


@pytest.fixture
def fake_transcoder_cls():
    return FakeTranscoder


@pytest.fixture
def store_for_spec():
    return store_for


@pytest.fixture
def stream_of():
    return bytes_stream
