"""Streaming process orchestration for the external transcoder.

Each input stream gets its own OS pipe whose read end is inherited by the child
process; ffmpeg reads it through ``pipe:<fd>``. Copies into the pipes run as
sibling tasks under ``FFmpegProcessPipeline.run``: the first source read error
or a cancellation stops the process and every sibling.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from asyncio import subprocess
from typing import List, Optional, Sequence

from slideshow_worker.application.interfaces.transcoder import (
    ITranscoderPipeline,
    NamedStream,
)
from slideshow_worker.core.config import settings
from slideshow_worker.core.exceptions import (
    ProcessCancelledError,
    ProcessError,
    StreamError,
)

logger = logging.getLogger(__name__)

_PIPE_INPUT = re.compile(r"^pipe:(\d+)$")
# Pipe errors raised once the transcoder has stopped reading
_CLOSED_BY_PEER = (BrokenPipeError, ConnectionResetError)
_MAX_DIAGNOSTIC_CHARS = 64 * 1024


def bind_pipe_inputs(command_args: Sequence[str], fds: Sequence[int]) -> List[str]:
    """Rewrite ``-i pipe:<n>`` so that channel n points at descriptor ``fds[n]``."""
    bound = list(command_args)
    for i in range(1, len(bound)):
        if bound[i - 1] != "-i":
            continue
        match = _PIPE_INPUT.match(str(bound[i]))
        if match is None:
            continue
        channel = int(match.group(1))
        if channel >= len(fds):
            raise ProcessError(
                f"Input pipe:{channel} has no matching input stream "
                f"({len(fds)} provided)",
                command=command_args,
            )
        bound[i] = f"pipe:{fds[channel]}"
    return bound


class ProcessHandle:
    """One transcoder invocation and the write ends of its input channels."""

    def __init__(
        self,
        process: subprocess.Process,
        writers: List[asyncio.StreamWriter],
        command: List[str],
    ) -> None:
        self.process = process
        self.writers = writers
        self.command = command

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    async def terminate(self, grace: float) -> None:
        """SIGTERM, then SIGKILL if the process outlives ``grace`` seconds."""
        if self.process.returncode is not None:
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self.process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Transcoder ignored SIGTERM for %.1fs; killing", grace)
            try:
                self.process.kill()
            except ProcessLookupError:
                return
            await self.process.wait()

    def close_channels(self) -> None:
        for writer in self.writers:
            if not writer.is_closing():
                writer.close()


class FFmpegProcessPipeline(ITranscoderPipeline):
    """Runs ffmpeg with N piped inputs, diagnostics on stdout/stderr.

    Args:
        binary: transcoder executable (default ``settings.ffmpeg_binary_path``)
        chunk_size: bytes read per source chunk
        kill_grace: seconds between SIGTERM and SIGKILL on stop
        timeout: overall seconds before the process is stopped, None for no limit
    """

    def __init__(
        self,
        *,
        binary: Optional[str] = None,
        chunk_size: Optional[int] = None,
        kill_grace: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.binary = binary or settings.ffmpeg_binary_path
        self.chunk_size = chunk_size or settings.ffmpeg_chunk_size
        self.kill_grace = (
            settings.ffmpeg_kill_grace if kill_grace is None else kill_grace
        )
        self.timeout = timeout

    async def run(
        self,
        command_args: Sequence[str],
        input_streams: Sequence[NamedStream],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        handle = await self._spawn(command_args, len(input_streams))
        copy_tasks = [
            asyncio.create_task(
                self._copy_input(i, stream, writer), name=f"copy-input-{i}"
            )
            for i, (stream, writer) in enumerate(zip(input_streams, handle.writers))
        ]
        stdout_task = asyncio.create_task(
            _collect_output(handle.process.stdout, "stdout")
        )
        stderr_task = asyncio.create_task(
            _collect_output(handle.process.stderr, "stderr")
        )
        exit_task = asyncio.create_task(handle.process.wait(), name="transcoder-exit")
        cancel_task = (
            asyncio.create_task(cancel_event.wait(), name="transcoder-cancel")
            if cancel_event is not None
            else None
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout else None
        pending_copies = set(copy_tasks)
        try:
            while True:
                watched = {exit_task, *pending_copies}
                if cancel_task is not None:
                    watched.add(cancel_task)
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, _ = await asyncio.wait(
                    watched, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )

                if not done:
                    logger.error("Transcoder timed out after %ss; stopping", self.timeout)
                    await handle.terminate(self.kill_grace)
                    raise ProcessError(
                        f"Transcoder timed out after {self.timeout}s",
                        command=handle.command,
                        returncode=handle.returncode,
                    )

                if cancel_task is not None and cancel_task in done:
                    logger.info("Cancellation requested; stopping transcoder")
                    await handle.terminate(self.kill_grace)
                    raise ProcessCancelledError(
                        command=handle.command, returncode=handle.returncode
                    )

                for task in done & pending_copies:
                    pending_copies.discard(task)
                    exc = task.exception()
                    if exc is not None:
                        logger.error("Input copy failed, stopping transcoder: %s", exc)
                        await handle.terminate(self.kill_grace)
                        raise exc

                if exit_task in done:
                    break

            returncode = exit_task.result()
            stdout_text = await stdout_task
            stderr_text = await stderr_task
            if returncode != 0:
                logger.error("FFmpeg process exited with code %s", returncode)
                logger.error("Error output: %s", stderr_text[-2000:])
                raise ProcessError(
                    f"ffmpeg process exited with code {returncode}",
                    command=handle.command,
                    returncode=returncode,
                    stderr=stderr_text,
                )
            logger.info("FFmpeg process completed successfully")
            logger.debug("FFmpeg output: %s", stdout_text)
        finally:
            if handle.returncode is None:
                # Caller went away (outer cancellation or unexpected error)
                await handle.terminate(self.kill_grace)
            for task in copy_tasks:
                if not task.done():
                    task.cancel()
            if cancel_task is not None:
                cancel_task.cancel()
            await asyncio.gather(*copy_tasks, return_exceptions=True)
            handle.close_channels()
            for task in (stdout_task, stderr_task, exit_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(
                stdout_task, stderr_task, exit_task, return_exceptions=True
            )

    async def _spawn(self, command_args: Sequence[str], channels: int) -> ProcessHandle:
        pipes = [os.pipe() for _ in range(channels)]
        read_fds = [r for r, _ in pipes]
        write_fds = [w for _, w in pipes]
        try:
            args = bind_pipe_inputs(command_args, read_fds)
            command = [self.binary, *args]
            logger.debug("Spawning transcoder: %s", " ".join(command))
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                pass_fds=read_fds,
            )
        except FileNotFoundError as e:
            _close_fds(write_fds)
            raise ProcessError(
                f"Transcoder not found: {self.binary}. "
                "Please ensure FFmpeg is installed and in PATH.",
                command=[self.binary, *command_args],
            ) from e
        except OSError as e:
            _close_fds(write_fds)
            raise ProcessError(
                f"Failed to start transcoder: {e}",
                command=[self.binary, *command_args],
            ) from e
        except BaseException:
            _close_fds(write_fds)
            raise
        finally:
            # The child holds its own copies of the read ends
            _close_fds(read_fds)

        pipe_files = [os.fdopen(fd, "wb", buffering=0) for fd in write_fds]
        writers: List[asyncio.StreamWriter] = []
        try:
            for pipe_file in pipe_files:
                writers.append(await _open_writer(pipe_file))
        except BaseException:
            for writer in writers:
                writer.close()
            for pipe_file in pipe_files[len(writers):]:
                pipe_file.close()
            handle = ProcessHandle(process, [], command)
            await handle.terminate(self.kill_grace)
            raise
        return ProcessHandle(process, writers, command)

    async def _copy_input(
        self, index: int, stream: NamedStream, writer: asyncio.StreamWriter
    ) -> None:
        """Copy one source into its channel, then close the channel."""
        logger.debug("Connecting input stream %d (%s) to its pipe", index, stream.name)
        chunks = stream.chunks.__aiter__()
        copied = 0
        try:
            while True:
                try:
                    chunk = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                except asyncio.CancelledError:
                    raise
                except Exception as e:  # noqa: BLE001
                    raise StreamError(
                        f"Input stream {index} ({stream.name}) error: {e}",
                        source_name=stream.name,
                    ) from e
                if not chunk:
                    continue
                try:
                    writer.write(chunk)
                    await writer.drain()
                except _CLOSED_BY_PEER:
                    logger.warning(
                        "Input pipe %d closed by transcoder (expected during completion)",
                        index,
                    )
                    return
                except OSError as e:
                    raise ProcessError(f"Input pipe {index} error: {e}") from e
                copied += len(chunk)
            logger.debug(
                "Input stream %d (%s) ended after %d bytes", index, stream.name, copied
            )
        finally:
            if not writer.is_closing():
                writer.close()
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:  # noqa: BLE001
                    logger.debug("Closing input stream %d failed: %s", index, e)


async def _open_writer(pipe) -> asyncio.StreamWriter:
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.connect_write_pipe(
        lambda: asyncio.streams.FlowControlMixin(loop=loop), pipe
    )
    return asyncio.StreamWriter(transport, protocol, None, loop)


async def _collect_output(reader: Optional[asyncio.StreamReader], label: str) -> str:
    """Accumulate a diagnostic channel, keeping the most recent output."""
    if reader is None:
        return ""
    text = ""
    while True:
        data = await reader.read(4096)
        if not data:
            break
        decoded = data.decode("utf-8", errors="replace")
        if label == "stderr":
            logger.debug("FFmpeg stderr: %s", decoded.rstrip())
        text = (text + decoded)[-_MAX_DIAGNOSTIC_CHARS:]
    return text


def _close_fds(fds: Sequence[int]) -> None:
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            pass
