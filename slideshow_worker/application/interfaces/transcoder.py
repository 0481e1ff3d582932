from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol, Sequence


@dataclass(slots=True)
class NamedStream:
    """A source byte stream plus a name used in logs and errors."""

    name: str
    chunks: AsyncIterator[bytes]


class ITranscoderPipeline(Protocol):
    """Runs the external transcoder against a set of piped input streams."""

    async def run(
        self,
        command_args: Sequence[str],
        input_streams: Sequence[NamedStream],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        """Feed ``input_streams`` into the process and return on exit code 0.

        Inputs declared as ``pipe:<n>`` in ``command_args`` refer to the n-th
        entry of ``input_streams``. Raises ProcessError, ProcessCancelledError
        or StreamError.
        """
        ...
