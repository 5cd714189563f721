"""Progress event channel and newline-delimited JSON encoding."""

import asyncio
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator, Optional, Union

from pydantic import TypeAdapter, ValidationError

from .exceptions import ChannelClosedError
from .logging_config import get_logger
from .models import TERMINAL_EVENT_TYPES, ProgressEvent

logger = get_logger("event-media-pipeline.progress")

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(ProgressEvent)
_END = object()

Line = Union[str, bytes]


class ProgressChannel:
    """
    Append-only event channel with one writer and one reader.

    The channel closes itself after the first terminal event (``complete`` or
    ``error``); writing afterwards raises ``ChannelClosedError``. Reading
    yields events in the order they were sent and stops once the channel is
    closed and drained.
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False
        self.terminal_event: Optional[Any] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: Any) -> None:
        if self._closed:
            raise ChannelClosedError(f"Cannot send '{event.type}' event: channel is closed")
        self._queue.put_nowait(event)
        if event.type in TERMINAL_EVENT_TYPES:
            self.terminal_event = event
            self.close()

    def close(self) -> None:
        """Close without a terminal event (used on cancellation)."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[Any]:
        while True:
            event = await self._queue.get()
            if event is _END:
                return
            yield event


def encode_event(event: Any) -> str:
    """Serialize one event as a JSON line (trailing newline included)."""
    return event.model_dump_json(by_alias=True, exclude_none=True) + "\n"


def decode_event(line: Line) -> Optional[Any]:
    """
    Parse one NDJSON line into a progress event.

    Blank or unparsable lines return None; unknown fields are ignored.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        return _EVENT_ADAPTER.validate_json(line)
    except ValidationError as e:
        logger.debug(f"Skipping unparsable progress line: {line[:200]!r} ({e.error_count()} errors)")
        return None


def iter_ndjson_events(lines: Iterable[Line]) -> Iterator[Any]:
    for line in lines:
        event = decode_event(line)
        if event is not None:
            yield event


async def aiter_ndjson_events(lines: AsyncIterable[Line]) -> AsyncIterator[Any]:
    async for line in lines:
        event = decode_event(line)
        if event is not None:
            yield event


async def encode_stream(events: AsyncIterable[Any]) -> AsyncIterator[str]:
    """Turn an event stream into NDJSON lines for a streaming response."""
    async for event in events:
        yield encode_event(event)
