"""Progress channel between the ingestion pipeline and its reporter.

The pipeline writes events without ever awaiting the consumer: when the
buffer is full, non-terminal events are dropped, and a terminal event evicts
the oldest buffered one. Once the consumer detaches (e.g. the HTTP client
disconnected) every further event is discarded while ingestion carries on.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from magpie.models.link import ProgressEvent

logger = logging.getLogger(__name__)

TERMINAL_STAGES = ("completed", "error")

_CLOSED = object()


class ProgressChannel:
    """Bounded, non-blocking, single-consumer event channel."""

    def __init__(self, maxsize: int = 32) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        # One slot reserved for the close marker
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._closed = False
        self._detached = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ProgressEvent) -> None:
        """Buffer an event for the consumer. Never blocks."""
        if self._closed or self._detached:
            return
        if self._queue.qsize() >= self._maxsize:
            if event.stage not in TERMINAL_STAGES:
                self.dropped += 1
                logger.debug("Progress buffer full; dropped %s event", event.stage)
                return
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Signal end of stream; later emits are ignored."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def detach(self) -> None:
        """Consumer went away: stop buffering, free what is queued."""
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
