"""
Stream Channel.

Bounded queue between the producer (which decides what to send) and the
HTTP response (which writes bytes to the client). When the client goes
away the response detaches the channel; from then on the producer's sends
are dropped and it carries on without a reader.
"""
import asyncio
import logging
from typing import AsyncIterator

from .types import StreamEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class StreamChannel:
    def __init__(self, maxsize: int = 64):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._detached = False
        self.sent: list[StreamEvent] = []

    @property
    def detached(self) -> bool:
        return self._detached

    async def send(self, event: StreamEvent) -> bool:
        """
        Queue an event for the client.

        Returns False if the event was dropped (closed or detached channel).
        """
        if self._closed or self._detached:
            return False
        self.sent.append(event)
        await self._queue.put(event)
        return True

    async def close(self) -> None:
        """Signal end of stream to the reader."""
        if self._closed:
            return
        self._closed = True
        if not self._detached:
            await self._queue.put(_CLOSED)

    def detach(self) -> None:
        """
        Reader is gone. Drop queued events and release a blocked producer.
        """
        if self._detached:
            return
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()
        logger.debug("Stream channel detached with %d events sent", len(self.sent))

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Events in order until the producer closes the channel."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def frames(self) -> AsyncIterator[str]:
        """
        SSE frames for a streaming response.

        Detaches the channel when the response stops consuming, whether
        because the stream ended or the client disconnected.
        """
        try:
            async for event in self.events():
                yield event.encode()
        finally:
            self.detach()
