"""
Bounded channel carrying decoded frames from a decode thread to the event loop.

The producer runs in a worker thread and blocks on :meth:`FrameChannel.blocking_send`
while the channel is full, so decoding never runs more than ``capacity`` frames
ahead of classification. Closing the receiving side makes every pending and
future send raise :class:`~modshield.errors.ChannelClosed`, which is how an
abandoned decode learns to stop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from modshield.datatypes.content_datatypes import Frame
from modshield.errors import ChannelClosed

_END = object()


class FrameChannel:
    """Single-producer, single-consumer frame queue bridging a thread and the event loop.

    Must be constructed on the event loop that will consume it.
    """

    def __init__(self, capacity: int, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()
        self._finished = False
        self.error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def finished(self) -> bool:
        """True once the end-of-stream marker has been received."""
        return self._finished

    # --------------------------
    # Producer side (worker thread)
    # --------------------------
    def blocking_send(self, frame: Frame) -> None:
        """Send one frame, blocking while the channel is full.

        Raises:
            ChannelClosed: If the receiver closed the channel.
        """
        self._blocking(self._put(frame))

    def blocking_finish(self, error: BaseException | None = None) -> None:
        """Mark end of stream, optionally recording the error that ended it."""
        self.error = error
        try:
            self._blocking(self._put(_END))
        except ChannelClosed:
            pass

    def _blocking(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._closed.is_set():
            coro.close()
            raise ChannelClosed()
        try:
            future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        except RuntimeError as exc:
            coro.close()
            raise ChannelClosed("event loop is no longer running") from exc
        future.result()

    async def _put(self, item: Any) -> None:
        if self._closed.is_set():
            raise ChannelClosed()
        put_task = asyncio.ensure_future(self._queue.put(item))
        closed_task = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({put_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed_task.cancel()
            delivered = put_task.done() and not put_task.cancelled()
            if not delivered:
                put_task.cancel()
        if not delivered:
            raise ChannelClosed()

    # --------------------------
    # Consumer side (event loop)
    # --------------------------
    async def recv(self) -> Frame | None:
        """Return the next frame, or ``None`` once the stream has ended or been closed."""
        if self._finished or self._closed.is_set():
            return None
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            return None
        return item

    def close(self) -> None:
        """Stop receiving; the producer's next send raises ChannelClosed."""
        self._closed.set()
        while not self._queue.empty():
            self._queue.get_nowait()
