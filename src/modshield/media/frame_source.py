"""
Turns a media candidate into a lazy stream of RGBA frames.

Each :class:`FrameStream` is backed by a :class:`FrameChannel` whose producer
(fetch + decode) runs in a worker thread:

- images produce exactly one frame;
- GIFs produce one frame per animation frame, skipping broken frames;
- videos are probed, subsampled to at most ``sample_count`` frames and
  rescaled by ffmpeg before crossing the channel.

The channel capacity defaults to the number of physical cores so decoding
stays at most that many frames ahead of classification.
"""

from __future__ import annotations

import asyncio
import os
from typing import Callable

import psutil

from modshield.datatypes.content_datatypes import Frame, MediaItem, MediaKind
from modshield.errors import ChannelClosed
from modshield.media.frame_channel import FrameChannel
from modshield.media.image_decoding import decode_image, iter_gif_frames
from modshield.media.media_fetch import fetch_media_bytes
from modshield.media.video_decoder import DEFAULT_SAMPLE_COUNT, FFmpegVideoDecoder, sample_stride
from modshield.util.logger import get_logger

logger = get_logger("frame_source")


def physical_core_count() -> int:
    """Return the number of physical cores, falling back to logical cores."""
    return psutil.cpu_count(logical=False) or os.cpu_count() or 1


class FrameStream:
    """Lazy, finite, non-restartable sequence of frames for one media item.

    Iterate with ``async for`` or call :meth:`recv` until it returns ``None``.
    A decode or network failure is raised once the frames decoded before it
    have been consumed. Closing the stream abandons the remaining decode work.
    """

    def __init__(self, item: MediaItem, channel: FrameChannel, producer: asyncio.Future) -> None:
        self.item = item
        self._channel = channel
        self._producer = producer

    async def recv(self) -> Frame | None:
        frame = await self._channel.recv()
        if frame is None and self._channel.finished and self._channel.error is not None:
            error, self._channel.error = self._channel.error, None
            raise error
        return frame

    def close(self) -> None:
        self._channel.close()

    async def join(self) -> None:
        """Wait until the producer has stopped, after the stream ended or was closed."""
        await self._producer

    def __aiter__(self) -> "FrameStream":
        return self

    async def __anext__(self) -> Frame:
        frame = await self.recv()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def __aenter__(self) -> "FrameStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class FrameSource:
    """Opens :class:`FrameStream` objects for images, GIFs and videos."""

    def __init__(
        self,
        video_decoder: FFmpegVideoDecoder | None = None,
        *,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        fetch_timeout: float = 30.0,
        channel_capacity: int | None = None,
        fetch: Callable[..., bytes] = fetch_media_bytes,
    ) -> None:
        self.video_decoder = video_decoder or FFmpegVideoDecoder()
        self.sample_count = sample_count
        self.fetch_timeout = fetch_timeout
        self.channel_capacity = channel_capacity or physical_core_count()
        self._fetch = fetch

    def open(self, item: MediaItem) -> FrameStream:
        """Start decoding ``item`` in the background and return its frame stream.

        Must be called from the event loop.
        """
        producers = {
            MediaKind.IMAGE: self._produce_image,
            MediaKind.GIF: self._produce_gif,
            MediaKind.VIDEO: self._produce_video,
        }
        channel = FrameChannel(self.channel_capacity)
        task = asyncio.ensure_future(
            asyncio.to_thread(self._run_producer, producers[item.kind], item.url, channel)
        )
        return FrameStream(item, channel, task)

    def _run_producer(self, producer: Callable[[str, FrameChannel], None], url: str, channel: FrameChannel) -> None:
        try:
            producer(url, channel)
        except ChannelClosed:
            logger.debug("[FRAMES] Receiver closed; stopped decoding %s", url)
            return
        except Exception as exc:
            logger.debug("[FRAMES] Decoding %s failed: %s", url, exc)
            channel.blocking_finish(exc)
            return
        channel.blocking_finish()

    def _produce_image(self, url: str, channel: FrameChannel) -> None:
        channel.blocking_send(decode_image(self._fetch(url, timeout=self.fetch_timeout)))

    def _produce_gif(self, url: str, channel: FrameChannel) -> None:
        for frame in iter_gif_frames(self._fetch(url, timeout=self.fetch_timeout)):
            channel.blocking_send(frame)

    def _produce_video(self, url: str, channel: FrameChannel) -> None:
        info = self.video_decoder.probe(url)
        stride = sample_stride(info.frame_count, self.sample_count)
        logger.info(
            "[VIDEO] %s: %d frames, %dx%d %s, sampling every %d",
            url, info.frame_count, info.width, info.height, info.pixel_format, stride,
        )
        frames = self.video_decoder.iter_frames(url, info, stride)
        try:
            for frame in frames:
                channel.blocking_send(frame)
        finally:
            frames.close()
