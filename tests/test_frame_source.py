import asyncio
import threading
import time
from io import BytesIO

import pytest
from PIL import Image

from modshield.datatypes.content_datatypes import Frame, MediaItem, MediaKind
from modshield.errors import DecodeError, NetworkError
from modshield.media.frame_source import FrameSource, physical_core_count
from modshield.media.video_decoder import VideoStreamInfo


def png_bytes(color=(255, 0, 0), size=(4, 4)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def gif_bytes(frame_count: int) -> bytes:
    frames = [Image.new("RGB", (6, 6), (i * 60 % 256, 0, 0)) for i in range(frame_count)]
    buffer = BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:], duration=40, loop=0)
    return buffer.getvalue()


def fetch_returning(data: bytes):
    def fetch(url, timeout):
        return data
    return fetch


class FakeVideoDecoder:
    def __init__(self, frame_count: int, delay: float = 0.0, fail_probe: bool = False):
        self.frame_count = frame_count
        self.delay = delay
        self.fail_probe = fail_probe
        self.strides = []
        self.stopped = threading.Event()

    def probe(self, url):
        if self.fail_probe:
            raise DecodeError("no video stream")
        return VideoStreamInfo(width=8, height=8, frame_count=self.frame_count)

    def iter_frames(self, url, info, stride):
        self.strides.append(stride)
        try:
            for index in range(0, info.frame_count, stride):
                if self.delay:
                    time.sleep(self.delay)
                yield Frame(width=1, height=1, pixels=bytes([index % 256, 0, 0, 255]))
        finally:
            self.stopped.set()


def test_physical_core_count_is_positive():
    assert physical_core_count() >= 1


@pytest.mark.asyncio
async def test_image_produces_exactly_one_frame():
    source = FrameSource(FakeVideoDecoder(0), channel_capacity=2, fetch=fetch_returning(png_bytes()))

    async with source.open(MediaItem("https://cdn.example/a.png", MediaKind.IMAGE)) as stream:
        frames = [frame async for frame in stream]

    assert len(frames) == 1
    assert (frames[0].width, frames[0].height) == (4, 4)
    assert frames[0].pixels[:4] == bytes([255, 0, 0, 255])


@pytest.mark.asyncio
async def test_gif_produces_every_animation_frame():
    source = FrameSource(FakeVideoDecoder(0), channel_capacity=2, fetch=fetch_returning(gif_bytes(4)))

    async with source.open(MediaItem("https://cdn.example/a.gif", MediaKind.GIF)) as stream:
        frames = [frame async for frame in stream]

    assert len(frames) == 4
    assert all(frame.width == 6 for frame in frames)


@pytest.mark.asyncio
async def test_undecodable_image_raises_after_stream_end():
    source = FrameSource(FakeVideoDecoder(0), channel_capacity=2, fetch=fetch_returning(b"not an image"))

    async with source.open(MediaItem("https://cdn.example/a.png", MediaKind.IMAGE)) as stream:
        with pytest.raises(DecodeError):
            await stream.recv()


@pytest.mark.asyncio
async def test_network_failure_surfaces_on_stream():
    def failing_fetch(url, timeout):
        raise NetworkError("timed out")

    source = FrameSource(FakeVideoDecoder(0), channel_capacity=2, fetch=failing_fetch)

    async with source.open(MediaItem("https://cdn.example/a.gif", MediaKind.GIF)) as stream:
        with pytest.raises(NetworkError):
            await stream.recv()


@pytest.mark.asyncio
async def test_video_is_subsampled_to_target():
    decoder = FakeVideoDecoder(frame_count=1000)
    source = FrameSource(decoder, sample_count=500, channel_capacity=4)

    async with source.open(MediaItem("https://cdn.example/v.mp4", MediaKind.VIDEO)) as stream:
        frames = [frame async for frame in stream]

    assert decoder.strides == [2]
    assert len(frames) == 500


@pytest.mark.asyncio
async def test_video_without_stream_fails_with_decode_error():
    source = FrameSource(FakeVideoDecoder(10, fail_probe=True), channel_capacity=2)

    async with source.open(MediaItem("https://cdn.example/v.mp4", MediaKind.VIDEO)) as stream:
        with pytest.raises(DecodeError):
            await stream.recv()


@pytest.mark.asyncio
async def test_closing_stream_abandons_decoding():
    decoder = FakeVideoDecoder(frame_count=10_000, delay=0.001)
    source = FrameSource(decoder, sample_count=10_000, channel_capacity=2)

    stream = source.open(MediaItem("https://cdn.example/long.mp4", MediaKind.VIDEO))
    assert await stream.recv() is not None
    stream.close()
    await asyncio.wait_for(stream.join(), timeout=5)

    assert decoder.stopped.is_set()
    assert await stream.recv() is None
