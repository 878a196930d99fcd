import asyncio

import pytest

from modshield.datatypes.content_datatypes import Frame
from modshield.errors import ChannelClosed, DecodeError
from modshield.media.frame_channel import FrameChannel


def make_frame(value: int) -> Frame:
    return Frame(width=1, height=1, pixels=bytes([value, 0, 0, 255]))


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        FrameChannel(0)


@pytest.mark.asyncio
async def test_frames_arrive_in_order_then_end():
    channel = FrameChannel(2)
    frames = [make_frame(i) for i in range(5)]

    def produce():
        for frame in frames:
            channel.blocking_send(frame)
        channel.blocking_finish()

    producer = asyncio.create_task(asyncio.to_thread(produce))
    received = []
    while (frame := await channel.recv()) is not None:
        received.append(frame)
    await producer

    assert received == frames
    assert channel.finished
    assert await channel.recv() is None


@pytest.mark.asyncio
async def test_producer_blocks_while_channel_is_full():
    channel = FrameChannel(2)
    sent = []

    def produce():
        for i in range(4):
            channel.blocking_send(make_frame(i))
            sent.append(i)
        channel.blocking_finish()

    producer = asyncio.create_task(asyncio.to_thread(produce))
    await wait_until(lambda: sent == [0, 1])
    await asyncio.sleep(0.05)

    assert sent == [0, 1]

    while await channel.recv() is not None:
        pass
    await producer
    assert sent == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_close_stops_the_producer():
    channel = FrameChannel(1)
    outcome = {}

    def produce():
        try:
            while True:
                channel.blocking_send(make_frame(1))
        except ChannelClosed:
            outcome["closed"] = True

    producer = asyncio.create_task(asyncio.to_thread(produce))
    assert await channel.recv() is not None
    channel.close()
    await asyncio.wait_for(producer, timeout=5)

    assert outcome == {"closed": True}
    assert channel.closed
    assert await channel.recv() is None


@pytest.mark.asyncio
async def test_finish_records_error_after_frames():
    channel = FrameChannel(4)

    def produce():
        channel.blocking_send(make_frame(7))
        channel.blocking_finish(DecodeError("truncated"))

    await asyncio.to_thread(produce)

    assert (await channel.recv()).pixels[0] == 7
    assert await channel.recv() is None
    assert isinstance(channel.error, DecodeError)


@pytest.mark.asyncio
async def test_finish_after_close_is_silent():
    channel = FrameChannel(1)
    channel.close()

    await asyncio.to_thread(channel.blocking_finish)

    with pytest.raises(ChannelClosed):
        await asyncio.to_thread(channel.blocking_send, make_frame(0))
