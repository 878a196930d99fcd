import asyncio
import threading
import time
from io import BytesIO
from types import SimpleNamespace

import pytest
from PIL import Image

from modshield.datatypes.content_datatypes import (
    Classification,
    ContentLabel,
    Frame,
    MediaItem,
    MediaKind,
)
from modshield.errors import DecodeError
from modshield.media.frame_source import FrameSource
from modshield.media.video_decoder import VideoStreamInfo
from modshield.moderation.media_pipeline import (
    MediaClassificationPipeline,
    collect_media,
    kind_for_url,
)


def scores_for(frame: Frame):
    porn = frame.pixels[0] / 255
    return [Classification(ContentLabel.NEUTRAL, 1 - porn), Classification(ContentLabel.PORN, porn)]


class FakeClassifier:
    def __init__(self):
        self.batches = []

    async def classify(self, frame):
        return scores_for(frame)

    async def classify_batch(self, frames):
        self.batches.append(len(frames))
        return [scores_for(frame) for frame in frames]


class ScriptedVideoDecoder:
    """Serves a fixed list of red-channel values per URL."""

    def __init__(self, videos, delay=0.0):
        self.videos = videos
        self.delay = delay
        self.stopped = threading.Event()

    def probe(self, url):
        if url not in self.videos:
            raise DecodeError("no video stream")
        return VideoStreamInfo(width=1, height=1, frame_count=len(self.videos[url]))

    def iter_frames(self, url, info, stride):
        try:
            for value in self.videos[url]:
                if self.delay:
                    time.sleep(self.delay)
                yield Frame(width=1, height=1, pixels=bytes([value, 0, 0, 255]))
        finally:
            self.stopped.set()


class EndlessVideoDecoder(ScriptedVideoDecoder):
    def probe(self, url):
        return VideoStreamInfo(width=1, height=1, frame_count=0)

    def iter_frames(self, url, info, stride):
        try:
            while True:
                time.sleep(0.002)
                yield Frame(width=1, height=1, pixels=bytes([0, 0, 0, 255]))
        finally:
            self.stopped.set()


def png_bytes(red: int) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), (red, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


def make_pipeline(decoder=None, images=None, batch_size=30):
    images = images or {}

    def fetch(url, timeout):
        return images[url]

    source = FrameSource(decoder or ScriptedVideoDecoder({}), channel_capacity=2, fetch=fetch)
    classifier = FakeClassifier()
    return MediaClassificationPipeline(source, classifier, batch_size=batch_size), classifier


# --------------------------
# Candidate collection
# --------------------------
@pytest.mark.parametrize(
    "url, kind",
    [
        ("https://cdn.example/a.png", MediaKind.IMAGE),
        ("https://cdn.example/a.GIF?ex=123&hm=abc", MediaKind.GIF),
        ("https://cdn.example/clip.webm", MediaKind.VIDEO),
        ("https://cdn.example/clip.mp4?size=2", MediaKind.VIDEO),
        ("https://cdn.example/photo.heic", MediaKind.IMAGE),
    ],
)
def test_kind_for_url(url, kind):
    assert kind_for_url(url) is kind


def test_collect_media_routes_and_deduplicates():
    message = SimpleNamespace(
        embeds=[
            SimpleNamespace(
                thumbnail=SimpleNamespace(proxy_url="https://proxy.example/t.gif", url="https://site.example/t.gif"),
                video=SimpleNamespace(proxy_url=None, url="https://site.example/v.mp4"),
            ),
            SimpleNamespace(thumbnail=SimpleNamespace(), video=SimpleNamespace()),
        ],
        attachments=[
            SimpleNamespace(content_type="image/png", proxy_url="https://proxy.example/a.png", url="x"),
            SimpleNamespace(content_type="image/gif", proxy_url="https://proxy.example/b", url="y"),
            SimpleNamespace(content_type="video/quicktime", proxy_url="https://proxy.example/c.mov", url="z"),
            SimpleNamespace(content_type="application/pdf", proxy_url="https://proxy.example/d.pdf", url="w"),
            SimpleNamespace(content_type="image/png", proxy_url="https://proxy.example/a.png", url="x"),
            SimpleNamespace(content_type=None, proxy_url="https://proxy.example/e.bin", url="v"),
        ],
    )

    items = collect_media(message)

    assert items == [
        MediaItem("https://proxy.example/t.gif", MediaKind.GIF),
        MediaItem("https://site.example/v.mp4", MediaKind.VIDEO),
        MediaItem("https://proxy.example/a.png", MediaKind.IMAGE),
        MediaItem("https://proxy.example/b", MediaKind.GIF),
        MediaItem("https://proxy.example/c.mov", MediaKind.VIDEO),
    ]


@pytest.mark.asyncio
async def test_message_without_media_has_no_verdict():
    pipeline, classifier = make_pipeline()
    message = SimpleNamespace(id=1, embeds=[], attachments=[])

    assert await pipeline.classify_message(message) is None
    assert classifier.batches == []


# --------------------------
# Images
# --------------------------
@pytest.mark.asyncio
async def test_explicit_image_yields_verdict():
    url = "https://cdn.example/bad.png"
    pipeline, _ = make_pipeline(images={url: png_bytes(255)})

    verdict = await pipeline.classify_item(MediaItem(url, MediaKind.IMAGE))

    assert verdict.label is ContentLabel.PORN
    assert verdict.score == pytest.approx(1.0)
    assert verdict.source_url == url


@pytest.mark.asyncio
async def test_clean_image_yields_nothing():
    url = "https://cdn.example/ok.png"
    pipeline, _ = make_pipeline(images={url: png_bytes(0)})

    assert await pipeline.classify_item(MediaItem(url, MediaKind.IMAGE)) is None


@pytest.mark.asyncio
async def test_corrupt_image_yields_nothing():
    url = "https://cdn.example/broken.png"
    pipeline, _ = make_pipeline(images={url: b"garbage"})

    assert await pipeline.classify_item(MediaItem(url, MediaKind.IMAGE)) is None


# --------------------------
# Multi-frame media
# --------------------------
@pytest.mark.asyncio
async def test_video_decides_after_first_full_batch():
    url = "https://cdn.example/v.mp4"
    pipeline, classifier = make_pipeline(ScriptedVideoDecoder({url: [255] * 90}))

    verdict = await pipeline.classify_item(MediaItem(url, MediaKind.VIDEO))

    assert verdict.label is ContentLabel.PORN
    assert classifier.batches == [30]


@pytest.mark.asyncio
async def test_mixed_video_is_diluted_by_clean_frames():
    url = "https://cdn.example/v.mp4"
    pipeline, classifier = make_pipeline(ScriptedVideoDecoder({url: [255, 0] * 30}))

    assert await pipeline.classify_item(MediaItem(url, MediaKind.VIDEO)) is None
    assert classifier.batches == [30, 30]


@pytest.mark.asyncio
async def test_running_average_needs_sustained_explicit_frames():
    url = "https://cdn.example/short.webm"
    pipeline, classifier = make_pipeline(ScriptedVideoDecoder({url: [0] * 30 + [255] * 300}), batch_size=30)

    verdict = await pipeline.classify_item(MediaItem(url, MediaKind.VIDEO))

    assert verdict is not None
    # The first batch is clean; the average reaches 0.9 only after enough explicit frames
    assert classifier.batches[0] == 30
    assert sum(classifier.batches) == 300


@pytest.mark.asyncio
async def test_partial_final_batch_is_classified():
    url = "https://cdn.example/tiny.mp4"
    pipeline, classifier = make_pipeline(ScriptedVideoDecoder({url: [255] * 7}))

    verdict = await pipeline.classify_item(MediaItem(url, MediaKind.VIDEO))

    assert verdict is not None
    assert classifier.batches == [7]


@pytest.mark.asyncio
async def test_video_decode_failure_yields_nothing():
    pipeline, _ = make_pipeline(ScriptedVideoDecoder({}))

    assert await pipeline.classify_item(MediaItem("https://cdn.example/nope.mp4", MediaKind.VIDEO)) is None


# --------------------------
# Concurrency across candidates
# --------------------------
@pytest.mark.asyncio
async def test_first_verdict_wins_and_abandons_other_work():
    image_url = "https://cdn.example/bad.png"
    decoder = EndlessVideoDecoder({})
    pipeline, _ = make_pipeline(decoder, images={image_url: png_bytes(255)})

    verdict = await asyncio.wait_for(
        pipeline.classify_items([
            MediaItem("https://cdn.example/endless.mp4", MediaKind.VIDEO),
            MediaItem(image_url, MediaKind.IMAGE),
        ]),
        timeout=5,
    )

    assert verdict.source_url == image_url
    assert await asyncio.to_thread(decoder.stopped.wait, 5)


@pytest.mark.asyncio
async def test_failed_candidate_does_not_hide_others():
    image_url = "https://cdn.example/bad.png"
    pipeline, _ = make_pipeline(ScriptedVideoDecoder({}), images={image_url: png_bytes(255)})

    verdict = await pipeline.classify_items([
        MediaItem("https://cdn.example/broken.mp4", MediaKind.VIDEO),
        MediaItem(image_url, MediaKind.IMAGE),
    ])

    assert verdict.source_url == image_url
