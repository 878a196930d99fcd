"""
Media screening for a single Discord message.

Candidates are gathered from embed thumbnails, embed videos and attachments,
routed once to an image, GIF or video decode path, and classified
concurrently. The first positive verdict wins; every other candidate's decode
and classification work is abandoned.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List
from urllib.parse import urlsplit

import discord

from modshield.ai.nsfw_classifier import NsfwClassifier
from modshield.datatypes.content_datatypes import Frame, MediaItem, MediaKind, MediaVerdict
from modshield.errors import DecodeError, NetworkError
from modshield.media.frame_source import FrameSource
from modshield.moderation.score_aggregator import ScoreAggregator
from modshield.util.logger import get_logger

logger = get_logger("media_pipeline")

DEFAULT_BATCH_SIZE = 30
VIDEO_SUFFIXES = (".webm", ".mp4")


def _url_path(url: str) -> str:
    """Lower-cased URL path without the query string Discord's CDN appends."""
    return urlsplit(url).path.lower()


def kind_for_url(url: str) -> MediaKind:
    path = _url_path(url)
    if path.endswith(".gif"):
        return MediaKind.GIF
    if path.endswith(VIDEO_SUFFIXES):
        return MediaKind.VIDEO
    return MediaKind.IMAGE


def kind_for_attachment(attachment: discord.Attachment) -> MediaKind | None:
    """Decode path for an attachment, or ``None`` when it is not media."""
    content_type = (attachment.content_type or "").lower()
    if content_type == "image/gif":
        return MediaKind.GIF
    if content_type.startswith("video"):
        return MediaKind.VIDEO
    if content_type.startswith("image"):
        return kind_for_url(attachment.proxy_url or attachment.url)
    return None


def _embed_url(proxy) -> str | None:
    if proxy is None:
        return None
    return getattr(proxy, "proxy_url", None) or getattr(proxy, "url", None) or None


def collect_media(message: discord.Message) -> List[MediaItem]:
    """Return the deduplicated media candidates of ``message`` in discovery order."""
    candidates: List[MediaItem] = []
    seen: set[str] = set()

    def add(url: str | None, kind: MediaKind) -> None:
        if url and url not in seen:
            seen.add(url)
            candidates.append(MediaItem(url=url, kind=kind))

    for embed in message.embeds:
        thumbnail = _embed_url(embed.thumbnail)
        if thumbnail:
            add(thumbnail, kind_for_url(thumbnail))
        add(_embed_url(embed.video), MediaKind.VIDEO)

    for attachment in message.attachments:
        kind = kind_for_attachment(attachment)
        if kind is not None:
            add(attachment.proxy_url or attachment.url, kind)

    return candidates


class MediaClassificationPipeline:
    """Runs every media candidate of a message through decode and classification.

    Attributes:
        frame_source: Opens frame streams for media items.
        classifier: Async frame classifier.
        aggregator: Thresholds and aggregation policies.
        batch_size: Frames classified together for GIFs and videos.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        classifier: NsfwClassifier,
        aggregator: ScoreAggregator | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.frame_source = frame_source
        self.classifier = classifier
        self.aggregator = aggregator or ScoreAggregator()
        self.batch_size = max(1, batch_size)

    async def classify_message(self, message: discord.Message) -> MediaVerdict | None:
        items = collect_media(message)
        if not items:
            return None
        logger.debug("[MEDIA] Message %s has %d media candidates", message.id, len(items))
        return await self.classify_items(items)

    async def classify_items(self, items: Iterable[MediaItem]) -> MediaVerdict | None:
        """Classify ``items`` concurrently and return the first positive verdict."""
        tasks = [asyncio.create_task(self.classify_item(item)) for item in items]
        if not tasks:
            return None
        try:
            for finished in asyncio.as_completed(tasks):
                verdict = await finished
                if verdict is not None:
                    return verdict
            return None
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def classify_item(self, item: MediaItem) -> MediaVerdict | None:
        """Classify one candidate; decode and network failures mean no verdict."""
        try:
            if item.kind is MediaKind.IMAGE:
                return await self._classify_image(item)
            return await self._classify_frames(item)
        except (DecodeError, NetworkError) as exc:
            logger.warning("[MEDIA] Skipping %s %s: %s", item.kind, item.url, exc)
        except Exception as exc:
            logger.error("[MEDIA] Unexpected failure classifying %s: %s", item.url, exc, exc_info=True)
        return None

    async def _classify_image(self, item: MediaItem) -> MediaVerdict | None:
        async with self.frame_source.open(item) as stream:
            frame = await stream.recv()
            if frame is None:
                return None
            classifications = await self.classifier.classify(frame)

        hit = self.aggregator.single_image_verdict(classifications)
        if hit is None:
            return None
        logger.info("[MEDIA] Image %s classified %s %.2f", item.url, hit.label, hit.score)
        return MediaVerdict(label=hit.label, score=hit.score, source_url=item.url)

    async def _classify_frames(self, item: MediaItem) -> MediaVerdict | None:
        """Stream frames in batches and stop as soon as the running average decides."""
        running = self.aggregator.running()
        batch: List[Frame] = []

        async with self.frame_source.open(item) as stream:
            while True:
                frame = await stream.recv()
                end_of_stream = frame is None
                if frame is not None:
                    batch.append(frame)

                if batch and (end_of_stream or len(batch) >= self.batch_size):
                    hit = running.add_batch(await self.classifier.classify_batch(batch))
                    batch = []
                    if hit is not None:
                        logger.info(
                            "[MEDIA] %s %s classified %s %.2f after %d frames",
                            item.kind, item.url, hit.label, hit.score, running.frames_seen,
                        )
                        return MediaVerdict(label=hit.label, score=hit.score, source_url=item.url)

                if end_of_stream:
                    break

        logger.debug("[MEDIA] %s %s clean after %d frames", item.kind, item.url, running.frames_seen)
        return None
