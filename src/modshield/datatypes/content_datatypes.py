"""
Value types flowing through the media classification pipeline.

This module defines decoded frames, per-frame classifications, media
candidates, and the verdict/rejection types that drive a moderation case.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from PIL import Image


class ContentLabel(Enum):
    """Closed label set produced by the NSFW frame classifier."""

    HENTAI = "hentai"
    PORN = "porn"
    SEXY = "sexy"
    DRAWING = "drawing"
    NEUTRAL = "neutral"

    @property
    def is_actionable(self) -> bool:
        """Only hentai, porn and sexy scores can produce a verdict."""
        return self in (ContentLabel.HENTAI, ContentLabel.PORN, ContentLabel.SEXY)

    @property
    def description(self) -> str:
        return f"{self.value.capitalize()} image content"

    def __str__(self) -> str:
        return self.value


class MediaKind(Enum):
    """Decode path chosen once per media candidate."""

    IMAGE = "image"
    GIF = "gif"
    VIDEO = "video"

    def __str__(self) -> str:
        return self.value


class SpamReason(Enum):
    """Outcome of the text heuristic."""

    SEXUAL_TERMS = "Sex related terms"
    MISLEADING_URL = "Misleading URL"
    PHISHING = "Phishing with free terms"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class Frame:
    """A decoded RGBA bitmap.

    Attributes:
        width: Width in pixels.
        height: Height in pixels.
        pixels: Raw RGBA bytes, ``width * height * 4`` long.
    """
    width: int
    height: int
    pixels: bytes

    @classmethod
    def from_image(cls, image: Image.Image) -> "Frame":
        rgba = image.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height, pixels=rgba.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)


@dataclass(frozen=True, slots=True)
class Classification:
    """Score of one label for one frame."""
    label: ContentLabel
    score: float


@dataclass(frozen=True, slots=True)
class MediaItem:
    """A media candidate found on a message."""
    url: str
    kind: MediaKind


@dataclass(frozen=True, slots=True)
class MediaVerdict:
    """Positive decision for one piece of media.

    Attributes:
        label: The actionable label that won.
        score: Single-frame score or running average, in ``[0, 1]``.
        source_url: URL of the offending media, archived as evidence.
    """
    label: ContentLabel
    score: float
    source_url: str

    def describe(self) -> str:
        """Return e.g. ``"Porn image content - 90%"``."""
        return f"{self.label.description} - {self.score * 100:.0f}%"


@dataclass(frozen=True, slots=True)
class TextRejection:
    reason: SpamReason

    def describe(self) -> str:
        return str(self.reason)

    @property
    def evidence_url(self) -> str | None:
        return None


@dataclass(frozen=True, slots=True)
class MediaRejection:
    verdict: MediaVerdict

    def describe(self) -> str:
        return self.verdict.describe()

    @property
    def evidence_url(self) -> str | None:
        return self.verdict.source_url


RejectionReason = Union[TextRejection, MediaRejection]
