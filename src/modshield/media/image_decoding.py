"""Pillow decoding of still images and animated GIFs into RGBA frames."""

from io import BytesIO
from typing import Iterator

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from modshield.datatypes.content_datatypes import Frame
from modshield.errors import DecodeError
from modshield.util.logger import get_logger

logger = get_logger("image_decoding")

register_heif_opener()


def decode_image(data: bytes) -> Frame:
    """Guess the format of ``data`` and decode it to a single RGBA frame.

    Raises:
        DecodeError: If Pillow cannot identify or decode the bytes.
    """
    try:
        with Image.open(BytesIO(data)) as image:
            image.load()
            return Frame.from_image(image)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"cannot decode image: {exc}") from exc


def iter_gif_frames(data: bytes) -> Iterator[Frame]:
    """Yield every animation frame of a GIF in encoded order.

    Frames that fail to decode are skipped.

    Raises:
        DecodeError: If the container itself cannot be opened.
    """
    try:
        image = Image.open(BytesIO(data))
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"cannot open gif: {exc}") from exc

    with image:
        try:
            frame_count = getattr(image, "n_frames", 1)
        except (EOFError, OSError) as exc:
            logger.debug("[GIF] Frame count unavailable, decoding first frame only: %s", exc)
            frame_count = 1
        for index in range(frame_count):
            try:
                image.seek(index)
                frame = Frame.from_image(image)
            except (EOFError, OSError, ValueError) as exc:
                logger.debug("[GIF] Skipping undecodable frame %d: %s", index, exc)
                continue
            yield frame
