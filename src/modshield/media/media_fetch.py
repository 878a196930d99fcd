"""Blocking download helper for attachment and embed media."""

from __future__ import annotations

import requests

from modshield.errors import NetworkError
from modshield.util.logger import get_logger

logger = get_logger("media_fetch")

MAX_MEDIA_BYTES = 50 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


def fetch_media_bytes(url: str, timeout: float = 30.0, max_bytes: int = MAX_MEDIA_BYTES) -> bytes:
    """
    Download ``url`` and return its body.

    This function blocks the calling thread, so it must run off the event loop
    (the frame source calls it from its decode worker).

    Args:
        url: Media URL, usually a Discord CDN proxy URL.
        timeout: Connect/read timeout in seconds.
        max_bytes: Body size above which the download is abandoned.

    Raises:
        NetworkError: If the request fails, returns an error status, or is too large.
    """
    logger.debug("[FETCH] Downloading %s", url)
    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            body = bytearray()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                body.extend(chunk)
                if len(body) > max_bytes:
                    raise NetworkError(f"media exceeds {max_bytes} bytes", {"url": url})
            return bytes(body)
    except requests.RequestException as exc:
        raise NetworkError(f"failed to fetch {url}: {exc}", {"url": url}) from exc
