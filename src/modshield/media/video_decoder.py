"""FFmpeg-backed video probing and subsampled RGBA frame extraction.

``ffprobe`` reports the stream metadata (dimensions, pixel format, frame
count). ``ffmpeg`` then decodes the stream, keeps only every ``stride``-th
frame with a ``select`` filter, rescales it to dimensions rounded up to a
multiple of 8 with a bicubic filter, and writes raw RGBA frames to stdout.
Dropped frames never leave the ffmpeg process.
"""

import json
import subprocess
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterator

from modshield.datatypes.content_datatypes import Frame
from modshield.errors import DecodeError
from modshield.util.logger import get_logger

logger = get_logger("video_decoder")

DEFAULT_SAMPLE_COUNT = 500
BYTES_PER_PIXEL = 4


@dataclass
class VideoStreamInfo:
    """Metadata of the best video stream of an input."""
    width: int
    height: int
    frame_count: int
    pixel_format: str = ""


def sample_stride(total_frames: int, target_sample_count: int = DEFAULT_SAMPLE_COUNT) -> int:
    """Return the frame stride that keeps at most ``target_sample_count`` frames.

    The division rounds up so ``ceil(total_frames / stride)`` never exceeds the
    target. Unknown frame counts (0) decode every frame.
    """
    target = max(1, target_sample_count)
    return max(1, -(-total_frames // target))


def sampled_frame_count(total_frames: int, stride: int) -> int:
    """Number of frame indices in ``range(total_frames)`` that are multiples of ``stride``."""
    return -(-total_frames // stride) if total_frames > 0 else 0


def nearest_bigger_div_by_8(n: int) -> int:
    """Round ``n`` up to the next multiple of 8."""
    return (n + 7) & ~7


def _parse_frame_count(stream: dict, container: dict) -> int:
    nb_frames = stream.get("nb_frames")
    if nb_frames and str(nb_frames).isdigit():
        return int(nb_frames)

    # Containers such as webm do not store a frame count; estimate it from duration
    duration = stream.get("duration") or container.get("duration")
    rate = stream.get("avg_frame_rate") or "0/1"
    try:
        fps = Fraction(rate) if rate != "0/0" else Fraction(0)
        return int(float(duration) * fps) if duration else 0
    except (ValueError, ZeroDivisionError):
        return 0


class FFmpegVideoDecoder:
    """Thin wrapper over the ffmpeg/ffprobe command line tools."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """
        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def probe(self, url: str) -> VideoStreamInfo:
        """Return metadata of the first video stream of ``url``.

        Raises:
            DecodeError: If the input cannot be demuxed or has no video stream.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,nb_frames,pix_fmt,avg_frame_rate,duration:format=duration",
            "-of", "json",
            url,
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True)
            payload = json.loads(result.stdout or "{}")
        except FileNotFoundError as exc:
            raise DecodeError(f"ffprobe not found at {self.ffprobe_path}") from exc
        except subprocess.CalledProcessError as exc:
            raise DecodeError(f"ffprobe failed: {exc.stderr.strip()}", {"url": url}) from exc
        except json.JSONDecodeError as exc:
            raise DecodeError(f"unreadable ffprobe output: {exc}", {"url": url}) from exc

        streams = payload.get("streams") or []
        if not streams:
            raise DecodeError("no video stream", {"url": url})

        stream = streams[0]
        try:
            width, height = int(stream["width"]), int(stream["height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError("video stream has no dimensions", {"url": url}) from exc

        return VideoStreamInfo(
            width=width,
            height=height,
            frame_count=_parse_frame_count(stream, payload.get("format") or {}),
            pixel_format=str(stream.get("pix_fmt") or ""),
        )

    def build_decode_command(self, url: str, info: VideoStreamInfo, stride: int) -> list[str]:
        out_width = nearest_bigger_div_by_8(info.width)
        out_height = nearest_bigger_div_by_8(info.height)
        video_filter = (
            f"select=not(mod(n\\,{stride})),"
            f"scale={out_width}:{out_height}:flags=bicubic+accurate_rnd"
        )
        return [
            self.ffmpeg_path,
            "-v", "error",
            "-nostdin",
            "-i", url,
            "-map", "0:v:0",
            "-vf", video_filter,
            "-fps_mode", "passthrough",
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "pipe:1",
        ]

    def iter_frames(self, url: str, info: VideoStreamInfo, stride: int) -> Iterator[Frame]:
        """Yield every ``stride``-th decoded frame as a rescaled RGBA :class:`Frame`.

        Closing the generator early terminates the ffmpeg process.

        Raises:
            DecodeError: If ffmpeg exits with an error.
        """
        out_width = nearest_bigger_div_by_8(info.width)
        out_height = nearest_bigger_div_by_8(info.height)
        frame_size = out_width * out_height * BYTES_PER_PIXEL

        try:
            process = subprocess.Popen(
                self.build_decode_command(url, info, stride),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise DecodeError(f"ffmpeg not found at {self.ffmpeg_path}") from exc

        try:
            while True:
                chunk = process.stdout.read(frame_size)
                if len(chunk) < frame_size:
                    break
                yield Frame(width=out_width, height=out_height, pixels=chunk)

            _, stderr = process.communicate()
            if process.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                raise DecodeError(f"ffmpeg exited with {process.returncode}: {message}", {"url": url})
        finally:
            if process.poll() is None:
                logger.debug("[VIDEO] Stopping ffmpeg for %s before end of stream", url)
                process.kill()
                process.wait()
            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()
