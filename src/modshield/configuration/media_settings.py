from typing import Any, Dict

from modshield.datatypes.content_datatypes import ContentLabel

DEFAULT_LABEL_THRESHOLD = 0.85


class MediaSettings:
    """Typed accessors over the ``media`` section of ``app_config.yml``.

    Missing or malformed keys fall back to the tuned defaults so an empty
    config file still yields a working pipeline.
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def thresholds(self) -> Dict[ContentLabel, float]:
        """Per-label single-frame thresholds for the actionable labels."""
        raw = self.data.get("thresholds", {})
        if not isinstance(raw, dict):
            raw = {}
        return {
            label: float(raw.get(label.value, DEFAULT_LABEL_THRESHOLD))
            for label in ContentLabel
            if label.is_actionable
        }

    @property
    def running_average_threshold(self) -> float:
        return float(self.data.get("running_average_threshold", 0.9))

    @property
    def video_sample_count(self) -> int:
        return max(1, int(self.data.get("video_sample_count", 500)))

    @property
    def video_batch_size(self) -> int:
        return max(1, int(self.data.get("video_batch_size", 30)))

    @property
    def fetch_timeout_seconds(self) -> float:
        return float(self.data.get("fetch_timeout_seconds", 30.0))

    @property
    def model_path(self) -> str:
        return str(self.data.get("model_path") or "model.onnx")

    @property
    def ffmpeg_path(self) -> str:
        return str(self.data.get("ffmpeg_path") or "ffmpeg")

    @property
    def ffprobe_path(self) -> str:
        return str(self.data.get("ffprobe_path") or "ffprobe")
