"""
ONNX NSFW frame classifier with an async worker-pool wrapper.

The bundled ``model.onnx`` is a five-way image classifier (drawings, hentai,
neutral, porn, sexy) with a 224x224 RGB input. Inference is stateless, so a
single :class:`onnxruntime.InferenceSession` is shared across a thread pool
sized to the machine's cores; onnxruntime releases the GIL during ``run`` so
batches classify in parallel without blocking the event loop.
"""

from __future__ import annotations

import asyncio
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, List, Protocol, Sequence

import numpy as np
import onnxruntime as ort
from PIL import Image

from modshield.datatypes.content_datatypes import Classification, ContentLabel, Frame
from modshield.errors import ConfigurationError
from modshield.util.logger import get_logger

logger = get_logger("nsfw_classifier")

# Output order of the bundled model
MODEL_LABELS: tuple[ContentLabel, ...] = (
    ContentLabel.DRAWING,
    ContentLabel.HENTAI,
    ContentLabel.NEUTRAL,
    ContentLabel.PORN,
    ContentLabel.SEXY,
)
DEFAULT_INPUT_SIZE = 224


class FrameClassifier(Protocol):
    """Anything that scores a frame against the full label set."""

    def classify(self, frame: Frame) -> List[Classification]:
        ...


class OnnxNsfwModel:
    """Synchronous adapter from :class:`Frame` to per-label scores."""

    def __init__(self, session: Any, labels: Sequence[ContentLabel] = MODEL_LABELS) -> None:
        self.session = session
        self.labels = tuple(labels)
        model_input = session.get_inputs()[0]
        self.input_name = model_input.name
        shape = list(model_input.shape)
        # Accept both NHWC ([N, 224, 224, 3]) and NCHW ([N, 3, 224, 224]) exports
        self.channels_first = len(shape) == 4 and shape[1] == 3
        spatial = shape[2:4] if self.channels_first else shape[1:3]
        self.input_size = tuple(
            dim if isinstance(dim, int) and dim > 0 else DEFAULT_INPUT_SIZE for dim in spatial
        ) if len(shape) == 4 else (DEFAULT_INPUT_SIZE, DEFAULT_INPUT_SIZE)

    @classmethod
    def load(cls, model_path: str | Path) -> "OnnxNsfwModel":
        """Load the model once at process start.

        Raises:
            ConfigurationError: If the weights file is missing or unreadable.
        """
        path = Path(model_path)
        if not path.is_file():
            raise ConfigurationError(f"classifier weights not found at {path}", {"path": str(path)})
        try:
            session = ort.InferenceSession(str(path), providers=["CPUExecutionProvider"])
        except Exception as exc:
            raise ConfigurationError(f"failed to load classifier {path}: {exc}", {"path": str(path)}) from exc
        logger.info("[CLASSIFIER] Loaded %s", path)
        return cls(session)

    def preprocess(self, frame: Frame) -> np.ndarray:
        height, width = self.input_size
        image = frame.to_image().convert("RGB").resize((width, height), Image.Resampling.BILINEAR)
        tensor = np.asarray(image, dtype=np.float32) / 255.0
        if self.channels_first:
            tensor = tensor.transpose(2, 0, 1)
        return tensor[np.newaxis, ...]

    def classify(self, frame: Frame) -> List[Classification]:
        outputs = self.session.run(None, {self.input_name: self.preprocess(frame)})
        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.min() < 0.0 or scores.max() > 1.0:
            exp = np.exp(scores - scores.max())
            scores = exp / exp.sum()
        return [
            Classification(label=label, score=float(score))
            for label, score in zip(self.labels, scores)
        ]


class NsfwClassifier:
    """Dispatches classification onto a dedicated worker pool.

    Attributes:
        model: The synchronous classifier shared by every worker.
        max_workers: Size of the worker pool.
    """

    def __init__(self, model: FrameClassifier, max_workers: int | None = None) -> None:
        self.model = model
        self.max_workers = max_workers or os.cpu_count() or 1
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="classifier")

    async def classify(self, frame: Frame) -> List[Classification]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.model.classify, frame)

    async def classify_batch(self, frames: Sequence[Frame]) -> List[List[Classification]]:
        """Classify ``frames`` in parallel, preserving input order.

        Frames whose inference raises are dropped from the result.
        """
        results = await asyncio.gather(
            *(self.classify(frame) for frame in frames), return_exceptions=True
        )
        classified: List[List[Classification]] = []
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("[CLASSIFIER] Frame classification failed: %s", result)
                continue
            classified.append(result)
        return classified

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("[CLASSIFIER] Worker pool shut down")
