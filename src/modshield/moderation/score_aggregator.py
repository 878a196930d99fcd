"""
Reduction of per-frame classifier scores into a single media verdict.

Two policies are provided:

- :meth:`ScoreAggregator.single_image_verdict` reports the first actionable
  label whose score reaches its threshold.
- :class:`RunningAverage` folds batches of frames into per-label sums of
  qualifying scores and divides by *every* frame seen so far, so a label must
  dominate indifferent frames too before it is reported.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from modshield.configuration.media_settings import DEFAULT_LABEL_THRESHOLD
from modshield.datatypes.content_datatypes import Classification, ContentLabel
from modshield.util.logger import get_logger

logger = get_logger("score_aggregator")

DEFAULT_THRESHOLDS: Dict[ContentLabel, float] = {
    label: DEFAULT_LABEL_THRESHOLD for label in ContentLabel if label.is_actionable
}
DEFAULT_RUNNING_AVERAGE_THRESHOLD = 0.9


class ScoreAggregator:
    """Holds the decision thresholds and applies both aggregation policies."""

    def __init__(
        self,
        thresholds: Mapping[ContentLabel, float] | None = None,
        running_average_threshold: float = DEFAULT_RUNNING_AVERAGE_THRESHOLD,
    ) -> None:
        self.thresholds: Dict[ContentLabel, float] = dict(thresholds or DEFAULT_THRESHOLDS)
        self.running_average_threshold = running_average_threshold

    def check_classification(self, classification: Classification) -> Classification | None:
        """Return ``classification`` if it is actionable and meets its threshold."""
        if not classification.label.is_actionable:
            return None
        threshold = self.thresholds.get(classification.label)
        if threshold is None or classification.score < threshold:
            return None
        logger.debug("[AGGREGATE] %s %.3f >= %.2f", classification.label, classification.score, threshold)
        return classification

    def single_image_verdict(self, classifications: Iterable[Classification]) -> Classification | None:
        """First qualifying classification in the classifier's own order."""
        for classification in classifications:
            if self.check_classification(classification) is not None:
                return classification
        return None

    def qualifying(self, classifications: Iterable[Classification]) -> List[Classification]:
        return [c for c in classifications if self.check_classification(c) is not None]

    def running(self) -> "RunningAverage":
        return RunningAverage(self)

    def average_classification(
        self,
        frames: Iterable[Sequence[Classification]],
        total_frames: int,
    ) -> Classification | None:
        """Apply the running-average test to a complete set of frames at once."""
        running = self.running()
        running.frames_seen = 0
        for frame in frames:
            running.add_frame(frame)
        running.frames_seen = total_frames
        return running.decision()


class RunningAverage:
    """Streaming state of the multi-frame policy for one GIF or video."""

    def __init__(self, aggregator: ScoreAggregator) -> None:
        self.aggregator = aggregator
        self.frames_seen = 0
        self._qualifying_sums: Dict[ContentLabel, float] = {}

    def add_frame(self, classifications: Sequence[Classification]) -> None:
        self.frames_seen += 1
        for classification in self.aggregator.qualifying(classifications):
            label = classification.label
            self._qualifying_sums[label] = self._qualifying_sums.get(label, 0.0) + classification.score

    def add_batch(self, batch: Iterable[Sequence[Classification]]) -> Classification | None:
        """Fold one classified batch in and return the decision, if any."""
        for frame in batch:
            self.add_frame(frame)
        return self.decision()

    def averages(self) -> Dict[ContentLabel, float]:
        if self.frames_seen == 0:
            return {}
        return {label: total / self.frames_seen for label, total in self._qualifying_sums.items()}

    def decision(self) -> Classification | None:
        averages = self.averages()
        for label in ContentLabel:
            average = averages.get(label)
            if average is None:
                continue
            logger.debug("[AGGREGATE] %s average %.3f over %d frames", label, average, self.frames_seen)
            if average >= self.aggregator.running_average_threshold:
                return Classification(label=label, score=average)
        return None
