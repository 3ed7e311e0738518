"""
Detect-cycle outcomes and their delivery.

ObstacleDetector.detect() returns one of two outcome types and, when a
sink is attached, hands the same outcome to it synchronously:

    EmptyDetection       -> sink.on_empty_detect()
    ObstacleDetections   -> sink.on_detect(detections, source_image)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from obstacle_detection.detection import DetectionCandidate


@dataclass(frozen=True)
class EmptyDetection:
    """No candidate survived filtering for this frame."""


@dataclass(frozen=True, eq=False)
class ObstacleDetections:
    """Final detections for a frame together with the frame they came from.

    Compared by identity: the source image is a numpy array.
    """

    detections: Tuple[DetectionCandidate, ...]
    source_image: np.ndarray


DetectionOutcome = Union[EmptyDetection, ObstacleDetections]


class DetectionSink(ABC):
    """Receiver of detect-cycle outcomes."""

    @abstractmethod
    def on_empty_detect(self) -> None:
        """Called when a frame produced no detections."""

    @abstractmethod
    def on_detect(
        self,
        detections: Sequence[DetectionCandidate],
        source_image: np.ndarray,
    ) -> None:
        """Called with the final detections of a frame."""


def dispatch(outcome: DetectionOutcome, sink: DetectionSink) -> None:
    """Deliver an outcome to exactly one of the sink's callbacks."""
    if isinstance(outcome, ObstacleDetections):
        sink.on_detect(list(outcome.detections), outcome.source_image)
    else:
        sink.on_empty_detect()
