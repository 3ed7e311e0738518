"""
Detection data transfer object.

This module defines DetectionCandidate, the single item type produced by
the decoder, filtered by NMS and delivered to sinks. Instances are frozen;
the only post-decode change (attaching a distance) goes through
with_distance(), which returns a copy.

Non-goals:
    - No rendering logic.
    - No file I/O.
    - No coordinate transformation methods (that belongs in geometry).
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from obstacle_detection.geometry import Box


@dataclass(frozen=True, slots=True)
class DetectionCandidate:
    """A single detected obstacle.

    Attributes:
        x1: Left edge, normalized to [0, 1].
        y1: Top edge, normalized to [0, 1].
        x2: Right edge, normalized to [0, 1].
        y2: Bottom edge, normalized to [0, 1].
        width: Normalized box width as predicted by the model.
        height: Normalized box height as predicted by the model.
        confidence: Best class score for the anchor, in (0, 1].
        class_index: Zero-based class id (index into the label list).
        class_name: Label resolved from class_index.
        distance: Estimated distance, or None when no estimate exists.
                  Millimeters for the pinhole strategy, meters for the
                  AR hit-test strategy.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    width: float
    height: float
    confidence: float
    class_index: int
    class_name: str
    distance: Optional[float] = None

    @property
    def box(self) -> Box:
        """Corner-form box tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    @property
    def center(self) -> Tuple[float, float]:
        """Normalized box center (cx, cy)."""
        return ((self.x1 + self.x2) / 2.0, (self.y1 + self.y2) / 2.0)

    @property
    def area(self) -> float:
        """Normalized box area."""
        return self.width * self.height

    def with_distance(self, distance: Optional[float]) -> "DetectionCandidate":
        """Return a copy carrying the given distance estimate."""
        return replace(self, distance=distance)

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "class_index": self.class_index,
            "class_name": self.class_name,
            "x1": round(self.x1, 4),
            "y1": round(self.y1, 4),
            "x2": round(self.x2, 4),
            "y2": round(self.y2, 4),
            "confidence": round(self.confidence, 4),
            "distance": None if self.distance is None else round(self.distance, 3),
        }
