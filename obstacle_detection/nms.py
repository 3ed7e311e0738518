"""
Non-maximum suppression.

Greedy, class-agnostic NMS: a high-confidence "car" box suppresses an
overlapping "truck" box, since both describe the same obstacle.
"""

from typing import List, Sequence

from obstacle_detection.detection import DetectionCandidate
from obstacle_detection.geometry import iou


def non_max_suppression(
    candidates: Sequence[DetectionCandidate],
    iou_threshold: float,
) -> List[DetectionCandidate]:
    """Remove overlapping lower-confidence duplicates.

    Args:
        candidates: Confidence-filtered candidates, in any order.
        iou_threshold: A remaining candidate is suppressed when its IoU with
                       a selected one is >= this value.

    Returns:
        Selected candidates in descending confidence order. Candidates with
        equal confidence keep their input order (the sort is stable).
    """
    remaining = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    selected: List[DetectionCandidate] = []

    while remaining:
        best = remaining.pop(0)
        selected.append(best)
        remaining = [c for c in remaining if iou(best.box, c.box) < iou_threshold]

    return selected
