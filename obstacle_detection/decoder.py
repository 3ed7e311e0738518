"""
Decoding for the obstacle detection pipeline.

Responsibility:
    Parse the raw YOLO-style output tensor into DetectionCandidate objects.
    Pick the best class per anchor, apply the confidence threshold, convert
    center-form boxes to corners and drop boxes that leave the image.

Non-goals:
    - No suppression of overlapping boxes (see nms).
    - No model loading or inference.

Hard-coded:
    - Output tensor layout: [1, channels, elements] stored channel-major,
      so the value for channel c at anchor a sits at flat index
      a + elements * c. Channels 0-3 are cx, cy, w, h (normalized);
      channels 4.. are per-class scores.
"""

from typing import Callable, List, Optional, Sequence

import numpy as np

from obstacle_detection.detection import DetectionCandidate
from obstacle_detection.errors import LabelMismatchError
from obstacle_detection.geometry import center_to_corners

# Number of leading box-geometry channels (cx, cy, w, h)
BOX_CHANNELS = 4

DistanceFn = Callable[[DetectionCandidate], Optional[float]]


def decode(
    network_output: np.ndarray,
    channels: int,
    elements: int,
    labels: Sequence[str],
    confidence_threshold: float,
    distance_fn: Optional[DistanceFn] = None,
) -> List[DetectionCandidate]:
    """Parse a raw output tensor into detection candidates.

    Args:
        network_output: Raw engine output, flat or shaped (1, channels, elements).
        channels: Channel count (4 box values + one score per class).
        elements: Number of anchors.
        labels: Class names indexed by class id.
        confidence_threshold: A candidate is kept only if its best class
                              score is strictly greater than this value.
        distance_fn: Optional estimator called once per kept candidate.

    Returns:
        Candidates in anchor order. Empty list if no anchor survives.

    Raises:
        ValueError: If the tensor size does not match channels * elements,
                    or there are no class channels.
        LabelMismatchError: If a best class index has no label.
    """
    if channels <= BOX_CHANNELS:
        raise ValueError(
            f"Expected at least {BOX_CHANNELS + 1} channels "
            f"(4 box values + class scores), got {channels}."
        )

    flat = np.asarray(network_output, dtype=np.float32).reshape(-1)
    if flat.size != channels * elements:
        raise ValueError(
            f"Output tensor has {flat.size} values, expected "
            f"{channels} x {elements} = {channels * elements}."
        )

    grid = flat.reshape(channels, elements)
    scores = grid[BOX_CHANNELS:]

    # argmax returns the first maximum, so the lower class index wins ties
    best_class = scores.argmax(axis=0)
    best_conf = scores[best_class, np.arange(elements)]

    candidates: List[DetectionCandidate] = []

    # Compare in float32 so an exactly-equal score is rejected whatever the
    # threshold's scalar type
    threshold = np.float32(confidence_threshold)
    for anchor in np.flatnonzero(best_conf > threshold):
        cx, cy, w, h = (float(v) for v in grid[:BOX_CHANNELS, anchor])
        x1, y1, x2, y2 = center_to_corners(cx, cy, w, h)

        # Boxes crossing the image edge are dropped, not clamped
        if not all(0.0 <= v <= 1.0 for v in (x1, y1, x2, y2)):
            continue

        class_index = int(best_class[anchor])
        if class_index >= len(labels):
            raise LabelMismatchError(
                f"Class index {class_index} at anchor {int(anchor)} is outside "
                f"the label list ({len(labels)} labels). The label file does "
                f"not match the loaded model."
            )

        candidate = DetectionCandidate(
            x1=x1, y1=y1, x2=x2, y2=y2,
            width=w, height=h,
            confidence=float(best_conf[anchor]),
            class_index=class_index,
            class_name=labels[class_index],
        )

        if distance_fn is not None:
            candidate = candidate.with_distance(distance_fn(candidate))

        candidates.append(candidate)

    return candidates
