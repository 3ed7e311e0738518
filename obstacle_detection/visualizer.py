"""
Visualization for the obstacle detection pipeline.

Responsibility:
    Draw bounding boxes with class, confidence and distance labels onto
    a frame. Detections carry normalized coordinates; they are mapped to
    the frame size here. Pure rendering: returns an annotated copy and
    performs no I/O.

Non-goals:
    - No file writing or window management beyond show_frame().
    - No detection or model logic.
"""

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from obstacle_detection.config import VisualizationConfig
from obstacle_detection.detection import DetectionCandidate

_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_SCALE = 0.5
_FONT_THICKNESS = 1
_LABEL_PADDING = 4
_WINDOW_NAME = "Obstacle Detection"


def format_distance(distance: Optional[float], unit: str) -> str:
    """Render a distance for an overlay label, '' when unknown."""
    if distance is None:
        return ""
    if unit == "mm":
        return f"{distance / 1000.0:.2f}m"
    return f"{distance:.2f}m"


def format_label(
    detection: DetectionCandidate,
    config: VisualizationConfig,
    distance_unit: str = "mm",
) -> str:
    """Build the overlay text for one detection."""
    parts = [detection.class_name]
    if config.show_confidence:
        parts.append(f"{detection.confidence:.2f}")
    if config.show_distance:
        distance = format_distance(detection.distance, distance_unit)
        if distance:
            parts.append(distance)
    return " ".join(parts)


def to_pixels(detection: DetectionCandidate, frame_shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
    """Map a normalized box onto a frame of the given shape."""
    h, w = frame_shape[:2]
    return (
        int(detection.x1 * w),
        int(detection.y1 * h),
        int(detection.x2 * w),
        int(detection.y2 * h),
    )


def draw_detections(
    frame: np.ndarray,
    detections: Sequence[DetectionCandidate],
    config: VisualizationConfig,
    distance_unit: str = "mm",
) -> np.ndarray:
    """Draw bounding boxes and labels onto a copy of the frame.

    Args:
        frame: Input BGR image (not modified).
        detections: Detections with normalized coordinates.
        config: Visualization parameters.
        distance_unit: Unit of detection.distance ('mm' or 'm').

    Returns:
        Annotated BGR copy of the frame.
    """
    annotated = frame.copy()

    for det in detections:
        x1, y1, x2, y2 = to_pixels(det, frame.shape)
        cv2.rectangle(annotated, (x1, y1), (x2, y2),
                      color=config.box_color, thickness=config.thickness)

        label = format_label(det, config, distance_unit)
        (text_w, text_h), _ = cv2.getTextSize(label, _FONT, _FONT_SCALE, _FONT_THICKNESS)

        # Above the box, or below it if too close to the top edge
        label_y = y1 - _LABEL_PADDING
        if label_y - text_h - _LABEL_PADDING < 0:
            label_y = y2 + text_h + _LABEL_PADDING

        cv2.rectangle(
            annotated,
            (x1, label_y - text_h - _LABEL_PADDING),
            (x1 + text_w + _LABEL_PADDING, label_y + _LABEL_PADDING),
            color=config.box_color,
            thickness=cv2.FILLED,
        )
        cv2.putText(
            annotated, label, (x1 + _LABEL_PADDING // 2, label_y),
            _FONT, _FONT_SCALE, (255, 255, 255), _FONT_THICKNESS, cv2.LINE_AA,
        )

    return annotated


def show_frame(
    frame: np.ndarray,
    detections: Sequence[DetectionCandidate],
    config: VisualizationConfig,
    distance_unit: str = "mm",
) -> int:
    """Show the annotated frame in a window and return the pressed key."""
    cv2.imshow(_WINDOW_NAME, draw_detections(frame, detections, config, distance_unit))
    return cv2.waitKey(1) & 0xFF
