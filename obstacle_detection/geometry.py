"""
Box geometry helpers.

All boxes are axis-aligned and expressed in normalized [0, 1] image
coordinates as (x1, y1, x2, y2) corner tuples.
"""

from typing import Tuple

Box = Tuple[float, float, float, float]


def center_to_corners(cx: float, cy: float, w: float, h: float) -> Box:
    """Convert a center-form box to corner form."""
    half_w = w / 2.0
    half_h = h / 2.0
    return (cx - half_w, cy - half_h, cx + half_w, cy + half_h)


def corners_to_center(x1: float, y1: float, x2: float, y2: float) -> Box:
    """Convert a corner-form box back to (cx, cy, w, h)."""
    return ((x1 + x2) / 2.0, (y1 + y2) / 2.0, x2 - x1, y2 - y1)


def box_area(box: Box) -> float:
    """Area of a corner-form box. Inverted boxes have zero area."""
    x1, y1, x2, y2 = box
    return max(0.0, x2 - x1) * max(0.0, y2 - y1)


def iou(box_a: Box, box_b: Box) -> float:
    """Intersection over Union of two corner-form boxes.

    Returns 0.0 when the union is empty (both boxes have zero area),
    never NaN.
    """
    ix1 = max(box_a[0], box_b[0])
    iy1 = max(box_a[1], box_b[1])
    ix2 = min(box_a[2], box_b[2])
    iy2 = min(box_a[3], box_b[3])

    intersection = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)
    union = box_area(box_a) + box_area(box_b) - intersection

    if union <= 0.0:
        return 0.0
    return intersection / union
