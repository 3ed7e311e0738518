"""
Tests for the geometry module.
"""

import math

import pytest

from obstacle_detection.geometry import box_area, center_to_corners, corners_to_center, iou


def test_iou_identical_boxes():
    assert iou((0.0, 0.0, 1.0, 1.0), (0.0, 0.0, 1.0, 1.0)) == pytest.approx(1.0)


def test_iou_disjoint_boxes():
    assert iou((0.0, 0.0, 0.1, 0.1), (0.5, 0.5, 0.6, 0.6)) == 0.0


def test_iou_half_overlap():
    """Intersection 0.5, union 1.5."""
    assert iou((0.0, 0.0, 1.0, 1.0), (0.5, 0.0, 1.5, 1.0)) == pytest.approx(1.0 / 3.0)


def test_iou_touching_edges_is_zero():
    assert iou((0.0, 0.0, 0.5, 0.5), (0.5, 0.0, 1.0, 0.5)) == 0.0


def test_iou_zero_area_boxes():
    """Two degenerate boxes give 0.0, not NaN."""
    value = iou((0.3, 0.3, 0.3, 0.3), (0.3, 0.3, 0.3, 0.3))
    assert value == 0.0
    assert not math.isnan(value)


def test_iou_is_symmetric():
    a = (0.1, 0.2, 0.5, 0.6)
    b = (0.3, 0.1, 0.7, 0.4)
    assert iou(a, b) == pytest.approx(iou(b, a))


def test_box_area_inverted_box():
    assert box_area((0.5, 0.5, 0.4, 0.4)) == 0.0


def test_center_corner_conversion():
    corners = center_to_corners(0.5, 0.4, 0.2, 0.6)
    assert corners == pytest.approx((0.4, 0.1, 0.6, 0.7))
    assert corners_to_center(*corners) == pytest.approx((0.5, 0.4, 0.2, 0.6))
