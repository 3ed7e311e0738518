"""
Shared fixtures for building synthetic model outputs.
"""

import numpy as np
import pytest


def build_output(anchors, num_classes):
    """Build a flat [1, 4 + num_classes, len(anchors)] tensor.

    Each anchor is (cx, cy, w, h, scores) with scores a sequence of
    num_classes values. Values are laid out channel-major, as the model
    emits them.
    """
    channels = 4 + num_classes
    grid = np.zeros((channels, len(anchors)), dtype=np.float32)
    for a, (cx, cy, w, h, scores) in enumerate(anchors):
        grid[0:4, a] = (cx, cy, w, h)
        grid[4:, a] = scores
    return grid.reshape(1, channels, len(anchors))


@pytest.fixture
def make_output():
    return build_output


@pytest.fixture
def labels():
    return ["person", "car", "tree"]
