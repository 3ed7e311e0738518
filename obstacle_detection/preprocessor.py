"""
Preprocessing for the obstacle detection pipeline.

Responsibility:
    Convert a raw BGR frame (numpy array) into the 4D input blob the
    detection model expects, using cv2.dnn.blobFromImage.

Non-goals:
    - No frame acquisition or I/O.
    - No inference or coordinate mapping.
    - No letterboxing: the frame is stretched to the model input size,
      so normalized output coordinates map straight back onto the frame.

Hard-coded:
    - Pixel values are scaled to [0, 1].
    - Channels are swapped to RGB (YOLO exports are trained on RGB).
"""

from typing import Tuple

import cv2
import numpy as np

_SCALE = 1.0 / 255.0


def preprocess(frame: np.ndarray, input_size: Tuple[int, int]) -> np.ndarray:
    """Convert a raw BGR frame into a model input blob.

    Args:
        frame: Input image as a BGR numpy array (H, W, 3).
        input_size: Model input (width, height).

    Returns:
        A float32 array of shape (1, 3, height, width).

    Raises:
        ValueError: If the frame is empty.
    """
    if frame is None or frame.size == 0:
        raise ValueError(
            "Cannot preprocess an empty frame. "
            "Ensure the input source is providing valid frames."
        )

    return cv2.dnn.blobFromImage(
        image=frame,
        scalefactor=_SCALE,
        size=input_size,
        mean=(0.0, 0.0, 0.0),
        swapRB=True,
        crop=False,
    )
