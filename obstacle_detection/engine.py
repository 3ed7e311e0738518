"""
Inference engine adapter.

Responsibility:
    Define the interface the pipeline needs from an inference engine
    (input size, output shape, run) and provide an implementation backed
    by OpenCV DNN.

Non-goals:
    - No preprocessing, decoding, or frame-level logic.
    - No automatic model downloading or conversion.
    - No fallback to alternative models.

Failure behavior:
    - Missing model files raise FileNotFoundError with the exact
      missing path and expected location.
    - An unavailable acceleration backend raises RuntimeError.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple

import cv2
import numpy as np

from obstacle_detection.config import ModelConfig

logger = logging.getLogger(__name__)


class InferenceEngine(ABC):
    """What the pipeline needs from a loaded detection model."""

    @property
    @abstractmethod
    def input_size(self) -> Tuple[int, int]:
        """Model input (width, height) in pixels."""

    @property
    @abstractmethod
    def output_shape(self) -> Tuple[int, ...]:
        """Output tensor shape, expected (1, channels, elements)."""

    @abstractmethod
    def run(self, blob: np.ndarray) -> np.ndarray:
        """Run inference on a preprocessed (1, 3, H, W) blob."""


class OpenCVDnnEngine(InferenceEngine):
    """InferenceEngine over a cv2.dnn.Net.

    OpenCV does not report the output shape before a forward pass, so
    the constructor runs one pass on a blank blob to learn it.
    """

    def __init__(self, net: cv2.dnn.Net, input_size: Tuple[int, int]) -> None:
        self._net = net
        self._input_size = input_size

        width, height = input_size
        warmup = np.zeros((1, 3, height, width), dtype=np.float32)
        self._output_shape = tuple(int(d) for d in self.run(warmup).shape)
        logger.info("Engine output shape: %s", self._output_shape)

    @property
    def input_size(self) -> Tuple[int, int]:
        return self._input_size

    @property
    def output_shape(self) -> Tuple[int, ...]:
        return self._output_shape

    def run(self, blob: np.ndarray) -> np.ndarray:
        self._net.setInput(blob)
        return self._net.forward()


def load_engine(model_path: Path, config: ModelConfig) -> InferenceEngine:
    """Load a detection model and configure its compute backend.

    Args:
        model_path: Absolute path to the weights (.onnx, .tflite, ...).
        config: ModelConfig providing input size, threads and acceleration.

    Returns:
        A ready-to-run InferenceEngine.

    Raises:
        FileNotFoundError: If the weights file does not exist.
        RuntimeError: If acceleration is requested but unavailable.
    """
    if not model_path.is_file():
        raise FileNotFoundError(
            f"Model weights not found.\n"
            f"  Expected: {model_path}\n"
            f"  Place the exported model at the path above,\n"
            f"  or update 'model.model_path' / the model manifest."
        )

    cv2.setNumThreads(config.thread_count)

    logger.info("Loading model: %s (threads=%d)", model_path, config.thread_count)
    net = cv2.dnn.readNet(str(model_path))

    if config.use_acceleration:
        logger.info("Setting CUDA backend and target.")
        try:
            net.setPreferableBackend(cv2.dnn.DNN_BACKEND_CUDA)
            net.setPreferableTarget(cv2.dnn.DNN_TARGET_CUDA)
        except cv2.error as e:
            raise RuntimeError(
                f"Failed to set CUDA backend. Ensure OpenCV was built with "
                f"CUDA support, or set 'model.use_acceleration' to false.\n"
                f"  OpenCV error: {e}"
            ) from e
    else:
        logger.info("Using CPU backend.")
        net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)

    engine = OpenCVDnnEngine(net, config.input_size)
    logger.info("Model loaded successfully.")
    return engine
