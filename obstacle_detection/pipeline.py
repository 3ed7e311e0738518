"""
ObstacleDetector — the public API for obstacle detection.

Public contract:
    ObstacleDetector.setup() -> None
    ObstacleDetector.detect(image: np.ndarray) -> Optional[DetectionOutcome]

Lifecycle:
    Uninitialized --setup()--> Ready --detect()*--> Ready

    detect() before a successful setup() is a silent no-op returning None.
    setup() and detect() must not run concurrently on one instance; the
    ready flag only guarantees that a worker thread sees the metadata
    written by setup().

Non-goals:
    - No file reading, camera access, or I/O beyond loading the model
      and labels in setup().
    - No visualization or output writing.
    - No tracking or temporal state.
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np

from obstacle_detection.config import AppConfig, ModelConfig, load_config, resolve_path
from obstacle_detection.decoder import BOX_CHANNELS, decode
from obstacle_detection.detection import DetectionCandidate
from obstacle_detection.distance import (
    ARSnapshotHolder,
    CameraIntrinsics,
    DistanceEstimator,
    DistanceStage,
    FrameContext,
    build_distance_estimator,
)
from obstacle_detection.engine import InferenceEngine, load_engine
from obstacle_detection.errors import SetupError
from obstacle_detection.labels import load_labels
from obstacle_detection.nms import non_max_suppression
from obstacle_detection.preprocessor import preprocess
from obstacle_detection.registry import ModelRegistry, load_registry
from obstacle_detection.results import (
    DetectionOutcome,
    DetectionSink,
    EmptyDetection,
    ObstacleDetections,
    dispatch,
)

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Path, ModelConfig], InferenceEngine]


@dataclass(frozen=True)
class ModelMetadata:
    """Everything detect() needs to know about the loaded model.

    Built once by setup() and replaced wholesale on the next setup().
    """

    tensor_width: int
    tensor_height: int
    channels: int
    elements: int
    labels: Tuple[str, ...]
    confidence_threshold: float
    iou_threshold: float
    thread_count: int
    use_acceleration: bool

    @property
    def is_complete(self) -> bool:
        """False when any tensor dimension is zero."""
        return all((self.tensor_width, self.tensor_height, self.channels, self.elements))

    @property
    def num_classes(self) -> int:
        return max(0, self.channels - BOX_CHANNELS)


class ObstacleDetector:
    """Obstacle detector over a YOLO-style detection model.

    Usage:
        detector = ObstacleDetector(config, sink=my_sink)
        detector.setup()                           # loads model + labels
        outcome = detector.detect(frame)           # BGR numpy array

    The model is loaded once in setup(). Each detect() call runs
    preprocess -> inference -> decode -> NMS -> distance and reports
    the outcome both as the return value and to the sink, if any.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        sink: Optional[DetectionSink] = None,
        distance_estimator: Optional[DistanceEstimator] = None,
        snapshot_holder: Optional[ARSnapshotHolder] = None,
        engine_factory: EngineFactory = load_engine,
        registry: Optional[ModelRegistry] = None,
    ) -> None:
        """Create an uninitialized detector. No files are touched here.

        Args:
            config: Application configuration. If None, safe defaults are used.
            sink: Optional receiver of each detect() outcome.
            distance_estimator: Distance strategy. If None, one is built from
                                config.distance and config.camera.
            snapshot_holder: Source of AR snapshots. Required when the
                             configured strategy is ar_hit_test.
            engine_factory: Loads an InferenceEngine from a weights path.
            registry: Model registry. If None and the config does not name
                      explicit paths, the manifest is loaded in setup().

        Raises:
            ValueError: If config asks for ar_hit_test and no snapshot_holder
                        is given.
        """
        if config is None:
            config = load_config()

        if distance_estimator is None:
            distance_estimator = build_distance_estimator(
                config.distance.strategy,
                CameraIntrinsics(
                    focal_length_mm=config.camera.focal_length_mm,
                    sensor_height_mm=config.camera.sensor_height_mm,
                ),
                snapshot_holder,
            )

        self._config = config
        self._sink = sink
        self._distance_estimator = distance_estimator
        self._snapshot_holder = snapshot_holder
        self._engine_factory = engine_factory
        self._registry = registry

        self._engine: Optional[InferenceEngine] = None
        self._metadata: Optional[ModelMetadata] = None
        self._ready = threading.Event()

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def setup(self) -> None:
        """Load the model and labels and mark the detector ready.

        Raises:
            FileNotFoundError: If the manifest, weights or label file is missing.
            KeyError: If the configured model id is not registered.
            ValueError: If the label file is empty.
            SetupError: If the engine reports an unusable output shape.
            RuntimeError: If the requested acceleration backend is unavailable.
        """
        self._ready.clear()
        model_cfg = self._config.model

        logger.info("Model setup starting ...")

        registry = self._registry
        if registry is None and (model_cfg.model_path is None or model_cfg.label_path is None):
            registry = load_registry(resolve_path(model_cfg.manifest_path))

        model_path, label_path = model_cfg.resolve_paths(registry)

        engine = self._engine_factory(model_path, model_cfg)
        tensor_width, tensor_height = engine.input_size
        channels, elements = self._read_output_dims(engine.output_shape)

        labels = load_labels(label_path)
        if channels and len(labels) != channels - BOX_CHANNELS:
            logger.warning(
                "Label count (%d) does not match model classes (%d): %s",
                len(labels), channels - BOX_CHANNELS, label_path,
            )

        metadata = ModelMetadata(
            tensor_width=int(tensor_width),
            tensor_height=int(tensor_height),
            channels=channels,
            elements=elements,
            labels=tuple(labels),
            confidence_threshold=self._config.detection.confidence_threshold,
            iou_threshold=self._config.detection.iou_threshold,
            thread_count=model_cfg.thread_count,
            use_acceleration=model_cfg.use_acceleration,
        )
        if not metadata.is_complete:
            logger.warning("Model metadata incomplete, detect() will be a no-op: %s", metadata)

        self._engine = engine
        self._metadata = metadata
        self._ready.set()

        logger.info(
            "ObstacleDetector ready (input=%dx%d, classes=%d, anchors=%d, "
            "confidence_threshold=%.2f, iou_threshold=%.2f, distance=%s)",
            metadata.tensor_width, metadata.tensor_height, metadata.num_classes,
            metadata.elements, metadata.confidence_threshold, metadata.iou_threshold,
            type(self._distance_estimator).__name__ if self._distance_estimator else "none",
        )

    @staticmethod
    def _read_output_dims(output_shape: Tuple[int, ...]) -> Tuple[int, int]:
        """Extract (channels, elements) from a (1, channels, elements) shape."""
        if len(output_shape) != 3 or output_shape[0] != 1:
            raise SetupError(
                f"Expected model output shape (1, channels, elements), got {output_shape}."
            )
        channels, elements = int(output_shape[1]), int(output_shape[2])
        if 0 < channels <= BOX_CHANNELS:
            raise SetupError(
                f"Model output has {channels} channels; need 4 box values "
                f"plus at least one class score."
            )
        return channels, elements

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, image: np.ndarray) -> Optional[DetectionOutcome]:
        """Run one detection cycle on a BGR frame.

        Args:
            image: A BGR image as a numpy array with shape (H, W, 3).

        Returns:
            EmptyDetection or ObstacleDetections, or None if the detector
            is not ready (nothing is reported to the sink in that case).

        Raises:
            TypeError: If image is not a numpy ndarray.
            ValueError: If image has incorrect shape or is empty.
            LabelMismatchError: If the model emits a class with no label.
        """
        if not self._ready.is_set():
            logger.debug("detect() called before setup completed; ignoring frame.")
            return None

        metadata = self._metadata
        engine = self._engine
        if metadata is None or engine is None or not metadata.is_complete:
            return None

        self._validate_frame(image)

        # One AR snapshot per cycle
        snapshot = self._snapshot_holder.latest() if self._snapshot_holder else None
        frame_height, frame_width = image.shape[:2]
        context = FrameContext(
            frame_width=frame_width,
            frame_height=frame_height,
            tensor_height=metadata.tensor_height,
            ar_snapshot=snapshot,
        )

        start = time.perf_counter()
        blob = preprocess(image, (metadata.tensor_width, metadata.tensor_height))
        output = engine.run(blob)
        logger.debug("Inference took %.4f s", time.perf_counter() - start)

        start = time.perf_counter()
        outcome = self._postprocess(output, metadata, context, image)
        logger.debug("Decode, NMS and distance took %.4f s", time.perf_counter() - start)

        if self._sink is not None:
            dispatch(outcome, self._sink)

        return outcome

    def _postprocess(
        self,
        output: np.ndarray,
        metadata: ModelMetadata,
        context: FrameContext,
        image: np.ndarray,
    ) -> DetectionOutcome:
        estimator = self._distance_estimator

        distance_fn = None
        if estimator is not None and estimator.stage is DistanceStage.DECODE:
            def distance_fn(candidate: DetectionCandidate) -> Optional[float]:
                return estimator.estimate(candidate, context)

        candidates = decode(
            network_output=output,
            channels=metadata.channels,
            elements=metadata.elements,
            labels=metadata.labels,
            confidence_threshold=metadata.confidence_threshold,
            distance_fn=distance_fn,
        )
        if not candidates:
            return EmptyDetection()

        selected: List[DetectionCandidate] = non_max_suppression(
            candidates, metadata.iou_threshold
        )

        if estimator is not None and estimator.stage is DistanceStage.SELECTED:
            selected = [c.with_distance(estimator.estimate(c, context)) for c in selected]

        return ObstacleDetections(detections=tuple(selected), source_image=image)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def metadata(self) -> Optional[ModelMetadata]:
        """Metadata of the loaded model, None before setup()."""
        return self._metadata

    @property
    def distance_estimator(self) -> Optional[DistanceEstimator]:
        return self._distance_estimator

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    @staticmethod
    def _validate_frame(frame: np.ndarray) -> None:
        """Validate that the input frame meets the API contract.

        Raises:
            TypeError: If frame is not a numpy ndarray.
            ValueError: If frame is empty or has wrong dimensions.
        """
        if not isinstance(frame, np.ndarray):
            raise TypeError(
                f"Expected frame to be a numpy ndarray, "
                f"got {type(frame).__name__}."
            )

        if frame.size == 0:
            raise ValueError(
                "Frame is empty (zero size). "
                "Ensure the input source is providing valid frames."
            )

        if frame.ndim != 3 or frame.shape[2] != 3:
            raise ValueError(
                f"Expected a BGR frame of shape (H, W, 3), got shape {frame.shape}."
            )
