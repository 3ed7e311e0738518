"""
Tests for the ObstacleDetector pipeline.

A fake InferenceEngine stands in for a real model so the full
setup -> detect path runs without model files.
"""

import logging

import numpy as np
import pytest

from obstacle_detection.config import (
    AppConfig,
    CameraConfig,
    DetectionConfig,
    DistanceConfig,
    ModelConfig,
)
from obstacle_detection.distance import ARSnapshotHolder, Pose
from obstacle_detection.engine import InferenceEngine
from obstacle_detection.errors import SetupError
from obstacle_detection.pipeline import ObstacleDetector
from obstacle_detection.registry import ModelEntry, ModelRegistry
from obstacle_detection.results import (
    DetectionSink,
    EmptyDetection,
    ObstacleDetections,
    dispatch,
)


class FakeEngine(InferenceEngine):
    """Returns a canned output tensor for every frame."""

    def __init__(self, output, input_size=(64, 64)):
        self._output = output
        self._input_size = input_size
        self.blobs = []

    @property
    def input_size(self):
        return self._input_size

    @property
    def output_shape(self):
        return tuple(self._output.shape)

    def run(self, blob):
        self.blobs.append(blob.shape)
        return self._output


class RecordingSink(DetectionSink):
    def __init__(self):
        self.events = []

    def on_empty_detect(self):
        self.events.append(("empty",))

    def on_detect(self, detections, source_image):
        self.events.append(("detect", list(detections), source_image))


class FakeARFrame:
    def __init__(self, hits):
        self._hits = hits
        self.queries = []

    def hit_test(self, x, y):
        self.queries.append((x, y))
        return self._hits


class CountingHolder(ARSnapshotHolder):
    def __init__(self):
        super().__init__()
        self.reads = 0

    def latest(self):
        self.reads += 1
        return super().latest()


@pytest.fixture
def label_file(tmp_path):
    path = tmp_path / "labels.txt"
    path.write_text("person\ncar\ntree\n", encoding="utf-8")
    return path


@pytest.fixture
def frame():
    return np.zeros((480, 640, 3), dtype=np.uint8)


def _config(label_file, strategy="none", **detection):
    return AppConfig(
        model=ModelConfig(
            model_path=str(label_file.parent / "model.onnx"),
            label_path=str(label_file),
        ),
        detection=DetectionConfig(**detection),
        camera=CameraConfig(focal_length_mm=4.0, sensor_height_mm=4.8),
        distance=DistanceConfig(strategy=strategy),
    )


def _detector(config, engine, **kwargs):
    return ObstacleDetector(config, engine_factory=lambda path, cfg: engine, **kwargs)


def _two_overlapping_and_one_apart(make_output):
    return make_output(
        [
            (0.30, 0.30, 0.20, 0.20, (0.90, 0.0, 0.0)),
            (0.31, 0.31, 0.20, 0.20, (0.0, 0.80, 0.0)),
            (0.75, 0.75, 0.10, 0.25, (0.0, 0.0, 0.70)),
        ],
        num_classes=3,
    )


def test_detect_before_setup_is_a_noop(make_output, label_file, frame):
    """No outcome and no sink call until setup() has run."""
    sink = RecordingSink()
    engine = FakeEngine(_two_overlapping_and_one_apart(make_output))
    detector = _detector(_config(label_file), engine, sink=sink)

    assert detector.is_ready is False
    assert detector.detect(frame) is None
    assert sink.events == []
    assert engine.blobs == []


def test_setup_builds_metadata(make_output, label_file):
    engine = FakeEngine(_two_overlapping_and_one_apart(make_output), input_size=(320, 256))
    detector = _detector(_config(label_file, iou_threshold=0.4), engine)

    detector.setup()

    meta = detector.metadata
    assert detector.is_ready
    assert (meta.tensor_width, meta.tensor_height) == (320, 256)
    assert (meta.channels, meta.elements) == (7, 3)
    assert meta.labels == ("person", "car", "tree")
    assert meta.num_classes == 3
    assert meta.iou_threshold == 0.4
    assert meta.thread_count == 3
    assert meta.is_complete


def test_detect_reports_nms_selection(make_output, label_file, frame):
    """The overlapping car is suppressed by the person across classes."""
    sink = RecordingSink()
    engine = FakeEngine(_two_overlapping_and_one_apart(make_output))
    detector = _detector(_config(label_file), engine, sink=sink)
    detector.setup()

    outcome = detector.detect(frame)

    assert isinstance(outcome, ObstacleDetections)
    assert [d.class_name for d in outcome.detections] == ["person", "tree"]
    assert outcome.source_image is frame
    assert engine.blobs == [(1, 3, 64, 64)]

    assert len(sink.events) == 1
    kind, detections, image = sink.events[0]
    assert kind == "detect"
    assert detections == list(outcome.detections)
    assert image is frame


def test_detect_empty_result(make_output, label_file, frame):
    """All anchors below threshold: only the empty path fires."""
    sink = RecordingSink()
    output = make_output(
        [(0.5, 0.5, 0.2, 0.2, (0.1, 0.2, 0.3)), (0.2, 0.2, 0.1, 0.1, (0.3, 0.0, 0.0))],
        num_classes=3,
    )
    detector = _detector(_config(label_file), FakeEngine(output), sink=sink)
    detector.setup()

    outcome = detector.detect(frame)

    assert outcome == EmptyDetection()
    assert sink.events == [("empty",)]


def test_detect_without_sink_returns_outcome(make_output, label_file, frame):
    detector = _detector(_config(label_file), FakeEngine(_two_overlapping_and_one_apart(make_output)))
    detector.setup()

    assert isinstance(detector.detect(frame), ObstacleDetections)


def test_pinhole_distance_attached_during_decode(make_output, label_file, frame):
    """Tree: box height 0.25 of a 640 px tensor, 1500 mm real height."""
    engine = FakeEngine(_two_overlapping_and_one_apart(make_output), input_size=(640, 640))
    detector = _detector(_config(label_file, strategy="pinhole"), engine)
    detector.setup()

    outcome = detector.detect(frame)
    by_name = {d.class_name: d for d in outcome.detections}

    expected_tree = (4.0 * 1500.0 * 640.0) / (0.25 * 640.0 * 4.8)
    assert by_name["tree"].distance == pytest.approx(expected_tree, rel=1e-5)
    assert by_name["person"].distance is not None


def test_ar_distance_attached_after_nms(make_output, label_file, frame):
    """Hit tests run only for NMS survivors, against one snapshot."""
    holder = CountingHolder()
    ar_frame = FakeARFrame([Pose(3.0, 4.0, 0.0)])
    holder.publish(ar_frame, Pose(0.0, 0.0, 0.0))

    detector = _detector(
        _config(label_file, strategy="ar_hit_test"),
        FakeEngine(_two_overlapping_and_one_apart(make_output)),
        snapshot_holder=holder,
    )
    detector.setup()

    outcome = detector.detect(frame)

    assert [d.distance for d in outcome.detections] == [
        pytest.approx(5.0, abs=0.01),
        pytest.approx(5.0, abs=0.01),
    ]
    assert len(ar_frame.queries) == 2
    assert holder.reads == 1
    # Person center (0.3, 0.3) on a 640x480 frame
    assert ar_frame.queries[0] == pytest.approx((192.0, 144.0))


def test_ar_distance_without_snapshot(make_output, label_file, frame):
    detector = _detector(
        _config(label_file, strategy="ar_hit_test"),
        FakeEngine(_two_overlapping_and_one_apart(make_output)),
        snapshot_holder=ARSnapshotHolder(),
    )
    detector.setup()

    outcome = detector.detect(frame)

    assert len(outcome.detections) == 2
    assert all(d.distance is None for d in outcome.detections)


def test_ar_strategy_requires_snapshot_holder(make_output, label_file):
    with pytest.raises(ValueError, match="AR snapshot source"):
        _detector(
            _config(label_file, strategy="ar_hit_test"),
            FakeEngine(_two_overlapping_and_one_apart(make_output)),
        )


def test_ar_missing_snapshot_warns_once_across_cycles(make_output, label_file, frame, caplog):
    """Ten cycles with two survivors each and no AR frame yet."""
    detector = _detector(
        _config(label_file, strategy="ar_hit_test"),
        FakeEngine(_two_overlapping_and_one_apart(make_output)),
        snapshot_holder=ARSnapshotHolder(),
    )
    detector.setup()

    with caplog.at_level(logging.WARNING):
        for _ in range(10):
            outcome = detector.detect(frame)
            assert all(d.distance is None for d in outcome.detections)

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) <= 1


def test_setup_missing_labels_leaves_detector_not_ready(make_output, tmp_path, frame):
    config = AppConfig(
        model=ModelConfig(
            model_path=str(tmp_path / "model.onnx"),
            label_path=str(tmp_path / "missing.txt"),
        ),
        distance=DistanceConfig(strategy="none"),
    )
    detector = _detector(config, FakeEngine(_two_overlapping_and_one_apart(make_output)))

    with pytest.raises(FileNotFoundError):
        detector.setup()

    assert detector.is_ready is False
    assert detector.detect(frame) is None


def test_setup_rejects_output_without_class_channels(label_file):
    engine = FakeEngine(np.zeros((1, 4, 10), dtype=np.float32))
    detector = _detector(_config(label_file), engine)

    with pytest.raises(SetupError, match="channels"):
        detector.setup()
    assert detector.is_ready is False


def test_setup_rejects_wrong_rank(label_file):
    engine = FakeEngine(np.zeros((7, 10), dtype=np.float32))
    detector = _detector(_config(label_file), engine)

    with pytest.raises(SetupError, match="output shape"):
        detector.setup()


def test_incomplete_metadata_makes_detect_a_noop(label_file, frame):
    """Zero anchors reported by the engine: detect() silently does nothing."""
    sink = RecordingSink()
    engine = FakeEngine(np.zeros((1, 7, 0), dtype=np.float32))
    detector = _detector(_config(label_file), engine, sink=sink)
    detector.setup()

    assert detector.metadata.is_complete is False
    assert detector.detect(frame) is None
    assert sink.events == []


def test_setup_uses_registry_entry(make_output, label_file, frame):
    registry = ModelRegistry(
        {"tiny": ModelEntry("tiny", "Tiny", str(label_file.parent / "tiny.onnx"), str(label_file))},
        "tiny",
    )
    seen_paths = []
    engine = FakeEngine(_two_overlapping_and_one_apart(make_output))

    def factory(path, cfg):
        seen_paths.append(path)
        return engine

    config = AppConfig(
        model=ModelConfig(model_id="tiny"),
        distance=DistanceConfig(strategy="none"),
    )
    detector = ObstacleDetector(config, engine_factory=factory, registry=registry)
    detector.setup()

    assert seen_paths == [label_file.parent / "tiny.onnx"]
    assert detector.metadata.labels == ("person", "car", "tree")


def test_detector_input_validation(make_output, label_file):
    """Test strict input validation."""
    detector = _detector(_config(label_file), FakeEngine(_two_overlapping_and_one_apart(make_output)))
    detector.setup()

    with pytest.raises(TypeError):
        detector.detect("not a frame")

    with pytest.raises(ValueError):
        detector.detect(np.array([], dtype=np.uint8))

    with pytest.raises(ValueError, match="BGR frame"):
        detector.detect(np.zeros((100, 100), dtype=np.uint8))


def test_dispatch_calls_exactly_one_callback(frame):
    sink = RecordingSink()

    dispatch(EmptyDetection(), sink)
    dispatch(ObstacleDetections(detections=(), source_image=frame), sink)

    assert [event[0] for event in sink.events] == ["empty", "detect"]
