"""
Tests for the configuration module.
"""

from dataclasses import replace

import pytest

from obstacle_detection.config import (
    AppConfig,
    CameraConfig,
    DetectionConfig,
    DistanceConfig,
    InputConfig,
    ModelConfig,
    _validate,
    get_project_root,
    load_config,
    validate_config,
)
from obstacle_detection.registry import ModelEntry, ModelRegistry


def test_load_defaults():
    """Test loading configuration without any file."""
    config = load_config(None)
    assert isinstance(config, AppConfig)
    assert config.detection.confidence_threshold == 0.35
    assert config.detection.iou_threshold == 0.3
    assert config.model.thread_count == 3
    assert config.model.use_acceleration is False
    assert config.distance.strategy == "pinhole"
    assert config.camera.focal_length_mm is None


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "model:\n"
        "  model_id: yolov8_15_obstacles_fp32\n"
        "  input_size: [320, 320]\n"
        "  use_acceleration: true\n"
        "detection:\n"
        "  confidence_threshold: 0.6\n"
        "camera:\n"
        "  focal_length_mm: 4.0\n"
        "  sensor_height_mm: 4.8\n"
        "distance:\n"
        "  strategy: AR_HIT_TEST\n"
        "input:\n"
        "  frame_skip: 3\n",
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.model.model_id == "yolov8_15_obstacles_fp32"
    assert config.model.input_size == (320, 320)
    assert config.model.use_acceleration is True
    assert config.detection.confidence_threshold == 0.6
    assert config.camera == CameraConfig(focal_length_mm=4.0, sensor_height_mm=4.8)
    assert config.distance.strategy == "ar_hit_test"
    assert config.input.frame_skip == 3


def test_example_config_loads():
    config = load_config("config/config.example.yaml")

    assert config.model.model_id == "yolov8_18_obstacles_fp32"
    assert config.model.input_size == (640, 640)
    assert config.camera.focal_length_mm == 4.25
    assert config.input.resize_width is None
    assert config.visualization.box_color == (0, 0, 255)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_validation_failure():
    """Test fail-fast validation."""
    with pytest.raises(ValueError, match="confidence_threshold"):
        _validate(AppConfig(detection=DetectionConfig(confidence_threshold=1.5)))

    with pytest.raises(ValueError, match="iou_threshold"):
        _validate(AppConfig(detection=DetectionConfig(iou_threshold=-0.1)))

    with pytest.raises(ValueError, match="thread_count"):
        _validate(AppConfig(model=ModelConfig(thread_count=0)))

    with pytest.raises(ValueError, match="strategy"):
        _validate(AppConfig(distance=DistanceConfig(strategy="lidar")))

    with pytest.raises(ValueError, match="frame_skip"):
        _validate(AppConfig(input=InputConfig(frame_skip=0)))

    with pytest.raises(ValueError, match="sensor_height_mm"):
        _validate(AppConfig(camera=CameraConfig(sensor_height_mm=0.0)))


def test_env_override(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv("OBSTACLE_DETECT_DETECTION_CONFIDENCE_THRESHOLD", "0.9")
    monkeypatch.setenv("OBSTACLE_DETECT_MODEL_USE_ACCELERATION", "true")
    monkeypatch.setenv("OBSTACLE_DETECT_CAMERA_FOCAL_LENGTH_MM", "4.2")
    monkeypatch.setenv("OBSTACLE_DETECT_DISTANCE_STRATEGY", "none")

    config = load_config(None)

    assert config.detection.confidence_threshold == 0.9
    assert config.model.use_acceleration is True
    assert config.camera.focal_length_mm == 4.2
    assert config.distance.strategy == "none"


def test_env_override_bad_boolean(monkeypatch):
    monkeypatch.setenv("OBSTACLE_DETECT_MODEL_USE_ACCELERATION", "maybe")

    with pytest.raises(ValueError, match="boolean"):
        load_config(None)


def test_resolve_paths_from_registry():
    registry = ModelRegistry(
        {"m": ModelEntry("m", "M", "models/m.onnx", "models/m.txt")}, "m"
    )

    weights, labels = ModelConfig().resolve_paths(registry)

    assert weights == get_project_root() / "models/m.onnx"
    assert labels == get_project_root() / "models/m.txt"


def test_resolve_paths_explicit_paths_win(tmp_path):
    registry = ModelRegistry(
        {"m": ModelEntry("m", "M", "models/m.onnx", "models/m.txt")}, "m"
    )
    config = ModelConfig(model_path=str(tmp_path / "custom.onnx"))

    weights, labels = config.resolve_paths(registry)

    assert weights == tmp_path / "custom.onnx"
    assert labels == get_project_root() / "models/m.txt"


def test_resolve_paths_without_registry():
    with pytest.raises(ValueError, match="registry"):
        ModelConfig().resolve_paths(None)


def test_validate_config_rejects_overridden_values():
    config = load_config(None)

    assert validate_config(config) is config
    with pytest.raises(ValueError):
        validate_config(replace(config, detection=DetectionConfig(confidence_threshold=2.0)))
