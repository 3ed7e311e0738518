"""
Configuration management for the obstacle detection system.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The system MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - No detection logic, I/O beyond reading the config file, or model loading.

Non-goals:
    - No dynamic reloading.
    - No database-backed or remote configuration.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

from obstacle_detection.registry import ModelRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root resolution
# ---------------------------------------------------------------------------
# Resolved relative to this file's location: obstacle_detection/config.py → project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


def resolve_path(path: str) -> Path:
    """Resolve a possibly relative path against the project root."""
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = _PROJECT_ROOT / resolved
    return resolved


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelConfig:
    """Model-related configuration.

    Attributes:
        model_id: Registry identifier of the model variant. None selects the
                  manifest's default unless explicit paths are given.
        manifest_path: YAML model manifest (relative to project root).
        model_path: Explicit weights path; overrides the registry entry.
        label_path: Explicit label path; overrides the registry entry.
        input_size: Model input (width, height) in pixels.
        thread_count: Worker threads used by the inference engine.
        use_acceleration: Request a hardware-accelerated backend.
    """

    model_id: Optional[str] = None
    manifest_path: str = "config/models.yaml"
    model_path: Optional[str] = None
    label_path: Optional[str] = None
    input_size: Tuple[int, int] = (640, 640)
    thread_count: int = 3
    use_acceleration: bool = False

    def resolve_paths(self, registry: Optional[ModelRegistry] = None) -> Tuple[Path, Path]:
        """Return the absolute (weights, labels) paths for this config.

        Explicit model_path / label_path win. Anything left unset is taken
        from the registry entry for model_id, or the registry default.

        Raises:
            ValueError: If a path is unset and no registry was given.
            KeyError: If model_id is not registered.
        """
        model_path = self.model_path
        label_path = self.label_path

        if model_path is None or label_path is None:
            if registry is None:
                raise ValueError(
                    "model.model_path and model.label_path must both be set "
                    "when no model registry is available."
                )
            entry = registry.get(self.model_id) if self.model_id else registry.default
            model_path = model_path or entry.weights_path
            label_path = label_path or entry.label_path

        return resolve_path(model_path), resolve_path(label_path)


@dataclass(frozen=True)
class DetectionConfig:
    """Detection thresholds.

    Attributes:
        confidence_threshold: A candidate needs a best class score strictly
                              above this value.
        iou_threshold: IoU at or above which NMS suppresses a candidate.
    """

    confidence_threshold: float = 0.35
    iou_threshold: float = 0.3


@dataclass(frozen=True)
class CameraConfig:
    """Physical camera parameters used by the pinhole distance strategy.

    Attributes:
        focal_length_mm: Lens focal length. None if unknown.
        sensor_height_mm: Physical sensor height. None if unknown.
    """

    focal_length_mm: Optional[float] = None
    sensor_height_mm: Optional[float] = None


@dataclass(frozen=True)
class DistanceConfig:
    """Distance estimation strategy.

    Attributes:
        strategy: 'none', 'pinhole' or 'ar_hit_test'.
    """

    strategy: str = "pinhole"


@dataclass(frozen=True)
class InputConfig:
    """Input source configuration.

    Attributes:
        source: Input source — file path, directory path, video path,
                or integer device index (as string or int).
        resize_width: Optional width to downscale input frames before detection.
                      None means no resizing.
        frame_skip: Process one frame out of every frame_skip frames.
    """

    source: str = "0"
    resize_width: Optional[int] = None
    frame_skip: int = 1


@dataclass(frozen=True)
class OutputConfig:
    """Output behavior configuration.

    Attributes:
        mode: Comma-separated output modes:
              'display', 'save_image', 'save_video', 'save_json', 'save_csv'.
        save_path: Directory where output artifacts are written.
    """

    mode: str = "display"
    save_path: str = "output/"


@dataclass(frozen=True)
class VisualizationConfig:
    """Visualization rendering parameters.

    Attributes:
        box_color: BGR color tuple for bounding boxes.
        thickness: Line thickness in pixels.
        show_confidence: Whether to render the confidence score.
        show_distance: Whether to render the distance estimate.
    """

    box_color: Tuple[int, int, int] = (0, 0, 255)
    thickness: int = 2
    show_confidence: bool = True
    show_distance: bool = True


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    model: ModelConfig = field(default_factory=ModelConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    distance: DistanceConfig = field(default_factory=DistanceConfig)
    input: InputConfig = field(default_factory=InputConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_STRATEGIES = {"none", "pinhole", "ar_hit_test"}
_VALID_OUTPUT_MODES = {"display", "save_image", "save_video", "save_json", "save_csv"}


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if config.distance.strategy not in _VALID_STRATEGIES:
        raise ValueError(
            f"Invalid distance.strategy: '{config.distance.strategy}'. "
            f"Must be one of {_VALID_STRATEGIES}."
        )

    modes = set(m.strip() for m in config.output.mode.split(','))
    invalid_modes = modes - _VALID_OUTPUT_MODES
    if invalid_modes:
        raise ValueError(
            f"Invalid output.mode(s): {invalid_modes}. "
            f"Valid modes: {_VALID_OUTPUT_MODES}."
        )

    if not (0.0 <= config.detection.confidence_threshold <= 1.0):
        raise ValueError(
            f"detection.confidence_threshold must be in [0.0, 1.0], "
            f"got {config.detection.confidence_threshold}."
        )

    if not (0.0 <= config.detection.iou_threshold <= 1.0):
        raise ValueError(
            f"detection.iou_threshold must be in [0.0, 1.0], "
            f"got {config.detection.iou_threshold}."
        )

    if len(config.model.input_size) != 2:
        raise ValueError(
            f"model.input_size must be a (width, height) tuple, "
            f"got {config.model.input_size}."
        )

    if any(d <= 0 for d in config.model.input_size):
        raise ValueError(
            f"model.input_size dimensions must be positive, "
            f"got {config.model.input_size}."
        )

    if config.model.thread_count <= 0:
        raise ValueError(
            f"model.thread_count must be a positive integer, "
            f"got {config.model.thread_count}."
        )

    for name in ("focal_length_mm", "sensor_height_mm"):
        value = getattr(config.camera, name)
        if value is not None and value <= 0:
            raise ValueError(f"camera.{name} must be positive or None, got {value}.")

    if config.input.resize_width is not None and config.input.resize_width <= 0:
        raise ValueError(
            f"input.resize_width must be positive or None, "
            f"got {config.input.resize_width}."
        )

    if config.input.frame_skip < 1:
        raise ValueError(
            f"input.frame_skip must be >= 1, got {config.input.frame_skip}."
        )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_tuple(value, expected_len: int, cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length."""
    if isinstance(value, (list, tuple)):
        if len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _parse_bool(value) -> bool:
    """Accept YAML booleans as well as the strings env vars deliver."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}.")


def _parse_optional_float(value) -> Optional[float]:
    if value is None or str(value).strip().lower() in {"", "none", "null"}:
        return None
    return float(value)


def _build_model_config(raw: dict) -> ModelConfig:
    """Build ModelConfig from a raw YAML dict."""
    kwargs = {}
    for key in ("model_id", "model_path", "label_path"):
        if raw.get(key) is not None:
            kwargs[key] = str(raw[key])
    if "manifest_path" in raw:
        kwargs["manifest_path"] = str(raw["manifest_path"])
    if "input_size" in raw:
        kwargs["input_size"] = _parse_tuple(raw["input_size"], 2, int)
    if "thread_count" in raw:
        kwargs["thread_count"] = int(raw["thread_count"])
    if "use_acceleration" in raw:
        kwargs["use_acceleration"] = _parse_bool(raw["use_acceleration"])
    return ModelConfig(**kwargs)


def _build_detection_config(raw: dict) -> DetectionConfig:
    """Build DetectionConfig from a raw YAML dict."""
    kwargs = {}
    if "confidence_threshold" in raw:
        kwargs["confidence_threshold"] = float(raw["confidence_threshold"])
    if "iou_threshold" in raw:
        kwargs["iou_threshold"] = float(raw["iou_threshold"])
    return DetectionConfig(**kwargs)


def _build_camera_config(raw: dict) -> CameraConfig:
    """Build CameraConfig from a raw YAML dict."""
    kwargs = {}
    if "focal_length_mm" in raw:
        kwargs["focal_length_mm"] = _parse_optional_float(raw["focal_length_mm"])
    if "sensor_height_mm" in raw:
        kwargs["sensor_height_mm"] = _parse_optional_float(raw["sensor_height_mm"])
    return CameraConfig(**kwargs)


def _build_distance_config(raw: dict) -> DistanceConfig:
    """Build DistanceConfig from a raw YAML dict."""
    kwargs = {}
    if "strategy" in raw:
        kwargs["strategy"] = str(raw["strategy"]).lower()
    return DistanceConfig(**kwargs)


def _build_input_config(raw: dict) -> InputConfig:
    """Build InputConfig from a raw YAML dict."""
    kwargs = {}
    if "source" in raw:
        kwargs["source"] = str(raw["source"])
    if "resize_width" in raw:
        val = raw["resize_width"]
        kwargs["resize_width"] = int(val) if val is not None else None
    if "frame_skip" in raw:
        kwargs["frame_skip"] = int(raw["frame_skip"])
    return InputConfig(**kwargs)


def _build_output_config(raw: dict) -> OutputConfig:
    """Build OutputConfig from a raw YAML dict."""
    kwargs = {}
    if "mode" in raw:
        kwargs["mode"] = str(raw["mode"]).lower()
    if "save_path" in raw:
        kwargs["save_path"] = str(raw["save_path"])
    return OutputConfig(**kwargs)


def _build_visualization_config(raw: dict) -> VisualizationConfig:
    """Build VisualizationConfig from a raw YAML dict."""
    kwargs = {}
    if "box_color" in raw:
        kwargs["box_color"] = _parse_tuple(raw["box_color"], 3, int)
    if "thickness" in raw:
        kwargs["thickness"] = int(raw["thickness"])
    if "show_confidence" in raw:
        kwargs["show_confidence"] = _parse_bool(raw["show_confidence"])
    if "show_distance" in raw:
        kwargs["show_distance"] = _parse_bool(raw["show_distance"])
    return VisualizationConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "OBSTACLE_DETECT_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        OBSTACLE_DETECT_MODEL_ID=yolov8_15_obstacles_fp32
        OBSTACLE_DETECT_DETECTION_CONFIDENCE_THRESHOLD=0.5
    """
    env_map = {
        f"{_ENV_PREFIX}MODEL_ID": ("model", "model_id"),
        f"{_ENV_PREFIX}MODEL_PATH": ("model", "model_path"),
        f"{_ENV_PREFIX}MODEL_LABEL_PATH": ("model", "label_path"),
        f"{_ENV_PREFIX}MODEL_THREAD_COUNT": ("model", "thread_count"),
        f"{_ENV_PREFIX}MODEL_USE_ACCELERATION": ("model", "use_acceleration"),
        f"{_ENV_PREFIX}DETECTION_CONFIDENCE_THRESHOLD": ("detection", "confidence_threshold"),
        f"{_ENV_PREFIX}DETECTION_IOU_THRESHOLD": ("detection", "iou_threshold"),
        f"{_ENV_PREFIX}CAMERA_FOCAL_LENGTH_MM": ("camera", "focal_length_mm"),
        f"{_ENV_PREFIX}CAMERA_SENSOR_HEIGHT_MM": ("camera", "sensor_height_mm"),
        f"{_ENV_PREFIX}DISTANCE_STRATEGY": ("distance", "strategy"),
        f"{_ENV_PREFIX}INPUT_SOURCE": ("input", "source"),
        f"{_ENV_PREFIX}INPUT_FRAME_SKIP": ("input", "frame_skip"),
        f"{_ENV_PREFIX}OUTPUT_MODE": ("output", "mode"),
        f"{_ENV_PREFIX}OUTPUT_SAVE_PATH": ("output", "save_path"),
    }

    for env_var, (section, key) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            raw.setdefault(section, {})[key] = value
            logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the system runs entirely on defaults.

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = resolve_path(config_path)

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        model=_build_model_config(raw.get("model", {})),
        detection=_build_detection_config(raw.get("detection", {})),
        camera=_build_camera_config(raw.get("camera", {})),
        distance=_build_distance_config(raw.get("distance", {})),
        input=_build_input_config(raw.get("input", {})),
        output=_build_output_config(raw.get("output", {})),
        visualization=_build_visualization_config(raw.get("visualization", {})),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded: %s", config)
    return config


def validate_config(config: AppConfig) -> AppConfig:
    """Validate a config assembled outside load_config (e.g. CLI overrides).

    Raises:
        ValueError: If any configuration value is invalid.
    """
    _validate(config)
    return config
