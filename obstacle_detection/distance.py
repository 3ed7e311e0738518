"""
Distance estimation for detected obstacles.

Two interchangeable strategies sit behind the DistanceEstimator interface:

    - PinholeDistanceEstimator: monocular estimate from an assumed
      real-world object height, the camera focal length and the sensor
      height. Runs during decoding. Result in millimeters.
    - ARHitTestDistanceEstimator: ray-casts the box center into the
      AR-reconstructed scene and measures the straight-line distance from
      the camera to the first hit. Runs on NMS survivors only. Result in
      meters.

Only one strategy is active per pipeline. Every failure mode that comes
from missing data (unknown class, missing intrinsics, zero pixel height,
no AR surface) yields None rather than an exception.

The AR subsystem updates its frame and camera pose at its own pace. It
publishes them together through ARSnapshotHolder and the pipeline reads
one snapshot per detect cycle, so a detection is never paired with a pose
from a different frame.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, Sequence

from obstacle_detection.detection import DetectionCandidate

logger = logging.getLogger(__name__)

# Assumed real-world heights in millimeters, keyed by lowercase class name
REAL_WORLD_SIZES_MM: Mapping[str, float] = MappingProxyType({
    "bicycle": 600.0,
    "bus": 2500.0,
    "car": 1800.0,
    "dog": 500.0,
    "electric pole": 300.0,
    "motorcycle": 800.0,
    "person": 500.0,
    "traffic sign": 700.0,
    "tree": 1500.0,
    "uncovered manhole": 700.0,
})


class DistanceStage(Enum):
    """Point in the pipeline where an estimator attaches distances."""

    DECODE = "decode"
    SELECTED = "selected"


@dataclass(frozen=True)
class CameraIntrinsics:
    """Physical camera parameters. Either value may be unknown (None)."""

    focal_length_mm: Optional[float] = None
    sensor_height_mm: Optional[float] = None


@dataclass(frozen=True)
class Pose:
    """3D position in the AR world frame, in meters."""

    tx: float
    ty: float
    tz: float


class ARFrame(Protocol):
    """An AR frame able to ray-cast a screen point into the scene."""

    def hit_test(self, x: float, y: float) -> Sequence[Pose]:
        """Return hit poses for the pixel (x, y), nearest first."""
        ...


@dataclass(frozen=True)
class ARSnapshot:
    """An AR frame paired with the camera pose tracked for that frame."""

    frame: ARFrame
    camera_pose: Pose


class ARSnapshotHolder:
    """Latest AR snapshot, replaced atomically by the AR subsystem."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Optional[ARSnapshot] = None

    def publish(self, frame: ARFrame, camera_pose: Pose) -> ARSnapshot:
        snapshot = ARSnapshot(frame=frame, camera_pose=camera_pose)
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def latest(self) -> Optional[ARSnapshot]:
        with self._lock:
            return self._snapshot


@dataclass(frozen=True)
class FrameContext:
    """Per-cycle inputs shared by all distance strategies.

    Attributes:
        frame_width: Source frame width in pixels.
        frame_height: Source frame height in pixels.
        tensor_height: Model input height in pixels.
        ar_snapshot: AR snapshot read at the start of the cycle, if any.
    """

    frame_width: int
    frame_height: int
    tensor_height: int
    ar_snapshot: Optional[ARSnapshot] = None


def estimate_pinhole_distance(
    class_name: str,
    object_height_px: float,
    focal_length_mm: Optional[float],
    image_height_px: float,
    sensor_height_mm: Optional[float],
    sizes: Mapping[str, float] = REAL_WORLD_SIZES_MM,
) -> Optional[float]:
    """Estimate distance with the pinhole camera model.

        distance_mm = (f_mm * real_height_mm * image_height_px)
                      / (object_height_px * sensor_height_mm)

    Args:
        class_name: Detected class; matched case-insensitively against sizes.
        object_height_px: Apparent object height in pixels.
        focal_length_mm: Lens focal length, None if the camera did not report it.
        image_height_px: Height of the image the object was measured in.
        sensor_height_mm: Physical sensor height, None if unknown.
        sizes: Real-world heights in millimeters by lowercase class name.

    Returns:
        Distance in millimeters, or None when no estimate is possible.
    """
    real_height_mm = sizes.get(class_name.lower())
    if real_height_mm is None:
        return None
    if focal_length_mm is None or sensor_height_mm is None:
        return None
    if object_height_px <= 0 or sensor_height_mm <= 0:
        return None

    return (focal_length_mm * real_height_mm * image_height_px) / (
        object_height_px * sensor_height_mm
    )


def euclidean_distance(a: Pose, b: Pose) -> float:
    """Straight-line distance between two poses."""
    dx = b.tx - a.tx
    dy = b.ty - a.ty
    dz = b.tz - a.tz
    return math.sqrt(dx * dx + dy * dy + dz * dz)


class DistanceEstimator(ABC):
    """Strategy interface for attaching a distance to a detection."""

    #: Where in the pipeline this estimator runs.
    stage: DistanceStage = DistanceStage.DECODE

    #: Unit of the returned values ("mm" or "m").
    unit: str = "mm"

    @abstractmethod
    def estimate(
        self,
        candidate: DetectionCandidate,
        context: FrameContext,
    ) -> Optional[float]:
        """Return a distance for the candidate, or None."""


class PinholeDistanceEstimator(DistanceEstimator):
    """Monocular estimate from assumed object heights and camera optics."""

    stage = DistanceStage.DECODE
    unit = "mm"

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        sizes: Mapping[str, float] = REAL_WORLD_SIZES_MM,
    ) -> None:
        self._intrinsics = intrinsics
        self._sizes = sizes

        if intrinsics.focal_length_mm is None or intrinsics.sensor_height_mm is None:
            logger.warning(
                "Camera intrinsics incomplete (focal_length_mm=%s, "
                "sensor_height_mm=%s); pinhole distances will be omitted.",
                intrinsics.focal_length_mm,
                intrinsics.sensor_height_mm,
            )

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return self._intrinsics

    def estimate(
        self,
        candidate: DetectionCandidate,
        context: FrameContext,
    ) -> Optional[float]:
        return estimate_pinhole_distance(
            class_name=candidate.class_name,
            object_height_px=candidate.height * context.tensor_height,
            focal_length_mm=self._intrinsics.focal_length_mm,
            image_height_px=float(context.tensor_height),
            sensor_height_mm=self._intrinsics.sensor_height_mm,
            sizes=self._sizes,
        )


class ARHitTestDistanceEstimator(DistanceEstimator):
    """Distance from the camera to the AR surface behind the box center."""

    stage = DistanceStage.SELECTED
    unit = "m"

    def __init__(self) -> None:
        self._warned_no_snapshot = False

    def estimate(
        self,
        candidate: DetectionCandidate,
        context: FrameContext,
    ) -> Optional[float]:
        snapshot = context.ar_snapshot
        if snapshot is None:
            # Warned once, later misses stay quiet
            if not self._warned_no_snapshot:
                logger.warning(
                    "No AR frame available yet; AR distances omitted until one is published."
                )
                self._warned_no_snapshot = True
            return None

        cx, cy = candidate.center
        x = cx * context.frame_width
        y = cy * context.frame_height

        hits = snapshot.frame.hit_test(x, y)
        if not hits:
            # e.g. pointing at open sky
            logger.debug("No surface hit at (%.1f, %.1f) for %s", x, y, candidate.class_name)
            return None

        return euclidean_distance(snapshot.camera_pose, hits[0])


_STRATEGIES = ("none", "pinhole", "ar_hit_test")


def build_distance_estimator(
    strategy: str,
    intrinsics: CameraIntrinsics,
    snapshot_holder: Optional[ARSnapshotHolder] = None,
) -> Optional[DistanceEstimator]:
    """Create the estimator for a configured strategy name.

    The AR strategy only reads snapshots, so it needs the holder the AR
    session publishes into.

    Raises:
        ValueError: If the strategy name is unknown, or if ar_hit_test is
                    requested without a snapshot holder.
    """
    if strategy == "none":
        return None
    if strategy == "pinhole":
        return PinholeDistanceEstimator(intrinsics)
    if strategy == "ar_hit_test":
        if snapshot_holder is None:
            raise ValueError(
                "Distance strategy 'ar_hit_test' needs an AR snapshot source; "
                "pass an ARSnapshotHolder that an AR session publishes into."
            )
        return ARHitTestDistanceEstimator()
    raise ValueError(
        f"Unknown distance strategy: '{strategy}'. Must be one of {_STRATEGIES}."
    )
