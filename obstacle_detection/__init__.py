"""
Obstacle Detection — post-inference decoding for real-time obstacle detection.

Public API:
    - ObstacleDetector: loads a model once and runs decode -> NMS -> distance per frame.
    - DetectionCandidate: a single detected obstacle (normalized box, class, distance).
    - DetectionSink / EmptyDetection / ObstacleDetections: outcome delivery.
    - decode, non_max_suppression, iou: the pure building blocks.
    - PinholeDistanceEstimator / ARHitTestDistanceEstimator / ARSnapshotHolder:
      distance strategies and the AR snapshot handoff.

Usage:
    from obstacle_detection import ObstacleDetector

    detector = ObstacleDetector()
    detector.setup()
    outcome = detector.detect(frame)
"""

from obstacle_detection.decoder import decode
from obstacle_detection.detection import DetectionCandidate
from obstacle_detection.distance import (
    ARHitTestDistanceEstimator,
    ARSnapshotHolder,
    CameraIntrinsics,
    PinholeDistanceEstimator,
    Pose,
)
from obstacle_detection.geometry import iou
from obstacle_detection.nms import non_max_suppression
from obstacle_detection.pipeline import ModelMetadata, ObstacleDetector
from obstacle_detection.results import DetectionSink, EmptyDetection, ObstacleDetections

__all__ = [
    "ARHitTestDistanceEstimator",
    "ARSnapshotHolder",
    "CameraIntrinsics",
    "DetectionCandidate",
    "DetectionSink",
    "EmptyDetection",
    "ModelMetadata",
    "ObstacleDetections",
    "ObstacleDetector",
    "PinholeDistanceEstimator",
    "Pose",
    "decode",
    "iou",
    "non_max_suppression",
]
