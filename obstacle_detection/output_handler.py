"""
Output handling for the obstacle detection CLI.

Responsibility:
    Receive detect-cycle outcomes as a DetectionSink and route them to the
    configured outputs: display window, saved images, video file, JSON or
    CSV. Several modes can be active at once.

Non-goals:
    - No detection logic.
    - No input acquisition.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import cv2
import numpy as np

from obstacle_detection.config import AppConfig, resolve_path
from obstacle_detection.detection import DetectionCandidate
from obstacle_detection.results import DetectionSink
from obstacle_detection.serializer import save_csv, save_json
from obstacle_detection.visualizer import draw_detections, show_frame

logger = logging.getLogger(__name__)

_FILE_MODES = {"save_image", "save_video", "save_json", "save_csv"}
_QUIT_KEYS = {ord("q"), 27}  # 'q' or ESC


class OutputHandler(DetectionSink):
    """DetectionSink that renders and records results for the CLI.

    Usage:
        handler = OutputHandler(config, distance_unit="mm")
        detector = ObstacleDetector(config, sink=handler)
        for frame_id, frame in frames:
            handler.begin_frame(frame_id, frame)
            detector.detect(frame)
            if not handler.should_continue:
                break
        handler.finalize()
    """

    def __init__(self, config: AppConfig, distance_unit: Optional[str] = None) -> None:
        self._config = config
        self._distance_unit = distance_unit
        self._video_writer: Optional[cv2.VideoWriter] = None

        self._modes: Set[str] = set(m.strip() for m in config.output.mode.split(','))
        self._detections_buffer: Dict[int, List[DetectionCandidate]] = {}

        self._frame_id = -1
        self._frame: Optional[np.ndarray] = None
        self._should_continue = True

        self._save_path: Path = resolve_path(config.output.save_path)
        if self._modes & _FILE_MODES:
            self._save_path.mkdir(parents=True, exist_ok=True)

        logger.info("OutputHandler initialized: modes=%s, save_path=%s",
                    self._modes, self._save_path)

    @property
    def should_continue(self) -> bool:
        """False once the user asked to quit from the display window."""
        return self._should_continue

    def begin_frame(self, frame_id: int, frame: np.ndarray) -> None:
        """Record the frame the next outcome belongs to."""
        self._frame_id = frame_id
        self._frame = frame

    # --- DetectionSink -------------------------------------------------

    def on_empty_detect(self) -> None:
        logger.debug("Frame %d: no obstacles detected.", self._frame_id)
        if self._frame is not None:
            self._handle(self._frame, [])

    def on_detect(
        self,
        detections: Sequence[DetectionCandidate],
        source_image: np.ndarray,
    ) -> None:
        logger.debug(
            "Frame %d: %d obstacle(s): %s", self._frame_id, len(detections),
            ", ".join(d.class_name for d in detections),
        )
        self._handle(source_image, list(detections))

    # --- Routing -------------------------------------------------------

    def _handle(self, frame: np.ndarray, detections: List[DetectionCandidate]) -> None:
        vis = self._config.visualization
        unit = self._distance_unit or "mm"

        if "display" in self._modes:
            key = show_frame(frame, detections, vis, unit)
            if key in _QUIT_KEYS:
                logger.info("Quit signal received (key press).")
                self._should_continue = False

        if "save_image" in self._modes:
            output_file = self._save_path / f"frame_{self._frame_id:06d}.jpg"
            cv2.imwrite(str(output_file), draw_detections(frame, detections, vis, unit))

        if "save_video" in self._modes:
            self._write_video_frame(draw_detections(frame, detections, vis, unit))

        if "save_json" in self._modes or "save_csv" in self._modes:
            self._detections_buffer[self._frame_id] = detections

    def _write_video_frame(self, annotated: np.ndarray) -> None:
        if self._video_writer is None:
            output_file = str(self._save_path / "output.avi")
            h, w = annotated.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*"XVID")
            self._video_writer = cv2.VideoWriter(output_file, fourcc, 20.0, (w, h))
            logger.info("Video writer opened: %s (%dx%d)", output_file, w, h)
        self._video_writer.write(annotated)

    def finalize(self) -> None:
        """Flush buffered output and release resources."""
        if "save_json" in self._modes and self._detections_buffer:
            save_json(self._detections_buffer, str(self._save_path / "detections.json"),
                      self._distance_unit)

        if "save_csv" in self._modes and self._detections_buffer:
            save_csv(self._detections_buffer, str(self._save_path / "detections.csv"),
                     self._distance_unit)

        if self._video_writer is not None:
            self._video_writer.release()
            self._video_writer = None
            logger.info("Video writer released.")

        if "display" in self._modes:
            cv2.destroyAllWindows()

        self._detections_buffer.clear()
        logger.info("OutputHandler finalized.")
