"""
Frame input for the obstacle detection pipeline.

Responsibility:
    Read frames from images, image directories, video files and camera
    streams, and yield them as (frame_id, frame) tuples. Frame skipping
    (one frame out of every N) bounds the detection load: skipped frames
    are read and discarded, never queued.

Non-goals:
    - No detection, drawing, or output writing.
    - No infinite retry on bad sources.
    - No implicit fallback between source types.

Robustness:
    - Validates the source at initialization time.
    - Logs and skips unreadable frames.
    - Releases capture handles on cleanup.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp"}
_VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv", ".wmv", ".flv"}

# Consecutive failed camera reads tolerated before giving up
_MAX_CAMERA_FAILURES = 30


class InputHandler:
    """Frame iterator for images, directories, videos and cameras.

    The source type is auto-detected:
        - Integer or digit string  → camera device index
        - File with image extension → single image
        - File with video extension → video file
        - Directory → all images in the directory, sorted by name

    Usage:
        handler = InputHandler(source="walk.mp4", frame_skip=3)
        for frame_id, frame in handler:
            ...
        handler.release()

    frame_id is the index of the frame in the source, so ids of yielded
    frames advance by frame_skip.
    """

    def __init__(
        self,
        source: Union[str, int],
        resize_width: Optional[int] = None,
        frame_skip: int = 1,
    ) -> None:
        """Validate the source and open it.

        Raises:
            FileNotFoundError: If a file/directory source does not exist.
            ValueError: If the source type cannot be determined or
                        frame_skip is below 1.
            RuntimeError: If a video/camera source cannot be opened.
        """
        self._cap: Optional[cv2.VideoCapture] = None
        self._image_paths: List[Path] = []

        if frame_skip < 1:
            raise ValueError(f"frame_skip must be >= 1, got {frame_skip}.")

        self._resize_width = resize_width
        self._frame_skip = frame_skip

        source_str = str(source).strip()
        path = Path(source_str)

        if source_str.isdigit():
            self._mode = "camera"
            self._open_capture(int(source_str))
        elif path.is_file():
            ext = path.suffix.lower()
            if ext in _IMAGE_EXTENSIONS:
                self._mode = "image"
                self._image_paths = [path]
            elif ext in _VIDEO_EXTENSIONS:
                self._mode = "video"
                self._open_capture(source_str)
            else:
                raise ValueError(
                    f"Unrecognized file extension '{ext}' for source '{source_str}'. "
                    f"Supported images: {sorted(_IMAGE_EXTENSIONS)}. "
                    f"Supported videos: {sorted(_VIDEO_EXTENSIONS)}."
                )
        elif path.is_dir():
            self._mode = "directory"
            self._image_paths = sorted(
                p for p in path.iterdir() if p.suffix.lower() in _IMAGE_EXTENSIONS
            )
            if not self._image_paths:
                raise ValueError(f"No image files found in directory: '{source_str}'.")
            logger.info("Found %d images in %s", len(self._image_paths), source_str)
        else:
            raise FileNotFoundError(
                f"Input source not found: '{source_str}'. "
                f"Provide a valid file path, directory, or device index."
            )

        logger.info(
            "InputHandler initialized: mode=%s, source=%s, frame_skip=%d",
            self._mode, source_str, frame_skip,
        )

    @property
    def mode(self) -> str:
        return self._mode

    def _open_capture(self, source: Union[str, int]) -> None:
        self._cap = cv2.VideoCapture(source)
        if not self._cap.isOpened():
            desc = f"camera device {source}" if isinstance(source, int) else f"video file '{source}'"
            raise RuntimeError(f"Failed to open {desc}.")

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        frames = self._iterate_images() if self._image_paths else self._iterate_capture()
        for frame_id, frame in frames:
            if frame_id % self._frame_skip:
                continue
            yield frame_id, self._maybe_resize(frame)

    def _iterate_images(self) -> Iterator[Tuple[int, np.ndarray]]:
        for idx, path in enumerate(self._image_paths):
            frame = cv2.imread(str(path))
            if frame is None:
                logger.warning("Skipping unreadable image (frame_id=%d): %s", idx, path)
                continue
            yield idx, frame

    def _iterate_capture(self) -> Iterator[Tuple[int, np.ndarray]]:
        frame_id = 0
        failures = 0

        while self._cap is not None:
            ok, frame = self._cap.read()

            if not ok or frame is None:
                if self._mode == "video":
                    logger.info("End of video reached at frame %d.", frame_id)
                    break
                failures += 1
                if failures >= _MAX_CAMERA_FAILURES:
                    logger.error(
                        "Camera produced %d consecutive failed reads, stopping.",
                        _MAX_CAMERA_FAILURES,
                    )
                    break
                logger.warning("Failed to read frame %d from camera, skipping.", frame_id)
                frame_id += 1
                continue

            failures = 0
            yield frame_id, frame
            frame_id += 1

    def _maybe_resize(self, frame: np.ndarray) -> np.ndarray:
        """Downscale to resize_width, preserving aspect ratio."""
        if self._resize_width is None:
            return frame

        h, w = frame.shape[:2]
        if w <= self._resize_width:
            return frame

        new_h = int(h * self._resize_width / w)
        return cv2.resize(frame, (self._resize_width, new_h), interpolation=cv2.INTER_AREA)

    def release(self) -> None:
        """Release the capture handle, if any."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("VideoCapture released.")

    def __del__(self) -> None:
        self.release()
