"""
Export of per-frame obstacle detections.

Distances are only meaningful with their unit: the pinhole strategy
reports millimeters, the AR hit-test strategy meters. Both formats carry
the unit: JSON once at the top level, CSV on every row, so a row copied
out of the file is still unambiguous.

Frames that produced no detections are kept in the JSON report (with an
empty list) so it shows which frames were checked. CSV has one row per
detection and therefore omits them.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from obstacle_detection.detection import DetectionCandidate

logger = logging.getLogger(__name__)

DetectionsByFrame = Mapping[int, Sequence[DetectionCandidate]]

CSV_FIELDS = [
    "frame_id", "class_index", "class_name",
    "x1", "y1", "x2", "y2", "confidence",
    "distance", "distance_unit",
]


def detection_rows(
    detections_by_frame: DetectionsByFrame,
    distance_unit: Optional[str] = None,
) -> Iterator[Dict]:
    """Yield one flat record per detection, frames in ascending order.

    A detection without a distance estimate has neither distance nor
    unit, even when the run has a distance strategy.
    """
    for frame_id in sorted(detections_by_frame):
        for det in detections_by_frame[frame_id]:
            row = det.to_dict()
            row["distance_unit"] = distance_unit if row["distance"] is not None else None
            yield {"frame_id": frame_id, **row}


def save_json(
    detections_by_frame: DetectionsByFrame,
    output_path: str,
    distance_unit: Optional[str] = None,
) -> None:
    """Write the detection report as JSON.

    Schema:
        {
            "distance_unit": "mm" | "m" | null,
            "frames": [{"frame_id": 0, "detections": [{...}, ...]}],
            "total_frames": N,
            "total_detections": M
        }

    Raises:
        OSError: If the output path is not writable.
    """
    frames: List[Dict] = [
        {
            "frame_id": frame_id,
            "detections": [d.to_dict() for d in detections_by_frame[frame_id]],
        }
        for frame_id in sorted(detections_by_frame)
    ]
    total = sum(len(f["detections"]) for f in frames)

    _write_text(output_path, json.dumps({
        "distance_unit": distance_unit,
        "frames": frames,
        "total_frames": len(frames),
        "total_detections": total,
    }, indent=2))

    logger.info("JSON report saved: %s (%d frames, %d detections)",
                output_path, len(frames), total)


def save_csv(
    detections_by_frame: DetectionsByFrame,
    output_path: str,
    distance_unit: Optional[str] = None,
) -> None:
    """Write one CSV row per detection; unknown distances are left blank.

    Raises:
        OSError: If the output path is not writable.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in detection_rows(detections_by_frame, distance_unit):
            writer.writerow({k: ("" if v is None else v) for k, v in row.items()})
            count += 1

    logger.info("CSV report saved: %s (%d rows)", output_path, count)


def _write_text(path: str, text: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
