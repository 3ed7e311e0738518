"""
Obstacle Detection CLI Entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire together
    the detector and I/O handlers, and run the main processing loop.

Usage:
    python main.py --source 0                          # Camera
    python main.py --source walk.mp4 --frame-skip 3
    python main.py --model yolov8_15_obstacles_fp32 --output-mode save_json
    python main.py --config my_config.yaml
    python main.py --list-models

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import logging
import sys
import time
from dataclasses import replace

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

from obstacle_detection.config import AppConfig, load_config, resolve_path, validate_config
from obstacle_detection.distance import CameraIntrinsics, build_distance_estimator
from obstacle_detection.input_handler import InputHandler
from obstacle_detection.output_handler import OutputHandler
from obstacle_detection.pipeline import ObstacleDetector
from obstacle_detection.registry import load_registry


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Real-time obstacle detection",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--source", type=str,
                        help="Input source: '0' for camera, image/video path, or directory.")
    parser.add_argument("--config", type=str, help="Path to YAML configuration file.")
    parser.add_argument("--model", type=str, help="Model id from the model manifest.")
    parser.add_argument("--list-models", action="store_true",
                        help="List models in the manifest and exit.")
    parser.add_argument("--confidence", type=float,
                        help="Confidence threshold (0.0 - 1.0). Overrides config.")
    parser.add_argument("--iou", type=float,
                        help="NMS IoU threshold (0.0 - 1.0). Overrides config.")
    parser.add_argument("--threads", type=int, help="Inference thread count. Overrides config.")
    parser.add_argument("--accelerate", action="store_true", default=None,
                        help="Request a hardware-accelerated backend.")
    parser.add_argument("--distance", type=str, choices=["none", "pinhole"],
                        help="Distance estimation strategy. Overrides config. "
                             "ar_hit_test needs a live AR session and is library-only.")
    parser.add_argument("--frame-skip", type=int,
                        help="Process one frame out of every N. Overrides config.")
    parser.add_argument("--output-mode", type=str,
                        help="Comma-separated outputs: display, save_image, save_video, "
                             "save_json, save_csv. Overrides config.")
    parser.add_argument("--output-path", type=str,
                        help="Directory for output artifacts. Overrides config.")

    return parser.parse_args()


def apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of config with command-line values applied."""
    model = config.model
    if args.model is not None:
        model = replace(model, model_id=args.model)
    if args.threads is not None:
        model = replace(model, thread_count=args.threads)
    if args.accelerate is not None:
        model = replace(model, use_acceleration=args.accelerate)

    detection = config.detection
    if args.confidence is not None:
        detection = replace(detection, confidence_threshold=args.confidence)
    if args.iou is not None:
        detection = replace(detection, iou_threshold=args.iou)

    distance = config.distance
    if args.distance is not None:
        distance = replace(distance, strategy=args.distance)

    input_cfg = config.input
    if args.source is not None:
        input_cfg = replace(input_cfg, source=args.source)
    if args.frame_skip is not None:
        input_cfg = replace(input_cfg, frame_skip=args.frame_skip)

    output = config.output
    if args.output_mode is not None:
        output = replace(output, mode=args.output_mode)
    if args.output_path is not None:
        output = replace(output, save_path=args.output_path)

    return replace(
        config,
        model=model,
        detection=detection,
        distance=distance,
        input=input_cfg,
        output=output,
    )


def list_models(config: AppConfig) -> int:
    registry = load_registry(resolve_path(config.model.manifest_path))
    for entry in registry:
        marker = "*" if entry.model_id == registry.default.model_id else " "
        print(f"{marker} {entry.model_id:<30} {entry.display_name}")
    return 0


def main() -> int:
    """Main execution loop."""
    args = parse_args()

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = validate_config(apply_cli_overrides(load_config(args.config), args))
    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    if args.list_models:
        return list_models(config)

    # 2. Initialize Components
    try:
        estimator = build_distance_estimator(
            config.distance.strategy,
            CameraIntrinsics(
                focal_length_mm=config.camera.focal_length_mm,
                sensor_height_mm=config.camera.sensor_height_mm,
            ),
        )
        output_handler = OutputHandler(config, estimator.unit if estimator else None)
        detector = ObstacleDetector(
            config,
            sink=output_handler,
            distance_estimator=estimator,
        )
        detector.setup()
        input_handler = InputHandler(
            source=config.input.source,
            resize_width=config.input.resize_width,
            frame_skip=config.input.frame_skip,
        )
    except (FileNotFoundError, KeyError, ValueError, RuntimeError) as e:
        logger.error("Initialization failed: %s", e)
        return 1
    except Exception as e:
        logger.exception("Unexpected initialization error: %s", e)
        return 1

    # 3. Processing Loop
    logger.info("Starting processing loop. Press 'q' or ESC to quit in display mode.")

    frame_count = 0
    start_time = time.perf_counter()

    try:
        for frame_id, frame in input_handler:
            frame_count += 1

            output_handler.begin_frame(frame_id, frame)
            detector.detect(frame)

            if frame_count % 30 == 0:
                logger.info("Processed %d frames...", frame_count)

            if not output_handler.should_continue:
                logger.info("Stopping loop per user request.")
                break

    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    except Exception as e:
        logger.exception("Runtime error during processing: %s", e)
        return 1
    finally:
        elapsed = time.perf_counter() - start_time
        fps = frame_count / elapsed if elapsed > 0 else 0.0

        input_handler.release()
        output_handler.finalize()

        logger.info(
            "Processing finished. Total frames: %d. Avg FPS: %.2f.",
            frame_count, fps
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
