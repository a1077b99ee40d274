#!/usr/bin/env python3
"""CLI for planning subject-centered crops for a video."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import pandas as pd
from tqdm import tqdm

from reframe.detectors.face_retina import RetinaFaceDetector
from reframe.detectors.object_yolo import YOLOObjectDetector
from reframe.detectors.stub import StaticSubjectDetector
from reframe.io_utils import dump_json, ensure_dir, load_yaml, setup_logging
from reframe.options import SubjectTrackingOptions, parse_aspect_ratio
from reframe.pipeline import PipelineConfig, TrackingPipeline
from reframe.planning.crop import crops_to_frame
from reframe.tracking.aggregate import regions_to_frame
from reframe.video import iter_frames, probe_video

LOGGER = logging.getLogger("scripts.plan_crops")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan subject-centered crops for a target aspect ratio")
    parser.add_argument("video", type=Path, help="Input video file")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("data/outputs"),
        help="Output directory root",
    )
    parser.add_argument(
        "--pipeline-config",
        type=Path,
        default=Path("configs/pipeline.yaml"),
        help="Pipeline configuration YAML",
    )
    parser.add_argument(
        "--detector",
        choices=("retinaface", "stub"),
        default=None,
        help="Face detector backend (default from config)",
    )
    parser.add_argument(
        "--object-weights",
        type=str,
        default=None,
        help="YOLO weights for object tracking (enables the object source)",
    )
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="ONNX execution providers (overrides platform defaults)",
    )
    parser.add_argument("--aspect-ratio", type=str, default=None, help="Target aspect ratio, e.g. 9:16")
    parser.add_argument("--confidence-threshold", type=float, default=None)
    parser.add_argument("--min-face-size", type=float, default=None)
    parser.add_argument("--smoothing", type=float, default=None, help="Tracking smoothing factor [0, 1]")
    centering_group = parser.add_mutually_exclusive_group()
    centering_group.add_argument(
        "--speaker-centering",
        dest="speaker_centering",
        action="store_true",
        help="Center crops on the detected subject",
    )
    centering_group.add_argument(
        "--no-speaker-centering",
        dest="speaker_centering",
        action="store_false",
        help="Use a static centered crop",
    )
    centering_group.set_defaults(speaker_centering=None)
    parser.add_argument("--max-gap-frames", type=int, default=None, help="Frames bridged inside one region")
    parser.add_argument("--stride", type=int, default=None, help="Override frame sampling stride")
    parser.add_argument("--workers", type=int, default=None, help="Detector worker threads")
    return parser.parse_args(argv)


def resolve_tracking_options(args: argparse.Namespace, pipeline_cfg: Dict[str, Any]) -> SubjectTrackingOptions:
    """Merge CLI overrides on top of the ``tracking`` section of the config."""
    tracking_cfg = dict(pipeline_cfg.get("tracking") or {})
    if args.aspect_ratio is not None:
        tracking_cfg["crop_aspect_ratio"] = parse_aspect_ratio(args.aspect_ratio)
    if args.confidence_threshold is not None:
        tracking_cfg["confidence_threshold"] = args.confidence_threshold
    if args.min_face_size is not None:
        tracking_cfg["min_face_size"] = args.min_face_size
    if args.smoothing is not None:
        tracking_cfg["tracking_smoothing"] = args.smoothing
    if args.speaker_centering is not None:
        tracking_cfg["speaker_centering_enabled"] = args.speaker_centering
    if args.object_weights:
        tracking_cfg["object_tracking_enabled"] = True
    return SubjectTrackingOptions.from_dict(tracking_cfg)


def resolve_pipeline_config(args: argparse.Namespace, pipeline_cfg: Dict[str, Any]) -> PipelineConfig:
    config = PipelineConfig.from_dict(pipeline_cfg)
    if args.max_gap_frames is not None:
        config.max_gap_frames = args.max_gap_frames
    if args.workers is not None:
        config.detect_workers = args.workers
    return config


def _resolve_stride(args: argparse.Namespace, pipeline_cfg: Dict[str, Any]) -> int:
    stride = args.stride if args.stride is not None else int(pipeline_cfg.get("stride", 1))
    if stride < 1:
        LOGGER.warning("Invalid stride %s requested; defaulting to 1", stride)
        stride = 1
    return stride


def _build_detectors(
    args: argparse.Namespace,
    pipeline_cfg: Dict[str, Any],
    options: SubjectTrackingOptions,
) -> Tuple[Optional[Any], Optional[Any]]:
    face_detector = None
    if options.face_detection_enabled:
        backend = args.detector or pipeline_cfg.get("detector", "retinaface")
        if backend == "stub":
            face_detector = StaticSubjectDetector()
        else:
            det_size = tuple(pipeline_cfg.get("det_size", [640, 640]))
            providers = tuple(args.providers) if args.providers else pipeline_cfg.get("providers")
            face_detector = RetinaFaceDetector(
                providers=tuple(providers) if providers else None,
                det_size=det_size,  # type: ignore[arg-type]
            )

    object_detector = None
    weights = args.object_weights or pipeline_cfg.get("object_weights")
    if options.object_tracking_enabled and weights:
        object_detector = YOLOObjectDetector(weights=weights)
    elif options.object_tracking_enabled:
        LOGGER.warning("Object tracking enabled but no YOLO weights configured; skipping object source")
    return face_detector, object_detector


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()

    pipeline_cfg = load_yaml(args.pipeline_config) if args.pipeline_config.exists() else {}
    if not pipeline_cfg:
        LOGGER.info("No pipeline config at %s; using defaults", args.pipeline_config)

    options = resolve_tracking_options(args, pipeline_cfg)
    config = resolve_pipeline_config(args, pipeline_cfg)
    stride = _resolve_stride(args, pipeline_cfg)
    # Fail fast on bad options before loading any model
    options.validate()
    face_detector, object_detector = _build_detectors(args, pipeline_cfg, options)
    pipeline = TrackingPipeline(options, face_detector=face_detector, object_detector=object_detector, config=config)

    info = probe_video(args.video)
    frame_interval = info.frame_interval * stride
    LOGGER.info(
        "Runtime config: stride=%d workers=%d max_gap_frames=%d aspect=%.4f smoothing=%.2f method=%s",
        stride,
        config.detect_workers,
        config.max_gap_frames,
        options.crop_aspect_ratio,
        options.tracking_smoothing,
        pipeline.tracking_method,
    )

    total = (info.frame_count + stride - 1) // stride if info.frame_count else None
    frames = tqdm(iter_frames(args.video, stride=stride), total=total, desc="frames", unit="frame")
    result = pipeline.run(frames, info.width, info.height, frame_interval)

    video_stem = args.video.stem
    output_dir = ensure_dir(args.output_dir / video_stem)
    detections_csv = output_dir / f"{video_stem}-detections.csv"
    regions_csv = output_dir / f"{video_stem}-regions.csv"
    crops_csv = output_dir / f"{video_stem}-crops.csv"
    plan_json = output_dir / f"{video_stem}-plan.json"

    pd.DataFrame([det.to_dict() for det in result.detections]).to_csv(detections_csv, index=False)
    regions_to_frame(result.regions).to_csv(regions_csv, index=False)
    crops_df = crops_to_frame(result.crops)
    crops_df["filter"] = result.filters
    crops_df.to_csv(crops_csv, index=False)
    payload = result.to_dict()
    payload["video"] = str(args.video)
    payload["metadata"]["fps"] = info.fps
    payload["metadata"]["stride"] = stride
    dump_json(plan_json, payload)

    LOGGER.info(
        "Crop plan outputs written: detections=%s regions=%s crops=%s plan=%s",
        detections_csv,
        regions_csv,
        crops_csv,
        plan_json,
    )
    LOGGER.info("Timeline filter: %s", result.timeline_filter)


if __name__ == "__main__":
    main()
