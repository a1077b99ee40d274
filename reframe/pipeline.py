"""Per-run subject tracking pipeline: detect → aggregate → smooth → plan → emit."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from reframe.detectors.adapter import DetectionAdapter
from reframe.detectors.base import SubjectDetector
from reframe.options import SubjectTrackingOptions, aspect_ratio_label
from reframe.planning.crop import CropPlanner
from reframe.render.ffmpeg import emit, emit_timeline
from reframe.tracking.aggregate import aggregate, select_primary_detections
from reframe.tracking.smoothing import smooth_detections, smooth_regions
from reframe.types import CropParameters, Detection, Frame, TrackingRegion

LOGGER = logging.getLogger("reframe.pipeline")


@dataclass
class PipelineConfig:
    """Run settings that sit beside the user-facing tracking options."""

    max_gap_frames: int = 1
    smooth_detections: bool = True
    smooth_regions: bool = False
    detect_workers: int = 1

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineConfig":
        data = data or {}
        return cls(
            max_gap_frames=int(data.get("max_gap_frames", cls.max_gap_frames)),
            smooth_detections=bool(data.get("smooth_detections", cls.smooth_detections)),
            smooth_regions=bool(data.get("smooth_regions", cls.smooth_regions)),
            detect_workers=int(data.get("detect_workers", cls.detect_workers)),
        )


@dataclass
class PipelineResult:
    regions: List[TrackingRegion]
    crops: List[CropParameters]
    filters: List[str]
    timeline_filter: str
    metadata: Dict[str, Any]
    detections: List[Detection] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata,
            "regions": [region.to_dict() for region in self.regions],
            "crops": [
                dict(crop.to_dict(), filter=filter_str) for crop, filter_str in zip(self.crops, self.filters)
            ],
            "timeline_filter": self.timeline_filter,
        }


class TrackingPipeline:
    """Owns one tracking run; construct a new pipeline per video.

    Options are validated here, before any frame is touched.
    """

    def __init__(
        self,
        options: SubjectTrackingOptions,
        face_detector: Optional[SubjectDetector] = None,
        object_detector: Optional[SubjectDetector] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.options = options.validate()
        self.config = config or PipelineConfig()
        if self.config.max_gap_frames < 1:
            raise ValueError(f"max_gap_frames must be >= 1 (got {self.config.max_gap_frames})")
        self.adapter = DetectionAdapter(options, face_detector=face_detector, object_detector=object_detector)

    @property
    def tracking_method(self) -> str:
        if not self.options.speaker_centering_enabled:
            return "static_center"
        names = [
            f"{source}:{getattr(detector, 'name', type(detector).__name__)}"
            for source, detector in self.adapter.sources()
        ]
        return "+".join(names) if names else "static_center"

    def run(
        self,
        frames: Iterable[Frame],
        source_width: int,
        source_height: int,
        frame_interval: float,
    ) -> PipelineResult:
        """Process frames in strictly increasing timestamp order and plan crops."""
        if frame_interval <= 0:
            raise ValueError(f"frame_interval must be positive (got {frame_interval})")

        self.adapter.reset_counters()
        detections: List[Detection] = []
        first_ts: Optional[float] = None
        last_ts: Optional[float] = None
        frames_processed = 0
        for frame, frame_detections in self.adapter.detect_many(frames, workers=self.config.detect_workers):
            if last_ts is not None and frame.timestamp <= last_ts:
                raise ValueError(
                    f"Frames must arrive in increasing timestamp order ({frame.timestamp:.3f}s after {last_ts:.3f}s)"
                )
            if first_ts is None:
                first_ts = frame.timestamp
            last_ts = frame.timestamp
            frames_processed += 1
            detections.extend(frame_detections)

        run_start = first_ts
        run_end = last_ts + frame_interval if last_ts is not None else None
        return self.plan_from_detections(
            detections,
            source_width=source_width,
            source_height=source_height,
            frame_interval=frame_interval,
            run_start=run_start,
            run_end=run_end,
            frames_processed=frames_processed,
            frames_failed=self.adapter.frames_failed,
        )

    def plan_from_detections(
        self,
        detections: Sequence[Detection],
        source_width: int,
        source_height: int,
        frame_interval: float,
        run_start: Optional[float] = None,
        run_end: Optional[float] = None,
        frames_processed: Optional[int] = None,
        frames_failed: int = 0,
    ) -> PipelineResult:
        """Run aggregation, smoothing and planning over already-detected subjects."""
        planner = CropPlanner(
            source_width,
            source_height,
            self.options.crop_aspect_ratio,
            speaker_centering=self.options.speaker_centering_enabled,
        )

        primary = select_primary_detections(detections)
        factor = self.options.tracking_smoothing
        if self.config.smooth_detections:
            primary = smooth_detections(primary, factor)
        regions = aggregate(primary, frame_interval, max_gap_frames=self.config.max_gap_frames)
        if self.config.smooth_regions:
            regions = smooth_regions(regions, factor)

        if run_start is None and regions:
            run_start = regions[0].start_time
        if run_end is None and regions:
            run_end = regions[-1].end_time

        crops = planner.plan(regions, run_start=run_start, run_end=run_end)
        filters = [emit(crop) for crop in crops]
        timeline_filter = emit_timeline(crops, fallback=planner.static_crop(run_start, run_end))

        metadata = {
            "tracking_method": self.tracking_method,
            "options": self.options.to_dict(),
            "aspect_ratio_label": aspect_ratio_label(self.options.crop_aspect_ratio),
            "source_resolution": {"width": int(source_width), "height": int(source_height)},
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "frame_interval": frame_interval,
            "frames_processed": frames_processed,
            "frames_failed": frames_failed,
            "detection_count": len(primary),
            "region_count": len(regions),
            "fallback_used": not regions,
        }
        LOGGER.info(
            "Tracking run complete: method=%s detections=%d regions=%d crops=%d fallback=%s failed_frames=%d",
            metadata["tracking_method"],
            len(primary),
            len(regions),
            len(crops),
            metadata["fallback_used"],
            frames_failed,
        )
        return PipelineResult(
            regions=regions,
            crops=crops,
            filters=filters,
            timeline_filter=timeline_filter,
            metadata=metadata,
            detections=primary,
        )
