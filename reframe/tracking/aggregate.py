"""Aggregation of per-frame detections into time-bounded tracking regions."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd

from reframe.types import Detection, TrackingRegion, clamp

LOGGER = logging.getLogger("reframe.tracking.aggregate")

# Fraction of a frame interval tolerated as timestamp jitter when bridging gaps
_GAP_TOLERANCE = 1e-3

REGION_COLUMNS = ["start_time", "end_time", "center_x", "center_y", "width", "height", "confidence"]


def select_primary_detections(detections: Iterable[Detection]) -> List[Detection]:
    """Keep the highest-confidence detection per timestamp, preserving order."""
    best: Dict[float, Detection] = {}
    order: List[float] = []
    for det in detections:
        current = best.get(det.timestamp)
        if current is None:
            order.append(det.timestamp)
            best[det.timestamp] = det
        elif det.confidence > current.confidence:
            best[det.timestamp] = det
    return [best[ts] for ts in order]


def aggregate(
    detections: Sequence[Detection],
    frame_interval: float,
    max_gap_frames: int = 1,
) -> List[TrackingRegion]:
    """Group timestamp-ordered detections into tracking regions.

    Detections whose timestamps are at most ``max_gap_frames`` frame intervals
    apart share a region; a larger gap closes the region. Each region ends one
    frame interval after its last member.
    """
    if frame_interval <= 0:
        raise ValueError(f"frame_interval must be positive (got {frame_interval})")
    if max_gap_frames < 1:
        raise ValueError(f"max_gap_frames must be >= 1 (got {max_gap_frames})")
    if not detections:
        LOGGER.info("No detections to aggregate; downstream will use a static crop")
        return []

    max_gap = frame_interval * max_gap_frames * (1.0 + _GAP_TOLERANCE)
    regions: List[TrackingRegion] = []
    members: List[Detection] = []

    def finalize_run() -> None:
        if not members:
            return
        boxes = [det.normalized_bbox for det in members]
        centers = np.array([box.center for box in boxes], dtype=np.float64)
        extents = np.array([(box.width, box.height) for box in boxes], dtype=np.float64)
        confidences = np.array([det.confidence for det in members], dtype=np.float64)
        center_x, center_y = centers.mean(axis=0)
        width, height = extents.mean(axis=0)
        region = TrackingRegion(
            start_time=members[0].timestamp,
            end_time=members[-1].timestamp + frame_interval,
            center_x=clamp(float(center_x), 0.0, 1.0),
            center_y=clamp(float(center_y), 0.0, 1.0),
            width=clamp(float(width), 0.0, 1.0),
            height=clamp(float(height), 0.0, 1.0),
            confidence=clamp(float(confidences.mean()), 0.0, 1.0),
        )
        LOGGER.debug(
            "Region %d: %.3fs→%.3fs center=(%.3f, %.3f) size=(%.3f, %.3f) conf=%.2f members=%d",
            len(regions),
            region.start_time,
            region.end_time,
            region.center_x,
            region.center_y,
            region.width,
            region.height,
            region.confidence,
            len(members),
        )
        regions.append(region)

    prev_ts = None
    for det in detections:
        if prev_ts is not None:
            gap = det.timestamp - prev_ts
            if gap < 0:
                raise ValueError(
                    f"Detections must be ordered by timestamp ({det.timestamp:.3f}s follows {prev_ts:.3f}s)"
                )
            if gap > max_gap:
                finalize_run()
                members = []
        members.append(det)
        prev_ts = det.timestamp
    finalize_run()

    LOGGER.info(
        "Aggregated %d detections into %d regions (frame_interval=%.4fs max_gap_frames=%d)",
        len(detections),
        len(regions),
        frame_interval,
        max_gap_frames,
    )
    return regions


def regions_to_frame(regions: Iterable[TrackingRegion]) -> pd.DataFrame:
    data = [region.to_dict() for region in regions]
    if not data:
        return pd.DataFrame(columns=REGION_COLUMNS)
    return pd.DataFrame(data, columns=REGION_COLUMNS)

