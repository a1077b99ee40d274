"""Exponential smoothing of per-frame detections and per-region centers.

Every caller goes through :func:`smooth_series`, so frame-level and region-level
jitter reduction share exactly one formula::

    smoothed[i] = smoothed[i - 1] * factor + raw[i] * (1 - factor)
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from reframe.types import BoundingBox, Detection, Landmarks, TrackingRegion

LOGGER = logging.getLogger("reframe.tracking.smoothing")


def smooth_series(values: Sequence[Sequence[float]], factor: float) -> np.ndarray:
    """Smooth each column of an ``(N, K)`` array independently.

    The first row passes through unchanged. ``factor == 0`` is a pure
    pass-through and constant columns stay exactly constant.
    """
    if not 0.0 <= factor <= 1.0:
        raise ValueError(f"Smoothing factor must be within [0, 1] (got {factor})")
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.shape[0] < 2 or factor == 0.0:
        return arr.copy()

    out = np.empty_like(arr)
    out[0] = arr[0]
    keep = 1.0 - factor
    for i in range(1, arr.shape[0]):
        prev = out[i - 1]
        blended = prev * factor + arr[i] * keep
        out[i] = np.where(arr[i] == prev, prev, blended)
    return out


def _landmark_runs(detections: Sequence[Detection]) -> List[List[int]]:
    """Index runs of consecutive detections that all carry landmarks."""
    runs: List[List[int]] = []
    current: List[int] = []
    for idx, det in enumerate(detections):
        if det.landmarks is None:
            if current:
                runs.append(current)
                current = []
            continue
        current.append(idx)
    if current:
        runs.append(current)
    return runs


def smooth_detections(detections: Sequence[Detection], factor: float) -> List[Detection]:
    """Smooth bounding boxes (and landmarks where available) across a detection stream.

    Landmarks are only blended when the previous detection also had them; a
    detection that starts a landmark run keeps its raw landmarks.
    """
    if len(detections) < 2:
        return list(detections)

    boxes = smooth_series([det.bbox.as_tuple() for det in detections], factor)
    landmarks: List[Optional[Landmarks]] = [det.landmarks for det in detections]
    for run in _landmark_runs(detections):
        if len(run) < 2:
            continue
        flat = [detections[idx].landmarks.as_array().reshape(-1) for idx in run]  # type: ignore[union-attr]
        smoothed = smooth_series(flat, factor)
        for row, idx in zip(smoothed, run):
            landmarks[idx] = Landmarks.from_array(row.reshape(-1, 2))

    result = [
        replace(det, bbox=BoundingBox(*(float(v) for v in box)), landmarks=lm)
        for det, box, lm in zip(detections, boxes, landmarks)
    ]
    LOGGER.debug("Smoothed %d detections with factor=%.3f", len(result), factor)
    return result


def smooth_regions(regions: Sequence[TrackingRegion], factor: float) -> List[TrackingRegion]:
    """Smooth region centers and extents; timing and confidence are untouched."""
    if len(regions) < 2:
        return list(regions)

    values = smooth_series(
        [(r.center_x, r.center_y, r.width, r.height) for r in regions],
        factor,
    )
    values = np.clip(values, 0.0, 1.0)
    result: List[TrackingRegion] = []
    for region, (cx, cy, w, h) in zip(regions, values):
        result.append(
            replace(region, center_x=float(cx), center_y=float(cy), width=float(w), height=float(h))
        )
    LOGGER.debug("Smoothed %d regions with factor=%.3f", len(result), factor)
    return result
