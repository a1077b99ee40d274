"""Crop planning: map tracking regions to bounds-safe, aspect-locked crop rectangles."""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from reframe.types import CropParameters, TrackingRegion, clamp

LOGGER = logging.getLogger("reframe.planning.crop")

CROP_COLUMNS = ["start_time", "end_time", "x", "y", "width", "height", "aspect_ratio"]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def crop_extent(source_width: float, source_height: float, target_aspect_ratio: float) -> Tuple[float, float]:
    """Largest ``(width, height)`` with the target aspect ratio that fits the source."""
    if target_aspect_ratio < source_width / source_height:
        crop_height = float(source_height)
        crop_width = source_height * target_aspect_ratio
    else:
        crop_width = float(source_width)
        crop_height = source_width / target_aspect_ratio
    return min(crop_width, float(source_width)), min(crop_height, float(source_height))


class CropPlanner:
    """Plans one crop per tracking region for a fixed source size and aspect ratio."""

    def __init__(
        self,
        source_width: int,
        source_height: int,
        target_aspect_ratio: float,
        speaker_centering: bool = True,
    ) -> None:
        if source_width <= 0 or source_height <= 0:
            raise ValueError(f"Source dimensions must be positive (got {source_width}x{source_height})")
        if not (target_aspect_ratio > 0 and math.isfinite(target_aspect_ratio)):
            raise ValueError(f"Target aspect ratio must be positive (got {target_aspect_ratio})")
        self.source_width = int(source_width)
        self.source_height = int(source_height)
        self.target_aspect_ratio = float(target_aspect_ratio)
        self.speaker_centering = speaker_centering
        self.crop_width, self.crop_height = crop_extent(
            self.source_width, self.source_height, self.target_aspect_ratio
        )
        # Integral extent shared by every crop in the plan
        self.width_px = min(max(1, _round_half_up(self.crop_width)), self.source_width)
        self.height_px = min(max(1, _round_half_up(self.crop_height)), self.source_height)

    def place(
        self,
        center_x_px: float,
        center_y_px: float,
        start_time: Optional[float] = None,
        end_time: Optional[float] = None,
    ) -> CropParameters:
        """Center the crop on a pixel position, then clamp it inside the frame."""
        x = clamp(center_x_px - self.crop_width / 2.0, 0.0, self.source_width - self.crop_width)
        y = clamp(center_y_px - self.crop_height / 2.0, 0.0, self.source_height - self.crop_height)
        x_px = int(clamp(_round_half_up(x), 0, self.source_width - self.width_px))
        y_px = int(clamp(_round_half_up(y), 0, self.source_height - self.height_px))
        return CropParameters(
            x=x_px,
            y=y_px,
            width=self.width_px,
            height=self.height_px,
            aspect_ratio=self.target_aspect_ratio,
            start_time=start_time,
            end_time=end_time,
        )

    def static_crop(self, start_time: Optional[float] = None, end_time: Optional[float] = None) -> CropParameters:
        """Frame-centered crop used when no subject position is available."""
        return self.place(self.source_width / 2.0, self.source_height / 2.0, start_time, end_time)

    def crop_for_region(self, region: TrackingRegion) -> CropParameters:
        if not self.speaker_centering:
            return self.static_crop(region.start_time, region.end_time)
        return self.place(
            region.center_x * self.source_width,
            region.center_y * self.source_height,
            region.start_time,
            region.end_time,
        )

    def plan(
        self,
        regions: Sequence[TrackingRegion],
        run_start: Optional[float] = None,
        run_end: Optional[float] = None,
    ) -> List[CropParameters]:
        """Return one crop per region, or a single static crop spanning the run."""
        if not regions:
            LOGGER.warning(
                "No tracking regions; falling back to a static centered crop for %s→%s",
                run_start,
                run_end,
            )
            return [self.static_crop(run_start, run_end)]

        crops = [self.crop_for_region(region) for region in regions]
        for region, crop in zip(regions, crops):
            LOGGER.debug(
                "Crop %.3fs→%.3fs center=(%.3f, %.3f) -> %dx%d+%d+%d",
                region.start_time,
                region.end_time,
                region.center_x,
                region.center_y,
                crop.width,
                crop.height,
                crop.x,
                crop.y,
            )
        LOGGER.info(
            "Planned %d crops %dx%d (aspect=%.4f) on %dx%d source centering=%s",
            len(crops),
            self.width_px,
            self.height_px,
            self.target_aspect_ratio,
            self.source_width,
            self.source_height,
            self.speaker_centering,
        )
        return crops


def plan_crops(
    regions: Sequence[TrackingRegion],
    source_width: int,
    source_height: int,
    target_aspect_ratio: float,
    speaker_centering_enabled: bool = True,
    run_start: Optional[float] = None,
    run_end: Optional[float] = None,
) -> List[CropParameters]:
    """Functional wrapper around :class:`CropPlanner`."""
    planner = CropPlanner(source_width, source_height, target_aspect_ratio, speaker_centering_enabled)
    return planner.plan(regions, run_start=run_start, run_end=run_end)


def crops_to_frame(crops: Iterable[CropParameters]) -> pd.DataFrame:
    data = [crop.to_dict() for crop in crops]
    if not data:
        return pd.DataFrame(columns=CROP_COLUMNS)
    return pd.DataFrame(data, columns=CROP_COLUMNS)
