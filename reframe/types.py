"""Common dataclasses and type aliases used across the reframe package."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

# Bounding box order: x1, y1, x2, y2 (pixel coordinates)
BBox = Tuple[float, float, float, float]
Point = Tuple[float, float]

LANDMARK_NAMES = ("left_eye", "right_eye", "nose", "mouth")


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box stored as top-left corner plus extent."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, bbox: BBox) -> "BoundingBox":
        x1, y1, x2, y2 = (float(v) for v in bbox)
        return cls(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    @property
    def center(self) -> Point:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def scaled(self, sx: float, sy: float) -> "BoundingBox":
        return BoundingBox(x=self.x * sx, y=self.y * sy, width=self.width * sx, height=self.height * sy)


@dataclass(frozen=True)
class Landmarks:
    """Four named facial keypoints."""

    left_eye: Point
    right_eye: Point
    nose: Point
    mouth: Point

    def as_array(self) -> np.ndarray:
        return np.array([self.left_eye, self.right_eye, self.nose, self.mouth], dtype=np.float64)

    @classmethod
    def from_array(cls, points: Sequence[Sequence[float]]) -> "Landmarks":
        arr = np.asarray(points, dtype=np.float64).reshape(len(LANDMARK_NAMES), 2)
        return cls(*(tuple(float(v) for v in row) for row in arr))  # type: ignore[arg-type]

    @classmethod
    def from_five_point(cls, kps: Sequence[Sequence[float]]) -> "Landmarks":
        """Collapse the RetinaFace 5-point layout (eyes, nose, mouth corners)."""
        arr = np.asarray(kps, dtype=np.float64)
        if arr.shape != (5, 2):
            raise ValueError(f"Expected (5, 2) keypoints, got {arr.shape}")
        mouth = (arr[3] + arr[4]) / 2.0
        return cls.from_array([arr[0], arr[1], arr[2], mouth])


@dataclass(frozen=True)
class RawDetection:
    """Detector output before normalization and filtering."""

    bbox: BoundingBox
    confidence: float
    landmarks: Optional[Landmarks] = None
    label: str = "face"


@dataclass(frozen=True)
class Detection:
    """A single subject found in a single frame.

    ``bbox`` is in pixels when ``frame_width``/``frame_height`` are set, otherwise
    it is already normalized to the frame.
    """

    id: str
    confidence: float
    bbox: BoundingBox
    timestamp: float
    landmarks: Optional[Landmarks] = None
    frame_width: Optional[int] = None
    frame_height: Optional[int] = None
    label: str = "face"

    @property
    def is_normalized(self) -> bool:
        return not self.frame_width or not self.frame_height

    @property
    def normalized_bbox(self) -> BoundingBox:
        if self.is_normalized:
            return self.bbox
        return self.bbox.scaled(1.0 / float(self.frame_width), 1.0 / float(self.frame_height))

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "label": self.label,
            "timestamp": self.timestamp,
            "confidence": self.confidence,
            "x": self.bbox.x,
            "y": self.bbox.y,
            "width": self.bbox.width,
            "height": self.bbox.height,
            "frame_width": self.frame_width,
            "frame_height": self.frame_height,
            "has_landmarks": self.landmarks is not None,
        }


@dataclass(frozen=True)
class TrackingRegion:
    """Time interval over which the subject occupies a stable normalized region."""

    start_time: float
    end_time: float
    center_x: float
    center_y: float
    width: float
    height: float
    confidence: float

    def __post_init__(self) -> None:
        if not self.start_time < self.end_time:
            raise ValueError(
                f"TrackingRegion requires start_time < end_time (got {self.start_time} -> {self.end_time})"
            )
        for name in ("center_x", "center_y", "width", "height"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"TrackingRegion.{name} must be within [0, 1] (got {value})")

    def to_dict(self) -> Dict:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "center_x": self.center_x,
            "center_y": self.center_y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CropParameters:
    """Integral crop rectangle in source pixels, optionally bound to a time interval."""

    x: int
    y: int
    width: int
    height: int
    aspect_ratio: float
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def fits_within(self, source_width: int, source_height: int) -> bool:
        return (
            self.x >= 0
            and self.y >= 0
            and self.x + self.width <= source_width
            and self.y + self.height <= source_height
        )

    def to_dict(self) -> Dict:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "aspect_ratio": self.aspect_ratio,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass
class Frame:
    """Decoded frame handed to the detection stage."""

    image: np.ndarray
    width: int
    height: int
    timestamp: float
    index: int = 0

    @classmethod
    def from_image(cls, image: np.ndarray, timestamp: float, index: int = 0) -> "Frame":
        height, width = image.shape[:2]
        return cls(image=image, width=int(width), height=int(height), timestamp=float(timestamp), index=index)


def clamp(value: float, low: float, high: float) -> float:
    """Clamp ``value`` into ``[low, high]``; ``low`` wins if the range is empty."""
    return max(low, min(value, high))


def iter_batches(iterable: Iterable, batch_size: int) -> Iterable[List]:
    """Yield successive batches from an iterable."""
    batch: List = []
    for item in iterable:
        batch.append(item)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch
