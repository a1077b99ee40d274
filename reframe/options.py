"""Subject-tracking run options, validation and aspect-ratio presets."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

LOGGER = logging.getLogger("reframe.options")

MIN_FACE_SIZE_RANGE = (20.0, 500.0)
CONFIDENCE_RANGE = (0.1, 1.0)
SMOOTHING_RANGE = (0.0, 1.0)

# Keys used by the web client payloads
_CAMEL_CASE_KEYS = {
    "faceDetectionEnabled": "face_detection_enabled",
    "objectTrackingEnabled": "object_tracking_enabled",
    "speakerCenteringEnabled": "speaker_centering_enabled",
    "minFaceSize": "min_face_size",
    "confidenceThreshold": "confidence_threshold",
    "trackingSmoothing": "tracking_smoothing",
    "cropAspectRatio": "crop_aspect_ratio",
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class TrackingOptionsError(ValueError):
    """Raised when a run is configured with out-of-range options."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass(frozen=True)
class SubjectTrackingOptions:
    face_detection_enabled: bool = True
    object_tracking_enabled: bool = False
    speaker_centering_enabled: bool = True
    min_face_size: float = 50.0
    confidence_threshold: float = 0.7
    # Weight given to the previous smoothed value
    tracking_smoothing: float = 0.8
    # width / height, 9:16 for vertical output
    crop_aspect_ratio: float = 9.0 / 16.0

    def validate(self) -> "SubjectTrackingOptions":
        """Return ``self`` or raise :class:`TrackingOptionsError`."""
        errors = validate_tracking_options(self)
        if errors:
            raise TrackingOptionsError(errors)
        return self

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SubjectTrackingOptions":
        """Build options from a config mapping (snake_case or camelCase keys)."""
        if not data:
            return cls()
        fields = set(cls.__dataclass_fields__)
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name not in fields:
                LOGGER.debug("Ignoring unknown tracking option %s", key)
                continue
            if value is None:
                continue
            if name == "crop_aspect_ratio":
                value = parse_aspect_ratio(value)
            elif name.endswith("_enabled"):
                value = parse_bool(value)
            else:
                value = float(value)
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_TRACKING_OPTIONS = SubjectTrackingOptions()


def _in_range(value: float, bounds: Sequence[float]) -> bool:
    low, high = bounds
    return low <= value <= high


def validate_tracking_options(options: SubjectTrackingOptions) -> List[str]:
    """Return human-readable validation errors (empty when options are usable)."""
    errors: List[str] = []
    if not _in_range(options.min_face_size, MIN_FACE_SIZE_RANGE):
        errors.append("Minimum face size must be between 20 and 500 pixels")
    if not _in_range(options.confidence_threshold, CONFIDENCE_RANGE):
        errors.append("Confidence threshold must be between 0.1 and 1.0")
    if not _in_range(options.tracking_smoothing, SMOOTHING_RANGE):
        errors.append("Tracking smoothing must be between 0 and 1")
    ratio = options.crop_aspect_ratio
    if not (ratio > 0 and math.isfinite(ratio)):
        errors.append("Crop aspect ratio must be positive")
    return errors


def parse_bool(value: Any) -> bool:
    """Interpret a config flag, accepting "true"/"false" style strings from JSON payloads."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"Invalid boolean flag {value!r}")
    return bool(value)


def parse_aspect_ratio(value: Union[str, float, int]) -> float:
    """Parse ``"9:16"``, ``"9/16"`` or a plain number into a width/height ratio."""
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    for sep in (":", "/"):
        if sep in text:
            num, _, den = text.partition(sep)
            try:
                width = float(num)
                height = float(den)
            except ValueError as exc:
                raise ValueError(f"Invalid aspect ratio {value!r}") from exc
            if height == 0:
                raise ValueError(f"Invalid aspect ratio {value!r}: zero height")
            return width / height
    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Invalid aspect ratio {value!r}") from exc


@dataclass(frozen=True)
class AspectRatioPreset:
    label: str
    ratio: float
    description: str


COMMON_ASPECT_RATIOS = (
    AspectRatioPreset("9:16", 9.0 / 16.0, "Vertical (TikTok, Instagram Stories)"),
    AspectRatioPreset("1:1", 1.0, "Square (Instagram Posts)"),
    AspectRatioPreset("4:5", 4.0 / 5.0, "Portrait (Instagram Feed)"),
    AspectRatioPreset("16:9", 16.0 / 9.0, "Landscape (YouTube, Horizontal)"),
    AspectRatioPreset("21:9", 21.0 / 9.0, "Ultra-wide (Cinematic)"),
)


def aspect_ratio_label(ratio: float, tolerance: float = 0.01) -> str:
    """Return the preset label matching ``ratio`` or ``"custom"``."""
    for preset in COMMON_ASPECT_RATIOS:
        if abs(preset.ratio - ratio) < tolerance:
            return preset.label
    return "custom"
