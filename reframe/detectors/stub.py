"""Deterministic detectors for tests, dry runs and pipeline wiring checks."""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from reframe.types import BoundingBox, Landmarks, RawDetection


class StaticSubjectDetector:
    """Reports one subject at a fixed fraction of every frame.

    The default box mirrors a seated speaker framed slightly above center.
    """

    name = "static_stub"

    def __init__(
        self,
        box: Tuple[float, float, float, float] = (0.3, 0.2, 0.4, 0.5),
        confidence: float = 0.85,
        with_landmarks: bool = True,
        label: str = "face",
    ) -> None:
        self.box = box
        self.confidence = confidence
        self.with_landmarks = with_landmarks
        self.label = label

    def detect(self, image: np.ndarray, timestamp: float) -> List[RawDetection]:
        height, width = image.shape[:2]
        fx, fy, fw, fh = self.box
        bbox = BoundingBox(x=width * fx, y=height * fy, width=width * fw, height=height * fh)
        landmarks: Optional[Landmarks] = None
        if self.with_landmarks:
            cx, _ = bbox.center
            landmarks = Landmarks(
                left_eye=(cx - bbox.width / 4.0, bbox.y + bbox.height * 0.3),
                right_eye=(cx + bbox.width / 4.0, bbox.y + bbox.height * 0.3),
                nose=(cx, bbox.y + bbox.height * 0.5),
                mouth=(cx, bbox.y + bbox.height * 0.7),
            )
        return [RawDetection(bbox=bbox, confidence=self.confidence, landmarks=landmarks, label=self.label)]


class NullDetector:
    """Never finds anything; exercises the static-crop fallback."""

    name = "null"

    def detect(self, image: np.ndarray, timestamp: float) -> List[RawDetection]:
        return []
