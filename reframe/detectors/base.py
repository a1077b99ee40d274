"""Detector capability shared by the face and object backends."""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

import numpy as np

from reframe.types import RawDetection


@runtime_checkable
class SubjectDetector(Protocol):
    """Anything that can turn one decoded frame into raw subject detections.

    Implementations return boxes in pixel coordinates of ``image`` and may raise
    on failure; the detection adapter absorbs per-frame errors.
    """

    def detect(self, image: np.ndarray, timestamp: float) -> List[RawDetection]:
        ...
