"""RetinaFace detection backend."""

from __future__ import annotations

import logging
import os
import platform
from typing import List, Optional, Tuple

import numpy as np

from reframe.types import BoundingBox, Landmarks, RawDetection

LOGGER = logging.getLogger("reframe.detectors.face")


def _default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers for RetinaFace."""
    system = platform.system()
    machine = platform.machine().lower()
    if system == "Darwin" and machine in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


class RetinaFaceDetector:
    """Wrapper around the InsightFace RetinaFace detector."""

    name = "retinaface"

    def __init__(
        self,
        providers: Optional[Tuple[str, ...]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.3,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("MKL_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for RetinaFaceDetector. "
                "Install it via `pip install insightface`."
            ) from exc

        self.det_size = tuple(det_size)
        # Keep the backend threshold low; run options apply the real cut-off.
        self.det_thresh = det_thresh
        provider_list: Tuple[str, ...]
        if providers is None:
            provider_list = _default_providers()
        else:
            provider_list = tuple(providers)
        self.providers = provider_list
        self.app = FaceAnalysis(name="buffalo_l", allowed_modules=["detection"], providers=list(provider_list))
        self.app.prepare(ctx_id=0, det_size=self.det_size)
        LOGGER.info(
            "Loaded RetinaFace detector det_size=%s det_thresh=%.2f providers=%s",
            self.det_size,
            det_thresh,
            provider_list,
        )

    def detect(self, image: np.ndarray, timestamp: float) -> List[RawDetection]:
        """Run RetinaFace on an image and return pixel-space detections."""
        faces = self.app.get(image)
        detections: List[RawDetection] = []
        for face in faces:
            score = float(face.det_score)
            if score < self.det_thresh:
                continue
            kps = getattr(face, "kps", None)
            landmarks = None
            if kps is not None and np.asarray(kps).shape == (5, 2):
                landmarks = Landmarks.from_five_point(kps)
            detections.append(
                RawDetection(
                    bbox=BoundingBox.from_xyxy(tuple(float(v) for v in face.bbox[:4])),  # type: ignore[arg-type]
                    confidence=score,
                    landmarks=landmarks,
                    label="face",
                )
            )
        return detections
