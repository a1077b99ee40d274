"""YOLO-based object detector backend."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from reframe.types import BoundingBox, RawDetection

LOGGER = logging.getLogger("reframe.detectors.object")


class YOLOObjectDetector:
    """Object source: YOLO boxes for the configured classes, labelled from the model's class names."""

    name = "yolo"

    def __init__(
        self,
        weights: str,
        device: Optional[str] = None,
        conf_thres: float = 0.2,
        iou_thres: float = 0.5,
        classes: Optional[Sequence[int]] = (0,),
    ) -> None:
        try:
            from ultralytics import YOLO
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "ultralytics is required for YOLOObjectDetector. "
                "Install it via `pip install ultralytics`."
            ) from exc

        self.model = YOLO(weights)
        if device is not None:
            try:
                self.model.to(device)
            except Exception as exc:  # pragma: no cover - device probing
                LOGGER.warning(
                    "YOLO object detector could not use device=%s (%s); falling back to auto.",
                    device,
                    exc,
                )
                device = None
        self.device = device or "auto"
        self.conf_thres = conf_thres
        self.iou_thres = iou_thres
        self.classes = set(int(c) for c in classes) if classes is not None else None
        LOGGER.info(
            "Loaded YOLO object detector weights=%s device=%s conf=%.2f classes=%s",
            weights,
            self.device,
            conf_thres,
            sorted(self.classes) if self.classes is not None else "all",
        )

    def _label_for(self, cls: int) -> str:
        names = getattr(self.model, "names", None) or {}
        return str(names.get(cls, "object")) if isinstance(names, dict) else "object"

    def detect(self, image: np.ndarray, timestamp: float) -> List[RawDetection]:
        """Run inference on a single frame."""
        results = self.model.predict(
            source=image,
            conf=self.conf_thres,
            iou=self.iou_thres,
            verbose=False,
        )
        detections: List[RawDetection] = []
        for result in results:
            if result.boxes is None:
                continue
            for box in result.boxes:
                cls = int(box.cls.item()) if box.cls is not None else -1
                if self.classes is not None and cls not in self.classes:
                    continue
                score = float(box.conf.item()) if box.conf is not None else 0.0
                xyxy = box.xyxy.cpu().numpy().flatten()
                detections.append(
                    RawDetection(
                        bbox=BoundingBox.from_xyxy(tuple(float(v) for v in xyxy[:4])),  # type: ignore[arg-type]
                        confidence=score,
                        label=self._label_for(cls),
                    )
                )
        return detections
