"""Normalizes detector output into filtered :class:`Detection` records."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List, Optional, Tuple

from reframe.detectors.base import SubjectDetector
from reframe.options import SubjectTrackingOptions
from reframe.types import Detection, Frame, RawDetection, iter_batches

LOGGER = logging.getLogger("reframe.detectors.adapter")


def passes_filters(detection: Detection, options: SubjectTrackingOptions) -> bool:
    """Apply the confidence and minimum-size gates."""
    if detection.confidence < options.confidence_threshold:
        return False
    return detection.bbox.width >= options.min_face_size and detection.bbox.height >= options.min_face_size


class DetectionAdapter:
    """Runs the enabled detector sources on a frame and filters the results.

    A failing detector call never propagates: the frame is treated as having no
    visible subject for that source.
    """

    def __init__(
        self,
        options: SubjectTrackingOptions,
        face_detector: Optional[SubjectDetector] = None,
        object_detector: Optional[SubjectDetector] = None,
    ) -> None:
        self.options = options
        self.face_detector = face_detector
        self.object_detector = object_detector
        self.reset_counters()

    def reset_counters(self) -> None:
        self.frames_seen = 0
        self.frames_failed = 0
        self.detections_rejected = 0

    def sources(self) -> List[Tuple[str, SubjectDetector]]:
        if not self.options.face_detection_enabled:
            return []
        active: List[Tuple[str, SubjectDetector]] = []
        if self.face_detector is not None:
            active.append(("face", self.face_detector))
        if self.options.object_tracking_enabled and self.object_detector is not None:
            active.append(("object", self.object_detector))
        return active

    def _to_detection(self, raw: RawDetection, frame: Frame, idx: int) -> Detection:
        return Detection(
            id=f"{raw.label}_{frame.timestamp:.3f}_{idx}",
            confidence=float(raw.confidence),
            bbox=raw.bbox,
            timestamp=frame.timestamp,
            landmarks=raw.landmarks,
            frame_width=frame.width,
            frame_height=frame.height,
            label=raw.label,
        )

    def _run_sources(self, frame: Frame) -> Tuple[List[Detection], bool, int]:
        accepted: List[Detection] = []
        failed = False
        rejected = 0
        for source_name, detector in self.sources():
            try:
                raw_detections = detector.detect(frame.image, frame.timestamp)
            except Exception as exc:
                LOGGER.warning(
                    "%s detector failed at t=%.3fs (frame %d): %s; treating frame as empty",
                    source_name,
                    frame.timestamp,
                    frame.index,
                    exc,
                )
                failed = True
                continue
            for raw in raw_detections:
                detection = self._to_detection(raw, frame, len(accepted) + rejected)
                if passes_filters(detection, self.options):
                    accepted.append(detection)
                else:
                    rejected += 1
        return accepted, failed, rejected

    def _record(self, result: Tuple[List[Detection], bool, int]) -> List[Detection]:
        detections, failed, rejected = result
        self.frames_seen += 1
        if failed:
            self.frames_failed += 1
        self.detections_rejected += rejected
        return detections

    def detect(self, frame: Frame) -> List[Detection]:
        """Detect, normalize and filter subjects in a single frame."""
        if not self.options.face_detection_enabled:
            return []
        return self._record(self._run_sources(frame))

    def detect_many(self, frames: Iterable[Frame], workers: int = 1) -> Iterator[Tuple[Frame, List[Detection]]]:
        """Yield ``(frame, detections)`` in input order.

        With ``workers > 1`` detector calls fan out over a thread pool in batches;
        results are re-joined in the original frame order before being yielded.
        """
        if workers <= 1 or not self.sources():
            for frame in frames:
                yield frame, self.detect(frame)
            return

        with ThreadPoolExecutor(max_workers=workers) as pool:
            for batch in iter_batches(frames, workers * 4):
                results = list(pool.map(self._run_sources, batch))
                for frame, result in zip(batch, results):
                    yield frame, self._record(result)
