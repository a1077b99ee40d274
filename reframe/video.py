"""OpenCV-backed frame source."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import cv2

from reframe.types import Frame

LOGGER = logging.getLogger("reframe.video")

DEFAULT_FPS = 30.0


@dataclass(frozen=True)
class VideoInfo:
    width: int
    height: int
    fps: float
    frame_count: int

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.fps

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.frame_count else 0.0


def open_video(video_path: Path) -> "cv2.VideoCapture":
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise RuntimeError(f"Unable to open video {video_path}")
    return cap


def _read_info(cap: "cv2.VideoCapture") -> VideoInfo:
    fps = cap.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS
    return VideoInfo(
        width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
        height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        fps=float(fps),
        frame_count=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)) or 0,
    )


def probe_video(video_path: Path) -> VideoInfo:
    """Read resolution, frame rate and frame count without decoding frames."""
    cap = open_video(video_path)
    try:
        info = _read_info(cap)
    finally:
        cap.release()
    LOGGER.info(
        "Probed video=%s size=%dx%d fps=%.2f frames=%s duration=%.2fs",
        video_path,
        info.width,
        info.height,
        info.fps,
        info.frame_count or "unknown",
        info.duration,
    )
    return info


def iter_frames(video_path: Path, stride: int = 1) -> Iterator[Frame]:
    """Decode every ``stride``-th frame in timestamp order."""
    if stride < 1:
        raise ValueError(f"stride must be >= 1 (got {stride})")
    cap = open_video(video_path)
    try:
        fps = _read_info(cap).fps
        frame_idx = -1
        while True:
            ret, image = cap.read()
            if not ret:
                break
            frame_idx += 1
            if frame_idx % stride != 0:
                continue
            yield Frame.from_image(image, timestamp=frame_idx / fps, index=frame_idx)
    finally:
        cap.release()
