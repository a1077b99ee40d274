import numpy as np
import pytest

from reframe.detectors.stub import NullDetector, StaticSubjectDetector
from reframe.options import SubjectTrackingOptions, TrackingOptionsError
from reframe.pipeline import PipelineConfig, TrackingPipeline
from reframe.types import BoundingBox, Detection, Frame, RawDetection

FPS = 25.0
INTERVAL = 1.0 / FPS


def make_frames(count: int, width: int = 1920, height: int = 1080, start: int = 0):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    return [Frame.from_image(image, timestamp=i * INTERVAL, index=i) for i in range(start, start + count)]


class _FlakyDetector:
    """Fails on every other call."""

    def __init__(self):
        self.calls = 0

    def detect(self, image, timestamp):
        self.calls += 1
        if self.calls % 2 == 0:
            raise TimeoutError("detector timed out")
        return [RawDetection(bbox=BoundingBox(860, 200, 200, 260), confidence=0.9)]


def test_invalid_options_fail_before_processing():
    detector = StaticSubjectDetector()
    with pytest.raises(TrackingOptionsError):
        TrackingPipeline(SubjectTrackingOptions(crop_aspect_ratio=-1.0), face_detector=detector)


def test_static_detector_run_produces_single_centered_region():
    pipeline = TrackingPipeline(SubjectTrackingOptions(), face_detector=StaticSubjectDetector())
    result = pipeline.run(make_frames(50), 1920, 1080, INTERVAL)

    assert len(result.regions) == 1
    region = result.regions[0]
    assert region.start_time == pytest.approx(0.0)
    assert region.end_time == pytest.approx(2.0)
    assert region.center_x == pytest.approx(0.5)
    assert region.center_y == pytest.approx(0.45)

    assert len(result.crops) == 1
    crop = result.crops[0]
    assert (crop.width, crop.height) == (608, 1080)
    assert crop.x == 656
    assert result.filters == ["crop=608:1080:656:0"]
    assert result.timeline_filter == "crop=608:1080:656:0"


def test_no_detections_falls_back_to_static_crop_for_whole_run():
    pipeline = TrackingPipeline(
        SubjectTrackingOptions(speaker_centering_enabled=False),
        face_detector=NullDetector(),
    )
    result = pipeline.run(make_frames(10), 1920, 1080, INTERVAL)

    assert result.regions == []
    assert len(result.crops) == 1
    crop = result.crops[0]
    assert crop.x == (1920 - crop.width) // 2
    assert crop.y == (1080 - crop.height) // 2
    assert crop.start_time == pytest.approx(0.0)
    assert crop.end_time == pytest.approx(10 * INTERVAL)
    assert result.metadata["fallback_used"] is True
    assert result.metadata["tracking_method"] == "static_center"


def test_detector_failures_never_abort_the_run():
    detector = _FlakyDetector()
    pipeline = TrackingPipeline(SubjectTrackingOptions(), face_detector=detector)
    result = pipeline.run(make_frames(6), 1920, 1080, INTERVAL)

    assert detector.calls == 6
    assert result.metadata["frames_failed"] == 3
    assert result.metadata["frames_processed"] == 6
    # Every other frame dropped: gaps of two intervals split the regions
    assert len(result.regions) == 3
    assert len(result.crops) == 3
    for crop in result.crops:
        assert crop.fits_within(1920, 1080)


def test_dropouts_bridged_with_larger_gap_setting():
    pipeline = TrackingPipeline(
        SubjectTrackingOptions(),
        face_detector=_FlakyDetector(),
        config=PipelineConfig(max_gap_frames=2),
    )
    result = pipeline.run(make_frames(6), 1920, 1080, INTERVAL)
    assert len(result.regions) == 1


def test_frames_out_of_order_rejected():
    frames = make_frames(3)
    frames[1], frames[2] = frames[2], frames[1]
    pipeline = TrackingPipeline(SubjectTrackingOptions(), face_detector=StaticSubjectDetector())
    with pytest.raises(ValueError):
        pipeline.run(frames, 1920, 1080, INTERVAL)


def test_worker_pool_matches_sequential_plan():
    pooled = TrackingPipeline(
        SubjectTrackingOptions(),
        face_detector=StaticSubjectDetector(),
        config=PipelineConfig(detect_workers=3),
    )
    baseline = TrackingPipeline(SubjectTrackingOptions(), face_detector=StaticSubjectDetector())
    frames = make_frames(20)
    assert pooled.run(frames, 1920, 1080, INTERVAL).crops == baseline.run(frames, 1920, 1080, INTERVAL).crops


def test_plan_from_detections_smooths_before_aggregating():
    def det(ts, x):
        return Detection(
            id=f"face_{ts}",
            confidence=0.9,
            bbox=BoundingBox(x=x, y=400.0, width=200.0, height=200.0),
            timestamp=ts,
            frame_width=1920,
            frame_height=1080,
        )

    pipeline = TrackingPipeline(SubjectTrackingOptions(tracking_smoothing=0.8))
    result = pipeline.plan_from_detections([det(0.0, 100.0), det(0.04, 200.0)], 1920, 1080, 0.04)
    assert result.detections[1].bbox.x == pytest.approx(120.0)
    region = result.regions[0]
    assert region.center_x == pytest.approx(((100.0 + 100.0) + (120.0 + 100.0)) / 2 / 1920)


def test_metadata_describes_run():
    options = SubjectTrackingOptions(crop_aspect_ratio=1.0)
    pipeline = TrackingPipeline(options, face_detector=StaticSubjectDetector())
    result = pipeline.run(make_frames(5), 1280, 720, INTERVAL)
    meta = result.metadata
    assert meta["tracking_method"] == "face:static_stub"
    assert meta["source_resolution"] == {"width": 1280, "height": 720}
    assert meta["options"]["crop_aspect_ratio"] == pytest.approx(1.0)
    assert meta["aspect_ratio_label"] == "1:1"
    assert meta["region_count"] == 1
    assert "generated_at" in meta
    payload = result.to_dict()
    assert payload["crops"][0]["filter"] == result.filters[0]


class _BrokenDetector:
    def detect(self, image, timestamp):
        raise RuntimeError("backend unavailable")


def test_metadata_counts_are_per_run():
    pipeline = TrackingPipeline(SubjectTrackingOptions(), face_detector=_BrokenDetector())
    first = pipeline.run(make_frames(4), 1920, 1080, INTERVAL)
    second = pipeline.run(make_frames(4, start=4), 1920, 1080, INTERVAL)
    assert first.metadata["frames_failed"] == 4
    assert second.metadata["frames_failed"] == 4
    assert second.metadata["frames_processed"] == 4


def test_timeline_gap_between_regions_uses_centered_crop():
    def det(ts, cx):
        return Detection(
            id=f"face_{ts}",
            confidence=0.9,
            bbox=BoundingBox(x=cx * 1920 - 100.0, y=440.0, width=200.0, height=200.0),
            timestamp=ts,
            frame_width=1920,
            frame_height=1080,
        )

    pipeline = TrackingPipeline(SubjectTrackingOptions(), config=PipelineConfig(smooth_detections=False))
    detections = [det(0.0, 0.1), det(0.04, 0.1), det(2.0, 0.9), det(2.04, 0.9)]
    result = pipeline.plan_from_detections(detections, 1920, 1080, INTERVAL, run_start=0.0, run_end=3.0)
    assert [crop.x for crop in result.crops] == [0, 1312]
    assert result.timeline_filter.startswith(
        "crop=608:1080:x='if(between(t,0.000,0.080),0,if(between(t,2.000,2.080),1312,656))'"
    )
