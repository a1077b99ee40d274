import pytest

from reframe.planning.crop import CropPlanner
from reframe.render.ffmpeg import emit, emit_timeline
from reframe.types import CropParameters, TrackingRegion


def make_crop(x: int, y: int = 0, start=None, end=None, width: int = 608, height: int = 1080) -> CropParameters:
    return CropParameters(x=x, y=y, width=width, height=height, aspect_ratio=9 / 16, start_time=start, end_time=end)


def test_emit_static_crop():
    assert emit(make_crop(656)) == "crop=608:1080:656:0"


def test_timeline_with_single_position_collapses_to_static_crop():
    crops = [make_crop(656, start=0.0, end=1.0), make_crop(656, start=1.0, end=2.0)]
    assert emit_timeline(crops) == "crop=608:1080:656:0"


def test_timeline_switches_position_per_interval():
    crops = [
        make_crop(100, start=0.0, end=1.5),
        make_crop(400, start=1.5, end=3.0),
        make_crop(700, y=20, start=3.0, end=4.0),
    ]
    expr = emit_timeline(crops)
    assert expr == (
        "crop=608:1080:"
        "x='if(between(t,0.000,1.500),100,if(between(t,1.500,3.000),400,700))':"
        "y='if(between(t,0.000,1.500),0,if(between(t,1.500,3.000),0,20))'"
    )


def test_timeline_requires_uniform_size():
    crops = [make_crop(0, start=0.0, end=1.0), make_crop(10, start=1.0, end=2.0, width=600)]
    with pytest.raises(ValueError):
        emit_timeline(crops)


def test_timeline_requires_times_when_positions_differ():
    with pytest.raises(ValueError):
        emit_timeline([make_crop(0), make_crop(10)])


def test_timeline_rejects_empty_plan():
    with pytest.raises(ValueError):
        emit_timeline([])


def test_timeline_gap_falls_back_to_static_center():
    planner = CropPlanner(1920, 1080, 9 / 16)
    regions = [
        TrackingRegion(0.0, 1.0, 0.1, 0.5, 0.2, 0.3, 0.9),
        TrackingRegion(5.0, 6.0, 0.9, 0.5, 0.2, 0.3, 0.9),
    ]
    crops = planner.plan(regions)
    expr = emit_timeline(crops, fallback=planner.static_crop(0.0, 6.0))
    assert expr == (
        "crop=608:1080:"
        "x='if(between(t,0.000,1.000),0,if(between(t,5.000,6.000),1312,656))':"
        "y='if(between(t,0.000,1.000),0,if(between(t,5.000,6.000),0,0))'"
    )


def test_timeline_matching_fallback_collapses_to_static_crop():
    crops = [make_crop(656, start=0.0, end=1.0), make_crop(656, start=3.0, end=4.0)]
    assert emit_timeline(crops, fallback=make_crop(656)) == "crop=608:1080:656:0"


def test_timeline_fallback_must_share_size():
    crops = [make_crop(0, start=0.0, end=1.0)]
    with pytest.raises(ValueError):
        emit_timeline(crops, fallback=make_crop(656, width=600))
