import json
from argparse import Namespace

import numpy as np
import pandas as pd
import pytest

cv2 = pytest.importorskip("cv2")

from scripts.plan_crops import main, parse_args, resolve_pipeline_config, resolve_tracking_options


def make_args(**overrides) -> Namespace:
    defaults = dict(
        aspect_ratio=None,
        confidence_threshold=None,
        min_face_size=None,
        smoothing=None,
        speaker_centering=None,
        object_weights=None,
        max_gap_frames=None,
        workers=None,
    )
    defaults.update(overrides)
    return Namespace(**defaults)


def test_tracking_options_fall_back_to_config():
    cfg = {"tracking": {"crop_aspect_ratio": "4:5", "min_face_size": 80}}
    options = resolve_tracking_options(make_args(), cfg)
    assert options.crop_aspect_ratio == pytest.approx(0.8)
    assert options.min_face_size == 80
    assert options.confidence_threshold == pytest.approx(0.7)


def test_cli_overrides_config():
    cfg = {"tracking": {"crop_aspect_ratio": "4:5", "speaker_centering_enabled": True}}
    args = make_args(aspect_ratio="1:1", smoothing=0.2, speaker_centering=False)
    options = resolve_tracking_options(args, cfg)
    assert options.crop_aspect_ratio == pytest.approx(1.0)
    assert options.tracking_smoothing == pytest.approx(0.2)
    assert options.speaker_centering_enabled is False


def test_object_weights_enable_object_tracking():
    options = resolve_tracking_options(make_args(object_weights="yolov8n.pt"), {})
    assert options.object_tracking_enabled is True


def test_pipeline_config_overrides():
    config = resolve_pipeline_config(make_args(workers=4), {"max_gap_frames": 3})
    assert config.max_gap_frames == 3
    assert config.detect_workers == 4


def test_centering_flags_default_to_config():
    assert parse_args(["clip.mp4"]).speaker_centering is None
    assert parse_args(["clip.mp4", "--no-speaker-centering"]).speaker_centering is False


def test_main_writes_plan_outputs(tmp_path):
    clip = tmp_path / "talk.avi"
    writer = cv2.VideoWriter(str(clip), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (320, 180))
    if not writer.isOpened():
        pytest.skip("MJPG writer unavailable")
    for _ in range(8):
        writer.write(np.zeros((180, 320, 3), dtype=np.uint8))
    writer.release()

    main(
        [
            str(clip),
            "--output-dir",
            str(tmp_path / "out"),
            "--pipeline-config",
            str(tmp_path / "missing.yaml"),
            "--detector",
            "stub",
            "--min-face-size",
            "20",
        ]
    )

    out_dir = tmp_path / "out" / "talk"
    crops = pd.read_csv(out_dir / "talk-crops.csv")
    assert len(crops) == 1
    assert crops.iloc[0]["filter"] == "crop=101:180:109:0"
    assert len(pd.read_csv(out_dir / "talk-regions.csv")) == 1
    detections = pd.read_csv(out_dir / "talk-detections.csv")
    assert len(detections) == 8
    assert set(detections["label"]) == {"face"}

    plan = json.loads((out_dir / "talk-plan.json").read_text())
    assert plan["metadata"]["tracking_method"] == "face:static_stub"
    assert plan["metadata"]["stride"] == 1
    assert plan["timeline_filter"] == "crop=101:180:109:0"
