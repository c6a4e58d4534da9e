from __future__ import annotations

import json

import pytest

from analysis.config import PipelineConfig
from analysis.pipeline import ExercisePipeline
from analysis.thresholds import (
    PUSHUP,
    SQUAT,
    ExerciseConfigError,
    ExerciseThresholds,
    get_thresholds,
    load_thresholds,
)


def test_builtin_rows():
    assert get_thresholds("squat") is SQUAT
    assert get_thresholds("  PushUp ") is PUSHUP
    assert SQUAT.lower_deg < SQUAT.upper_deg
    assert SQUAT.body_line is None
    assert PUSHUP.body_line is not None


def test_unknown_exercise_raises():
    with pytest.raises(ExerciseConfigError) as exc:
        get_thresholds("burpee")
    assert "burpee" in str(exc.value)
    with pytest.raises(ExerciseConfigError):
        get_thresholds("")


def test_required_joints_cover_body_line():
    assert set(SQUAT.required_joints) == {23, 24, 25, 26, 27, 28}
    assert {11, 12, 23, 24, 27, 28} <= set(PUSHUP.required_joints)


@pytest.mark.parametrize("upper,lower", [(100.0, 160.0), (160.0, 0.0), (190.0, 100.0), (120.0, 120.0)])
def test_rejects_bad_hysteresis(upper, lower):
    with pytest.raises(ExerciseConfigError):
        ExerciseThresholds(primary_joint="knee", left=(23, 25, 27), right=(24, 26, 28), upper_deg=upper, lower_deg=lower)


def test_rejects_out_of_range_index():
    with pytest.raises(ExerciseConfigError):
        ExerciseThresholds(primary_joint="knee", left=(23, 25, 40), right=(24, 26, 28), upper_deg=160, lower_deg=100)


def test_load_thresholds_from_json(tmp_path):
    path = tmp_path / "thresholds.json"
    path.write_text(
        json.dumps(
            {
                "Lunge": {
                    "primary_joint": "knee",
                    "left": [23, 25, 27],
                    "right": [24, 26, 28],
                    "upper_deg": 150,
                    "lower_deg": 95,
                    "asymmetry_tol_deg": 30,
                }
            }
        ),
        encoding="utf-8",
    )
    table = load_thresholds(path)
    row = get_thresholds("lunge", table)
    assert row.upper_deg == 150.0
    assert row.lower_deg == 95.0
    assert row.asymmetry_tol_deg == 30.0
    assert row.min_visibility == 0.7
    with pytest.raises(ExerciseConfigError):
        get_thresholds("squat", table)


def test_load_thresholds_with_body_line(tmp_path):
    path = tmp_path / "t.json"
    path.write_text(
        json.dumps(
            {
                "pushup": {
                    "primary_joint": "elbow",
                    "left": [11, 13, 15],
                    "right": [12, 14, 16],
                    "upper_deg": 160,
                    "lower_deg": 100,
                    "body_line": [[11, 12], [23, 24], [27, 28]],
                }
            }
        ),
        encoding="utf-8",
    )
    row = load_thresholds(path)["pushup"]
    assert row.body_line == ((11, 12), (23, 24), (27, 28))


_ROW = {"primary_joint": "elbow", "left": [11, 13, 15], "right": [12, 14, 16], "upper_deg": 160, "lower_deg": 100}


@pytest.mark.parametrize(
    "content",
    [
        {},
        {"squat": {"primary_joint": "knee", "left": [23, 25, 27], "right": [24, 26, 28], "lower_deg": 100}},
        {"squat": {"primary_joint": "knee", "left": [23, 25, 27], "right": [24, 26, 28], "upper_deg": 90, "lower_deg": 100}},
        {"squat": "not-a-row"},
        {"lunge": {**_ROW, "left": [23, 25]}},
        {"lunge": {**_ROW, "right": [24, 26, 28, 30]}},
        {"pushup": {**_ROW, "body_line": [[11, 12], [23, 24], [27, 99]]}},
        {"pushup": {**_ROW, "body_line": [[11, 12], [23, 24]]}},
        {"pushup": {**_ROW, "body_line": [[11, 12, 13], [23, 24], [27, 28]]}},
    ],
)
def test_load_thresholds_rejects_invalid_rows(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(content), encoding="utf-8")
    with pytest.raises(ExerciseConfigError):
        load_thresholds(path)


def test_bad_thresholds_file_fails_session_start(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"lunge": {**_ROW, "left": [23, 25]}}), encoding="utf-8")
    with pytest.raises(ExerciseConfigError):
        ExercisePipeline("lunge", config=PipelineConfig(thresholds_file=str(path)))
