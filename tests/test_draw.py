from __future__ import annotations

import numpy as np
import pytest

from analysis.fsm import Phase
from analysis.pipeline import FeedbackSnapshot
from pose.backend import Landmark
from pose.draw import _to_px


def _frame(vis: float = 1.0):
    return [Landmark(x=0.2 + i / 66.0, y=0.3 + i / 66.0, z=0.0, visibility=vis) for i in range(33)]


def test_to_px_clamps_and_handles_nan():
    assert _to_px(100, 50, Landmark(0.0, 0.0, 0.0, 1.0)) == (0, 0)
    assert _to_px(100, 50, Landmark(1.0, 1.0, 0.0, 1.0)) == (99, 49)
    assert _to_px(100, 50, Landmark(float("nan"), 0.5, 0.0, 1.0)) == (0, 24)


def test_draw_landmarks_and_feedback_paint_pixels():
    pytest.importorskip("cv2", reason="opencv-python not installed")
    from pose.draw import draw_feedback, draw_landmarks

    img = np.zeros((120, 160, 3), dtype=np.uint8)
    out = draw_landmarks(img, _frame())
    assert out is img
    assert img.any()

    blank = np.zeros((120, 160, 3), dtype=np.uint8)
    draw_landmarks(blank, _frame(vis=0.1))
    assert not blank.any()

    snap = FeedbackSnapshot(session_id="s", exercise="squat", rep_count=3, phase=Phase.BOTTOM)
    canvas = np.zeros((120, 320, 3), dtype=np.uint8)
    draw_feedback(canvas, snap, messages=["Keep chest up."])
    assert canvas.any()
