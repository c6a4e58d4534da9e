from __future__ import annotations

import numpy as np
import pytest

from analysis.normalize import VECTOR_SIZE, as_landmark_matrix, normalize_frame
from pose.backend import Landmark


L_SHOULDER, R_SHOULDER = 11, 12
L_HIP, R_HIP = 23, 24


def _frame(seed: int = 0):
    rng = np.random.default_rng(seed)
    pts = rng.uniform(0.1, 0.9, size=(33, 3))
    vis = rng.uniform(0.0, 1.0, size=33)
    # make sure the torso is not degenerate
    pts[L_SHOULDER] = (0.45, 0.2, 0.0)
    pts[R_SHOULDER] = (0.55, 0.2, 0.0)
    pts[L_HIP] = (0.45, 0.5, 0.0)
    pts[R_HIP] = (0.55, 0.5, 0.0)
    return [Landmark(x=p[0], y=p[1], z=p[2], visibility=v) for p, v in zip(pts, vis)]


def _transform(frame, scale: float, offset):
    dx, dy, dz = offset
    return [
        Landmark(x=lm.x * scale + dx, y=lm.y * scale + dy, z=lm.z * scale + dz, visibility=lm.visibility)
        for lm in frame
    ]


def test_output_length_and_hip_anchor():
    vec = normalize_frame(_frame())
    assert vec is not None
    assert vec.shape == (VECTOR_SIZE,)
    lm = as_landmark_matrix(vec)
    hip_center = (lm[L_HIP, :3] + lm[R_HIP, :3]) / 2
    shoulder_center = (lm[L_SHOULDER, :3] + lm[R_SHOULDER, :3]) / 2
    assert np.allclose(hip_center, 0.0)
    assert abs(np.linalg.norm(shoulder_center - hip_center) - 1.0) < 1e-9


def test_visibility_passes_through():
    frame = _frame(3)
    lm = as_landmark_matrix(normalize_frame(frame))
    assert np.allclose(lm[:, 3], [l.visibility for l in frame])


@pytest.mark.parametrize("scale,offset", [(1.0, (0.3, -0.2, 0.1)), (2.5, (0.0, 0.0, 0.0)), (0.4, (-1.0, 3.0, 0.5))])
def test_invariant_to_translation_and_scale(scale, offset):
    frame = _frame(1)
    base = normalize_frame(frame)
    moved = normalize_frame(_transform(frame, scale, offset))
    assert np.allclose(base, moved, atol=1e-9)


def test_rejects_wrong_landmark_count():
    frame = _frame()
    assert normalize_frame(frame[:32]) is None
    assert normalize_frame(frame + [frame[0]]) is None
    assert normalize_frame([]) is None


def test_rejects_non_finite_coordinates():
    frame = _frame()
    frame[5] = Landmark(x=float("nan"), y=0.5, z=0.0, visibility=1.0)
    assert normalize_frame(frame) is None


def test_degenerate_torso_is_clamped():
    frame = [Landmark(x=0.5, y=0.5, z=0.0, visibility=1.0)] * 33
    vec = normalize_frame(frame)
    assert vec is not None
    assert np.all(np.isfinite(vec))
    assert np.allclose(as_landmark_matrix(vec)[:, :3], 0.0)


def test_output_is_read_only():
    vec = normalize_frame(_frame())
    with pytest.raises(ValueError):
        vec[0] = 1.0
