from __future__ import annotations

import math

import numpy as np

from analysis.features import angle, angle_to_vertical, distance, line_y_at_x, midpoint


def test_angle_basic_right_angle():
    # Right angle at B: A(0,0,0), B(0,1,0), C(1,1,0)
    th = angle((0.0, 0.0, 0.0), (0.0, 1.0, 0.0), (1.0, 1.0, 0.0))
    assert math.isfinite(th)
    assert abs(th - 90.0) < 1e-6


def test_angle_uses_depth():
    # Out-of-plane C: still a right angle once z is taken into account
    th = angle((1.0, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 2.0))
    assert abs(th - 90.0) < 1e-6


def test_angle_straight_line():
    th = angle((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0))
    assert abs(th - 180.0) < 1e-6


def test_angle_nan_on_missing_or_degenerate():
    assert math.isnan(angle((0.0, 0.0, 0.0), None, (1.0, 1.0, 0.0)))
    assert math.isnan(angle((0.0, float("nan"), 0.0), (0.0, 1.0, 0.0), (1.0, 1.0, 0.0)))
    # A coincides with B
    assert math.isnan(angle((0.0, 1.0, 0.0), (0.0, 1.0, 0.0), (1.0, 1.0, 0.0)))


def test_midpoint_and_distance_ignore_visibility():
    a = (0.0, 0.0, 0.0, 0.2)
    b = (2.0, 4.0, 6.0, 0.9)
    assert np.allclose(midpoint(a, b), [1.0, 2.0, 3.0])
    assert abs(distance(a, (3.0, 4.0, 0.0, 1.0)) - 5.0) < 1e-12


def test_angle_to_vertical():
    # Image y grows downward, so "up" is negative y
    assert abs(angle_to_vertical((0.0, -1.0, 0.0))) < 1e-9
    assert abs(angle_to_vertical((1.0, 0.0, 0.0)) - 90.0) < 1e-9
    assert math.isnan(angle_to_vertical((0.0, 0.0, 0.0)))


def test_line_y_at_x():
    assert abs(line_y_at_x((0.0, 0.0), (2.0, 1.0), 1.0) - 0.5) < 1e-12
    # Vertical line falls back to p1.y
    assert line_y_at_x((1.0, 0.3), (1.0, 0.9), 5.0) == 0.3
