from __future__ import annotations

from math import acos, degrees, isfinite
from typing import Optional, Sequence

import numpy as np


Point = Sequence[float]


def _finite(p: Optional[Point]) -> bool:
    return p is not None and all(isfinite(float(v)) for v in p[:3])


def midpoint(a: Point, b: Point) -> np.ndarray:
    """Midpoint of two 3D points (extra components such as visibility are ignored)."""
    return (np.asarray(a[:3], dtype=np.float64) + np.asarray(b[:3], dtype=np.float64)) * 0.5


def distance(a: Point, b: Point) -> float:
    return float(np.linalg.norm(np.asarray(a[:3], dtype=np.float64) - np.asarray(b[:3], dtype=np.float64)))


def angle(a: Optional[Point], b: Optional[Point], c: Optional[Point]) -> float:
    """
    Returns the angle at point B (in degrees) for triangle (A,B,C), using x/y/z.

    - If any point is None or has non-finite coordinates, returns nan
    - If any vector is near-zero, returns nan
    """
    if not (_finite(a) and _finite(b) and _finite(c)):
        return float("nan")

    pb = np.asarray(b[:3], dtype=np.float64)
    ba = np.asarray(a[:3], dtype=np.float64) - pb
    bc = np.asarray(c[:3], dtype=np.float64) - pb
    n1 = float(np.linalg.norm(ba))
    n2 = float(np.linalg.norm(bc))
    if n1 <= 1e-12 or n2 <= 1e-12:
        return float("nan")

    cos_theta = float(np.dot(ba, bc)) / (n1 * n2)
    # Clamp due to numerical errors
    cos_theta = max(-1.0, min(1.0, cos_theta))
    return degrees(acos(cos_theta))


def angle_to_vertical(v: Point) -> float:
    """Angle in degrees between v and the image "up" direction (negative y)."""
    vec = np.asarray(v[:3], dtype=np.float64)
    n = float(np.linalg.norm(vec))
    if not isfinite(n) or n <= 1e-12:
        return float("nan")
    cos_theta = max(-1.0, min(1.0, float(-vec[1]) / n))
    return degrees(acos(cos_theta))


def line_y_at_x(p1: Point, p2: Point, x: float) -> float:
    """y of the line through p1 and p2 evaluated at x; p1.y for a vertical line."""
    dx = float(p2[0]) - float(p1[0])
    if abs(dx) < 1e-6:
        return float(p1[1])
    t = (x - float(p1[0])) / dx
    return float(p1[1]) + t * (float(p2[1]) - float(p1[1]))
