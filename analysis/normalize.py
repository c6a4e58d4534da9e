from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from pose.backend import Landmark
from .landmarks import L_HIP, L_SHOULDER, NUM_LANDMARKS, R_HIP, R_SHOULDER


VECTOR_SIZE = NUM_LANDMARKS * 4
TORSO_EPSILON = 1e-6


def landmarks_to_array(frame: Sequence[Landmark]) -> np.ndarray:
    """Stack landmarks into a (N, 4) array of x, y, z, visibility."""
    return np.array(
        [(lm.x, lm.y, lm.z, lm.visibility) for lm in frame],
        dtype=np.float64,
    ).reshape(-1, 4)


def as_landmark_matrix(vector: np.ndarray) -> np.ndarray:
    """View a 132-long normalized vector as (33, 4)."""
    return np.asarray(vector).reshape(NUM_LANDMARKS, 4)


def normalize_frame(frame: Sequence[Landmark]) -> Optional[np.ndarray]:
    """
    Hip-centred, torso-scaled copy of a landmark frame, flattened to 132 floats.

    Returns None (frame rejected) when the frame does not hold exactly 33 landmarks
    or carries non-finite coordinates. The torso length is clamped to TORSO_EPSILON
    so a degenerate detection never divides by zero. Visibility is passed through.
    """
    if frame is None or len(frame) != NUM_LANDMARKS:
        return None

    pts = landmarks_to_array(frame)
    if not np.all(np.isfinite(pts)):
        return None

    hip = (pts[L_HIP, :3] + pts[R_HIP, :3]) * 0.5
    shoulder = (pts[L_SHOULDER, :3] + pts[R_SHOULDER, :3]) * 0.5
    torso = max(float(np.linalg.norm(shoulder - hip)), TORSO_EPSILON)

    out = pts.copy()
    out[:, :3] = (pts[:, :3] - hip) / torso
    vector = out.reshape(VECTOR_SIZE)
    vector.flags.writeable = False
    return vector
