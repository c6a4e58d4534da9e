from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import numpy as np

from .backend import Landmark


# BlazePose torso and limb connections (indices for the 33-landmark model)
CONNECTIONS: Tuple[Tuple[int, int], ...] = (
    # Torso
    (11, 12), (11, 23), (12, 24), (23, 24),
    # Arms
    (11, 13), (13, 15), (12, 14), (14, 16),
    # Legs
    (23, 25), (25, 27), (24, 26), (26, 28),
)


def _to_px(width: int, height: int, lm: Landmark) -> Tuple[int, int]:
    x = 0 if np.isnan(lm.x) else int(round(lm.x * (width - 1)))
    y = 0 if np.isnan(lm.y) else int(round(lm.y * (height - 1)))
    return max(0, min(width - 1, x)), max(0, min(height - 1, y))


def draw_landmarks(
    frame_bgr: np.ndarray,
    landmarks: Sequence[Landmark],
    *,
    point_color: Tuple[int, int, int] = (0, 255, 0),
    line_color: Tuple[int, int, int] = (0, 200, 255),
    visibility_threshold: float = 0.5,
    connections: Iterable[Tuple[int, int]] = CONNECTIONS,
) -> np.ndarray:
    """Draw the skeleton on the frame (in place) and return it."""
    import cv2  # type: ignore

    height, width = frame_bgr.shape[:2]
    radius = max(2, int(round(0.004 * max(width, height))))
    thickness = max(1, int(round(0.003 * max(width, height))))

    for a, b in connections:
        if a >= len(landmarks) or b >= len(landmarks):
            continue
        la, lb = landmarks[a], landmarks[b]
        if la.visibility >= visibility_threshold and lb.visibility >= visibility_threshold:
            cv2.line(frame_bgr, _to_px(width, height, la), _to_px(width, height, lb), line_color, thickness)

    for lm in landmarks:
        if lm.visibility >= visibility_threshold:
            cv2.circle(frame_bgr, _to_px(width, height, lm), radius, point_color, -1)

    return frame_bgr


def draw_feedback(frame_bgr: np.ndarray, snapshot, *, messages: Sequence[str] = ()) -> np.ndarray:
    """Overlay rep count, phase, latest prediction and coaching lines in the top-left corner."""
    import cv2  # type: ignore

    lines = [f"{snapshot.exercise}  reps: {snapshot.rep_count}  {snapshot.phase.value}"]
    cls = snapshot.classification
    if cls is not None:
        form = "" if cls.form_confidence is None else f"  form {cls.form_confidence:.2f}"
        lines.append(f"{cls.predicted_class} ({cls.score:.2f}){form}")
    lines.extend(messages)

    y = 28
    for text in lines:
        cv2.putText(frame_bgr, text, (12, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 0, 0), 4, cv2.LINE_AA)
        cv2.putText(frame_bgr, text, (12, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 1, cv2.LINE_AA)
        y += 26
    return frame_bgr
