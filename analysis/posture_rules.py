from __future__ import annotations

from typing import List, Optional, Set, Tuple

import numpy as np

from .features import angle, angle_to_vertical, line_y_at_x, midpoint
from .landmarks import (
    L_ANKLE,
    L_HIP,
    L_KNEE,
    L_SHOULDER,
    NUM_LANDMARKS,
    R_ANKLE,
    R_HIP,
    R_KNEE,
    R_SHOULDER,
)


# Knee angle above which a squat never reached parallel (degrees)
SQUAT_DEPTH_MAX_KNEE_DEG = 150.0
# Torso lean from vertical above which the chest is dropping (degrees)
SQUAT_TORSO_LEAN_MAX_DEG = 40.0
# Hip offset from the shoulder-ankle line, in torso lengths of the normalized frame
PUSHUP_HIP_LINE_TOL = 0.35
# Shoulders must rise this far above the hips (torso lengths) for a full sit-up
SITUP_MIN_TRUNK_RISE = 0.35


def _squat(lm: np.ndarray, flags: Set[str], messages: List[str]) -> None:
    hip_center = midpoint(lm[L_HIP], lm[R_HIP])
    shoulder_center = midpoint(lm[L_SHOULDER], lm[R_SHOULDER])

    knee_left = angle(lm[L_HIP], lm[L_KNEE], lm[L_ANKLE])
    knee_right = angle(lm[R_HIP], lm[R_KNEE], lm[R_ANKLE])
    knees = [k for k in (knee_left, knee_right) if np.isfinite(k)]
    if knees and min(knees) > SQUAT_DEPTH_MAX_KNEE_DEG:
        flags.add("depth_low")
        messages.append("Go deeper to at least parallel.")

    knees_in_left = abs(lm[L_KNEE, 0] - hip_center[0]) < abs(lm[L_ANKLE, 0] - hip_center[0])
    knees_in_right = abs(lm[R_KNEE, 0] - hip_center[0]) < abs(lm[R_ANKLE, 0] - hip_center[0])
    if knees_in_left and knees_in_right:
        flags.add("knees_in")
        messages.append("Push knees outward over toes.")

    lean = angle_to_vertical(shoulder_center - hip_center)
    if np.isfinite(lean) and lean > SQUAT_TORSO_LEAN_MAX_DEG:
        flags.add("chest_up")
        messages.append("Keep chest up.")


def _pushup(lm: np.ndarray, flags: Set[str], messages: List[str]) -> None:
    shoulder = midpoint(lm[L_SHOULDER], lm[R_SHOULDER])
    hip = midpoint(lm[L_HIP], lm[R_HIP])
    ankle = midpoint(lm[L_ANKLE], lm[R_ANKLE])

    sag = hip[1] - line_y_at_x(shoulder, ankle, float(hip[0]))
    if sag < -PUSHUP_HIP_LINE_TOL:
        flags.add("pike")
        messages.append("Keep a straight line from head to heels.")
    elif sag > PUSHUP_HIP_LINE_TOL:
        flags.add("sag")
        messages.append("Avoid sagging hips.")


def _plank(lm: np.ndarray, flags: Set[str], messages: List[str]) -> None:
    _pushup(lm, flags, messages)
    if not flags:
        messages.append("Maintain a straight line from shoulders to heels.")


def _situp(lm: np.ndarray, flags: Set[str], messages: List[str]) -> None:
    shoulder = midpoint(lm[L_SHOULDER], lm[R_SHOULDER])
    hip = midpoint(lm[L_HIP], lm[R_HIP])
    if shoulder[1] - hip[1] > -SITUP_MIN_TRUNK_RISE:
        flags.add("low_rom")
        messages.append("Increase trunk flexion.")


_RULES = {
    "squat": _squat,
    "push_up": _pushup,
    "plank": _plank,
    "sit_up": _situp,
}


def evaluate(predicted_class: Optional[str], last_frame: Optional[np.ndarray]) -> Tuple[List[str], List[str]]:
    """
    Rule-based flags and coaching messages for the classifier's predicted class,
    evaluated on the last frame of the window as a (33, 4) array.
    """
    if predicted_class is None or last_frame is None:
        return [], []
    lm = np.asarray(last_frame, dtype=np.float64)
    if lm.shape != (NUM_LANDMARKS, 4):
        return [], []

    rule = _RULES.get(predicted_class)
    if rule is None:
        return [], []

    flags: Set[str] = set()
    messages: List[str] = []
    rule(lm, flags, messages)
    return sorted(flags), messages
