from __future__ import annotations

from typing import Dict, List

import numpy as np

from .features import angle, midpoint
from .thresholds import ExerciseThresholds


UNEVEN_BEND = "uneven_bend"
LOW_VISIBILITY = "low_visibility"
BODY_NOT_STRAIGHT = "body_not_straight"

FORM_ISSUE_MESSAGES: Dict[str, str] = {
    UNEVEN_BEND: "Bend both sides evenly.",
    LOW_VISIBILITY: "Step into view so your whole body is visible.",
    BODY_NOT_STRAIGHT: "Keep your body in a straight line.",
}


def body_line_deviation(lm: np.ndarray, thresholds: ExerciseThresholds) -> float:
    """Degrees away from straight at the hip midpoint of the configured body line."""
    if thresholds.body_line is None:
        return float("nan")
    (s1, s2), (h1, h2), (a1, a2) = thresholds.body_line
    shoulder = midpoint(lm[s1], lm[s2])
    hip = midpoint(lm[h1], lm[h2])
    ankle = midpoint(lm[a1], lm[a2])
    theta = angle(shoulder, hip, ankle)
    return 180.0 - theta if np.isfinite(theta) else float("nan")


def detect_form_issues(
    lm: np.ndarray,
    thresholds: ExerciseThresholds,
    left_deg: float,
    right_deg: float,
) -> List[str]:
    """
    Per-frame form checks on a (33, 4) landmark matrix. Order of the returned
    codes is stable so identical input yields identical output.
    """
    issues: List[str] = []

    if np.isfinite(left_deg) and np.isfinite(right_deg):
        if abs(left_deg - right_deg) > thresholds.asymmetry_tol_deg:
            issues.append(UNEVEN_BEND)

    visibility = lm[list(thresholds.required_joints), 3]
    if float(np.mean(visibility)) < thresholds.min_visibility:
        issues.append(LOW_VISIBILITY)

    deviation = body_line_deviation(lm, thresholds)
    if np.isfinite(deviation) and deviation > thresholds.body_line_tol_deg:
        issues.append(BODY_NOT_STRAIGHT)

    return issues
