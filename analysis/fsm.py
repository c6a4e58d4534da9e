from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .features import angle
from .form_rules import detect_form_issues
from .normalize import as_landmark_matrix
from .thresholds import ExerciseThresholds


class Phase(str, Enum):
    TOP = "TOP"
    DESCENDING = "DESCENDING"
    BOTTOM = "BOTTOM"
    ASCENDING = "ASCENDING"


@dataclass
class RepState:
    phase: Phase = Phase.TOP
    reps: int = 0


@dataclass(frozen=True)
class FrameAnalysis:
    frame_idx: int
    phase: Phase
    reps: int
    rep_event: Optional[str]
    primary_angle: float
    angles: Tuple[float, float]
    form_issues: Tuple[str, ...] = field(default_factory=tuple)


class ExerciseStateMachine:
    """
    Rep counter driven by one primary joint angle with hysteresis.

    - TOP -> DESCENDING when the angle drops below thresholds.upper_deg
    - DESCENDING -> BOTTOM when it drops below thresholds.lower_deg
    - BOTTOM -> ASCENDING when it rises back above thresholds.lower_deg
    - ASCENDING -> TOP when it rises above thresholds.upper_deg, counting one rep

    A descent that turns back before reaching the bottom returns to TOP without a
    rep. Transitions cascade within a frame, so sparse samples still count.
    """

    def __init__(self, exercise: str, thresholds: ExerciseThresholds) -> None:
        self.exercise = exercise
        self.thresholds = thresholds
        self.state = RepState()
        self._frame_idx = -1

    def reset(self) -> None:
        self.state = RepState()
        self._frame_idx = -1

    @property
    def reps(self) -> int:
        return self.state.reps

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def _step(self, angle_deg: float) -> Tuple[Phase, bool]:
        upper = self.thresholds.upper_deg
        lower = self.thresholds.lower_deg
        phase = self.state.phase
        if phase is Phase.TOP and angle_deg < upper:
            return Phase.DESCENDING, False
        if phase is Phase.DESCENDING:
            if angle_deg < lower:
                return Phase.BOTTOM, False
            if angle_deg > upper:
                return Phase.TOP, False
        if phase is Phase.BOTTOM and angle_deg > lower:
            return Phase.ASCENDING, False
        if phase is Phase.ASCENDING:
            if angle_deg > upper:
                return Phase.TOP, True
            if angle_deg < lower:
                return Phase.BOTTOM, False
        return phase, False

    def update(self, angle_deg: float) -> bool:
        """Advance on one primary angle (degrees). Returns True when a rep completed."""
        if not np.isfinite(angle_deg):
            return False
        completed = False
        # at most one full cycle per frame
        for _ in range(len(Phase)):
            new_phase, counted = self._step(float(angle_deg))
            if new_phase is self.state.phase:
                break
            self.state.phase = new_phase
            if counted:
                self.state.reps += 1
                completed = True
                break
        return completed

    def process_frame(
        self, vector: np.ndarray, *, frame_idx: Optional[int] = None
    ) -> FrameAnalysis:
        """
        vector is a normalized 132-float frame. Missing (non-finite) joints yield
        no phase change; form issues are reported regardless of phase.
        """
        self._frame_idx = int(frame_idx) if frame_idx is not None else (self._frame_idx + 1)
        lm = as_landmark_matrix(vector)

        a, b, c = self.thresholds.left
        left_deg = angle(lm[a], lm[b], lm[c])
        a, b, c = self.thresholds.right
        right_deg = angle(lm[a], lm[b], lm[c])

        sides = [v for v in (left_deg, right_deg) if np.isfinite(v)]
        primary = float(np.mean(sides)) if sides else float("nan")

        completed = self.update(primary)
        issues = detect_form_issues(lm, self.thresholds, left_deg, right_deg)

        return FrameAnalysis(
            frame_idx=self._frame_idx,
            phase=self.state.phase,
            reps=self.state.reps,
            rep_event="rep_complete" if completed else None,
            primary_angle=primary,
            angles=(left_deg, right_deg),
            form_issues=tuple(issues),
        )
