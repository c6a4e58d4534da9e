from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple, Union

from .landmarks import (
    L_ANKLE,
    L_ELBOW,
    L_HIP,
    L_KNEE,
    L_SHOULDER,
    L_WRIST,
    R_ANKLE,
    R_ELBOW,
    R_HIP,
    R_KNEE,
    R_SHOULDER,
    R_WRIST,
)


Triplet = Tuple[int, int, int]


class ExerciseConfigError(ValueError):
    """Raised when an exercise has no usable threshold row."""


@dataclass(frozen=True)
class ExerciseThresholds:
    """
    One row of the per-exercise table consumed by the generic state machine.

    upper_deg/lower_deg form a hysteresis pair on the primary joint angle:
    below upper starts the descent, below lower is full depth.
    body_line, when set, is a (shoulder pair, hip pair, ankle pair) of landmark
    indices whose midpoints should stay collinear within body_line_tol_deg.
    """
    primary_joint: str
    left: Triplet
    right: Triplet
    upper_deg: float
    lower_deg: float
    asymmetry_tol_deg: float = 20.0
    min_visibility: float = 0.7
    body_line: Optional[Tuple[Tuple[int, int], Tuple[int, int], Tuple[int, int]]] = None
    body_line_tol_deg: float = 20.0

    def __post_init__(self) -> None:
        if not (0.0 < self.lower_deg < self.upper_deg <= 180.0):
            raise ExerciseConfigError(
                f"thresholds must satisfy 0 < lower < upper <= 180, got {self.lower_deg}/{self.upper_deg}"
            )
        for name, triplet in (("left", self.left), ("right", self.right)):
            if len(triplet) != 3:
                raise ExerciseConfigError(f"{name} must hold 3 landmark indices, got {len(triplet)}")
        indices = list(self.left) + list(self.right)
        if self.body_line is not None:
            if len(self.body_line) != 3 or any(len(pair) != 2 for pair in self.body_line):
                raise ExerciseConfigError("body_line must be 3 pairs of landmark indices")
            indices.extend(idx for pair in self.body_line for idx in pair)
        for idx in indices:
            if not (0 <= idx < 33):
                raise ExerciseConfigError(f"landmark index out of range: {idx}")

    @property
    def required_joints(self) -> Tuple[int, ...]:
        joints = set(self.left) | set(self.right)
        if self.body_line is not None:
            for pair in self.body_line:
                joints.update(pair)
        return tuple(sorted(joints))


# Defaults carried over from the on-device detector; tune per product requirements.
SQUAT = ExerciseThresholds(
    primary_joint="knee",
    left=(L_HIP, L_KNEE, L_ANKLE),
    right=(R_HIP, R_KNEE, R_ANKLE),
    upper_deg=160.0,
    lower_deg=100.0,
)

PUSHUP = ExerciseThresholds(
    primary_joint="elbow",
    left=(L_SHOULDER, L_ELBOW, L_WRIST),
    right=(R_SHOULDER, R_ELBOW, R_WRIST),
    upper_deg=160.0,
    lower_deg=100.0,
    body_line=((L_SHOULDER, R_SHOULDER), (L_HIP, R_HIP), (L_ANKLE, R_ANKLE)),
    body_line_tol_deg=20.0,
)

EXERCISE_THRESHOLDS: Dict[str, ExerciseThresholds] = {
    "squat": SQUAT,
    "pushup": PUSHUP,
}


def get_thresholds(
    exercise: str, table: Optional[Mapping[str, ExerciseThresholds]] = None
) -> ExerciseThresholds:
    table = EXERCISE_THRESHOLDS if table is None else table
    key = (exercise or "").strip().lower()
    try:
        return table[key]
    except KeyError:
        raise ExerciseConfigError(
            f"no thresholds configured for exercise {exercise!r}; known: {sorted(table)}"
        ) from None


def _row_from_dict(name: str, raw: Mapping[str, object]) -> ExerciseThresholds:
    try:
        body_line = raw.get("body_line")
        return ExerciseThresholds(
            primary_joint=str(raw["primary_joint"]),
            left=tuple(int(i) for i in raw["left"]),  # type: ignore[arg-type]
            right=tuple(int(i) for i in raw["right"]),  # type: ignore[arg-type]
            upper_deg=float(raw["upper_deg"]),  # type: ignore[arg-type]
            lower_deg=float(raw["lower_deg"]),  # type: ignore[arg-type]
            asymmetry_tol_deg=float(raw.get("asymmetry_tol_deg", 20.0)),  # type: ignore[arg-type]
            min_visibility=float(raw.get("min_visibility", 0.7)),  # type: ignore[arg-type]
            body_line=(
                tuple(tuple(int(i) for i in pair) for pair in body_line)  # type: ignore[union-attr]
                if body_line
                else None
            ),
            body_line_tol_deg=float(raw.get("body_line_tol_deg", 20.0)),  # type: ignore[arg-type]
        )
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, ExerciseConfigError):
            raise
        raise ExerciseConfigError(f"invalid thresholds for {name!r}: {exc}") from exc


def load_thresholds(path: Union[str, Path]) -> Dict[str, ExerciseThresholds]:
    """
    Load a thresholds table from JSON: {"squat": {"primary_joint": "knee", "left": [23, 25, 27], ...}}.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not data:
        raise ExerciseConfigError(f"thresholds file {path} must hold a non-empty object")
    return {str(name).lower(): _row_from_dict(str(name), row) for name, row in data.items()}
