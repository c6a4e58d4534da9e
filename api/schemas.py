from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class ClassifyRequest(BaseModel):
    window: List[List[List[float]]] = Field(description="[1, T, 132] stacked normalized frames")


class ClassificationResponse(BaseModel):
    predictedClass: str
    score: float
    probabilities: List[float] = Field(default_factory=list)
    classNames: List[str] = Field(default_factory=list)
    formConfidence: Optional[float] = None
    flags: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)


class StartSessionRequest(BaseModel):
    exercise: str = Field(min_length=1)


class SwitchExerciseRequest(BaseModel):
    exercise: str = Field(min_length=1)


class SessionCreatedResponse(BaseModel):
    session_id: str
    exercise: str


class FrameRequest(BaseModel):
    landmarks: List[List[float]] = Field(description="33 rows of [x, y, z, visibility]")
    timestamp: Optional[float] = None


class SnapshotResponse(BaseModel):
    session_id: str
    exercise: str
    rep_count: int = Field(0, ge=0)
    phase: str
    form_issues: List[str] = Field(default_factory=list)
    primary_angle: Optional[float] = None
    frame_index: int
    classification: Optional[ClassificationResponse] = None


class SessionSummaryResponse(BaseModel):
    session_id: str
    exercise: str
    duration_s: float = Field(0.0, ge=0.0)
    rep_count: int = Field(0, ge=0)
    issues_detected: List[str] = Field(default_factory=list)
