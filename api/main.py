from __future__ import annotations

import logging
import math
import threading
from typing import Dict, Optional

import numpy as np
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from analysis.classifier import (
    ClassificationError,
    ClassificationResult,
    build_classifier,
)
from analysis.config import PipelineConfig
from analysis.pipeline import ExercisePipeline, FeedbackSnapshot, SessionClosedError, SessionSummary
from analysis.thresholds import ExerciseConfigError
from api.schemas import (
    ClassificationResponse,
    ClassifyRequest,
    FrameRequest,
    SessionCreatedResponse,
    SessionSummaryResponse,
    SnapshotResponse,
    StartSessionRequest,
    SwitchExerciseRequest,
)
from pose.backend import Landmark


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


app = FastAPI(title="Stathis Exercise API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

CONFIG = PipelineConfig.from_env()

SESSIONS: Dict[str, ExercisePipeline] = {}
SESSIONS_LOCK = threading.Lock()

_UNSET = object()


def get_classifier():
    """Classifier shared by /api/posture/classify and live sessions; built once on first use."""
    classifier = getattr(app.state, "classifier", _UNSET)
    if classifier is _UNSET:
        classifier = build_classifier(CONFIG)
        app.state.classifier = classifier
    return classifier


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return float(value)


def _classification_response(result: ClassificationResult) -> ClassificationResponse:
    payload = result.to_payload()
    payload["formConfidence"] = _finite_or_none(result.form_confidence)
    return ClassificationResponse(**payload)


def _snapshot_response(snap: FeedbackSnapshot) -> SnapshotResponse:
    return SnapshotResponse(
        session_id=snap.session_id,
        exercise=snap.exercise,
        rep_count=snap.rep_count,
        phase=snap.phase.value,
        form_issues=list(snap.form_issues),
        primary_angle=_finite_or_none(snap.primary_angle),
        frame_index=snap.frame_index,
        classification=_classification_response(snap.classification) if snap.classification else None,
    )


def _summary_response(summary: SessionSummary) -> SessionSummaryResponse:
    return SessionSummaryResponse(
        session_id=summary.session_id,
        exercise=summary.exercise,
        duration_s=summary.duration_s,
        rep_count=summary.rep_count,
        issues_detected=list(summary.issues_detected),
    )


def _get_session(session_id: str) -> ExercisePipeline:
    with SESSIONS_LOCK:
        pipeline = SESSIONS.get(session_id)
    if pipeline is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return pipeline


@app.get("/health", response_class=PlainTextResponse)
async def health() -> str:
    return "ok"


@app.post("/api/posture/classify", response_model=ClassificationResponse)
def classify(body: ClassifyRequest):
    classifier = get_classifier()
    if classifier is None:
        raise HTTPException(status_code=503, detail="No sequence model configured")
    try:
        window = np.asarray(body.window, dtype=np.float32)
    except ValueError:
        raise HTTPException(status_code=400, detail="Window must be a rectangular [1,T,132] array")
    if window.ndim != 3 or window.shape[0] != 1:
        raise HTTPException(status_code=400, detail="Window must be shaped [1,T,132]")
    try:
        result = classifier.classify(window[0])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ClassificationError as exc:
        logger.warning("classification failed: %s", exc)
        raise HTTPException(status_code=502, detail=f"Error processing posture: {exc}")
    return _classification_response(result)


@app.post("/sessions", response_model=SessionCreatedResponse, status_code=201)
def start_session(body: StartSessionRequest):
    try:
        pipeline = ExercisePipeline(body.exercise, classifier=get_classifier(), config=CONFIG)
    except ExerciseConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ValueError as exc:
        logger.error("cannot start session: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc))
    with SESSIONS_LOCK:
        SESSIONS[pipeline.session_id] = pipeline
    return SessionCreatedResponse(session_id=pipeline.session_id, exercise=pipeline.exercise)


def _rekey(pipeline: ExercisePipeline) -> None:
    """Register the pipeline under its current session id only."""
    with SESSIONS_LOCK:
        for key in [k for k, v in SESSIONS.items() if v is pipeline]:
            del SESSIONS[key]
        if not pipeline.closed:
            SESSIONS[pipeline.session_id] = pipeline


@app.post("/sessions/{session_id}/frames", response_model=SnapshotResponse)
def push_frame(session_id: str, body: FrameRequest):
    pipeline = _get_session(session_id)
    if all(len(row) == 4 for row in body.landmarks):
        frame = [Landmark(x=r[0], y=r[1], z=r[2], visibility=r[3]) for r in body.landmarks]
    else:
        frame = []
    # the pipeline serializes concurrent writers for the same session
    snap = pipeline.process_frame(frame, body.timestamp)
    return _snapshot_response(snap)


@app.get("/sessions/{session_id}", response_model=SnapshotResponse)
def get_snapshot(session_id: str):
    return _snapshot_response(_get_session(session_id).current_snapshot())


@app.post("/sessions/{session_id}/reset", response_model=SnapshotResponse)
def reset_session(session_id: str):
    pipeline = _get_session(session_id)
    try:
        snap = pipeline.reset()
    except SessionClosedError:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    _rekey(pipeline)
    return _snapshot_response(snap)


@app.put("/sessions/{session_id}/exercise", response_model=SnapshotResponse)
def switch_exercise(session_id: str, body: SwitchExerciseRequest):
    pipeline = _get_session(session_id)
    try:
        snap = pipeline.switch_exercise(body.exercise)
    except ExerciseConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except SessionClosedError:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    _rekey(pipeline)
    return _snapshot_response(snap)


@app.delete("/sessions/{session_id}", response_model=SessionSummaryResponse)
def end_session(session_id: str):
    with SESSIONS_LOCK:
        pipeline = SESSIONS.pop(session_id, None)
    if pipeline is None:
        raise HTTPException(status_code=404, detail="Unknown session_id")
    return _summary_response(pipeline.close())
