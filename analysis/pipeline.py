from __future__ import annotations

import logging
import queue
import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field, replace
from concurrent.futures import Executor
from typing import Callable, Mapping, Optional, Sequence, Tuple

from pose.backend import Landmark
from .classifier import ClassificationResult
from .config import PipelineConfig
from .dispatcher import ClassificationDispatcher
from .fsm import ExerciseStateMachine, FrameAnalysis, Phase
from .normalize import normalize_frame
from .thresholds import ExerciseThresholds, get_thresholds, load_thresholds
from .window import WindowBuffer


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackSnapshot:
    """Everything a consumer may read about the live session, as one value."""
    session_id: str
    exercise: str
    rep_count: int = 0
    phase: Phase = Phase.TOP
    form_issues: Tuple[str, ...] = ()
    primary_angle: Optional[float] = None
    frame_index: int = -1
    classification: Optional[ClassificationResult] = None


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    exercise: str
    started_at: float
    ended_at: float
    duration_s: float
    rep_count: int
    issues_detected: Tuple[str, ...] = ()


@dataclass
class ExerciseSession:
    session_id: str
    exercise: str
    machine: ExerciseStateMachine
    started_at: float
    frames: int = 0
    issue_counts: Counter = field(default_factory=Counter)

    def summary(self, ended_at: float) -> SessionSummary:
        issues = tuple(name for name, _ in self.issue_counts.most_common())
        return SessionSummary(
            session_id=self.session_id,
            exercise=self.exercise,
            started_at=self.started_at,
            ended_at=ended_at,
            duration_s=max(0.0, ended_at - self.started_at),
            rep_count=self.machine.reps,
            issues_detected=issues,
        )


class SessionClosedError(RuntimeError):
    """The pipeline was closed; it accepts no further session changes."""


class ExercisePipeline:
    """
    Live analysis of one exercise session.

    Frames go through the normalizer into the rep-counting state machine (every
    frame) and into the window that feeds the throttled classifier. Both outputs
    are published as one immutable FeedbackSnapshot, replaced atomically so that
    readers on other threads never need a lock.

    Writers (process_frame, reset, switch_exercise, close) are serialized by one
    lock, so callers on several threads still see a single writer.
    """

    def __init__(
        self,
        exercise: str,
        *,
        classifier=None,
        config: Optional[PipelineConfig] = None,
        thresholds_table: Optional[Mapping[str, ExerciseThresholds]] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or PipelineConfig()
        if thresholds_table is None and self.config.thresholds_file:
            thresholds_table = load_thresholds(self.config.thresholds_file)
        self._table = thresholds_table
        self._clock = clock
        self._publish_lock = threading.Lock()
        self._writer_lock = threading.Lock()
        self._closed = False
        self._summary: Optional[SessionSummary] = None

        sequence_length = getattr(classifier, "sequence_length", None)
        if sequence_length is not None and int(sequence_length) != self.config.window_size:
            raise ValueError(
                f"classifier expects {sequence_length}-frame windows but window_size is {self.config.window_size}"
            )
        session = self._new_session(exercise)

        self.window = WindowBuffer(self.config.window_size)
        self.dispatcher = ClassificationDispatcher(
            classifier,
            self._apply_classification,
            interval=self.config.dispatch_interval,
            timeout=self.config.classification_timeout,
            executor=executor,
            max_workers=self.config.classifier_workers,
            clock=clock,
        )
        self.dropped_frames = 0

        self._session = session
        self._snapshot = FeedbackSnapshot(session_id=session.session_id, exercise=session.exercise)
        logger.info("session %s started (%s)", session.session_id, session.exercise)

    def _new_session(self, exercise: str) -> ExerciseSession:
        thresholds = get_thresholds(exercise, self._table)
        name = exercise.strip().lower()
        return ExerciseSession(
            session_id=str(uuid.uuid4()),
            exercise=name,
            machine=ExerciseStateMachine(name, thresholds),
            started_at=self._clock(),
        )

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def exercise(self) -> str:
        return self._session.exercise

    @property
    def closed(self) -> bool:
        return self._closed

    def current_snapshot(self) -> FeedbackSnapshot:
        return self._snapshot

    def _publish(self, **changes) -> FeedbackSnapshot:
        with self._publish_lock:
            self._snapshot = replace(self._snapshot, **changes)
            return self._snapshot

    def process_frame(
        self, frame: Sequence[Landmark], timestamp: Optional[float] = None
    ) -> FeedbackSnapshot:
        """Feed one landmark frame. Invalid frames leave every piece of state untouched."""
        with self._writer_lock:
            if self._closed:
                return self._snapshot

            vector = normalize_frame(frame)
            if vector is None:
                self.dropped_frames += 1
                return self._snapshot

            session = self._session
            analysis: FrameAnalysis = session.machine.process_frame(vector, frame_idx=session.frames)
            session.frames += 1
            session.issue_counts.update(analysis.form_issues)
            if analysis.rep_event is not None:
                logger.debug("session %s rep %d", session.session_id, analysis.reps)

            self.window.push(vector)
            now = self._clock() if timestamp is None else float(timestamp)
            self.dispatcher.maybe_dispatch(self.window, now, session.session_id)

            return self._publish(
                rep_count=analysis.reps,
                phase=analysis.phase,
                form_issues=analysis.form_issues,
                primary_angle=analysis.primary_angle,
                frame_index=analysis.frame_idx,
            )

    def _apply_classification(self, session_id: Optional[str], result: ClassificationResult) -> None:
        with self._publish_lock:
            if self._closed or session_id != self._snapshot.session_id:
                logger.debug("dropping stale classification for session %s", session_id)
                return
            self._snapshot = replace(self._snapshot, classification=result)

    def _restart(self, session: ExerciseSession) -> None:
        if self._closed:
            raise SessionClosedError(f"session {self._session.session_id} is closed")
        self._session.machine.reset()
        self.window.clear()
        self.dispatcher.reset()
        self._session = session
        with self._publish_lock:
            self._snapshot = FeedbackSnapshot(session_id=session.session_id, exercise=session.exercise)

    def reset(self) -> FeedbackSnapshot:
        """Zero the counters and start a fresh session of the same exercise."""
        with self._writer_lock:
            old = self._session
            self._restart(self._new_session(old.exercise))
            logger.info("session %s reset as %s", old.session_id, self._session.session_id)
            return self._snapshot

    def switch_exercise(self, exercise: str) -> FeedbackSnapshot:
        """Start a fresh session for another exercise. Raises ExerciseConfigError before touching state."""
        with self._writer_lock:
            session = self._new_session(exercise)
            old = self._session
            self._restart(session)
            logger.info("session %s switched to %s (%s)", old.session_id, session.exercise, session.session_id)
            return self._snapshot

    def close(self) -> SessionSummary:
        """End the session. An in-flight classification is left to finish and discarded."""
        with self._writer_lock:
            if self._summary is not None:
                return self._summary
            summary = self._session.summary(self._clock())
            with self._publish_lock:
                self._closed = True
            self.dispatcher.close()
            self._summary = summary
            logger.info(
                "session %s ended: %d reps in %.1fs",
                summary.session_id,
                summary.rep_count,
                summary.duration_s,
            )
            return summary

    def __enter__(self) -> "ExercisePipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


_STOP = object()


class FrameQueueRunner:
    """
    Funnels frames from a capture callback into one processing thread.

    submit() never blocks: when the queue is full the frame is dropped, so a slow
    consumer sheds load instead of stalling the camera.
    """

    def __init__(self, pipeline: ExercisePipeline, maxsize: Optional[int] = None) -> None:
        self.pipeline = pipeline
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize or pipeline.config.frame_queue_size)
        self._thread: Optional[threading.Thread] = None
        self.dropped = 0
        self.processed = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="FrameQueueRunner", daemon=True)
        self._thread.start()

    def submit(self, frame: Sequence[Landmark], timestamp: Optional[float] = None) -> bool:
        try:
            self._queue.put_nowait((frame, timestamp))
            return True
        except queue.Full:
            self.dropped += 1
            logger.debug("frame queue full; dropped frame (%d total)", self.dropped)
            return False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            frame, timestamp = item
            try:
                self.pipeline.process_frame(frame, timestamp)
            except Exception:
                logger.exception("frame processing failed")
            self.processed += 1

    def stop(self, timeout: float = 5.0) -> None:
        """Process what is already queued, then stop the worker thread."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None
