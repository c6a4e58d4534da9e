from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, Optional

from .classifier import ClassificationResult
from .window import WindowBuffer


logger = logging.getLogger(__name__)

ResultCallback = Callable[[Optional[str], ClassificationResult], None]


class _Call:
    __slots__ = ("session_id", "started_at", "submitted_at", "abandoned")

    def __init__(self, session_id: Optional[str], started_at: float, submitted_at: float) -> None:
        self.session_id = session_id
        self.started_at = started_at
        self.submitted_at = submitted_at
        self.abandoned = False


class ClassificationDispatcher:
    """
    Rate-limited, single-flight bridge from the window to a sequence classifier.

    maybe_dispatch() is called by the frame producer on every valid frame and never
    blocks on the classifier: the call runs on a bounded worker pool and its result
    is handed to on_result(session_id, result) from the worker thread. Failures and
    timeouts are logged and swallowed, leaving the previous result in place.

    Abandoned calls keep their worker until they return. While max_workers calls
    are still running, ticks are skipped so nothing queues behind a hung classifier.
    """

    def __init__(
        self,
        classifier,
        on_result: ResultCallback,
        *,
        interval: float = 0.3,
        timeout: float = 2.0,
        executor: Optional[Executor] = None,
        max_workers: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._classifier = classifier
        self._on_result = on_result
        self.interval = float(interval)
        self.timeout = float(timeout)
        self.max_workers = max(1, int(max_workers))
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor if executor is not None else ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="classifier"
        )
        self._lock = threading.Lock()
        self._last_dispatch: Optional[float] = None
        self._inflight: Optional[_Call] = None
        self._running = 0
        self._closed = False

        self.dispatched = 0
        self.failures = 0
        self.skipped_busy = 0

    @property
    def last_dispatch_time(self) -> Optional[float]:
        return self._last_dispatch

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None

    @property
    def running(self) -> int:
        """Submitted calls that have not returned yet, abandoned ones included."""
        return self._running

    def maybe_dispatch(
        self, window: WindowBuffer, now: float, session_id: Optional[str] = None
    ) -> Optional[Future]:
        """Issue a classification of the current window if the gate allows it."""
        if self._closed or self._classifier is None or not window.is_full():
            return None

        with self._lock:
            if self._last_dispatch is not None and now - self._last_dispatch < self.interval:
                return None
            pending = self._inflight
            if pending is not None:
                if now - pending.started_at < self.timeout:
                    # skip this tick, never queue behind a slow call
                    self.skipped_busy += 1
                    return None
                pending.abandoned = True
                self._inflight = None
                self.failures += 1
                logger.warning(
                    "classification exceeded %.0f ms; abandoning it", self.timeout * 1000.0
                )
            if self._running >= self.max_workers:
                self.skipped_busy += 1
                logger.debug("all %d classifier workers busy; skipping tick", self.max_workers)
                return None
            self._last_dispatch = now
            call = _Call(session_id, started_at=now, submitted_at=self._clock())
            self._inflight = call
            self._running += 1
            snapshot = window.snapshot()

        try:
            future = self._executor.submit(self._classifier.classify, snapshot)
        except RuntimeError as exc:
            # executor already shut down
            with self._lock:
                self._running -= 1
                if self._inflight is call:
                    self._inflight = None
            logger.warning("could not submit classification: %s", exc)
            return None

        with self._lock:
            self.dispatched += 1
        future.add_done_callback(lambda f, c=call: self._on_done(c, f))
        return future

    def _fail(self, message: str, *args) -> None:
        with self._lock:
            self.failures += 1
        logger.warning(message, *args)

    def _on_done(self, call: _Call, future: Future) -> None:
        with self._lock:
            self._running -= 1
            if self._inflight is call:
                self._inflight = None

        if future.cancelled() or call.abandoned:
            logger.debug("dropping result of abandoned classification")
            return

        exc = future.exception()
        if exc is not None:
            self._fail("classification failed: %s", exc)
            return

        elapsed = self._clock() - call.submitted_at
        if elapsed > self.timeout:
            self._fail("classification took %.0f ms; discarding late result", elapsed * 1000.0)
            return

        result = future.result()
        if not isinstance(result, ClassificationResult):
            self._fail("classifier returned %r instead of a ClassificationResult", type(result).__name__)
            return

        try:
            self._on_result(call.session_id, result)
        except Exception:
            logger.exception("failed to apply classification result")

    def reset(self) -> None:
        """Forget the rate-limit clock and abandon any in-flight call."""
        with self._lock:
            self._last_dispatch = None
            if self._inflight is not None:
                self._inflight.abandoned = True
                self._inflight = None

    def close(self) -> None:
        """Stop dispatching. Running calls finish on their own; their results are dropped."""
        self._closed = True
        self.reset()
        if self._owns_executor:
            self._executor.shutdown(wait=False)
