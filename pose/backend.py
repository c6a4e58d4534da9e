from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float
    visibility: float


@dataclass(frozen=True)
class PoseFrame:
    """One detected pose plus the metadata of the image it came from."""
    landmarks: Tuple[Landmark, ...]
    width: int
    height: int
    rotation: int = 0
    timestamp: float = 0.0


class PoseBackend:
    """
    Single-person pose source using MediaPipe BlazePose (Full/Heavy).

    - Keeps the model warm-loaded after construction
    - Accepts BGR frames (as from OpenCV)
    - Returns normalized x/y in [0, 1], z relative to the hips, visibility in [0, 1]
    - Returns None when no pose is detected, so callers never see partial frames
    """

    NUM_LANDMARKS = 33

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        pose_model: Optional[object] = None,
        smooth_landmarks: bool = True,
    ) -> None:
        """
        If pose_model is provided, it must expose a .process(np.ndarray[R,G,B]) -> result
        where result.pose_landmarks is either None or an object with .landmark list
        of 33 items, each having attributes .x, .y, .z and .visibility.
        """
        self._external_model = pose_model is not None
        self._closed = False
        if pose_model is not None:
            self._pose = pose_model
        else:
            try:
                import mediapipe as mp  # type: ignore
            except Exception as exc:  # pragma: no cover - exercised only when mediapipe missing
                raise ImportError(
                    "mediapipe is required for PoseBackend. Install with `pip install mediapipe`"
                ) from exc

            self._pose = mp.solutions.pose.Pose(
                model_complexity=model_complexity,
                enable_segmentation=False,
                smooth_landmarks=smooth_landmarks,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )

    def close(self) -> None:
        """Release the native graph held by MediaPipe."""
        if self._closed:
            return
        self._closed = True
        if self._external_model:
            return
        close_fn = getattr(self._pose, "close", None)
        if callable(close_fn):
            try:
                close_fn()
            except Exception as exc:  # pragma: no cover - depends on mediapipe internals
                logger.warning("failed to close pose model: %s", exc)

    def __enter__(self) -> "PoseBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def infer(
        self,
        frame_bgr: np.ndarray,
        *,
        timestamp: Optional[float] = None,
        rotation: int = 0,
    ) -> Optional[PoseFrame]:
        """Run single-person pose detection on a BGR image frame."""
        if self._closed:
            raise RuntimeError("PoseBackend is closed")
        if not isinstance(frame_bgr, np.ndarray) or frame_bgr.ndim < 2:
            raise ValueError("frame_bgr must be an HxWxC numpy array")

        # Convert BGR (OpenCV) -> RGB without requiring cv2
        if frame_bgr.ndim == 3 and frame_bgr.shape[2] >= 3:
            frame_rgb = frame_bgr[..., ::-1]
        else:
            frame_rgb = frame_bgr

        result = self._pose.process(frame_rgb)
        if result is None or getattr(result, "pose_landmarks", None) is None:
            return None

        raw = getattr(result.pose_landmarks, "landmark", None)
        if raw is None or len(raw) != self.NUM_LANDMARKS:
            return None

        landmarks = []
        for lm in raw:
            x = float(getattr(lm, "x", np.nan))
            y = float(getattr(lm, "y", np.nan))
            z = float(getattr(lm, "z", 0.0))
            vis = float(getattr(lm, "visibility", 0.0))
            # Clamp to [0,1]; NaN stays NaN so the normalizer rejects the frame
            x = x if np.isnan(x) else max(0.0, min(1.0, x))
            y = y if np.isnan(y) else max(0.0, min(1.0, y))
            vis = 0.0 if np.isnan(vis) else max(0.0, min(1.0, vis))
            landmarks.append(Landmark(x=x, y=y, z=z, visibility=vis))

        height, width = frame_bgr.shape[:2]
        return PoseFrame(
            landmarks=tuple(landmarks),
            width=int(width),
            height=int(height),
            rotation=int(rotation),
            timestamp=time.monotonic() if timestamp is None else float(timestamp),
        )
