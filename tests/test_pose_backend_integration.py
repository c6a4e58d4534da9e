from __future__ import annotations

import time
from pathlib import Path

import pytest


mp = pytest.importorskip("mediapipe", reason="mediapipe not installed; integration test skipped")
cv2 = pytest.importorskip("cv2", reason="opencv-python not installed; integration test skipped")


@pytest.mark.integration
@pytest.mark.slow
def test_pose_backend_feeds_pipeline_on_demo_video():
    from analysis.pipeline import ExercisePipeline
    from pose.backend import PoseBackend

    # Prefer tests/input.mp4 if present, else fallback to demo/input.mp4
    root = Path(__file__).resolve().parents[1]
    candidate_tests = root / "tests" / "input.mp4"
    candidate_demo = root / "demo" / "input.mp4"
    video_path = candidate_tests if candidate_tests.exists() else candidate_demo
    if not video_path.exists():
        pytest.skip(f"no input.mp4 found at {candidate_tests} or {candidate_demo}")

    cap = cv2.VideoCapture(str(video_path))
    assert cap.isOpened(), "Failed to open demo video"

    processed = 0
    frames_with_pose = 0
    first_pose = None

    t0 = time.time()
    with PoseBackend() as backend, ExercisePipeline("squat") as pipeline:
        for _ in range(10):
            ret, frame = cap.read()
            if not ret:
                break
            pose = backend.infer(frame)
            processed += 1
            if pose is not None:
                frames_with_pose += 1
                first_pose = first_pose or pose
                pipeline.process_frame(pose.landmarks, pose.timestamp)
    t1 = time.time()
    cap.release()

    assert processed > 0, "No frames processed from demo video"
    assert frames_with_pose >= 1, "No pose detected in the first few frames"

    for lm in first_pose.landmarks[:5]:
        assert 0.0 <= lm.x <= 1.0
        assert 0.0 <= lm.y <= 1.0
        assert 0.0 <= lm.visibility <= 1.0

    assert pipeline.current_snapshot().frame_index >= 0 or pipeline.dropped_frames > 0

    # Basic performance sanity (should be positive FPS)
    elapsed = max(1e-6, t1 - t0)
    fps = processed / elapsed
    assert fps > 0
