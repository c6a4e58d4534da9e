#!/usr/bin/env python3
"""Webcam demo: count reps live and show the latest classifier output."""
from __future__ import annotations

import argparse
import logging
import time

from analysis.classifier import build_classifier
from analysis.config import PipelineConfig
from analysis.form_rules import FORM_ISSUE_MESSAGES
from analysis.pipeline import ExercisePipeline, FrameQueueRunner
from pose.backend import PoseBackend
from pose.draw import draw_feedback, draw_landmarks


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--exercise", default="squat", help="exercise type from the thresholds table")
    parser.add_argument("--camera", type=int, default=0, help="OpenCV camera index")
    parser.add_argument("--video", default=None, help="read frames from a video file instead of a camera")
    parser.add_argument("--model-complexity", type=int, default=1, choices=(0, 1, 2))
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        import cv2  # type: ignore
    except Exception as exc:
        raise SystemExit("OpenCV (cv2) is required for the demo. Install with `pip install opencv-python`") from exc

    config = PipelineConfig.from_env()
    pipeline = ExercisePipeline(args.exercise, classifier=build_classifier(config), config=config)
    runner = FrameQueueRunner(pipeline)
    runner.start()

    cap = cv2.VideoCapture(args.video if args.video else args.camera)
    if not cap.isOpened():
        print("Failed to open video source")
        return 1

    try:
        with PoseBackend(model_complexity=args.model_complexity) as backend:
            while True:
                ok, frame = cap.read()
                if not ok:
                    break
                pose = backend.infer(frame, timestamp=time.monotonic())
                if pose is not None:
                    runner.submit(pose.landmarks, pose.timestamp)
                    draw_landmarks(frame, pose.landmarks)

                snap = pipeline.current_snapshot()
                messages = [FORM_ISSUE_MESSAGES[i] for i in snap.form_issues if i in FORM_ISSUE_MESSAGES]
                if snap.classification is not None:
                    messages.extend(snap.classification.messages)
                draw_feedback(frame, snap, messages=messages)

                cv2.imshow("stathis", frame)
                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    break
                if key == ord("r"):
                    # reset happens on the consumer side of the queue
                    runner.stop()
                    pipeline.reset()
                    runner.start()
    finally:
        cap.release()
        cv2.destroyAllWindows()
        runner.stop()
        summary = pipeline.close()

    print(f"{summary.exercise}: {summary.rep_count} reps in {summary.duration_s:.1f}s")
    if summary.issues_detected:
        print("issues: " + ", ".join(summary.issues_detected))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
