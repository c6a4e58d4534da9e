from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _get_env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return default


def _get_env_str(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


@dataclass(frozen=True)
class PipelineConfig:
    """
    Tuning knobs of the live pipeline. Times are seconds.

    window_size and dispatch_interval match what the sequence model was trained
    and deployed with (45 frames, 300 ms); change them together with the model.
    """
    window_size: int = 45
    dispatch_interval: float = 0.3
    classification_timeout: float = 2.0
    classifier_workers: int = 2
    frame_queue_size: int = 64
    thresholds_file: Optional[str] = None
    model_path: Optional[str] = None
    model_config_path: Optional[str] = None
    classifier_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.window_size < 1:
            raise ValueError("window_size must be >= 1")
        if self.dispatch_interval < 0:
            raise ValueError("dispatch_interval must be >= 0")
        if self.classification_timeout <= 0:
            raise ValueError("classification_timeout must be > 0")
        if self.classifier_workers < 1:
            raise ValueError("classifier_workers must be >= 1")
        if self.frame_queue_size < 1:
            raise ValueError("frame_queue_size must be >= 1")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            window_size=_get_env_int("STATHIS_WINDOW_SIZE", 45),
            dispatch_interval=_get_env_float("STATHIS_DISPATCH_INTERVAL_MS", 300.0) / 1000.0,
            classification_timeout=_get_env_float("STATHIS_CLASSIFY_TIMEOUT_MS", 2000.0) / 1000.0,
            classifier_workers=_get_env_int("STATHIS_CLASSIFIER_WORKERS", 2),
            frame_queue_size=_get_env_int("STATHIS_FRAME_QUEUE_SIZE", 64),
            thresholds_file=_get_env_str("STATHIS_THRESHOLDS_FILE"),
            model_path=_get_env_str("STATHIS_MODEL_PATH"),
            model_config_path=_get_env_str("STATHIS_MODEL_CONFIG"),
            classifier_url=_get_env_str("STATHIS_CLASSIFIER_URL"),
        )
