from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import requests

from . import posture_rules
from .normalize import VECTOR_SIZE, as_landmark_matrix


logger = logging.getLogger(__name__)

REST_CLASS = "rest"
DEFAULT_SEQUENCE_LENGTH = 45


class ClassificationError(RuntimeError):
    """The classifier failed or returned something unusable."""


@dataclass(frozen=True)
class ClassificationResult:
    predicted_class: str
    score: float
    probabilities: Tuple[float, ...]
    class_names: Tuple[str, ...]
    form_confidence: Optional[float] = None
    flags: Tuple[str, ...] = field(default_factory=tuple)
    messages: Tuple[str, ...] = field(default_factory=tuple)

    def to_payload(self) -> Dict[str, Any]:
        """Wire form, camelCase like the mobile client expects."""
        return {
            "predictedClass": self.predicted_class,
            "score": self.score,
            "probabilities": list(self.probabilities),
            "classNames": list(self.class_names),
            "formConfidence": self.form_confidence,
            "flags": list(self.flags),
            "messages": list(self.messages),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClassificationResult":
        if not isinstance(payload, Mapping):
            raise ClassificationError("classification payload must be an object")
        try:
            predicted = payload["predictedClass"]
            score = float(payload["score"])
            probabilities = tuple(float(p) for p in payload.get("probabilities") or ())
            class_names = tuple(str(c) for c in payload.get("classNames") or ())
            form = payload.get("formConfidence")
            form_confidence = None if form is None else float(form)
            flags = tuple(str(f) for f in payload.get("flags") or ())
            messages = tuple(str(m) for m in payload.get("messages") or ())
        except (KeyError, TypeError, ValueError) as exc:
            raise ClassificationError(f"malformed classification payload: {exc}") from exc
        if not isinstance(predicted, str) or not predicted:
            raise ClassificationError("predictedClass must be a non-empty string")
        if not np.isfinite(score):
            raise ClassificationError("score must be finite")
        if class_names and len(class_names) != len(probabilities):
            raise ClassificationError("probabilities and classNames differ in length")
        return cls(
            predicted_class=predicted,
            score=score,
            probabilities=probabilities,
            class_names=class_names,
            form_confidence=form_confidence,
            flags=flags,
            messages=messages,
        )


@dataclass(frozen=True)
class ModelConfig:
    sequence_length: int = DEFAULT_SEQUENCE_LENGTH
    class_names: Tuple[str, ...] = ()


def load_model_config(path: Union[str, Path]) -> ModelConfig:
    """
    Read model_config.json. Supports the current layout
    ({"model": {"sequence_length": 45}, "classes": {"pose_classes": [...]}})
    and the legacy one ({"time_steps": 30, "class_names": [...]}).
    """
    cfg = json.loads(Path(path).read_text(encoding="utf-8"))
    model = cfg.get("model") or {}
    if "sequence_length" in model:
        sequence_length = int(model["sequence_length"])
    elif "time_steps" in cfg:
        sequence_length = int(cfg["time_steps"])
    else:
        sequence_length = DEFAULT_SEQUENCE_LENGTH

    classes = cfg.get("classes") or {}
    if "pose_classes" in classes:
        names = classes["pose_classes"]
    else:
        names = cfg.get("class_names") or []
    return ModelConfig(sequence_length=sequence_length, class_names=tuple(str(n) for n in names))


def softmax(logits: Sequence[float]) -> np.ndarray:
    z = np.asarray(logits, dtype=np.float64)
    z = z - np.max(z)
    e = np.exp(z)
    return e / np.sum(e)


def build_result(
    logits: Sequence[float],
    class_names: Sequence[str],
    form_score: Optional[float] = None,
) -> ClassificationResult:
    """Turn raw logits (and an optional form score) into a ClassificationResult."""
    if len(logits) == 0:
        raise ClassificationError("empty logits")
    probs = softmax(logits)
    best = int(np.argmax(probs))
    predicted = class_names[best] if best < len(class_names) else "unknown"
    form_confidence = None
    if form_score is not None and predicted.lower() != REST_CLASS:
        form_confidence = float(form_score)
    return ClassificationResult(
        predicted_class=predicted,
        score=float(probs[best]),
        probabilities=tuple(float(p) for p in probs),
        class_names=tuple(class_names),
        form_confidence=form_confidence,
    )


def with_rules(result: ClassificationResult, window: np.ndarray) -> ClassificationResult:
    """Attach posture-rule flags/messages evaluated on the window's last frame."""
    flags, messages = posture_rules.evaluate(result.predicted_class, as_landmark_matrix(window[-1]))
    return ClassificationResult(
        predicted_class=result.predicted_class,
        score=result.score,
        probabilities=result.probabilities,
        class_names=result.class_names,
        form_confidence=result.form_confidence,
        flags=tuple(flags),
        messages=tuple(messages),
    )


def _check_window(window: np.ndarray, sequence_length: int) -> np.ndarray:
    arr = np.asarray(window, dtype=np.float32)
    if arr.ndim == 3 and arr.shape[0] == 1:
        arr = arr[0]
    if arr.shape != (sequence_length, VECTOR_SIZE):
        raise ValueError(
            f"Input window must be shaped [1,{sequence_length},{VECTOR_SIZE}], got {list(np.shape(window))}"
        )
    return arr


class OnnxSequenceClassifier:
    """
    Sequence classifier backed by an ONNX model (onnxruntime).

    The first model output is treated as class logits of shape (1, C); a second
    output, when present, is a form score of shape (1, 1).
    """

    def __init__(
        self,
        model_path: Optional[Union[str, Path]] = None,
        *,
        config: Optional[ModelConfig] = None,
        session: Optional[object] = None,
    ) -> None:
        self.config = config or ModelConfig()
        if session is not None:
            self._session = session
        else:
            if model_path is None:
                raise ValueError("either model_path or session must be provided")
            try:
                import onnxruntime  # type: ignore
            except Exception as exc:  # pragma: no cover - exercised only when onnxruntime missing
                raise ImportError(
                    "onnxruntime is required for OnnxSequenceClassifier. Install with `pip install onnxruntime`"
                ) from exc
            self._session = onnxruntime.InferenceSession(
                str(model_path), providers=["CPUExecutionProvider"]
            )
        inputs = self._session.get_inputs()
        if not inputs:
            raise ValueError("ONNX model has no inputs")
        self._input_name = inputs[0].name

    @classmethod
    def from_files(
        cls, model_path: Union[str, Path], config_path: Optional[Union[str, Path]] = None
    ) -> "OnnxSequenceClassifier":
        config = load_model_config(config_path) if config_path else ModelConfig()
        return cls(model_path, config=config)

    @property
    def sequence_length(self) -> int:
        return self.config.sequence_length

    def classify(self, window: np.ndarray) -> ClassificationResult:
        arr = _check_window(window, self.config.sequence_length)
        outputs = self._session.run(None, {self._input_name: arr[np.newaxis, ...]})
        if not outputs:
            raise ClassificationError("ONNX model returned no outputs")
        logits = np.asarray(outputs[0], dtype=np.float64).reshape(-1)

        form_score: Optional[float] = None
        if len(outputs) > 1:
            try:
                form_score = float(np.asarray(outputs[1]).reshape(-1)[0])
            except (IndexError, TypeError, ValueError) as exc:
                logger.warning("could not extract form confidence: %s", exc)

        result = build_result(logits, self.config.class_names, form_score)
        return with_rules(result, arr)


class HttpSequenceClassifier:
    """Posts the window to a remote /api/posture/classify endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 2.0,
        headers: Optional[Mapping[str, str]] = None,
        session: Optional[object] = None,
    ) -> None:
        self.url = url
        self.timeout = float(timeout)
        self.headers = dict(headers or {})
        self._http = session if session is not None else requests.Session()

    def classify(self, window: np.ndarray) -> ClassificationResult:
        payload: Dict[str, List] = {"window": [np.asarray(window, dtype=np.float32).tolist()]}
        try:
            resp = self._http.post(self.url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ClassificationError(f"classifier request failed: {exc}") from exc
        if resp.status_code // 100 != 2:
            raise ClassificationError(f"classifier returned HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise ClassificationError("classifier returned non-JSON body") from exc
        return ClassificationResult.from_payload(body)


def build_classifier(config):
    """Classifier described by a PipelineConfig: local ONNX model, remote service, or None."""
    if config.model_path:
        logger.info("loading sequence model from %s", config.model_path)
        return OnnxSequenceClassifier.from_files(config.model_path, config.model_config_path)
    if config.classifier_url:
        return HttpSequenceClassifier(config.classifier_url, timeout=config.classification_timeout)
    return None
