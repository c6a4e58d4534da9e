from __future__ import annotations

import pytest

from analysis.classifier import HttpSequenceClassifier, build_classifier
from analysis.config import PipelineConfig


def test_defaults():
    cfg = PipelineConfig()
    assert cfg.window_size == 45
    assert cfg.dispatch_interval == pytest.approx(0.3)
    assert cfg.classification_timeout == pytest.approx(2.0)
    assert cfg.model_path is None and cfg.classifier_url is None


def test_from_env_reads_overrides(monkeypatch):
    monkeypatch.setenv("STATHIS_WINDOW_SIZE", "30")
    monkeypatch.setenv("STATHIS_DISPATCH_INTERVAL_MS", "500")
    monkeypatch.setenv("STATHIS_CLASSIFY_TIMEOUT_MS", "1500")
    monkeypatch.setenv("STATHIS_CLASSIFIER_WORKERS", "3")
    monkeypatch.setenv("STATHIS_CLASSIFIER_URL", " http://model.local/api/posture/classify ")
    monkeypatch.delenv("STATHIS_MODEL_PATH", raising=False)

    cfg = PipelineConfig.from_env()

    assert cfg.window_size == 30
    assert cfg.dispatch_interval == pytest.approx(0.5)
    assert cfg.classification_timeout == pytest.approx(1.5)
    assert cfg.classifier_workers == 3
    assert cfg.classifier_url == "http://model.local/api/posture/classify"


def test_from_env_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("STATHIS_WINDOW_SIZE", "many")
    monkeypatch.setenv("STATHIS_DISPATCH_INTERVAL_MS", "")
    monkeypatch.setenv("STATHIS_THRESHOLDS_FILE", "   ")
    cfg = PipelineConfig.from_env()
    assert cfg.window_size == 45
    assert cfg.dispatch_interval == pytest.approx(0.3)
    assert cfg.thresholds_file is None


@pytest.mark.parametrize(
    "kwargs",
    [{"window_size": 0}, {"dispatch_interval": -0.1}, {"classification_timeout": 0}, {"classifier_workers": 0}],
)
def test_rejects_out_of_range_values(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(**kwargs)


def test_build_classifier_follows_config():
    assert build_classifier(PipelineConfig()) is None
    clf = build_classifier(PipelineConfig(classifier_url="http://x/classify", classification_timeout=0.5))
    assert isinstance(clf, HttpSequenceClassifier)
    assert clf.timeout == pytest.approx(0.5)
