from pathlib import Path

import pytest

from conftest import BLUE, RED, write_config, write_image
from imgcls.backends.registry import create_backend
from imgcls.config.loader import load_experiment_config
from imgcls.core.exceptions import ImageDecodeError
from imgcls.data.contracts import Sample
from imgcls.data.sources import LabeledSampleSource
from imgcls.inference.engine import PredictionEngine
from imgcls.training.trainer import Trainer


@pytest.fixture
def engine(tmp_path: Path, assets_dir: Path) -> PredictionEngine:
    cfg = load_experiment_config(write_config(tmp_path, assets_dir, "pretrained_graph"))
    samples = LabeledSampleSource(cfg.data.train_dir).samples()
    return PredictionEngine(Trainer(create_backend(cfg)).fit(samples))


def test_predict_returns_scores_in_class_order(engine, tmp_path: Path) -> None:
    red = Sample("red.png", None, write_image(tmp_path / "red.png", RED))
    blue = Sample("blue.png", "blue", write_image(tmp_path / "blue.png", BLUE))

    red_prediction = engine.predict(red)
    blue_prediction = engine.predict(blue)

    assert engine.class_labels == ("blue", "red")
    assert red_prediction.predicted_label == "red"
    assert red_prediction.label is None
    assert len(red_prediction.scores) == 2
    assert red_prediction.top_score == red_prediction.scores[1]
    assert blue_prediction.predicted_label == "blue"
    assert blue_prediction.label == "blue"


def test_predict_is_repeatable(engine, tmp_path: Path) -> None:
    sample = Sample("red.png", None, write_image(tmp_path / "red.png", RED))
    assert engine.predict(sample) == engine.predict(sample)


def test_dropped_row_raises_decode_error(engine, tmp_path: Path) -> None:
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"nope")
    with pytest.raises(ImageDecodeError) as excinfo:
        _ = engine.predict(Sample("broken.png", None, broken))
    assert excinfo.value.identifier == "broken.png"


def test_predict_many_preserves_order(engine, tmp_path: Path) -> None:
    samples = [
        Sample("1.png", None, write_image(tmp_path / "1.png", BLUE)),
        Sample("2.png", None, write_image(tmp_path / "2.png", RED)),
    ]
    labels = [p.predicted_label for p in engine.predict_many(samples)]
    assert labels == ["blue", "red"]
