from pathlib import Path

import pytest

from conftest import write_config
from imgcls.backends.registry import create_backend
from imgcls.config.loader import load_experiment_config
from imgcls.core.exceptions import ConfigurationError, DatasetContractError
from imgcls.data.contracts import Sample
from imgcls.data.sources import LabeledSampleSource
from imgcls.estimators import frozen_graph
from imgcls.training.trainer import Trainer, validate_labels


def _trainer(tmp_path: Path, assets: Path) -> tuple[Trainer, Path]:
    cfg = load_experiment_config(write_config(tmp_path, assets, "pretrained_graph"))
    return Trainer(create_backend(cfg)), cfg.data.train_dir


def test_validate_labels_requires_two_classes() -> None:
    samples = [Sample("a", "x", Path("a.png")), Sample("b", "x", Path("b.png"))]
    with pytest.raises(ConfigurationError, match="two distinct labels"):
        _ = validate_labels(samples)


def test_validate_labels_rejects_missing_labels_and_empty_sets() -> None:
    with pytest.raises(ConfigurationError, match="without a label"):
        _ = validate_labels([Sample("a", None, Path("a.png"))])
    with pytest.raises(ConfigurationError, match="empty"):
        _ = validate_labels([])


def test_trainer_rejects_payload_kind_mismatch(tmp_path, assets_dir) -> None:
    trainer, train_dir = _trainer(tmp_path, assets_dir)
    samples = LabeledSampleSource(train_dir, payload_kind="bytes").samples()
    with pytest.raises(DatasetContractError, match="expects 'path' payloads"):
        _ = trainer.fit(samples)


def test_trainer_logs_pipeline_and_schemas(tmp_path, assets_dir, caplog) -> None:
    trainer, train_dir = _trainer(tmp_path, assets_dir)
    samples = LabeledSampleSource(train_dir).samples()

    with caplog.at_level("INFO"):
        model = trainer.fit(samples)

    assert model.class_labels == ("blue", "red")
    assert "pipeline=load_images -> resize_images" in caplog.text
    assert "training_input_schema identifier=string label=string" in caplog.text
    assert "training_output_schema" in caplog.text


def test_trainer_reads_frozen_graph_once_per_fit(
    tmp_path, assets_dir, monkeypatch
) -> None:
    loads = []
    original = frozen_graph._load_graph

    def _counting_load(graph_bytes: bytes):
        loads.append(len(graph_bytes))
        return original(graph_bytes)

    monkeypatch.setattr(frozen_graph, "_load_graph", _counting_load)
    trainer, train_dir = _trainer(tmp_path, assets_dir)
    _ = trainer.fit(LabeledSampleSource(train_dir).samples())

    assert len(loads) == 1
