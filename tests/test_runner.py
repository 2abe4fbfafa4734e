import csv
import json
from pathlib import Path

import pytest

from conftest import END_TO_END_SMALL, write_config
from imgcls.core.exceptions import CheckpointError, ImageDecodeError
from imgcls.pipeline.runner import (
    run_classify,
    run_infer,
    run_train,
    run_validate_config,
)


def _predictions(tmp_path: Path) -> list[dict[str, str]]:
    with (tmp_path / "reports" / "predictions.csv").open(encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


def test_validate_config_does_not_use_print(monkeypatch) -> None:
    def _forbidden_print(*args, **kwargs):
        _ = args, kwargs
        raise AssertionError("print must not be called")

    monkeypatch.setattr("builtins.print", _forbidden_print)
    assert run_validate_config("configs/pretrained_graph.yaml") == 0


def test_run_classifies_test_folder_and_caches_model(
    tmp_path: Path, assets_dir: Path, monkeypatch
) -> None:
    cfg = write_config(tmp_path, assets_dir, "pretrained_graph")
    assert run_classify(str(cfg)) == 0

    rows = _predictions(tmp_path)
    assert [row["file"] for row in rows] == ["a_red.png", "b_blue.png"]
    assert [row["predicted_label"] for row in rows] == ["red", "blue"]
    assert all(0.5 <= float(row["score"]) <= 1.0 for row in rows)
    assert (assets_dir / "model.pt").is_file()

    def _no_training(*args, **kwargs):
        raise AssertionError("cache hit must not enumerate or train")

    monkeypatch.setattr("imgcls.pipeline.runner._train_fn", _no_training)
    assert run_classify(str(cfg)) == 0
    assert [row["predicted_label"] for row in _predictions(tmp_path)] == ["red", "blue"]


def test_no_cache_override_retrains_without_writing(tmp_path, assets_dir) -> None:
    cfg = write_config(tmp_path, assets_dir, "pretrained_graph")
    assert run_train(str(cfg), use_cache=False) == 0
    assert not (assets_dir / "model.pt").exists()


def test_infer_requires_trained_model(tmp_path, assets_dir) -> None:
    cfg = write_config(tmp_path, assets_dir, "pretrained_graph")
    with pytest.raises(CheckpointError, match="run 'train' first"):
        _ = run_infer(str(cfg))

    assert run_train(str(cfg)) == 0
    assert run_infer(str(cfg)) == 0
    assert len(_predictions(tmp_path)) == 2


def test_corrupt_test_image_is_skipped(tmp_path, assets_dir, caplog) -> None:
    (assets_dir / "test-images" / "c_broken.png").write_bytes(b"not a png")
    cfg = write_config(tmp_path, assets_dir, "pretrained_graph")

    with caplog.at_level("WARNING"):
        assert run_classify(str(cfg)) == 0

    assert [row["file"] for row in _predictions(tmp_path)] == ["a_red.png", "b_blue.png"]
    assert "prediction_skipped identifier=c_broken.png" in caplog.text


def test_corrupt_test_image_aborts_under_abort_policy(tmp_path, assets_dir) -> None:
    (assets_dir / "test-images" / "c_broken.png").write_bytes(b"not a png")
    cfg = write_config(tmp_path, assets_dir, "pretrained_graph")
    text = cfg.read_text(encoding="utf-8").replace(
        "data:\n", "data:\n  on_decode_error: abort\n"
    )
    cfg.write_text(text, encoding="utf-8")

    with pytest.raises(ImageDecodeError, match="c_broken.png"):
        _ = run_classify(str(cfg))


def test_end_to_end_run_reports_epoch_metrics(
    tmp_path, assets_dir, counting_backbone, caplog
) -> None:
    cfg = write_config(tmp_path, assets_dir, "end_to_end", END_TO_END_SMALL)

    with caplog.at_level("INFO"):
        assert run_classify(str(cfg)) == 0

    with (tmp_path / "reports" / "metrics.csv").open(encoding="utf-8") as handle:
        metrics = list(csv.DictReader(handle))
    assert {(row["split"], row["epoch"]) for row in metrics} >= {
        ("train", "1"),
        ("validation", "4"),
    }
    assert "bottleneck_pass dataset=train epoch=2 computed=0 reused=9" in caplog.text
    assert len(_predictions(tmp_path)) == 2

    events = []
    for record in caplog.records:
        try:
            events.append(json.loads(record.getMessage()))
        except ValueError:
            continue
    assert [e["file"] for e in events if e.get("event") == "prediction"] == [
        "a_red.png",
        "b_blue.png",
    ]


@pytest.mark.parametrize(
    ("backend", "extra"),
    [("pretrained_graph", ""), ("end_to_end", END_TO_END_SMALL)],
)
def test_seeded_retraining_writes_identical_artifact(
    tmp_path, assets_dir, counting_backbone, backend, extra
) -> None:
    cfg = write_config(tmp_path, assets_dir, backend, extra)
    artifact = assets_dir / "model.pt"

    assert run_train(str(cfg)) == 0
    first = artifact.read_bytes()
    artifact.unlink()

    assert run_train(str(cfg)) == 0
    assert artifact.read_bytes() == first
