from pathlib import Path

from imgcls.estimators.base import TrainedModel
from imgcls.estimators.conversion import KeyToValueMapper
from imgcls.training.cache import get_or_train
from imgcls.training.checkpoints import load_model


def _model(labels: tuple[str, ...] = ("a", "b")) -> TrainedModel:
    return TrainedModel(
        stages=(
            KeyToValueMapper(
                labels,
                input_column="predicted_key",
                output_column="predicted_label",
            ),
        ),
        input_schema={"predicted_key": "int64"},
        output_schema={"predicted_label": "string"},
    )


class _CountingTrain:
    def __init__(self, labels: tuple[str, ...] = ("a", "b")) -> None:
        self.calls = 0
        self.labels = labels

    def __call__(self) -> TrainedModel:
        self.calls += 1
        return _model(self.labels)


def test_second_call_hits_cache_without_training(tmp_path: Path) -> None:
    path = tmp_path / "model.pt"
    train = _CountingTrain()

    first = get_or_train(path, train, use_cache=True)
    second = get_or_train(path, train, use_cache=True)

    assert train.calls == 1
    assert path.is_file()
    assert second.class_labels == first.class_labels == ("a", "b")


def test_disabled_cache_always_trains_and_never_writes(tmp_path: Path) -> None:
    path = tmp_path / "model.pt"
    train = _CountingTrain()

    get_or_train(path, train, use_cache=False)
    get_or_train(path, train, use_cache=False)

    assert train.calls == 2
    assert not path.exists()


def test_corrupt_artifact_triggers_retrain_and_overwrite(tmp_path: Path, caplog) -> None:
    path = tmp_path / "model.pt"
    path.write_bytes(b"garbage")
    train = _CountingTrain(("x", "y"))

    with caplog.at_level("WARNING"):
        model = get_or_train(path, train, use_cache=True)

    assert train.calls == 1
    assert "model_cache_corrupt" in caplog.text
    assert model.class_labels == ("x", "y")
    reloaded = load_model(path)
    assert reloaded is not None
    assert reloaded.class_labels == ("x", "y")
