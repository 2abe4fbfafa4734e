import numpy as np
import pytest

from imgcls.core.exceptions import ConfigurationError
from imgcls.data.frame import Frame
from imgcls.estimators.maximum_entropy import (
    MaximumEntropyModel,
    MaximumEntropyTrainer,
    expand_scores,
)


def _frame(keys: list[int], vocabulary: tuple[str, ...]) -> Frame:
    rng = np.random.default_rng(0)
    centers = np.eye(3, dtype=np.float64) * 5.0
    features = np.stack([centers[key] + rng.normal(0, 0.1, 3) for key in keys])
    return Frame(
        {
            "features": features.astype(np.float32),
            "label_key": np.asarray(keys, dtype=np.int64),
        },
        key_values={"label_key": vocabulary},
    )


def test_trainer_separates_classes_and_scores_are_probabilities() -> None:
    frame = _frame([0, 1, 2] * 5, ("a", "b", "c"))
    model = MaximumEntropyTrainer().fit(frame)
    out = model.transform(frame)

    scores = out.column("score")
    assert scores.shape == (15, 3)
    np.testing.assert_allclose(scores.sum(axis=1), 1.0, rtol=1e-5)
    assert out.column("predicted_key").tolist() == [0, 1, 2] * 5


def test_classes_missing_from_fit_data_score_zero() -> None:
    frame = _frame([0, 2, 0, 2, 0, 2], ("a", "b", "c"))
    out = MaximumEntropyTrainer().fit(frame).transform(frame)
    assert out.column("score").shape == (6, 3)
    assert np.all(out.column("score")[:, 1] == 0.0)


def test_expand_scores_ties_keep_first_class() -> None:
    scores = expand_scores(np.asarray([[0.5, 0.5]]), np.asarray([0, 2]), 3)
    assert scores.tolist() == [[0.5, 0.0, 0.5]]
    assert int(np.argmax(scores, axis=1)[0]) == 0


def test_single_class_training_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="two distinct classes"):
        _ = MaximumEntropyTrainer().fit(_frame([1, 1, 1], ("a", "b")))


def test_unknown_training_keys_are_rejected() -> None:
    frame = _frame([0, 1], ("a", "b")).with_column(
        "label_key", np.asarray([0, -1], dtype=np.int64), key_values=("a", "b")
    )
    with pytest.raises(ConfigurationError, match="known label"):
        _ = MaximumEntropyTrainer().fit(frame)


def test_state_roundtrip_preserves_predictions() -> None:
    frame = _frame([0, 1, 2] * 3, ("a", "b", "c"))
    model = MaximumEntropyTrainer(l2_regularization=0.5).fit(frame)
    rebuilt = MaximumEntropyModel.from_state(model.state_dict())
    np.testing.assert_allclose(
        rebuilt.transform(frame).column("score"),
        model.transform(frame).column("score"),
        rtol=1e-6,
    )
