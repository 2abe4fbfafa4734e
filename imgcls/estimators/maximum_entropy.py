"""Multinomial logistic regression (maximum entropy) trained with L-BFGS."""

from __future__ import annotations

import logging
import warnings

import numpy as np
import torch
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression

from imgcls.core.exceptions import ConfigurationError
from imgcls.data.contracts import (
    FEATURES_COLUMN,
    LABEL_KEY_COLUMN,
    PREDICTED_KEY_COLUMN,
    SCORE_COLUMN,
)
from imgcls.data.frame import Frame
from imgcls.estimators.base import FittedStage, PipelineStage, StageState

LOGGER = logging.getLogger(__name__)


def _classifier(
    l2_regularization: float,
    max_iterations: int,
    tolerance: float,
) -> LogisticRegression:
    return LogisticRegression(
        C=1.0 / l2_regularization,
        solver="lbfgs",
        max_iter=max_iterations,
        tol=tolerance,
    )


def expand_scores(
    probabilities: np.ndarray,
    classes: np.ndarray,
    num_classes: int,
) -> np.ndarray:
    """Place per-class probabilities into a `num_classes` wide score matrix."""
    scores = np.zeros((probabilities.shape[0], num_classes), dtype=np.float32)
    scores[:, classes.astype(np.int64)] = probabilities
    return scores


class MaximumEntropyTrainer(PipelineStage):
    """Fit a multinomial linear classifier on (features, key) pairs."""

    def __init__(
        self,
        *,
        label_column: str = LABEL_KEY_COLUMN,
        feature_column: str = FEATURES_COLUMN,
        l2_regularization: float = 1.0,
        max_iterations: int = 1000,
        tolerance: float = 1e-7,
    ) -> None:
        self.label_column = label_column
        self.feature_column = feature_column
        self.l2_regularization = l2_regularization
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def describe(self) -> str:
        return "maximum_entropy(lbfgs)"

    def fit(self, frame: Frame) -> MaximumEntropyModel:
        num_classes = len(frame.key_values(self.label_column))
        features = np.asarray(frame.column(self.feature_column), dtype=np.float64)
        keys = np.asarray(frame.column(self.label_column), dtype=np.int64)
        if np.any(keys < 0):
            raise ConfigurationError("Training rows must all carry a known label.")
        distinct = np.unique(keys)
        if distinct.size < 2:
            raise ConfigurationError(
                "Multinomial training requires at least two distinct classes; "
                f"found {distinct.size}."
            )

        classifier = _classifier(
            self.l2_regularization, self.max_iterations, self.tolerance
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            classifier.fit(features, keys)
        for warning in caught:
            if issubclass(warning.category, ConvergenceWarning):
                LOGGER.warning(
                    "lbfgs_not_converged max_iterations=%d", self.max_iterations
                )
        LOGGER.info(
            "maximum_entropy_fitted rows=%d features=%d classes=%d iterations=%s",
            features.shape[0],
            features.shape[1],
            num_classes,
            int(np.max(classifier.n_iter_)),
        )
        return MaximumEntropyModel(
            classifier,
            num_classes=num_classes,
            feature_column=self.feature_column,
            l2_regularization=self.l2_regularization,
            max_iterations=self.max_iterations,
            tolerance=self.tolerance,
        )


class MaximumEntropyModel(FittedStage):
    """Fitted classifier producing `score` and `predicted_key` columns."""

    kind = "maximum_entropy"

    def __init__(
        self,
        classifier: LogisticRegression,
        *,
        num_classes: int,
        feature_column: str,
        l2_regularization: float,
        max_iterations: int,
        tolerance: float,
    ) -> None:
        self.classifier = classifier
        self.num_classes = num_classes
        self.feature_column = feature_column
        self.l2_regularization = l2_regularization
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def describe(self) -> str:
        return f"{self.kind}[{self.num_classes}]"

    def transform(self, frame: Frame) -> Frame:
        features = np.asarray(frame.column(self.feature_column), dtype=np.float64)
        probabilities = self.classifier.predict_proba(features)
        scores = expand_scores(probabilities, self.classifier.classes_, self.num_classes)
        # np.argmax keeps the first maximum, so ties resolve in class order.
        predicted = np.argmax(scores, axis=1).astype(np.int64)
        return frame.with_column(SCORE_COLUMN, scores).with_column(
            PREDICTED_KEY_COLUMN, predicted
        )

    def state_dict(self) -> StageState:
        return {
            "coef": torch.from_numpy(np.ascontiguousarray(self.classifier.coef_)),
            "intercept": torch.from_numpy(
                np.ascontiguousarray(self.classifier.intercept_)
            ),
            "classes": torch.from_numpy(
                np.ascontiguousarray(self.classifier.classes_, dtype=np.int64)
            ),
            "n_iter": torch.from_numpy(
                np.ascontiguousarray(self.classifier.n_iter_, dtype=np.int64)
            ),
            "num_classes": self.num_classes,
            "feature_column": self.feature_column,
            "l2_regularization": self.l2_regularization,
            "max_iterations": self.max_iterations,
            "tolerance": self.tolerance,
        }

    @classmethod
    def from_state(cls, state: StageState) -> MaximumEntropyModel:
        classifier = _classifier(
            state["l2_regularization"], state["max_iterations"], state["tolerance"]
        )
        coef = state["coef"].numpy()
        classifier.coef_ = coef
        classifier.intercept_ = state["intercept"].numpy()
        classifier.classes_ = state["classes"].numpy()
        classifier.n_iter_ = state["n_iter"].numpy()
        classifier.n_features_in_ = int(coef.shape[1])
        return cls(
            classifier,
            num_classes=state["num_classes"],
            feature_column=state["feature_column"],
            l2_regularization=state["l2_regularization"],
            max_iterations=state["max_iterations"],
            tolerance=state["tolerance"],
        )
