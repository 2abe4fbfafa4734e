"""Per-sample prediction over a trained model."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

import numpy as np

from imgcls.core.exceptions import DatasetContractError, ImageDecodeError
from imgcls.data.contracts import PREDICTED_LABEL_COLUMN, SCORE_COLUMN, Prediction, Sample
from imgcls.data.frame import Frame
from imgcls.estimators.base import TrainedModel

LOGGER = logging.getLogger(__name__)


class PredictionEngine:
    """Read-only wrapper turning single samples into `Prediction` records."""

    def __init__(self, model: TrainedModel) -> None:
        self.model = model
        self.class_labels = model.class_labels

    def predict(self, sample: Sample) -> Prediction:
        output = self.model.transform(Frame.from_samples([sample]))
        if len(output) == 0:
            raise ImageDecodeError(sample.identifier, "row dropped by the pipeline")
        if not output.has_column(PREDICTED_LABEL_COLUMN):
            raise DatasetContractError(
                f"Model output lacks '{PREDICTED_LABEL_COLUMN}'; "
                f"columns: {', '.join(output.columns)}"
            )
        scores = np.asarray(output.column(SCORE_COLUMN), dtype=np.float64)[0]
        prediction = Prediction(
            identifier=sample.identifier,
            label=sample.label,
            predicted_label=str(output.column(PREDICTED_LABEL_COLUMN)[0]),
            scores=tuple(float(score) for score in scores),
        )
        LOGGER.debug(
            "prediction identifier=%s predicted_label=%s score=%.5f",
            prediction.identifier,
            prediction.predicted_label,
            prediction.top_score,
        )
        return prediction

    def predict_many(self, samples: Iterable[Sample]) -> Iterator[Prediction]:
        for sample in samples:
            yield self.predict(sample)
