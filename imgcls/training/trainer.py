"""Dataset validation and backend delegation for one training run."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from imgcls.backends.base import BackendStrategy
from imgcls.core.exceptions import ConfigurationError, DatasetContractError
from imgcls.data.contracts import Sample
from imgcls.data.frame import Frame
from imgcls.estimators.base import TrainedModel, stage_names

LOGGER = logging.getLogger(__name__)


def validate_labels(samples: Sequence[Sample]) -> tuple[str, ...]:
    """Return the sorted distinct labels, rejecting unusable training sets."""
    if not samples:
        raise ConfigurationError("Training dataset is empty.")
    unlabeled = [sample.identifier for sample in samples if sample.label is None]
    if unlabeled:
        raise ConfigurationError(
            f"Training samples without a label: {', '.join(unlabeled[:5])}"
        )
    labels = tuple(sorted({str(sample.label) for sample in samples}))
    if len(labels) < 2:
        raise ConfigurationError(
            f"Training requires at least two distinct labels, found {list(labels)}."
        )
    return labels


class Trainer:
    """Turn a labeled dataset into a `TrainedModel` with one backend."""

    def __init__(self, backend: BackendStrategy) -> None:
        self.backend = backend

    def fit(self, samples: Sequence[Sample]) -> TrainedModel:
        labels = validate_labels(samples)
        mismatched = {
            sample.payload_kind
            for sample in samples
            if sample.payload_kind != self.backend.payload_kind
        }
        if mismatched:
            raise DatasetContractError(
                f"Backend '{self.backend.name}' expects '{self.backend.payload_kind}' "
                f"payloads, got {sorted(mismatched)}."
            )
        frame = Frame.from_samples(samples)
        LOGGER.info(
            "training_start backend=%s rows=%d classes=%s pipeline=%s",
            self.backend.name,
            len(frame),
            ",".join(labels),
            stage_names(self.backend.build_pipeline().stages),
        )
        model = self.backend.fit(frame)
        LOGGER.info("training_input_schema %s", _format_schema(model.input_schema))
        LOGGER.info("training_output_schema %s", _format_schema(model.output_schema))
        return model


def _format_schema(schema: Mapping[str, str]) -> str:
    return " ".join(f"{name}={kind}" for name, kind in schema.items())
