"""Transfer-learning classifier trained end to end on a train/validation split."""

from __future__ import annotations

import logging

from imgcls.backends.base import BackendStrategy
from imgcls.data.frame import Frame
from imgcls.data.splitter import split_frame
from imgcls.estimators.base import EstimatorChain, TrainedModel
from imgcls.estimators.conversion import MapKeyToValue, MapValueToKey
from imgcls.estimators.image_classification import (
    ImageClassificationOptions,
    ImageClassificationTrainer,
)

LOGGER = logging.getLogger(__name__)


class EndToEndBackend(BackendStrategy):
    """Key mapping on the full dataset, then a split-aware image classifier."""

    name = "end_to_end"
    payload_kind = "bytes"

    def _options(self) -> ImageClassificationOptions:
        e2e = self.cfg.end_to_end
        return ImageClassificationOptions(
            arch=e2e.arch,
            pretrained=e2e.pretrained,
            image_size=e2e.image_size,
            epochs=e2e.epochs,
            batch_size=e2e.batch_size,
            learning_rate=e2e.learning_rate,
            early_stopping_patience=e2e.early_stopping_patience,
            early_stopping_min_delta=e2e.early_stopping_min_delta,
            reuse_train_bottlenecks=e2e.reuse_train_bottlenecks,
            reuse_validation_bottlenecks=e2e.reuse_validation_bottlenecks,
            test_on_train=e2e.test_on_train,
            bottleneck_dir=e2e.bottleneck_dir,
            on_decode_error=self.cfg.data.on_decode_error,
            seed=self.cfg.system.seed,
        )

    def _training_chain(self, validation: Frame | None) -> EstimatorChain:
        return EstimatorChain(
            [
                ImageClassificationTrainer(
                    self._options(),
                    validation=validation,
                    metrics_callback=self.metrics_callback,
                    device=self.device,
                ),
                MapKeyToValue(),
            ]
        )

    def build_pipeline(self) -> EstimatorChain:
        chain = self._training_chain(validation=None)
        return EstimatorChain([MapValueToKey(), *chain.stages])

    def fit(self, frame: Frame) -> TrainedModel:
        keys = EstimatorChain([MapValueToKey()]).fit(frame)
        keyed = keys.transform(frame)
        train, validation = split_frame(
            keyed,
            self.cfg.end_to_end.validation_ratio,
            self.cfg.system.seed,
        )
        LOGGER.info(
            "dataset_split train_rows=%d validation_rows=%d ratio=%.3f",
            len(train),
            len(validation),
            self.cfg.end_to_end.validation_ratio,
        )
        trained = self._training_chain(validation).fit(train)
        return keys.then(trained)
