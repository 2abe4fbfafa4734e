"""Pipeline stages: image transforms, key mapping and trainers."""

from imgcls.estimators.base import (
    EstimatorChain,
    FittedStage,
    PipelineStage,
    StatelessStage,
    TrainedModel,
)
from imgcls.estimators.conversion import MapKeyToValue, MapValueToKey
from imgcls.estimators.frozen_graph import ScoreFrozenGraph
from imgcls.estimators.image import ExtractPixels, LoadImages, ResizeImages
from imgcls.estimators.image_classification import (
    ImageClassificationOptions,
    ImageClassificationTrainer,
)
from imgcls.estimators.maximum_entropy import MaximumEntropyTrainer
from imgcls.estimators.metrics import MetricsCallback, MetricsRecord

__all__ = [
    "EstimatorChain",
    "ExtractPixels",
    "FittedStage",
    "ImageClassificationOptions",
    "ImageClassificationTrainer",
    "LoadImages",
    "MapKeyToValue",
    "MapValueToKey",
    "MaximumEntropyTrainer",
    "MetricsCallback",
    "MetricsRecord",
    "PipelineStage",
    "ResizeImages",
    "ScoreFrozenGraph",
    "StatelessStage",
    "TrainedModel",
]
