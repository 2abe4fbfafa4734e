"""Dataset assembly: samples, frames, sources and splitting."""

from imgcls.data.contracts import Prediction, Sample
from imgcls.data.frame import Frame
from imgcls.data.sources import LabeledSampleSource, enumerate_unlabeled
from imgcls.data.splitter import Split, split_dataset, split_frame

__all__ = [
    "Frame",
    "LabeledSampleSource",
    "Prediction",
    "Sample",
    "Split",
    "enumerate_unlabeled",
    "split_dataset",
    "split_frame",
]
