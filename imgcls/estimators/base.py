"""Pipeline stage abstractions, estimator chains and trained models."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

import torch

from imgcls.data.contracts import PREDICTED_LABEL_COLUMN
from imgcls.data.frame import Frame

LOGGER = logging.getLogger(__name__)

StageState = dict[str, Any]


class FittedStage(ABC):
    """A stage ready to transform frames; persisted through `state_dict`.

    `kind` names the stage in serialized artifacts. `state_dict` may only hold
    tensors, strings, numbers, booleans, None and nested lists/dicts of those.
    """

    kind: ClassVar[str]

    @abstractmethod
    def transform(self, frame: Frame) -> Frame:
        """Return a new frame with this stage's output columns added."""

    @abstractmethod
    def state_dict(self) -> StageState:
        """Return the serializable state needed to rebuild this stage."""

    @classmethod
    @abstractmethod
    def from_state(cls, state: StageState) -> FittedStage:
        """Rebuild the stage from `state_dict()` output."""

    def describe(self) -> str:
        return self.kind


class PipelineStage(ABC):
    """A stage that must see training data before it can transform."""

    @abstractmethod
    def fit(self, frame: Frame) -> FittedStage:
        """Learn stage parameters from `frame`."""

    def describe(self) -> str:
        return type(self).__name__


class StatelessStage(PipelineStage, FittedStage):
    """Deterministic transform whose fit is the identity."""

    def fit(self, frame: Frame) -> FittedStage:
        _ = frame
        return self

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True)
class TrainedModel:
    """Ordered fitted stages plus the schemas observed while fitting."""

    stages: tuple[FittedStage, ...]
    input_schema: Mapping[str, str]
    output_schema: Mapping[str, str]

    def transform(self, frame: Frame) -> Frame:
        """Apply every stage in order; stops early once all rows are dropped."""
        current = frame
        for stage in self.stages:
            current = stage.transform(current)
            if len(current) == 0:
                break
        return current

    def then(self, other: TrainedModel) -> TrainedModel:
        """Concatenate `other` after this model."""
        return TrainedModel(
            stages=self.stages + other.stages,
            input_schema=dict(self.input_schema),
            output_schema=dict(other.output_schema),
        )

    @property
    def class_labels(self) -> tuple[str, ...]:
        """Label vocabulary used for the predicted label column."""
        for stage in reversed(self.stages):
            vocabulary = getattr(stage, "vocabulary", None)
            output_column = getattr(stage, "output_column", None)
            if vocabulary is not None and output_column == PREDICTED_LABEL_COLUMN:
                return tuple(vocabulary)
        return ()

    def describe(self) -> list[str]:
        return [stage.describe() for stage in self.stages]


class EstimatorChain:
    """Explicit, inspectable ordered list of pipeline stages."""

    def __init__(self, stages: Iterable[PipelineStage] = ()) -> None:
        self._stages: tuple[PipelineStage, ...] = tuple(stages)

    @property
    def stages(self) -> tuple[PipelineStage, ...]:
        return self._stages

    def __len__(self) -> int:
        return len(self._stages)

    def append(self, stage: PipelineStage) -> EstimatorChain:
        """Return a new chain with `stage` appended."""
        return EstimatorChain((*self._stages, stage))

    def describe(self) -> list[str]:
        return [stage.describe() for stage in self._stages]

    def fit(self, frame: Frame) -> TrainedModel:
        """Fit each stage in order on the previous stage's output."""
        input_schema = frame.schema()
        fitted: list[FittedStage] = []
        current = frame
        for index, stage in enumerate(self._stages):
            LOGGER.info(
                "stage_fit_start index=%d stage=%s rows=%d",
                index,
                stage.describe(),
                len(current),
            )
            fitted_stage = stage.fit(current)
            current = fitted_stage.transform(current)
            fitted.append(fitted_stage)
        return TrainedModel(
            stages=tuple(fitted),
            input_schema=input_schema,
            output_schema=current.schema(),
        )


def stage_names(stages: Sequence[PipelineStage | FittedStage]) -> str:
    return " -> ".join(stage.describe() for stage in stages)


def bytes_to_tensor(payload: bytes) -> torch.Tensor:
    """Pack raw bytes into a uint8 tensor so it survives weights-only loading."""
    return torch.frombuffer(bytearray(payload), dtype=torch.uint8).clone()


def tensor_to_bytes(tensor: torch.Tensor) -> bytes:
    return tensor.to(dtype=torch.uint8).contiguous().numpy().tobytes()
