"""Label <-> integer key mapping stages."""

from __future__ import annotations

import numpy as np

from imgcls.core.exceptions import ConfigurationError, DatasetContractError
from imgcls.data.contracts import (
    LABEL_COLUMN,
    LABEL_KEY_COLUMN,
    PREDICTED_KEY_COLUMN,
    PREDICTED_LABEL_COLUMN,
)
from imgcls.data.frame import Frame
from imgcls.estimators.base import FittedStage, PipelineStage, StageState

MISSING_KEY = -1


class MapValueToKey(PipelineStage):
    """Learn a sorted label vocabulary and map labels to dense integer keys."""

    def __init__(
        self,
        *,
        input_column: str = LABEL_COLUMN,
        output_column: str = LABEL_KEY_COLUMN,
    ) -> None:
        self.input_column = input_column
        self.output_column = output_column

    def describe(self) -> str:
        return f"map_value_to_key({self.input_column}->{self.output_column})"

    def fit(self, frame: Frame) -> ValueToKeyMapper:
        values = frame.column(self.input_column)
        vocabulary = tuple(sorted({str(value) for value in values if value is not None}))
        if not vocabulary:
            raise ConfigurationError(
                f"Cannot build key mapping: column '{self.input_column}' "
                "holds no labels."
            )
        return ValueToKeyMapper(
            vocabulary,
            input_column=self.input_column,
            output_column=self.output_column,
        )


class ValueToKeyMapper(FittedStage):
    """Fitted label vocabulary; unknown or missing labels map to -1."""

    kind = "value_to_key"

    def __init__(
        self,
        vocabulary: tuple[str, ...],
        *,
        input_column: str,
        output_column: str,
    ) -> None:
        self.vocabulary = tuple(vocabulary)
        self.input_column = input_column
        self.output_column = output_column
        self._index = {value: key for key, value in enumerate(self.vocabulary)}

    def describe(self) -> str:
        return f"{self.kind}[{len(self.vocabulary)}]"

    def transform(self, frame: Frame) -> Frame:
        if not frame.has_column(self.input_column):
            return frame
        keys = np.asarray(
            [
                MISSING_KEY if value is None else self._index.get(str(value), MISSING_KEY)
                for value in frame.column(self.input_column)
            ],
            dtype=np.int64,
        )
        return frame.with_column(self.output_column, keys, key_values=self.vocabulary)

    def state_dict(self) -> StageState:
        return {
            "vocabulary": list(self.vocabulary),
            "input_column": self.input_column,
            "output_column": self.output_column,
        }

    @classmethod
    def from_state(cls, state: StageState) -> ValueToKeyMapper:
        return cls(
            tuple(state["vocabulary"]),
            input_column=state["input_column"],
            output_column=state["output_column"],
        )


class MapKeyToValue(PipelineStage):
    """Map predicted integer keys back to labels of a key-annotated column."""

    def __init__(
        self,
        *,
        input_column: str = PREDICTED_KEY_COLUMN,
        output_column: str = PREDICTED_LABEL_COLUMN,
        vocabulary_column: str = LABEL_KEY_COLUMN,
    ) -> None:
        self.input_column = input_column
        self.output_column = output_column
        self.vocabulary_column = vocabulary_column

    def describe(self) -> str:
        return f"map_key_to_value({self.input_column}->{self.output_column})"

    def fit(self, frame: Frame) -> KeyToValueMapper:
        return KeyToValueMapper(
            frame.key_values(self.vocabulary_column),
            input_column=self.input_column,
            output_column=self.output_column,
        )


class KeyToValueMapper(FittedStage):
    """Fitted inverse key mapping."""

    kind = "key_to_value"

    def __init__(
        self,
        vocabulary: tuple[str, ...],
        *,
        input_column: str,
        output_column: str,
    ) -> None:
        self.vocabulary = tuple(vocabulary)
        self.input_column = input_column
        self.output_column = output_column

    def describe(self) -> str:
        return f"{self.kind}[{len(self.vocabulary)}]"

    def transform(self, frame: Frame) -> Frame:
        keys = frame.column(self.input_column)
        labels: list[str] = []
        for key in keys:
            index = int(key)
            if not 0 <= index < len(self.vocabulary):
                raise DatasetContractError(
                    f"Key {index} outside vocabulary of size {len(self.vocabulary)}"
                )
            labels.append(self.vocabulary[index])
        return frame.with_column(self.output_column, labels)

    def state_dict(self) -> StageState:
        return {
            "vocabulary": list(self.vocabulary),
            "input_column": self.input_column,
            "output_column": self.output_column,
        }

    @classmethod
    def from_state(cls, state: StageState) -> KeyToValueMapper:
        return cls(
            tuple(state["vocabulary"]),
            input_column=state["input_column"],
            output_column=state["output_column"],
        )
