"""Column-oriented table passed between pipeline stages."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, TypeAlias

import numpy as np
from PIL import Image

from imgcls.core.exceptions import DatasetContractError
from imgcls.data.contracts import (
    IDENTIFIER_COLUMN,
    LABEL_COLUMN,
    PAYLOAD_COLUMNS,
    Sample,
)

ColumnValues: TypeAlias = list[Any] | np.ndarray


def _describe_list(values: list[Any]) -> str:
    nullable = any(value is None for value in values)
    first = next((value for value in values if value is not None), None)
    if first is None:
        name = "unknown"
    elif isinstance(first, str):
        name = "string"
    elif isinstance(first, bytes):
        name = "bytes"
    elif isinstance(first, Path):
        name = "path"
    elif isinstance(first, Image.Image):
        name = "image"
    else:
        name = type(first).__name__
    return f"{name}?" if nullable else name


def _describe_array(values: np.ndarray) -> str:
    if values.ndim <= 1:
        return str(values.dtype)
    shape = ",".join(str(dim) for dim in values.shape[1:])
    return f"{values.dtype}[{shape}]"


class Frame:
    """Immutable table of equally sized columns plus key vocabularies.

    Columns hold either Python lists (strings, paths, bytes, decoded images) or
    numpy arrays whose first axis is the row axis. A key vocabulary annotates an
    integer column with the ordered label values its keys index into; it
    travels with the column through ``take`` and ``with_column``.
    """

    def __init__(
        self,
        columns: Mapping[str, ColumnValues],
        *,
        key_values: Mapping[str, tuple[str, ...]] | None = None,
    ) -> None:
        lengths = {name: len(values) for name, values in columns.items()}
        if len(set(lengths.values())) > 1:
            raise DatasetContractError(f"Frame column lengths differ: {lengths}")
        self._columns: dict[str, ColumnValues] = dict(columns)
        self._key_values: dict[str, tuple[str, ...]] = {
            name: tuple(values)
            for name, values in (key_values or {}).items()
            if name in self._columns
        }
        self._length = next(iter(lengths.values()), 0)

    @classmethod
    def from_samples(cls, samples: Sequence[Sample]) -> Frame:
        """Build a frame with identifier, label and payload columns."""
        if not samples:
            raise DatasetContractError("Cannot build a frame from zero samples.")
        kinds = {sample.payload_kind for sample in samples}
        if len(kinds) != 1:
            raise DatasetContractError(
                f"Samples mix payload kinds {sorted(kinds)}; expected one kind."
            )
        payload_column = PAYLOAD_COLUMNS[kinds.pop()]
        return cls(
            {
                IDENTIFIER_COLUMN: [sample.identifier for sample in samples],
                LABEL_COLUMN: [sample.label for sample in samples],
                payload_column: [sample.payload for sample in samples],
            }
        )

    def __len__(self) -> int:
        return self._length

    def __repr__(self) -> str:
        return f"Frame(rows={self._length}, schema={self.schema()})"

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self._columns)

    def has_column(self, name: str) -> bool:
        return name in self._columns

    def column(self, name: str) -> ColumnValues:
        """Return one column, failing with the available names when missing."""
        try:
            return self._columns[name]
        except KeyError as exc:
            available = ", ".join(self._columns) or "<none>"
            raise DatasetContractError(
                f"Missing column '{name}'. Available columns: {available}"
            ) from exc

    def key_values(self, name: str) -> tuple[str, ...]:
        """Return the label vocabulary attached to a key column."""
        if name not in self._key_values:
            raise DatasetContractError(
                f"Column '{name}' carries no key vocabulary."
            )
        return self._key_values[name]

    def with_column(
        self,
        name: str,
        values: ColumnValues,
        *,
        key_values: Sequence[str] | None = None,
    ) -> Frame:
        """Return a new frame with `name` added or replaced."""
        columns = dict(self._columns)
        columns[name] = values
        annotations = dict(self._key_values)
        annotations.pop(name, None)
        if key_values is not None:
            annotations[name] = tuple(key_values)
        return Frame(columns, key_values=annotations)

    def take(self, indices: Sequence[int] | np.ndarray) -> Frame:
        """Return the rows at `indices`, in that order."""
        positions = [int(index) for index in indices]
        columns: dict[str, ColumnValues] = {}
        for name, values in self._columns.items():
            if isinstance(values, np.ndarray):
                columns[name] = values[np.asarray(positions, dtype=np.int64)]
            else:
                columns[name] = [values[index] for index in positions]
        return Frame(columns, key_values=self._key_values)

    def schema(self) -> dict[str, str]:
        """Describe every column as a type string, in column order."""
        out: dict[str, str] = {}
        for name, values in self._columns.items():
            if name in self._key_values:
                out[name] = f"key[{len(self._key_values[name])}]"
            elif isinstance(values, np.ndarray):
                out[name] = _describe_array(values)
            else:
                out[name] = _describe_list(list(values))
        return out
