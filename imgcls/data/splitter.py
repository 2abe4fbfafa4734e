"""Seeded shuffle-and-partition of labeled datasets."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import numpy as np

from imgcls.core.exceptions import ConfigurationError
from imgcls.data.frame import Frame

T = TypeVar("T")


@dataclass(frozen=True)
class Split(Generic[T]):
    """Disjoint train/validation partition of one dataset."""

    train: list[T]
    validation: list[T]


def validation_size(total: int, validation_ratio: float) -> int:
    """Number of rows assigned to validation: `floor(total * ratio)`."""
    if not 0.0 < validation_ratio < 1.0:
        raise ConfigurationError(
            f"validation_ratio must lie in (0, 1), got {validation_ratio}"
        )
    return math.floor(total * validation_ratio)


def partition_indices(
    total: int,
    validation_ratio: float,
    seed: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Return `(train_indices, validation_indices)` of a seeded permutation."""
    n_validation = validation_size(total, validation_ratio)
    permutation = np.random.default_rng(seed).permutation(total)
    return permutation[n_validation:], permutation[:n_validation]


def split_dataset(
    samples: Sequence[T],
    validation_ratio: float,
    seed: int,
) -> Split[T]:
    """Shuffle `samples` with `seed` and split off the validation share."""
    train_idx, val_idx = partition_indices(len(samples), validation_ratio, seed)
    return Split(
        train=[samples[int(index)] for index in train_idx],
        validation=[samples[int(index)] for index in val_idx],
    )


def split_frame(
    frame: Frame,
    validation_ratio: float,
    seed: int,
) -> tuple[Frame, Frame]:
    """Frame counterpart of `split_dataset`; key vocabularies are preserved."""
    train_idx, val_idx = partition_indices(len(frame), validation_ratio, seed)
    return frame.take(train_idx), frame.take(val_idx)
