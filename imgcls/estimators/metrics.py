"""Structured training progress records delivered to metrics callbacks."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Literal, TypeAlias

MetricsPhase: TypeAlias = Literal["bottleneck", "training", "evaluation"]
MetricsDataset: TypeAlias = Literal["train", "validation"]


@dataclass(frozen=True)
class MetricsRecord:
    """One progress update from the transfer-learning trainer.

    `bottleneck` records report how many bottleneck vectors a pass computed
    and how many it served from cache. `training` records carry the epoch's
    mean cross-entropy loss and accuracy for one dataset. `evaluation` is the
    optional post-training pass over the train set.
    """

    phase: MetricsPhase
    dataset: MetricsDataset
    epoch: int
    loss: float | None = None
    accuracy: float | None = None
    learning_rate: float | None = None
    images_processed: int = 0
    images_reused: int = 0

    def as_metrics(self) -> dict[str, float]:
        """Numeric fields only, suitable for reporters."""
        out: dict[str, float] = {}
        for key, value in asdict(self).items():
            if key in {"phase", "dataset", "epoch"} or value is None:
                continue
            out[key] = float(value)
        return out


MetricsCallback: TypeAlias = Callable[[MetricsRecord], None]


def ignore_metrics(record: MetricsRecord) -> None:
    _ = record
