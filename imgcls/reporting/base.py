"""Reporting interface."""

from __future__ import annotations

from typing import Protocol

PredictionRow = dict[str, str | float | int]


class Reporter(Protocol):
    """Reporter contract for training metrics and prediction artifacts."""

    def log_epoch(self, *, epoch: int, split: str, metrics: dict[str, float]) -> None:
        """Record one epoch summary."""

    def log_evaluation(self, metrics: dict[str, float]) -> None:
        """Record one evaluation summary."""

    def write_predictions(self, rows: list[PredictionRow]) -> None:
        """Persist prediction rows."""
