"""CSV reporter for training metrics and prediction artifacts."""

from __future__ import annotations

import csv
from pathlib import Path

from imgcls.config.schema import ReportingConfig
from imgcls.reporting.base import PredictionRow, Reporter

_METRIC_FIELDS: tuple[str, ...] = (
    "kind",
    "epoch",
    "split",
    "loss",
    "accuracy",
    "learning_rate",
    "images_processed",
    "images_reused",
)


class CsvReporter(Reporter):
    """CSV-backed reporter with deterministic columns."""

    def __init__(self, cfg: ReportingConfig) -> None:
        self._output_dir = cfg.output_dir
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._metrics_path = self._output_dir / cfg.csv_metrics_filename
        self._predictions_path = self._output_dir / cfg.csv_predictions_filename

        self._metrics_header_written = self._metrics_path.exists()
        # Prediction output is command-scoped: truncate once at startup, append later.
        if self._predictions_path.exists():
            self._predictions_path.unlink()
        self._predictions_header_written = False

    @property
    def metrics_path(self) -> Path:
        return self._metrics_path

    @property
    def predictions_path(self) -> Path:
        return self._predictions_path

    @staticmethod
    def _write_rows(
        path: Path,
        rows: list[PredictionRow],
        *,
        header_written: bool,
        fieldnames: list[str] | None = None,
    ) -> bool:
        if not rows:
            return header_written

        columns = fieldnames or list(rows[0].keys())
        mode = "a" if header_written else "w"
        with path.open(mode, encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=columns, restval="")
            if not header_written:
                writer.writeheader()
            writer.writerows(rows)
        return True

    def _write_metrics(self, row: PredictionRow) -> None:
        self._metrics_header_written = self._write_rows(
            self._metrics_path,
            [row],
            header_written=self._metrics_header_written,
            fieldnames=list(_METRIC_FIELDS),
        )

    def log_epoch(self, *, epoch: int, split: str, metrics: dict[str, float]) -> None:
        """Append one epoch metric row."""
        self._write_metrics({"kind": "epoch", "epoch": epoch, "split": split, **metrics})

    def log_evaluation(self, metrics: dict[str, float]) -> None:
        """Append one evaluation metric row."""
        self._write_metrics({"kind": "evaluation", "epoch": -1, "split": "train", **metrics})

    def write_predictions(self, rows: list[PredictionRow]) -> None:
        """Append one chunk of prediction rows."""
        self._predictions_header_written = self._write_rows(
            self._predictions_path,
            rows,
            header_written=self._predictions_header_written,
        )
