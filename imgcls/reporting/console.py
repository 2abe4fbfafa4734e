"""Console reporter implementation."""

from __future__ import annotations

import json
import logging

from imgcls.reporting.base import PredictionRow, Reporter

LOGGER = logging.getLogger(__name__)


class ConsoleReporter(Reporter):
    """Structured console reporting."""

    def log_epoch(self, *, epoch: int, split: str, metrics: dict[str, float]) -> None:
        """Emit one epoch summary as structured JSON."""
        payload = {"event": "epoch_summary", "epoch": epoch, "split": split, **metrics}
        LOGGER.info(json.dumps(payload, sort_keys=True))

    def log_evaluation(self, metrics: dict[str, float]) -> None:
        """Emit one evaluation summary as structured JSON."""
        payload = {"event": "evaluation_summary", **metrics}
        LOGGER.info(json.dumps(payload, sort_keys=True))

    def write_predictions(self, rows: list[PredictionRow]) -> None:
        """Emit one JSON line per prediction, then a summary line."""
        for row in rows:
            LOGGER.info(json.dumps({"event": "prediction", **row}, sort_keys=True))
        payload = {
            "event": "prediction_summary",
            "rows": len(rows),
        }
        LOGGER.info(json.dumps(payload, sort_keys=True))
