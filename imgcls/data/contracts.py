"""Data contracts: sample/prediction records and column names."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, TypeAlias

PayloadKind: TypeAlias = Literal["path", "bytes"]
Payload: TypeAlias = Path | bytes

IDENTIFIER_COLUMN = "identifier"
LABEL_COLUMN = "label"
IMAGE_PATH_COLUMN = "image_path"
IMAGE_BYTES_COLUMN = "image_bytes"
IMAGE_COLUMN = "image"
PIXELS_COLUMN = "pixels"
FEATURES_COLUMN = "features"
LABEL_KEY_COLUMN = "label_key"
SCORE_COLUMN = "score"
PREDICTED_KEY_COLUMN = "predicted_key"
PREDICTED_LABEL_COLUMN = "predicted_label"

PAYLOAD_COLUMNS: dict[PayloadKind, str] = {
    "path": IMAGE_PATH_COLUMN,
    "bytes": IMAGE_BYTES_COLUMN,
}


@dataclass(frozen=True)
class Sample:
    """One image with its optional class label."""

    identifier: str
    label: str | None
    payload: Payload

    @property
    def payload_kind(self) -> PayloadKind:
        return "bytes" if isinstance(self.payload, bytes) else "path"


@dataclass(frozen=True)
class Prediction:
    """Classifier output for one sample."""

    identifier: str
    label: str | None
    predicted_label: str
    scores: tuple[float, ...]

    @property
    def top_score(self) -> float:
        return max(self.scores)
