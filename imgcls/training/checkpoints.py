"""Trained model serialization utilities."""

from __future__ import annotations

import io
import logging
from importlib import import_module
from pathlib import Path
from typing import Any, cast

import torch

from imgcls.core.exceptions import CheckpointError, CorruptArtifactError
from imgcls.core.io import atomic_write_bytes
from imgcls.estimators.base import FittedStage, TrainedModel

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = 1

_STAGE_SPECS: dict[str, tuple[str, str]] = {
    "load_images": ("imgcls.estimators.image", "LoadImages"),
    "resize_images": ("imgcls.estimators.image", "ResizeImages"),
    "extract_pixels": ("imgcls.estimators.image", "ExtractPixels"),
    "score_frozen_graph": ("imgcls.estimators.frozen_graph", "ScoreFrozenGraph"),
    "value_to_key": ("imgcls.estimators.conversion", "ValueToKeyMapper"),
    "key_to_value": ("imgcls.estimators.conversion", "KeyToValueMapper"),
    "maximum_entropy": ("imgcls.estimators.maximum_entropy", "MaximumEntropyModel"),
    "image_classifier": (
        "imgcls.estimators.image_classification",
        "ImageClassifierModel",
    ),
}


def _stage_class(kind: str, path: Path) -> type[FittedStage]:
    spec = _STAGE_SPECS.get(kind)
    if spec is None:
        raise CorruptArtifactError(
            f"Invalid model artifact at {path}: unknown stage '{kind}'"
        )
    module_path, class_name = spec
    return cast(type[FittedStage], getattr(import_module(module_path), class_name))


def _validate_payload(payload: Any, path: Path) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise CorruptArtifactError(
            f"Invalid model artifact at {path}: payload must be a dict"
        )
    for key in ("format_version", "input_schema", "output_schema", "stages"):
        if key not in payload:
            raise CorruptArtifactError(
                f"Invalid model artifact at {path}: missing top-level key '{key}'"
            )
    if payload["format_version"] != FORMAT_VERSION:
        raise CorruptArtifactError(
            f"Invalid model artifact at {path}: unsupported format_version "
            f"{payload['format_version']!r}"
        )
    stages = payload["stages"]
    if not isinstance(stages, list) or not stages:
        raise CorruptArtifactError(
            f"Invalid model artifact at {path}: 'stages' must be a non-empty list"
        )
    for index, entry in enumerate(stages):
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("kind"), str)
            or not isinstance(entry.get("state"), dict)
        ):
            raise CorruptArtifactError(
                f"Invalid model artifact at {path}: malformed stage entry {index}"
            )
    return payload


def model_payload(model: TrainedModel) -> dict[str, Any]:
    """Weights-only-loadable payload describing `model`."""
    unknown = [stage.kind for stage in model.stages if stage.kind not in _STAGE_SPECS]
    if unknown:
        raise CheckpointError(f"Cannot serialize unregistered stages: {unknown}")
    return {
        "format_version": FORMAT_VERSION,
        "input_schema": dict(model.input_schema),
        "output_schema": dict(model.output_schema),
        "stages": [
            {"kind": stage.kind, "state": stage.state_dict()} for stage in model.stages
        ],
    }


def save_model(model: TrainedModel, path: Path) -> None:
    """Persist `model` atomically; identical models produce identical bytes."""
    buffer = io.BytesIO()
    torch.save(model_payload(model), buffer)
    atomic_write_bytes(path, buffer.getvalue())
    LOGGER.info(
        "model_saved path=%s stages=%d bytes=%d",
        path,
        len(model.stages),
        buffer.getbuffer().nbytes,
    )


def load_model(path: Path) -> TrainedModel | None:
    """Load a persisted model; `None` when no artifact exists at `path`."""
    if not path.exists():
        return None
    if not path.is_file():
        raise CorruptArtifactError(f"Model artifact path is not a file: {path}")

    try:
        raw_payload = torch.load(path, map_location="cpu", weights_only=True)
    except Exception as exc:
        raise CorruptArtifactError(f"Unable to read model artifact {path}: {exc}") from exc

    payload = _validate_payload(raw_payload, path)
    stages: list[FittedStage] = []
    for entry in payload["stages"]:
        stage_class = _stage_class(entry["kind"], path)
        try:
            stages.append(stage_class.from_state(entry["state"]))
        except CorruptArtifactError:
            raise
        except Exception as exc:
            raise CorruptArtifactError(
                f"Unable to restore stage '{entry['kind']}' from {path}: {exc}"
            ) from exc

    model = TrainedModel(
        stages=tuple(stages),
        input_schema=dict(payload["input_schema"]),
        output_schema=dict(payload["output_schema"]),
    )
    LOGGER.info("model_loaded path=%s stages=%d", path, len(stages))
    return model
