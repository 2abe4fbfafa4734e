"""YAML config loading and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from imgcls.config.schema import ExperimentConfig
from imgcls.core.exceptions import ConfigurationError


def _read_payload(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {config_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(
            f"Invalid config payload in {config_path}: "
            "top-level YAML node must be a mapping."
        )
    return payload


def load_experiment_config(path: str | Path) -> ExperimentConfig:
    """Load and validate experiment config from YAML."""
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")

    payload = _read_payload(config_path)
    try:
        config = ExperimentConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config at {config_path}: {exc}") from exc

    return config
