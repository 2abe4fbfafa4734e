"""Configuration models and loaders."""

from imgcls.config.loader import load_experiment_config
from imgcls.config.schema import ExperimentConfig

__all__ = ["ExperimentConfig", "load_experiment_config"]
