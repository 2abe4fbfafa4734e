"""Backend factory."""

from __future__ import annotations

from importlib import import_module
from typing import cast

from imgcls.backends.base import BackendStrategy
from imgcls.config.schema import ExperimentConfig
from imgcls.core.exceptions import BackendNotAvailableError
from imgcls.estimators.metrics import MetricsCallback

_BACKEND_SPECS: dict[str, tuple[str, str]] = {
    "pretrained_graph": (
        "imgcls.backends.pretrained_graph",
        "PretrainedGraphBackend",
    ),
    "end_to_end": ("imgcls.backends.end_to_end", "EndToEndBackend"),
}


def available_backends() -> tuple[str, ...]:
    return tuple(_BACKEND_SPECS)


def backend_class(name: str) -> type[BackendStrategy]:
    """Resolve a backend class without instantiating it."""
    spec = _BACKEND_SPECS.get(name)
    if spec is None:
        raise BackendNotAvailableError(f"Unsupported backend: {name}")

    module_path, backend_class_name = spec
    module = import_module(module_path)
    return cast(type[BackendStrategy], getattr(module, backend_class_name))


def create_backend(
    cfg: ExperimentConfig,
    *,
    metrics_callback: MetricsCallback | None = None,
) -> BackendStrategy:
    """Create backend implementation from config name."""
    return backend_class(cfg.backend.name)(cfg, metrics_callback=metrics_callback)
