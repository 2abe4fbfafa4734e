"""Backend strategy abstractions."""

from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from typing import ClassVar

import torch

from imgcls.config.schema import ExperimentConfig
from imgcls.core.exceptions import ConfigurationError
from imgcls.data.contracts import PayloadKind
from imgcls.data.frame import Frame
from imgcls.estimators.base import EstimatorChain, TrainedModel
from imgcls.estimators.metrics import MetricsCallback, ignore_metrics

LOGGER = logging.getLogger(__name__)


def resolve_device(raw: str) -> torch.device:
    """Map `backend.device` to a torch device, failing early on broken CUDA."""
    if raw == "auto":
        if not torch.backends.cuda.is_built():
            return torch.device("cpu")
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("error", category=UserWarning)
                is_available = torch.cuda.is_available()
        except Warning as exc:
            raise ConfigurationError(
                "backend.device='auto' detected CUDA build, but CUDA "
                f"initialization failed: {exc}. "
                "Fix CUDA driver/runtime or set backend.device='cpu'."
            ) from exc
        return torch.device("cuda" if is_available else "cpu")

    try:
        device = torch.device(raw)
    except RuntimeError as exc:
        raise ConfigurationError(f"Invalid backend.device '{raw}': {exc}") from exc
    if device.type == "cuda":
        if not torch.backends.cuda.is_built():
            raise ConfigurationError(
                "backend.device='cuda' requested, but this PyTorch build "
                "does not include CUDA support."
            )
        if not torch.cuda.is_available():
            raise ConfigurationError(
                "backend.device='cuda' requested, but no CUDA device is available."
            )
    return device


class BackendStrategy(ABC):
    """Strategy interface for one way of constructing the classifier.

    A backend declares which payload kind its samples must carry, exposes its
    stage list through `build_pipeline` so it can be inspected without
    training, and turns a labeled frame into a `TrainedModel`.
    """

    name: ClassVar[str]
    payload_kind: ClassVar[PayloadKind]

    def __init__(
        self,
        cfg: ExperimentConfig,
        *,
        metrics_callback: MetricsCallback | None = None,
    ) -> None:
        self.cfg = cfg
        self.metrics_callback = metrics_callback or ignore_metrics
        self.device = resolve_device(cfg.backend.device)
        LOGGER.info("backend=%s selected_device=%s", self.name, self.device)

    @abstractmethod
    def build_pipeline(self) -> EstimatorChain:
        """Return the ordered stage list this backend fits."""

    @abstractmethod
    def fit(self, frame: Frame) -> TrainedModel:
        """Fit the pipeline on a labeled frame."""
