"""Train-once model cache."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from imgcls.core.exceptions import CorruptArtifactError
from imgcls.estimators.base import TrainedModel
from imgcls.training.checkpoints import load_model, save_model

LOGGER = logging.getLogger(__name__)


def get_or_train(
    path: Path,
    train_fn: Callable[[], TrainedModel],
    *,
    use_cache: bool = True,
) -> TrainedModel:
    """Return the cached model at `path`, training and persisting on a miss.

    With `use_cache=False` the artifact is neither read nor written. A corrupt
    artifact counts as a miss and is overwritten by the retrained model.
    """
    if use_cache:
        try:
            cached = load_model(path)
        except CorruptArtifactError as exc:
            LOGGER.warning("model_cache_corrupt path=%s reason=%s", path, exc)
            cached = None
        if cached is not None:
            LOGGER.info("model_cache_hit path=%s", path)
            return cached
        LOGGER.info("model_cache_miss path=%s", path)
    else:
        LOGGER.info("model_cache_disabled path=%s", path)

    model = train_fn()
    if use_cache:
        save_model(model, path)
    return model
