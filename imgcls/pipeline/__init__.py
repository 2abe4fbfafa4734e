"""Top-level execution runners."""

from imgcls.pipeline.runner import (
    run_classify,
    run_infer,
    run_train,
    run_validate_config,
)

__all__ = [
    "run_train",
    "run_infer",
    "run_classify",
    "run_validate_config",
]
