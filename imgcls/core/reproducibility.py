"""Determinism and random seed controls."""

from __future__ import annotations

import os
import random

import numpy as np
import torch


def set_global_seed(seed: int, deterministic: bool) -> None:
    """Set all framework-level random seeds and deterministic flags."""
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    # Avoid CUDA runtime probing here; it can emit warnings in headless/CI setups.
    torch.cuda.manual_seed_all(seed)

    os.environ["PYTHONHASHSEED"] = str(seed)
    torch.backends.cudnn.deterministic = deterministic
    torch.backends.cudnn.benchmark = not deterministic


def torch_generator(seed: int) -> torch.Generator:
    """Return a CPU generator seeded independently of the global torch state."""
    generator = torch.Generator()
    generator.manual_seed(seed)
    return generator
