"""Training, model persistence and the train-once cache."""

from imgcls.training.cache import get_or_train
from imgcls.training.checkpoints import load_model, save_model
from imgcls.training.trainer import Trainer

__all__ = ["Trainer", "get_or_train", "load_model", "save_model"]
