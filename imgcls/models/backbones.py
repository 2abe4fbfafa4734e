"""Torchvision backbones used as frozen bottleneck feature extractors."""

from __future__ import annotations

import logging

import torch
from PIL import Image
from torch import nn
from torchvision import models
from torchvision.transforms import functional as F

from imgcls.core.exceptions import ConfigurationError

LOGGER = logging.getLogger(__name__)

IMAGENET_MEAN: tuple[float, float, float] = (0.485, 0.456, 0.406)
IMAGENET_STD: tuple[float, float, float] = (0.229, 0.224, 0.225)

# Attribute holding the ImageNet classification head of each architecture.
_HEAD_ATTRIBUTES: dict[str, str] = {
    "resnet18": "fc",
    "resnet34": "fc",
    "resnet50": "fc",
    "resnet101": "fc",
    "mobilenet_v2": "classifier",
    "mobilenet_v3_large": "classifier",
    "efficientnet_b0": "classifier",
}


def supported_architectures() -> tuple[str, ...]:
    return tuple(_HEAD_ATTRIBUTES)


def _head_input_features(head: nn.Module) -> int:
    linears = [module for module in head.modules() if isinstance(module, nn.Linear)]
    if not linears:
        raise ConfigurationError("Backbone head exposes no linear layer.")
    return int(linears[0].in_features)


def build_backbone(arch: str, *, pretrained: bool) -> tuple[nn.Module, int]:
    """Instantiate `arch` without its classification head.

    Returns the headless module (eval mode, gradients disabled) and the width
    of the bottleneck vector it produces.
    """
    head_attribute = _HEAD_ATTRIBUTES.get(arch)
    if head_attribute is None:
        supported = ", ".join(supported_architectures())
        raise ConfigurationError(
            f"Unsupported backbone architecture '{arch}'. Supported: {supported}"
        )

    model = models.get_model(arch, weights="DEFAULT" if pretrained else None)
    feature_dim = _head_input_features(getattr(model, head_attribute))
    setattr(model, head_attribute, nn.Identity())
    model.eval()
    for parameter in model.parameters():
        parameter.requires_grad_(False)
    LOGGER.info(
        "backbone_built arch=%s pretrained=%s bottleneck_dim=%d",
        arch,
        pretrained,
        feature_dim,
    )
    return model, feature_dim


def to_backbone_input(image: Image.Image, image_size: int) -> torch.Tensor:
    """Resize and ImageNet-normalize one RGB image into a `(C, H, W)` tensor."""
    resized = image.resize((image_size, image_size), Image.Resampling.BILINEAR)
    tensor = F.to_tensor(resized)
    return F.normalize(tensor, mean=list(IMAGENET_MEAN), std=list(IMAGENET_STD))
