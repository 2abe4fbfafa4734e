import io
from pathlib import Path

import pytest
import torch
from PIL import Image
from torch import nn

RED = (230, 20, 20)
BLUE = (20, 20, 230)


def write_image(path: Path, color: tuple[int, int, int], size: int = 16) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (size, size), color=color).save(path)
    return path


def mean_color_graph_bytes() -> bytes:
    """TorchScript graph mapping `(n, 3, H, W)` pixels to per-channel means."""
    module = nn.Sequential(nn.AdaptiveAvgPool2d(1), nn.Flatten()).eval()
    traced = torch.jit.trace(module, torch.zeros(1, 3, 8, 8))
    buffer = io.BytesIO()
    torch.jit.save(traced, buffer)
    return buffer.getvalue()


class CountingBackbone(nn.Module):
    """Tiny stand-in for a torchvision backbone; counts images it embeds."""

    def __init__(self) -> None:
        super().__init__()
        self.pool = nn.AdaptiveAvgPool2d(1)
        self.images_seen = 0

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        self.images_seen += int(x.shape[0])
        return self.pool(x).flatten(1)


@pytest.fixture
def counting_backbone(monkeypatch) -> list[CountingBackbone]:
    """Replace torchvision backbones with `CountingBackbone` instances."""
    built: list[CountingBackbone] = []

    def _build(arch: str, *, pretrained: bool) -> tuple[nn.Module, int]:
        _ = arch, pretrained
        backbone = CountingBackbone()
        built.append(backbone)
        return backbone, 3

    monkeypatch.setattr(
        "imgcls.estimators.image_classification.build_backbone",
        _build,
    )
    return built


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    """Assets folder with two color classes, a test folder and a frozen graph."""
    root = tmp_path / "assets"
    for index in range(6):
        write_image(root / "fish-images" / "red" / f"red_{index}.png", RED)
        write_image(root / "fish-images" / "blue" / f"blue_{index}.jpg", BLUE)
    write_image(root / "test-images" / "a_red.png", RED)
    write_image(root / "test-images" / "b_blue.png", BLUE)
    graph = root / "inception" / "inception_graph.pt"
    graph.parent.mkdir(parents=True)
    graph.write_bytes(mean_color_graph_bytes())
    return root


def write_config(tmp_path: Path, assets: Path, backend: str, extra: str = "") -> Path:
    cfg = tmp_path / f"{backend}.yaml"
    cfg.write_text(
        (
            "system:\n"
            "  seed: 3\n"
            "  log_format: json\n"
            "backend:\n"
            f"  name: {backend}\n"
            "  device: cpu\n"
            "data:\n"
            f"  assets_dir: {assets.as_posix()}\n"
            "reporting:\n"
            f"  output_dir: {(tmp_path / 'reports').as_posix()}\n"
            f"{extra}"
        ),
        encoding="utf-8",
    )
    return cfg


END_TO_END_SMALL = (
    "end_to_end:\n"
    "  arch: resnet18\n"
    "  pretrained: false\n"
    "  image_size: 16\n"
    "  epochs: 4\n"
    "  batch_size: 4\n"
    "  learning_rate: 0.1\n"
    "  early_stopping_patience: null\n"
)
