"""Typed configuration schema for imgcls experiments."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

BackboneArch = Literal[
    "resnet18",
    "resnet34",
    "resnet50",
    "resnet101",
    "mobilenet_v2",
    "mobilenet_v3_large",
    "efficientnet_b0",
]


class SystemConfig(BaseModel):
    """Global system and reproducibility controls."""

    model_config = ConfigDict(extra="forbid")

    seed: int = Field(default=0, ge=0)
    deterministic: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "color"] = "color"


class BackendConfig(BaseModel):
    """Model-construction strategy selection."""

    model_config = ConfigDict(extra="forbid")

    name: Literal["pretrained_graph", "end_to_end"]
    device: str = "auto"


class DataConfig(BaseModel):
    """Filesystem layout of the assets folder."""

    model_config = ConfigDict(extra="forbid")

    assets_dir: Path = Path("assets")
    train_folder: Path = Path("fish-images")
    test_folder: Path = Path("test-images")
    on_decode_error: Literal["skip", "abort"] = "skip"

    @property
    def train_dir(self) -> Path:
        """Labeled training root (one sub-folder per class)."""
        return self.assets_dir / self.train_folder

    @property
    def test_dir(self) -> Path:
        """Flat folder of unlabeled images to classify."""
        return self.assets_dir / self.test_folder


class PretrainedGraphConfig(BaseModel):
    """Frozen-graph feature extraction followed by an L-BFGS classifier."""

    model_config = ConfigDict(extra="forbid")

    graph_file: Path = Path("inception/inception_graph.pt")
    image_width: int = Field(default=224, ge=1)
    image_height: int = Field(default=224, ge=1)
    channels_last: bool = False
    offset: float = 117.0
    scale: float = Field(default=1.0, gt=0.0)
    output_name: str | None = None
    batch_size: int = Field(default=32, ge=1)
    l2_regularization: float = Field(default=1.0, gt=0.0)
    max_iterations: int = Field(default=1000, ge=1)
    tolerance: float = Field(default=1e-7, gt=0.0)


class EndToEndConfig(BaseModel):
    """Transfer-learning classifier with bottleneck caching."""

    model_config = ConfigDict(extra="forbid")

    arch: BackboneArch = "resnet101"
    pretrained: bool = True
    image_size: int = Field(default=224, ge=16)
    validation_ratio: float = Field(default=0.3, gt=0.0, lt=1.0)
    epochs: int = Field(default=200, ge=1)
    batch_size: int = Field(default=10, ge=1)
    learning_rate: float = Field(default=0.01, gt=0.0)
    early_stopping_patience: int | None = Field(default=5, ge=1)
    early_stopping_min_delta: float = Field(default=0.01, ge=0.0)
    reuse_train_bottlenecks: bool = True
    reuse_validation_bottlenecks: bool = True
    test_on_train: bool = False
    bottleneck_dir: Path | None = None


class CacheConfig(BaseModel):
    """Trained model artifact caching."""

    model_config = ConfigDict(extra="forbid")

    model_file: Path = Path("model.pt")
    use_cache: bool = True


class ReportingConfig(BaseModel):
    """Reporting and artifact configuration."""

    model_config = ConfigDict(extra="forbid")

    output_dir: Path = Path("reports")
    csv_metrics_filename: str = "metrics.csv"
    csv_predictions_filename: str = "predictions.csv"


class ExperimentConfig(BaseModel):
    """Root configuration object for any command."""

    model_config = ConfigDict(extra="forbid")

    system: SystemConfig = Field(default_factory=SystemConfig)
    backend: BackendConfig
    data: DataConfig = Field(default_factory=DataConfig)
    pretrained_graph: PretrainedGraphConfig = Field(
        default_factory=PretrainedGraphConfig
    )
    end_to_end: EndToEndConfig = Field(default_factory=EndToEndConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)

    @property
    def model_path(self) -> Path:
        """Location of the cached model artifact under the assets folder."""
        return self.data.assets_dir / self.cache.model_file

    @property
    def graph_path(self) -> Path:
        """Location of the frozen feature-extraction graph."""
        return self.data.assets_dir / self.pretrained_graph.graph_file

    @model_validator(mode="after")
    def validate_bottleneck_dir(self) -> ExperimentConfig:
        """Persisted bottlenecks are only meaningful when they are reused."""
        e2e = self.end_to_end
        if e2e.bottleneck_dir is not None and not (
            e2e.reuse_train_bottlenecks or e2e.reuse_validation_bottlenecks
        ):
            raise ValueError(
                "end_to_end.bottleneck_dir requires at least one of "
                "reuse_train_bottlenecks / reuse_validation_bottlenecks."
            )
        return self
