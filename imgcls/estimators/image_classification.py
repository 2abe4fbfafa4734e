"""Transfer-learning image classifier trained on cached bottleneck values."""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

import numpy as np
import torch
from torch import nn
from torch.optim import AdamW
from torch.utils.data import DataLoader, TensorDataset
from tqdm.auto import tqdm

from imgcls.core.exceptions import ConfigurationError
from imgcls.core.reproducibility import torch_generator
from imgcls.data.contracts import (
    IMAGE_BYTES_COLUMN,
    LABEL_KEY_COLUMN,
    PREDICTED_KEY_COLUMN,
    SCORE_COLUMN,
)
from imgcls.data.frame import Frame
from imgcls.estimators.base import FittedStage, PipelineStage, StageState
from imgcls.estimators.bottleneck import BottleneckCache, payload_digest
from imgcls.estimators.image import DecodePolicy, decode_rows, row_identifiers
from imgcls.estimators.metrics import (
    MetricsCallback,
    MetricsDataset,
    MetricsRecord,
    ignore_metrics,
)
from imgcls.models.backbones import build_backbone, to_backbone_input

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageClassificationOptions:
    """Hyperparameters of the transfer-learning trainer."""

    arch: str = "resnet101"
    pretrained: bool = True
    image_size: int = 224
    epochs: int = 200
    batch_size: int = 10
    learning_rate: float = 0.01
    early_stopping_patience: int | None = 5
    early_stopping_min_delta: float = 0.01
    reuse_train_bottlenecks: bool = True
    reuse_validation_bottlenecks: bool = True
    test_on_train: bool = False
    bottleneck_dir: Path | None = None
    on_decode_error: DecodePolicy = "skip"
    feature_column: str = IMAGE_BYTES_COLUMN
    label_column: str = LABEL_KEY_COLUMN
    seed: int = 0


def _bottleneck_batches(
    backbone: nn.Module,
    images: list[torch.Tensor],
    *,
    batch_size: int,
    device: torch.device,
    desc: str,
) -> list[torch.Tensor]:
    """Forward preprocessed images through the frozen backbone in batches."""
    vectors: list[torch.Tensor] = []
    loader = DataLoader(images, batch_size=batch_size, shuffle=False)
    with torch.inference_mode():
        for batch in tqdm(loader, desc=desc, leave=False, dynamic_ncols=True):
            batch = batch.to(device)
            output = backbone(batch).reshape(batch.shape[0], -1).float().cpu()
            vectors.extend(output.unbind(0))
    return vectors


def _embed_rows(
    frame: Frame,
    backbone: nn.Module,
    options: ImageClassificationOptions,
    *,
    device: torch.device,
    cache: BottleneckCache | None,
    desc: str,
    update_cache: bool = True,
) -> tuple[list[torch.Tensor], list[int]]:
    """Bottleneck vectors for the decodable rows of `frame` and their indices.

    With a cache, vectors are served by identifier and payload digest. Unless
    `update_cache` is false, new vectors are stored and rows that fail to
    decode are remembered.
    """
    writable = cache is not None and update_cache
    payloads = frame.column(options.feature_column)
    identifiers = row_identifiers(frame, options.feature_column)

    vectors: dict[int, torch.Tensor] = {}
    digests: list[str] = []
    pending: list[int] = []
    for index, (payload, identifier) in enumerate(zip(payloads, identifiers)):
        digest = "" if cache is None else payload_digest(payload)
        digests.append(digest)
        if cache is not None:
            if cache.is_undecodable(identifier, digest):
                continue
            cached = cache.lookup(identifier, digest)
            if cached is not None:
                vectors[index] = cached
                continue
        pending.append(index)

    images, decoded = decode_rows(
        [payloads[index] for index in pending],
        [identifiers[index] for index in pending],
        options.on_decode_error,
    )
    decoded_rows = [pending[position] for position in decoded]
    if writable:
        for index in sorted(set(pending) - set(decoded_rows)):
            cache.mark_undecodable(identifiers[index], digests[index])

    computed = _bottleneck_batches(
        backbone,
        [to_backbone_input(image, options.image_size) for image in images],
        batch_size=options.batch_size,
        device=device,
        desc=desc,
    )
    for index, vector in zip(decoded_rows, computed):
        if writable:
            cache.store(identifiers[index], digests[index], vector)
        vectors[index] = vector

    kept = sorted(vectors)
    return [vectors[index] for index in kept], kept


class ImageClassificationTrainer(PipelineStage):
    """Train a linear head over a frozen torchvision backbone.

    Bottleneck vectors are computed once per sample and served from a
    `BottleneckCache` on later epochs. The validation frame, when given, drives
    per-epoch metrics and early stopping on validation accuracy.
    """

    def __init__(
        self,
        options: ImageClassificationOptions,
        *,
        validation: Frame | None = None,
        metrics_callback: MetricsCallback | None = None,
        device: torch.device | None = None,
    ) -> None:
        self.options = options
        self.validation = validation
        self.metrics_callback = metrics_callback or ignore_metrics
        self.device = device or torch.device("cpu")

    def describe(self) -> str:
        return f"image_classification({self.options.arch})"

    def _cache(self, dataset: MetricsDataset, reuse: bool) -> BottleneckCache:
        cache = BottleneckCache(
            dataset=dataset,
            arch=self.options.arch,
            image_size=self.options.image_size,
            reuse=reuse,
            directory=self.options.bottleneck_dir,
        )
        cache.load()
        return cache

    def _bottlenecks(
        self,
        frame: Frame,
        cache: BottleneckCache,
        backbone: nn.Module,
        *,
        dataset: MetricsDataset,
        epoch: int,
    ) -> tuple[torch.Tensor, list[int]]:
        """Return bottleneck vectors for `frame` and the row indices they cover."""
        cache.begin_pass()
        vectors, kept = _embed_rows(
            frame,
            backbone,
            self.options,
            device=self.device,
            cache=cache,
            desc=f"bottleneck {dataset}",
        )
        self.metrics_callback(
            MetricsRecord(
                phase="bottleneck",
                dataset=dataset,
                epoch=epoch,
                images_processed=cache.computed,
                images_reused=cache.reused,
            )
        )
        if not kept:
            return torch.empty((0, 0)), kept
        return torch.stack(vectors), kept

    @staticmethod
    def _keys(frame: Frame, column: str, kept: list[int]) -> torch.Tensor:
        keys = np.asarray(frame.column(column), dtype=np.int64)[kept]
        return torch.from_numpy(keys)

    def _evaluate(
        self,
        head: nn.Module,
        features: torch.Tensor,
        keys: torch.Tensor,
        loss_fn: nn.Module,
    ) -> tuple[float, float]:
        head.eval()
        with torch.no_grad():
            logits = head(features.to(self.device))
            loss = float(loss_fn(logits, keys.to(self.device)).item())
            accuracy = float(
                (logits.argmax(dim=1).cpu() == keys).float().mean().item()
            )
        return loss, accuracy

    def fit(self, frame: Frame) -> ImageClassifierModel:
        options = self.options
        num_classes = len(frame.key_values(options.label_column))
        all_keys = np.asarray(frame.column(options.label_column), dtype=np.int64)
        if np.any(all_keys < 0):
            raise ConfigurationError("Training rows must all carry a known label.")
        if np.unique(all_keys).size < 2:
            raise ConfigurationError(
                "Image classification requires at least two distinct classes "
                "in the training split."
            )

        backbone, feature_dim = build_backbone(
            options.arch, pretrained=options.pretrained
        )
        backbone = backbone.to(self.device)
        train_cache = self._cache("train", options.reuse_train_bottlenecks)
        validation = self.validation
        if validation is not None and len(validation) == 0:
            validation = None
        val_cache = self._cache("validation", options.reuse_validation_bottlenecks)

        head = nn.Linear(feature_dim, num_classes).to(self.device)
        optimizer = AdamW(head.parameters(), lr=options.learning_rate)
        loss_fn = nn.CrossEntropyLoss()
        generator = torch_generator(options.seed)

        best_state = copy.deepcopy(head.state_dict())
        best_accuracy = -math.inf
        stale_epochs = 0
        LOGGER.info(
            "image_classification_start arch=%s classes=%d train_rows=%d "
            "validation_rows=%d epochs=%d",
            options.arch,
            num_classes,
            len(frame),
            0 if validation is None else len(validation),
            options.epochs,
        )

        epochs = tqdm(
            range(1, options.epochs + 1), desc="epochs", leave=False, dynamic_ncols=True
        )
        epoch = 0
        for epoch in epochs:
            features, kept = self._bottlenecks(
                frame, train_cache, backbone, dataset="train", epoch=epoch
            )
            if not kept:
                raise ConfigurationError("No decodable training images remain.")
            keys = self._keys(frame, options.label_column, kept)

            head.train()
            loader = DataLoader(
                TensorDataset(features, keys),
                batch_size=options.batch_size,
                shuffle=True,
                generator=generator,
            )
            total_loss = 0.0
            correct = 0
            for batch_x, batch_y in loader:
                batch_x = batch_x.to(self.device)
                batch_y = batch_y.to(self.device)
                optimizer.zero_grad(set_to_none=True)
                logits = head(batch_x)
                loss = loss_fn(logits, batch_y)
                loss.backward()
                optimizer.step()
                total_loss += float(loss.item()) * len(batch_y)
                correct += int((logits.argmax(dim=1) == batch_y).sum().item())

            self.metrics_callback(
                MetricsRecord(
                    phase="training",
                    dataset="train",
                    epoch=epoch,
                    loss=total_loss / len(kept),
                    accuracy=correct / len(kept),
                    learning_rate=float(optimizer.param_groups[0]["lr"]),
                )
            )

            if validation is None:
                best_state = copy.deepcopy(head.state_dict())
                continue

            val_features, val_kept = self._bottlenecks(
                validation, val_cache, backbone, dataset="validation", epoch=epoch
            )
            if not val_kept:
                best_state = copy.deepcopy(head.state_dict())
                continue
            val_loss, val_accuracy = self._evaluate(
                head,
                val_features,
                self._keys(validation, options.label_column, val_kept),
                loss_fn,
            )
            self.metrics_callback(
                MetricsRecord(
                    phase="training",
                    dataset="validation",
                    epoch=epoch,
                    loss=val_loss,
                    accuracy=val_accuracy,
                    learning_rate=float(optimizer.param_groups[0]["lr"]),
                )
            )

            if val_accuracy > best_accuracy + options.early_stopping_min_delta:
                best_accuracy = val_accuracy
                best_state = copy.deepcopy(head.state_dict())
                stale_epochs = 0
            else:
                stale_epochs += 1
            patience = options.early_stopping_patience
            if patience is not None and stale_epochs >= patience:
                LOGGER.info(
                    "early_stopping epoch=%d best_validation_accuracy=%.5f",
                    epoch,
                    best_accuracy,
                )
                break

        head.load_state_dict(best_state)
        train_cache.flush()
        val_cache.flush()

        if options.test_on_train:
            features, kept = self._bottlenecks(
                frame, train_cache, backbone, dataset="train", epoch=epoch
            )
            loss, accuracy = self._evaluate(
                head, features, self._keys(frame, options.label_column, kept), loss_fn
            )
            self.metrics_callback(
                MetricsRecord(
                    phase="evaluation",
                    dataset="train",
                    epoch=epoch,
                    loss=loss,
                    accuracy=accuracy,
                )
            )

        return ImageClassifierModel(
            backbone=backbone,
            head=head,
            options=options,
            num_classes=num_classes,
            feature_dim=feature_dim,
            device=self.device,
            bottleneck_cache=train_cache,
        )


class ImageClassifierModel(FittedStage):
    """Frozen backbone plus trained linear head producing class scores.

    A freshly fitted model keeps the trainer's train `BottleneckCache` so that
    transforming the training frame reuses its vectors. The cache is not part
    of `state_dict`; restored models always run the backbone.
    """

    kind = "image_classifier"

    def __init__(
        self,
        *,
        backbone: nn.Module,
        head: nn.Module,
        options: ImageClassificationOptions,
        num_classes: int,
        feature_dim: int,
        device: torch.device | None = None,
        bottleneck_cache: BottleneckCache | None = None,
    ) -> None:
        self.backbone = backbone.eval()
        self.head = head.eval()
        self.options = options
        self.num_classes = num_classes
        self.feature_dim = feature_dim
        self.device = device or torch.device("cpu")
        self.bottleneck_cache = bottleneck_cache

    def describe(self) -> str:
        return f"{self.kind}({self.options.arch})[{self.num_classes}]"

    def transform(self, frame: Frame) -> Frame:
        features, kept = _embed_rows(
            frame,
            self.backbone,
            self.options,
            device=self.device,
            cache=self.bottleneck_cache,
            desc="classify",
            update_cache=False,
        )
        if len(kept) != len(frame):
            frame = frame.take(kept)
        if not kept:
            return frame

        with torch.inference_mode():
            logits = self.head(torch.stack(features).to(self.device))
            scores = torch.softmax(logits, dim=1).float().cpu().numpy()
        predicted = np.argmax(scores, axis=1).astype(np.int64)
        return frame.with_column(SCORE_COLUMN, scores).with_column(
            PREDICTED_KEY_COLUMN, predicted
        )

    def state_dict(self) -> StageState:
        options: dict[str, Any] = asdict(self.options)
        bottleneck_dir = self.options.bottleneck_dir
        options["bottleneck_dir"] = None if bottleneck_dir is None else str(bottleneck_dir)
        return {
            "options": options,
            "num_classes": self.num_classes,
            "feature_dim": self.feature_dim,
            "backbone": {
                key: value.cpu() for key, value in self.backbone.state_dict().items()
            },
            "head": {key: value.cpu() for key, value in self.head.state_dict().items()},
        }

    @classmethod
    def from_state(cls, state: StageState) -> ImageClassifierModel:
        raw_options = dict(state["options"])
        bottleneck_dir = raw_options.pop("bottleneck_dir")
        options = replace(
            ImageClassificationOptions(**raw_options),
            bottleneck_dir=None if bottleneck_dir is None else Path(bottleneck_dir),
        )
        backbone, feature_dim = build_backbone(options.arch, pretrained=False)
        backbone.load_state_dict(state["backbone"])
        head = nn.Linear(feature_dim, int(state["num_classes"]))
        head.load_state_dict(state["head"])
        return cls(
            backbone=backbone,
            head=head,
            options=options,
            num_classes=int(state["num_classes"]),
            feature_dim=feature_dim,
        )
