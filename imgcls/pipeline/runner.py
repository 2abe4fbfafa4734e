"""Application runners for CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from imgcls.backends.base import BackendStrategy
from imgcls.backends.registry import create_backend
from imgcls.config.loader import load_experiment_config
from imgcls.config.schema import ExperimentConfig
from imgcls.core.exceptions import CheckpointError, ImageDecodeError
from imgcls.core.logging import configure_logging
from imgcls.core.reproducibility import set_global_seed
from imgcls.data.contracts import Prediction
from imgcls.data.sources import LabeledSampleSource, enumerate_unlabeled
from imgcls.estimators.base import TrainedModel, stage_names
from imgcls.estimators.metrics import MetricsRecord
from imgcls.inference.engine import PredictionEngine
from imgcls.reporting import ConsoleReporter, CsvReporter
from imgcls.reporting.base import PredictionRow, Reporter
from imgcls.training.cache import get_or_train
from imgcls.training.checkpoints import load_model
from imgcls.training.trainer import Trainer

LOGGER = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Objects shared by every command once the config is loaded."""

    cfg: ExperimentConfig
    backend: BackendStrategy
    reporters: list[Reporter]


class ReportingMetricsCallback:
    """Forward trainer progress records to reporters."""

    def __init__(self, reporters: list[Reporter]) -> None:
        self.reporters = reporters

    def __call__(self, record: MetricsRecord) -> None:
        if record.phase == "bottleneck":
            LOGGER.info(
                "bottleneck_pass dataset=%s epoch=%d computed=%d reused=%d",
                record.dataset,
                record.epoch,
                record.images_processed,
                record.images_reused,
            )
            return
        metrics = record.as_metrics()
        for reporter in self.reporters:
            if record.phase == "evaluation":
                reporter.log_evaluation(metrics)
            else:
                reporter.log_epoch(
                    epoch=record.epoch,
                    split=record.dataset,
                    metrics=metrics,
                )


def _setup(config_path: str) -> RunContext:
    cfg = load_experiment_config(config_path)
    configure_logging(cfg.system.log_level, cfg.system.log_format)
    LOGGER.info("config_loaded path=%s", config_path)
    LOGGER.info(
        "reproducibility seed=%s deterministic=%s",
        cfg.system.seed,
        cfg.system.deterministic,
    )
    set_global_seed(seed=cfg.system.seed, deterministic=cfg.system.deterministic)

    LOGGER.info("initializing_reporters")
    reporters: list[Reporter] = [ConsoleReporter(), CsvReporter(cfg.reporting)]
    LOGGER.info("initializing_backend name=%s", cfg.backend.name)
    backend = create_backend(
        cfg,
        metrics_callback=ReportingMetricsCallback(reporters),
    )
    LOGGER.info("setup_completed")
    return RunContext(cfg=cfg, backend=backend, reporters=reporters)


def _train_fn(context: RunContext) -> TrainedModel:
    cfg = context.cfg
    source = LabeledSampleSource(
        cfg.data.train_dir,
        payload_kind=context.backend.payload_kind,
    )
    return Trainer(context.backend).fit(source.samples())


def _train_or_load(context: RunContext, use_cache: bool | None) -> TrainedModel:
    effective = context.cfg.cache.use_cache if use_cache is None else use_cache
    return get_or_train(
        context.cfg.model_path,
        lambda: _train_fn(context),
        use_cache=effective,
    )


def _prediction_row(prediction: Prediction) -> PredictionRow:
    return {
        "file": prediction.identifier,
        "predicted_label": prediction.predicted_label,
        "score": round(prediction.top_score, 6),
    }


def _classify_test_folder(context: RunContext, model: TrainedModel) -> int:
    cfg = context.cfg
    samples = enumerate_unlabeled(
        cfg.data.test_dir,
        payload_kind=context.backend.payload_kind,
    )
    engine = PredictionEngine(model)
    rows: list[PredictionRow] = []
    skipped = 0
    for sample in samples:
        try:
            prediction = engine.predict(sample)
        except ImageDecodeError as exc:
            if cfg.data.on_decode_error == "abort":
                raise
            LOGGER.warning(
                "prediction_skipped identifier=%s reason=%s",
                exc.identifier,
                exc.reason,
            )
            skipped += 1
            continue
        rows.append(_prediction_row(prediction))

    for reporter in context.reporters:
        reporter.write_predictions(rows)
    LOGGER.info(
        "predictions count=%d skipped=%d classes=%s",
        len(rows),
        skipped,
        ",".join(model.class_labels),
    )
    return len(rows)


def run_validate_config(config_path: str) -> int:
    """Validate one YAML configuration file."""
    LOGGER.info("command=validate-config start path=%s", config_path)
    _ = load_experiment_config(config_path)
    LOGGER.info("command=validate-config success path=%s", config_path)
    return 0


def run_train(config_path: str, use_cache: bool | None = None) -> int:
    """Train the configured backend, or load it from the model cache."""
    LOGGER.info("command=train start path=%s", config_path)
    context = _setup(config_path)
    model = _train_or_load(context, use_cache)
    LOGGER.info("trained_pipeline stages=%s", stage_names(model.stages))
    LOGGER.info("command=train completed")
    return 0


def run_infer(config_path: str) -> int:
    """Classify the test folder with the cached model."""
    LOGGER.info("command=infer start path=%s", config_path)
    context = _setup(config_path)
    model = load_model(context.cfg.model_path)
    if model is None:
        raise CheckpointError(
            f"No trained model at {context.cfg.model_path}; run 'train' first."
        )
    _classify_test_folder(context, model)
    LOGGER.info("command=infer completed")
    return 0


def run_classify(config_path: str, use_cache: bool | None = None) -> int:
    """Train or load the model, then classify the test folder."""
    LOGGER.info("command=run start path=%s", config_path)
    context = _setup(config_path)
    model = _train_or_load(context, use_cache)
    _classify_test_folder(context, model)
    LOGGER.info("command=run completed")
    return 0
