"""Frozen pretrained graph followed by an L-BFGS maximum-entropy classifier."""

from __future__ import annotations

import logging

from imgcls.backends.base import BackendStrategy
from imgcls.config.schema import ExperimentConfig
from imgcls.data.frame import Frame
from imgcls.estimators.base import EstimatorChain, TrainedModel
from imgcls.estimators.conversion import MapKeyToValue, MapValueToKey
from imgcls.estimators.frozen_graph import ScoreFrozenGraph
from imgcls.estimators.image import ExtractPixels, LoadImages, ResizeImages
from imgcls.estimators.maximum_entropy import MaximumEntropyTrainer
from imgcls.estimators.metrics import MetricsCallback

LOGGER = logging.getLogger(__name__)


class PretrainedGraphBackend(BackendStrategy):
    """Embed images with a frozen TorchScript graph, then fit a linear model."""

    name = "pretrained_graph"
    payload_kind = "path"

    def __init__(
        self,
        cfg: ExperimentConfig,
        *,
        metrics_callback: MetricsCallback | None = None,
    ) -> None:
        super().__init__(cfg, metrics_callback=metrics_callback)
        self._frozen_graph: ScoreFrozenGraph | None = None

    def _graph_stage(self) -> ScoreFrozenGraph:
        # Read once per backend; stateless, so every pipeline can share it.
        if self._frozen_graph is None:
            graph_cfg = self.cfg.pretrained_graph
            self._frozen_graph = ScoreFrozenGraph.from_file(
                self.cfg.graph_path,
                output_name=graph_cfg.output_name,
                batch_size=graph_cfg.batch_size,
                device=self.device,
            )
        return self._frozen_graph

    def build_pipeline(self) -> EstimatorChain:
        graph_cfg = self.cfg.pretrained_graph
        # Loads the graph eagerly so a missing file fails before any decoding.
        frozen_graph = self._graph_stage()
        return EstimatorChain(
            [
                LoadImages(on_decode_error=self.cfg.data.on_decode_error),
                ResizeImages(
                    width=graph_cfg.image_width,
                    height=graph_cfg.image_height,
                ),
                ExtractPixels(
                    channels_last=graph_cfg.channels_last,
                    offset=graph_cfg.offset,
                    scale=graph_cfg.scale,
                ),
                frozen_graph,
                MapValueToKey(),
                MaximumEntropyTrainer(
                    l2_regularization=graph_cfg.l2_regularization,
                    max_iterations=graph_cfg.max_iterations,
                    tolerance=graph_cfg.tolerance,
                ),
                MapKeyToValue(),
            ]
        )

    def fit(self, frame: Frame) -> TrainedModel:
        return self.build_pipeline().fit(frame)
